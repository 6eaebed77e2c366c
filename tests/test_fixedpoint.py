import pytest

from ispmodel.fixedpoint import clip, field, wrap_signed, wrap_unsigned, with_field


def test_wrap_unsigned_keeps_in_range_value():
    assert wrap_unsigned(4095, 12) == 4095


def test_wrap_unsigned_negative_one_is_all_ones():
    assert wrap_unsigned(-1, 12) == 4095


@pytest.mark.parametrize("value", [0, 7, 1000, 4095, 123456])
def test_wrap_unsigned_is_periodic(value):
    assert wrap_unsigned(value + (1 << 12), 12) == wrap_unsigned(value, 12)
    assert 0 <= wrap_unsigned(value, 12) < (1 << 12)


@pytest.mark.parametrize("bits", [4, 11, 16])
def test_wrap_signed_range_and_congruence(bits):
    for value in range(-70000, 70000, 997):
        wrapped = wrap_signed(value, bits)
        assert -(1 << (bits - 1)) <= wrapped < (1 << (bits - 1))
        assert (wrapped - value) % (1 << bits) == 0


def test_wrap_signed_minus_one():
    assert wrap_signed(-1, 11) == -1
    assert wrap_signed(wrap_unsigned(-1, 11), 11) == -1


def test_wrap_signed_passes_small_values():
    assert wrap_signed(300, 16) == 300
    assert wrap_signed(-300, 16) == -300


def test_field_reads_back_with_field():
    word = with_field(0, 25, 13, 480)
    assert field(word, 25, 13) == 480
    assert field(word, 12, 0) == 0


def test_with_field_preserves_other_bits():
    word = (1 << 64) - 1
    updated = with_field(word, 39, 31, 0)
    assert field(updated, 39, 31) == 0
    assert field(updated, 30, 0) == field(word, 30, 0)
    assert field(updated, 63, 40) == field(word, 63, 40)


def test_with_field_negative_round_trip():
    word = with_field(0, 31, 16, -2591)
    assert wrap_signed(field(word, 31, 16), 16) == -2591
    assert field(word, 15, 0) == 0


def test_with_field_truncates_to_width():
    word = with_field(0, 3, 0, 0x1F)
    assert field(word, 3, 0) == 0xF
    assert field(word, 63, 4) == 0


def test_invalid_ranges_raise():
    with pytest.raises(ValueError):
        field(0, 3, 5)
    with pytest.raises(ValueError):
        with_field(0, 2, -1, 1)
    with pytest.raises(ValueError):
        wrap_unsigned(1, 0)


def test_clip_bounds():
    assert clip(-5, 0, 4095) == 0
    assert clip(5000, 0, 4095) == 4095
    assert clip(100, 0, 4095) == 100


def test_clip_rejects_inverted_bounds():
    with pytest.raises(ValueError):
        clip(1, 10, 0)