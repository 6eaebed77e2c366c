import pytest

from ispmodel.raw_stages import (
    AwbAccumulator,
    bilinear_interpolation,
    color_select,
    dgain,
    dpc,
    is_defect_pixel,
    lsc,
    median_of_eight,
    tpg,
    wbc,
)
from ispmodel.registers import (
    AwbRegister,
    DgainRegister,
    DpcRegister,
    LscRegister,
    TopRegister,
    TpgRegister,
    WbcRegister,
    bayer_channel,
)


def make_top(width, height, pattern=0, blc=0):
    return TopRegister(frame_width=width, frame_height=height, img_pattern=pattern, blc=blc)


def ramp(width, height):
    return [(i * 37) % 4096 for i in range(width * height)]


# colour select / tpg


def test_color_select_white_and_black():
    reg = TpgRegister(enable=True)
    assert [color_select(ch, 0, reg) for ch in range(4)] == [4095] * 4
    assert [color_select(ch, 1, reg) for ch in range(4)] == [0] * 4


def test_color_select_red_bar_lights_only_red():
    reg = TpgRegister(enable=True)
    assert [color_select(ch, 2, reg) for ch in range(4)] == [4095, 0, 0, 0]


def test_color_select_rolling_wraps_to_white():
    reg = TpgRegister(enable=True, rolling_enable=True, id=1)
    assert [color_select(ch, 7, reg) for ch in range(4)] == [4095] * 4


def test_tpg_disabled_passes_through():
    top = make_top(8, 4)
    data = ramp(8, 4)
    assert tpg(top, TpgRegister(enable=False), data) == data


def test_tpg_enabled_draws_bars():
    top = make_top(16, 2)
    out = tpg(top, TpgRegister(enable=True), [123] * 32)
    assert len(out) == 32
    assert out[:6] == [4095, 4095, 0, 0, 4095, 0]


def test_tpg_short_input_raises():
    with pytest.raises(ValueError):
        tpg(make_top(4, 4), TpgRegister(enable=False), [0] * 10)


# dgain


def test_dgain_disabled_passes_through():
    data = ramp(6, 4)
    assert dgain(make_top(6, 4), DgainRegister(enable=False), data) == data


def test_dgain_unity_gain_is_identity():
    reg = DgainRegister(enable=True, r=0x1000, gr=0x1000, gb=0x1000, b=0x1000)
    data = ramp(8, 6)
    assert dgain(make_top(8, 6), reg, data) == data


def test_dgain_double_gain_doubles_and_clips():
    reg = DgainRegister(enable=True, r=0x2000, gr=0x2000, gb=0x2000, b=0x2000)
    data = [100, 1000, 2047, 3000]
    out = dgain(make_top(2, 2), reg, data)
    assert out[:3] == [2 * v for v in data[:3]]
    assert out[3] == 4095


# lsc


def test_bilinear_interpolation_flat_block_returns_gain():
    for wc, hc in [(0, 0), (5, 3), (20, 11)]:
        assert bilinear_interpolation(2500, 2500, 2500, 2500, wc, hc, 13107, 682) == 2500


def test_bilinear_interpolation_at_origin_is_left_top():
    assert bilinear_interpolation(3000, 2000, 2100, 2900, 0, 0, 13107, 682) == 3000


def _lsc_setup(width=32, height=24):
    top = make_top(width, height)
    block_height = (height - 1) // 12 + 1
    block_width = (width - 1) // 16 + 1
    reg = LscRegister(
        enable=True,
        block_height=block_height,
        block_width=block_width,
        block_width_inv=(524288 // block_width) & 0x3FFF,
        block_height_inv=(32768 // block_height) & 0x3FF,
    )
    return top, reg


def test_lsc_unity_tables_are_identity():
    top, reg = _lsc_setup()
    table = [2048] * 224
    data = ramp(32, 24)
    assert lsc(top, reg, data, table, table, table, table) == data


def test_lsc_unity_tables_identity_with_black_level():
    top, reg = _lsc_setup()
    top.blc = 64
    table = [2048] * 224
    data = ramp(32, 24)
    assert lsc(top, reg, data, table, table, table, table) == data


def test_lsc_double_tables_double_small_values():
    top, reg = _lsc_setup()
    table = [4096] * 224
    data = [(i * 7) % 2000 for i in range(32 * 24)]
    assert lsc(top, reg, data, table, table, table, table) == [2 * v for v in data]


def test_lsc_disabled_passes_through():
    top, _ = _lsc_setup()
    data = ramp(32, 24)
    assert lsc(top, LscRegister(enable=False), data, [], [], [], []) == data


# dpc


def test_median_of_eight_constant_and_permutation():
    assert median_of_eight([700] * 8) == 700
    values = [9, 3, 50, 12, 7, 44, 1, 30]
    assert median_of_eight(values) == median_of_eight(sorted(values))


def test_median_of_eight_wrong_length():
    with pytest.raises(ValueError):
        median_of_eight([1, 2, 3])


def test_is_defect_pixel_cases():
    ring = [1000] * 8
    assert is_defect_pixel(ring, 0, 100, 100) is True
    assert is_defect_pixel(ring, 2000, 100, 100) is True
    assert is_defect_pixel(ring, 1000, 100, 100) is False
    assert is_defect_pixel(ring[:7] + [0], 0, 100, 100) is False


def test_is_defect_pixel_wrong_length():
    with pytest.raises(ValueError):
        is_defect_pixel([1, 2], 0, 10, 10)


def test_dpc_disabled_shifts_and_pads():
    width, height = 8, 6
    data = ramp(width, height)
    out = dpc(make_top(width, height), DpcRegister(enable=False), data)
    pad = 2 * width + 2
    assert len(out) == width * height
    assert out == data[pad:] + [0] * pad


def test_dpc_removes_isolated_spike():
    width, height = 12, 12
    frame = [500] * (width * height)
    spike = 6 * width + 6
    frame[spike] = 4000
    out = dpc(make_top(width, height), DpcRegister(enable=True, th_w=100, th_b=100), frame)
    assert len(out) == width * height
    assert out[spike] == 500
    interior = [out[r * width + c] for r in range(2, height - 2) for c in range(2, width - 2)]
    assert all(v == 500 for v in interior)


# awb


def test_awb_passes_frame_and_disabled_gains_are_zero():
    data = ramp(8, 8)
    acc = AwbAccumulator(make_top(8, 8), AwbRegister(enable=False, coeff=8))
    assert acc.process(data) == data
    assert acc.gains() == (0, 0, 0)


def test_awb_uniform_frame_gives_equal_gains():
    acc = AwbAccumulator(make_top(64, 64), AwbRegister(enable=True, coeff=63))
    acc.process([4000] * (64 * 64))
    red, green, blue = acc.gains()
    assert red == green == blue
    assert red > 0


def test_awb_red_only_frame():
    width = height = 64
    top = make_top(width, height)
    frame = [4000 if bayer_channel(r, c, 0) == 0 else 0 for r in range(height) for c in range(width)]
    acc = AwbAccumulator(top, AwbRegister(enable=True, coeff=63))
    acc.process(frame)
    red, green, blue = acc.gains()
    assert red > 0
    assert (green, blue) == (0, 0)


# wbc


def test_wbc_unity_is_identity():
    reg = WbcRegister(enable=True, r=4096, gr=4096, gb=4096, b=4096)
    data = ramp(8, 6)
    assert wbc(make_top(8, 6, blc=32), reg, data) == data


def test_wbc_red_gain_only_changes_red():
    width, height = 8, 4
    reg = WbcRegister(enable=True, r=8192, gr=4096, gb=4096, b=4096)
    data = [(i * 11) % 2000 for i in range(width * height)]
    out = wbc(make_top(width, height), reg, data)
    for index, (before, after) in enumerate(zip(data, out)):
        row, col = divmod(index, width)
        if bayer_channel(row, col, 0) == 0:
            assert after == 2 * before
        else:
            assert after == before


def test_wbc_clips_to_twelve_bits():
    reg = WbcRegister(enable=True, r=8192, gr=8192, gb=8192, b=8192)
    out = wbc(make_top(2, 2), reg, [4000, 3000, 2500, 4095])
    assert out == [4095] * 4


def test_wbc_disabled_passes_through():
    data = ramp(4, 4)
    assert wbc(make_top(4, 4), WbcRegister(enable=False), data) == data