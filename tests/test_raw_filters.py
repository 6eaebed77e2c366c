import pytest

from ispmodel.raw_filters import (
    column_statistic,
    green_balance,
    patch_distance,
    rawdns,
    rawdns_pixel,
    rawdns_weight,
)
from ispmodel.registers import GbRegister, RawdnsRegister, TopRegister


def _top(width, height, pattern=0):
    return TopRegister(frame_width=width, frame_height=height, img_pattern=pattern)


def _flat(size, value):
    return [[value] * size for _ in range(size)]


def _gb_reg(threshold=683):
    return GbRegister(enable=True, win_size=7, lbound=4, hbound=20, threshold=threshold)


def test_rawdns_weight_zero_strength_gives_zero():
    assert rawdns_weight(0, 0) == 0
    assert rawdns_weight(500, 0) == 0


def test_rawdns_weight_identical_patch_has_full_weight():
    assert rawdns_weight(0, 100) == 244


def test_rawdns_weight_boundary_between_tables():
    assert rawdns_weight(100, 100) == 99
    assert rawdns_weight(101, 100) == 85


def test_rawdns_weight_is_non_increasing():
    weights = [rawdns_weight(d, 1000) for d in range(0, 30000, 37)]
    assert all(a >= b for a, b in zip(weights, weights[1:]))
    assert weights[-1] == 0


def test_patch_distance_of_flat_block_is_zero():
    block = _flat(11, 300)
    assert patch_distance(block, 1, 1) == 0
    assert patch_distance(block, 9, 3) == 0


def test_patch_distance_centre_patch_is_zero():
    block = [[r * 11 + c for c in range(11)] for r in range(11)]
    assert patch_distance(block, 5, 5) == 0


def test_patch_distance_is_mirror_symmetric():
    block = _flat(11, 50)
    for r in range(3):
        for c in range(3):
            block[r][c] = 60 + r + c
    mirrored = [list(reversed(row)) for row in reversed(block)]
    assert patch_distance(block, 1, 1) == patch_distance(mirrored, 9, 9)
    assert patch_distance(block, 1, 1) > 0


def test_patch_distance_rejects_centre_outside_window():
    with pytest.raises(ValueError):
        patch_distance(_flat(11, 0), 0, 5)


def test_rawdns_pixel_flat_block_is_unchanged():
    assert rawdns_pixel(_flat(11, 777), 10, 500) == 777


def test_rawdns_pixel_zero_strength_keeps_centre():
    block = [[(r * 37 + c * 11) % 4096 for c in range(11)] for r in range(11)]
    assert rawdns_pixel(block, 5, 0) == block[5][5]


def test_rawdns_pixel_rejects_wrong_window():
    with pytest.raises(ValueError):
        rawdns_pixel(_flat(7, 0), 5, 100)


def test_rawdns_disabled_passes_through():
    frame = [(i * 13) % 4096 for i in range(6 * 5)]
    assert rawdns(_top(6, 5), RawdnsRegister(enable=False), frame) == frame


def test_rawdns_flat_frame_stays_flat():
    top = _top(12, 12)
    reg = RawdnsRegister(enable=True, sigma=20, filter_para=100)
    out = rawdns(top, reg, [321] * 144)
    assert out == [321] * 144


def test_rawdns_smooths_small_bump():
    width = height = 24
    frame = [100] * (width * height)
    frame[12 * width + 12] = 110
    reg = RawdnsRegister(enable=True, sigma=63, filter_para=127)
    out = rawdns(_top(width, height), reg, frame)
    assert len(out) == width * height
    assert 100 <= out[12 * width + 12] < 110


def test_rawdns_rejects_narrow_frame():
    with pytest.raises(ValueError):
        rawdns(_top(4, 4), RawdnsRegister(enable=True, sigma=1, filter_para=1), [0] * 16)


def test_rawdns_rejects_short_input():
    with pytest.raises(ValueError):
        rawdns(_top(8, 8), RawdnsRegister(enable=True, sigma=1, filter_para=1), [0] * 10)


def test_column_statistic_flat_block_is_unchanged():
    block = _flat(7, 2000)
    assert column_statistic(block, True, _gb_reg()) == 2000
    assert column_statistic(block, False, _gb_reg()) == 2000


def test_column_statistic_zero_threshold_keeps_centre():
    block = [[(r * 7 + c * 3) * 10 for c in range(7)] for r in range(7)]
    assert column_statistic(block, False, _gb_reg(threshold=0)) == block[3][3]


def test_column_statistic_pulls_green_towards_neighbours():
    block = [[110 if (r % 2 and c % 2) else 100 for c in range(7)] for r in range(7)]
    result = column_statistic(block, False, _gb_reg())
    assert 100 <= result < 110


def test_column_statistic_rejects_wrong_window():
    with pytest.raises(ValueError):
        column_statistic(_flat(5, 0), False, _gb_reg())


def test_green_balance_disabled_passes_through():
    frame = [(i * 29) % 4096 for i in range(9 * 7)]
    assert green_balance(_top(9, 7), GbRegister(enable=False), frame) == frame


def test_green_balance_flat_frame_stays_flat():
    out = green_balance(_top(10, 10), _gb_reg(), [512] * 100)
    assert out == [512] * 100


def test_green_balance_reduces_gr_gb_imbalance():
    width = height = 16
    frame = [
        110 if (row % 2 == 0 and col % 2 == 1) else 100
        for row in range(height)
        for col in range(width)
    ]
    out = green_balance(_top(width, height), _gb_reg(), frame)
    assert len(out) == width * height
    assert 100 <= out[8 * width + 9] < 110
    assert all(0 <= value <= 4095 for value in out)