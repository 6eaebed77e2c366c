"""Bayer-domain window filters: non-local-means raw denoise and green balance.

Both stages read ``frame_width * frame_height`` 12-bit samples in raster order
and emit the same number of samples. The filtered output is delayed inside the
hardware; the trailing lines are flushed at the end, so output sample ``i``
corresponds to input pixel ``i``.
"""

from __future__ import annotations

from typing import Iterable, Sequence

from ispmodel.fixedpoint import clip, wrap_signed, wrap_unsigned
from ispmodel.raw_stages import PIXEL_BITS, PIXEL_MAX, _frame, _passthrough
from ispmodel.registers import GbRegister, RawdnsRegister, TopRegister

RAWDNS_WINDOW = 11
GB_WINDOW = 7

# Weights for patch distances at or below k*sigma^2, in tenths of it.
_NEAR_WEIGHTS = (244, 220, 197, 180, 163, 148, 133, 120, 111, 99)
# Weights for patch distances above k*sigma^2, in fifths of it starting at 6/5.
_FAR_WEIGHTS = (85, 70, 57, 47, 39, 32, 26, 21, 18, 15, 12, 10, 8, 7, 6, 3, 1, 0)

# Reciprocal table indexed by (number of accepted pairs - 5), 1.0 = 256.
_GB_LUT = (
    51, 43, 37, 32, 28, 26, 23, 21, 20, 18, 17, 16, 15, 14, 13, 13,
    12, 12, 11, 11, 10, 10, 9, 9, 9, 9, 8, 8, 8, 8, 7, 7,
)

_DIAGONALS = ((-1, -1), (1, -1), (-1, 1), (1, 1))


def _rb_offsets(col: int) -> tuple[tuple[int, int], ...]:
    if col == 0:
        return ((-1, 1), (1, 1))
    if col == GB_WINDOW - 1:
        return ((-1, -1), (1, -1))
    return _DIAGONALS


# (centre row, centre col, neighbour row, neighbour col) compared by the green balance.
_RB_PAIRS = tuple(
    (i, j, i + di, j + dj)
    for i in (1, 3, 5)
    for j in (0, 2, 4, 6)
    for di, dj in _rb_offsets(j)
)
_GREEN_PAIRS = tuple(
    (i, j, i + di, j + dj)
    for i in (1, 3, 5)
    for j in (1, 3, 5)
    for di, dj in _DIAGONALS
)


def _check_block(block: Sequence[Sequence[int]], size: int) -> None:
    if len(block) != size or any(len(row) != size for row in block):
        raise ValueError(f"expected a {size}x{size} window")


def _pixel(value: int) -> int:
    return wrap_unsigned(value, PIXEL_BITS)


def rawdns_weight(diff: int, ksigma2: int) -> int:
    """Similarity weight of a patch from its excess distance and the filter strength."""
    diff = wrap_unsigned(diff, 30)
    ksigma2 = wrap_unsigned(ksigma2, 26)
    if ksigma2 == 0:
        return 0
    if diff > ksigma2:
        scaled = wrap_unsigned(5 * diff, 30)
        for step, weight in enumerate(_FAR_WEIGHTS[:-1], start=6):
            if scaled < step * ksigma2:
                return weight
        return _FAR_WEIGHTS[-1]
    scaled = wrap_unsigned(10 * diff, 30)
    for step, weight in enumerate(_NEAR_WEIGHTS[:-1], start=1):
        if scaled < step * ksigma2:
            return weight
    return _NEAR_WEIGHTS[-1]


def patch_distance(block: Sequence[Sequence[int]], cur_y: int, cur_x: int) -> int:
    """Sum of squared differences between the centre 3x3 patch and the one at ``(cur_y, cur_x)``."""
    _check_block(block, RAWDNS_WINDOW)
    if not (1 <= cur_y <= RAWDNS_WINDOW - 2 and 1 <= cur_x <= RAWDNS_WINDOW - 2):
        raise ValueError(f"patch centre ({cur_y}, {cur_x}) is outside the window")
    centre = RAWDNS_WINDOW // 2
    total = sum(
        (_pixel(block[centre + dy][centre + dx]) - _pixel(block[cur_y + dy][cur_x + dx])) ** 2
        for dy in (-1, 0, 1)
        for dx in (-1, 0, 1)
    )
    return wrap_unsigned(total, 30)


def rawdns_pixel(block: Sequence[Sequence[int]], sigma: int, ksigma2: int) -> int:
    """Denoised value of the centre of an 11x11 window of same-channel samples."""
    _check_block(block, RAWDNS_WINDOW)
    sigma = wrap_unsigned(sigma, 6)
    sigma2 = wrap_unsigned(2 * sigma * sigma, 14)
    centre_index = RAWDNS_WINDOW // 2
    total_weight = total_value = max_weight = 0
    for k in range(1, RAWDNS_WINDOW - 1, 2):
        for l in range(1, RAWDNS_WINDOW - 1, 2):
            if k == centre_index and l == centre_index:
                continue
            distance = patch_distance(block, k, l)
            diff = 0 if distance <= sigma2 else distance - sigma2
            weight = rawdns_weight(diff, ksigma2)
            max_weight = max(max_weight, weight)
            total_weight = wrap_unsigned(total_weight + weight, 13)
            total_value = wrap_unsigned(total_value + weight * _pixel(block[k][l]), 25)

    centre = _pixel(block[centre_index][centre_index])
    total_weight = wrap_unsigned(total_weight + max_weight, 13)
    total_value = wrap_unsigned(total_value + max_weight * centre, 25)
    if total_weight == 0:
        return centre
    return min(total_value // total_weight, PIXEL_MAX)


def _slide(window: list[list[int]], lines: list[list[int]], col: int, value: int) -> None:
    """Shift the window left, feed it a new column and store the column in the line buffers."""
    incoming = [line[col] for line in lines] + [value]
    for window_row, sample in zip(window, incoming):
        window_row.pop(0)
        window_row.append(sample)
    for line, window_row in zip(lines, window[1:]):
        line[col] = window_row[-1]


def rawdns(top: TopRegister, reg: RawdnsRegister, src: Iterable[int]) -> list[int]:
    """Non-local-means denoise of the Bayer frame over an 11x11 window."""
    if not reg.enable:
        return _passthrough(top, src)

    width = top.frame_width
    if width < 5:
        raise ValueError(f"raw denoise needs a frame at least 5 pixels wide, got {width}")
    sigma = wrap_unsigned(reg.sigma, 6)
    ksigma = wrap_unsigned(sigma * wrap_unsigned(reg.filter_para, 7), 13)
    ksigma2 = wrap_unsigned((ksigma * ksigma) >> 16, 26)

    window = [[0] * RAWDNS_WINDOW for _ in range(RAWDNS_WINDOW)]
    lines = [[0] * width for _ in range(RAWDNS_WINDOW - 1)]
    out = []
    for row, col, value in _frame(top, src):
        _slide(window, lines, col, value)
        if row > 9 and col > 9:
            result = rawdns_pixel(window, sigma, ksigma2)
        else:
            result = window[5][5]
        if row > 5 or (row == 5 and col > 4):
            out.append(result)

    out.extend(lines[4][width - 5:])
    for line in lines[5:]:
        out.extend(line)
    return out


def column_statistic(block: Sequence[Sequence[int]], is_rb_pixel: bool, reg: GbRegister) -> int:
    """Green-balanced value of the centre of a 7x7 window."""
    _check_block(block, GB_WINDOW)
    low = wrap_unsigned(reg.lbound, 4)
    high = wrap_unsigned(reg.hbound, 6)
    threshold = wrap_unsigned(reg.threshold, 10)

    total = count = 0
    for ci, cj, ni, nj in _RB_PAIRS if is_rb_pixel else _GREEN_PAIRS:
        difference = _pixel(block[ci][cj]) - _pixel(block[ni][nj])
        if abs(difference) < threshold:
            total += difference
            count += 1
    count = wrap_unsigned(count, 6)

    if count < low:
        total = 0
    else:
        lut = _GB_LUT[(count - 5) & 31]
        magnitude = abs(total)
        if count >= high:
            scaled = (magnitude * lut) >> 8
        else:
            scaled = ((((count - low) * magnitude * lut) >> 8) + 8) // 16
        total = wrap_signed(scaled if total >= 0 else -scaled, 31)
    total >>= 1
    return clip(_pixel(block[3][3]) - total, 0, PIXEL_MAX)


def green_balance(top: TopRegister, reg: GbRegister, src: Iterable[int]) -> list[int]:
    """Remove Gr/Gb imbalance using statistics over a 7x7 window."""
    if not reg.enable:
        return _passthrough(top, src)

    pattern = top.img_pattern & 3
    green_first = bool((pattern >> 1) ^ (pattern & 1))
    width = top.frame_width
    window = [[0] * GB_WINDOW for _ in range(GB_WINDOW)]
    lines = [[0] * width for _ in range(GB_WINDOW - 1)]
    out = []
    for row, col, value in _frame(top, src):
        _slide(window, lines, col, value)
        if row > 5 and col > 5:
            is_rb = (((row + col - 6) & 1) == 0) != green_first
            result = column_statistic(window, is_rb, reg)
        else:
            result = window[3][3]
        if row > 3 or (row == 3 and col > 2):
            out.append(result)

    out.extend(window[3][4:7])
    for line in lines[3:6]:
        out.extend(line)
    return out