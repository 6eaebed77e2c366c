"""Bayer-domain stages of the pipeline that work on single pixels or small windows.

Each stage reads exactly ``frame_width * frame_height`` 12-bit samples from its
input in raster order and returns the samples it would emit.
"""

from __future__ import annotations

from typing import Iterable, Iterator, Sequence

from ispmodel.fixedpoint import clip, wrap_signed, wrap_unsigned
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

PIXEL_BITS = 12
PIXEL_MAX = (1 << PIXEL_BITS) - 1
GAIN_BITS = 12
GAIN_HALF_VALUE = 1 << (GAIN_BITS - 1)

# Channels lit by each colour bar of the test pattern (0: R, 1: Gr, 2: Gb, 3: B).
_COLOR_CHANNELS = (
    frozenset({0, 1, 2, 3}),  # white
    frozenset(),  # black
    frozenset({0}),  # red
    frozenset({1, 2}),  # green
    frozenset({3}),  # blue
    frozenset({1, 2, 3}),  # cyan
    frozenset({0, 3}),  # magenta
    frozenset({0, 1, 2}),  # yellow
)

# Same-channel neighbours in a 5x5 window around the centre pixel.
_DIAGONAL_RING = ((0, 0), (0, 2), (0, 4), (2, 0), (2, 4), (4, 0), (4, 2), (4, 4))
_CROSS_RING = ((0, 2), (1, 1), (1, 3), (2, 0), (2, 4), (3, 1), (3, 3), (4, 2))

_LT, _RT, _LD, _RD = range(4)
_RELOAD_OFFSETS = (-2, -1, 15, 16)


def _frame(top: TopRegister, src: Iterable[int]) -> Iterator[tuple[int, int, int]]:
    """Yield ``(row, col, sample)`` for one frame read from ``src``."""
    samples = iter(src)
    for row in range(top.frame_height):
        for col in range(top.frame_width):
            try:
                value = next(samples)
            except StopIteration:
                raise ValueError(
                    f"input ended before the {top.frame_width}x{top.frame_height} frame was complete"
                ) from None
            yield row, col, wrap_unsigned(value, PIXEL_BITS)


def _passthrough(top: TopRegister, src: Iterable[int]) -> list[int]:
    return [value for _, _, value in _frame(top, src)]


def color_select(channel: int, block_id: int, reg: TpgRegister) -> int:
    """Test-pattern sample for a Bayer channel inside colour bar ``block_id``."""
    real_id = wrap_unsigned(block_id, 4)
    if reg.rolling_enable:
        real_id = wrap_unsigned(real_id + wrap_unsigned(reg.id, 4), 4)
        if real_id > 7:
            real_id -= 8
    if real_id >= len(_COLOR_CHANNELS):
        return 0
    return PIXEL_MAX if (channel & 3) in _COLOR_CHANNELS[real_id] else 0


def tpg(top: TopRegister, reg: TpgRegister, src: Iterable[int]) -> list[int]:
    """Replace the frame by eight vertical colour bars when the generator is on."""
    if not reg.enable:
        return _passthrough(top, src)

    block_width = (top.frame_width >> 3) & 0x3FE
    out = []
    count = block_id = 0
    for row, col, _ in _frame(top, src):
        if col == 0:
            count = block_id = 0
        if count == block_width:
            count = 0
            block_id = wrap_unsigned(block_id + 1, 4)
        block_id = min(block_id, 7)
        channel = bayer_channel(row, col, top.img_pattern)
        out.append(color_select(channel, block_id, reg))
        count = wrap_unsigned(count + 1, 10)
    return out


def dgain(top: TopRegister, reg: DgainRegister, src: Iterable[int]) -> list[int]:
    """Per-channel black level removal and digital gain (4.12 fixed point)."""
    if not reg.enable:
        return _passthrough(top, src)

    levels = (reg.blc_r, reg.blc_gr, reg.blc_gb, reg.blc_b)
    gains = (reg.r, reg.gr, reg.gb, reg.b)
    out = []
    for row, col, value in _frame(top, src):
        channel = bayer_channel(row, col, top.img_pattern)
        level = wrap_unsigned(levels[channel], 9)
        gain = wrap_unsigned(gains[channel], 20)
        scaled = wrap_signed((value - level) * gain + GAIN_HALF_VALUE, 34)
        result = wrap_signed((scaled >> GAIN_BITS) + wrap_unsigned(top.blc, 9), 22)
        out.append(clip(result, 0, PIXEL_MAX))
    return out


def bilinear_interpolation(
    left_top: int,
    left_down: int,
    right_top: int,
    right_down: int,
    width_count: int,
    height_count: int,
    width_inv: int,
    height_inv: int,
) -> int:
    """Interpolate a shading gain between the four corners of a grid block."""
    lt = wrap_unsigned(left_top, 13)
    ld = wrap_unsigned(left_down, 13)
    rt = wrap_unsigned(right_top, 13)
    rd = wrap_unsigned(right_down, 13)
    wc = wrap_unsigned(width_count, 9)
    hc = wrap_unsigned(height_count, 9)
    w_inv = wrap_unsigned(width_inv, 14)
    h_inv = wrap_unsigned(height_inv, 10)

    upper = wrap_signed(lt - (((lt - rt) * wc * w_inv + 128) >> 19), 14)
    lower = wrap_signed(ld - (((ld - rd) * wc * w_inv + 128) >> 19), 14)
    return wrap_signed(upper - (((upper - lower) * hc * h_inv + 128) >> 15), 14)


def _lookup(table: Sequence[int], index: int) -> int:
    if not 0 <= index < len(table):
        raise IndexError(f"gain table index {index} is outside a table of {len(table)} entries")
    return wrap_unsigned(table[index], 13)


def _advance_block_count(count: int, first: bool, row_end: bool, block_end: bool, near_bottom: bool) -> int:
    if first:
        return 2
    if row_end:
        return wrap_unsigned(count + 2 if near_bottom else count - 15, 9)
    if block_end:
        return wrap_unsigned(count + 1, 9)
    return count


def _shift_block(corners: list[int], next_top: int, next_down: int) -> None:
    corners[_LT] = corners[_RT]
    corners[_LD] = corners[_RD]
    corners[_RT] = next_top
    corners[_RD] = next_down


def _reload(corners: list[list[int]], tables: Sequence[Sequence[int]], base: int, count: int, col: int) -> None:
    step = col - 5
    channel = base + step // 4
    corner = step % 4
    corners[channel][corner] = _lookup(tables[channel], count + _RELOAD_OFFSETS[corner])


def lsc(
    top: TopRegister,
    reg: LscRegister,
    src: Iterable[int],
    r_gain: Sequence[int],
    gr_gain: Sequence[int],
    gb_gain: Sequence[int],
    b_gain: Sequence[int],
) -> list[int]:
    """Lens shading correction from a 17x13 grid of per-channel gains (1.0 = 2048)."""
    if not reg.enable:
        return _passthrough(top, src)

    tables = (r_gain, gr_gain, gb_gain, b_gain)
    corners = [[_lookup(table, i) for i in (0, 1, 17, 18)] for table in tables]
    next_first_top, next_first_down = _lookup(r_gain, 2), _lookup(r_gain, 19)
    next_second_top, next_second_down = _lookup(gr_gain, 2), _lookup(gr_gain, 19)
    count_rgr = count_gbb = 2
    width_count = height_count = 0

    block_width = wrap_unsigned(reg.block_width, 9)
    block_height = wrap_unsigned(reg.block_height, 9)
    width_inv = wrap_unsigned(reg.block_width_inv, 14)
    height_inv = wrap_unsigned(reg.block_height_inv, 10)
    blc = wrap_unsigned(top.blc, 9)
    last_col = top.frame_width - 1

    out = []
    for row, col, value in _frame(top, src):
        channel = bayer_channel(row, col, top.img_pattern)
        blue_line = channel > 1
        signal = wrap_signed(value - blc, 13)
        lt, rt, ld, rd = corners[channel]
        factor = bilinear_interpolation(lt, ld, rt, rd, width_count, height_count, width_inv, height_inv)
        result = wrap_signed(signal * factor, 27)
        result = wrap_signed(((result + 1024) >> 11) + blc, 27)
        out.append(clip(wrap_signed(result, 16), 0, PIXEL_MAX))

        first = row == 0 and col == 0
        at_last = col == last_col
        near_bottom = height_count in (block_height - 1, block_height - 2)
        block_end = width_count == block_width - 1
        count_rgr = _advance_block_count(
            count_rgr, first, at_last and not blue_line, block_end and not blue_line, near_bottom
        )
        count_gbb = _advance_block_count(
            count_gbb, first, at_last and blue_line, block_end and blue_line, near_bottom
        )

        reloading = row != 0 and 5 <= col <= 12
        if block_end and not blue_line:
            _shift_block(corners[0], next_first_top, next_first_down)
            _shift_block(corners[1], next_second_top, next_second_down)
        elif blue_line and reloading:
            _reload(corners, tables, 0, count_rgr, col)

        if block_end and blue_line:
            _shift_block(corners[2], next_first_top, next_first_down)
            _shift_block(corners[3], next_second_top, next_second_down)
        elif not blue_line and reloading:
            _reload(corners, tables, 2, count_gbb, col)

        first_table, second_table = (gb_gain, b_gain) if blue_line else (r_gain, gr_gain)
        count = count_gbb if blue_line else count_rgr
        if width_count == 1:
            next_first_top = _lookup(first_table, count)
        elif width_count == 2:
            next_second_top = _lookup(second_table, count)
        elif width_count == 3:
            next_first_down = _lookup(first_table, count + 17)
        elif width_count == 4:
            next_second_down = _lookup(second_table, count + 17)

        if at_last:
            height_count = 0 if height_count == block_height - 1 else wrap_unsigned(height_count + 1, 9)
        width_count = 0 if block_end or at_last else wrap_unsigned(width_count + 1, 9)
    return out


def median_of_eight(values: Sequence[int]) -> int:
    """Mean of the two middle values of eight samples."""
    if len(values) != 8:
        raise ValueError(f"expected 8 values, got {len(values)}")
    ordered = sorted(wrap_unsigned(v, PIXEL_BITS) for v in values)
    return (ordered[3] + ordered[4]) >> 1


def is_defect_pixel(neighbours: Sequence[int], pixel: int, th_w: int, th_b: int) -> bool:
    """True when every neighbour differs from ``pixel`` beyond a threshold in one direction."""
    if len(neighbours) != 8:
        raise ValueError(f"expected 8 neighbours, got {len(neighbours)}")
    upper = wrap_signed(wrap_unsigned(th_w, 11), 12)
    lower = wrap_signed(-wrap_unsigned(th_b, 11), 12)
    centre = wrap_unsigned(pixel, PIXEL_BITS)
    diffs = [wrap_signed(wrap_unsigned(n, PIXEL_BITS) - centre, 13) for n in neighbours]
    return all(d < lower for d in diffs) or all(d > upper for d in diffs)


def dpc(top: TopRegister, reg: DpcRegister, src: Iterable[int]) -> list[int]:
    """Defect pixel correction over a 5x5 same-channel neighbourhood.

    The output is delayed by two lines and two pixels and padded with zeros, so
    output sample ``i`` corresponds to input pixel ``i``.
    """
    width = top.frame_width
    window = [[0] * 5 for _ in range(5)]
    lines = [[0] * width for _ in range(4)]
    out = []
    for row, col, value in _frame(top, src):
        if reg.enable:
            incoming = [line[col] for line in lines] + [value]
            for window_row, sample in zip(window, incoming):
                window_row.pop(0)
                window_row.append(sample)
            for line, window_row in zip(lines, window[1:]):
                line[col] = window_row[4]

            if row > 3 and col > 3:
                pattern = bayer_channel(row, col, top.img_pattern)
                ring = _DIAGONAL_RING if pattern in (0, 3) else _CROSS_RING
                neighbours = [window[r][c] for r, c in ring]
                centre = window[2][2]
                if is_defect_pixel(neighbours, centre, reg.th_w, reg.th_b):
                    result = median_of_eight(neighbours)
                else:
                    result = centre
            else:
                result = 0
        else:
            result = value
        if row > 2 or (row == 2 and col > 1):
            out.append(result)
    out.extend([0] * (2 * width + 2))
    return out


class AwbAccumulator:
    """Gray-world statistics collected while the frame passes through unchanged."""

    def __init__(self, top: TopRegister, reg: AwbRegister) -> None:
        self.top = top
        self.reg = reg
        self._totals = [0, 0, 0]

    def process(self, src: Iterable[int]) -> list[int]:
        """Pass one frame through, accumulating per-colour sums."""
        self._totals = [0, 0, 0]
        out = []
        for row, col, value in _frame(self.top, src):
            if self.reg.enable:
                channel = bayer_channel(row, col, self.top.img_pattern)
                colour = (0, 1, 1, 2)[channel]
                self._totals[colour] = wrap_unsigned(self._totals[colour] + value, 33)
            out.append(value)
        return out

    def gains(self) -> tuple[int, int, int]:
        """Scaled averages of red, green and blue from the last processed frame."""
        coeff = wrap_unsigned(self.reg.coeff, 6)
        red, green, blue = self._totals
        return (
            wrap_unsigned((red * coeff) >> 19, 12),
            wrap_unsigned((green * coeff) >> 20, 12),
            wrap_unsigned((blue * coeff) >> 19, 12),
        )


def wbc(top: TopRegister, reg: WbcRegister, src: Iterable[int]) -> list[int]:
    """White balance gains per Bayer channel (3.12 fixed point)."""
    if not reg.enable:
        return _passthrough(top, src)

    gains = (reg.r, reg.gr, reg.gb, reg.b)
    blc = wrap_unsigned(top.blc, 9)
    out = []
    for row, col, value in _frame(top, src):
        gain = wrap_unsigned(gains[bayer_channel(row, col, top.img_pattern)], 15)
        result = wrap_signed((((value - blc) * gain + 2048) >> 12) + blc, 16)
        out.append(clip(result, 0, PIXEL_MAX))
    return out