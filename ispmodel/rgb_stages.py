"""RGB-domain stages: demosaic, edge enhancement, colour matrix, tone mapping and colour space conversion.

Each stage reads ``frame_width * frame_height`` samples in raster order and
returns the samples it would emit. RGB words hold three 12-bit fields
(``r << 24 | g << 12 | b``). Wide RGB words hold three 14-bit fields
(``r << 28 | g << 14 | b``). YUV words hold three 10-bit fields
(``y << 20 | u << 10 | v``).
"""

from __future__ import annotations

from typing import Iterable, Iterator, Sequence

from ispmodel.fixedpoint import clip, wrap_signed, wrap_unsigned
from ispmodel.raw_filters import _slide
from ispmodel.raw_stages import PIXEL_MAX, _frame
from ispmodel.registers import (
    CmcRegister,
    CscRegister,
    DemosaicRegister,
    EeRegister,
    GtmRegister,
    TopRegister,
    bayer_channel,
)

RGB_BITS = 36
WIDE_RGB_BITS = 42
WIDE_FIELD_BITS = 14
WIDE_FIELD_MAX = (1 << WIDE_FIELD_BITS) - 1

CMC_SHIFT = 10
CMC_HALF_VALUE = 1 << (CMC_SHIFT - 1)
CMC_MAX_VALUE = (1 << 14) - 1
CMC_GAIN_COUNT = 12
CSC_COEFF_COUNT = 12
GTM_MIN_TABLE = 129
YUV_MAX = (1 << 10) - 1

_WINDOW = 5
_GAUSS_5X5 = (
    (1, 2, 4, 2, 1),
    (2, 4, 8, 4, 2),
    (4, 8, 16, 8, 4),
    (2, 4, 8, 4, 2),
    (1, 2, 4, 2, 1),
)


def _words(top: TopRegister, src: Iterable[int], bits: int) -> Iterator[tuple[int, int, int]]:
    """Yield ``(row, col, word)`` for one frame of ``bits``-wide words."""
    samples = iter(src)
    for row in range(top.frame_height):
        for col in range(top.frame_width):
            try:
                value = next(samples)
            except StopIteration:
                raise ValueError(
                    f"input ended before the {top.frame_width}x{top.frame_height} frame was complete"
                ) from None
            yield row, col, wrap_unsigned(value, bits)


def _tdiv(value: int, divisor: int) -> int:
    """Integer division truncating toward zero."""
    quotient = abs(value) // divisor
    return quotient if value >= 0 else -quotient


def _check_window(window: Sequence[Sequence[int]]) -> None:
    if len(window) != _WINDOW or any(len(row) != _WINDOW for row in window):
        raise ValueError(f"expected a {_WINDOW}x{_WINDOW} window")


def _pack_rgb(r: int, g: int, b: int) -> int:
    return (r << 24) | (g << 12) | b


def _unpack_rgb(word: int) -> tuple[int, int, int]:
    return (word >> 24) & 0xFFF, (word >> 12) & 0xFFF, word & 0xFFF


def _pack_wide(r: int, g: int, b: int) -> int:
    return (r << 28) | (g << 14) | b


def _unpack_wide(word: int) -> tuple[int, int, int]:
    return (word >> 28) & WIDE_FIELD_MAX, (word >> 14) & WIDE_FIELD_MAX, word & WIDE_FIELD_MAX


def demosaic_interpolate(window: Sequence[Sequence[int]], pattern: int) -> tuple[int, int, int]:
    """Interpolate ``(r, g, b)`` at the centre of a 5x5 Bayer window of the given channel."""
    _check_window(window)
    w = [[wrap_unsigned(v, 12) for v in row] for row in window]
    centre = w[2][2]
    far_cross = w[0][2] + w[2][0] + w[4][2] + w[2][4]
    near_cross = w[3][2] + w[2][3] + w[1][2] + w[2][1]
    diagonal = w[1][1] + w[1][3] + w[3][1] + w[3][3]
    row_pair = w[2][0] + w[2][4]
    col_pair = w[0][2] + w[4][2]

    def finish(value: int) -> int:
        return clip(_tdiv(wrap_signed(value, 18), 8), 0, PIXEL_MAX)

    green = finish(4 * centre - far_cross + 2 * near_cross)
    opposite = finish(6 * centre - (3 * far_cross) // 2 + 2 * diagonal)
    along_row = finish(5 * centre - diagonal - row_pair + col_pair // 2 + 4 * (w[2][1] + w[2][3]))
    along_col = finish(5 * centre - diagonal - col_pair + row_pair // 2 + 4 * (w[1][2] + w[3][2]))

    pattern &= 3
    if pattern == 0:
        return centre, green, opposite
    if pattern == 1:
        return along_row, centre, along_col
    if pattern == 2:
        return along_col, centre, along_row
    return opposite, green, centre


def demosaic(top: TopRegister, reg: DemosaicRegister, src: Iterable[int]) -> list[int]:
    """Turn the Bayer frame into packed RGB words.

    The output is delayed by two lines and two pixels and padded with zeros, so
    output sample ``i`` corresponds to input pixel ``i``.
    """
    width = top.frame_width
    window = [[0] * _WINDOW for _ in range(_WINDOW)]
    lines = [[0] * width for _ in range(_WINDOW - 1)]
    out = []
    for row, col, value in _frame(top, src):
        if reg.enable:
            _slide(window, lines, col, value)
            if row > 3 and col > 3:
                pattern = bayer_channel(row, col, top.img_pattern)
                result = _pack_rgb(*demosaic_interpolate(window, pattern))
            else:
                result = 0
        else:
            # Left shifts keep the 12-bit operand width, so only the low field survives.
            result = value
        if row > 2 or (row == 2 and col > 1):
            out.append(result)
    out.extend([0] * (2 * width + 2))
    return out


def _shrink(value: int, threshold: int) -> int:
    if value > threshold:
        return value - threshold
    if value < -threshold:
        return value + threshold
    return value


def _smooth(values: Sequence[int], threshold: int) -> int:
    """One Haar level over five samples, keeping the centre part."""
    total = 0
    for a, b in ((values[1], values[2]), (values[2], values[3])):
        low = _tdiv(a, 2) + _tdiv(b, 2)
        high = _shrink(_tdiv(a, 2) - _tdiv(b, 2), threshold)
        total += _tdiv(low, 2) + _tdiv(high, 2)
    return clip(wrap_signed(total, 15), 0, PIXEL_MAX)


def ee_process(block: Sequence[Sequence[int]], reg: EeRegister) -> int:
    """Edge-enhanced RGB word for the centre of a 5x5 window; only green is sharpened."""
    _check_window(block)
    coeff = wrap_unsigned(reg.coeff, 6)
    channels = [[_unpack_rgb(wrap_unsigned(v, RGB_BITS)) for v in row] for row in block]
    green = [[pixel[1] for pixel in row] for row in channels]

    weighted = sum(g * p for g_row, p_row in zip(_GAUSS_5X5, green) for g, p in zip(g_row, p_row))
    threshold = wrap_signed(weighted, 23) >> 12

    columns = [_smooth([green[l][k] for l in range(_WINDOW)], threshold) for k in range(_WINDOW)]
    low = _smooth(columns, threshold)

    red, centre_green, blue = channels[2][2]
    sharpened = wrap_signed(((centre_green >> 6) - (low >> 6)) * coeff + centre_green, 22)
    return _pack_rgb(red, clip(sharpened, 0, PIXEL_MAX), blue)


def ee(top: TopRegister, reg: EeRegister, src: Iterable[int]) -> list[int]:
    """Edge enhancement over a 5x5 window of RGB words."""
    if not reg.enable:
        return [value for _, _, value in _words(top, src, RGB_BITS)]

    width = top.frame_width
    if width < 2:
        raise ValueError(f"edge enhancement needs a frame at least 2 pixels wide, got {width}")
    window = [[0] * _WINDOW for _ in range(_WINDOW)]
    lines = [[0] * width for _ in range(_WINDOW - 1)]
    out = []
    for row, col, value in _words(top, src, RGB_BITS):
        _slide(window, lines, col, value)
        result = ee_process(window, reg) if row > 3 and col > 3 else window[2][2]
        if row > 2 or (row == 2 and col >= 2):
            out.append(result)
    out.extend(lines[1][width - 2:])
    out.extend(lines[2])
    out.extend(lines[3])
    return out


def _cfc_gains(gains: Sequence[int], ratio: int) -> list[int]:
    # The diagonal boost (ratio << 6) keeps the 6-bit width of ratio and vanishes,
    # so every matrix entry is attenuated the same way; offsets are untouched.
    return [
        gain if i in (3, 7, 11) else wrap_signed(gain - ((gain * ratio) >> 6), 16)
        for i, gain in enumerate(gains)
    ]


def cmc(top: TopRegister, reg: CmcRegister, src: Iterable[int], gains: Sequence[int]) -> list[int]:
    """Colour matrix correction from 12-bit RGB words to 14-bit wide RGB words."""
    gains = [wrap_signed(g, 16) for g in gains]
    if len(gains) != CMC_GAIN_COUNT:
        raise ValueError(f"expected {CMC_GAIN_COUNT} matrix gains, got {len(gains)}")
    blc = wrap_unsigned(top.blc, 9)
    ratio = wrap_unsigned(reg.cfc_strength, 5) if reg.cfc_enable else 0
    matrix = _cfc_gains(gains, ratio)
    hue_offset = 0 if reg.discard_h else 3
    blc_offset = wrap_unsigned(blc << 2, 9) | 3

    out = []
    for _, _, word in _words(top, src, RGB_BITS):
        channels = _unpack_rgb(word)
        if reg.enable:
            red, green, blue = (wrap_signed(c - blc, 13) for c in channels)
            result = []
            for k in range(3):
                r_gain, g_gain, b_gain, offset = matrix[4 * k:4 * k + 4]
                acc = wrap_signed(red * r_gain + green * g_gain + blue * b_gain + CMC_HALF_VALUE, 31)
                value = wrap_signed((acc >> CMC_SHIFT) + hue_offset + blc_offset + offset, 21)
                result.append(clip(value, 0, CMC_MAX_VALUE))
        else:
            result = [(c << 2) + 3 for c in channels]
        out.append(_pack_wide(*result))
    return out


def gtm(top: TopRegister, reg: GtmRegister, src: Iterable[int], table: Sequence[int]) -> list[int]:
    """Global tone mapping through a 129-point curve with optional error-diffusion dithering."""
    table = [wrap_unsigned(v, 10) for v in table]
    if len(table) < GTM_MIN_TABLE:
        raise ValueError(f"tone curve needs at least {GTM_MIN_TABLE} points, got {len(table)}")
    seeds = [8] * 6
    out = []
    for row, _, word in _words(top, src, WIDE_RGB_BITS):
        if not reg.enable:
            out.append(word)
            continue
        parity = row & 1
        result = []
        for k, value in enumerate(_unpack_wide(word)):
            index = value >> 7
            offset = value & 0x7F
            start = table[index] * 16 + 15 if table[index] else 0
            end = table[index + 1] * 16 + 15 if table[index + 1] else 1
            slope = wrap_signed(end - start, 15)
            if index == 127:
                step = (slope * offset * 129 + 2048) >> 12
            else:
                step = (slope * offset + 16) >> 5
            step = wrap_signed(step, 17)
            if reg.dithering_enable:
                slot = parity * 3 + k
                dithered = wrap_signed(start * 4 + step + seeds[slot], 18)
                seeds[slot] = dithered & 0x1F
                mapped = wrap_signed(dithered >> 2, 16)
            else:
                mapped = wrap_signed(start + ((step + 2) >> 2), 16)
            result.append(clip(mapped, 0, WIDE_FIELD_MAX))
        out.append(_pack_wide(*result))
    return out


def csc(top: TopRegister, reg: CscRegister, src: Iterable[int], coeff: Sequence[int]) -> list[int]:
    """Dither wide RGB down to 10 bits and convert it to YUV with a 3x4 matrix (1.0 = 1024)."""
    coeff = [wrap_signed(c, 11) for c in coeff]
    if len(coeff) != CSC_COEFF_COUNT:
        raise ValueError(f"expected {CSC_COEFF_COUNT} conversion coefficients, got {len(coeff)}")
    seeds = [4] * 6
    out = []
    for row, _, word in _words(top, src, WIDE_RGB_BITS):
        parity = row & 1
        reduced = []
        for k, value in enumerate(_unpack_wide(word)):
            slot = parity * 3 + k
            dithered = (value >> 2) + seeds[slot]
            seeds[slot] = dithered & 0xF
            reduced.append(min(dithered >> 2, YUV_MAX))
        if reg.enable:
            result = []
            for k in range(3):
                weights = coeff[4 * k:4 * k + 3]
                acc = wrap_signed(sum(r * c for r, c in zip(reduced, weights)), 23)
                value = wrap_signed(((acc + 512) >> 10) + coeff[4 * k + 3], 13)
                result.append(clip(value, 0, YUV_MAX))
        else:
            result = reduced
        out.append((result[0] << 20) | (result[1] << 10) | result[2])
    return out