"""YUV-domain stages: format conversion, non-local-means denoise, scaler and crop.

The format converter takes packed YUV words (``y << 20 | u << 10 | v``) and
splits them into three planes. Every later stage works on separate Y, U and V
sample streams of 10-bit values and returns the three streams it would emit.
"""

from __future__ import annotations

from typing import Callable, Iterable, Sequence

from ispmodel.fixedpoint import wrap_unsigned
from ispmodel.raw_filters import _slide
from ispmodel.registers import CropRegister, ScaleRegister, TopRegister, YfcRegister, YuvdnsRegister
from ispmodel.rgb_stages import _words

YUV_BITS = 10
YUV_MAX = (1 << YUV_BITS) - 1
YUV_WORD_BITS = 30
NLM_WINDOW = 9

_NEAR_WEIGHTS = (255, 226, 200, 176, 156, 138, 122, 108)
_FAR_WEIGHTS = (88, 72, 59, 48, 39, 32, 26, 21, 17, 14, 11, 9, 7, 5, 2, 0)

Planes = tuple[list[int], list[int], list[int]]


def _reader(src: Iterable[int], label: str) -> Callable[[], int]:
    """Return a function reading the next 10-bit sample from ``src``."""
    samples = iter(src)

    def read() -> int:
        try:
            return wrap_unsigned(next(samples), YUV_BITS)
        except StopIteration:
            raise ValueError(f"{label} stream ended before the frame was complete") from None

    return read


def _unpack_yuv(word: int) -> tuple[int, int, int]:
    return (word >> 20) & YUV_MAX, (word >> 10) & YUV_MAX, word & YUV_MAX


def yfc(top: TopRegister, reg: YfcRegister, src: Iterable[int]) -> Planes:
    """Split packed YUV words into planes, subsampling chroma to 4:2:2 or 4:2:0 when enabled."""
    width = top.frame_width
    ys: list[int] = []
    us: list[int] = []
    vs: list[int] = []
    u_line = [0] * width
    v_line = [0] * width
    u_acc = v_acc = 0
    for row, col, word in _words(top, src, YUV_WORD_BITS):
        y, u, v = _unpack_yuv(word)
        if not reg.enable:
            ys.append(y)
            us.append(u)
            vs.append(v)
            continue

        ys.append(y)
        if not reg.yuvpattern:
            if col & 1 == 0:
                u_acc, v_acc = u, v
            else:
                u_acc = wrap_unsigned(u_acc + u, 11)
                v_acc = wrap_unsigned(v_acc + v, 11)
                us.append(u_acc >> 1)
                vs.append(v_acc >> 1)
        elif row & 1 == 0:
            u_line[col] = u
            v_line[col] = v
        elif col & 1 == 0:
            u_acc = wrap_unsigned(u + u_line[col], 12)
            v_acc = wrap_unsigned(v + v_line[col], 12)
        else:
            u_acc = wrap_unsigned(u_acc + u + u_line[col], 12)
            v_acc = wrap_unsigned(v_acc + v + v_line[col], 12)
            us.append(u_acc >> 2)
            vs.append(v_acc >> 2)
    return ys, us, vs


def _nlm_weight(diff: int, h2: int, inv_h2: int) -> int:
    if h2 == 0:
        return 0
    if diff <= h2:
        count = wrap_unsigned((wrap_unsigned(7 * diff, 28) * inv_h2) >> 14, 32)
        return _NEAR_WEIGHTS[min(count, len(_NEAR_WEIGHTS) - 1)]
    count = wrap_unsigned((wrap_unsigned(5 * diff, 28) * inv_h2) >> 14, 32)
    # Counts below five wrap around and land on the last (zero) weight.
    count = min(wrap_unsigned(count - 5, 32), len(_FAR_WEIGHTS) - 1)
    return _FAR_WEIGHTS[count]


def nlm_filter(window: Sequence[Sequence[int]], sigma2: int, h2: int, inv_h2: int) -> int:
    """Non-local-means value of the centre of a 9x9 window using 3x3 patches."""
    if len(window) != NLM_WINDOW or any(len(row) != NLM_WINDOW for row in window):
        raise ValueError(f"expected a {NLM_WINDOW}x{NLM_WINDOW} window")
    w = [[wrap_unsigned(v, YUV_BITS) for v in row] for row in window]
    sigma2 = wrap_unsigned(sigma2, 14)
    h2 = wrap_unsigned(h2, 14)
    inv_h2 = wrap_unsigned(inv_h2, 18)
    centre = NLM_WINDOW // 2

    total_weight = total_value = max_weight = 0
    for j in range(1, NLM_WINDOW - 1):
        for i in range(1, NLM_WINDOW - 1):
            if i == centre and j == centre:
                continue
            distance = sum(
                (w[j + dy][i + dx] - w[centre + dy][centre + dx]) ** 2
                for dy in (-1, 0, 1)
                for dx in (-1, 0, 1)
            )
            diff = wrap_unsigned(distance >> 3, 21)
            diff = 0 if diff < 2 * sigma2 else wrap_unsigned(diff - 2 * sigma2, 21)
            weight = _nlm_weight(diff, h2, inv_h2)
            max_weight = max(max_weight, weight)
            total_weight = wrap_unsigned(total_weight + weight, 14)
            total_value = wrap_unsigned(total_value + w[j][i] * weight, 25)

    total_weight = wrap_unsigned(total_weight + max_weight, 14)
    total_value = wrap_unsigned(total_value + w[centre][centre] * max_weight, 25)
    if total_weight == 0:
        return w[centre][centre]
    return min(wrap_unsigned(total_value // total_weight, YUV_BITS), YUV_MAX)


def yuvdns(
    top: TopRegister,
    reg: YuvdnsRegister,
    y: Iterable[int],
    u: Iterable[int],
    v: Iterable[int],
) -> Planes:
    """Denoise the three planes of a 4:4:4 frame with a 9x9 non-local-means filter.

    Output is delayed by four lines and four pixels; the tail is flushed from
    the window and line buffers exactly as the hardware does, including its
    flush of the chroma window into the luma stream.
    """
    width = top.frame_width
    readers = (_reader(y, "Y"), _reader(u, "U"), _reader(v, "V"))
    windows = [[[0] * NLM_WINDOW for _ in range(NLM_WINDOW)] for _ in range(3)]
    lines = [[[0] * width for _ in range(NLM_WINDOW - 1)] for _ in range(3)]
    params = (
        (reg.ysigma2, reg.y_h2, reg.y_inv_h2),
        (reg.uvsigma2, reg.uv_h2, reg.uv_inv_h2),
        (reg.uvsigma2, reg.uv_h2, reg.uv_inv_h2),
    )
    outs: Planes = ([], [], [])
    last = [0, 0, 0]

    for row in range(top.frame_height):
        for col in range(width):
            samples = [read() for read in readers]
            if reg.enable:
                for window, plane_lines, sample in zip(windows, lines, samples):
                    _slide(window, plane_lines, col, sample)
                if row > 7 and col > 7:
                    last = [nlm_filter(window, *p) for window, p in zip(windows, params)]
                else:
                    last = [window[4][4] for window in windows]
            else:
                last = samples
            if row > 4 or (row == 4 and col > 3):
                for out, value in zip(outs, last):
                    out.append(value)

    for i in range(5, NLM_WINDOW):
        outs[0].append(windows[1][4][i])
        outs[1].append(last[1])
        outs[2].append(windows[2][4][i])
    for k in range(4, NLM_WINDOW - 1):
        for out, plane_lines in zip(outs, lines):
            out.extend(plane_lines[k])
    return outs


def scale(
    top: TopRegister,
    reg: ScaleRegister,
    y: Iterable[int],
    u: Iterable[int],
    v: Iterable[int],
) -> Planes:
    """Halve a 4:4:4 frame in both directions by 2x2 averaging when enabled."""
    width = top.frame_width
    readers = (_reader(y, "Y"), _reader(u, "U"), _reader(v, "V"))
    averaging = (
        bool(reg.enable)
        and wrap_unsigned(reg.yuvpattern, 2) == 0
        and wrap_unsigned(reg.times, 5) == 2
    )
    lines = [[0] * width for _ in range(3)]
    acc = [0, 0, 0]
    outs: Planes = ([], [], [])

    for row in range(top.frame_height):
        for col in range(width):
            samples = [read() for read in readers]
            if not reg.enable:
                for out, value in zip(outs, samples):
                    out.append(value)
                continue
            if not averaging:
                continue
            for k, value in enumerate(samples):
                if row & 1 == 0:
                    lines[k][col] = value
                elif col & 1 == 0:
                    acc[k] = wrap_unsigned(value + lines[k][col], 15)
                else:
                    acc[k] = wrap_unsigned(acc[k] + value + lines[k][col], 15)
                    outs[k].append(wrap_unsigned(acc[k] >> 2, YUV_BITS))
    return outs


def crop(
    top: TopRegister,
    reg: CropRegister,
    y: Iterable[int],
    u: Iterable[int],
    v: Iterable[int],
) -> Planes:
    """Keep the pixels inside the crop rectangle for 4:4:4, 4:2:2 or 4:2:0 input."""
    read_y, read_u, read_v = _reader(y, "Y"), _reader(u, "U"), _reader(v, "V")
    pattern = wrap_unsigned(reg.yuvpattern, 2)
    left = wrap_unsigned(reg.upper_left_x, 13)
    upper = wrap_unsigned(reg.upper_left_y, 13)
    right = wrap_unsigned(reg.lower_right_x, 13)
    lower = wrap_unsigned(reg.lower_right_y, 13)
    ys: list[int] = []
    us: list[int] = []
    vs: list[int] = []
    u_t = v_t = 0

    for row in range(top.frame_height):
        for col in range(top.frame_width):
            inside = upper <= row < lower and left <= col < right
            if pattern == 0:
                y_t, u_t, v_t = read_y(), read_u(), read_v()
                if not reg.enable or inside:
                    ys.append(y_t)
                    us.append(u_t)
                    vs.append(v_t)
            elif pattern == 1:
                with_chroma = bool(col & 1)
                y_t = read_y()
                if with_chroma:
                    u_t, v_t = read_u(), read_v()
                if not reg.enable or inside:
                    ys.append(y_t)
                    if with_chroma:
                        us.append(u_t)
                        vs.append(v_t)
            elif pattern == 2:
                with_chroma = bool(row & 1) and bool(col & 1)
                y_t = read_y()
                if with_chroma:
                    u_t, v_t = read_u(), read_v()
                if reg.enable:
                    # Inside the window the hardware emits the held chroma with
                    # every luma-only sample and drops the chroma-carrying ones.
                    if inside and not with_chroma:
                        ys.append(y_t)
                        us.append(u_t)
                        vs.append(v_t)
                else:
                    ys.append(y_t)
                    if with_chroma:
                        us.append(u_t)
                        vs.append(v_t)
    return ys, us, vs