"""The complete image pipeline, from raw Bayer samples to packed YUV words."""

from __future__ import annotations

from dataclasses import dataclass
from itertools import islice
from typing import Iterable, Sequence

from ispmodel.fixedpoint import wrap_unsigned
from ispmodel.raw_filters import green_balance, rawdns
from ispmodel.raw_stages import AwbAccumulator, dgain, dpc, lsc, tpg, wbc
from ispmodel.registers import CropRegister, IspConfig, unpack_config
from ispmodel.rgb_stages import cmc, csc, demosaic, ee, gtm
from ispmodel.yuv import crop, scale, yfc, yuvdns

INPUT_BITS = 16
RAW_BITS = 12
OUTPUT_BITS = 32


@dataclass(frozen=True)
class PipelineResult:
    """Packed ``y << 20 | u << 10 | v`` output pixels and the AWB statistics."""

    pixels: list[int]
    awb_gains: tuple[int, int, int]


def _load_frame(config: IspConfig, raw: Iterable[int]) -> list[int]:
    count = config.top.frame_width * config.top.frame_height
    samples = list(islice(iter(raw), count))
    if len(samples) < count:
        raise ValueError(f"expected {count} raw samples, got {len(samples)}")
    return [wrap_unsigned(wrap_unsigned(value, INPUT_BITS), RAW_BITS) for value in samples]


def _store(reg: CropRegister, ys: Sequence[int], us: Sequence[int], vs: Sequence[int]) -> list[int]:
    height = wrap_unsigned(reg.lower_right_y - reg.upper_left_y, 13)
    width = wrap_unsigned(reg.lower_right_x - reg.upper_left_x, 13)
    count = height * width
    for label, plane in (("Y", ys), ("U", us), ("V", vs)):
        if len(plane) < count:
            raise ValueError(
                f"{label} plane holds {len(plane)} samples but the crop window needs {count}"
            )
    return [
        (y << 20) | (u << 10) | v
        for y, u, v in zip(ys[:count], us[:count], vs[:count])
    ]


def run_pipeline(config: IspConfig, raw: Iterable[int]) -> PipelineResult:
    """Run one raw frame through every stage configured by ``config``."""
    top = config.top
    data = _load_frame(config, raw)
    data = tpg(top, config.tpg, data)
    data = dgain(top, config.dgain, data)
    data = lsc(top, config.lsc, data, config.r_gain, config.gr_gain, config.gb_gain, config.b_gain)
    data = dpc(top, config.dpc, data)
    data = rawdns(top, config.rawdns, data)
    statistics = AwbAccumulator(top, config.awb)
    data = statistics.process(data)
    data = wbc(top, config.wbc, data)
    data = green_balance(top, config.gb, data)
    data = demosaic(top, config.demosaic, data)
    data = ee(top, config.ee, data)
    data = cmc(top, config.cmc, data, config.cmc_gain)
    data = gtm(top, config.gtm, data, config.gtm_table)
    data = csc(top, config.csc, data, config.csc_coeff)
    planes = yfc(top, config.yfc, data)
    planes = yuvdns(top, config.yuvdns, *planes)
    planes = scale(top, config.scale, *planes)
    planes = crop(top, config.crop, *planes)
    pixels = _store(config.crop, *planes)
    return PipelineResult(pixels=pixels, awb_gains=statistics.gains())


def isp_top(raw: Iterable[int], words: Iterable[int]) -> list[int]:
    """Process a raw frame with a packed configuration; return the output buffer.

    The buffer holds the cropped pixels followed by the red, green and blue
    AWB statistics, each as a 32-bit word.
    """
    result = run_pipeline(unpack_config(words), raw)
    return [wrap_unsigned(value, OUTPUT_BITS) for value in [*result.pixels, *result.awb_gains]]