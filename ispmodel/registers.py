"""Register sets of the image pipeline and their packed 64-bit word layout."""

from __future__ import annotations

from dataclasses import dataclass, field as dc_field
from typing import Iterable

from ispmodel.fixedpoint import field, with_field, wrap_signed

CONFIG_WORDS = 266
LSC_TABLE_SIZE = 224
GTM_TABLE_SIZE = 132
CMC_GAIN_SIZE = 12
CSC_COEFF_SIZE = 12

_WORD_MASK = (1 << 64) - 1


@dataclass
class TopRegister:
    frame_width: int = 0
    frame_height: int = 0
    input_format: int = 0
    img_pattern: int = 0
    pipe_mode: int = 0
    blc: int = 0
    shadow_eb: bool = False
    binning_frame_width: int = 0
    binning_frame_height: int = 0
    scaler_frame_width: int = 0
    scaler_frame_height: int = 0


@dataclass
class TpgRegister:
    enable: bool = False
    width: int = 0
    height: int = 0
    sensor_timing_en: bool = False
    vblank_num: int = 0
    hblank_num: int = 0
    valid_blank: int = 0
    id: int = 0
    cfa_pattern: int = 0
    rolling_enable: bool = False


@dataclass
class DgainRegister:
    enable: bool = False
    blc_r: int = 0
    blc_gr: int = 0
    blc_gb: int = 0
    blc_b: int = 0
    r: int = 0
    gr: int = 0
    gb: int = 0
    b: int = 0


@dataclass
class LscRegister:
    enable: bool = False
    block_height: int = 0
    block_width: int = 0
    block_width_inv: int = 0
    block_height_inv: int = 0


@dataclass
class DpcRegister:
    enable: bool = False
    th_w: int = 0
    th_b: int = 0


@dataclass
class RawdnsRegister:
    enable: bool = False
    sigma: int = 0
    filter_para: int = 0


@dataclass
class AwbRegister:
    enable: bool = False
    coeff: int = 0


@dataclass
class WbcRegister:
    enable: bool = False
    r: int = 0
    gr: int = 0
    gb: int = 0
    b: int = 0


@dataclass
class GbRegister:
    enable: bool = False
    win_size: int = 0
    lbound: int = 0
    hbound: int = 0
    threshold: int = 0


@dataclass
class DemosaicRegister:
    enable: bool = False


@dataclass
class EeRegister:
    enable: bool = False
    coeff: int = 0


@dataclass
class CmcRegister:
    enable: bool = False
    cfc_enable: bool = False
    discard_h: bool = False
    hue_range_low: int = 0
    hue_range_high: int = 0
    hue_band_shift: int = 0
    edge_thre: int = 0
    edge_band_shift: int = 0
    cfc_strength: int = 0


@dataclass
class GtmRegister:
    enable: bool = False
    dithering_enable: bool = False


@dataclass
class CscRegister:
    enable: bool = False


@dataclass
class YfcRegister:
    enable: bool = False
    yuvpattern: int = 0  # 0: yuv422, 1: yuv420


@dataclass
class YuvdnsRegister:
    enable: bool = False
    ysigma2: int = 0
    yinvsigma2: int = 0
    uvsigma2: int = 0
    uvinvsigma2: int = 0
    yfilt: int = 0
    uvfilt: int = 0
    yinvfilt: int = 0
    uvinvfilt: int = 0
    y_h2: int = 0
    y_inv_h2: int = 0
    uv_h2: int = 0
    uv_inv_h2: int = 0


@dataclass
class ScaleRegister:
    enable: bool = False
    yuvpattern: int = 0  # 0: yuv444, 1: yuv422, 2: yuv420
    times: int = 0


@dataclass
class CropRegister:
    enable: bool = False
    upper_left_x: int = 0
    upper_left_y: int = 0
    lower_right_x: int = 0
    lower_right_y: int = 0
    yuvpattern: int = 0  # 0: yuv444, 1: yuv422, 2: yuv420


def _zeros(count: int):
    return lambda: [0] * count


@dataclass
class IspConfig:
    """Every register set and lookup table the pipeline is configured with."""

    top: TopRegister = dc_field(default_factory=TopRegister)
    tpg: TpgRegister = dc_field(default_factory=TpgRegister)
    dgain: DgainRegister = dc_field(default_factory=DgainRegister)
    lsc: LscRegister = dc_field(default_factory=LscRegister)
    dpc: DpcRegister = dc_field(default_factory=DpcRegister)
    rawdns: RawdnsRegister = dc_field(default_factory=RawdnsRegister)
    awb: AwbRegister = dc_field(default_factory=AwbRegister)
    wbc: WbcRegister = dc_field(default_factory=WbcRegister)
    gb: GbRegister = dc_field(default_factory=GbRegister)
    demosaic: DemosaicRegister = dc_field(default_factory=DemosaicRegister)
    ee: EeRegister = dc_field(default_factory=EeRegister)
    cmc: CmcRegister = dc_field(default_factory=CmcRegister)
    gtm: GtmRegister = dc_field(default_factory=GtmRegister)
    csc: CscRegister = dc_field(default_factory=CscRegister)
    yfc: YfcRegister = dc_field(default_factory=YfcRegister)
    yuvdns: YuvdnsRegister = dc_field(default_factory=YuvdnsRegister)
    scale: ScaleRegister = dc_field(default_factory=ScaleRegister)
    crop: CropRegister = dc_field(default_factory=CropRegister)
    r_gain: list[int] = dc_field(default_factory=_zeros(LSC_TABLE_SIZE))
    gr_gain: list[int] = dc_field(default_factory=_zeros(LSC_TABLE_SIZE))
    gb_gain: list[int] = dc_field(default_factory=_zeros(LSC_TABLE_SIZE))
    b_gain: list[int] = dc_field(default_factory=_zeros(LSC_TABLE_SIZE))
    cmc_gain: list[int] = dc_field(default_factory=_zeros(CMC_GAIN_SIZE))
    gtm_table: list[int] = dc_field(default_factory=_zeros(GTM_TABLE_SIZE))
    csc_coeff: list[int] = dc_field(default_factory=_zeros(CSC_COEFF_SIZE))


def bayer_channel(row: int, col: int, pattern: int) -> int:
    """Bayer channel (0: R, 1: Gr, 2: Gb, 3: B) of a pixel for a CFA pattern."""
    return (((row & 1) << 1) | (col & 1)) ^ (pattern & 3)


# (word index, high bit, low bit, register attribute, field name)
_REGISTER_LAYOUT = (
    (252, 12, 0, "top", "frame_width"),
    (252, 25, 13, "top", "frame_height"),
    (252, 26, 26, "top", "input_format"),
    (252, 28, 27, "top", "img_pattern"),
    (252, 30, 29, "top", "pipe_mode"),
    (252, 39, 31, "top", "blc"),
    (252, 40, 40, "top", "shadow_eb"),
    (252, 53, 41, "top", "binning_frame_width"),
    (253, 12, 0, "top", "binning_frame_height"),
    (253, 25, 13, "top", "scaler_frame_width"),
    (253, 38, 26, "top", "scaler_frame_height"),
    (253, 39, 39, "demosaic", "enable"),
    (253, 40, 40, "gtm", "enable"),
    (253, 41, 41, "gtm", "dithering_enable"),
    (253, 42, 42, "csc", "enable"),
    (253, 43, 43, "awb", "enable"),
    (253, 49, 44, "awb", "coeff"),
    (254, 0, 0, "tpg", "enable"),
    (254, 13, 1, "tpg", "width"),
    (254, 26, 14, "tpg", "height"),
    (254, 27, 27, "tpg", "sensor_timing_en"),
    (254, 39, 28, "tpg", "vblank_num"),
    (254, 51, 40, "tpg", "hblank_num"),
    (254, 59, 52, "tpg", "valid_blank"),
    (254, 63, 60, "tpg", "id"),
    (255, 1, 0, "tpg", "cfa_pattern"),
    (255, 2, 2, "tpg", "rolling_enable"),
    (255, 3, 3, "wbc", "enable"),
    (255, 18, 4, "wbc", "r"),
    (255, 33, 19, "wbc", "gr"),
    (255, 48, 34, "wbc", "gb"),
    (255, 63, 49, "wbc", "b"),
    (256, 0, 0, "dgain", "enable"),
    (256, 9, 1, "dgain", "blc_r"),
    (256, 18, 10, "dgain", "blc_gr"),
    (256, 27, 19, "dgain", "blc_gb"),
    (256, 36, 28, "dgain", "blc_b"),
    (256, 56, 37, "dgain", "r"),
    (257, 19, 0, "dgain", "gr"),
    (257, 39, 20, "dgain", "gb"),
    (257, 59, 40, "dgain", "b"),
    (258, 0, 0, "cmc", "enable"),
    (258, 1, 1, "cmc", "cfc_enable"),
    (258, 2, 2, "cmc", "discard_h"),
    (258, 11, 3, "cmc", "hue_range_low"),
    (258, 20, 12, "cmc", "hue_range_high"),
    (258, 23, 21, "cmc", "hue_band_shift"),
    (258, 31, 24, "cmc", "edge_thre"),
    (258, 34, 32, "cmc", "edge_band_shift"),
    (258, 39, 35, "cmc", "cfc_strength"),
    (258, 40, 40, "rawdns", "enable"),
    (258, 46, 41, "rawdns", "sigma"),
    (258, 53, 47, "rawdns", "filter_para"),
    (259, 0, 0, "lsc", "enable"),
    (259, 9, 1, "lsc", "block_height"),
    (259, 18, 10, "lsc", "block_width"),
    (259, 32, 19, "lsc", "block_width_inv"),
    (259, 42, 33, "lsc", "block_height_inv"),
    (259, 43, 43, "yfc", "enable"),
    (259, 44, 44, "yfc", "yuvpattern"),
    (260, 0, 0, "crop", "enable"),
    (260, 13, 1, "crop", "upper_left_x"),
    (260, 26, 14, "crop", "upper_left_y"),
    (260, 39, 27, "crop", "lower_right_x"),
    (260, 52, 40, "crop", "lower_right_y"),
    (261, 0, 0, "gb", "enable"),
    (261, 4, 1, "gb", "win_size"),
    (261, 8, 5, "gb", "lbound"),
    (261, 14, 9, "gb", "hbound"),
    (261, 24, 15, "gb", "threshold"),
    (261, 25, 25, "ee", "enable"),
    (261, 31, 26, "ee", "coeff"),
    (261, 32, 32, "dpc", "enable"),
    (261, 43, 33, "dpc", "th_w"),
    (261, 54, 44, "dpc", "th_b"),
    (261, 55, 55, "scale", "enable"),
    (261, 57, 56, "scale", "yuvpattern"),
    (261, 62, 58, "scale", "times"),
    (262, 0, 0, "yuvdns", "enable"),
    (262, 14, 1, "yuvdns", "ysigma2"),
    (262, 24, 15, "yuvdns", "yinvsigma2"),
    (262, 38, 25, "yuvdns", "uvsigma2"),
    (262, 48, 39, "yuvdns", "uvinvsigma2"),
    (262, 52, 49, "yuvdns", "yfilt"),
    (262, 56, 53, "yuvdns", "uvfilt"),
    (263, 4, 0, "yuvdns", "yinvfilt"),
    (263, 9, 5, "yuvdns", "uvinvfilt"),
    (263, 23, 10, "yuvdns", "y_h2"),
    (263, 41, 24, "yuvdns", "y_inv_h2"),
    (264, 13, 0, "yuvdns", "uv_h2"),
    (264, 31, 14, "yuvdns", "uv_inv_h2"),
)

# (table attribute, first word, entries per word, entry width in bits)
_TABLE_LAYOUT = (
    ("r_gain", 0, 4, 13),
    ("gr_gain", 56, 4, 13),
    ("gb_gain", 112, 4, 13),
    ("b_gain", 168, 4, 13),
    ("gtm_table", 224, 6, 10),
    ("cmc_gain", 246, 4, 16),
    ("csc_coeff", 249, 4, 16),
)

_TABLE_SIZES = {
    "r_gain": LSC_TABLE_SIZE,
    "gr_gain": LSC_TABLE_SIZE,
    "gb_gain": LSC_TABLE_SIZE,
    "b_gain": LSC_TABLE_SIZE,
    "gtm_table": GTM_TABLE_SIZE,
    "cmc_gain": CMC_GAIN_SIZE,
    "csc_coeff": CSC_COEFF_SIZE,
}


def _unpack_table(words: list[int], start: int, per_word: int, width: int, size: int) -> list[int]:
    return [
        field(words[start + i // per_word], (i % per_word) * width + width - 1, (i % per_word) * width)
        for i in range(size)
    ]


def unpack_config(words: Iterable[int]) -> IspConfig:
    """Decode the 266 configuration words into an :class:`IspConfig`."""
    words = [int(word) & _WORD_MASK for word in words]
    if len(words) != CONFIG_WORDS:
        raise ValueError(f"expected {CONFIG_WORDS} configuration words, got {len(words)}")

    config = IspConfig()
    for index, high, low, reg_name, name in _REGISTER_LAYOUT:
        register = getattr(config, reg_name)
        value = field(words[index], high, low)
        current = getattr(register, name)
        setattr(register, name, bool(value) if isinstance(current, bool) else value)
    # The crop stage shares its YUV layout bits with the scaler.
    config.crop.yuvpattern = config.scale.yuvpattern

    for name, start, per_word, width in _TABLE_LAYOUT:
        setattr(config, name, _unpack_table(words, start, per_word, width, _TABLE_SIZES[name]))
    config.cmc_gain = [wrap_signed(value, 16) for value in config.cmc_gain]
    config.csc_coeff = [wrap_signed(value, 11) for value in config.csc_coeff]
    return config


def pack_config(config: IspConfig) -> list[int]:
    """Encode an :class:`IspConfig` into the 266 configuration words."""
    words = [0] * CONFIG_WORDS
    for index, high, low, reg_name, name in _REGISTER_LAYOUT:
        value = getattr(getattr(config, reg_name), name)
        words[index] = with_field(words[index], high, low, int(value))

    for name, start, per_word, width in _TABLE_LAYOUT:
        values = list(getattr(config, name))
        if len(values) != _TABLE_SIZES[name]:
            raise ValueError(f"{name} must hold {_TABLE_SIZES[name]} entries, got {len(values)}")
        for i, value in enumerate(values):
            index = start + i // per_word
            low = (i % per_word) * width
            words[index] = with_field(words[index], low + width - 1, low, value)
    return words