# ispmodel

A bit-accurate Python model of a streaming image signal processor. It takes a
12-bit Bayer raw frame and runs it through a fixed chain of stages, with the
fixed-point widths, rounding steps and clips of each stage modelled exactly:

| Stage | Function | Module |
| --- | --- | --- |
| test pattern generator | `tpg` | `ispmodel.raw_stages` |
| digital gain | `dgain` | `ispmodel.raw_stages` |
| lens shading correction | `lsc` | `ispmodel.raw_stages` |
| defect pixel correction | `dpc` | `ispmodel.raw_stages` |
| raw non-local-means denoise | `rawdns` | `ispmodel.raw_filters` |
| white balance statistics | `AwbAccumulator` | `ispmodel.raw_stages` |
| white balance correction | `wbc` | `ispmodel.raw_stages` |
| green balance | `green_balance` | `ispmodel.raw_filters` |
| demosaic | `demosaic` | `ispmodel.rgb_stages` |
| edge enhancement | `ee` | `ispmodel.rgb_stages` |
| colour matrix correction | `cmc` | `ispmodel.rgb_stages` |
| global tone mapping | `gtm` | `ispmodel.rgb_stages` |
| colour space conversion to YUV | `csc` | `ispmodel.rgb_stages` |
| YUV format conversion | `yfc` | `ispmodel.yuv` |
| YUV non-local-means denoise | `yuvdns` | `ispmodel.yuv` |
| scaling | `scale` | `ispmodel.yuv` |
| cropping | `crop` | `ispmodel.yuv` |

## Installation

```
pip install .
```

There are no runtime dependencies.

## Configuration

`ispmodel.registers` has one dataclass per register set (`TopRegister`,
`TpgRegister`, `DgainRegister`, `LscRegister`, `DpcRegister`,
`RawdnsRegister`, `AwbRegister`, `WbcRegister`, `GbRegister`,
`DemosaicRegister`, `EeRegister`, `CmcRegister`, `GtmRegister`,
`CscRegister`, `YfcRegister`, `YuvdnsRegister`, `ScaleRegister`,
`CropRegister`). `IspConfig` collects all of them, together with the four
224-entry lens-shading gain tables (`r_gain`, `gr_gain`, `gb_gain`,
`b_gain`), the 12 colour-matrix gains (`cmc_gain`), the 132-entry tone curve
(`gtm_table`) and the 12 colour-space coefficients (`csc_coeff`). All fields
default to zero (or `False`).

The hardware receives its configuration as 266 words of 64 bits.
`pack_config` turns an `IspConfig` into that word list and `unpack_config`
decodes it again. `unpack_config` raises `ValueError` unless it gets exactly
266 words, and `pack_config` raises `ValueError` when a table has the wrong
number of entries. Two details of the word layout carry over:

- the crop stage has no layout bits of its own; `unpack_config` copies
  `scale.yuvpattern` into `crop.yuvpattern`;
- colour-matrix gains are decoded as signed 16-bit values and colour-space
  coefficients as signed 11-bit values.

```python
from ispmodel.registers import IspConfig, pack_config, unpack_config

config = IspConfig()
config.top.frame_width = 64
config.top.frame_height = 48
words = pack_config(config)
assert len(words) == 266
assert unpack_config(words) == config
```

`bayer_channel(row, col, pattern)` gives the Bayer channel of a pixel
(0: R, 1: Gr, 2: Gb, 3: B) for a CFA pattern.

## Running the pipeline

`ispmodel.pipeline.run_pipeline(config, raw)` takes an `IspConfig` and the
raw pixels in raster order (at least `frame_width * frame_height` values;
each is cut to 16 and then 12 bits) and returns a `PipelineResult` with:

- `pixels`: one packed word per output pixel, `y << 20 | u << 10 | v`; the
  number of pixels is the size of the crop window
  (`lower_right_x - upper_left_x` by `lower_right_y - upper_left_y`);
- `awb_gains`: the red, green and blue white-balance averages.

```python
from ispmodel.pipeline import run_pipeline
from ispmodel.registers import IspConfig

config = IspConfig()
config.top.frame_width = 64
config.top.frame_height = 48
config.crop.lower_right_x = 64
config.crop.lower_right_y = 48

raw = [512] * (64 * 48)
result = run_pipeline(config, raw)
assert len(result.pixels) == 64 * 48
```

A `ValueError` is raised when the raw frame is short or when the stages do
not deliver enough samples for the crop window.

`ispmodel.pipeline.isp_top(raw, words)` does the same from the 266 packed
configuration words and returns the output buffer as the hardware writes
it: the packed pixels followed by the three white-balance averages, each as
a 32-bit value.

## Individual stages

Every stage is an ordinary function that takes the top register, its own
register and a sequence of samples in raster order, and returns a list of
the samples it emits; a `ValueError` is raised when the input ends before
the frame is complete. Some stages take extra tables: `lsc` the four gain
tables, `cmc` the matrix gains, `gtm` the tone curve and `csc` the
coefficients.

```python
from ispmodel.raw_stages import dgain, wbc

gained = dgain(config.top, config.dgain, raw)
balanced = wbc(config.top, config.wbc, gained)
```

Sample formats along the chain:

- Bayer stages work on 12-bit samples. Window stages (`dpc`, `rawdns`,
  `green_balance`, `demosaic`, `ee`) delay their output inside the frame
  and pad or flush the tail, so they emit as many samples as they read.
- `demosaic` and `ee` produce RGB words `r << 24 | g << 12 | b` (12 bits
  each); `ee` sharpens only the green channel.
- `cmc` and `gtm` produce wide RGB words `r << 28 | g << 14 | b`
  (14 bits each).
- `csc` produces YUV words `y << 20 | u << 10 | v` (10 bits each).
- `yfc` splits YUV words into three planes (subsampling chroma to 4:2:2 or
  4:2:0 when enabled); `yuvdns`, `scale` and `crop` take and return
  `(y, u, v)` plane lists.

`AwbAccumulator(top, reg)` passes a frame through unchanged with
`process(src)` and then reports the scaled averages with `gains()`.

The per-pixel building blocks are public too: `color_select`,
`bilinear_interpolation`, `median_of_eight` and `is_defect_pixel` in
`ispmodel.raw_stages`; `rawdns_weight`, `patch_distance`, `rawdns_pixel` and
`column_statistic` in `ispmodel.raw_filters`; `demosaic_interpolate` and
`ee_process` in `ispmodel.rgb_stages`; `nlm_filter` in `ispmodel.yuv`.

`ispmodel.fixedpoint` holds the integer helpers the stages use:
`wrap_unsigned`, `wrap_signed`, `field`, `with_field` and `clip`.

## What it does not do

The package is a library only. It has no command-line program, does not
read or write raw or YUV image files, does not parse parameter text files,
and does not drive any accelerator device. Frames and configurations are
passed in and returned as Python integers and lists.

## Tests

```
pip install .[test]
pytest
```