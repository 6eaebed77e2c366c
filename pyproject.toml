[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ispmodel"
version = "0.1.0"
description = "Bit-accurate model of a streaming camera image signal processing pipeline"
requires-python = ">=3.10"
dependencies = []
keywords = ["isp", "image signal processing", "bayer", "demosaic", "raw", "yuv", "fixed-point"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Science/Research",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Image Processing",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["ispmodel"]

[tool.pytest.ini_options]
addopts = "-ra"
