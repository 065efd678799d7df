"""Order-dependent, gamma-correct photometric adjustment pipeline.

This package applies a user-ordered chain of brightness, contrast,
saturation, vibrance and hue adjustments to 8-bit RGB images. Every stage
works in linear light, and the composed pipeline is a pure, deterministic
function from encoded pixels to encoded pixels. A companion visualizer
exposes per-cell kernel products for explaining convolution kernels.

Module Organization
-------------------

color_space
    sRGB transfer functions, luminance and clamped re-encoding.

stages
    The five adjustment stages and their dispatch table.

composer
    Ordered pipelines, composition into a single pixel function, presets and
    step-by-step pixel traces.

buffers
    Immutable image buffers and the adapter that maps a pixel function over
    them, optionally in cancellable row tiles.

kernels
    Immutable kernel matrices and the standard blur/sharpen/edge factories.

visualizer
    Sample patch extraction and per-cell kernel products.

io_utils, pipeline, cli, profiles
    File I/O, batch orchestration, the command-line interface and execution
    profiles.

Example Usage
-------------

    from photometric_pipeline import ImageBuffer, OrderedPipeline, transform_buffer

    pipeline = OrderedPipeline.from_order(
        ["contrast", "saturation", "hue"],
        {"contrast": 50, "saturation": 50, "hue": 30},
    )
    result = transform_buffer(ImageBuffer.from_rows([[[200, 100, 50]]]), pipeline)

    from photometric_pipeline import box_kernel, kernel_products

    products = kernel_products(box_kernel(3), [[10, 20, 30], [40, 50, 60], [70, 80, 90]])
"""
from __future__ import annotations

import logging

from .buffers import ImageBuffer, PipelineCancelled, apply_to_buffer, iter_row_tiles, transform_buffer
from .cli import build_pipeline, default_output_folder, main, parse_args, run_pipeline
from .color_space import (
    encode_channels,
    linearize_channels,
    luminance,
    sanitize_linear,
    to_encoded,
    to_linear,
)
from .composer import (
    DEFAULT_ORDER,
    PIPELINE_PRESETS,
    OrderedPipeline,
    PixelTrace,
    TraceStep,
    compose_pipeline,
)
from .io_utils import ProcessingContext, load_image_buffer, save_image_buffer
from .kernels import (
    KERNEL_FACTORIES,
    Kernel,
    box_kernel,
    edge_enhance_kernel,
    gaussian_kernel,
    identity_kernel,
    laplacian_kernel,
    prewitt_kernels,
    sobel_kernels,
    unsharp_kernel,
)
from .pipeline import collect_images, ensure_output_path, process_single_image
from .profiles import DEFAULT_PROFILE_NAME, EXECUTION_PROFILES, ExecutionProfile
from .stages import STAGE_FUNCTIONS, Stage, StageKind
from .visualizer import (
    DimensionMismatchError,
    KernelContribution,
    SamplePatch,
    extract_patch,
    kernel_contributions,
    kernel_products,
    patch_channel,
)

LOGGER = logging.getLogger("photometric_pipeline")

__all__ = [
    "DEFAULT_ORDER",
    "DEFAULT_PROFILE_NAME",
    "DimensionMismatchError",
    "EXECUTION_PROFILES",
    "ExecutionProfile",
    "ImageBuffer",
    "KERNEL_FACTORIES",
    "Kernel",
    "KernelContribution",
    "OrderedPipeline",
    "PIPELINE_PRESETS",
    "PipelineCancelled",
    "PixelTrace",
    "ProcessingContext",
    "STAGE_FUNCTIONS",
    "SamplePatch",
    "Stage",
    "StageKind",
    "TraceStep",
    "apply_to_buffer",
    "box_kernel",
    "build_pipeline",
    "collect_images",
    "compose_pipeline",
    "default_output_folder",
    "edge_enhance_kernel",
    "encode_channels",
    "ensure_output_path",
    "extract_patch",
    "gaussian_kernel",
    "identity_kernel",
    "iter_row_tiles",
    "kernel_contributions",
    "kernel_products",
    "laplacian_kernel",
    "linearize_channels",
    "load_image_buffer",
    "luminance",
    "main",
    "parse_args",
    "patch_channel",
    "prewitt_kernels",
    "process_single_image",
    "run_pipeline",
    "sanitize_linear",
    "save_image_buffer",
    "sobel_kernels",
    "to_encoded",
    "to_linear",
    "transform_buffer",
    "unsharp_kernel",
]
