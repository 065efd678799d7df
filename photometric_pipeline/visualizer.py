"""Per-cell kernel products for convolution visualisation.

The visualizer does not convolve an image. It multiplies each kernel weight
by the matching sample-patch value so a renderer can show how every cell
contributes to the output pixel at the patch center. Scaling for display is
left to the renderer.
"""
from __future__ import annotations

import dataclasses
import logging
from typing import Tuple

import numpy as np
from numpy.typing import ArrayLike

from .buffers import ImageBuffer, _frozen_uint8
from .kernels import Kernel, as_kernel

LOGGER = logging.getLogger("photometric_pipeline")

# Rec. 601 luma on encoded values, matching the luminance-only convolution mode.
LUMA_WEIGHTS = np.array([0.299, 0.587, 0.114], dtype=np.float64)
CHANNELS = ("r", "g", "b", "luminance")


class DimensionMismatchError(ValueError):
    """Raised when a sample patch does not match the kernel's size."""


@dataclasses.dataclass(frozen=True, eq=False)
class SamplePatch:
    """Read-only square snapshot of encoded pixels taken from an image.

    Attributes:
        pixels: ``(size, size, 3)`` ``uint8`` array.
        origin: Top-left ``(x, y)`` of the patch in the source image.
    """

    pixels: np.ndarray
    origin: Tuple[int, int] = (0, 0)

    def __post_init__(self) -> None:
        arr = np.asarray(self.pixels)
        if arr.ndim != 3 or arr.shape[2] != 3 or arr.shape[0] != arr.shape[1]:
            raise DimensionMismatchError(f"Sample patch must have shape (N, N, 3), got {arr.shape}")
        object.__setattr__(self, "pixels", _frozen_uint8(arr, name="patch"))

    @property
    def size(self) -> int:
        return int(self.pixels.shape[0])


def extract_patch(buffer: ImageBuffer, x: int, y: int, size: int) -> SamplePatch:
    """Copy a ``size`` x ``size`` patch whose top-left corner is near ``(x, y)``.

    The offset is clamped so the patch always lies inside the image.

    Raises:
        DimensionMismatchError: If the image is smaller than the patch.
    """
    if size < 1:
        raise DimensionMismatchError(f"Patch size must be positive, got {size}")
    if size > buffer.width or size > buffer.height:
        raise DimensionMismatchError(
            f"Patch size {size} exceeds image dimensions {buffer.width}x{buffer.height}"
        )
    left = max(0, min(buffer.width - size, int(x)))
    top = max(0, min(buffer.height - size, int(y)))
    if (left, top) != (x, y):
        LOGGER.debug("Clamped patch origin from (%s, %s) to (%s, %s)", x, y, left, top)
    return SamplePatch(buffer.pixels[top : top + size, left : left + size], origin=(left, top))


def patch_channel(patch: "SamplePatch | ArrayLike", channel: str = "luminance") -> np.ndarray:
    """Return one channel of a patch as a float matrix.

    Args:
        patch: :class:`SamplePatch` or ``(N, N, 3)`` array of encoded values.
        channel: ``"r"``, ``"g"``, ``"b"`` or ``"luminance"``.
    """
    arr = patch.pixels if isinstance(patch, SamplePatch) else np.asarray(patch)
    arr = arr.astype(np.float64)
    if arr.ndim != 3 or arr.shape[2] != 3:
        raise DimensionMismatchError(f"Expected an (N, N, 3) patch, got shape {arr.shape}")
    key = channel.lower()
    if key == "luminance":
        return arr @ LUMA_WEIGHTS
    if key in ("r", "g", "b"):
        return arr[:, :, "rgb".index(key)]
    raise ValueError(f"Unknown channel '{channel}'; expected one of {CHANNELS}")


def _patch_values(patch: "SamplePatch | ArrayLike", channel: str) -> np.ndarray:
    if isinstance(patch, SamplePatch):
        return patch_channel(patch, channel)
    arr = np.asarray(patch, dtype=np.float64)
    if arr.ndim == 2:
        return arr
    return patch_channel(arr, channel)


def _ensure_matching(kernel: Kernel, values: np.ndarray) -> None:
    expected = (kernel.size, kernel.size)
    if values.shape[:2] != expected or values.shape[0] != values.shape[1]:
        raise DimensionMismatchError(
            f"Patch of shape {values.shape[:2]} does not match {kernel.size}x{kernel.size} kernel"
        )


def kernel_products(
    kernel: "Kernel | ArrayLike",
    patch: "SamplePatch | ArrayLike",
    channel: str = "luminance",
) -> np.ndarray:
    """Multiply each kernel weight by the matching patch value.

    Args:
        kernel: :class:`Kernel` or nested weights.
        patch: :class:`SamplePatch`, an ``(N, N, 3)`` array (``channel`` is
            selected from it) or an ``(N, N)`` matrix of already-selected values.
        channel: Channel used for three-channel patches.

    Returns:
        ``(N, N)`` float array where cell ``(i, j)`` is ``kernel[i][j] * value[i][j]``.

    Raises:
        DimensionMismatchError: If the patch is not the kernel's size.
    """
    k = as_kernel(kernel)
    values = _patch_values(patch, channel)
    _ensure_matching(k, values)
    return k.weights * values


@dataclasses.dataclass(frozen=True)
class KernelContribution:
    """Per-channel cell products and their sums for one kernel placement."""

    products: np.ndarray
    totals: Tuple[float, float, float]


def kernel_contributions(kernel: "Kernel | ArrayLike", patch: "SamplePatch | ArrayLike") -> KernelContribution:
    """Per-channel products plus RGB totals for one kernel placement.

    The totals equal the unclamped convolution result at the patch center.
    """
    k = as_kernel(kernel)
    arr = patch.pixels if isinstance(patch, SamplePatch) else np.asarray(patch)
    arr = arr.astype(np.float64)
    if arr.ndim != 3 or arr.shape[2] != 3:
        raise DimensionMismatchError(f"Expected an (N, N, 3) patch, got shape {arr.shape}")
    _ensure_matching(k, arr)
    products = k.weights[:, :, None] * arr
    r, g, b = products.sum(axis=(0, 1))
    return KernelContribution(products=products, totals=(float(r), float(g), float(b)))


__all__ = [
    "CHANNELS",
    "DimensionMismatchError",
    "KernelContribution",
    "SamplePatch",
    "extract_patch",
    "kernel_contributions",
    "kernel_products",
    "patch_channel",
]
