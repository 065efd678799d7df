"""Immutable raster buffers and the per-pixel adapter that maps over them."""
from __future__ import annotations

import dataclasses
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Iterator, List, Optional, Sequence, Tuple

import numpy as np
from numpy.typing import ArrayLike
from PIL import Image

from .composer import OrderedPipeline

LOGGER = logging.getLogger("photometric_pipeline")


class PipelineCancelled(RuntimeError):
    """Raised when a tiled buffer run is cancelled before it completes."""


def _frozen_uint8(values: ArrayLike, *, name: str) -> np.ndarray:
    arr = np.asarray(values)
    if arr.dtype != np.uint8:
        if not np.issubdtype(arr.dtype, np.integer):
            raise ValueError(f"{name} must hold integer channel values, got dtype {arr.dtype}")
        if arr.size and (arr.min() < 0 or arr.max() > 255):
            raise ValueError(f"{name} values must lie within 0-255")
    frozen = np.array(arr, dtype=np.uint8, copy=True)
    frozen.setflags(write=False)
    return frozen


@dataclasses.dataclass(frozen=True, eq=False)
class ImageBuffer:
    """A ``(height, width, 3)`` raster of encoded RGB pixels.

    Attributes:
        pixels: Read-only ``uint8`` RGB array.
        alpha: Optional read-only ``(height, width)`` alpha plane. It is not
            part of the color transform and is carried through unchanged.
    """

    pixels: np.ndarray
    alpha: Optional[np.ndarray] = None

    def __post_init__(self) -> None:
        pixels = _frozen_uint8(self.pixels, name="pixels")
        if pixels.ndim != 3 or pixels.shape[2] != 3:
            raise ValueError(f"Image buffers need shape (height, width, 3), got {pixels.shape}")
        object.__setattr__(self, "pixels", pixels)
        if self.alpha is not None:
            alpha = _frozen_uint8(self.alpha, name="alpha")
            if alpha.shape != pixels.shape[:2]:
                raise ValueError(f"Alpha shape {alpha.shape} does not match image shape {pixels.shape[:2]}")
            object.__setattr__(self, "alpha", alpha)

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ImageBuffer):
            return NotImplemented
        if not np.array_equal(self.pixels, other.pixels):
            return False
        if self.alpha is None or other.alpha is None:
            return self.alpha is None and other.alpha is None
        return np.array_equal(self.alpha, other.alpha)

    def pixel(self, x: int, y: int) -> Tuple[int, int, int]:
        r, g, b = self.pixels[y, x]
        return int(r), int(g), int(b)

    @classmethod
    def from_rows(cls, rows: Sequence[Sequence[Sequence[int]]]) -> "ImageBuffer":
        return cls(np.asarray(rows))

    @classmethod
    def from_image(cls, image: Image.Image) -> "ImageBuffer":
        """Build a buffer from a Pillow image, splitting off any alpha band."""

        if "A" in image.getbands():
            rgba = np.array(image.convert("RGBA"))
            return cls(rgba[:, :, :3], rgba[:, :, 3])
        return cls(np.array(image.convert("RGB")))

    def to_image(self) -> Image.Image:
        if self.alpha is None:
            return Image.fromarray(np.ascontiguousarray(self.pixels))
        rgba = np.concatenate([self.pixels, self.alpha[:, :, None]], axis=2)
        return Image.fromarray(np.ascontiguousarray(rgba))


def iter_row_tiles(height: int, tile_rows: Optional[int]) -> Iterator[Tuple[int, int]]:
    """Yield ``(start, stop)`` row ranges covering ``height`` rows."""

    if tile_rows is None or tile_rows >= height:
        if height:
            yield 0, height
        return
    if tile_rows < 1:
        raise ValueError("tile_rows must be a positive integer")
    for start in range(0, height, tile_rows):
        yield start, min(start + tile_rows, height)


def _map_tile(fn: Callable[[np.ndarray], Any], tile: np.ndarray) -> np.ndarray:
    mapped = np.asarray(fn(tile))
    if mapped.shape != tile.shape:
        raise ValueError(f"Pixel function returned shape {mapped.shape}, expected {tile.shape}")
    if mapped.dtype == np.uint8:
        return mapped
    finite = np.nan_to_num(mapped.astype(np.float64), nan=0.0, posinf=255.0, neginf=0.0)
    return np.clip(np.rint(finite), 0, 255).astype(np.uint8)


def apply_to_buffer(
    buffer: ImageBuffer,
    fn: Callable[[np.ndarray], Any],
    *,
    tile_rows: Optional[int] = None,
    workers: int = 1,
    cancel: Optional[Callable[[], bool]] = None,
) -> ImageBuffer:
    """Map a composed per-pixel function over every pixel of ``buffer``.

    ``fn`` receives ``(rows, width, 3)`` ``uint8`` arrays and must return an
    array of the same shape; pixels are independent, so tiles may run in any
    order or concurrently. The source buffer is never modified. When the buffer
    carries alpha, pixels with alpha 0 are left as they are.

    Args:
        buffer: Source raster.
        fn: Composed pixel function, e.g. from :func:`compose_pipeline`.
        tile_rows: Process in horizontal tiles of this many rows.
        workers: Thread count used for tiles when greater than one.
        cancel: Polled before each tile; returning ``True`` aborts the run.

    Returns:
        A new :class:`ImageBuffer` with identical dimensions.

    Raises:
        PipelineCancelled: If ``cancel`` requested an abort. No partial
            buffer is produced.
    """
    if workers < 1:
        raise ValueError("workers must be a positive integer")

    tiles = list(iter_row_tiles(buffer.height, tile_rows))
    output = np.empty_like(buffer.pixels)
    LOGGER.debug(
        "Applying pixel function to %sx%s buffer in %s tile(s) with %s worker(s)",
        buffer.width,
        buffer.height,
        len(tiles),
        workers,
    )

    def run_tile(bounds: Tuple[int, int]) -> None:
        if cancel is not None and cancel():
            raise PipelineCancelled("Buffer transform cancelled before completion")
        start, stop = bounds
        source = buffer.pixels[start:stop]
        mapped = _map_tile(fn, source)
        if buffer.alpha is not None:
            # Fully transparent pixels keep their source color.
            mapped = np.where(buffer.alpha[start:stop, :, None] == 0, source, mapped)
        output[start:stop] = mapped

    if workers == 1 or len(tiles) <= 1:
        for bounds in tiles:
            run_tile(bounds)
    else:
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures: List[Any] = [executor.submit(run_tile, bounds) for bounds in tiles]
            for future in futures:
                future.result()

    return ImageBuffer(output, buffer.alpha)


def transform_buffer(buffer: ImageBuffer, pipeline: Any, **kwargs: Any) -> ImageBuffer:
    """Compose ``pipeline`` and apply it to ``buffer``.

    ``pipeline`` may be anything :meth:`OrderedPipeline.coerce` accepts;
    keyword arguments are forwarded to :func:`apply_to_buffer`.
    """
    return apply_to_buffer(buffer, OrderedPipeline.coerce(pipeline).compose(), **kwargs)


__all__ = [
    "ImageBuffer",
    "PipelineCancelled",
    "apply_to_buffer",
    "iter_row_tiles",
    "transform_buffer",
]
