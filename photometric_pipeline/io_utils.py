"""Image file I/O around :class:`ImageBuffer`.

Decoding, optional downsizing and transport re-encoding happen here so the
pipeline itself only ever sees decoded 8-bit RGB rasters.

Key Components
--------------

ProcessingContext
    Context manager for atomic file writes with staged temporary files.

load_image_buffer
    Decode an image file into an :class:`ImageBuffer`.

save_image_buffer
    Write an :class:`ImageBuffer` to disk in the format implied by its suffix.
"""
from __future__ import annotations

import contextlib
import dataclasses
import io
import logging
import os
import uuid
from pathlib import Path
from typing import Optional

from PIL import Image, ImageOps

from .buffers import ImageBuffer

LOGGER = logging.getLogger("photometric_pipeline")

SUPPORTED_SUFFIXES = {".png", ".jpg", ".jpeg", ".tif", ".tiff", ".bmp", ".webp"}
_FORMATS = {
    ".png": "PNG",
    ".jpg": "JPEG",
    ".jpeg": "JPEG",
    ".tif": "TIFF",
    ".tiff": "TIFF",
    ".bmp": "BMP",
    ".webp": "WEBP",
}


@dataclasses.dataclass
class ProcessingContext:
    """Context manager for atomic file writes using staged temporary files.

    Writes to a temporary file next to the destination and moves it into place
    on success. The temporary file is removed on failure.

    Attributes:
        destination: Final output file path.
        suffix: Temporary file marker inserted before the unique token.
    """

    destination: Path
    suffix: str = ".tmp"

    def __post_init__(self) -> None:
        self._staged_path: Optional[Path] = None

    def _temp_path(self) -> Path:
        unique = uuid.uuid4().hex
        # Keep the real extension last so Pillow can still infer the format.
        name = f".{self.destination.stem}{self.suffix}-{unique}{self.destination.suffix}"
        return self.destination.parent / name

    def __enter__(self) -> Path:
        self.destination.parent.mkdir(parents=True, exist_ok=True)
        self._staged_path = self._temp_path()
        return self._staged_path

    def __exit__(self, exc_type, exc, tb) -> bool:
        if self._staged_path is None:
            return False

        staged = self._staged_path
        self._staged_path = None

        if exc_type is None:
            try:
                os.replace(staged, self.destination)
            except Exception:
                with contextlib.suppress(Exception):
                    staged.unlink()
                raise
        else:
            with contextlib.suppress(FileNotFoundError):
                staged.unlink()
        return False


def downsize_image(image: Image.Image, max_side: Optional[int]) -> Image.Image:
    """Scale ``image`` so its long edge is at most ``max_side`` pixels."""

    if max_side is None:
        return image
    if max_side < 1:
        raise ValueError("max_side must be a positive integer")
    width, height = image.size
    long_edge = max(width, height)
    if long_edge <= max_side:
        return image
    scale = max_side / float(long_edge)
    new_size = (max(1, int(round(width * scale))), max(1, int(round(height * scale))))
    LOGGER.debug("Resizing from %sx%s to %s", width, height, new_size)
    return image.resize(new_size, Image.Resampling.LANCZOS)


def transport_encode(image: Image.Image, quality: int) -> Image.Image:
    """Round-trip ``image`` through an in-memory JPEG at ``quality``.

    Alpha does not survive JPEG, so it is split off first and reattached.
    """
    if not 1 <= quality <= 100:
        raise ValueError("quality must be between 1 and 100")
    alpha = image.getchannel("A") if "A" in image.getbands() else None
    stream = io.BytesIO()
    image.convert("RGB").save(stream, format="JPEG", quality=quality)
    stream.seek(0)
    with Image.open(stream) as decoded:
        decoded.load()
        rgb = decoded.convert("RGB")
    if alpha is not None:
        rgb.putalpha(alpha)
    return rgb


def load_image_buffer(
    path: Path,
    *,
    max_side: Optional[int] = None,
    transport_quality: Optional[int] = None,
) -> ImageBuffer:
    """Decode ``path`` into an :class:`ImageBuffer`.

    Args:
        path: Image file readable by Pillow.
        max_side: Optional long-edge limit in pixels.
        transport_quality: When set, JPEG re-encode at this quality before use.

    Returns:
        Decoded RGB buffer, with alpha when the source carries one.
    """
    with Image.open(path) as image:
        image.load()
        working = ImageOps.exif_transpose(image)
        working = downsize_image(working, max_side)
        if transport_quality is not None:
            working = transport_encode(working, transport_quality)
        return ImageBuffer.from_image(working)


def save_image_buffer(destination: Path, buffer: ImageBuffer, *, quality: int = 95) -> None:
    """Write ``buffer`` to ``destination`` atomically.

    The format follows the destination suffix. JPEG output drops alpha.
    """
    suffix = destination.suffix.lower()
    fmt = _FORMATS.get(suffix)
    if fmt is None:
        raise ValueError(f"Unsupported output format '{destination.suffix}'")
    image = buffer.to_image()
    save_kwargs = {}
    if fmt == "JPEG":
        if image.mode != "RGB":
            LOGGER.debug("Dropping alpha for JPEG output %s", destination)
            image = image.convert("RGB")
        save_kwargs["quality"] = quality
    elif fmt == "WEBP":
        save_kwargs["quality"] = quality
    with ProcessingContext(destination) as staged_path:
        image.save(staged_path, format=fmt, **save_kwargs)


__all__ = [
    "ProcessingContext",
    "SUPPORTED_SUFFIXES",
    "downsize_image",
    "load_image_buffer",
    "save_image_buffer",
    "transport_encode",
]
