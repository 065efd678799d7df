"""Processing helpers shared between the CLI and integrations."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Iterable, Iterator, Optional

from tqdm import tqdm

from .buffers import apply_to_buffer
from .composer import OrderedPipeline
from .io_utils import SUPPORTED_SUFFIXES, load_image_buffer, save_image_buffer
from .profiles import DEFAULT_PROFILE_NAME, EXECUTION_PROFILES, ExecutionProfile

LOGGER = logging.getLogger("photometric_pipeline")
WORKER_LOGGER = LOGGER.getChild("worker")


def _ensure_profile(profile: ExecutionProfile | None) -> ExecutionProfile:
    if profile is None:
        return EXECUTION_PROFILES[DEFAULT_PROFILE_NAME]
    return profile


def _wrap_with_progress(
    iterable: Iterable[object],
    *,
    total: Optional[int],
    description: str,
    enabled: bool,
) -> Iterable[object]:
    """Return ``iterable`` wrapped in a :mod:`tqdm` bar when enabled."""

    if not enabled:
        return iterable
    return tqdm(iterable, total=total, desc=description, unit="image")


def collect_images(folder: Path, recursive: bool) -> Iterator[Path]:
    candidates = folder.rglob("*") if recursive else folder.glob("*")
    for path in candidates:
        if path.is_file() and path.suffix.lower() in SUPPORTED_SUFFIXES:
            yield path


def ensure_output_path(
    input_root: Path,
    output_root: Path,
    source: Path,
    suffix: str,
    recursive: bool,
    *,
    create: bool = True,
) -> Path:
    relative = source.relative_to(input_root) if recursive else Path(source.name)
    destination = output_root / relative
    if create:
        destination.parent.mkdir(parents=True, exist_ok=True)
    new_name = destination.stem + suffix + destination.suffix
    return destination.with_name(new_name)


def _process_image_worker(
    source: Path,
    destination: Path,
    pipeline: OrderedPipeline,
    *,
    max_side: Optional[int] = None,
    tile_rows: Optional[int] = None,
    quality: int = 95,
    dry_run: bool = False,
    profile: ExecutionProfile,
    cancel: Optional[Callable[[], bool]] = None,
) -> bool:
    """Core implementation for processing a single image.

    Returns ``True`` when an output file was written. Everything passed in is
    picklable so the helper can run inside a process pool.
    """

    WORKER_LOGGER.info("Processing %s -> %s", source, destination)
    if destination.exists() and not dry_run and not destination.is_file():
        path_type = "directory" if destination.is_dir() else "non-file"
        raise ValueError(f"Destination path exists but is a {path_type}: {destination}")

    buffer = load_image_buffer(
        source,
        max_side=profile.resolve_max_side(max_side),
        transport_quality=profile.transport_quality,
    )
    adjusted = apply_to_buffer(
        buffer,
        pipeline.compose(),
        tile_rows=profile.resolve_tile_rows(tile_rows),
        cancel=cancel,
    )
    if dry_run:
        WORKER_LOGGER.info("Dry run enabled, skipping save for %s", destination)
        return False
    save_image_buffer(destination, adjusted, quality=quality)
    return True


def process_single_image(
    source: Path,
    destination: Path,
    pipeline: OrderedPipeline,
    *,
    max_side: Optional[int] = None,
    tile_rows: Optional[int] = None,
    quality: int = 95,
    dry_run: bool = False,
    profile: ExecutionProfile | None = None,
    cancel: Optional[Callable[[], bool]] = None,
) -> bool:
    """Public wrapper around :func:`_process_image_worker`."""

    return _process_image_worker(
        source,
        destination,
        OrderedPipeline.coerce(pipeline),
        max_side=max_side,
        tile_rows=tile_rows,
        quality=quality,
        dry_run=dry_run,
        profile=_ensure_profile(profile),
        cancel=cancel,
    )


__all__ = [
    "collect_images",
    "ensure_output_path",
    "process_single_image",
]
