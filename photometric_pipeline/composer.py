"""Ordered pipeline composition.

An :class:`OrderedPipeline` is an immutable sequence of :class:`Stage`
objects. Composing it yields a single pure function that linearises encoded
pixels once, folds every stage in the given order and re-encodes once with
clamping and rounding.

Example Usage
-------------

    from photometric_pipeline import OrderedPipeline

    pipeline = OrderedPipeline.from_order(
        ["contrast", "saturation"], {"contrast": 50, "saturation": 50}
    )
    adjust = pipeline.compose()
    adjust([200, 100, 50])          # -> uint8 array of shape (3,)
"""
from __future__ import annotations

import dataclasses
import logging
from typing import Any, Callable, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

import numpy as np
from numpy.typing import ArrayLike

from .color_space import encode_channels, linearize_channels, sanitize_linear
from .stages import Stage, StageKind

LOGGER = logging.getLogger("photometric_pipeline")

DEFAULT_ORDER: Tuple[StageKind, ...] = (
    StageKind.BRIGHTNESS,
    StageKind.CONTRAST,
    StageKind.SATURATION,
    StageKind.VIBRANCE,
    StageKind.HUE,
)

PixelFunction = Callable[[ArrayLike], np.ndarray]


def _as_pixels(pixels: ArrayLike) -> np.ndarray:
    arr = np.asarray(pixels)
    if arr.shape[-1:] != (3,):
        raise ValueError(f"Pixels need a trailing RGB axis of length 3, got shape {arr.shape}")
    if not (np.issubdtype(arr.dtype, np.integer) or np.issubdtype(arr.dtype, np.floating)):
        raise ValueError(f"Pixels must be numeric, got dtype {arr.dtype}")
    return arr


@dataclasses.dataclass(frozen=True)
class TraceStep:
    """Encoded snapshot of a pixel after one stage of a pipeline."""

    index: int
    stage: Stage
    encoded: Tuple[int, int, int]


@dataclasses.dataclass(frozen=True)
class PixelTrace:
    """Step-by-step record of a single pixel travelling through a pipeline."""

    source: Tuple[int, int, int]
    steps: Tuple[TraceStep, ...]

    @property
    def result(self) -> Tuple[int, int, int]:
        if not self.steps:
            return self.source
        return self.steps[-1].encoded


@dataclasses.dataclass(frozen=True)
class OrderedPipeline:
    """Immutable, order-preserving list of adjustment stages.

    Attributes:
        stages: Stages applied left to right. Duplicates are kept and applied
            independently in position.
        clip_between_stages: Pull intermediates back into [0, 1] after each
            stage. Clipping is what makes otherwise-affine stages such as
            contrast and saturation non-commutative; disable it to clamp only
            once at the final encode.
    """

    stages: Tuple[Stage, ...] = ()
    clip_between_stages: bool = True

    def __post_init__(self) -> None:
        coerced = tuple(_coerce_stage(item) for item in self.stages)
        object.__setattr__(self, "stages", coerced)

    @classmethod
    def from_order(
        cls,
        order: Iterable[StageKind | str],
        values: Optional[Mapping[Any, float]] = None,
        *,
        clip_between_stages: bool = True,
    ) -> "OrderedPipeline":
        """Build a pipeline from an order list and a ``{stage: value}`` mapping.

        Stages missing from ``values`` default to 0 (no-op).
        """
        lookup = {StageKind.parse(key): float(value) for key, value in (values or {}).items()}
        stages = tuple(Stage(StageKind.parse(kind), lookup.get(StageKind.parse(kind), 0.0)) for kind in order)
        return cls(stages, clip_between_stages=clip_between_stages)

    @classmethod
    def coerce(cls, source: "OrderedPipeline | Mapping[Any, float] | Iterable[Any]") -> "OrderedPipeline":
        """Accept a pipeline, a mapping, or a sequence of stages / ``(kind, value)`` pairs."""

        if isinstance(source, cls):
            return source
        if isinstance(source, Mapping):
            return cls.from_order(source.keys(), source)
        return cls(tuple(source))

    def __iter__(self) -> Iterator[Stage]:
        return iter(self.stages)

    def __len__(self) -> int:
        return len(self.stages)

    @property
    def order(self) -> Tuple[StageKind, ...]:
        return tuple(stage.kind for stage in self.stages)

    def describe(self) -> str:
        if not self.stages:
            return "<empty>"
        return " -> ".join(str(stage) for stage in self.stages)

    def with_stage(self, stage: Stage | Tuple[Any, float], position: Optional[int] = None) -> "OrderedPipeline":
        """Return a copy with ``stage`` inserted at ``position`` (appended by default)."""

        items: List[Stage] = list(self.stages)
        new_stage = _coerce_stage(stage)
        if position is None:
            items.append(new_stage)
        else:
            items.insert(position, new_stage)
        return dataclasses.replace(self, stages=tuple(items))

    def moved(self, source: int, destination: int) -> "OrderedPipeline":
        """Return a copy with the stage at ``source`` moved to ``destination``."""

        items: List[Stage] = list(self.stages)
        stage = items.pop(source)
        items.insert(destination, stage)
        return dataclasses.replace(self, stages=tuple(items))

    def apply_linear(self, linear: ArrayLike) -> np.ndarray:
        """Fold every stage over linear RGB values in order."""

        working = np.asarray(linear, dtype=np.float64)
        for stage in self.stages:
            working = stage.apply(working)
            if self.clip_between_stages:
                working = sanitize_linear(working)
        return working

    def __call__(self, pixels: ArrayLike) -> np.ndarray:
        arr = _as_pixels(pixels)
        return encode_channels(self.apply_linear(linearize_channels(arr)))

    def compose(self) -> PixelFunction:
        """Return the pipeline as a single encoded-pixel to encoded-pixel function."""

        LOGGER.debug("Composed pipeline: %s", self.describe())
        return self.__call__

    def trace(self, pixel: ArrayLike) -> PixelTrace:
        """Record the clamped, encoded pixel after each stage.

        The final step always equals the composed output for the same pixel.
        """
        arr = _as_pixels(pixel)
        if arr.shape != (3,):
            raise ValueError(f"trace() expects a single pixel, got shape {arr.shape}")
        source = tuple(int(v) for v in encode_channels(linearize_channels(arr)))
        working = linearize_channels(arr)
        steps: List[TraceStep] = []
        for index, stage in enumerate(self.stages):
            working = stage.apply(working)
            if self.clip_between_stages:
                working = sanitize_linear(working)
            encoded = tuple(int(v) for v in encode_channels(working))
            steps.append(TraceStep(index=index, stage=stage, encoded=encoded))  # type: ignore[arg-type]
        return PixelTrace(source=source, steps=tuple(steps))  # type: ignore[arg-type]


def _coerce_stage(item: Any) -> Stage:
    if isinstance(item, Stage):
        return item
    if isinstance(item, (str, StageKind)):
        return Stage(StageKind.parse(item))
    try:
        kind, value = item
    except (TypeError, ValueError):
        raise ValueError(f"Cannot interpret {item!r} as a pipeline stage") from None
    return Stage(StageKind.parse(kind), value)


def compose_pipeline(
    stages: "OrderedPipeline | Mapping[Any, float] | Sequence[Any]",
    *,
    clip_between_stages: Optional[bool] = None,
) -> PixelFunction:
    """Compose ``stages`` into one deterministic encoded-pixel function.

    Args:
        stages: Ordered stages in any form accepted by :meth:`OrderedPipeline.coerce`.
        clip_between_stages: Clip intermediates into gamut after every stage.
            ``None`` keeps the pipeline's own setting (on for anything that is
            not already an :class:`OrderedPipeline`).

    Returns:
        Callable mapping ``(..., 3)`` encoded pixels to ``uint8`` pixels of the same shape.
    """
    pipeline = OrderedPipeline.coerce(stages)
    if clip_between_stages is not None and pipeline.clip_between_stages != clip_between_stages:
        pipeline = dataclasses.replace(pipeline, clip_between_stages=clip_between_stages)
    return pipeline.compose()


PIPELINE_PRESETS = {
    "neutral": OrderedPipeline.from_order(DEFAULT_ORDER),
    "vivid": OrderedPipeline.from_order(
        DEFAULT_ORDER,
        {"brightness": 4, "contrast": 12, "saturation": 18, "vibrance": 25},
    ),
    "muted": OrderedPipeline.from_order(
        DEFAULT_ORDER,
        {"contrast": -10, "saturation": -35, "vibrance": -15},
    ),
    "punchy": OrderedPipeline.from_order(
        DEFAULT_ORDER,
        {"brightness": -4, "contrast": 35, "saturation": 10, "vibrance": 30},
    ),
    "hue_shift": OrderedPipeline.from_order(DEFAULT_ORDER, {"hue": 30}),
}


__all__ = [
    "DEFAULT_ORDER",
    "OrderedPipeline",
    "PIPELINE_PRESETS",
    "PixelTrace",
    "TraceStep",
    "compose_pipeline",
]
