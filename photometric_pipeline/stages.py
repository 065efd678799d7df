"""Photometric adjustment stages operating on linear-light RGB.

Each stage maps an array whose trailing axis holds linear ``(r, g, b)``
intensities to a new array of the same shape. Stages never clamp; the
composer decides when intermediates are pulled back into gamut.
"""
from __future__ import annotations

import dataclasses
import enum
import logging
import math
from typing import Callable, Dict, Tuple

import numpy as np
from numpy.typing import ArrayLike

from .color_space import REC709_WEIGHTS, luminance, to_linear

LOGGER = logging.getLogger("photometric_pipeline")

# Linear offset applied per brightness unit (+100 adds 0.5).
BRIGHTNESS_SCALE = 0.005
# Mid-gray in encoded space, expressed in linear light (~0.214).
CONTRAST_PIVOT = float(to_linear(0.5 * 255.0))
# Parameters are limited to this magnitude before any factor is derived.
PARAMETER_LIMIT = 1.0e4

# BT.709 chroma normalisation: Cb = (B - Y) / KB_SCALE, Cr = (R - Y) / KR_SCALE.
KB_SCALE = 1.8556
KR_SCALE = 1.5748


class StageKind(str, enum.Enum):
    """Closed set of adjustment stage identifiers."""

    BRIGHTNESS = "brightness"
    CONTRAST = "contrast"
    SATURATION = "saturation"
    VIBRANCE = "vibrance"
    HUE = "hue"

    @classmethod
    def parse(cls, value: "StageKind | str") -> "StageKind":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            choices = ", ".join(kind.value for kind in cls)
            raise ValueError(f"Unknown stage '{value}'; expected one of: {choices}") from None


DECLARED_RANGES: Dict[StageKind, Tuple[float, float]] = {
    StageKind.BRIGHTNESS: (-100.0, 100.0),
    StageKind.CONTRAST: (-100.0, 100.0),
    StageKind.SATURATION: (-100.0, 100.0),
    StageKind.VIBRANCE: (-100.0, 100.0),
    StageKind.HUE: (-180.0, 180.0),
}


@dataclasses.dataclass(frozen=True)
class Stage:
    """One adjustment step: a stage identifier plus its scalar parameter."""

    kind: StageKind
    value: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", StageKind.parse(self.kind))
        object.__setattr__(self, "value", float(self.value))
        minimum, maximum = DECLARED_RANGES[self.kind]
        if not minimum <= self.value <= maximum:
            LOGGER.debug(
                "%s value %s outside declared range [%s, %s]; effect will saturate",
                self.kind.value,
                self.value,
                minimum,
                maximum,
            )

    @property
    def is_identity(self) -> bool:
        return self.value == 0.0

    def apply(self, rgb: ArrayLike) -> np.ndarray:
        return STAGE_FUNCTIONS[self.kind](rgb, self.value)

    def __str__(self) -> str:
        sign = "+" if self.value > 0 else ""
        return f"{self.kind.value}({sign}{self.value:g})"


def _finite_amount(amount: float) -> float:
    value = float(amount)
    if math.isnan(value):
        return 0.0
    return min(max(value, -PARAMETER_LIMIT), PARAMETER_LIMIT)


def _gain(amount: float) -> float:
    return max(0.0, 1.0 + _finite_amount(amount) / 100.0)


def _working_copy(rgb: ArrayLike) -> np.ndarray:
    arr = np.array(rgb, dtype=np.float64)
    if arr.shape[-1:] != (3,):
        raise ValueError(f"Expected trailing RGB axis of length 3, got shape {arr.shape}")
    return arr


def apply_brightness(rgb: ArrayLike, amount: float) -> np.ndarray:
    """Add a uniform linear offset to every channel.

    Args:
        rgb: Linear RGB array with a trailing axis of length 3.
        amount: Signed brightness (-100 to +100 declared; 0 is a no-op).

    Returns:
        Offset array with the same shape as the input.
    """
    arr = _working_copy(rgb)
    offset = _finite_amount(amount) * BRIGHTNESS_SCALE
    if offset == 0.0:
        return arr
    return arr + offset


def apply_contrast(rgb: ArrayLike, amount: float) -> np.ndarray:
    """Scale each channel's distance from the mid-gray pivot.

    The pivot is encoded 50% gray converted to linear light, so a contrast
    change leaves perceptual mid-gray where it was.
    """
    arr = _working_copy(rgb)
    factor = _gain(amount)
    if factor == 1.0:
        return arr
    return CONTRAST_PIVOT + (arr - CONTRAST_PIVOT) * factor


def _blend_from_luminance(arr: np.ndarray, factor: ArrayLike) -> np.ndarray:
    y = luminance(arr)[..., None]
    return y + (arr - y) * factor


def apply_saturation(rgb: ArrayLike, amount: float) -> np.ndarray:
    """Push channels away from (or toward) the pixel's Rec. 709 luminance."""

    arr = _working_copy(rgb)
    factor = _gain(amount)
    if factor == 1.0:
        return arr
    return _blend_from_luminance(arr, factor)


def saturation_estimate(rgb: ArrayLike) -> np.ndarray:
    """HSV-style saturation ``(max - min) / max`` clipped to [0, 1].

    Pixels whose maximum is not positive report zero instead of dividing by it.
    """
    arr = np.asarray(rgb, dtype=np.float64)
    maxc = np.max(arr, axis=-1)
    minc = np.min(arr, axis=-1)
    estimate = np.zeros_like(maxc)
    np.divide(maxc - minc, maxc, out=estimate, where=maxc > 0.0)
    return np.clip(estimate, 0.0, 1.0)


def apply_vibrance(rgb: ArrayLike, amount: float) -> np.ndarray:
    """Saturation boost weighted toward muted pixels.

    The gain shrinks linearly with the pixel's existing saturation, so fully
    saturated colors are left alone while near-gray pixels receive almost the
    whole adjustment.
    """
    arr = _working_copy(rgb)
    strength = _finite_amount(amount) / 100.0
    if strength == 0.0:
        return arr
    factor = np.maximum(0.0, 1.0 + strength * (1.0 - saturation_estimate(arr)))
    return _blend_from_luminance(arr, factor[..., None])


def apply_hue(rgb: ArrayLike, amount: float) -> np.ndarray:
    """Rotate chroma around the gray axis by ``amount`` degrees.

    The rotation happens in the normalised BT.709 Cb/Cr plane. Red and blue
    are rebuilt from the untouched luminance and green is solved from it, so
    luminance is preserved up to floating point error.
    """
    arr = _working_copy(rgb)
    degrees = float(amount)
    if not math.isfinite(degrees):
        LOGGER.debug("Ignoring non-finite hue rotation %s", amount)
        return arr
    degrees %= 360.0
    if degrees == 0.0:
        return arr
    theta = math.radians(degrees)
    cos_t, sin_t = math.cos(theta), math.sin(theta)

    y = luminance(arr)
    cb = (arr[..., 2] - y) / KB_SCALE
    cr = (arr[..., 0] - y) / KR_SCALE
    cb_rot = cb * cos_t - cr * sin_t
    cr_rot = cb * sin_t + cr * cos_t

    red = y + cr_rot * KR_SCALE
    blue = y + cb_rot * KB_SCALE
    kr, kg, kb = REC709_WEIGHTS
    green = (y - kr * red - kb * blue) / kg
    return np.stack([red, green, blue], axis=-1)


StageFunction = Callable[[ArrayLike, float], np.ndarray]

STAGE_FUNCTIONS: Dict[StageKind, StageFunction] = {
    StageKind.BRIGHTNESS: apply_brightness,
    StageKind.CONTRAST: apply_contrast,
    StageKind.SATURATION: apply_saturation,
    StageKind.VIBRANCE: apply_vibrance,
    StageKind.HUE: apply_hue,
}


__all__ = [
    "BRIGHTNESS_SCALE",
    "CONTRAST_PIVOT",
    "DECLARED_RANGES",
    "PARAMETER_LIMIT",
    "STAGE_FUNCTIONS",
    "Stage",
    "StageKind",
    "apply_brightness",
    "apply_contrast",
    "apply_hue",
    "apply_saturation",
    "apply_vibrance",
    "saturation_estimate",
]
