"""sRGB transfer functions and linear-light helpers.

Channel values travel through the package as gamma-encoded ``uint8`` numbers.
Every adjustment stage works on physically linear intensities instead, so the
converters here sit at both ends of a pipeline run.
"""
from __future__ import annotations

import functools
from typing import Union

import numpy as np
from numpy.typing import ArrayLike

ENCODED_KNEE = 0.04045
LINEAR_KNEE = 0.0031308
LINEAR_SLOPE = 12.92
GAMMA = 2.4

# Rec. 709 weights; they sum to 1 so a gray pixel's luminance equals its level.
REC709_WEIGHTS = np.array([0.2126, 0.7152, 0.0722], dtype=np.float64)

Number = Union[float, np.ndarray]


def _as_output(result: np.ndarray, source: ArrayLike) -> Number:
    if np.ndim(source) == 0:
        return float(result)
    return result


def to_linear(channel: ArrayLike) -> Number:
    """Convert gamma-encoded channel values (0-255) to linear intensity (0-1).

    Args:
        channel: Scalar or array of encoded channel values.

    Returns:
        ``float`` for scalar input, otherwise a ``float64`` array of the same shape.
    """
    x = np.asarray(channel, dtype=np.float64) / 255.0
    low = x / LINEAR_SLOPE
    high = np.power((np.maximum(x, ENCODED_KNEE) + 0.055) / 1.055, GAMMA)
    return _as_output(np.where(x <= ENCODED_KNEE, low, high), channel)


def to_encoded(linear: ArrayLike) -> Number:
    """Convert linear intensity back to the 0-255 encoded scale without clamping.

    Out-of-range intensities map to out-of-range encoded values so chained
    stages can be inspected before the final clamp. Callers storing channel
    values should use :func:`encode_channels` instead.
    """
    y = np.asarray(linear, dtype=np.float64)
    low = LINEAR_SLOPE * y
    # np.where evaluates both branches; keep the power branch on positive input.
    high = 1.055 * np.power(np.maximum(y, LINEAR_KNEE), 1.0 / GAMMA) - 0.055
    return _as_output(np.where(y <= LINEAR_KNEE, low, high) * 255.0, linear)


def sanitize_linear(values: ArrayLike) -> np.ndarray:
    """Replace non-finite intensities with the nearest bound and clip to [0, 1]."""

    working = np.nan_to_num(np.asarray(values, dtype=np.float64), nan=0.0, posinf=1.0, neginf=0.0)
    return np.clip(working, 0.0, 1.0)


def encode_channels(linear: ArrayLike) -> np.ndarray:
    """Clamp linear intensities and encode them as ``uint8`` channel values."""

    encoded = to_encoded(sanitize_linear(linear))
    return np.clip(np.rint(encoded), 0, 255).astype(np.uint8)


@functools.lru_cache(maxsize=1)
def _decode_table() -> np.ndarray:
    table = np.asarray(to_linear(np.arange(256)), dtype=np.float64)
    table.setflags(write=False)
    return table


def decode_table() -> np.ndarray:
    """Return the read-only 256-entry encoded-to-linear lookup table."""

    return _decode_table()


def linearize_channels(values: ArrayLike) -> np.ndarray:
    """Vectorised :func:`to_linear` that uses the lookup table for ``uint8`` input."""

    arr = np.asarray(values)
    if arr.dtype == np.uint8:
        return decode_table()[arr]
    return np.asarray(to_linear(arr), dtype=np.float64)


def luminance(rgb: ArrayLike) -> np.ndarray:
    """Rec. 709 luminance over the trailing RGB axis of a linear array."""

    arr = np.asarray(rgb, dtype=np.float64)
    return arr[..., 0] * REC709_WEIGHTS[0] + arr[..., 1] * REC709_WEIGHTS[1] + arr[..., 2] * REC709_WEIGHTS[2]


__all__ = [
    "REC709_WEIGHTS",
    "decode_table",
    "encode_channels",
    "linearize_channels",
    "luminance",
    "sanitize_linear",
    "to_encoded",
    "to_linear",
]
