"""Convolution kernel matrices used by the kernel product visualizer."""
from __future__ import annotations

import dataclasses
import functools
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
from numpy.typing import ArrayLike

DEFAULT_GAUSSIAN_SIGMA = {3: 0.85, 5: 1.2, 7: 1.6}


@dataclasses.dataclass(frozen=True, eq=False)
class Kernel:
    """Immutable, odd-sized square matrix of real-valued weights."""

    weights: np.ndarray

    def __post_init__(self) -> None:
        arr = np.array(self.weights, dtype=np.float64, copy=True)
        if arr.ndim != 2 or arr.shape[0] != arr.shape[1]:
            raise ValueError(f"Kernel must be a square matrix, got shape {arr.shape}")
        if arr.shape[0] == 0 or arr.shape[0] % 2 == 0:
            raise ValueError(f"Kernel size must be odd and positive, got {arr.shape[0]}")
        if not np.all(np.isfinite(arr)):
            raise ValueError("Kernel weights must be finite")
        arr.setflags(write=False)
        object.__setattr__(self, "weights", arr)

    @classmethod
    def from_rows(cls, rows: Sequence[Sequence[float]]) -> "Kernel":
        return cls(np.asarray(rows, dtype=np.float64))

    @property
    def size(self) -> int:
        return int(self.weights.shape[0])

    @property
    def center(self) -> int:
        return self.size // 2

    def as_lists(self) -> List[List[float]]:
        return self.weights.tolist()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Kernel):
            return NotImplemented
        return np.array_equal(self.weights, other.weights)

    def __hash__(self) -> int:
        return hash(self.weights.tobytes())


def as_kernel(value: "Kernel | ArrayLike") -> Kernel:
    if isinstance(value, Kernel):
        return value
    return Kernel(np.asarray(value, dtype=np.float64))


def _check_size(size: int, allowed: Tuple[int, ...]) -> None:
    if size not in allowed:
        raise ValueError(f"Unsupported kernel size {size}; expected one of {allowed}")


def identity_kernel(size: int = 3) -> Kernel:
    """Delta kernel: 1 at the center, 0 elsewhere."""

    weights = np.zeros((size, size), dtype=np.float64)
    if size > 0:
        weights[size // 2, size // 2] = 1.0
    return Kernel(weights)


def box_kernel(size: int = 3) -> Kernel:
    """Mean filter with equal weights summing to one."""

    _check_size(size, (3, 5, 7))
    return Kernel(np.full((size, size), 1.0 / (size * size), dtype=np.float64))


@functools.lru_cache(maxsize=16)
def _gaussian_kernel_cached(size: int, sigma: Optional[float]) -> Kernel:
    _check_size(size, (3, 5, 7))
    sigma = sigma or DEFAULT_GAUSSIAN_SIGMA[size]
    half = size // 2
    ax = np.arange(-half, half + 1, dtype=np.float64)
    xx, yy = np.meshgrid(ax, ax)
    weights = np.exp(-(xx ** 2 + yy ** 2) / (2.0 * sigma ** 2))
    weights /= np.sum(weights)
    return Kernel(weights)


def gaussian_kernel(size: int = 5, sigma: Optional[float] = None) -> Kernel:
    """Normalised 2D Gaussian kernel.

    Args:
        size: Kernel width (3, 5 or 7).
        sigma: Standard deviation; defaults to 0.85, 1.2 or 1.6 by size.

    Returns:
        Cached immutable :class:`Kernel` whose weights sum to one.
    """
    return _gaussian_kernel_cached(size, sigma)


gaussian_kernel.cache_clear = _gaussian_kernel_cached.cache_clear  # type: ignore[attr-defined]
gaussian_kernel.cache_info = _gaussian_kernel_cached.cache_info  # type: ignore[attr-defined]


def unsharp_kernel(amount: float = 1.0, size: int = 3) -> Kernel:
    """Identity plus ``amount`` times (identity minus box blur)."""

    _check_size(size, (3, 5))
    weights = -amount * box_kernel(size).weights
    center = size // 2
    weights[center, center] += 1.0 + amount
    return Kernel(weights)


def laplacian_kernel(alpha: float = 1.0) -> Kernel:
    """3x3 sharpening kernel: original plus ``alpha`` times the Laplacian."""

    a = float(alpha)
    return Kernel.from_rows([[0.0, -a, 0.0], [-a, 1.0 + 4.0 * a, -a], [0.0, -a, 0.0]])


def edge_enhance_kernel(alpha: float = 1.0) -> Kernel:
    """Edge enhancement kernel; shares the Laplacian sharpening weights."""

    return laplacian_kernel(alpha)


def sobel_kernels() -> Tuple[Kernel, Kernel]:
    """Horizontal and vertical Sobel gradient kernels."""

    kx = Kernel.from_rows([[-1, 0, 1], [-2, 0, 2], [-1, 0, 1]])
    ky = Kernel.from_rows([[-1, -2, -1], [0, 0, 0], [1, 2, 1]])
    return kx, ky


def prewitt_kernels() -> Tuple[Kernel, Kernel]:
    """Horizontal and vertical Prewitt gradient kernels."""

    kx = Kernel.from_rows([[-1, 0, 1], [-1, 0, 1], [-1, 0, 1]])
    ky = Kernel.from_rows([[-1, -1, -1], [0, 0, 0], [1, 1, 1]])
    return kx, ky


KERNEL_FACTORIES: Dict[str, Callable[[], Kernel]] = {
    "identity": identity_kernel,
    "box": box_kernel,
    "gaussian": gaussian_kernel,
    "unsharp": unsharp_kernel,
    "laplacian": laplacian_kernel,
    "edge_enhance": edge_enhance_kernel,
    "sobel_x": lambda: sobel_kernels()[0],
    "sobel_y": lambda: sobel_kernels()[1],
    "prewitt_x": lambda: prewitt_kernels()[0],
    "prewitt_y": lambda: prewitt_kernels()[1],
}


__all__ = [
    "KERNEL_FACTORIES",
    "Kernel",
    "as_kernel",
    "box_kernel",
    "edge_enhance_kernel",
    "gaussian_kernel",
    "identity_kernel",
    "laplacian_kernel",
    "prewitt_kernels",
    "sobel_kernels",
    "unsharp_kernel",
]
