from __future__ import annotations

from pathlib import Path
import sys

import numpy as np
import pytest

PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from photometric_pipeline.buffers import ImageBuffer  # noqa: E402  # pylint: disable=wrong-import-position
from photometric_pipeline.kernels import (  # noqa: E402
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
from photometric_pipeline.visualizer import (  # noqa: E402
    DimensionMismatchError,
    SamplePatch,
    extract_patch,
    kernel_contributions,
    kernel_products,
    patch_channel,
)

try:
    from .documentation import demonstrates, documents
except ImportError:  # pragma: no cover - fallback for direct execution
    from tests.documentation import demonstrates, documents


PATCH_VALUES = [[10, 20, 30], [40, 50, 60], [70, 80, 90]]


@documents("A kernel of ones reproduces the patch and a kernel of zeros erases it")
@demonstrates(kernel_products)
def test_ones_and_zeros_kernels():
    ones = Kernel(np.ones((3, 3)))
    zeros = Kernel(np.zeros((3, 3)))

    assert kernel_products(ones, PATCH_VALUES).tolist() == PATCH_VALUES
    assert np.array_equal(kernel_products(zeros, PATCH_VALUES), np.zeros((3, 3)))
    assert np.array_equal(kernel_products(zeros, np.full((3, 3), 255)), np.zeros((3, 3)))


def test_products_are_cellwise():
    kernel = Kernel.from_rows([[1, 0, -1], [2, 0, -2], [0.5, 0, -0.5]])

    products = kernel_products(kernel, PATCH_VALUES)

    assert products.tolist() == [[10, 0, -30], [80, 0, -120], [35, 0, -45]]


@documents("Mismatched kernel and patch sizes fail instead of cropping or padding")
def test_dimension_mismatch_is_rejected():
    patch = np.arange(25).reshape(5, 5)

    with pytest.raises(DimensionMismatchError):
        kernel_products(box_kernel(3), patch)
    with pytest.raises(DimensionMismatchError):
        kernel_products(box_kernel(5), PATCH_VALUES)
    assert issubclass(DimensionMismatchError, ValueError)


def test_three_channel_patch_uses_selected_channel():
    rgb = np.zeros((3, 3, 3), dtype=np.uint8)
    rgb[..., 1] = 100
    ones = Kernel(np.ones((3, 3)))

    assert np.allclose(kernel_products(ones, rgb, channel="g"), 100)
    assert np.allclose(kernel_products(ones, rgb, channel="r"), 0)
    assert np.allclose(kernel_products(ones, rgb), 58.7)


def test_patch_channel_luminance_of_gray_is_level():
    patch = SamplePatch(np.full((3, 3, 3), 77, dtype=np.uint8))

    assert np.allclose(patch_channel(patch), 77)
    with pytest.raises(ValueError):
        patch_channel(patch, "alpha")


def test_kernel_contributions_total_matches_convolution_center():
    rgb = np.stack([np.array(PATCH_VALUES)] * 3, axis=-1)
    kernel = box_kernel(3)

    contribution = kernel_contributions(kernel, rgb)

    assert contribution.products.shape == (3, 3, 3)
    assert contribution.totals == pytest.approx((50.0, 50.0, 50.0))


@pytest.mark.parametrize(
    "weights",
    [np.ones((2, 2)), np.ones((3, 5)), np.ones(3), np.array([[1.0, np.nan, 0], [0, 1, 0], [0, 0, 1]])],
)
def test_invalid_kernels_are_rejected(weights):
    with pytest.raises(ValueError):
        Kernel(weights)


def test_kernel_weights_are_read_only():
    kernel = identity_kernel()

    with pytest.raises(ValueError):
        kernel.weights[0, 0] = 5.0
    assert kernel.center == 1
    assert kernel.as_lists() == [[0, 0, 0], [0, 1, 0], [0, 0, 0]]


@pytest.mark.parametrize("size", [3, 5, 7])
def test_gaussian_kernel_is_normalised_symmetric_and_cached(size):
    gaussian_kernel.cache_clear()

    kernel = gaussian_kernel(size)

    assert kernel.size == size
    assert kernel.weights.sum() == pytest.approx(1.0)
    assert np.allclose(kernel.weights, kernel.weights.T)
    assert np.argmax(kernel.weights) == (size * size) // 2
    assert gaussian_kernel(size) is kernel
    assert gaussian_kernel.cache_info().hits == 1


@pytest.mark.parametrize("size", [3, 5, 7])
def test_box_kernel_sums_to_one(size):
    assert box_kernel(size).weights.sum() == pytest.approx(1.0)


@pytest.mark.parametrize("size", [3, 5])
def test_unsharp_kernel_preserves_flat_regions(size):
    kernel = unsharp_kernel(1.5, size)

    assert kernel.weights.sum() == pytest.approx(1.0)
    assert kernel.weights[size // 2, size // 2] > 1.0


def test_sharpening_and_gradient_kernel_sums():
    assert laplacian_kernel(1.0).weights.sum() == pytest.approx(1.0)
    assert edge_enhance_kernel(0.5) == laplacian_kernel(0.5)
    for kernel in (*sobel_kernels(), *prewitt_kernels()):
        assert kernel.weights.sum() == pytest.approx(0.0)


def test_unsupported_sizes_are_rejected():
    with pytest.raises(ValueError):
        box_kernel(4)
    with pytest.raises(ValueError):
        gaussian_kernel(9)


def test_kernel_factories_build_valid_kernels():
    for name, factory in KERNEL_FACTORIES.items():
        kernel = factory()
        assert isinstance(kernel, Kernel), name
        assert kernel.size % 2 == 1


def test_extract_patch_clamps_offset_inside_image():
    pixels = np.arange(8 * 10 * 3, dtype=np.int64).reshape(8, 10, 3) % 256
    buffer = ImageBuffer(pixels)

    patch = extract_patch(buffer, 9, 7, 3)

    assert patch.origin == (7, 5)
    assert np.array_equal(patch.pixels, buffer.pixels[5:8, 7:10])


def test_extract_patch_at_valid_offset_is_unchanged():
    buffer = ImageBuffer(np.zeros((8, 10, 3), dtype=np.uint8))

    assert extract_patch(buffer, 2, 1, 5).origin == (2, 1)
    assert extract_patch(buffer, -4, -1, 3).origin == (0, 0)


def test_extract_patch_larger_than_image_fails():
    buffer = ImageBuffer(np.zeros((4, 4, 3), dtype=np.uint8))

    with pytest.raises(DimensionMismatchError):
        extract_patch(buffer, 0, 0, 5)


def test_sample_patch_is_read_only_snapshot():
    buffer = ImageBuffer(np.full((5, 5, 3), 9, dtype=np.uint8))
    patch = extract_patch(buffer, 1, 1, 3)

    with pytest.raises(ValueError):
        patch.pixels[0, 0, 0] = 1
    with pytest.raises(DimensionMismatchError):
        SamplePatch(np.zeros((3, 4, 3)))


@pytest.mark.parametrize("pixels", [np.full((3, 3, 3), 0.5), np.full((3, 3, 3), 300), np.full((3, 3, 3), -1)])
def test_sample_patch_rejects_values_image_buffers_reject(pixels):
    with pytest.raises(ValueError):
        ImageBuffer(pixels)
    with pytest.raises(ValueError):
        SamplePatch(pixels)
