import numpy as np
import pytest

from anonymizer.boxes import Box
from anonymizer.errors import InvalidInput
from anonymizer.raster import NumpyBackend, RenderCapabilities, probe_capabilities, soften_factor
from anonymizer.render import Mode, RenderParams, Renderer, blur_strength, pixel_grid


@pytest.fixture
def renderer(backend):
    return Renderer(backend, probe_capabilities(backend))


def test_box_mode_fills_exactly_the_rectangle(renderer, noise_image):
    original = noise_image.copy()
    out = renderer.render(noise_image, [Box(10, 10, 30, 30)], Mode.BOX, RenderParams())
    assert np.all(out[10:40, 10:40] == 0)
    outside = np.ones(out.shape[:2], dtype=bool)
    outside[10:40, 10:40] = False
    np.testing.assert_array_equal(out[outside], original[outside])
    np.testing.assert_array_equal(noise_image, original)


def test_box_mode_custom_color_and_grayscale():
    gray = np.full((20, 20), 128, dtype=np.uint8)
    out = Renderer(NumpyBackend(), fill_color=(255, 0, 0)).render(gray, [Box(0, 0, 5, 5)], "box")
    assert np.all(out[:5, :5] == 255)
    assert np.all(out[5:, :] == 128)


def test_empty_boxes_return_unmodified_copy(renderer, noise_image):
    for mode in Mode:
        out = renderer.render(noise_image, [], mode, RenderParams())
        np.testing.assert_array_equal(out, noise_image)
        assert out is not noise_image


def test_out_of_bounds_boxes_are_clamped(renderer, noise_image):
    out = renderer.render(noise_image, [Box(90, 90, 30, 30), Box(150, 150, 10, 10)], Mode.BOX)
    assert np.all(out[90:, 90:] == 0)
    np.testing.assert_array_equal(out[:90, :], noise_image[:90, :])


@pytest.mark.parametrize("width,block,expected", [(20, 10, 2), (9, 10, 1), (40, 16, 2), (20, 2, 5)])
def test_pixel_grid(width, block, expected):
    assert pixel_grid(width, width, block) == (expected, expected)


def test_pixelate_produces_uniform_blocks(renderer, noise_image):
    original = noise_image.copy()
    out = renderer.render(noise_image, [Box(0, 0, 40, 40)], Mode.PIXELATE, RenderParams(pixel_block_size=10))
    region = out[:40, :40]
    for by in range(4):
        for bx in range(4):
            block = region[by * 10:(by + 1) * 10, bx * 10:(bx + 1) * 10]
            assert np.all(block == block[0, 0])
    np.testing.assert_array_equal(out[40:, :], original[40:, :])
    np.testing.assert_array_equal(out[:, 40:], original[:, 40:])
    # block colors come from the image itself
    colors = {tuple(region[y, x]) for y in range(0, 40, 10) for x in range(0, 40, 10)}
    pixels = {tuple(p) for p in original[:40, :40].reshape(-1, 3)}
    assert colors <= pixels


def test_pixelate_small_box_becomes_single_block(renderer, noise_image):
    out = renderer.render(noise_image, [Box(50, 50, 9, 7)], Mode.PIXELATE, RenderParams(pixel_block_size=10))
    region = out[50:57, 50:59]
    assert np.all(region == region[0, 0])


def test_blur_strength_adapts_to_face_size():
    assert blur_strength(100, 100, Box(0, 0, 10, 10), 12) == pytest.approx(10.0)
    assert blur_strength(1000, 1000, Box(0, 0, 10, 10), 12) == pytest.approx(6.0)
    assert blur_strength(100, 100, Box(0, 0, 80, 80), 12) == pytest.approx(30.0)
    assert blur_strength(100, 100, Box(0, 0, 10, 10), 24) == pytest.approx(20.0)


def test_blur_strength_monotonic_in_radius():
    box = Box(20, 20, 25, 30)
    strengths = [blur_strength(200, 150, box, r) for r in range(4, 41)]
    assert all(a <= b for a, b in zip(strengths, strengths[1:]))
    factors = [soften_factor(s) for s in strengths]
    assert all(a <= b for a, b in zip(factors, factors[1:]))


def test_blur_changes_faces_and_keeps_far_pixels(renderer, large_noise_image):
    original = large_noise_image.copy()
    out = renderer.render(large_noise_image, [Box(80, 80, 40, 40)], Mode.BLUR, RenderParams(blur_radius=12))
    np.testing.assert_array_equal(out[:30, :], original[:30, :])
    np.testing.assert_array_equal(out[:, :30], original[:, :30])
    face = out[90:110, 90:110].astype(float)
    assert np.abs(face - original[90:110, 90:110]).mean() > 10
    assert face.std() < original[90:110, 90:110].astype(float).std()
    np.testing.assert_array_equal(large_noise_image, original)


def test_stronger_blur_radius_smooths_more(renderer, large_noise_image):
    box = [Box(60, 60, 80, 80)]
    weak = renderer.render(large_noise_image, box, Mode.BLUR, RenderParams(blur_radius=4))
    strong = renderer.render(large_noise_image, box, Mode.BLUR, RenderParams(blur_radius=40))
    assert strong[90:110, 90:110].astype(float).std() <= weak[90:110, 90:110].astype(float).std()


def test_blur_falls_back_to_per_box_without_smoothing(large_noise_image):
    backend = NumpyBackend(smoothing=False)
    caps = probe_capabilities(backend)
    assert caps == RenderCapabilities(smooth_filter=False)
    original = large_noise_image.copy()
    out = Renderer(backend, caps).render(large_noise_image, [Box(80, 80, 40, 40)], Mode.BLUR)
    outside = np.ones(out.shape[:2], dtype=bool)
    outside[80:120, 80:120] = False
    np.testing.assert_array_equal(out[outside], original[outside])
    assert not np.array_equal(out[80:120, 80:120], original[80:120, 80:120])


def test_mode_parse_aliases():
    assert Mode.parse("Blur") is Mode.BLUR
    assert Mode.parse(None) is Mode.BLUR
    assert Mode.parse("mosaic") is Mode.PIXELATE
    assert Mode.parse("black_bar") is Mode.BOX
    assert Mode.parse(Mode.BOX) is Mode.BOX
    with pytest.raises(InvalidInput):
        Mode.parse("sparkles")


def test_render_params_are_clamped():
    p = RenderParams(1, 100)
    assert (p.blur_radius, p.pixel_block_size) == (4, 40)
    assert RenderParams() == RenderParams(12, 16)
    assert RenderParams(pixel_block_size=5).pixel_block_size == 4
    assert RenderParams(pixel_block_size=7).pixel_block_size == 6
    assert RenderParams(blur_radius=7).blur_radius == 7


@pytest.mark.parametrize("mode", list(Mode))
def test_single_channel_images_keep_their_shape(renderer, mode):
    img = np.full((60, 60, 1), 100, dtype=np.uint8)
    out = renderer.render(img, [Box(10, 10, 30, 30)], mode, RenderParams(pixel_block_size=10))
    assert out.shape == img.shape
    assert out.dtype == np.uint8
    assert np.all(out[50:, 50:] == 100)
