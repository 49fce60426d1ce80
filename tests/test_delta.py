"""Tests for gifcompose.delta module."""

import numpy as np
import pytest
from PIL import Image

from gifcompose.delta import (
    EMPTY_RECT,
    DeltaEncoder,
    Rect,
    center_on_canvas,
    diff_image,
)
from gifcompose.error_handling import ConfigurationError
from gifcompose.histogram import Color

from conftest import BLACK, BLUE, RED, WHITE, solid


class TestDiffImage:
    """Tests for diff_image function."""

    @pytest.mark.fast
    def test_identical_images(self):
        image = solid((5, 4), RED)

        pixels, rect = diff_image(image, image.copy())

        assert pixels is None
        assert rect == EMPTY_RECT
        assert rect.is_empty

    @pytest.mark.fast
    def test_single_pixel(self):
        key = solid((6, 5), RED)
        image = key.copy()
        image.putpixel((3, 2), BLUE)

        pixels, rect = diff_image(key, image)

        assert rect == Rect(3, 2, 1, 1)
        assert pixels.shape == (1, 1, 4)
        assert pixels[0, 0].tolist() == [*BLUE, 255]

    @pytest.mark.fast
    def test_whole_canvas(self):
        pixels, rect = diff_image(solid((4, 3), RED), solid((4, 3), BLUE))

        assert rect == Rect(0, 0, 4, 3)
        assert pixels.shape == (3, 4, 4)

    @pytest.mark.fast
    def test_changes_confined_to_first_row(self):
        key = solid((6, 3), RED)
        image = key.copy()
        image.putpixel((1, 0), BLUE)
        image.putpixel((4, 0), BLUE)

        pixels, rect = diff_image(key, image)

        assert rect == Rect(1, 0, 4, 1)
        assert pixels[0, 0].tolist() == [*BLUE, 255]
        assert pixels[0, 1].tolist() == [*RED, 255]

    @pytest.mark.fast
    def test_bounding_box_of_scattered_changes(self):
        key = solid((10, 10), RED)
        image = key.copy()
        image.putpixel((2, 7), BLUE)
        image.putpixel((8, 3), BLUE)

        _, rect = diff_image(key, image)

        assert rect == Rect(2, 3, 7, 5)

    @pytest.mark.fast
    def test_alpha_difference_counts(self):
        key = solid((2, 2), (*RED, 255), mode="RGBA")
        image = solid((2, 2), (*RED, 255), mode="RGBA")
        image.putpixel((1, 1), (*RED, 0))

        _, rect = diff_image(key, image)

        assert rect == Rect(1, 1, 1, 1)

    @pytest.mark.fast
    def test_accepts_arrays(self):
        key = np.zeros((2, 3, 3), dtype=np.uint8)
        image = key.copy()
        image[1, 2] = 9

        _, rect = diff_image(key, image)

        assert rect == Rect(2, 1, 1, 1)

    @pytest.mark.fast
    def test_size_mismatch(self):
        with pytest.raises(ValueError):
            diff_image(solid((2, 2), RED), solid((3, 2), RED))


class TestCenterOnCanvas:
    """Tests for center_on_canvas function."""

    @pytest.mark.fast
    def test_smaller_frame_centred_on_black(self):
        canvas = center_on_canvas(solid((2, 2), WHITE), (4, 4))
        px = np.array(canvas)

        assert canvas.mode == "RGBA"
        assert (px[1:3, 1:3, :3] == WHITE).all()
        assert px[0, 0].tolist() == [*BLACK, 255]
        assert px[3, 3].tolist() == [*BLACK, 255]

    @pytest.mark.fast
    def test_odd_margin_rounds_down(self):
        px = np.array(center_on_canvas(solid((1, 1), WHITE), (4, 4)))

        white = np.argwhere((px[..., :3] == WHITE).all(axis=2))
        assert white.tolist() == [[1, 1]]

    @pytest.mark.fast
    def test_larger_frame_cropped(self):
        frame = solid((6, 2), RED)
        frame.putpixel((0, 0), BLUE)

        canvas = center_on_canvas(frame, (3, 4))
        px = np.array(canvas)

        assert canvas.size == (3, 4)
        assert px[0, 0].tolist() == [*BLACK, 255]
        assert px[1, 0, :3].tolist() == list(BLUE)
        assert (px[1:3, 1:3, :3] == RED).all()
        assert px[3, 2].tolist() == [*BLACK, 255]


class TestDeltaEncoder:
    """Tests for DeltaEncoder write requests."""

    @pytest.mark.fast
    def test_first_frame_written_in_full(self):
        encoder = DeltaEncoder()

        request = encoder.start(solid((5, 3), RED), 40)

        assert request.rect == Rect(0, 0, 5, 3)
        assert request.delay == 40
        assert request.image.size == (5, 3)
        assert Color(*RED) in request.image.palette

    @pytest.mark.fast
    def test_changed_region_only(self, frames_abc):
        encoder = DeltaEncoder()
        encoder.start(frames_abc[0], 10)

        request = encoder.add(frames_abc[1], 20)

        assert request.rect == Rect(2, 2, 4, 4)
        assert request.image.size == (4, 4)
        assert request.delay == 20

    @pytest.mark.fast
    def test_unchanged_frame_emits_nothing(self):
        encoder = DeltaEncoder()
        encoder.start(solid((3, 3), RED), 10)

        assert encoder.add(solid((3, 3), RED), 25) is None
        assert encoder.pending_delay == 25

    @pytest.mark.fast
    def test_delay_of_identical_frames_accumulates(self):
        a, b = solid((4, 4), RED), solid((4, 4), BLUE)

        requests = DeltaEncoder().encode([a, a.copy(), b], [100, 150, 200])

        assert len(requests) == 2
        assert [r.delay for r in requests] == [100, 350]

    @pytest.mark.fast
    def test_trailing_delay_folded_into_last_request(self):
        a, b = solid((4, 4), RED), solid((4, 4), BLUE)

        requests = DeltaEncoder().encode([a, b, b.copy(), b.copy()], [10, 20, 30, 40])

        assert [r.delay for r in requests] == [10, 90]
        assert sum(r.delay for r in requests) == 100

    @pytest.mark.fast
    def test_single_frame(self):
        requests = DeltaEncoder().encode([solid((2, 2), RED)], [70])

        assert len(requests) == 1
        assert requests[0].delay == 70

    @pytest.mark.fast
    def test_key_follows_emitted_frames(self, frames_abc):
        requests = DeltaEncoder().encode(frames_abc, [10, 10, 10])

        assert [r.rect for r in requests] == [
            Rect(0, 0, 12, 10),
            Rect(2, 2, 4, 4),
            Rect(7, 4, 4, 5),
        ]

    @pytest.mark.fast
    def test_mismatched_frame_is_centred(self):
        encoder = DeltaEncoder()
        encoder.start(solid((4, 4), RED), 10)

        request = encoder.add(solid((2, 2), RED), 10)

        # the black margin differs from the red key everywhere but the centre
        assert request.rect == Rect(0, 0, 4, 4)
        assert encoder.size == (4, 4)

    @pytest.mark.fast
    def test_palette_size_follows_colors(self):
        request = DeltaEncoder(colors=16).start(solid((2, 2), RED), 0)

        assert len(request.image.palette) == 16

    @pytest.mark.fast
    def test_size_before_start(self):
        with pytest.raises(ConfigurationError):
            DeltaEncoder().size

    @pytest.mark.fast
    def test_too_few_colors(self):
        with pytest.raises(ConfigurationError):
            DeltaEncoder(colors=1).start(solid((2, 2), RED), 0)

    @pytest.mark.fast
    @pytest.mark.parametrize(
        "frames, delays",
        [([], []), ([Image.new("RGB", (1, 1))], []), ([Image.new("RGB", (1, 1))], [1, 2])],
    )
    def test_invalid_sequences(self, frames, delays):
        with pytest.raises(ConfigurationError):
            DeltaEncoder().encode(frames, delays)
