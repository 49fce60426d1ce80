"""Tests for gifcompose.quantize module."""

import numpy as np
import pytest
from PIL import Image

from gifcompose.config import QuantizerConfig
from gifcompose.histogram import Color, ColorBucket
from gifcompose.quantize import (
    BLUE,
    GREEN,
    RED,
    IndexedImage,
    MedianCutQuantizer,
    next_power_of_two,
    quantize,
)


def image_from_rows(rows):
    return np.array(rows, dtype=np.uint8)


class TestNextPowerOfTwo:
    """Tests for next_power_of_two function."""

    @pytest.mark.fast
    @pytest.mark.parametrize(
        "k, expected",
        [(2, 2), (3, 4), (4, 4), (5, 8), (200, 256), (256, 256), (257, 512)],
    )
    def test_rounds_up(self, k, expected):
        assert next_power_of_two(k) == expected


class TestLongestSide:
    """Tests for split axis selection."""

    @pytest.mark.fast
    def test_green_weight_dominates(self):
        bucket = ColorBucket.from_mapping({Color(0, 0, 0): 1, Color(100, 100, 100): 1})

        channel, lowest, highest = MedianCutQuantizer().longest_side(bucket)

        assert (channel, lowest, highest) == (GREEN, 0, 100)

    @pytest.mark.fast
    def test_wide_red_range_beats_narrow_green(self):
        bucket = ColorBucket.from_mapping({Color(0, 10, 0): 1, Color(255, 20, 0): 1})

        channel, _, _ = MedianCutQuantizer().longest_side(bucket)

        assert channel == RED

    @pytest.mark.fast
    def test_tie_goes_to_later_channel(self):
        # red range 2 -> round(0.598) = 1, green range 1 -> round(0.587) = 1
        bucket = ColorBucket.from_mapping({Color(0, 0, 0): 1, Color(2, 1, 0): 1})

        channel, _, _ = MedianCutQuantizer().longest_side(bucket)

        assert channel == GREEN

    @pytest.mark.fast
    def test_all_zero_weighted_ranges_pick_blue(self):
        bucket = ColorBucket.from_mapping({Color(0, 0, 0): 1, Color(0, 0, 1): 1})

        channel, _, _ = MedianCutQuantizer().longest_side(bucket)

        assert channel == BLUE

    @pytest.mark.fast
    def test_custom_weights(self):
        config = QuantizerConfig(LUMA_WEIGHTS=(0.0, 0.0, 1.0))
        bucket = ColorBucket.from_mapping({Color(0, 0, 0): 1, Color(255, 255, 10): 1})

        channel, _, _ = MedianCutQuantizer(config).longest_side(bucket)

        assert channel == BLUE


class TestSplit:
    """Tests for bucket splitting."""

    @pytest.mark.fast
    def test_midpoint_goes_right(self):
        bucket = ColorBucket.from_mapping(
            {Color(0, 0, 0): 1, Color(0, 50, 0): 2, Color(0, 100, 0): 3}
        )

        left, right = MedianCutQuantizer().split(bucket)

        assert left.as_dict() == {Color(0, 0, 0): 1}
        assert right.as_dict() == {Color(0, 50, 0): 2, Color(0, 100, 0): 3}

    @pytest.mark.fast
    def test_single_color_goes_right(self):
        bucket = ColorBucket.from_mapping({Color(9, 9, 9): 4})

        left, right = MedianCutQuantizer().split(bucket)

        assert left.is_empty
        assert right.as_dict() == {Color(9, 9, 9): 4}

    @pytest.mark.fast
    def test_empty_splits_into_empties(self):
        left, right = MedianCutQuantizer().split(ColorBucket())

        assert left.is_empty and right.is_empty


class TestQuantize:
    """Tests for quantize function."""

    @pytest.mark.fast
    @pytest.mark.parametrize("k", [0, 1, -3])
    def test_not_applicable_below_two(self, k):
        assert quantize(Image.new("RGB", (2, 2)), k) is None

    @pytest.mark.fast
    @pytest.mark.parametrize("k, expected", [(2, 2), (3, 4), (16, 16), (100, 128), (256, 256)])
    def test_palette_size_is_next_power_of_two(self, k, expected):
        rng = np.random.default_rng(7)
        pixels = rng.integers(0, 256, size=(16, 16, 3), dtype=np.uint8)

        result = quantize(pixels, k)

        assert len(result.palette) == expected
        assert result.indices.shape == (16, 16)
        assert int(result.indices.max()) < expected

    @pytest.mark.fast
    def test_two_colors_reproduced_exactly(self):
        dark, light = (10, 20, 30), (200, 100, 50)
        pixels = image_from_rows([[dark, light, light], [light, dark, dark]])

        result = quantize(pixels, 2)

        assert result.palette == [Color(*dark), Color(*light)]
        assert result.indices.tolist() == [[0, 1, 1], [1, 0, 0]]

    @pytest.mark.fast
    def test_every_pixel_maps_to_its_colors_entry(self):
        rng = np.random.default_rng(3)
        pixels = rng.integers(0, 256, size=(12, 9, 3), dtype=np.uint8)

        result = quantize(pixels, 8)

        keys = (pixels[..., 0].astype(int) << 16) | (pixels[..., 1].astype(int) << 8) | pixels[..., 2]
        for key in np.unique(keys):
            assigned = np.unique(result.indices[keys == key])
            assert len(assigned) == 1

    @pytest.mark.fast
    def test_three_colors_into_four_slots(self):
        red, green, blue = (255, 0, 0), (0, 255, 0), (0, 0, 255)
        pixels = image_from_rows([[red, green, blue], [blue, green, red]])

        result = quantize(pixels, 4)

        assert len(result.palette) == 4
        assert {Color(*red), Color(*green), Color(*blue)} <= set(result.palette)
        assert result.palette.count(Color(0, 0, 0)) <= 1
        for y in range(2):
            for x in range(3):
                assert result.palette[result.indices[y, x]] == Color(*pixels[y, x])

    @pytest.mark.fast
    def test_empty_leaf_repaired_from_crowded_leaf(self):
        black, near_black, gray = (0, 0, 0), (0, 0, 1), (200, 200, 200)
        pixels = image_from_rows(
            [[black] * 5 + [near_black] * 3 + [gray]]
        )

        result = quantize(pixels, 4)

        # the crowded leaf gives its most frequent color to the first empty slot
        assert result.palette[0] == Color(*black)
        assert result.palette[1] == Color(*near_black)
        assert result.palette[3] == Color(*gray)
        assert result.indices.tolist() == [[0] * 5 + [1] * 3 + [3]]

    @pytest.mark.fast
    def test_unsplittable_pair_separated_by_repair(self):
        pixels = image_from_rows([[(0, 0, 0), (0, 0, 0), (0, 0, 0), (0, 0, 1)]])

        result = quantize(pixels, 2)

        assert result.palette == [Color(0, 0, 0), Color(0, 0, 1)]
        assert result.indices.tolist() == [[0, 0, 0, 1]]

    @pytest.mark.fast
    def test_single_color_image(self):
        result = quantize(Image.new("RGB", (3, 3), (40, 50, 60)), 4)

        assert Color(40, 50, 60) in result.palette
        index = result.palette.index(Color(40, 50, 60))
        assert (result.indices == index).all()

    @pytest.mark.fast
    def test_leaf_mean_is_weighted(self):
        # eight green levels split at 70 into [0, 60] and [80, 140]
        levels = [(0, 20 * i, 0) for i in range(8)]
        pixels = image_from_rows([levels])

        result = quantize(pixels, 2)

        assert result.palette == [Color(0, 30, 0), Color(0, 110, 0)]


class TestIndexedImage:
    """Tests for IndexedImage conversions."""

    @pytest.mark.fast
    def test_to_image_round_trips_pixels(self):
        indexed = IndexedImage(
            indices=np.array([[0, 1], [1, 0]], dtype=np.uint8),
            palette=[Color(1, 2, 3), Color(250, 251, 252)],
        )

        image = indexed.to_image()

        assert image.mode == "P"
        assert image.size == (2, 2)
        assert image.convert("RGB").getpixel((1, 0)) == (250, 251, 252)
        assert indexed.palette_bytes() == bytes([1, 2, 3, 250, 251, 252])
