import unittest

import numpy as np

from autobalance.errors import InvalidRegion
from autobalance.histogram import HIST_SIZE, Region, compute_histogram, expected_sample_count


def uniform_frame(value, width=100, height=80, channels=3):
    return np.full((height, width, channels), value, dtype=np.uint8)


class TestRegion(unittest.TestCase):
    def test_from_corners(self) -> None:
        roi = Region.from_corners(10, 20, 110, 70)
        self.assertEqual(roi, Region(x=10, y=20, width=100, height=50))
        self.assertEqual(roi.bottom_right, (110, 70))

    def test_fits(self) -> None:
        self.assertTrue(Region(0, 0, 100, 80).fits(100, 80))
        self.assertFalse(Region(1, 0, 100, 80).fits(100, 80))
        self.assertFalse(Region(-1, 0, 10, 10).fits(100, 80))
        self.assertFalse(Region(0, 0, 0, 10).fits(100, 80))


class TestComputeHistogram(unittest.TestCase):
    def test_uniform_gray_lands_in_one_bucket(self) -> None:
        hist = compute_histogram(uniform_frame(128), Region(0, 0, 100, 80), 5)
        self.assertEqual(len(hist), HIST_SIZE)
        self.assertEqual(hist[128], 20 * 16)
        self.assertEqual(int(hist.sum()), 20 * 16)

    def test_sample_count_at_non_multiple_sizes(self) -> None:
        frame = uniform_frame(50)
        for width, height, stride in [(12, 7, 5), (1, 1, 5), (5, 5, 5), (6, 11, 5), (13, 9, 2), (7, 7, 1)]:
            roi = Region(3, 4, width, height)
            hist = compute_histogram(frame, roi, stride)
            expected = -(-height // stride) * -(-width // stride)
            self.assertEqual(int(hist.sum()), expected, (width, height, stride))
            self.assertEqual(expected_sample_count(roi, stride), expected)

    def test_luminance_weights_are_bgr(self) -> None:
        roi = Region(0, 0, 1, 1)
        cases = [
            ((255, 0, 0), 29),   # 0.114 * 255 = 29.07
            ((0, 255, 0), 149),  # 0.587 * 255 = 149.685
            ((0, 0, 255), 76),   # 0.299 * 255 = 76.245
            ((255, 255, 255), 255),
            ((0, 0, 0), 0),
        ]
        for bgr, bucket in cases:
            frame = np.zeros((1, 1, 3), dtype=np.uint8)
            frame[0, 0] = bgr
            hist = compute_histogram(frame, roi, 5)
            self.assertEqual(int(hist[bucket]), 1, bgr)

    def test_only_decimated_positions_are_sampled(self) -> None:
        frame = uniform_frame(0, width=20, height=20)
        frame[2, 3] = 255   # ROI origin: sampled
        frame[7, 8] = 255   # origin + stride: sampled
        frame[3, 3] = 255   # off-grid row: skipped
        hist = compute_histogram(frame, Region(3, 2, 10, 10), 5)
        self.assertEqual(int(hist[255]), 2)
        self.assertEqual(int(hist[0]), 2)

    def test_extra_channels_are_ignored(self) -> None:
        frame = uniform_frame(200, channels=4)
        frame[:, :, 3] = 0
        hist = compute_histogram(frame, Region(0, 0, 10, 10), 5)
        self.assertEqual(int(hist[200]), 4)

    def test_not_accumulated_between_calls(self) -> None:
        frame = uniform_frame(90)
        roi = Region(0, 0, 50, 50)
        first = compute_histogram(frame, roi, 5)
        second = compute_histogram(frame, roi, 5)
        np.testing.assert_array_equal(first, second)

    def test_region_outside_image_raises(self) -> None:
        frame = uniform_frame(10, width=100, height=80)
        with self.assertRaises(InvalidRegion):
            compute_histogram(frame, Region(50, 0, 51, 10), 5)
        with self.assertRaises(InvalidRegion):
            compute_histogram(frame, Region(0, 75, 10, 6), 5)
        with self.assertRaises(InvalidRegion):
            compute_histogram(frame, Region(-1, 0, 10, 10), 5)

    def test_invalid_stride_raises(self) -> None:
        with self.assertRaises(ValueError):
            compute_histogram(uniform_frame(10), Region(0, 0, 10, 10), 0)

    def test_grayscale_image_rejected(self) -> None:
        with self.assertRaises(ValueError):
            compute_histogram(np.zeros((10, 10), dtype=np.uint8), Region(0, 0, 5, 5), 1)


if __name__ == "__main__":
    unittest.main()
