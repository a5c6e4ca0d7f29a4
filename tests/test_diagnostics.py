import unittest

import numpy as np

from autobalance.diagnostics import DiagnosticsStore, draw_roi, plot_histogram
from autobalance.histogram import Region


class TestRendering(unittest.TestCase):
    def test_draw_roi_leaves_input_untouched(self) -> None:
        image = np.zeros((100, 120, 3), dtype=np.uint8)
        overlay = draw_roi(image, Region(10, 20, 50, 40))

        self.assertEqual(int(image.sum()), 0)
        self.assertEqual(overlay.shape, image.shape)
        self.assertEqual(tuple(overlay[20, 10]), (0, 0, 255))
        self.assertEqual(tuple(overlay[40, 35]), (0, 0, 0))

    def test_plot_empty_histogram_is_black(self) -> None:
        plot = plot_histogram(np.zeros(256, dtype=np.int64))
        self.assertEqual(plot.shape, (256, 256, 3))
        self.assertEqual(int(plot.sum()), 0)

    def test_plot_draws_blue_line(self) -> None:
        hist = np.zeros(256, dtype=np.int64)
        hist[100:150] = 10
        plot = plot_histogram(hist, width=256, height=128)
        self.assertEqual(plot.shape, (128, 256, 3))
        self.assertGreater(int(plot[:, :, 0].sum()), 0)
        self.assertEqual(int(plot[:, :, 2].sum()), 0)


class TestDiagnosticsStore(unittest.TestCase):
    def test_publish_and_encode(self) -> None:
        store = DiagnosticsStore()
        self.assertIsNone(store.latest_jpeg("roi"))

        store.publish("roi", np.full((32, 32, 3), 90, dtype=np.uint8))
        jpeg = store.latest_jpeg("roi")
        self.assertTrue(jpeg.startswith(b"\xff\xd8"))
        self.assertEqual(store.available(), ["roi"])

        store.clear()
        self.assertEqual(store.available(), [])

    def test_unknown_channel_rejected(self) -> None:
        with self.assertRaises(ValueError):
            DiagnosticsStore().publish("depth", np.zeros((2, 2, 3), dtype=np.uint8))


if __name__ == "__main__":
    unittest.main()
