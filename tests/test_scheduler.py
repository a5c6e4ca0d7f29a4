import unittest
from unittest import mock

import numpy as np

from autobalance.config import ConfigurationSurface, ReconfigureRequest, build_config
from autobalance.controller import ActuatorLimits, ControlAction, ExposureController
from autobalance.diagnostics import DiagnosticsStore
from autobalance.errors import DeviceError, FrameDecodeError, InvalidRegion
from autobalance.scheduler import FrameScheduler, decode_frame


class FakeActuator:
    def __init__(self) -> None:
        self.calls: list = []
        self.fail = False

    def set_serial(self, serial) -> None:
        pass

    def connect(self) -> None:
        pass

    def set_shutter(self, value: float) -> None:
        if self.fail:
            raise DeviceError("device unplugged")
        self.calls.append(("set_shutter", value))

    def set_gain(self, value: float) -> None:
        if self.fail:
            raise DeviceError("device unplugged")
        self.calls.append(("set_gain", value))

    def close(self) -> None:
        pass


def frame(value, width=64, height=48):
    return np.full((height, width, 3), value, dtype=np.uint8)


def make_config(**overrides):
    fields = dict(
        roi_x_top_left=0, roi_y_top_left=0, roi_x_bottom_right=64, roi_y_bottom_right=48,
        msv_gray_reference=128.0, msv_error_tolerance=3.0,
        k_shutter=0.01, k_gain=0.01, calibration_step=1, show_roi_and_hist=False,
    )
    fields.update(overrides)
    return build_config(ReconfigureRequest(**fields))


class TestDecodeFrame(unittest.TestCase):
    def test_rejects_malformed_frames(self) -> None:
        for bad in (None, b"\x00" * 10, [[1, 2, 3]], np.zeros((4, 4), np.uint8),
                    np.zeros((4, 4, 2), np.uint8), np.zeros((4, 4, 3), np.float32),
                    np.zeros((0, 4, 3), np.uint8)):
            with self.assertRaises(FrameDecodeError):
                decode_frame(bad)

    def test_accepts_bgr(self) -> None:
        image = frame(10)
        self.assertIs(decode_frame(image), image)


class TestFrameScheduler(unittest.TestCase):
    def setUp(self) -> None:
        self.actuator = FakeActuator()
        self.limits = ActuatorLimits(min_shutter=0.1, max_shutter=30.0, min_gain=1.0, max_gain=16.0)
        self.controller = ExposureController(self.actuator, self.limits)
        self.surface = ConfigurationSurface(make_config())
        self.diagnostics = DiagnosticsStore()
        self.scheduler = FrameScheduler(self.controller, self.surface, diagnostics=self.diagnostics)

    def test_only_every_calibration_step_frame_is_evaluated(self) -> None:
        self.surface.update(calibration_step=3)
        results = [self.scheduler.on_frame(frame(128)) for _ in range(9)]
        evaluated = [r.frame_index for r in results if r.evaluated]
        self.assertEqual(evaluated, [0, 3, 6])
        self.assertEqual(self.scheduler.frame_index, 9)
        self.assertEqual(self.scheduler.get_stats()['frames_evaluated'], 3)

    def test_counter_advances_on_skipped_and_failed_frames(self) -> None:
        self.scheduler.on_frame("not an image")
        self.scheduler.on_frame(frame(128))
        self.assertEqual(self.scheduler.frame_index, 2)
        stats = self.scheduler.get_stats()
        self.assertEqual(stats['decode_errors'], 1)
        self.assertEqual(stats['frames_seen'], 2)

    def test_decode_error_skips_frame(self) -> None:
        self.controller.initialize(shutter=10.0, gain=4.0)
        self.actuator.calls.clear()
        result = self.scheduler.on_frame(np.zeros((48, 64), np.uint8))
        self.assertEqual(result.skipped_reason, "decode_error")
        self.assertEqual(self.actuator.calls, [])

    def test_mid_gray_holds_settings(self) -> None:
        self.controller.initialize(shutter=10.0, gain=4.0)
        self.actuator.calls.clear()

        for _ in range(10):
            result = self.scheduler.on_frame(frame(128))
            self.assertTrue(result.evaluated)
            self.assertAlmostEqual(result.msv, 129.0, delta=1.0)
            self.assertEqual(result.action, ControlAction.NONE)

        self.assertEqual(self.actuator.calls, [])
        state = self.controller.state
        self.assertEqual((state.shutter, state.gain), (10.0, 4.0))

    def test_black_roi_at_max_shutter_drives_gain_to_max(self) -> None:
        self.controller.initialize(shutter=30.0, gain=1.0)
        gains = []
        for _ in range(10):
            result = self.scheduler.on_frame(frame(0))
            self.assertEqual(result.action, ControlAction.GAIN_UP)
            state = self.controller.state
            self.assertEqual(state.shutter, 30.0)
            gains.append(state.gain)

        self.assertEqual(gains, sorted(gains))
        self.assertEqual(gains[-1], 16.0)
        first_max = gains.index(16.0)
        self.assertLess(first_max, 9)
        self.assertTrue(all(g == 16.0 for g in gains[first_max:]))

    def test_config_snapshot_drives_reference(self) -> None:
        self.controller.initialize(shutter=10.0, gain=1.0)
        self.surface.update(msv_gray_reference=200.0)
        result = self.scheduler.on_frame(frame(128))
        self.assertEqual(result.action, ControlAction.SHUTTER_UP)
        self.assertAlmostEqual(result.error, 200.0 - 129.0)

    def test_roi_outside_frame_raises_invalid_region(self) -> None:
        self.surface.update(roi_x_bottom_right=640, roi_y_bottom_right=480)
        with self.assertRaises(InvalidRegion):
            self.scheduler.on_frame(frame(128))
        self.assertEqual(self.scheduler.frame_index, 1)
        self.assertEqual(self.scheduler.get_stats()['region_errors'], 1)

    def test_empty_sample_skips_control_step(self) -> None:
        self.controller.initialize(shutter=10.0, gain=4.0)
        self.actuator.calls.clear()
        with mock.patch("autobalance.scheduler.compute_histogram",
                        return_value=np.zeros(256, dtype=np.int64)):
            result = self.scheduler.on_frame(frame(0))
        self.assertEqual(result.skipped_reason, "empty_sample")
        self.assertEqual(self.actuator.calls, [])
        self.assertEqual(self.scheduler.get_stats()['empty_samples'], 1)

    def test_device_error_is_counted_and_raised(self) -> None:
        self.controller.initialize(shutter=10.0, gain=4.0)
        self.actuator.fail = True
        with self.assertRaises(DeviceError):
            self.scheduler.on_frame(frame(0))
        self.assertEqual(self.scheduler.get_stats()['device_errors'], 1)
        self.assertEqual(self.controller.state.shutter, 10.0)

    def test_diagnostics_only_when_enabled(self) -> None:
        self.scheduler.on_frame(frame(128))
        self.assertEqual(self.diagnostics.available(), [])

        self.surface.update(show_roi_and_hist=True)
        self.scheduler.on_frame(frame(128))
        self.assertEqual(self.diagnostics.available(), ["histogram", "roi"])
        self.assertEqual(self.diagnostics.latest("histogram").shape, (256, 256, 3))
        self.assertEqual(self.diagnostics.latest("roi").shape, (48, 64, 3))

    def test_periodic_status_log(self) -> None:
        with self.assertLogs("autobalance.scheduler", level="INFO") as logs:
            for _ in range(61):
                self.scheduler.on_frame(frame(128))
        status_lines = [line for line in logs.output if "msv_error" in line]
        self.assertEqual(len(status_lines), 2)
        self.assertIn("ProcessingTime", status_lines[0])

    def test_reset(self) -> None:
        self.scheduler.on_frame(frame(128))
        self.scheduler.reset()
        self.assertEqual(self.scheduler.frame_index, 0)
        self.assertEqual(self.scheduler.get_stats()['frames_seen'], 0)


if __name__ == "__main__":
    unittest.main()
