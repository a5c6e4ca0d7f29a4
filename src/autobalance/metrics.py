"""
Prometheus metrics for the auto-balance loop.

Collectors are registered once in the default registry and labelled by
camera, so several services in one process share them.
"""

from prometheus_client import Counter, Gauge

frames_seen_counter = Counter(
    'autobalance_frames_seen_total', 'Frames received by the scheduler', ['camera'])
frames_evaluated_counter = Counter(
    'autobalance_frames_evaluated_total', 'Frames run through the control pipeline', ['camera'])
decode_errors_counter = Counter(
    'autobalance_decode_errors_total', 'Frames dropped as undecodable', ['camera'])
empty_samples_counter = Counter(
    'autobalance_empty_samples_total', 'Evaluations skipped on an empty histogram', ['camera'])
region_errors_counter = Counter(
    'autobalance_region_errors_total', 'Evaluations rejected for an ROI outside the frame', ['camera'])
device_errors_counter = Counter(
    'autobalance_device_errors_total', 'Actuator failures during a control step', ['camera'])

shutter_gauge = Gauge('autobalance_shutter_ms', 'Current shutter time in ms', ['camera'])
gain_gauge = Gauge('autobalance_gain', 'Current sensor gain', ['camera'])
processing_time_gauge = Gauge(
    'autobalance_processing_ms', 'Processing time of the last evaluated frame in ms', ['camera'])

STAT_COUNTERS = {
    'frames_seen': frames_seen_counter,
    'frames_evaluated': frames_evaluated_counter,
    'decode_errors': decode_errors_counter,
    'empty_samples': empty_samples_counter,
    'region_errors': region_errors_counter,
    'device_errors': device_errors_counter,
}
