#!/usr/bin/env python3
"""
Run closed-loop auto exposure on a V4L2 camera and serve the control API.

Usage:
    python -m autobalance --config config/autobalance.json --port 8010
    python -m autobalance --test-source gray --port 8010
"""

import argparse
import logging
import os
import sys
from functools import partial
from logging.handlers import RotatingFileHandler

from .actuator import GuardedActuator, V4L2Actuator
from .config import load_startup_parameters
from .errors import AutoBalanceError
from .service import AutoBalanceService
from .worker import gradient_test_frame, gray_test_frame

logger = logging.getLogger("autobalance")

TEST_SOURCES = {
    "gray": partial(gray_test_frame, 128),
    "dark": partial(gray_test_frame, 10),
    "gradient": gradient_test_frame,
}


def configure_logging(log_file: str = None, level: str = "INFO") -> None:
    handlers = [logging.StreamHandler()]
    if log_file:
        os.makedirs(os.path.dirname(os.path.abspath(log_file)), exist_ok=True)
        handlers.append(RotatingFileHandler(
            log_file,
            maxBytes=10*1024*1024,  # 10MB
            backupCount=5
        ))

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers
    )


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Camera auto-balance (auto exposure) service")
    parser.add_argument("--config", help="Startup parameters JSON file")
    parser.add_argument("--device", help="Capture/control device, overrides the config")
    parser.add_argument("--test-source", choices=sorted(TEST_SOURCES),
                        help="Use a synthetic frame source instead of the camera")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=int(os.getenv('AUTOBALANCE_PORT', '8010')))
    parser.add_argument("--actuator-timeout", type=float, default=1.0,
                        help="Seconds before an actuator call is abandoned")
    parser.add_argument("--log-file", default=os.getenv('AUTOBALANCE_LOG_FILE'))
    parser.add_argument("--log-level", default="INFO")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_file, args.log_level)

    try:
        params = load_startup_parameters(args.config)
    except AutoBalanceError as e:
        logger.error(f"Invalid startup parameters: {e}")
        return 2

    device = args.device or params.device
    actuator = GuardedActuator(V4L2Actuator(device=device), timeout=args.actuator_timeout)

    if args.test_source:
        source = TEST_SOURCES[args.test_source]
        frame_interval = 1.0 / 30
    else:
        source = device if device is not None else 0
        frame_interval = 0.0

    service = AutoBalanceService(params, actuator, source=source, frame_interval=frame_interval)
    try:
        service.start()
    except AutoBalanceError as e:
        logger.error(f"Failed to start autobalance: {e}")
        return 1

    from .api import create_app
    import uvicorn

    try:
        uvicorn.run(
            create_app(service),
            host=args.host,
            port=args.port,
            log_level=args.log_level.lower(),
            access_log=True
        )
    finally:
        service.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
