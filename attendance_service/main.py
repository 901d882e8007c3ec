"""
Attendance Service - Main Entry Point

Runs one attendance station: the analysis event loop on the main thread
and the HTTP API in a background thread.
"""

import os
import sys
import argparse
import threading
from dataclasses import replace
from pathlib import Path

from .app import create_app
from .camera import CaptureSession
from .config import Config, load_config
from .detection import DetectionClient
from .directory import DirectoryService
from .logging_config import setup_logging, get_logger
from .login import FaceLogin
from .service import AttendanceService
from .storage import JsonFileStore
from .utils.timing import EventLoop

logger = get_logger(__name__)


def _load_local_env() -> None:
    """Load environment variables from attendance_service/.env if present."""
    env_path = Path(__file__).resolve().parent / '.env'
    if not env_path.exists():
        return

    for raw_line in env_path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith('#') or '=' not in line:
            continue
        key, value = line.split('=', 1)
        os.environ.setdefault(key.strip(), value.strip())


def parse_args() -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description='Attendance Service - Face Tracking and Attendance Logging'
    )

    parser.add_argument(
        '--camera-source',
        type=str,
        help='Camera index or stream URL (or set CAMERA_SOURCE)'
    )

    parser.add_argument(
        '--ai-service-url',
        type=str,
        help='Detection/recognition service URL (or set AI_SERVICE_URL)'
    )

    parser.add_argument(
        '--port',
        type=int,
        help='HTTP API port (or set API_PORT)'
    )

    parser.add_argument(
        '--data-dir',
        type=str,
        help='Directory for the JSON collections (or set DATA_DIR)'
    )

    parser.add_argument(
        '--autostart',
        action='store_true',
        help='Start a capture session right away'
    )

    parser.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug logging'
    )

    return parser.parse_args()


def apply_overrides(config: Config, args: argparse.Namespace) -> Config:
    """Apply command line overrides on top of the environment config."""
    overrides = {}
    if args.camera_source:
        overrides['camera_source'] = args.camera_source
        if not os.getenv('STATION_ID'):
            overrides['station_id'] = args.camera_source
    if args.ai_service_url:
        overrides['ai_service_url'] = args.ai_service_url.rstrip('/')
    if args.port is not None:
        overrides['api_port'] = args.port
    if args.data_dir:
        overrides['data_dir'] = args.data_dir
    if args.debug:
        overrides['debug_mode'] = True
    return replace(config, **overrides) if overrides else config


def start_flask_server(app, config: Config) -> threading.Thread:
    """
    Start Flask server in background thread.

    Args:
        app: Flask app
        config: Service configuration

    Returns:
        The server thread (daemon)
    """
    logger.info(f'Starting HTTP API on port {config.api_port}...')
    thread = threading.Thread(
        target=app.run,
        kwargs={
            'host': '0.0.0.0',
            'port': config.api_port,
            'threaded': True,
            'debug': False,
            'use_reloader': False,
        },
        name='http-api',
        daemon=True,
    )
    thread.start()
    return thread


def main() -> None:
    """Main entry point."""
    _load_local_env()
    args = parse_args()
    config = apply_overrides(load_config(), args)

    # Setup logging
    setup_logging(config.station_id, config.debug_mode)

    logger.info('=' * 60)
    logger.info('Attendance Service')
    logger.info('=' * 60)
    logger.info(f'Camera: {config.camera_source}')
    logger.info(f'AI service: {config.ai_service_url}')
    logger.info(f'Data dir: {config.data_dir}')
    logger.info(f'Analysis interval: {config.analysis_interval_seconds}s')
    logger.info('=' * 60)

    stop_flag = threading.Event()
    loop = EventLoop()
    directory = DirectoryService(JsonFileStore(config.data_dir))
    detector = DetectionClient(config)
    service = AttendanceService(
        config=config,
        loop=loop,
        directory=directory,
        detector=detector,
        capture_factory=CaptureSession,
    )

    try:
        service.start()
        if args.autostart:
            service.start_capture(service.open_capture())

        start_flask_server(create_app(service, FaceLogin(detector, directory, config)), config)
        loop.run_forever(stop_flag)

    except KeyboardInterrupt:
        logger.info('Received keyboard interrupt, shutting down...')
    except Exception as e:
        logger.error(f'Fatal error: {e}', exc_info=True)
        service.shutdown()
        sys.exit(1)

    stop_flag.set()
    service.shutdown()


if __name__ == '__main__':
    main()
