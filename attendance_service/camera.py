"""
Camera capture module.

Handles connection to camera sources:
- Local webcams (index 0, 1, 2)
- RTSP / HTTP streams

A CaptureSession is the capture resource of one analysis session: it
reads frames and encodes them as JPEG for the detection service.
"""

import time
from typing import Optional

import cv2
import numpy as np

from .config import Config
from .logging_config import get_logger

logger = get_logger(__name__)


def _parse_source(camera_source: str):
    """Local camera index or stream URL."""
    try:
        return int(camera_source)
    except ValueError:
        return camera_source


def connect_camera(config: Config, max_retries: int = 3) -> cv2.VideoCapture:
    """
    Connect to camera with retry logic.

    Args:
        config: Service configuration
        max_retries: Maximum connection attempts

    Returns:
        Opened VideoCapture object

    Raises:
        RuntimeError: If connection fails after max_retries
    """
    source = _parse_source(config.camera_source)
    camera_type = 'local' if isinstance(source, int) else 'stream'

    for attempt in range(max_retries):
        logger.info(
            f'Connecting to {camera_type} camera {_sanitize_url(str(source))} '
            f'(attempt {attempt + 1}/{max_retries})...'
        )

        video_capture = cv2.VideoCapture(source)
        if camera_type == 'stream' and str(source).startswith('rtsp://'):
            video_capture.set(cv2.CAP_PROP_BUFFERSIZE, 1)

        if video_capture.isOpened():
            ret, frame = video_capture.read()
            if ret and frame is not None:
                logger.info(f'✅ Camera connected ({camera_type}), frame size {frame.shape[1]}x{frame.shape[0]}')
                return video_capture
            logger.warning('Camera opened but failed to read frame')
        else:
            logger.warning('Failed to open camera')
        video_capture.release()

        # Wait before retry (exponential backoff)
        if attempt < max_retries - 1:
            wait_time = 2 ** attempt
            logger.info(f'Retrying in {wait_time} seconds...')
            time.sleep(wait_time)

    raise RuntimeError(f'Cannot connect to camera after {max_retries} attempts')


def encode_jpeg(frame: np.ndarray, quality: int) -> Optional[bytes]:
    """
    Encode a BGR frame as JPEG.

    Args:
        frame: Image array
        quality: JPEG quality 0-100

    Returns:
        JPEG bytes or None if encoding failed
    """
    ok, buffer = cv2.imencode('.jpg', frame, [cv2.IMWRITE_JPEG_QUALITY, int(quality)])
    if not ok:
        return None
    return buffer.tobytes()


class CaptureSession:
    """
    Capture resource of one analysis session.

    release() is idempotent and safe to call on every exit path.
    """

    def __init__(self, config: Config, video_capture: Optional[cv2.VideoCapture] = None):
        """
        Initialize capture session.

        Args:
            config: Service configuration
            video_capture: Already opened capture (default: connect now)
        """
        self.config = config
        self._capture = video_capture if video_capture is not None else connect_camera(config)
        self._released = False

    @property
    def is_open(self) -> bool:
        return not self._released and self._capture is not None and self._capture.isOpened()

    def read_jpeg(self) -> Optional[bytes]:
        """
        Capture one frame and encode it.

        Returns:
            JPEG bytes or None if no frame could be read
        """
        if not self.is_open:
            return None

        ret, frame = self._capture.read()
        if not ret or frame is None or frame.size == 0:
            return None

        return encode_jpeg(frame, self.config.jpeg_quality)

    def reconnect(self) -> None:
        """
        Reconnect after repeated read failures.

        Raises:
            RuntimeError: Camera could not be reopened
        """
        logger.error('Too many capture failures, reconnecting...')
        self._release_capture()
        self._capture = connect_camera(self.config)
        self._released = False

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        self._release_capture()
        logger.info('Camera released')

    def _release_capture(self) -> None:
        if self._capture is None:
            return
        try:
            self._capture.release()
        except cv2.error as e:
            logger.warning(f'Error releasing camera: {e}')
        self._capture = None


def _sanitize_url(url: str) -> str:
    """
    Remove password from URL for logging.

    Args:
        url: URL with potential password

    Returns:
        Sanitized URL
    """
    if '://' not in url:
        return url

    protocol, rest = url.split('://', 1)
    if '@' in rest:
        creds, host = rest.rsplit('@', 1)
        if ':' in creds:
            username = creds.split(':', 1)[0]
            return f'{protocol}://{username}@{host}'

    return url
