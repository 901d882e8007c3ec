"""
Detection service client.

Sends frames to the external AI service for face/hand detection and
face recognition. Failures are classified into RateLimited,
NetworkUnreachable and DetectionFailed.
"""

import base64
from typing import Any, Dict, Optional, Protocol, Sequence, Tuple

import requests

from .config import Config
from .errors import DetectionFailed, NetworkUnreachable, RateLimited
from .logging_config import get_logger
from .models import (
    BoundingBox,
    DetectionResult,
    Emotion,
    FaceDetection,
    HandDetection,
    HandSign,
    HeadPose,
)
from .recognition.matching import UNKNOWN_PERSON, RecognitionMatch

logger = get_logger(__name__)


class DetectionService(Protocol):
    def detect(self, image_jpeg: bytes) -> DetectionResult: ...

    def recognize(
        self,
        probe_jpeg: bytes,
        profiles: Sequence[Tuple[str, str]]
    ) -> RecognitionMatch: ...


class DetectionClient:
    """
    HTTP client for the AI service.

    Endpoints:
        POST /detect     {"image": <base64 jpeg>} -> {"faces": [...], "hands": [...]}
        POST /recognize  {"image": ..., "profiles": [{"id", "photoBase64"}]}
                         -> {"matchedUserId": str, "confidence": float}
    """

    def __init__(self, config: Config, session: Optional[requests.Session] = None):
        """
        Initialize client.

        Args:
            config: Service configuration
            session: Optional requests session (shared connection pool)
        """
        self.base_url = config.ai_service_url.rstrip('/')
        self.timeout = config.ai_service_timeout
        self.session = session or requests.Session()

    def detect(self, image_jpeg: bytes) -> DetectionResult:
        """
        Detect faces and hands in one frame.

        Args:
            image_jpeg: JPEG-encoded frame

        Returns:
            Detection result

        Raises:
            RateLimited, NetworkUnreachable, DetectionFailed
        """
        payload = {'image': _encode_image(image_jpeg), 'mimeType': 'image/jpeg'}
        data = self._post('/detect', payload)
        return parse_detection_result(data)

    def recognize(
        self,
        probe_jpeg: bytes,
        profiles: Sequence[Tuple[str, str]]
    ) -> RecognitionMatch:
        """
        Match a probe image against reference photos.

        Args:
            probe_jpeg: JPEG-encoded probe image
            profiles: List of (user id, photo base64)

        Returns:
            Best match (matched_user_id is UNKNOWN when nobody matched)
        """
        payload = {
            'image': _encode_image(probe_jpeg),
            'profiles': [{'id': user_id, 'photoBase64': photo} for user_id, photo in profiles],
        }
        data = self._post('/recognize', payload)

        try:
            return RecognitionMatch(
                matched_user_id=str(data.get('matchedUserId') or UNKNOWN_PERSON),
                confidence=float(data.get('confidence', 0.0)),
            )
        except (AttributeError, TypeError, ValueError) as e:
            raise DetectionFailed(f'Malformed recognition response: {e}') from e

    def _post(self, path: str, payload: Dict[str, Any]) -> Any:
        url = f'{self.base_url}{path}'

        try:
            response = self.session.post(url, json=payload, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            logger.error(f'❌ Timeout calling {url}')
            raise NetworkUnreachable(f'Timeout calling {url}') from e
        except requests.exceptions.ConnectionError as e:
            logger.error(f'❌ Connection error calling {url}')
            raise NetworkUnreachable(f'Cannot connect to {url}') from e
        except requests.exceptions.RequestException as e:
            raise DetectionFailed(f'Request to {url} failed: {e}') from e

        if response.status_code == 429:
            logger.warning(f'AI service rate limit hit ({url})')
            raise RateLimited('AI service rate limit exceeded')

        if not response.ok:
            logger.error(f'❌ AI service error: {response.status_code} {response.text[:200]}')
            raise DetectionFailed(f'AI service returned {response.status_code}')

        try:
            return response.json()
        except ValueError as e:
            raise DetectionFailed('AI service returned invalid JSON') from e


def _encode_image(image_jpeg: bytes) -> str:
    return base64.b64encode(image_jpeg).decode('ascii')


def parse_detection_result(data: Any) -> DetectionResult:
    """
    Parse the detection service JSON body.

    Unknown emotions fall back to Neutral, unknown head poses to None and
    hands with unknown signs are dropped.

    Raises:
        DetectionFailed: Body does not have the expected shape
    """
    if not isinstance(data, dict):
        raise DetectionFailed('Detection response is not an object')

    try:
        faces = [_parse_face(index, item) for index, item in enumerate(data.get('faces') or [])]
        hands = [hand for hand in (_parse_hand(item) for item in data.get('hands') or []) if hand]
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise DetectionFailed(f'Malformed detection response: {e}') from e

    return DetectionResult(faces=faces, hands=hands)


def _parse_face(index: int, item: Dict[str, Any]) -> FaceDetection:
    try:
        emotion = Emotion(item.get('emotion'))
    except ValueError:
        logger.debug(f"Unknown emotion {item.get('emotion')!r}, using Neutral")
        emotion = Emotion.NEUTRAL

    head_pose: Optional[HeadPose] = None
    if item.get('headPose') is not None:
        try:
            head_pose = HeadPose(item['headPose'])
        except ValueError:
            head_pose = None

    return FaceDetection(
        external_id=str(item.get('personId', f'face-{index}')),
        bounding_box=BoundingBox.from_dict(item['boundingBox']),
        emotion=emotion,
        confidence=float(item.get('confidence', 0.0)),
        head_pose=head_pose,
    )


def _parse_hand(item: Dict[str, Any]) -> Optional[HandDetection]:
    try:
        sign = HandSign(item.get('sign'))
    except ValueError:
        logger.debug(f"Unknown hand sign {item.get('sign')!r}, skipping")
        return None

    return HandDetection(
        sign=sign,
        confidence=float(item.get('confidence', 0.0)),
        bounding_box=BoundingBox.from_dict(item['boundingBox']),
    )
