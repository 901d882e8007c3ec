"""
Face login module.

Authenticates a user from a single camera image:
- Face presence and size check (detection service)
- Match against registered reference photos (recognition service)
- Account type and block status check
"""

from typing import Tuple

from .config import Config
from .detection import DetectionService
from .directory import DirectoryService, UserRecord
from .errors import (
    AccountBlocked,
    FaceNotDetected,
    FaceNotRecognized,
    FaceTooSmall,
    NoProfilesRegistered,
    NotFound,
    WrongAccountType,
)
from .logging_config import get_logger
from .models import UserType
from .recognition.matching import accept_match

logger = get_logger(__name__)


class FaceLogin:
    """Face-based login against the student and admin directories."""

    def __init__(self, detector: DetectionService, directory: DirectoryService, config: Config):
        self.detector = detector
        self.directory = directory
        self.min_face_size = config.min_login_face_size
        self.threshold = config.recognition_confidence_threshold

    def authenticate(self, image_jpeg: bytes, user_type: UserType) -> Tuple[UserType, UserRecord]:
        """
        Identify the user in front of the camera.

        Args:
            image_jpeg: JPEG-encoded probe image
            user_type: Account type the user is logging in as

        Returns:
            (user type, user record)

        Raises:
            LoginError: Face missing, too small, unknown, wrong type or blocked
            NotFound: Recognized id no longer exists
            DetectionError: Detection/recognition service failure
        """
        result = self.detector.detect(image_jpeg)
        if not result.faces:
            raise FaceNotDetected('No face detected. Please look at the camera.')

        box = result.faces[0].bounding_box
        if box.width <= self.min_face_size or box.height <= self.min_face_size:
            raise FaceTooSmall('Please move closer to the camera.')

        profiles = self.directory.get_users_with_photos(user_type)
        if not profiles:
            raise NoProfilesRegistered(f'No {user_type.value.lower()} profiles with photos are registered.')

        match = self.detector.recognize(image_jpeg, profiles)
        user_id = accept_match(match, self.threshold)
        if user_id is None:
            logger.info(f'Face login rejected (confidence {match.confidence:.2f})')
            raise FaceNotRecognized('Face not recognized.')

        found = self.directory.get_user_by_id(user_id)
        if found is None:
            raise NotFound('Recognized user no longer exists.')

        found_type, user = found
        if found_type != user_type:
            raise WrongAccountType(f'This face belongs to a {found_type.value.lower()} account.')
        if user.is_blocked:
            raise AccountBlocked('This account has been blocked.')

        logger.info(f'✅ Face login: {user.name} ({found_type.value})')
        return found_type, user
