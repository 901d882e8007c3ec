"""
Error taxonomy for Attendance Service.

Detector errors are recovered by the analysis scheduler. Data errors
propagate to the caller of the mutating operation. Login errors carry
the message shown to the user.
"""


class AttendanceServiceError(Exception):
    """Base class for all service errors."""


# --- Detection service ---

class DetectionError(AttendanceServiceError):
    """The external detection service could not analyze a frame."""


class RateLimited(DetectionError):
    """The detection service rejected the request with a rate limit."""


class NetworkUnreachable(DetectionError):
    """The detection service could not be reached."""


class DetectionFailed(DetectionError):
    """Any other detection failure (bad status, malformed response)."""


# --- Directory / persistence ---

class NotFound(AttendanceServiceError):
    """The referenced student or admin does not exist."""


class ImmutableAccount(AttendanceServiceError):
    """A protected account (Principal) cannot be blocked or deleted."""


class LinkAlreadyExists(AttendanceServiceError):
    """The student already has a face linked."""


class DuplicateRecord(AttendanceServiceError):
    """A student or admin with the same identifier is already registered."""


# --- Face login ---

class LoginError(AttendanceServiceError):
    """Face login was rejected."""


class FaceNotDetected(LoginError):
    pass


class FaceTooSmall(LoginError):
    pass


class NoProfilesRegistered(LoginError):
    pass


class FaceNotRecognized(LoginError):
    pass


class WrongAccountType(LoginError):
    pass


class AccountBlocked(LoginError):
    pass
