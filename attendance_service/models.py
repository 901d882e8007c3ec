"""
Domain model for Attendance Service.

Enums carry the string values used on the wire and in storage.
Records convert to/from camelCase dicts with to_dict()/from_dict().
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class Emotion(str, Enum):
    HAPPY = 'Happy'
    SAD = 'Sad'
    ANGRY = 'Angry'
    SURPRISED = 'Surprised'
    NEUTRAL = 'Neutral'
    DISGUSTED = 'Disgusted'
    FEARFUL = 'Fearful'


class HandSign(str, Enum):
    THUMBS_UP = 'Thumbs Up'
    THUMBS_DOWN = 'Thumbs Down'
    PEACE = 'Peace'
    OK = 'OK'
    FIST = 'Fist'
    WAVE = 'Wave'
    POINTING = 'Pointing'
    HIGH_FIVE = 'High Five'
    CALL_ME = 'Call Me'
    CROSSED_FINGERS = 'Crossed Fingers'
    LOVE = 'Love'


class HeadPose(str, Enum):
    LOOKING_STRAIGHT = 'Looking Straight'
    LOOKING_LEFT = 'Looking Left'
    LOOKING_RIGHT = 'Looking Right'
    LOOKING_UP = 'Looking Up'
    LOOKING_DOWN = 'Looking Down'


class Year(str, Enum):
    FIRST = '1st Year'
    SECOND = '2nd Year'
    THIRD = '3rd Year'
    FOURTH = '4th Year'


class Designation(str, Enum):
    PRINCIPAL = 'Principal'
    VICE_PRINCIPAL = 'Vice Principal'
    HOD = 'HOD'
    INCHARGE = 'Incharge'
    TEACHER = 'Teacher'


class UserType(str, Enum):
    ADMIN = 'ADMIN'
    STUDENT = 'STUDENT'


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned box in normalized frame coordinates (0.0 - 1.0)."""

    x: float
    y: float
    width: float
    height: float

    @property
    def area(self) -> float:
        return self.width * self.height

    def to_dict(self) -> Dict[str, float]:
        return {'x': self.x, 'y': self.y, 'width': self.width, 'height': self.height}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BoundingBox':
        return cls(
            x=float(data['x']),
            y=float(data['y']),
            width=float(data['width']),
            height=float(data['height']),
        )


@dataclass(frozen=True)
class StudentInfo:
    name: str
    roll_number: str
    department: str
    year: Year
    is_blocked: bool = False
    photo_base64: Optional[str] = None

    def to_dict(self, include_photo: bool = True) -> Dict[str, Any]:
        data = {
            'name': self.name,
            'rollNumber': self.roll_number,
            'department': self.department,
            'year': self.year.value,
            'isBlocked': self.is_blocked,
        }
        if include_photo and self.photo_base64:
            data['photoBase64'] = self.photo_base64
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StudentInfo':
        return cls(
            name=data['name'],
            roll_number=data['rollNumber'],
            department=data['department'],
            year=Year(data['year']),
            is_blocked=bool(data.get('isBlocked', False)),
            photo_base64=data.get('photoBase64'),
        )


@dataclass(frozen=True)
class AdminInfo:
    name: str
    id_number: str
    phone_number: str
    department: str
    designation: Designation
    is_blocked: bool = False
    photo_base64: Optional[str] = None

    @property
    def is_principal(self) -> bool:
        return self.designation == Designation.PRINCIPAL

    def to_dict(self, include_photo: bool = True) -> Dict[str, Any]:
        data = {
            'name': self.name,
            'idNumber': self.id_number,
            'phoneNumber': self.phone_number,
            'department': self.department,
            'designation': self.designation.value,
            'isBlocked': self.is_blocked,
        }
        if include_photo and self.photo_base64:
            data['photoBase64'] = self.photo_base64
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AdminInfo':
        return cls(
            name=data['name'],
            id_number=data['idNumber'],
            phone_number=data.get('phoneNumber', ''),
            department=data.get('department', ''),
            designation=Designation(data['designation']),
            is_blocked=bool(data.get('isBlocked', False)),
            photo_base64=data.get('photoBase64'),
        )


@dataclass(frozen=True)
class FaceDetection:
    """
    One face reported by the detection service in the current cycle.

    external_id is the detector's own per-frame id and is not stable.
    persistent_id and person are filled in by the tracker and the linker.
    """

    external_id: str
    bounding_box: BoundingBox
    emotion: Emotion
    confidence: float
    head_pose: Optional[HeadPose] = None
    persistent_id: Optional[int] = None
    person: Optional[StudentInfo] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            'personId': self.external_id,
            'emotion': self.emotion.value,
            'confidence': self.confidence,
            'boundingBox': self.bounding_box.to_dict(),
        }
        if self.head_pose is not None:
            data['headPose'] = self.head_pose.value
        if self.persistent_id is not None:
            data['persistentId'] = self.persistent_id
        if self.person is not None:
            data['studentInfo'] = self.person.to_dict(include_photo=False)
        return data


@dataclass(frozen=True)
class HandDetection:
    sign: HandSign
    confidence: float
    bounding_box: BoundingBox

    def to_dict(self) -> Dict[str, Any]:
        return {
            'sign': self.sign.value,
            'confidence': self.confidence,
            'boundingBox': self.bounding_box.to_dict(),
        }


@dataclass(frozen=True)
class DetectionResult:
    faces: List[FaceDetection] = field(default_factory=list)
    hands: List[HandDetection] = field(default_factory=list)


@dataclass(frozen=True)
class AttendanceRecord:
    """Append-only attendance event. Timestamp is epoch milliseconds."""

    persistent_id: int
    timestamp: int
    emotion: Emotion

    def to_dict(self) -> Dict[str, Any]:
        return {
            'persistentId': self.persistent_id,
            'timestamp': self.timestamp,
            'emotion': self.emotion.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AttendanceRecord':
        return cls(
            persistent_id=int(data['persistentId']),
            timestamp=int(data['timestamp']),
            emotion=Emotion(data['emotion']),
        )


@dataclass(frozen=True)
class AuditLogRecord:
    timestamp: int
    user: str
    action: str
    details: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'timestamp': self.timestamp,
            'user': self.user,
            'action': self.action,
            'details': self.details,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AuditLogRecord':
        return cls(
            timestamp=int(data['timestamp']),
            user=data['user'],
            action=data['action'],
            details=data['details'],
        )
