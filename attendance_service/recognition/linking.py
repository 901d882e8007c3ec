"""
Identity linking module.

Resolves persistent track ids to registered students through the face
link table.
"""

from dataclasses import replace
from typing import Dict, List, Protocol

from ..logging_config import get_logger
from ..models import FaceDetection, StudentInfo

logger = get_logger(__name__)


class LinkDirectory(Protocol):
    def get_face_links(self) -> Dict[int, str]: ...

    def get_student_directory(self) -> Dict[str, StudentInfo]: ...


class IdentityLinker:
    """
    Annotates tracked faces with the student linked to their persistent id.

    Blocked students are left unlinked: the face is still returned for
    display, but carries no student info and never triggers attendance.
    """

    def __init__(self, directory: LinkDirectory):
        self.directory = directory

    def resolve(self, faces: List[FaceDetection]) -> List[FaceDetection]:
        """
        Link faces to students.

        Args:
            faces: Faces already annotated with persistent ids

        Returns:
            Faces in the same order, linked ones carrying `person`
        """
        if not faces:
            return []

        face_links = self.directory.get_face_links()
        students = self.directory.get_student_directory()

        resolved: List[FaceDetection] = []
        for face in faces:
            student = None
            if face.persistent_id is not None:
                roll_number = face_links.get(face.persistent_id)
                if roll_number is not None:
                    student = students.get(roll_number)

            if student is None:
                resolved.append(face)
            elif student.is_blocked:
                logger.debug(
                    f'Track {face.persistent_id} belongs to blocked student '
                    f'{student.roll_number}, not linking'
                )
                resolved.append(face)
            else:
                resolved.append(replace(face, person=student))

        return resolved
