"""
Directory management module.

Persistence service for the student and admin directories, the face link
table, the attendance log and the audit log. Every operation loads whole
collections, applies the change and saves whole collections; a failed
save propagates and leaves the stored collection untouched.
"""

import threading
import time
from dataclasses import replace
from typing import Callable, Dict, List, Optional, Tuple, Union

from .errors import DuplicateRecord, ImmutableAccount, LinkAlreadyExists, NotFound
from .logging_config import get_logger
from .models import (
    AdminInfo,
    AttendanceRecord,
    AuditLogRecord,
    Designation,
    Emotion,
    StudentInfo,
    UserType,
)
from .storage import JsonFileStore

logger = get_logger(__name__)

STUDENTS = 'students'
ADMINS = 'admins'
FACE_LINKS = 'face_links'
ATTENDANCE = 'attendance'
DEPARTMENTS = 'departments'
AUDIT_LOG = 'audit_log'

DEFAULT_PRINCIPAL = AdminInfo(
    name='Default Principal',
    id_number='principal',
    phone_number='1234567890',
    department='Administration',
    designation=Designation.PRINCIPAL,
)

UserRecord = Union[StudentInfo, AdminInfo]


class DirectoryService:
    """
    Load/replace persistence over a JsonFileStore.

    Thread-safe: the analysis loop and the HTTP server share one instance.
    """

    def __init__(self, store: JsonFileStore, clock: Callable[[], float] = time.time):
        """
        Initialize directory service.

        Args:
            store: Collection store
            clock: Wall clock in seconds (timestamps are stored in ms)
        """
        self.store = store
        self.clock = clock
        self._lock = threading.RLock()

    # --- Loading / saving ---

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)

    def _load_students(self) -> Dict[str, StudentInfo]:
        items = self.store.load(STUDENTS, [])
        return {s.roll_number: s for s in (StudentInfo.from_dict(d) for d in items)}

    def _save_students(self, students: Dict[str, StudentInfo]) -> None:
        self.store.save(STUDENTS, [s.to_dict() for s in students.values()])

    def _load_admins(self) -> Dict[str, AdminInfo]:
        items = self.store.load(ADMINS, [])
        return {a.id_number: a for a in (AdminInfo.from_dict(d) for d in items)}

    def _save_admins(self, admins: Dict[str, AdminInfo]) -> None:
        self.store.save(ADMINS, [a.to_dict() for a in admins.values()])

    def _load_face_links(self) -> Dict[int, str]:
        return {int(pid): roll for pid, roll in self.store.load(FACE_LINKS, [])}

    def _save_face_links(self, links: Dict[int, str]) -> None:
        self.store.save(FACE_LINKS, [[pid, roll] for pid, roll in links.items()])

    def _load_attendance(self) -> List[AttendanceRecord]:
        return [AttendanceRecord.from_dict(d) for d in self.store.load(ATTENDANCE, [])]

    def _save_attendance(self, attendance: List[AttendanceRecord]) -> None:
        self.store.save(ATTENDANCE, [r.to_dict() for r in attendance])

    def _log_audit_event(self, action: str, details: str, actor: Optional[AdminInfo]) -> None:
        user = f'{actor.name} ({actor.id_number})' if actor else 'System'
        log = self.store.load(AUDIT_LOG, [])
        entry = AuditLogRecord(timestamp=self._now_ms(), user=user, action=action, details=details)
        log.insert(0, entry.to_dict())
        self.store.save(AUDIT_LOG, log)
        logger.info(f'Audit: {action} by {user}: {details}')

    # --- Reads ---

    def get_student_directory(self) -> Dict[str, StudentInfo]:
        with self._lock:
            return self._load_students()

    def get_admin_directory(self) -> Dict[str, AdminInfo]:
        """
        Get all admins, seeding the default Principal on first use.

        Returns:
            Admins by id number
        """
        with self._lock:
            admins = self._load_admins()
            if not admins:
                logger.info('No admins registered, creating default Principal account')
                admins[DEFAULT_PRINCIPAL.id_number] = DEFAULT_PRINCIPAL
                self._save_admins(admins)
            return admins

    def get_face_links(self) -> Dict[int, str]:
        with self._lock:
            return self._load_face_links()

    def get_attendance(self) -> List[AttendanceRecord]:
        with self._lock:
            return self._load_attendance()

    def get_departments(self) -> List[str]:
        with self._lock:
            return list(self.store.load(DEPARTMENTS, []))

    def get_audit_log(self) -> List[AuditLogRecord]:
        with self._lock:
            return [AuditLogRecord.from_dict(d) for d in self.store.load(AUDIT_LOG, [])]

    def get_users_with_photos(self, user_type: Optional[UserType] = None) -> List[Tuple[str, str]]:
        """
        Collect reference photos for face login.

        Args:
            user_type: Restrict to students or admins (None for both)

        Returns:
            List of (user id, photo base64)
        """
        profiles: List[Tuple[str, str]] = []
        with self._lock:
            if user_type in (None, UserType.STUDENT):
                profiles.extend(
                    (roll, s.photo_base64) for roll, s in self._load_students().items() if s.photo_base64
                )
            if user_type in (None, UserType.ADMIN):
                profiles.extend(
                    (id_number, a.photo_base64) for id_number, a in self.get_admin_directory().items()
                    if a.photo_base64
                )
        return profiles

    def get_user_by_id(self, user_id: str) -> Optional[Tuple[UserType, UserRecord]]:
        """
        Look up a user in both directories, admins first.

        Returns:
            (user type, record) or None
        """
        with self._lock:
            admin = self.get_admin_directory().get(user_id)
            if admin is not None:
                return UserType.ADMIN, admin
            student = self._load_students().get(user_id)
            if student is not None:
                return UserType.STUDENT, student
        return None

    def find_persistent_id(self, roll_number: str) -> Optional[int]:
        """Persistent id linked to a student, or None."""
        for pid, roll in self.get_face_links().items():
            if roll == roll_number:
                return pid
        return None

    # --- Registration ---

    def register_student(self, student: StudentInfo) -> StudentInfo:
        with self._lock:
            students = self._load_students()
            if student.roll_number in students:
                raise DuplicateRecord('A student with this Roll Number already exists.')
            students[student.roll_number] = student
            self._save_students(students)
        logger.info(f'Registered student {student.roll_number}')
        return student

    def register_admin(self, admin: AdminInfo) -> Tuple[AdminInfo, List[str]]:
        """
        Register an admin, adding their department if it is new.

        Returns:
            (stored admin, updated department list)
        """
        with self._lock:
            admins = self.get_admin_directory()
            if admin.id_number in admins:
                raise DuplicateRecord('An admin with this ID Number already exists.')

            departments = list(self.store.load(DEPARTMENTS, []))
            if admin.department and admin.department not in departments:
                departments.append(admin.department)
                self.store.save(DEPARTMENTS, departments)

            admin = replace(admin, is_blocked=False)
            admins[admin.id_number] = admin
            self._save_admins(admins)
        logger.info(f'Registered admin {admin.id_number} ({admin.designation.value})')
        return admin, departments

    # --- Face links ---

    def link_face(self, persistent_id: int, roll_number: str) -> Dict[int, str]:
        """
        Link a tracked face to a student.

        Returns:
            Updated link table
        """
        with self._lock:
            links = self._load_face_links()
            links[persistent_id] = roll_number
            self._save_face_links(links)
        logger.info(f'Linked track {persistent_id} to {roll_number}')
        return links

    def link_new_face_for_student(self, roll_number: str) -> Dict[int, str]:
        """
        Reserve a new persistent id for a student linking their own face.

        Raises:
            LinkAlreadyExists: The student already has a linked face
        """
        with self._lock:
            links = self._load_face_links()
            if roll_number in links.values():
                raise LinkAlreadyExists("This student's face is already linked.")

            new_id = max(links, default=0) + 1
            links[new_id] = roll_number
            self._save_face_links(links)
        logger.info(f'Linked new face id {new_id} to {roll_number}')
        return links

    # --- Attendance ---

    def log_attendance(
        self,
        persistent_id: int,
        emotion: Emotion,
        timestamp: Optional[int] = None
    ) -> List[AttendanceRecord]:
        """
        Append one attendance record.

        Args:
            persistent_id: Tracked face id
            emotion: Emotion seen at logging time
            timestamp: Epoch ms (default: now)

        Returns:
            Full attendance list after the append
        """
        record = AttendanceRecord(
            persistent_id=persistent_id,
            timestamp=self._now_ms() if timestamp is None else timestamp,
            emotion=emotion,
        )
        with self._lock:
            attendance = self._load_attendance()
            attendance.append(record)
            self._save_attendance(attendance)
        return attendance

    # --- Admin actions ---

    def delete_student(
        self,
        roll_number: str,
        actor: Optional[AdminInfo] = None
    ) -> Tuple[Dict[str, StudentInfo], Dict[int, str], List[AttendanceRecord]]:
        """
        Delete a student together with their face link and attendance.

        Returns:
            (students, face links, attendance) after the delete
        """
        with self._lock:
            students = self._load_students()
            student = students.get(roll_number)
            if student is None:
                raise NotFound('Student not found.')

            links = self._load_face_links()
            linked_ids = {pid for pid, roll in links.items() if roll == roll_number}
            links = {pid: roll for pid, roll in links.items() if pid not in linked_ids}
            attendance = [r for r in self._load_attendance() if r.persistent_id not in linked_ids]
            del students[roll_number]

            self._save_face_links(links)
            self._save_attendance(attendance)
            self._save_students(students)
            self._log_audit_event('DELETE_STUDENT', f'Deleted student: {student.name} ({roll_number})', actor)

        return students, links, attendance

    def toggle_student_block(self, roll_number: str, actor: Optional[AdminInfo] = None) -> StudentInfo:
        with self._lock:
            students = self._load_students()
            student = students.get(roll_number)
            if student is None:
                raise NotFound('Student not found.')

            updated = replace(student, is_blocked=not student.is_blocked)
            students[roll_number] = updated
            self._save_students(students)

            action = 'BLOCK_STUDENT' if updated.is_blocked else 'UNBLOCK_STUDENT'
            self._log_audit_event(
                action, f'Toggled block status for student: {student.name} ({roll_number})', actor
            )
        return updated

    def delete_admin(self, id_number: str, actor: Optional[AdminInfo] = None) -> Dict[str, AdminInfo]:
        with self._lock:
            admins = self.get_admin_directory()
            admin = admins.get(id_number)
            if admin is None:
                raise NotFound('Admin not found.')
            if admin.is_principal:
                raise ImmutableAccount('Cannot delete a Principal account.')

            del admins[id_number]
            self._save_admins(admins)
            self._log_audit_event('DELETE_ADMIN', f'Deleted admin: {admin.name} ({id_number})', actor)
        return admins

    def toggle_admin_block(self, id_number: str, actor: Optional[AdminInfo] = None) -> AdminInfo:
        with self._lock:
            admins = self.get_admin_directory()
            admin = admins.get(id_number)
            if admin is None:
                raise NotFound('Admin not found.')
            if admin.is_principal:
                raise ImmutableAccount('Cannot block a Principal account.')

            updated = replace(admin, is_blocked=not admin.is_blocked)
            admins[id_number] = updated
            self._save_admins(admins)

            action = 'BLOCK_ADMIN' if updated.is_blocked else 'UNBLOCK_ADMIN'
            self._log_audit_event(action, f'Toggled block status for admin: {admin.name} ({id_number})', actor)
        return updated

    def add_department(self, name: str) -> List[str]:
        with self._lock:
            departments = list(self.store.load(DEPARTMENTS, []))
            if name and name not in departments:
                departments.append(name)
                self.store.save(DEPARTMENTS, departments)
        return departments
