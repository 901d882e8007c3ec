"""
Attendance reports.

CSV export of the attendance log and the dashboard analytics (present
today, attendance rate, recent activity).
"""

import csv
import io
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, List, Optional, Tuple

from .models import AttendanceRecord, StudentInfo, Year

CSV_HEADERS = ['Roll Number', 'Name', 'Department / Year', 'Date', 'Emotion', 'Status']
RECENT_ACTIVITY_SIZE = 3


def _local_datetime(timestamp_ms: int) -> datetime:
    return datetime.fromtimestamp(timestamp_ms / 1000)


def _student_for(
    record: AttendanceRecord,
    face_links: Dict[int, str],
    students: Dict[str, StudentInfo]
) -> Optional[StudentInfo]:
    roll_number = face_links.get(record.persistent_id)
    if roll_number is None:
        return None
    return students.get(roll_number)


def export_attendance_csv(
    attendance: List[AttendanceRecord],
    face_links: Dict[int, str],
    students: Dict[str, StudentInfo]
) -> str:
    """
    Render the attendance log as CSV.

    Records whose persistent id is unlinked or linked to a deleted
    student are left out.

    Args:
        attendance: Attendance records
        face_links: Persistent id -> roll number
        students: Student directory by roll number

    Returns:
        CSV text, every field quoted
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator='\n')
    writer.writerow(CSV_HEADERS)

    for record in attendance:
        student = _student_for(record, face_links, students)
        if student is None:
            continue
        writer.writerow([
            student.roll_number,
            student.name,
            f'{student.department} / {student.year.value}',
            _local_datetime(record.timestamp).date().isoformat(),
            record.emotion.value,
            'Present',
        ])

    return buffer.getvalue()


def filter_attendance(
    attendance: List[AttendanceRecord],
    face_links: Dict[int, str],
    students: Dict[str, StudentInfo],
    department: Optional[str] = None,
    year: Optional[Year] = None
) -> List[AttendanceRecord]:
    """Records of registered students matching the department/year filters."""
    filtered = []
    for record in attendance:
        student = _student_for(record, face_links, students)
        if student is None:
            continue
        if department is not None and student.department != department:
            continue
        if year is not None and student.year != year:
            continue
        filtered.append(record)
    return filtered


def student_attendance(attendance: List[AttendanceRecord], persistent_id: int) -> List[AttendanceRecord]:
    """Attendance of one persistent id, newest first."""
    records = [r for r in attendance if r.persistent_id == persistent_id]
    return sorted(records, key=lambda r: r.timestamp, reverse=True)


@dataclass(frozen=True)
class AttendanceSummary:
    total_students: int
    attendance_today: int
    attendance_rate: float
    recent_activity: List[Tuple[str, str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {
            'totalStudents': self.total_students,
            'attendanceToday': self.attendance_today,
            'attendanceRate': self.attendance_rate,
            'recentActivity': [{'name': name, 'time': time} for name, time in self.recent_activity],
        }


def attendance_summary(
    students: Dict[str, StudentInfo],
    attendance: List[AttendanceRecord],
    face_links: Dict[int, str],
    today: date,
    department: Optional[str] = None
) -> AttendanceSummary:
    """
    Dashboard analytics for one day.

    Args:
        students: Student directory by roll number
        attendance: Attendance records in log order
        face_links: Persistent id -> roll number
        today: Local date to report on
        department: Restrict to one department (None for all)

    Returns:
        Summary with distinct students present and the last three records
    """
    if department is not None:
        students = {roll: s for roll, s in students.items() if s.department == department}

    todays_records = [
        r for r in attendance
        if _local_datetime(r.timestamp).date() == today and face_links.get(r.persistent_id) in students
    ]

    present = {face_links[r.persistent_id] for r in todays_records}
    total = len(students)
    rate = (len(present) / total) * 100 if total > 0 else 0.0

    recent = []
    for record in reversed(todays_records[-RECENT_ACTIVITY_SIZE:]):
        student = students[face_links[record.persistent_id]]
        recent.append((student.name, _local_datetime(record.timestamp).strftime('%H:%M')))

    return AttendanceSummary(
        total_students=total,
        attendance_today=len(present),
        attendance_rate=rate,
        recent_activity=recent,
    )
