"""
Flask application for HTTP API.

Provides:
- GET /health: Service health check
- Analysis results and capture control
- Session state, activity signals, face login and logout
- Attendance log, CSV export and dashboard summary
- Student/admin/department administration and the audit log

State owned by the event loop is only touched through
EventLoop.run_threadsafe(). Directory operations, camera opening and
activity signals are thread-safe and run on the request thread.
"""

import base64
import binascii
from datetime import date
from typing import Any, Callable, Dict

from flask import Flask, Response, jsonify, request
from flask_cors import CORS

from .errors import (
    AttendanceServiceError,
    DetectionError,
    DuplicateRecord,
    ImmutableAccount,
    LinkAlreadyExists,
    LoginError,
    NotFound,
    RateLimited,
)
from .logging_config import get_logger
from .login import FaceLogin
from .models import AdminInfo, StudentInfo, UserType, Year
from .reports import attendance_summary, export_attendance_csv, filter_attendance, student_attendance
from .service import AttendanceService

logger = get_logger(__name__)

# Upper bound for a request waiting on the event loop
LOOP_CALL_TIMEOUT = 30.0

ERROR_STATUS = [
    (NotFound, 404),
    (ImmutableAccount, 403),
    (LinkAlreadyExists, 409),
    (DuplicateRecord, 409),
    (LoginError, 401),
    (RateLimited, 429),
    (DetectionError, 502),
]


class BadRequest(Exception):
    pass


def _status_for(error: AttendanceServiceError) -> int:
    for error_type, status in ERROR_STATUS:
        if isinstance(error, error_type):
            return status
    return 500


def _json_body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise BadRequest('Request body must be a JSON object.')
    return data


def _parse_user_type(value: Any) -> UserType:
    try:
        return UserType(str(value).upper())
    except ValueError:
        raise BadRequest(f'Unknown user type: {value!r}')


def _parse_record(parser: Callable[[Dict[str, Any]], Any], data: Dict[str, Any]) -> Any:
    try:
        return parser(data)
    except (KeyError, TypeError, ValueError) as e:
        raise BadRequest(f'Invalid record: {e}')


def create_app(service: AttendanceService, face_login: FaceLogin) -> Flask:
    """
    Create and configure Flask application.

    Args:
        service: Attendance service (its loop must be running)
        face_login: Face login authenticator

    Returns:
        Configured Flask app
    """
    app = Flask(__name__)
    CORS(app)
    directory = service.directory

    def on_loop(callback: Callable[..., Any], *args: Any) -> Any:
        return service.loop.run_threadsafe(callback, *args).result(timeout=LOOP_CALL_TIMEOUT)

    def acting_admin():
        return on_loop(lambda: service.current_admin)

    @app.errorhandler(AttendanceServiceError)
    def handle_service_error(error: AttendanceServiceError):
        status = _status_for(error)
        if status >= 500:
            logger.error(f'Request failed: {error}')
        return jsonify({'error': str(error)}), status

    @app.errorhandler(BadRequest)
    def handle_bad_request(error: BadRequest):
        return jsonify({'error': str(error)}), 400

    # --- Health and analysis ---

    @app.route('/health')
    def health():
        """Health check endpoint."""
        return jsonify(on_loop(service.health))

    @app.route('/api/analysis')
    def analysis():
        """Latest published analysis result."""
        return jsonify(service.latest_analysis().to_dict())

    @app.route('/api/capture/start', methods=['POST'])
    def capture_start():
        # Opening retries with sleeps, so it stays on the request thread
        try:
            capture = service.open_capture()
        except RuntimeError as e:
            logger.error(f'Cannot start capture: {e}')
            return jsonify({'error': str(e)}), 503
        try:
            on_loop(service.start_capture, capture)
        except Exception:
            capture.release()
            raise
        return jsonify(service.latest_analysis().to_dict())

    @app.route('/api/capture/stop', methods=['POST'])
    def capture_stop():
        on_loop(service.stop_capture)
        return jsonify(service.latest_analysis().to_dict())

    # --- Session ---

    @app.route('/api/session')
    def session():
        return jsonify(on_loop(service.session_info))

    @app.route('/api/session/activity', methods=['POST'])
    def session_activity():
        signal = _json_body().get('signal', 'pointer')
        service.record_activity(str(signal))
        return jsonify(on_loop(service.session_info))

    @app.route('/api/login/face', methods=['POST'])
    def login_face():
        """
        Face login.

        Body: {"image": <base64 jpeg>, "userType": "STUDENT" | "ADMIN"}
        """
        data = _json_body()
        user_type = _parse_user_type(data.get('userType'))
        try:
            image = base64.b64decode(data['image'], validate=True)
        except (KeyError, TypeError, binascii.Error):
            raise BadRequest('Field "image" must be base64-encoded JPEG data.')

        found_type, user = face_login.authenticate(image, user_type)
        on_loop(service.login, found_type, user)
        return jsonify(on_loop(service.session_info))

    @app.route('/api/logout', methods=['POST'])
    def logout():
        on_loop(service.logout)
        return jsonify(on_loop(service.session_info))

    # --- Attendance ---

    @app.route('/api/attendance')
    def attendance():
        """
        Attendance log.

        Query: persistentId (newest first), or department / year filters.
        """
        records = directory.get_attendance()

        persistent_id = request.args.get('persistentId', type=int)
        if persistent_id is not None:
            records = student_attendance(records, persistent_id)
        elif request.args.get('department') or request.args.get('year'):
            year = request.args.get('year')
            try:
                year_filter = Year(year) if year else None
            except ValueError:
                raise BadRequest(f'Unknown year: {year!r}')
            records = filter_attendance(
                records,
                directory.get_face_links(),
                directory.get_student_directory(),
                department=request.args.get('department') or None,
                year=year_filter,
            )

        return jsonify([r.to_dict() for r in records])

    @app.route('/api/attendance.csv')
    def attendance_csv():
        content = export_attendance_csv(
            directory.get_attendance(),
            directory.get_face_links(),
            directory.get_student_directory(),
        )
        return Response(
            content,
            mimetype='text/csv',
            headers={'Content-Disposition': 'attachment; filename=attendance_log.csv'},
        )

    @app.route('/api/attendance/summary')
    def attendance_summary_view():
        summary = attendance_summary(
            directory.get_student_directory(),
            directory.get_attendance(),
            directory.get_face_links(),
            today=date.today(),
            department=request.args.get('department') or None,
        )
        return jsonify(summary.to_dict())

    # --- Students and face links ---

    @app.route('/api/students')
    def students():
        return jsonify([s.to_dict(include_photo=False) for s in directory.get_student_directory().values()])

    @app.route('/api/students', methods=['POST'])
    def register_student():
        student = _parse_record(StudentInfo.from_dict, _json_body())
        student = directory.register_student(student)
        return jsonify(student.to_dict(include_photo=False)), 201

    @app.route('/api/students/<roll_number>', methods=['DELETE'])
    def delete_student(roll_number: str):
        students, links, _ = directory.delete_student(roll_number, actor=acting_admin())
        return jsonify({
            'students': [s.to_dict(include_photo=False) for s in students.values()],
            'faceLinks': [[pid, roll] for pid, roll in links.items()],
        })

    @app.route('/api/students/<roll_number>/block', methods=['POST'])
    def block_student(roll_number: str):
        student = directory.toggle_student_block(roll_number, actor=acting_admin())
        return jsonify(student.to_dict(include_photo=False))

    @app.route('/api/students/<roll_number>/link-face', methods=['POST'])
    def link_new_face(roll_number: str):
        if roll_number not in directory.get_student_directory():
            raise NotFound('Student not found.')
        links = directory.link_new_face_for_student(roll_number)
        return jsonify({'persistentId': directory.find_persistent_id(roll_number),
                        'faceLinks': [[pid, roll] for pid, roll in links.items()]}), 201

    @app.route('/api/faces/<int:persistent_id>/link', methods=['POST'])
    def link_face(persistent_id: int):
        roll_number = _json_body().get('rollNumber')
        if not roll_number:
            raise BadRequest('Field "rollNumber" is required.')
        if roll_number not in directory.get_student_directory():
            raise NotFound('Student not found.')
        links = directory.link_face(persistent_id, roll_number)
        return jsonify({'faceLinks': [[pid, roll] for pid, roll in links.items()]})

    # --- Admins and departments ---

    @app.route('/api/admins')
    def admins():
        return jsonify([a.to_dict(include_photo=False) for a in directory.get_admin_directory().values()])

    @app.route('/api/admins', methods=['POST'])
    def register_admin():
        admin = _parse_record(AdminInfo.from_dict, _json_body())
        admin, departments = directory.register_admin(admin)
        return jsonify({'admin': admin.to_dict(include_photo=False), 'departments': departments}), 201

    @app.route('/api/admins/<id_number>', methods=['DELETE'])
    def delete_admin(id_number: str):
        admins = directory.delete_admin(id_number, actor=acting_admin())
        return jsonify([a.to_dict(include_photo=False) for a in admins.values()])

    @app.route('/api/admins/<id_number>/block', methods=['POST'])
    def block_admin(id_number: str):
        admin = directory.toggle_admin_block(id_number, actor=acting_admin())
        return jsonify(admin.to_dict(include_photo=False))

    @app.route('/api/departments')
    def departments():
        return jsonify(directory.get_departments())

    @app.route('/api/departments', methods=['POST'])
    def add_department():
        name = str(_json_body().get('name', '')).strip()
        if not name:
            raise BadRequest('Field "name" is required.')
        return jsonify(directory.add_department(name)), 201

    @app.route('/api/audit-log')
    def audit_log():
        return jsonify([r.to_dict() for r in directory.get_audit_log()])

    return app
