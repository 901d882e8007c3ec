"""
Configuration module for Attendance Service.

Loads configuration from environment variables with sensible defaults.
All settings are immutable after initialization.
"""

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Config:
    """
    Immutable configuration for Attendance Service.

    AI Service Integration:
        ai_service_url: Base URL of the detection/recognition service
        ai_service_timeout: Request timeout in seconds

    Camera Settings:
        camera_source: Camera source - can be:
            - Integer (0, 1, 2) for local webcam
            - RTSP URL: rtsp://user:pass@ip:port/path
            - HTTP URL: http://camera-gateway:4000/streams/1.mjpg
        station_id: Logical identifier for this attendance station (for logging)
        jpeg_quality: JPEG quality (0-100) of frames sent for analysis
        max_capture_failures: Consecutive failed reads before reconnecting

    Service:
        api_port: Port for Flask HTTP server
        data_dir: Directory holding the JSON collections

    Analysis Loop:
        analysis_interval_seconds: Polling interval of the analysis loop
        rate_limit_pause_seconds: Pause after the AI service rate-limits us
        iou_threshold: IoU a detection must exceed to keep a track

    Attendance:
        attendance_log_interval_seconds: Minimum time between two logs
            for the same persistent id

    Session:
        session_timeout_seconds: Inactivity before forced logout
        session_warning_seconds: Length of the warning countdown

    Face Login:
        recognition_confidence_threshold: Minimum match confidence
        min_login_face_size: Minimum normalized face width/height

    System:
        debug_mode: Enable debug logging
    """

    # AI service
    ai_service_url: str
    ai_service_timeout: float

    # Camera
    camera_source: str
    station_id: str
    jpeg_quality: int
    max_capture_failures: int

    # Service
    api_port: int
    data_dir: str

    # Analysis loop
    analysis_interval_seconds: float
    rate_limit_pause_seconds: float
    iou_threshold: float

    # Attendance
    attendance_log_interval_seconds: float

    # Session
    session_timeout_seconds: float
    session_warning_seconds: int

    # Face login
    recognition_confidence_threshold: float
    min_login_face_size: float

    # System
    debug_mode: bool


def load_config() -> Config:
    """
    Load configuration from environment variables.

    Returns:
        Config: Immutable configuration object
    """
    camera_source_raw = os.getenv('CAMERA_SOURCE', '0')

    return Config(
        # AI service
        ai_service_url=os.getenv('AI_SERVICE_URL', 'http://localhost:8000').rstrip('/'),
        ai_service_timeout=float(os.getenv('AI_SERVICE_TIMEOUT', '15')),

        # Camera
        camera_source=camera_source_raw,
        station_id=os.getenv('STATION_ID', camera_source_raw),
        jpeg_quality=int(os.getenv('JPEG_QUALITY', '80')),
        max_capture_failures=int(os.getenv('MAX_CAPTURE_FAILURES', '10')),

        # Service
        api_port=int(os.getenv('API_PORT', '5001')),
        data_dir=os.getenv('DATA_DIR', 'data'),

        # Analysis loop
        analysis_interval_seconds=float(os.getenv('ANALYSIS_INTERVAL', '2.0')),
        rate_limit_pause_seconds=float(os.getenv('RATE_LIMIT_PAUSE', '61.0')),
        iou_threshold=0.4,

        # Attendance
        attendance_log_interval_seconds=float(os.getenv('ATTENDANCE_LOG_INTERVAL', '300')),

        # Session
        session_timeout_seconds=float(os.getenv('SESSION_TIMEOUT', '300')),
        session_warning_seconds=int(os.getenv('SESSION_WARNING', '60')),

        # Face login
        recognition_confidence_threshold=float(
            os.getenv('FACE_RECOGNITION_CONFIDENCE_THRESHOLD', '0.75')
        ),
        min_login_face_size=0.25,

        # System
        debug_mode=os.getenv('DEBUG', 'false').lower() == 'true',
    )
