"""
Attendance Service - Face Tracking and Attendance Logging

A modular Python service that turns per-frame face detections from an
external AI service into stable identities, links them to registered
students and logs debounced attendance events.
"""

__version__ = "1.0.0"
__author__ = "Attendance Service Team"
