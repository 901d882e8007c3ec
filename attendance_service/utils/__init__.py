"""
Utility modules package.
"""

from .timing import EventLoop, TimerHandle, format_uptime

__all__ = [
    'EventLoop',
    'TimerHandle',
    'format_uptime',
]
