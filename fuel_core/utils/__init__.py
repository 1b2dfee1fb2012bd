"""
Utility modules for Fuel core functionality.
"""

from .timers import SLAMonitor, Timer, TimingResult, time_operation

__all__ = [
    "Timer",
    "TimingResult",
    "time_operation",
    "SLAMonitor",
]
