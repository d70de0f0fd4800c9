"""
BP Tracker - Blood pressure tracking, health metrics and calendar sync.

Logs blood pressure and pulse readings, derives statistics, health scores
and achievements from them, and keeps readings mirrored as events in a
Google Calendar.
"""

__version__ = "0.1.0"
