"""
jobstate

Status tracking and cooperative control (kill, pause, lock) for background jobs
dispatched through a Redis-backed queue.
"""

__version__ = "1.0.0"
