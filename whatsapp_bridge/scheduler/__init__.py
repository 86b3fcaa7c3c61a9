"""Scheduling helpers for periodic bridge jobs."""

from .apsched_adapter import APSchedulerAdapter

__all__ = ["APSchedulerAdapter"]
