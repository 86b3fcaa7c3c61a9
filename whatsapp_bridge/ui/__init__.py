"""Terminal rendering helpers."""

from .stats_view import StatsReporter, render_stats, render_status_table

__all__ = ["StatsReporter", "render_stats", "render_status_table"]
