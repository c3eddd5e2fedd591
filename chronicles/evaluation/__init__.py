"""
Evaluation Module

Performance analytics over completed assessment sessions:
- performance_tracker: records, mastery tiers, insights and trends
"""

from .performance_tracker import (
    Insight,
    PerformanceRecord,
    PerformanceTracker,
    PhaseOutcome,
    SessionAnalytics,
    Trend,
)

__all__ = [
    "Insight",
    "PerformanceRecord",
    "PerformanceTracker",
    "PhaseOutcome",
    "SessionAnalytics",
    "Trend",
]
