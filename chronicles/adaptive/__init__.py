"""
Adaptive difficulty.

- DifficultyAdapter: recommends easier or harder questions from recent attempts
- LearnerProfile: coarse learner traits used to fine-tune recommendations
"""

from .difficulty_adapter import (
    DifficultyAdapter,
    DifficultyRecommendation,
    LearnerProfile,
    PerformanceAnalysis,
)

__all__ = [
    "DifficultyAdapter",
    "DifficultyRecommendation",
    "LearnerProfile",
    "PerformanceAnalysis",
]
