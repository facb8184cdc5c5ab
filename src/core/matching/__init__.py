# src/core/matching/__init__.py
"""
Домен подбора исполнителей.
"""

from src.core.matching.service import Matcher, WorkerCandidate

__all__ = [
    "Matcher",
    "WorkerCandidate",
]
