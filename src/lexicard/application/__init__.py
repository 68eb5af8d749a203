# Application Package
from .due_state import DueStateCache, classify
from .lifecycle import AddResult, CardLifecycleManager
from .queue_builder import ReviewQueueBuilder, ReviewSession, SessionStats

__all__ = [
    "AddResult",
    "CardLifecycleManager",
    "DueStateCache",
    "ReviewQueueBuilder",
    "ReviewSession",
    "SessionStats",
    "classify",
]
