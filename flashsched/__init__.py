"""Flashsched - a spaced-repetition scheduling engine."""

from .config import DeckConfig, EngineSettings, create_default_deck_config
from .constants import DEFAULT_DESIRED_RETENTION, DEFAULT_FSRS_PARAMS
from .exceptions import ConfigurationError, InvalidStateError, SchedulerError
from .memory_model import FSRSMemoryModel
from .models import (
    Card,
    CardCounts,
    CardQueue,
    CardType,
    Deck,
    MemoryState,
    Rating,
    ReviewKind,
    ReviewLog,
    StudySession,
)
from .queue_builder import CardQueueBuilder, CardQueues
from .review_processor import AnswerResult, ReviewProcessor
from .scheduler import CardStateMachine
from .session_manager import StudySessionManager

__all__ = [
    "Card",
    "CardCounts",
    "CardQueue",
    "CardType",
    "Deck",
    "MemoryState",
    "Rating",
    "ReviewKind",
    "ReviewLog",
    "StudySession",
    "DeckConfig",
    "EngineSettings",
    "create_default_deck_config",
    "DEFAULT_FSRS_PARAMS",
    "DEFAULT_DESIRED_RETENTION",
    "SchedulerError",
    "ConfigurationError",
    "InvalidStateError",
    "FSRSMemoryModel",
    "CardStateMachine",
    "CardQueueBuilder",
    "CardQueues",
    "ReviewProcessor",
    "AnswerResult",
    "StudySessionManager",
]
