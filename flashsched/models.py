"""
Core records exchanged with the host application: cards, review logs,
decks, sessions and display counts.
"""

from __future__ import annotations

import uuid
from enum import IntEnum
from uuid import UUID
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .config import DeckConfig


class CardType(IntEnum):
    """
    Lifecycle stage of a card. Persisted as the numeric value.
    """

    New = 0
    Learn = 1
    Review = 2
    Relearn = 3


class CardQueue(IntEnum):
    """
    Where and when a card appears. The meaning of ``Card.due`` depends on it.
    """

    New = 0  # due is the position in the new queue
    Learn = 1  # due is an absolute timestamp in seconds
    Review = 2  # due is a day number
    DayLearn = 3  # due is a day number
    PreviewRepeat = 4  # due is an absolute timestamp in seconds
    Suspended = -1
    SchedBuried = -2
    UserBuried = -3


EXCLUDED_QUEUES = frozenset(
    {CardQueue.Suspended, CardQueue.SchedBuried, CardQueue.UserBuried}
)


class Rating(IntEnum):
    """
    Represents the user's rating of their recall performance.
    """

    Again = 1
    Hard = 2
    Good = 3
    Easy = 4


class ReviewKind(IntEnum):
    """
    Kind of review recorded in the review log.
    """

    Learning = 0
    Review = 1
    Relearn = 2
    # Never produced by the scheduler; reserved so stored values keep their meaning.
    Filtered = 3
    Manual = 4


class MemoryState(BaseModel):
    """FSRS memory state of a card."""

    model_config = ConfigDict(frozen=True)

    stability: float = Field(
        ..., description="Expected memory stability, in days."
    )
    difficulty: float = Field(
        ..., description="Intrinsic difficulty in the range 1.0-10.0."
    )


class Card(BaseModel):
    """
    Scheduling record of a single flashcard.

    Cards are treated as values by the engine: every scheduling operation
    returns a new Card and leaves its input untouched.
    """

    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    id: int = Field(..., description="Unique card id.")
    note_id: int = Field(
        default=0, description="Id of the note this card was generated from."
    )
    deck_id: int = Field(default=0, description="Id of the owning deck.")
    template_idx: int = Field(
        default=0, ge=0, description="Template index of the card on its note."
    )
    ctype: CardType = Field(
        default=CardType.New, description="Lifecycle stage of the card."
    )
    queue: CardQueue = Field(
        default=CardQueue.New, description="Queue the card currently sits in."
    )
    due: int = Field(
        default=0,
        description="Position (New), timestamp in seconds (Learn) or day "
        "number (Review/DayLearn).",
    )
    interval: int = Field(
        default=0, ge=0, description="Current review interval in days."
    )
    ease_factor: float = Field(
        default=2.5, description="Ease multiplier, 2.5 == 250%."
    )
    reps: int = Field(default=0, ge=0, description="Number of reviews.")
    lapses: int = Field(default=0, ge=0, description="Number of lapses.")
    remaining_steps: int = Field(
        default=0, ge=0, description="Learning steps left before graduation."
    )
    memory_state: Optional[MemoryState] = Field(
        default=None, description="FSRS memory state, None before review."
    )
    desired_retention: Optional[float] = Field(
        default=None, description="Per-card retention override."
    )
    mtime: int = Field(
        default=0, description="Modification time, seconds since epoch."
    )
    last_review: Optional[int] = Field(
        default=None, description="Time of the last review, seconds."
    )
    flags: int = Field(default=0, description="User flags.")
    custom_data: str = Field(default="", description="Opaque JSON blob.")
    front: str = Field(default="", description="Question content.")
    back: str = Field(default="", description="Answer content.")


class ReviewLog(BaseModel):
    """
    Represents a single answered card. Append-only: never mutated after
    creation.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    log_id: UUID = Field(
        default_factory=uuid.uuid4,
        description="Unique identifier of this log entry.",
    )
    card_id: int = Field(..., description="Id of the reviewed card.")
    session_uuid: Optional[UUID] = Field(
        default=None, description="Session the review belongs to."
    )
    reviewed_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="The UTC timestamp when the review occurred.",
    )
    rating: Rating = Field(..., description="Button pressed.")
    time_taken_ms: int = Field(
        default=0, ge=0, description="Caller-supplied answer time in ms."
    )
    card_type: CardType = Field(
        ..., description="Card type at review time (before the answer)."
    )
    review_kind: ReviewKind = Field(..., description="Kind of review.")
    last_interval: int = Field(..., description="Interval before review.")
    new_interval: int = Field(..., description="Interval after review.")
    ease_factor: float = Field(..., description="Ease after review.")
    memory_state: Optional[MemoryState] = Field(
        default=None, description="Memory state after review."
    )


class Deck(BaseModel):
    """A deck as loaded by the persistence collaborator."""

    model_config = ConfigDict(extra="forbid")

    id: int = Field(..., description="Deck id.")
    name: str = Field(..., min_length=1, description="Display name.")
    description: str = Field(default="")
    config: DeckConfig = Field(default_factory=DeckConfig)
    cards: List[Card] = Field(default_factory=list)


class CardCounts(BaseModel):
    """Cards left in a session, for display."""

    new: int = 0
    learning: int = 0
    review: int = 0

    @property
    def total(self) -> int:
        return self.new + self.learning + self.review


class StudySession(BaseModel):
    """
    Bookkeeping for one study session over a deck.
    """

    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    session_uuid: UUID = Field(
        default_factory=uuid.uuid4,
        description="Unique session identifier (links review logs).",
    )
    deck_id: int = Field(..., description="Deck being studied.")
    start_ts: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="UTC timestamp when the session started.",
    )
    end_ts: Optional[datetime] = Field(
        default=None,
        description="UTC timestamp when session ended (None if active).",
    )
    total_duration_ms: Optional[int] = Field(
        default=None,
        ge=0,
        description="Total duration in ms (calculated on end).",
    )
    reviewed: int = Field(default=0, ge=0)
    new_studied: int = Field(default=0, ge=0)
    reviews_studied: int = Field(default=0, ge=0)
    learning_studied: int = Field(default=0, ge=0)

    def calculate_duration(self) -> Optional[int]:
        """Calculate session duration in milliseconds if session has ended."""
        if self.end_ts is None:
            return None
        return max(0, int((self.end_ts - self.start_ts).total_seconds() * 1000))

    def end_session(self, end_ts: Optional[datetime] = None) -> None:
        """Mark session as ended and calculate duration."""
        if self.end_ts is None:
            self.end_ts = end_ts or datetime.now(timezone.utc)
            self.total_duration_ms = self.calculate_duration()

    @property
    def is_active(self) -> bool:
        """Check if session is currently active (not ended)."""
        return self.end_ts is None
