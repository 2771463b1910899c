"""
Configuration for the scheduling engine.

``DeckConfig`` is the per-deck scheduling configuration blob handed to the
engine by the host application. It is read-only to the engine. Invalid or
missing fields never abort scheduling: each one is replaced by its documented
default and reported as a ``ConfigurationError`` in the log.

``EngineSettings`` holds process-wide knobs loaded from the environment.
"""

import logging
from enum import IntEnum
from typing import Annotated, Any, List, Tuple

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    ValidationInfo,
    ValidatorFunctionWrapHandler,
    field_validator,
)
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import (
    DEFAULT_DAY_ROLLOVER_HOUR,
    DEFAULT_DESIRED_RETENTION,
    DEFAULT_FSRS_PARAMS,
    DEFAULT_LEARN_AHEAD_SECS,
    DEFAULT_MAXIMUM_REVIEW_INTERVAL,
    FSRS_PARAM_COUNT,
    INITIAL_EASE_FACTOR,
    MINIMUM_EASE_FACTOR,
)
from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class NewCardInsertOrder(IntEnum):
    Due = 0
    Random = 1


class NewCardGatherPriority(IntEnum):
    Deck = 0
    PositionLowestFirst = 1
    PositionHighestFirst = 2


class NewCardSortOrder(IntEnum):
    Template = 0
    Random = 1
    Reverse = 2


class ReviewCardOrder(IntEnum):
    DueDate = 0
    DueDateThenRandom = 1
    DeckThenDueDate = 2
    Random = 3
    IntervalsAscending = 4
    IntervalsDescending = 5
    EaseAscending = 6
    EaseDescending = 7
    RelativeOverdueness = 8


class ReviewMix(IntEnum):
    MixWithReviews = 0
    ReviewsFirst = 1
    NewFirst = 2
    ReviewsOnly = 3


class LeechAction(IntEnum):
    Suspend = 0
    TagOnly = 1


def _check_param_count(params: Tuple[float, ...]) -> Tuple[float, ...]:
    # An empty vector is allowed and disables FSRS.
    if params and len(params) != FSRS_PARAM_COUNT:
        raise ValueError(
            f"expected {FSRS_PARAM_COUNT} FSRS parameters, got {len(params)}"
        )
    return params


StepList = List[Annotated[float, Field(gt=0)]]
FsrsParams = Annotated[
    Tuple[Annotated[float, Field(gt=0, allow_inf_nan=False)], ...],
    AfterValidator(_check_param_count),
]


class DeckConfig(BaseModel):
    """Per-deck scheduling configuration. Steps are in minutes."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    # Learning
    learn_steps: StepList = Field(default_factory=lambda: [1.0, 10.0])
    relearn_steps: StepList = Field(default_factory=lambda: [10.0])

    # Daily limits
    new_per_day: int = Field(default=20, ge=0)
    reviews_per_day: int = Field(default=200, ge=0)

    # Graduating intervals, in days
    graduating_interval_good: int = Field(default=1, ge=1)
    graduating_interval_easy: int = Field(default=4, ge=1)

    # Ease
    initial_ease: float = Field(default=INITIAL_EASE_FACTOR, ge=MINIMUM_EASE_FACTOR)
    easy_multiplier: float = Field(default=1.3, gt=0)
    hard_multiplier: float = Field(default=1.2, gt=0)
    lapse_multiplier: float = Field(default=0.0, ge=0, le=1)
    interval_multiplier: float = Field(default=1.0, gt=0)

    # Review limits, in days
    maximum_review_interval: int = Field(
        default=DEFAULT_MAXIMUM_REVIEW_INTERVAL, ge=1
    )
    minimum_lapse_interval: int = Field(default=1, ge=1)

    # FSRS
    fsrs_params: FsrsParams = Field(
        default_factory=lambda: tuple(DEFAULT_FSRS_PARAMS)
    )
    desired_retention: float = Field(
        default=DEFAULT_DESIRED_RETENTION, gt=0, lt=1
    )

    # Ordering
    new_card_insert_order: NewCardInsertOrder = NewCardInsertOrder.Due
    new_card_gather_priority: NewCardGatherPriority = NewCardGatherPriority.Deck
    new_card_sort_order: NewCardSortOrder = NewCardSortOrder.Template
    review_order: ReviewCardOrder = ReviewCardOrder.DueDate
    new_mix: ReviewMix = ReviewMix.MixWithReviews
    interday_learning_mix: ReviewMix = ReviewMix.MixWithReviews

    # Leeches
    leech_action: LeechAction = LeechAction.TagOnly
    leech_threshold: int = Field(default=8, ge=0)

    # Sibling burying
    bury_new: bool = False
    bury_reviews: bool = False
    bury_interday_learning: bool = False

    @field_validator("*", mode="wrap")
    @classmethod
    def _fall_back_to_default(
        cls,
        value: Any,
        handler: ValidatorFunctionWrapHandler,
        info: ValidationInfo,
    ) -> Any:
        """Replace an invalid field value with the field's default."""
        try:
            return handler(value)
        except ValidationError as e:
            field = cls.model_fields[info.field_name]
            default = field.get_default(call_default_factory=True)
            error = ConfigurationError(
                f"Invalid deck config field '{info.field_name}': {value!r}",
                original_exception=e,
            )
            logger.warning(f"{error}; using default {default!r}")
            return default

    @property
    def fsrs_enabled(self) -> bool:
        """FSRS is applied only with a complete parameter vector."""
        return len(self.fsrs_params) == FSRS_PARAM_COUNT


def create_default_deck_config() -> DeckConfig:
    """Returns the stock deck configuration."""
    return DeckConfig()


class EngineSettings(BaseSettings):
    """
    Process-wide engine settings, loaded from FLASHSCHED_* environment
    variables or a .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="FLASHSCHED_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Learning cards due within this many seconds may be shown early.
    learn_ahead_secs: int = Field(default=DEFAULT_LEARN_AHEAD_SECS, ge=0)

    # Local hour at which a new scheduling day begins.
    day_rollover_hour: int = Field(default=DEFAULT_DAY_ROLLOVER_HOUR, ge=0, le=23)

    log_level: str = "WARNING"
