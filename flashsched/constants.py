"""
Scheduling constants.

This module contains static scheduler parameters and defaults.
No runtime configuration - pure constants only.
"""
from typing import Tuple

# Default FSRS parameters (weights 'w'), 19 slots.
# w[0]..w[3] seed the stability of a brand-new card for Again/Hard/Good/Easy,
# w[6] is the stability decay applied on a lapse, and w[8]..w[10] are the
# success factors for Hard/Good/Easy.
DEFAULT_FSRS_PARAMS: Tuple[float, ...] = (
    0.4072,  # w[0]
    1.1829,  # w[1]
    3.1262,  # w[2]
    15.4722, # w[3]
    7.2102,  # w[4]
    0.5316,  # w[5]
    1.0651,  # w[6]
    0.0234,  # w[7]
    1.616,   # w[8]
    0.1544,  # w[9]
    1.0824,  # w[10]
    1.9813,  # w[11]
    0.0953,  # w[12]
    0.2975,  # w[13]
    2.2042,  # w[14]
    0.2407,  # w[15]
    2.9466,  # w[16]
    0.5034,  # w[17]
    0.6567,  # w[18]
)

FSRS_PARAM_COUNT: int = 19

# Default desired retention rate if not specified elsewhere.
DEFAULT_DESIRED_RETENTION: float = 0.9

# Difficulty of a card that has never been reviewed (middle of 1-10).
INITIAL_DIFFICULTY: float = 5.0
MIN_DIFFICULTY: float = 1.0
MAX_DIFFICULTY: float = 10.0
MIN_STABILITY: float = 0.1

# Ease factor adjustments (multipliers, 2.5 == 250%)
INITIAL_EASE_FACTOR: float = 2.5
MINIMUM_EASE_FACTOR: float = 1.3
EASE_FACTOR_AGAIN_DELTA: float = -0.2
EASE_FACTOR_HARD_DELTA: float = -0.15
EASE_FACTOR_EASY_DELTA: float = 0.15

SECONDS_PER_DAY: int = 86400
DEFAULT_DAY_ROLLOVER_HOUR: int = 4
DEFAULT_LEARN_AHEAD_SECS: int = 1200
DEFAULT_MAXIMUM_REVIEW_INTERVAL: int = 36500
