"""Shared constants for tidyflow workflows."""

from datetime import timedelta

DEFAULT_WAIT_DURATION = timedelta(hours=24)

# A stage whose reduction is at least this many points is split into an
# intermediate cut, a wait period, and a final cut.
LARGE_REDUCTION_THRESHOLD = 40
INTERMEDIATE_REDUCTION_FACTOR = 0.2

DEFAULT_STAGE_NAMES = ["production"]
