import argparse
import math
from dataclasses import dataclass
from enum import Enum
from typing import Tuple

# =========================
# Constants Section
# =========================

# Option panel (one dot set) size in pixels
DEFAULT_OPTION_WIDTH = 300
DEFAULT_OPTION_HEIGHT = 450

# Independent diameter policy
DEFAULT_MIN_DIAMETER = 20.0
DEFAULT_MAX_DIAMETER = 50.0

# Average diameter policy
DEFAULT_AVERAGE_DIAMETER = 35.0
DEFAULT_MAX_DIAMETER_VARIANCE = 10.0

# Dot counts a generated pair may use
DEFAULT_MIN_DOTS = 1
DEFAULT_MAX_DOTS = 26

# Lowest distance (in dots) each difficulty can have.
# The highest distance is the minimum plus CHOICES_PER_MODE - 1.
EASY_MODE_MIN = 14
MEDIUM_MODE_MIN = 8
HARD_MODE_MIN = 2
CHOICES_PER_MODE = 4

# Copies of each difficulty level in the difficulty bag
DEFAULT_DIFFICULTY_REPLICATION = 2

# Consecutive rounds the same side may be correct before a forced swap
DEFAULT_MAX_RUN_LENGTH = 3

# Area control
DEFAULT_INVERSE_AREA_SHRINK = 0.8

# Candidate positions tried for a single dot before giving up
MAX_PLACEMENT_ATTEMPTS = 10000

# =========================
# End of Constants Section
# =========================


class ConfigurationError(ValueError):
    """Raised when a configuration value makes stimulus generation impossible."""


class PackingInfeasible(RuntimeError):
    """Raised when a dot cannot be placed without overlap within the retry budget."""


class InvalidPairRequest(ValueError):
    """Raised when a pair is requested with equal or non-positive counts."""


class DiameterPolicy(Enum):
    INDEPENDENT = "independent"  # uniform diameter per dot
    AVERAGE = "average"          # pairs of dots around a mean diameter


class AreaControl(Enum):
    OFF = "off"
    MATCH = "match"
    INVERSE = "inverse"
    RANDOM = "random"  # coin flip between MATCH and INVERSE per pair


class ControlType(Enum):
    """What area control was actually applied to a finished pair."""
    NONE = "None"
    EQUAL_AREAS = "Equal Areas"
    INVERSE_AREAS = "Inverse Areas"
    RADIUS_AVERAGE_EQUAL = "Equal Average Radii"


class Difficulty(Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


@dataclass
class StimulusConfig:
    """All parameters used to generate dot sets and dot set pairs."""
    max_run_length: int
    option_width: int = DEFAULT_OPTION_WIDTH
    option_height: int = DEFAULT_OPTION_HEIGHT
    diameter_policy: DiameterPolicy = DiameterPolicy.INDEPENDENT
    min_diameter: float = DEFAULT_MIN_DIAMETER
    max_diameter: float = DEFAULT_MAX_DIAMETER
    average_diameter: float = DEFAULT_AVERAGE_DIAMETER
    max_diameter_variance: float = DEFAULT_MAX_DIAMETER_VARIANCE
    min_dots: int = DEFAULT_MIN_DOTS
    max_dots: int = DEFAULT_MAX_DOTS
    area_control: AreaControl = AreaControl.RANDOM
    inverse_area_shrink: float = DEFAULT_INVERSE_AREA_SHRINK
    difficulty_replication: int = DEFAULT_DIFFICULTY_REPLICATION
    easy_min: int = EASY_MODE_MIN
    medium_min: int = MEDIUM_MODE_MIN
    hard_min: int = HARD_MODE_MIN
    choices_per_mode: int = CHOICES_PER_MODE
    max_placement_attempts: int = MAX_PLACEMENT_ATTEMPTS

    @property
    def largest_diameter(self) -> float:
        if self.diameter_policy is DiameterPolicy.AVERAGE:
            return self.average_diameter + self.max_diameter_variance
        return self.max_diameter

    @property
    def dot_cell(self) -> int:
        # Even-sized square any dot of the policy fits in, centered on an integer pixel
        return 2 * math.ceil(self.largest_diameter / 2.0)

    def min_for_level(self, level: Difficulty) -> int:
        if level is Difficulty.EASY:
            return self.easy_min
        if level is Difficulty.MEDIUM:
            return self.medium_min
        return self.hard_min

    def distance_band(self, level: Difficulty) -> Tuple[int, int]:
        low = self.min_for_level(level)
        return low, low + self.choices_per_mode - 1

    def validate(self) -> "StimulusConfig":
        if self.option_width <= 0 or self.option_height <= 0:
            raise ConfigurationError(
                f"Option panel must have a positive size, got {self.option_width}x{self.option_height}"
            )

        if self.diameter_policy is DiameterPolicy.AVERAGE:
            if self.max_diameter_variance < 0:
                raise ConfigurationError("max_diameter_variance must not be negative")
            if self.average_diameter - self.max_diameter_variance <= 0:
                raise ConfigurationError(
                    "average_diameter must exceed max_diameter_variance so every dot has a positive diameter"
                )
        else:
            if self.min_diameter <= 0:
                raise ConfigurationError(f"min_diameter must be positive, got {self.min_diameter}")
            if self.min_diameter > self.max_diameter:
                raise ConfigurationError(
                    f"min_diameter ({self.min_diameter}) is larger than max_diameter ({self.max_diameter})"
                )

        cell = self.dot_cell
        if cell > self.option_width or cell > self.option_height:
            raise ConfigurationError(
                f"A dot of diameter {self.largest_diameter} does not fit in a "
                f"{self.option_width}x{self.option_height} panel"
            )

        if self.min_dots < 1:
            raise ConfigurationError(f"min_dots must be at least 1, got {self.min_dots}")
        if self.max_dots <= self.min_dots:
            raise ConfigurationError("max_dots must be larger than min_dots")
        if not 0.0 < self.inverse_area_shrink < 1.0:
            raise ConfigurationError(
                f"inverse_area_shrink must be between 0 and 1 (exclusive), got {self.inverse_area_shrink}"
            )
        if self.difficulty_replication < 1:
            raise ConfigurationError("difficulty_replication must be at least 1")
        if self.max_run_length < 1:
            raise ConfigurationError("max_run_length must be at least 1")
        if self.max_placement_attempts < 1:
            raise ConfigurationError("max_placement_attempts must be at least 1")
        if self.choices_per_mode < 1:
            raise ConfigurationError("choices_per_mode must be at least 1")

        # Bands must run HARD < MEDIUM < EASY without sharing any distance
        if self.hard_min < 1:
            raise ConfigurationError("hard_min must be at least 1, equal counts are never allowed")
        ordered = [Difficulty.HARD, Difficulty.MEDIUM, Difficulty.EASY]
        for lower, upper in zip(ordered, ordered[1:]):
            _lo, lower_high = self.distance_band(lower)
            upper_low, _hi = self.distance_band(upper)
            if upper_low <= lower_high:
                raise ConfigurationError(
                    f"Difficulty bands overlap or are inverted: {lower.name} ends at {lower_high}, "
                    f"{upper.name} starts at {upper_low}"
                )
        _easy_low, easy_high = self.distance_band(Difficulty.EASY)
        if easy_high > self.max_dots - self.min_dots:
            raise ConfigurationError(
                f"EASY distances up to {easy_high} do not fit in the dot range [{self.min_dots}, {self.max_dots}]"
            )
        return self


def add_config_arguments(parser: argparse.ArgumentParser) -> None:
    group = parser.add_argument_group("stimulus configuration")
    group.add_argument("--width", dest="width", type=int, default=DEFAULT_OPTION_WIDTH, help="Option panel width in pixels")
    group.add_argument("--height", dest="height", type=int, default=DEFAULT_OPTION_HEIGHT, help="Option panel height in pixels")
    group.add_argument(
        "--policy",
        dest="policy",
        choices=[p.value for p in DiameterPolicy],
        default=DiameterPolicy.INDEPENDENT.value,
        help="Diameter policy: independent random diameters or pairs around an average",
    )
    group.add_argument("--min-diameter", dest="min_diameter", type=float, default=DEFAULT_MIN_DIAMETER)
    group.add_argument("--max-diameter", dest="max_diameter", type=float, default=DEFAULT_MAX_DIAMETER)
    group.add_argument("--avg-diameter", dest="avg_diameter", type=float, default=DEFAULT_AVERAGE_DIAMETER)
    group.add_argument("--max-variance", dest="max_variance", type=float, default=DEFAULT_MAX_DIAMETER_VARIANCE)
    group.add_argument("--min-dots", dest="min_dots", type=int, default=DEFAULT_MIN_DOTS)
    group.add_argument("--max-dots", dest="max_dots", type=int, default=DEFAULT_MAX_DOTS)
    group.add_argument(
        "--area-control",
        dest="area_control",
        choices=[a.value for a in AreaControl],
        default=AreaControl.RANDOM.value,
        help="Total area control between the two dot sets of a pair",
    )
    group.add_argument(
        "--inverse-shrink",
        dest="inverse_shrink",
        type=float,
        default=DEFAULT_INVERSE_AREA_SHRINK,
        help="Diameter factor applied to the smaller-area set for inverse area control",
    )
    group.add_argument("--replication", dest="replication", type=int, default=DEFAULT_DIFFICULTY_REPLICATION, help="Copies of each difficulty level per bag")
    group.add_argument("--max-run", dest="max_run", type=int, default=DEFAULT_MAX_RUN_LENGTH, help="Max consecutive rounds with the same correct side")
    group.add_argument("--attempts", dest="attempts", type=int, default=MAX_PLACEMENT_ATTEMPTS, help="Placement attempts per dot before failing")


def config_from_args(args: argparse.Namespace) -> StimulusConfig:
    config = StimulusConfig(
        max_run_length=args.max_run,
        option_width=args.width,
        option_height=args.height,
        diameter_policy=DiameterPolicy(args.policy),
        min_diameter=args.min_diameter,
        max_diameter=args.max_diameter,
        average_diameter=args.avg_diameter,
        max_diameter_variance=args.max_variance,
        min_dots=args.min_dots,
        max_dots=args.max_dots,
        area_control=AreaControl(args.area_control),
        inverse_area_shrink=args.inverse_shrink,
        difficulty_replication=args.replication,
        max_placement_attempts=args.attempts,
    )
    return config.validate()
