import argparse
import math
import os
import random
from typing import Callable, List, Tuple

from PIL import Image, ImageDraw

from stimulus_config import (
    ConfigurationError,
    DiameterPolicy,
    PackingInfeasible,
    StimulusConfig,
    add_config_arguments,
    config_from_args,
)

# =========================
# Constants Section
# =========================

# Panel and dot colors
PANEL_COLOR = "#F5F5DC"  # beige
DOT_COLOR = "#008000"    # green
DEFAULT_BG_COLOR = "#FFFFFF"

# Pair image layout: two panels side by side
PAIR_MARGIN_X = 64
PAIR_MARGIN_Y = 80
PAIR_PANEL_GAP = 70

# Debug overlay
DEBUG_OVERLAY_BORDER_OUTLINE = (0, 0, 0, 80)
DEBUG_OVERLAY_BORDER_WIDTH = 2
DEBUG_OVERLAY_DOT_OUTLINE = (255, 0, 0, 120)
DEBUG_OVERLAY_DOT_WIDTH = 2
DEBUG_OVERLAY_CROSSHAIR_COLOR = (255, 0, 0, 180)
DEBUG_OVERLAY_CROSSHAIR_WIDTH = 2
DEBUG_OVERLAY_CROSSHAIR_SIZE = 6

# =========================
# End of Constants Section
# =========================

# Dot center in panel pixels
Coordinate = Tuple[int, int]


def circles_overlap(center_one: Tuple[float, float], diameter_one: float, center_two: Tuple[float, float], diameter_two: float) -> bool:
    distance = math.hypot(center_one[0] - center_two[0], center_one[1] - center_two[1])
    return distance < (diameter_one + diameter_two) / 2.0


def dot_area(diameter: float) -> float:
    return math.pi * (diameter / 2.0) ** 2


class DotSet:
    """
    An ordered set of non-overlapping dots.

    Positions are dot centers. The total area is kept up to date as dots are
    added and whenever the whole set is rescaled. Once frozen (a finished
    DotSetPair freezes both of its sets) the set can no longer change.
    """

    def __init__(self) -> None:
        self._positions: List[Coordinate] = []
        self._diameters: List[float] = []
        self.total_area = 0.0
        self.frozen = False

    def __len__(self) -> int:
        return len(self._positions)

    @property
    def positions(self) -> List[Coordinate]:
        return list(self._positions)

    @property
    def diameters(self) -> List[float]:
        return list(self._diameters)

    def freeze(self) -> None:
        self.frozen = True

    def _check_mutable(self) -> None:
        if self.frozen:
            raise RuntimeError("This dot set belongs to a finished pair and cannot be changed")

    def overlaps(self, position: Coordinate, diameter: float) -> bool:
        for other_position, other_diameter in zip(self._positions, self._diameters):
            if circles_overlap(position, diameter, other_position, other_diameter):
                return True
        return False

    def add_dot(self, position: Coordinate, diameter: float) -> None:
        self._check_mutable()
        if diameter <= 0:
            raise ValueError(f"Dot diameter must be positive, got {diameter}")
        if self.overlaps(position, diameter):
            raise ValueError(f"Dot at {position} with diameter {diameter:.1f} overlaps another dot")
        self._positions.append((int(position[0]), int(position[1])))
        self._diameters.append(float(diameter))
        self.total_area += dot_area(diameter)

    def rescale(self, ratio: float) -> None:
        self._check_mutable()
        if ratio <= 0:
            raise ValueError(f"Rescale ratio must be positive, got {ratio}")
        # Every dot shrinks or grows around its own center
        self._diameters = [d * ratio for d in self._diameters]
        self.total_area = sum(dot_area(d) for d in self._diameters)

    def circles(self) -> List[dict]:
        return [
            {"x": x, "y": y, "diameter": d}
            for (x, y), d in zip(self._positions, self._diameters)
        ]


def sample_position(config: StimulusConfig, rng: random.Random) -> Coordinate:
    half = config.dot_cell // 2
    x = rng.randint(half, config.option_width - half)
    y = rng.randint(half, config.option_height - half)
    return x, y


def place_dot(
    dot_set: DotSet,
    draw_diameter: Callable[[], float],
    config: StimulusConfig,
    rng: random.Random,
) -> None:
    """Sample a position and a diameter until the dot fits, within the attempt budget."""
    for _attempt in range(config.max_placement_attempts):
        position = sample_position(config, rng)
        diameter = draw_diameter()
        if not dot_set.overlaps(position, diameter):
            dot_set.add_dot(position, diameter)
            return
    raise PackingInfeasible(
        f"Could not place dot {len(dot_set) + 1} without overlap after "
        f"{config.max_placement_attempts} attempts. Try fewer dots, smaller diameters or a larger panel."
    )


def fill_independent(dot_set: DotSet, count: int, config: StimulusConfig, rng: random.Random) -> None:
    def draw_diameter() -> float:
        return rng.uniform(config.min_diameter, config.max_diameter)

    while len(dot_set) < count:
        place_dot(dot_set, draw_diameter, config, rng)


def fill_average(dot_set: DotSet, count: int, config: StimulusConfig, rng: random.Random) -> None:
    mean = config.average_diameter
    while len(dot_set) < count:
        if count - len(dot_set) >= 2:
            # random() is in [0, 1) so the variance is in (0, max]
            variance = config.max_diameter_variance * (1.0 - rng.random())
            # Only the position is resampled; each diameter stays fixed
            place_dot(dot_set, lambda: mean + variance, config, rng)
            place_dot(dot_set, lambda: mean - variance, config, rng)
        else:
            place_dot(dot_set, lambda: mean, config, rng)


def pack_dot_set(count: int, config: StimulusConfig, rng: random.Random) -> DotSet:
    if count < 1:
        raise ConfigurationError(f"A dot set needs at least one dot, got {count}")

    dot_set = DotSet()
    if config.diameter_policy is DiameterPolicy.AVERAGE:
        fill_average(dot_set, count, config, rng)
    else:
        fill_independent(dot_set, count, config, rng)
    return dot_set


def match_area(target: DotSet, reference_area: float) -> None:
    """
    Scale every dot of `target` so its total area equals `reference_area`.

    Given a set X with area Ax and a reference area Ay, every diameter in X is
    multiplied by sqrt(Ay / Ax). Only the larger-area set may be matched to the
    smaller one, so dots always shrink and never start to overlap.
    """
    if len(target) == 0 or target.total_area <= 0:
        raise ValueError("Cannot match the area of an empty dot set")
    if reference_area <= 0:
        raise ValueError(f"Reference area must be positive, got {reference_area}")
    if reference_area > target.total_area:
        raise ValueError("match_area must scale the larger-area dot set down to the smaller one")

    target.rescale(math.sqrt(reference_area / target.total_area))


def inverse_match_area(target: DotSet, other_area: float, shrink: float) -> None:
    """
    Shrink the smaller-area `target` further so the area gap to the other set widens.

    Every diameter is multiplied by `shrink`, so the ratio other_area / target
    area grows by 1 / shrink**2.
    """
    if len(target) == 0 or target.total_area <= 0:
        raise ValueError("Cannot rescale the area of an empty dot set")
    if not 0.0 < shrink < 1.0:
        raise ValueError(f"shrink must be between 0 and 1 (exclusive), got {shrink}")
    if target.total_area > other_area:
        raise ValueError("inverse_match_area must shrink the dot set with the smaller area")

    target.rescale(shrink)


def draw_dot_set_panel(
    dot_set: DotSet,
    width: int,
    height: int,
    panel_color: str = PANEL_COLOR,
    dot_color: str = DOT_COLOR,
) -> Image.Image:
    panel = Image.new("RGBA", (width, height), panel_color)
    draw = ImageDraw.Draw(panel)
    for (x, y), diameter in zip(dot_set.positions, dot_set.diameters):
        r = diameter / 2.0
        draw.ellipse([x - r, y - r, x + r, y + r], fill=dot_color)
    return panel


def render_pair_image(
    dot_set_one: DotSet,
    dot_set_two: DotSet,
    width: int,
    height: int,
    background_color: str = DEFAULT_BG_COLOR,
    panel_color: str = PANEL_COLOR,
    dot_color: str = DOT_COLOR,
) -> Image.Image:
    canvas_w = 2 * PAIR_MARGIN_X + 2 * width + PAIR_PANEL_GAP
    canvas_h = 2 * PAIR_MARGIN_Y + height
    canvas = Image.new("RGBA", (canvas_w, canvas_h), background_color)

    left = draw_dot_set_panel(dot_set_one, width, height, panel_color, dot_color)
    right = draw_dot_set_panel(dot_set_two, width, height, panel_color, dot_color)
    canvas.alpha_composite(left, dest=(PAIR_MARGIN_X, PAIR_MARGIN_Y))
    canvas.alpha_composite(right, dest=(PAIR_MARGIN_X + width + PAIR_PANEL_GAP, PAIR_MARGIN_Y))
    return canvas


def render_debug_overlay(dot_set: DotSet, width: int, height: int) -> Image.Image:
    overlay = Image.new("RGBA", (width, height), (0, 0, 0, 0))
    draw = ImageDraw.Draw(overlay)
    draw.rectangle([0, 0, width - 1, height - 1], outline=DEBUG_OVERLAY_BORDER_OUTLINE, width=DEBUG_OVERLAY_BORDER_WIDTH)
    for (x, y), diameter in zip(dot_set.positions, dot_set.diameters):
        rad = diameter / 2.0
        draw.ellipse([x - rad, y - rad, x + rad, y + rad], outline=DEBUG_OVERLAY_DOT_OUTLINE, width=DEBUG_OVERLAY_DOT_WIDTH)
        # crosshair
        draw.line([x - DEBUG_OVERLAY_CROSSHAIR_SIZE, y, x + DEBUG_OVERLAY_CROSSHAIR_SIZE, y], fill=DEBUG_OVERLAY_CROSSHAIR_COLOR, width=DEBUG_OVERLAY_CROSSHAIR_WIDTH)
        draw.line([x, y - DEBUG_OVERLAY_CROSSHAIR_SIZE, x, y + DEBUG_OVERLAY_CROSSHAIR_SIZE], fill=DEBUG_OVERLAY_CROSSHAIR_COLOR, width=DEBUG_OVERLAY_CROSSHAIR_WIDTH)
    return overlay


def compute_dot_stats(dot_set: DotSet, width: int, height: int) -> Tuple[float, float, float, float, float, float]:
    """Return (min_d, avg_d, max_d, total_area, coverage, min_gap) for a non-empty dot set."""
    positions = dot_set.positions
    diameters = dot_set.diameters
    min_d = min(diameters)
    max_d = max(diameters)
    avg_d = sum(diameters) / len(diameters)
    coverage = dot_set.total_area / float(width * height)

    # Smallest edge-to-edge distance between any two dots (inf for a single dot)
    min_gap = math.inf
    for i in range(len(dot_set)):
        for j in range(i + 1, len(dot_set)):
            (x1, y1), (x2, y2) = positions[i], positions[j]
            gap = math.hypot(x1 - x2, y1 - y2) - (diameters[i] + diameters[j]) / 2.0
            min_gap = min(min_gap, gap)
    return min_d, avg_d, max_d, dot_set.total_area, coverage, min_gap


def save_log_lines(log_lines: List[str], log_file_path: str) -> None:
    out_dir = os.path.dirname(log_file_path)
    if out_dir and not os.path.exists(out_dir):
        os.makedirs(out_dir, exist_ok=True)
    with open(log_file_path, "w", encoding="utf-8") as f:
        f.write("\n".join(log_lines) + "\n")


def generate_dot_set_image(
    count: int,
    output_path: str,
    config: StimulusConfig,
    seed: int | None = None,
    verbose: bool = False,
    debug_overlay_path: str | None = None,
    log_file_path: str | None = None,
) -> str:
    rng = random.Random(seed)
    dot_set = pack_dot_set(count, config, rng)
    panel = draw_dot_set_panel(dot_set, config.option_width, config.option_height)

    if debug_overlay_path is not None:
        overlay = render_debug_overlay(dot_set, config.option_width, config.option_height)
        overlay.save(debug_overlay_path)

    if verbose:
        min_d, avg_d, max_d, total_area, coverage, min_gap = compute_dot_stats(
            dot_set, config.option_width, config.option_height
        )
        log_lines: List[str] = []
        log_lines.append(f"Diameter policy: {config.diameter_policy.value}")
        log_lines.append("Dot placements (index x y diameter):")
        for i, circle in enumerate(dot_set.circles()):
            log_lines.append(f"  {i:02d}  x={circle['x']:4d}  y={circle['y']:4d}  d={circle['diameter']:6.2f}")
        log_lines.append(f"Diameter stats: min={min_d:.2f}  avg={avg_d:.2f}  max={max_d:.2f}")
        log_lines.append(f"Total area: {total_area:.1f} px^2  coverage={coverage:.3f}")
        log_lines.append(f"Smallest gap between dots: {min_gap:.2f} px")

        for line in log_lines:
            print(line)
        if log_file_path:
            save_log_lines(log_lines, log_file_path)

    # Ensure output directory exists
    out_dir = os.path.dirname(output_path)
    if out_dir and not os.path.exists(out_dir):
        os.makedirs(out_dir, exist_ok=True)

    panel.save(output_path)
    return output_path


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate a single panel of non-overlapping dots.")
    parser.add_argument("count", type=int, help="Number of dots to place")
    parser.add_argument("--out", dest="out", default=os.path.join("output", "dots.png"), help="Output image path (PNG recommended)")
    parser.add_argument("--seed", dest="seed", type=int, default=None, help="Random seed for reproducibility (omit for randomness)")
    parser.add_argument("--verbose", dest="verbose", action="store_true", help="Print dot placements and diagnostics")
    parser.add_argument("--debug-overlay", dest="debug_overlay", default=None, help="Optional path to save a debug overlay PNG")
    parser.add_argument("--log-file", dest="log_file", default=None, help="Optional path to save verbose placement logs")
    add_config_arguments(parser)
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    try:
        config = config_from_args(args)
        out_path = generate_dot_set_image(
            count=args.count,
            output_path=args.out,
            config=config,
            seed=args.seed,
            verbose=args.verbose,
            debug_overlay_path=args.debug_overlay,
            log_file_path=args.log_file,
        )
    except Exception as e:
        print(f"Error: {e}")
        return 1
    print(f"Saved: {out_path}")
    return 0


if __name__ == "__main__":
    exit(main())
