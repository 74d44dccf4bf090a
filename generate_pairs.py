import argparse
import os
import random
import threading
from dataclasses import dataclass
from typing import List, Optional, Tuple

from generate_dots import (
    DEFAULT_BG_COLOR,
    DotSet,
    inverse_match_area,
    match_area,
    pack_dot_set,
    render_pair_image,
    save_log_lines,
)
from stimulus_config import (
    AreaControl,
    ControlType,
    Difficulty,
    DiameterPolicy,
    InvalidPairRequest,
    PackingInfeasible,
    StimulusConfig,
    add_config_arguments,
    config_from_args,
)

# =========================
# Constants Section
# =========================

OUTPUT_DIR = "output"
PAIR_PREFIX = "pair_"
DEFAULT_ROUNDS = 30

# =========================
# End of Constants Section
# =========================


@dataclass(frozen=True)
class DotSetPair:
    """Two dot sets shown in one round; dot_set_one is drawn on the left."""
    dot_set_one: DotSet
    dot_set_two: DotSet
    difference: int
    left_correct: bool
    control_type: ControlType = ControlType.NONE
    difficulty: Optional[Difficulty] = None

    def __post_init__(self) -> None:
        if self.difference == 0:
            raise InvalidPairRequest("A dot set pair cannot have equal counts")
        if self.left_correct != (self.difference > 0):
            raise ValueError("left_correct must follow the sign of the difference")
        self.dot_set_one.freeze()
        self.dot_set_two.freeze()

    @property
    def count_one(self) -> int:
        return len(self.dot_set_one)

    @property
    def count_two(self) -> int:
        return len(self.dot_set_two)

    @property
    def distance(self) -> int:
        return abs(self.difference)

    @property
    def side_correct(self) -> str:
        return "left" if self.left_correct else "right"


class DifficultyScheduler:
    """
    Pseudo-random difficulty selection.

    The bag holds `replication` copies of every difficulty. Each draw removes a
    random entry; an empty bag is refilled before the next draw, so every full
    bag is shown in a random order with each level appearing equally often.
    """

    def __init__(self, config: StimulusConfig, rng: random.Random) -> None:
        self.config = config
        self.rng = rng
        self._bag: List[Difficulty] = []
        self._fill_bag()

    def _fill_bag(self) -> None:
        for _ in range(self.config.difficulty_replication):
            self._bag.extend([Difficulty.EASY, Difficulty.MEDIUM, Difficulty.HARD])

    @property
    def remaining(self) -> int:
        return len(self._bag)

    def draw_difficulty(self) -> Difficulty:
        if not self._bag:
            self._fill_bag()
        return self._bag.pop(self.rng.randrange(len(self._bag)))

    def return_difficulty(self, level: Difficulty) -> None:
        """Put back a level whose round could not be built."""
        self._bag.append(level)

    def distance_for_level(self, level: Difficulty) -> int:
        return self.config.min_for_level(level) + self.rng.randrange(self.config.choices_per_mode)


class FairnessController:
    """Keeps the same side from being correct more than `max_run_length` rounds in a row."""

    def __init__(self, max_run_length: int) -> None:
        self.max_run_length = max_run_length
        self.same_choice = 0
        self.last_was_left = False

    def _next_state(self, left_correct: bool) -> Tuple[int, bool, bool]:
        same_choice = self.same_choice + 1 if left_correct == self.last_was_left else 0
        if same_choice >= self.max_run_length:
            # The swapped round shows the opposite side as correct
            return 0, not left_correct, True
        return same_choice, left_correct, False

    def decide(self, left_correct: bool) -> bool:
        """Whether a round with this side must be swapped, without recording it."""
        return self._next_state(left_correct)[2]

    def update(self, left_correct: bool) -> bool:
        """Record the side of a finished round. Returns True when the round was swapped."""
        self.same_choice, self.last_was_left, swapped = self._next_state(left_correct)
        return swapped


class PairGenerator:
    """
    Builds dot set pairs.

    Owns its random generator, difficulty scheduler and fairness state; public
    methods are serialized by a lock so the generator may be shared with a
    background worker.
    """

    def __init__(
        self,
        config: StimulusConfig,
        seed: int | None = None,
        rng: random.Random | None = None,
        verbose: bool = False,
    ) -> None:
        self.config = config.validate()
        self.rng = rng if rng is not None else random.Random(seed)
        self.scheduler = DifficultyScheduler(self.config, self.rng)
        self.fairness = FairnessController(self.config.max_run_length)
        self.verbose = verbose
        self._lock = threading.RLock()

    def _resolve_area_control(self, area_control: bool | None) -> AreaControl:
        configured = self.config.area_control
        enabled = configured is not AreaControl.OFF if area_control is None else area_control
        if not enabled:
            return AreaControl.OFF
        if configured in (AreaControl.MATCH, AreaControl.INVERSE):
            return configured
        return AreaControl.MATCH if self.rng.random() < 0.5 else AreaControl.INVERSE

    def _apply_area_control(self, mode: AreaControl, dot_set_one: DotSet, dot_set_two: DotSet) -> ControlType:
        if mode is AreaControl.MATCH:
            if dot_set_one.total_area >= dot_set_two.total_area:
                match_area(dot_set_one, dot_set_two.total_area)
            else:
                match_area(dot_set_two, dot_set_one.total_area)
            return ControlType.EQUAL_AREAS
        if mode is AreaControl.INVERSE:
            if dot_set_one.total_area <= dot_set_two.total_area:
                inverse_match_area(dot_set_one, dot_set_two.total_area, self.config.inverse_area_shrink)
            else:
                inverse_match_area(dot_set_two, dot_set_one.total_area, self.config.inverse_area_shrink)
            return ControlType.INVERSE_AREAS
        if self.config.diameter_policy is DiameterPolicy.AVERAGE:
            return ControlType.RADIUS_AVERAGE_EQUAL
        return ControlType.NONE

    def build_pair(
        self,
        count_one: int,
        count_two: int,
        area_control: bool | None = None,
        difficulty: Difficulty | None = None,
    ) -> DotSetPair:
        if count_one < 1 or count_two < 1:
            raise InvalidPairRequest(f"Dot counts must be positive, got {count_one} and {count_two}")
        if count_one == count_two:
            raise InvalidPairRequest(f"Dot counts must differ, got {count_one} twice")

        with self._lock:
            requested_left = count_one > count_two
            if self.fairness.decide(requested_left):
                count_one, count_two = count_two, count_one

            dot_set_one = pack_dot_set(count_one, self.config, self.rng)
            dot_set_two = pack_dot_set(count_two, self.config, self.rng)
            mode = self._resolve_area_control(area_control)
            control_type = self._apply_area_control(mode, dot_set_one, dot_set_two)

            pair = DotSetPair(
                dot_set_one=dot_set_one,
                dot_set_two=dot_set_two,
                difference=count_one - count_two,
                left_correct=count_one > count_two,
                control_type=control_type,
                difficulty=difficulty,
            )
            # Only a finished pair counts towards the streak
            self.fairness.update(requested_left)
            if self.verbose:
                level = difficulty.name if difficulty is not None else "-"
                print(
                    f"Pair {pair.count_one} vs {pair.count_two}  side={pair.side_correct}  difficulty={level}  "
                    f"control={control_type.value}  areas={dot_set_one.total_area:.0f}/{dot_set_two.total_area:.0f}  "
                    f"streak={self.fairness.same_choice}"
                )
            return pair

    def build_difficulty_pair(self, level: Difficulty | None = None) -> DotSetPair:
        with self._lock:
            drawn = level is None
            if drawn:
                level = self.scheduler.draw_difficulty()
            distance = self.scheduler.distance_for_level(level)
            count_one = self.rng.randint(self.config.min_dots, self.config.max_dots - distance)
            count_two = count_one + distance
            if self.rng.random() < 0.5:
                count_one, count_two = count_two, count_one
            try:
                return self.build_pair(count_one, count_two, difficulty=level)
            except PackingInfeasible:
                if drawn:
                    self.scheduler.return_difficulty(level)
                raise

    def build_random_pair(self) -> DotSetPair:
        with self._lock:
            count_one = self.rng.randint(self.config.min_dots, self.config.max_dots)
            count_two = count_one
            while count_two == count_one:
                count_two = self.rng.randint(self.config.min_dots, self.config.max_dots)
            return self.build_pair(count_one, count_two)


def save_pair_image(pair: DotSetPair, output_path: str, config: StimulusConfig, background_color: str = DEFAULT_BG_COLOR) -> str:
    out_dir = os.path.dirname(output_path)
    if out_dir and not os.path.exists(out_dir):
        os.makedirs(out_dir, exist_ok=True)
    image = render_pair_image(
        pair.dot_set_one,
        pair.dot_set_two,
        config.option_width,
        config.option_height,
        background_color=background_color,
    )
    image.save(output_path)
    return output_path


def describe_pair(index: int, pair: DotSetPair) -> str:
    level = pair.difficulty.name if pair.difficulty is not None else "-"
    return (
        f"{index:03d}  left={pair.count_one:2d}  right={pair.count_two:2d}  distance={pair.distance:2d}  "
        f"correct={pair.side_correct:<5s}  difficulty={level:<6s}  control={pair.control_type.value}  "
        f"areas={pair.dot_set_one.total_area:.0f}/{pair.dot_set_two.total_area:.0f}"
    )


def generate_pair_image(
    count_one: int,
    count_two: int,
    output_path: str,
    config: StimulusConfig,
    seed: int | None = None,
    background_color: str = DEFAULT_BG_COLOR,
    verbose: bool = False,
) -> str:
    generator = PairGenerator(config, seed=seed, verbose=verbose)
    pair = generator.build_pair(count_one, count_two)
    return save_pair_image(pair, output_path, config, background_color)


def generate_session(
    output_dir: str = OUTPUT_DIR,
    config: StimulusConfig | None = None,
    rounds: int = DEFAULT_ROUNDS,
    seed: int | None = None,
    background_color: str = DEFAULT_BG_COLOR,
    verbose: bool = False,
    log_file_path: str | None = None,
) -> List[str]:
    """
    Generate a session of difficulty-scheduled dot set pairs.

    Args:
        output_dir: Directory to save the pair images
        config: Stimulus configuration (max_run_length is required)
        rounds: Number of pairs to generate
        seed: Random seed for reproducibility
        background_color: Background color behind the two panels
        verbose: Whether to print per-pair details
        log_file_path: Optional path to save the per-pair details

    Returns:
        List of paths to generated pair images
    """
    if config is None:
        raise ValueError("A stimulus configuration is required")
    if rounds < 1:
        raise ValueError(f"rounds must be at least 1, got {rounds}")

    os.makedirs(output_dir, exist_ok=True)
    generator = PairGenerator(config, seed=seed)

    print(f"Generating {rounds} pairs...")
    generated_paths = []
    log_lines: List[str] = []
    for i in range(rounds):
        pair = generator.build_difficulty_pair()
        line = describe_pair(i + 1, pair)
        log_lines.append(line)
        if verbose:
            print(line)
        else:
            print(f"Generating pair {i + 1}/{rounds}...")

        output_path = os.path.join(output_dir, f"{PAIR_PREFIX}{i + 1:03d}.png")
        generated_paths.append(save_pair_image(pair, output_path, config, background_color))

    if log_file_path:
        save_log_lines(log_lines, log_file_path)

    print(f"\nSuccessfully generated {len(generated_paths)} pairs in {output_dir}")
    return generated_paths


def main():
    """Main function to generate dot set pairs."""
    parser = argparse.ArgumentParser(description="Generate dot set pairs for a numerosity comparison task")
    parser.add_argument("--output", "-o", default=OUTPUT_DIR, help="Output directory for generated pairs")
    parser.add_argument("--rounds", "-r", type=int, default=DEFAULT_ROUNDS, help="Number of difficulty-scheduled pairs")
    parser.add_argument("--counts", nargs=2, type=int, metavar=("LEFT", "RIGHT"), default=None, help="Generate one pair with these dot counts instead of a session")
    parser.add_argument("--bg", default=DEFAULT_BG_COLOR, help="Background color (hex)")
    parser.add_argument("--seed", type=int, default=None, help="Random seed for reproducibility")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")
    parser.add_argument("--log-file", dest="log_file", default=None, help="Optional path to save per-pair details")
    add_config_arguments(parser)

    args = parser.parse_args()

    try:
        config = config_from_args(args)
        if args.counts is not None:
            output_path = os.path.join(args.output, f"{PAIR_PREFIX}{args.counts[0]}_{args.counts[1]}.png")
            saved = generate_pair_image(
                args.counts[0],
                args.counts[1],
                output_path,
                config,
                seed=args.seed,
                background_color=args.bg,
                verbose=args.verbose,
            )
            print(f"Saved: {saved}")
            return 0

        generated_paths = generate_session(
            output_dir=args.output,
            config=config,
            rounds=args.rounds,
            seed=args.seed,
            background_color=args.bg,
            verbose=args.verbose,
            log_file_path=args.log_file,
        )

        print(f"\nAll pairs generated successfully!")
        print(f"Output directory: {args.output}")
        print(f"Total pairs: {len(generated_paths)}")

    except Exception as e:
        print(f"Error: {e}")
        return 1

    return 0


if __name__ == "__main__":
    exit(main())
