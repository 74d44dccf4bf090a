#!/usr/bin/env python3
"""
Tests for pair building: correct side, difficulty scheduling, the anti-streak
control and area control modes.
"""

import argparse
import random
from collections import Counter

import pytest

from generate_dots import DotSet
from generate_pairs import (
    DifficultyScheduler,
    DotSetPair,
    FairnessController,
    PairGenerator,
    generate_pair_image,
    generate_session,
)
from stimulus_config import (
    AreaControl,
    ConfigurationError,
    ControlType,
    DiameterPolicy,
    Difficulty,
    InvalidPairRequest,
    PackingInfeasible,
    StimulusConfig,
    add_config_arguments,
    config_from_args,
)


def make_config(**overrides) -> StimulusConfig:
    overrides.setdefault("max_run_length", 3)
    return StimulusConfig(**overrides).validate()


def longest_run(sides):
    longest = current = 0
    previous = None
    for side in sides:
        current = current + 1 if side == previous else 1
        previous = side
        longest = max(longest, current)
    return longest


# Configuration

def test_reference_configuration_is_valid():
    config = make_config()
    assert config.distance_band(Difficulty.EASY) == (14, 17)
    assert config.distance_band(Difficulty.MEDIUM) == (8, 11)
    assert config.distance_band(Difficulty.HARD) == (2, 5)


@pytest.mark.parametrize(
    "overrides",
    [
        {"min_diameter": 60, "max_diameter": 50},
        {"min_diameter": 0},
        {"diameter_policy": DiameterPolicy.AVERAGE, "average_diameter": 10, "max_diameter_variance": 10},
        {"medium_min": 5},
        {"easy_min": 6, "medium_min": 14},
        {"hard_min": 0},
        {"easy_min": 24},
        {"max_run_length": 0},
        {"inverse_area_shrink": 1.0},
        {"difficulty_replication": 0},
        {"min_dots": 0},
        {"max_dots": 1},
        {"option_width": 40},
        {"max_placement_attempts": 0},
    ],
)
def test_invalid_configuration_is_rejected(overrides):
    overrides.setdefault("max_run_length", 3)
    with pytest.raises(ConfigurationError):
        StimulusConfig(**overrides).validate()


def test_config_from_default_arguments():
    parser = argparse.ArgumentParser()
    add_config_arguments(parser)
    config = config_from_args(parser.parse_args([]))
    assert config.max_run_length == 3
    assert config.area_control is AreaControl.RANDOM
    assert config.diameter_policy is DiameterPolicy.INDEPENDENT

    config = config_from_args(parser.parse_args(["--policy", "average", "--area-control", "off", "--max-run", "5"]))
    assert config.diameter_policy is DiameterPolicy.AVERAGE
    assert config.area_control is AreaControl.OFF
    assert config.max_run_length == 5


# Pairs

def test_left_side_correct_when_first_count_larger():
    pair = PairGenerator(make_config(), seed=1).build_pair(10, 7)
    assert pair.difference == 3
    assert pair.left_correct
    assert pair.side_correct == "left"
    assert (pair.count_one, pair.count_two) == (10, 7)


def test_right_side_correct_when_second_count_larger():
    pair = PairGenerator(make_config(), seed=1).build_pair(7, 10)
    assert pair.difference == -3
    assert not pair.left_correct
    assert pair.side_correct == "right"
    assert pair.distance == 3


def test_equal_or_non_positive_counts_are_rejected():
    generator = PairGenerator(make_config(), seed=1)
    with pytest.raises(InvalidPairRequest):
        generator.build_pair(6, 6)
    with pytest.raises(InvalidPairRequest):
        generator.build_pair(0, 4)
    # Rejected requests do not touch the streak
    assert generator.fairness.same_choice == 0


def test_pair_is_immutable_and_consistent():
    one, two = DotSet(), DotSet()
    one.add_dot((20, 20), 10)
    with pytest.raises(InvalidPairRequest):
        DotSetPair(one, two, difference=0, left_correct=False)
    with pytest.raises(ValueError):
        DotSetPair(one, two, difference=1, left_correct=False)

    pair = DotSetPair(one, two, difference=1, left_correct=True)
    with pytest.raises(AttributeError):
        pair.difference = 2


# Difficulty scheduling

@pytest.mark.parametrize("replication", [1, 2, 3])
def test_every_bag_holds_each_level_equally(replication):
    config = make_config(difficulty_replication=replication)
    scheduler = DifficultyScheduler(config, random.Random(replication))
    bag_size = 3 * replication
    assert scheduler.remaining == bag_size

    draws = [scheduler.draw_difficulty() for _ in range(bag_size * 10)]
    for start in range(0, len(draws), bag_size):
        counts = Counter(draws[start:start + bag_size])
        assert counts == {Difficulty.EASY: replication, Difficulty.MEDIUM: replication, Difficulty.HARD: replication}


def test_bag_order_is_shuffled():
    scheduler = DifficultyScheduler(make_config(), random.Random(9))
    orders = {tuple(scheduler.draw_difficulty() for _ in range(6)) for _ in range(30)}
    assert len(orders) > 1


def test_distance_stays_in_level_band():
    scheduler = DifficultyScheduler(make_config(), random.Random(4))
    for level, band in [(Difficulty.EASY, {14, 15, 16, 17}), (Difficulty.MEDIUM, {8, 9, 10, 11}), (Difficulty.HARD, {2, 3, 4, 5})]:
        seen = {scheduler.distance_for_level(level) for _ in range(200)}
        assert seen == band


def test_difficulty_pair_uses_level_distance():
    config = make_config()
    generator = PairGenerator(config, seed=12)
    for level in Difficulty:
        low, high = config.distance_band(level)
        for _ in range(5):
            pair = generator.build_difficulty_pair(level)
            assert low <= pair.distance <= high
            assert pair.difficulty is level
            assert config.min_dots <= min(pair.count_one, pair.count_two)
            assert max(pair.count_one, pair.count_two) <= config.max_dots


def test_session_draws_difficulties_from_the_bag():
    config = make_config(max_dots=20, easy_min=12, medium_min=7)
    generator = PairGenerator(config, seed=3)
    levels = [generator.build_difficulty_pair().difficulty for _ in range(6)]
    assert Counter(levels) == {Difficulty.EASY: 2, Difficulty.MEDIUM: 2, Difficulty.HARD: 2}


def test_random_pair_counts_differ_and_stay_in_range():
    config = make_config(max_dots=12)
    generator = PairGenerator(config, seed=8)
    for _ in range(10):
        pair = generator.build_random_pair()
        assert pair.count_one != pair.count_two
        assert 1 <= pair.count_one <= 12 and 1 <= pair.count_two <= 12


# Fairness

@pytest.mark.parametrize("max_run_length", [1, 2, 3, 5])
def test_streak_never_reaches_threshold(max_run_length):
    controller = FairnessController(max_run_length)
    realized = []
    for _ in range(40):
        swapped = controller.update(True)
        realized.append(not swapped)
        assert controller.same_choice < max_run_length
        assert controller.last_was_left == realized[-1]
    assert longest_run(realized) <= max_run_length


def test_forced_swap_flips_the_round():
    controller = FairnessController(3)
    assert [controller.update(True) for _ in range(4)] == [False, False, False, True]
    assert controller.same_choice == 0
    assert controller.last_was_left is False


def test_decide_does_not_record_the_round():
    controller = FairnessController(3)
    controller.update(True)
    controller.update(True)
    assert controller.decide(True) is True
    assert controller.decide(True) is True
    assert (controller.same_choice, controller.last_was_left) == (2, True)
    assert controller.update(True) is True


def test_generator_swaps_counts_after_long_streak():
    generator = PairGenerator(make_config(area_control=AreaControl.OFF), seed=5)
    pairs = [generator.build_pair(10, 7) for _ in range(12)]
    sides = [pair.left_correct for pair in pairs]
    assert longest_run(sides) <= 3
    for pair in pairs:
        if not pair.left_correct:
            assert (pair.count_one, pair.count_two) == (7, 10)


def test_random_sessions_never_exceed_run_length():
    generator = PairGenerator(make_config(max_run_length=2, area_control=AreaControl.OFF), seed=21)
    sides = [generator.build_difficulty_pair().left_correct for _ in range(40)]
    assert longest_run(sides) <= 2


# Area control

def test_match_mode_equalizes_areas():
    generator = PairGenerator(make_config(area_control=AreaControl.MATCH), seed=2)
    pair = generator.build_pair(15, 4)
    one, two = pair.dot_set_one.total_area, pair.dot_set_two.total_area
    assert pair.control_type is ControlType.EQUAL_AREAS
    assert abs(one - two) / max(one, two) < 1e-9


def test_inverse_mode_marks_pair():
    generator = PairGenerator(make_config(area_control=AreaControl.INVERSE, inverse_area_shrink=0.5), seed=2)
    pair = generator.build_pair(15, 4)
    assert pair.control_type is ControlType.INVERSE_AREAS
    smaller = min(pair.dot_set_one, pair.dot_set_two, key=lambda s: s.total_area)
    assert max(smaller.diameters) <= 25


def test_random_mode_uses_both_controls():
    generator = PairGenerator(make_config(area_control=AreaControl.RANDOM), seed=6)
    seen = {generator.build_pair(6, 3).control_type for _ in range(30)}
    assert seen == {ControlType.EQUAL_AREAS, ControlType.INVERSE_AREAS}


def test_area_control_can_be_disabled_per_pair():
    generator = PairGenerator(make_config(area_control=AreaControl.MATCH), seed=2)
    assert generator.build_pair(8, 3, area_control=False).control_type is ControlType.NONE

    generator = PairGenerator(make_config(area_control=AreaControl.OFF), seed=2)
    assert generator.build_pair(8, 3).control_type is ControlType.NONE
    assert generator.build_pair(8, 3, area_control=True).control_type in (
        ControlType.EQUAL_AREAS,
        ControlType.INVERSE_AREAS,
    )


def test_average_policy_without_area_control():
    config = make_config(diameter_policy=DiameterPolicy.AVERAGE, area_control=AreaControl.OFF)
    pair = PairGenerator(config, seed=2).build_pair(9, 4)
    assert pair.control_type is ControlType.RADIUS_AVERAGE_EQUAL


def test_verbose_generator_prints_each_pair(capsys):
    generator = PairGenerator(make_config(), seed=2, verbose=True)
    generator.build_pair(5, 2)
    assert "Pair 5 vs 2" in capsys.readouterr().out


# Failed rounds

def crowded_config() -> StimulusConfig:
    # Dots of 45-50 px cannot fit ten at a time in a 120x120 panel
    return make_config(
        option_width=120,
        option_height=120,
        min_diameter=45,
        max_diameter=50,
        min_dots=10,
        max_dots=30,
        max_placement_attempts=200,
    )


def test_failed_packing_leaves_streak_untouched():
    generator = PairGenerator(crowded_config(), seed=4)
    generator.fairness.same_choice = 2
    generator.fairness.last_was_left = True

    # This round would force a swap if it were recorded
    with pytest.raises(PackingInfeasible):
        generator.build_pair(19, 11)
    assert (generator.fairness.same_choice, generator.fairness.last_was_left) == (2, True)


def test_failed_difficulty_round_keeps_bag_balanced():
    generator = PairGenerator(crowded_config(), seed=4)
    assert generator.scheduler.remaining == 6
    with pytest.raises(PackingInfeasible):
        generator.build_difficulty_pair()
    assert generator.scheduler.remaining == 6

    levels = [generator.scheduler.draw_difficulty() for _ in range(6)]
    assert Counter(levels) == {Difficulty.EASY: 2, Difficulty.MEDIUM: 2, Difficulty.HARD: 2}


def test_finished_pair_cannot_be_changed():
    pair = PairGenerator(make_config(area_control=AreaControl.OFF), seed=2).build_pair(6, 3)
    area = pair.dot_set_one.total_area
    with pytest.raises(RuntimeError):
        pair.dot_set_one.rescale(0.5)
    with pytest.raises(RuntimeError):
        pair.dot_set_two.add_dot((1, 1), 1)

    diameters = pair.dot_set_one.diameters
    diameters[0] = 1.0
    assert pair.dot_set_one.diameters[0] != 1.0
    assert pair.dot_set_one.total_area == area


# Output

def test_generate_session_writes_one_image_per_round(tmp_path):
    log_file = tmp_path / "session.txt"
    paths = generate_session(str(tmp_path / "out"), make_config(), rounds=4, seed=1, log_file_path=str(log_file))
    assert [p.split("pair_")[-1] for p in paths] == ["001.png", "002.png", "003.png", "004.png"]
    lines = log_file.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 4
    assert lines[0].startswith("001")


def test_generate_session_needs_config(tmp_path):
    with pytest.raises(ValueError):
        generate_session(str(tmp_path), None, rounds=2)


def test_generate_pair_image(tmp_path):
    out = tmp_path / "pair_9_4.png"
    assert generate_pair_image(9, 4, str(out), make_config(), seed=3) == str(out)
    assert out.exists()


if __name__ == "__main__":
    raise SystemExit(pytest.main([__file__]))
