import fractions
import random

import pytest

import soundwords.automaton


def _leaf (sound: str) -> soundwords.automaton.Node:

	return soundwords.automaton.terminal(soundwords.automaton.Step(sound))


def _play (node: soundwords.automaton.Node, count: int) -> list:

	"""Read ``count`` steps the way the scheduler does: next(), then advance()."""

	sounds = []

	for _ in range(count):
		sounds.append(node.next().sound)
		node.advance()

	return sounds


def test_terminal_repeats_forever () -> None:

	node = _leaf("kick")

	assert node.advance() is True
	assert node.advance() is True
	assert node.current().sound == "kick"
	assert node.next().sound == "kick"


def test_sequence_cycles_on_last_child () -> None:

	"""A sequence of N children reports a completed period on exactly every Nth advance."""

	node = soundwords.automaton.sequence([_leaf("a"), _leaf("b"), _leaf("c")])

	assert [node.advance() for _ in range(6)] == [False, False, True, False, False, True]
	assert node.index == 0


def test_sequence_plays_in_order () -> None:

	node = soundwords.automaton.sequence([_leaf("a"), _leaf("b"), _leaf("c")])

	assert node.current().sound == "a"
	assert node.next().sound == "a"
	assert _play(node, 4) == ["a", "b", "c", "a"]


def test_current_trails_next () -> None:

	node = soundwords.automaton.sequence([_leaf("a"), _leaf("b")])
	node.advance()

	assert node.current().sound == "a"
	assert node.next().sound == "b"


def test_nested_sequence_cycles_with_its_last_leaf () -> None:

	inner = soundwords.automaton.sequence([_leaf("a"), _leaf("b")])
	outer = soundwords.automaton.sequence([inner, _leaf("c")])

	assert _play(outer, 6) == ["a", "b", "c", "a", "b", "c"]

	outer.reset()

	assert [outer.advance() for _ in range(3)] == [False, False, True]


def test_choice_always_reports_a_period_and_is_fair () -> None:

	"""Equal weights pick each branch about half the time; every advance completes a period."""

	node = soundwords.automaton.choice([_leaf("kick"), _leaf("snare")], rng=random.Random(1))
	draws = 10000
	kicks = 0

	for _ in range(draws):
		if node.next().sound == "kick":
			kicks += 1
		assert node.advance() is True

	assert 0.47 < kicks / draws < 0.53


def test_choice_respects_weights () -> None:

	node = soundwords.automaton.choice([_leaf("kick"), _leaf("snare")], weights=[1, 3], rng=random.Random(2))
	draws = 10000

	snares = _play(node, draws).count("snare")

	assert 0.72 < snares / draws < 0.78


def test_choice_waits_for_its_branch_to_finish () -> None:

	"""A choice only redraws once the chosen sequence has played through."""

	branch = soundwords.automaton.sequence([_leaf("a"), _leaf("b"), _leaf("c")])
	node = soundwords.automaton.choice([branch, _leaf("x")], rng=random.Random(3))

	played = _play(node, 300)
	position = 0

	while position < len(played):

		if played[position] == "a":
			assert played[position:position + 3] == ["a", "b", "c"][:len(played) - position]
			position += 3
		else:
			assert played[position] == "x"
			position += 1


def test_cumulative_weights_are_increasing () -> None:

	node = soundwords.automaton.choice([_leaf("a"), _leaf("b"), _leaf("c")], weights=[2, 0.5, 1])

	assert node.cumulative == [2.0, 2.5, 3.5]


@pytest.mark.parametrize("build", [
	lambda: soundwords.automaton.sequence([]),
	lambda: soundwords.automaton.choice([]),
	lambda: soundwords.automaton.choice([_leaf("a"), _leaf("b")], weights=[1]),
	lambda: soundwords.automaton.choice([_leaf("a"), _leaf("b")], weights=[1, 0]),
	lambda: soundwords.automaton.Node(soundwords.automaton.TERMINAL),
	lambda: soundwords.automaton.Node("loop", children=[_leaf("a")]),
])
def test_invalid_construction_rejected (build) -> None:

	with pytest.raises(soundwords.automaton.AutomatonError):
		build()


def test_automaton_error_is_a_value_error () -> None:

	assert issubclass(soundwords.automaton.AutomatonError, ValueError)


def test_reset_returns_to_first_step () -> None:

	node = soundwords.automaton.sequence([_leaf("a"), _leaf("b"), _leaf("c")])
	node.advance()
	node.advance()

	node.reset()

	assert node.index == 0
	assert node.next().sound == "a"
	assert node.current().sound == "a"


def test_walk_visits_every_node () -> None:

	inner = soundwords.automaton.sequence([_leaf("a"), _leaf("b")])
	outer = soundwords.automaton.choice([inner, _leaf("c")])

	assert len(list(outer.walk())) == 5


def test_step_effect_lookup_prefers_the_last () -> None:

	step = soundwords.automaton.Step(
		"kick",
		effects = (
			soundwords.automaton.Effect("volume", {"level": 0.5}),
			soundwords.automaton.Effect("volume", {"level": 0.2}),
		)
	)

	assert step.effect("volume").parameters == {"level": 0.2}
	assert step.effect("reverb") is None
	assert step.duration == fractions.Fraction(1)
	assert step.silent
	assert not step.rest
	assert soundwords.automaton.Step(None).rest
