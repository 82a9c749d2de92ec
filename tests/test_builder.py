import fractions
import random
import typing

import pytest

import soundwords.analyzer
import soundwords.automaton
import soundwords.builder
import soundwords.lexer
import soundwords.memory
import soundwords.symbols


F = fractions.Fraction


class _Workspace:

	"""Analyzer, builder and memory sharing one symbol table, as the interpreter wires them."""

	def __init__ (self) -> None:

		self.symbols = soundwords.symbols.SymbolTable(debounce=0.0)
		self.memory = soundwords.memory.Memory()
		self.analyzer = soundwords.analyzer.SemanticAnalyzer(self.symbols)
		self.builder = soundwords.builder.AutomatonBuilder(self.memory, rng=random.Random(7))

	def tokens (self, text: str) -> list:

		result = self.analyzer.analyze(soundwords.lexer.tokenize(text, "a"), "a")
		assert result.ok, result.errors
		return result.tokens

	def assign (self, text: str) -> soundwords.memory.Binding:

		tokens = self.tokens(text)
		binding = self.builder.build_binding(tokens[0].value, tokens[2:], "a")
		self.memory.set(binding)
		return binding

	def build (self, text: str) -> soundwords.automaton.Node:

		return self.builder.build(self.tokens(text))


def _steps (node: soundwords.automaton.Node, count: int) -> typing.List[soundwords.automaton.Step]:

	steps = []

	for _ in range(count):
		steps.append(node.next())
		node.advance()

	return steps


def _timeline (node: soundwords.automaton.Node, count: int) -> list:

	return [(step.sound, step.duration) for step in _steps(node, count)]


@pytest.fixture
def workspace () -> _Workspace:
	return _Workspace()


def test_repetition_builds_a_sequence (workspace: _Workspace) -> None:

	root = workspace.build("kick*4")

	assert root.kind == soundwords.automaton.SEQUENCE
	assert len(root.children) == 4
	assert _timeline(root, 4) == [("kick", F(1))] * 4


def test_prefix_repetition (workspace: _Workspace) -> None:

	assert _timeline(workspace.build("2*kick snare"), 3) == [("kick", F(1)), ("kick", F(1)), ("snare", F(1))]


def test_single_sound_is_a_terminal (workspace: _Workspace) -> None:

	assert workspace.build("kick").kind == soundwords.automaton.TERMINAL


def test_division_squeezes_into_one_beat (workspace: _Workspace) -> None:

	root = workspace.build("kick [hat hat]")

	assert _timeline(root, 3) == [("kick", F(1)), ("hat", F(1, 2)), ("hat", F(1, 2))]


def test_nested_divisions (workspace: _Workspace) -> None:

	root = workspace.build("[kick [hat hat]]")

	assert _timeline(root, 3) == [("kick", F(1, 2)), ("hat", F(1, 4)), ("hat", F(1, 4))]


def test_repetition_inside_division (workspace: _Workspace) -> None:

	assert _timeline(workspace.build("[kick*3]"), 3) == [("kick", F(1, 3))] * 3


def test_group_keeps_full_beats (workspace: _Workspace) -> None:

	root = workspace.build("(kick snare)*2")

	assert _timeline(root, 4) == [("kick", F(1)), ("snare", F(1)), ("kick", F(1)), ("snare", F(1))]


def test_choice_binds_loosest (workspace: _Workspace) -> None:

	"""Juxtaposition binds tighter than '|': the first branch is the whole 'kick snare'."""

	root = workspace.build("kick snare | hat")

	assert root.kind == soundwords.automaton.CHOICE
	assert root.weights == (1.0, 1.0)
	assert root.children[0].kind == soundwords.automaton.SEQUENCE
	assert len(root.children[0].children) == 2
	assert root.children[1].kind == soundwords.automaton.TERMINAL


def test_choice_weight (workspace: _Workspace) -> None:

	root = workspace.build("kick | (3) snare")

	assert root.weights == (1.0, 3.0)


def test_choice_inside_division_scales_each_branch (workspace: _Workspace) -> None:

	root = workspace.build("[hat hat | snare]")

	assert root.kind == soundwords.automaton.CHOICE

	first, second = root.children

	assert [step.duration for step in _steps(first, 2)] == [F(1, 2), F(1, 2)]
	assert second.next().duration == F(1)


def _periods (root: soundwords.automaton.Node, count: int) -> set:

	"""Sounds and total beats of ``count`` full periods of ``root``."""

	periods = set()

	for _ in range(count):

		sounds = []
		total = F(0)
		cycled = False

		while not cycled:
			step = root.next()
			sounds.append(step.sound)
			total += step.duration
			cycled = root.advance()

		periods.add((tuple(sounds), total))

	return periods


def test_choice_in_group_inside_division_fills_the_beat (workspace: _Workspace) -> None:

	root = workspace.build("[(kick | snare snare) hat]")

	assert _periods(root, 50) == {(("kick", "hat"), F(1)), (("snare", "snare", "hat"), F(1))}


def test_choice_in_variable_inside_division_fills_the_beat (workspace: _Workspace) -> None:

	workspace.assign("y = kick | snare snare")

	assert _periods(workspace.build("[y hat]"), 50) == {(("kick", "hat"), F(1)), (("snare", "snare", "hat"), F(1))}


def test_choice_in_group_outside_division_keeps_full_beats (workspace: _Workspace) -> None:

	root = workspace.build("(kick | snare snare) hat")

	assert _periods(root, 50) == {(("kick", "hat"), F(2)), (("snare", "snare", "hat"), F(3))}


def test_chaining_binds_tighter_than_repetition (workspace: _Workspace) -> None:

	steps = _steps(workspace.build("kick.volume(level: 0.5)*2"), 2)

	for step in steps:
		assert step.effects == (soundwords.automaton.Effect("volume", {"level": 0.5}),)


def test_effect_defaults_are_filled_in (workspace: _Workspace) -> None:

	step = workspace.build("kick.reverb").next()

	assert step.effect("reverb").parameters == {"mix": 0.3, "decay": 2.0}


def test_group_effects_apply_after_inner_effects (workspace: _Workspace) -> None:

	root = workspace.build("(kick.volume(level: 0.5) snare).lowpass(cutoff: 2khz)")
	kick, snare = _steps(root, 2)

	assert [effect.name for effect in kick.effects] == ["volume", "lowpass"]
	assert kick.effect("lowpass").parameters == {"cutoff": 2000.0, "q": 1.0}
	assert [effect.name for effect in snare.effects] == ["lowpass"]


def test_rest_takes_time (workspace: _Workspace) -> None:

	assert _timeline(workspace.build("kick _"), 2) == [("kick", F(1)), (None, F(1))]


def test_query_parameters_select_the_sound_id (workspace: _Workspace) -> None:

	assert workspace.build("kick(max: 2)").next().sound == "kick__max-2.0"


def test_number_and_frequency_bindings (workspace: _Workspace) -> None:

	number = workspace.assign("n = 4")
	frequency = workspace.assign("f = 2khz")

	assert (number.kind, number.value) == (soundwords.memory.NUMBER, 4.0)
	assert (frequency.kind, frequency.value) == (soundwords.memory.NUMBER, 2000.0)
	assert not number.playable


def test_variables_expand_into_independent_copies (workspace: _Workspace) -> None:

	workspace.assign("y = kick snare")
	binding = workspace.assign("x = y hat y")

	assert binding.kind == soundwords.memory.SEQUENCE

	root = binding.value

	assert [step.sound for step in _steps(root, 5)] == ["kick", "snare", "hat", "kick", "snare"]
	assert root.children[0] is not root.children[2]


def test_variable_span_counts_inside_division (workspace: _Workspace) -> None:

	workspace.assign("y = kick snare")

	assert _timeline(workspace.build("[y hat]"), 3) == [("kick", F(1, 3)), ("snare", F(1, 3)), ("hat", F(1, 3))]


def test_function_variable (workspace: _Workspace) -> None:

	wet = workspace.assign("wet = reverb(mix: 0.8).delay")

	assert wet.kind == soundwords.memory.FUNCTION
	assert [effect.name for effect in wet.value] == ["reverb", "delay"]

	step = workspace.build("kick.wet").next()

	assert step.effects == wet.value
	assert step.effect("reverb").parameters["mix"] == 0.8


def test_self_reference_is_rejected (workspace: _Workspace) -> None:

	workspace.assign("x = kick")

	with pytest.raises(soundwords.builder.BuildError, match="refers to itself"):
		workspace.assign("x = x snare")


def test_indirect_cycle_is_rejected (workspace: _Workspace) -> None:

	workspace.assign("x = kick")
	workspace.assign("y = x")

	with pytest.raises(soundwords.builder.BuildError, match="refers to itself"):
		workspace.assign("x = y")


def test_undefined_variable (workspace: _Workspace) -> None:

	workspace.symbols.merge("y", kind=soundwords.symbols.VARIABLE)

	with pytest.raises(soundwords.builder.BuildError, match="no definition"):
		workspace.build("y kick")


def test_number_variable_is_not_a_sequence (workspace: _Workspace) -> None:

	workspace.assign("n = 4")

	with pytest.raises(soundwords.builder.BuildError, match="not a sequence"):
		workspace.build("n kick")
