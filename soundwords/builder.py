"""Second pass: semantic tokens -> automaton.

The analyzer leaves a flat, role-tagged token list.  The builder reads the
right-hand side of one statement into a small parse tree and then turns that
tree into automaton nodes, working out every step's duration on the way.

Precedence, tightest first:

1. chaining ``.`` - effects attach to the atom just before them
2. repetition ``*`` - ``kick*4`` and ``4*kick`` repeat the chained atom
3. juxtaposition - items written side by side play in order
4. choice ``|`` - splits its bracket level into weighted branches

So ``kick.volume(level: 0.5)*2 snare | (2) hat`` is a choice between
``[kick', kick', snare]`` (weight 1) and ``[hat]`` (weight 2).

Timing follows the same nesting: a sound spans one beat, ``( )`` spans the
sum of its items, and ``[ ]`` squeezes whichever branch is playing into a
single beat, proportionally to its items' spans.
"""

import dataclasses
import fractions
import logging
import random
import typing

import soundwords.automaton
import soundwords.constants
import soundwords.functions
import soundwords.memory
import soundwords.tokens

from soundwords.tokens import SemanticToken


logger = logging.getLogger(__name__)

SOUND = "sound"
REST = "rest"
VARIABLE = "variable"
GROUP = "group"
DIVISION = "division"

_SKIPPED = soundwords.tokens.PARAMETER_TYPES | {soundwords.tokens.COMMENT}


class BuildError (ValueError):

	"""The tokens of a statement cannot be turned into an automaton."""

	def __init__ (self, message: str, token: typing.Optional[SemanticToken] = None) -> None:

		super().__init__(message)
		self.token = token


@dataclasses.dataclass
class Alternatives:

	"""One bracket level: weighted branches, each a list of items."""

	branches: typing.List[typing.List["Item"]] = dataclasses.field(default_factory=lambda: [[]])
	weights: typing.List[float] = dataclasses.field(default_factory=lambda: [1.0])


@dataclasses.dataclass
class Atom:

	kind: str
	token: SemanticToken
	inner: typing.Optional[Alternatives] = None


@dataclasses.dataclass
class Item:

	atom: Atom
	effects: typing.Tuple[soundwords.automaton.Effect, ...] = ()
	count: int = 1


class _Reader:

	"""Cursor over the structural tokens of one right-hand side."""

	def __init__ (self, tokens: typing.Sequence[SemanticToken]) -> None:

		self.tokens = [token for token in tokens if token.type not in _SKIPPED]
		self.index = 0

	def peek (self, offset: int = 0) -> typing.Optional[SemanticToken]:

		at = self.index + offset
		return self.tokens[at] if 0 <= at < len(self.tokens) else None

	def take (self) -> SemanticToken:

		token = self.peek()

		if token is None:
			raise BuildError("statement ends too early")

		self.index += 1
		return token

	def at (self, token_type: str, value: typing.Optional[str] = None, offset: int = 0) -> bool:

		token = self.peek(offset)
		return token is not None and token.type == token_type and (value is None or token.value == value)


class AutomatonBuilder:

	"""
	Builds automata and variable bindings from analyzed statements.

	Variables referenced inside a sequence are rebuilt from their stored
	tokens, so every reference plays with its own cursor.  A variable that
	refers to itself, directly or through others, raises ``BuildError``.
	"""

	def __init__ (self, memory: soundwords.memory.Memory, rng: typing.Optional[random.Random] = None) -> None:

		self.memory = memory
		self.rng = rng or random.Random()
		self._expanding: typing.List[str] = []


	def build_binding (self, name: str, tokens: typing.Sequence[SemanticToken], block: str = "") -> soundwords.memory.Binding:

		"""
		Build the value of ``name = <tokens>``.

		``tokens`` is the right-hand side only (everything after ``=``).
		"""

		reader = _Reader(tokens)
		first = reader.peek()

		if first is None:
			raise BuildError(f"nothing to assign to {name!r}")

		self._expanding.append(name)

		try:
			if first.type == soundwords.tokens.NUMBER:
				kind, value = soundwords.memory.NUMBER, float(first.value)

			elif first.type == soundwords.tokens.HZ:
				unit = reader.peek(1)
				kind, value = soundwords.memory.NUMBER, soundwords.functions.hz_value(first.value, unit.value if unit else "hz")

			elif first.type == soundwords.tokens.FN:
				kind, value = soundwords.memory.FUNCTION, self._read_chain(reader, leading=True)

			else:
				kind, value = soundwords.memory.SEQUENCE, self._automaton(reader)

		finally:
			self._expanding.pop()

		return soundwords.memory.Binding(name=name, kind=kind, value=value, tokens=tuple(tokens), block=block)


	def build (self, tokens: typing.Sequence[SemanticToken]) -> soundwords.automaton.Node:

		"""Build the automaton of a bare sequence."""

		return self._automaton(_Reader(tokens))


	def _automaton (self, reader: _Reader) -> soundwords.automaton.Node:

		tree = self._read_alternatives(reader)

		if reader.peek() is not None:
			raise BuildError(f"unexpected {reader.peek().value!r}", reader.peek())  # type: ignore[union-attr]

		return self._node(tree, fractions.Fraction(soundwords.constants.DEFAULT_STEP_BEATS), ())


	# Reading

	def _read_alternatives (self, reader: _Reader) -> Alternatives:

		tree = Alternatives()

		while reader.peek() is not None and not self._closing(reader):

			if reader.at(soundwords.tokens.CHOICE_OP):
				reader.take()
				weight = float(reader.take().value) if reader.at(soundwords.tokens.CHOICE_WEIGHT) else 1.0
				tree.branches.append([])
				tree.weights.append(weight)
				continue

			tree.branches[-1].append(self._read_item(reader))

		for branch in tree.branches:
			if not branch:
				raise BuildError("'|' needs a sound or group on both sides")

		return tree


	def _closing (self, reader: _Reader) -> bool:

		token = reader.peek()

		return token is not None and token.value in (")", "]") and token.type in (soundwords.tokens.SEQUENCE_BRACKET, soundwords.tokens.BEAT_DIV_BRACKET)


	def _read_item (self, reader: _Reader) -> Item:

		count = 1

		if reader.at(soundwords.tokens.REPETITION_COUNT) and reader.at(soundwords.tokens.REPETITION_OP, offset=1):
			count = int(float(reader.take().value))
			reader.take()

		atom = self._read_atom(reader)
		effects: typing.List[soundwords.automaton.Effect] = []

		while reader.at(soundwords.tokens.CHAINING_OP):
			reader.take()
			effects.extend(self._read_chain(reader))

		while reader.at(soundwords.tokens.REPETITION_OP) and reader.at(soundwords.tokens.REPETITION_COUNT, offset=1):
			reader.take()
			count *= int(float(reader.take().value))

		return Item(atom=atom, effects=tuple(effects), count=count)


	def _read_atom (self, reader: _Reader) -> Atom:

		token = reader.take()

		if token.type == soundwords.tokens.SOUND_LITERAL:
			return Atom(SOUND, token)

		if token.type == soundwords.tokens.REST:
			return Atom(REST, token)

		if token.type == soundwords.tokens.VARIABLE:
			return Atom(VARIABLE, token)

		if token.type in (soundwords.tokens.SEQUENCE_BRACKET, soundwords.tokens.BEAT_DIV_BRACKET) and token.value in ("(", "["):

			inner = self._read_alternatives(reader)
			closing = reader.take()

			if closing.value != (")" if token.value == "(" else "]"):
				raise BuildError(f"bracket {token.value!r} closed by {closing.value!r}", closing)

			return Atom(GROUP if token.value == "(" else DIVISION, token, inner)

		raise BuildError(f"unexpected {token.value!r}", token)


	def _read_chain (self, reader: _Reader, leading: bool = False) -> typing.Tuple[soundwords.automaton.Effect, ...]:

		"""
		Read one function (or, with ``leading``, a whole ``fn.fn...`` chain) into effects.
		"""

		effects: typing.List[soundwords.automaton.Effect] = []

		while True:

			token = reader.take()

			if token.type != soundwords.tokens.FN:
				raise BuildError(f"expected a function, got {token.value!r}", token)

			effects.extend(self._effects(token))

			if not leading or not reader.at(soundwords.tokens.CHAINING_OP):
				break

			reader.take()

		if leading and reader.peek() is not None:
			raise BuildError(f"unexpected {reader.peek().value!r}", reader.peek())  # type: ignore[union-attr]

		return tuple(effects)


	def _effects (self, token: SemanticToken) -> typing.List[soundwords.automaton.Effect]:

		"""Resolve a function name to effects: a built-in, or a variable holding a chain."""

		name = token.value

		if soundwords.functions.is_builtin(name):
			parameters = soundwords.functions.BUILTINS[name].defaults()
			parameters.update(token.parameters)
			return [soundwords.automaton.Effect(name, parameters)]

		binding = self.memory.get(name)

		if binding is None or binding.kind != soundwords.memory.FUNCTION:
			raise BuildError(f"{name!r} is not a function", token)

		return list(binding.value)


	# Spans

	def _span (self, tree: Alternatives) -> fractions.Fraction:

		"""Beats covered by a bracket level: its longest branch."""

		return max(self._branch_span(branch) for branch in tree.branches)


	def _branch_span (self, branch: typing.Sequence[Item]) -> fractions.Fraction:

		return sum((self._item_span(item) for item in branch), fractions.Fraction(0))


	def _item_span (self, item: Item) -> fractions.Fraction:

		atom = item.atom

		if atom.kind == GROUP:
			assert atom.inner is not None
			span = self._span(atom.inner)

		elif atom.kind == VARIABLE:
			span = self._with_variable(atom.token, lambda tree: self._span(tree))

		else:
			span = fractions.Fraction(soundwords.constants.DEFAULT_STEP_BEATS)

		return span * item.count


	# Nodes

	def _node (self, tree: Alternatives, scale: fractions.Fraction, outer: typing.Tuple[soundwords.automaton.Effect, ...], fit: typing.Optional[fractions.Fraction] = None) -> soundwords.automaton.Node:

		"""
		Build one bracket level.

		With ``fit``, the level sits inside a division and every branch is
		squeezed on its own to last exactly ``fit`` beats, so a short branch
		of a choice never leaves the division early.
		"""

		if fit is None:
			branches = [self._branch(branch, scale, outer, False) for branch in tree.branches]

		else:
			branches = [self._branch(branch, fit / self._branch_span(branch), outer, True) for branch in tree.branches]

		if len(branches) == 1:
			return branches[0]

		return soundwords.automaton.choice(branches, tree.weights, rng=self.rng)


	def _branch (self, items: typing.Sequence[Item], scale: fractions.Fraction, outer: typing.Tuple[soundwords.automaton.Effect, ...], fitted: bool) -> soundwords.automaton.Node:

		nodes: typing.List[soundwords.automaton.Node] = []

		for item in items:
			for _ in range(item.count):
				nodes.append(self._atom(item.atom, scale, item.effects + outer, fitted))

		if len(nodes) == 1:
			return nodes[0]

		return soundwords.automaton.sequence(nodes)


	def _atom (self, atom: Atom, scale: fractions.Fraction, effects: typing.Tuple[soundwords.automaton.Effect, ...], fitted: bool) -> soundwords.automaton.Node:

		if atom.kind == SOUND:
			return soundwords.automaton.terminal(soundwords.automaton.Step(sound=atom.token.id, duration=scale, effects=effects))

		if atom.kind == REST:
			return soundwords.automaton.terminal(soundwords.automaton.Step(sound=None, duration=scale, effects=effects))

		if atom.kind == VARIABLE:
			return self._with_variable(atom.token, lambda tree: self._node(tree, scale, effects, scale * self._span(tree) if fitted else None))

		assert atom.inner is not None

		if atom.kind == GROUP:
			return self._node(atom.inner, scale, effects, scale * self._span(atom.inner) if fitted else None)

		# A division always lasts one step, whichever branch plays.
		return self._node(atom.inner, scale, effects, scale)


	def _with_variable (self, token: SemanticToken, action: typing.Callable[[Alternatives], typing.Any]) -> typing.Any:

		"""Re-read a variable's stored tokens and apply ``action`` to the tree, guarding against cycles."""

		name = token.id

		if name in self._expanding:
			chain = " -> ".join(self._expanding + [name])
			raise BuildError(f"{name!r} refers to itself ({chain})", token)

		binding = self.memory.get(name)

		if binding is None:
			raise BuildError(f"{name!r} has no definition yet", token)

		if binding.kind != soundwords.memory.SEQUENCE:
			raise BuildError(f"{name!r} is a {binding.kind}, not a sequence", token)

		self._expanding.append(name)

		try:
			reader = _Reader(binding.tokens)
			tree = self._read_alternatives(reader)
			return action(tree)

		finally:
			self._expanding.pop()
