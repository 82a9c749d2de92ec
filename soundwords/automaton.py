"""Generative automaton for one variable's right-hand side.

A tree of nodes, each of one closed kind:

- ``terminal`` - one step, forever.
- ``sequence`` - its children in order, round-robin.
- ``choice`` - a weighted random child, redrawn each time the current one finishes.

Every node exposes the same three operations.  ``current()`` and ``next()``
are pure queries; ``advance()`` moves the node one step and returns True when
the node completed a full period on that call.  Keeping ``next()`` one step
ahead lets the scheduler read the step it is about to play while the tree is
already primed for the one after.

Kinds are dispatched through a small table rather than subclasses, so adding
behaviour means adding one function per kind.
"""

import bisect
import dataclasses
import fractions
import random
import typing


TERMINAL = "terminal"
SEQUENCE = "sequence"
CHOICE = "choice"


class AutomatonError (ValueError):

	"""A node was constructed from invalid parts (e.g. an empty sequence)."""


@dataclasses.dataclass (frozen=True)
class Effect:

	"""
	A function applied to a step, with its parameters resolved.
	"""

	name: str
	parameters: typing.Dict[str, typing.Any] = dataclasses.field(default_factory=dict)


@dataclasses.dataclass (frozen=True)
class Step:

	"""
	One fully resolved unit of playback.

	``sound`` is the symbol-table key of the sound (``None`` for a rest) and
	``duration`` is measured in beats.  ``sample`` is filled in when the step
	is played; a step without one is silent but still takes its time.
	"""

	sound: typing.Optional[str]
	duration: fractions.Fraction = fractions.Fraction(1)
	effects: typing.Tuple[Effect, ...] = ()
	sample: typing.Any = dataclasses.field(default=None, compare=False)

	@property
	def rest (self) -> bool:
		return self.sound is None

	@property
	def silent (self) -> bool:
		return self.sample is None

	def effect (self, name: str) -> typing.Optional[Effect]:

		"""Return the last effect with this name (later effects override earlier ones)."""

		for effect in reversed(self.effects):
			if effect.name == name:
				return effect

		return None


class Node:

	"""
	A node of the automaton.  Build nodes with ``terminal``, ``sequence`` and ``choice``.
	"""

	__slots__ = ("kind", "children", "weights", "cumulative", "index", "child", "rng", "_current", "_next")

	def __init__ (
		self,
		kind: str,
		step: typing.Optional[Step] = None,
		children: typing.Sequence["Node"] = (),
		weights: typing.Sequence[float] = (),
		rng: typing.Optional[random.Random] = None
	) -> None:

		self.kind = kind
		self.children: typing.Tuple[Node, ...] = tuple(children)
		self.weights: typing.Tuple[float, ...] = tuple(weights)
		self.cumulative: typing.List[float] = []
		self.index = 0
		self.child: typing.Optional[Node] = None
		self.rng = rng or random.Random()

		if kind == TERMINAL:
			if step is None:
				raise AutomatonError("A terminal needs a step")
			self._current = step
			self._next = step
			return

		if kind not in _ADVANCE_CHILD:
			raise AutomatonError(f"Unknown node kind {kind!r}")

		if not self.children:
			raise AutomatonError(f"A {kind} needs at least one child")

		if kind == CHOICE:
			self.cumulative = _cumulative(self.weights, len(self.children))

		_ENTER[kind](self)

		assert self.child is not None
		self._current = self.child.next()
		self._next = self._current


	def __repr__ (self) -> str:

		if self.kind == TERMINAL:
			return f"Node(terminal, {self._current.sound!r})"

		return f"Node({self.kind}, {len(self.children)} children)"


	def current (self) -> Step:
		return self._current


	def next (self) -> Step:
		return self._next


	def advance (self) -> bool:

		"""
		Move one step; return True when this node completed its period.

		A non-terminal only moves to another child once its current child
		reports a completed period, and only reports its own period when
		that move says so.
		"""

		if self.kind == TERMINAL:
			return True

		assert self.child is not None

		cycled = False

		if self.child.advance():
			cycled = _ADVANCE_CHILD[self.kind](self)

		self._current = self._next
		self._next = self.child.next()

		return cycled


	def reset (self) -> None:

		"""
		Return the node and all its descendants to their starting position.
		"""

		if self.kind == TERMINAL:
			return

		for child in self.children:
			child.reset()

		_ENTER[self.kind](self)

		assert self.child is not None
		self._current = self.child.next()
		self._next = self._current


	def walk (self) -> typing.Iterator["Node"]:

		"""Yield this node and every descendant, depth first."""

		yield self

		for child in self.children:
			yield from child.walk()


def _cumulative (weights: typing.Sequence[float], count: int) -> typing.List[float]:

	"""Build the strictly increasing cumulative weight table of a choice."""

	if len(weights) != count:
		raise AutomatonError(f"A choice of {count} children needs {count} weights, got {len(weights)}")

	table: typing.List[float] = []
	total = 0.0

	for weight in weights:
		if weight <= 0:
			raise AutomatonError("Choice weights must be positive")
		total += weight
		table.append(total)

	return table


def _enter_sequence (node: Node) -> None:

	node.index = 0
	node.child = node.children[0]


def _enter_choice (node: Node) -> None:

	_draw(node)


def _draw (node: Node) -> None:

	"""Pick a child: a uniform draw over [0, total) mapped to the first cumulative entry >= the draw."""

	draw = node.rng.random() * node.cumulative[-1]
	node.index = min(bisect.bisect_left(node.cumulative, draw), len(node.children) - 1)
	node.child = node.children[node.index]


def _advance_sequence (node: Node) -> bool:

	"""Move to the next child, wrapping to the first; True only on the wrap."""

	cycled = node.index == len(node.children) - 1
	node.index = 0 if cycled else node.index + 1
	node.child = node.children[node.index]

	return cycled


def _advance_choice (node: Node) -> bool:

	"""Draw a new child every time; a choice has no fixed period."""

	_draw(node)

	return True


_ENTER: typing.Dict[str, typing.Callable[[Node], None]] = {
	SEQUENCE: _enter_sequence,
	CHOICE: _enter_choice,
}

_ADVANCE_CHILD: typing.Dict[str, typing.Callable[[Node], bool]] = {
	SEQUENCE: _advance_sequence,
	CHOICE: _advance_choice,
}


def terminal (step: Step) -> Node:
	return Node(TERMINAL, step=step)


def sequence (children: typing.Sequence[Node]) -> Node:

	"""
	Build a sequence.  Raises ``AutomatonError`` when there are no children.
	"""

	return Node(SEQUENCE, children=children)


def choice (children: typing.Sequence[Node], weights: typing.Optional[typing.Sequence[float]] = None, rng: typing.Optional[random.Random] = None) -> Node:

	"""
	Build a weighted choice.  Weights default to 1 each.
	"""

	if weights is None:
		weights = [1.0] * len(children)

	return Node(CHOICE, children=children, weights=weights, rng=rng)
