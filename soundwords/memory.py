import dataclasses
import logging
import typing

import soundwords.event_emitter
import soundwords.tokens


logger = logging.getLogger(__name__)

SEQUENCE = "sequence"
NUMBER = "number"
FUNCTION = "function"


@dataclasses.dataclass
class Binding:

	"""
	The current definition of one variable.

	``value`` is an automaton root for a sequence, a float for a number or
	frequency, and a tuple of effects for a function chain.  ``tokens`` keep
	the right-hand side so references from other statements can build their
	own independent copy.
	"""

	name: str
	kind: str
	value: typing.Any
	tokens: typing.Tuple[soundwords.tokens.SemanticToken, ...] = ()
	block: str = ""

	@property
	def playable (self) -> bool:
		return self.kind == SEQUENCE


class Memory:

	"""
	Live variable store.

	Every definition and deletion is announced on ``self.events``:
	``set`` (binding) and ``delete`` (name, old binding).  The scheduler
	listens to both to create and kill threads.
	"""

	def __init__ (self) -> None:

		self.events = soundwords.event_emitter.EventEmitter()
		self._bindings: typing.Dict[str, Binding] = {}


	def __contains__ (self, name: str) -> bool:
		return name in self._bindings

	def __len__ (self) -> int:
		return len(self._bindings)

	def names (self) -> typing.List[str]:
		return list(self._bindings)


	def get (self, name: str) -> typing.Optional[Binding]:
		return self._bindings.get(name)


	def set (self, binding: Binding) -> None:

		"""Define or replace a variable."""

		replaced = binding.name in self._bindings
		self._bindings[binding.name] = binding

		logger.debug(f"{'Replaced' if replaced else 'Defined'} {binding.kind} {binding.name!r}")

		self.events.emit_sync("set", binding)


	def delete (self, name: str) -> typing.Optional[Binding]:

		"""Remove a variable; deleting an unknown name does nothing."""

		binding = self._bindings.pop(name, None)

		if binding is None:
			return None

		logger.debug(f"Deleted {name!r}")
		self.events.emit_sync("delete", name, binding)

		return binding

