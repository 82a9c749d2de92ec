import asyncio
import dataclasses
import logging
import typing

import soundwords.constants
import soundwords.event_emitter
import soundwords.functions
import soundwords.resolver
import soundwords.tokens


logger = logging.getLogger(__name__)

VARIABLE = "variable"
FUNCTION = "function"
SOUND = "sound"

SEARCHING = "searching"
DOWNLOADING = "downloading"
AVAILABLE = "available"
UNAVAILABLE = "unavailable"

_FIELDS = ("kind", "status", "value", "text", "parameters")


@dataclasses.dataclass
class SymbolRecord:

	"""
	Everything known about one identifier.

	``status`` is ``None`` until a sound is looked up, then moves through
	``searching`` and ``downloading`` to ``available`` (``value`` holds the
	sample) or stops at ``unavailable``.  ``text`` and ``parameters`` keep the
	literal and query parameters a sound was written with, since its
	identifier is a composite of both.
	"""

	identifier: str
	kind: typing.Optional[str] = None
	status: typing.Optional[str] = None
	value: typing.Any = None
	text: typing.Optional[str] = None
	parameters: typing.Dict[str, typing.Any] = dataclasses.field(default_factory=dict)

	@property
	def available (self) -> bool:
		return self.status == AVAILABLE


class SymbolTable:

	"""
	Tracks identifiers across all blocks and resolves sound identifiers.

	The table is owned by the event loop it runs on: analysis and resolution
	both mutate it from that loop only, and every resolution step re-checks
	that its identifier still exists before writing, so a deleted symbol is
	never revived by a late result.

	Status changes are announced as ``status`` events (identifier, status) on
	``self.events``, fire-and-forget.
	"""

	def __init__ (
		self,
		resolver: typing.Optional[soundwords.resolver.Resolver] = None,
		debounce: float = soundwords.constants.RESOLUTION_DEBOUNCE_SECONDS
	) -> None:

		"""
		Create an empty table.

		Parameters:
			resolver: Looks up sound identifiers.  With no resolver, sounds are
				tracked but never resolved (their steps stay silent).
			debounce: Seconds to wait after a sound first appears before looking
				it up, so half-typed words are not fetched.
		"""

		if debounce < 0:
			raise ValueError("Debounce interval cannot be negative")

		self.resolver = resolver
		self.debounce = debounce
		self.events = soundwords.event_emitter.EventEmitter()

		self._symbols: typing.Dict[str, SymbolRecord] = {}
		self._active_by_block: typing.Dict[str, typing.Set[str]] = {}
		self._pending: typing.Dict[str, asyncio.Task] = {}


	def __contains__ (self, identifier: str) -> bool:
		return identifier in self._symbols

	def __len__ (self) -> int:
		return len(self._symbols)

	def identifiers (self) -> typing.List[str]:
		return list(self._symbols)


	def merge (self, identifier: str, **fields: typing.Any) -> SymbolRecord:

		"""
		Upsert fields into the record for an identifier (last write wins per field).

		A brand-new identifier of kind ``sound`` schedules exactly one
		resolution after the debounce interval.  Later merges of the same
		identifier do not schedule again.
		"""

		unknown = set(fields) - set(_FIELDS)

		if unknown:
			raise ValueError(f"Unknown symbol fields: {sorted(unknown)}")

		record = self._symbols.get(identifier)
		is_new = record is None

		if record is None:
			record = SymbolRecord(identifier=identifier)
			self._symbols[identifier] = record

		for name, value in fields.items():
			setattr(record, name, value)

		if is_new and record.kind == SOUND:
			self._schedule_resolution(identifier)

		return record


	def get (self, identifier: str) -> typing.Optional[SymbolRecord]:

		return self._symbols.get(identifier)


	def remove (self, identifier: str) -> None:

		"""
		Delete an identifier and cancel any resolution still waiting for it.
		"""

		self._symbols.pop(identifier, None)

		task = self._pending.pop(identifier, None)

		if task is not None and not task.done():
			task.cancel()


	def is_variable (self, identifier: str) -> bool:

		record = self._symbols.get(identifier)
		return record is not None and record.kind == VARIABLE


	def is_function (self, identifier: str) -> bool:

		"""Built-in functions, plus variables that were assigned a function chain."""

		if soundwords.functions.is_builtin(identifier):
			return True

		record = self._symbols.get(identifier)
		return record is not None and record.kind == FUNCTION


	def update_active_identifiers (self, block: str, result: soundwords.tokens.AnalysisResult) -> typing.List[str]:

		"""
		Record which identifiers a block references, then drop dangling ones.

		An identifier survives while any block references it, in a token or
		inside an error span.  Returns the identifiers removed.
		"""

		self._active_by_block[block] = _referenced_identifiers(result)

		return self._prune()


	def forget_block (self, block: str) -> typing.List[str]:

		"""Stop tracking a deleted block and drop identifiers only it referenced."""

		self._active_by_block.pop(block, None)

		return self._prune()


	def _prune (self) -> typing.List[str]:

		active: typing.Set[str] = set().union(*self._active_by_block.values()) if self._active_by_block else set()
		dangling = [identifier for identifier in self._symbols if identifier not in active]

		for identifier in dangling:
			logger.debug(f"Dropping dangling identifier {identifier!r}")
			self.remove(identifier)

		return dangling


	def _schedule_resolution (self, identifier: str) -> None:

		if self.resolver is None or identifier in self._pending:
			return

		task = asyncio.get_running_loop().create_task(self._resolve(identifier))
		self._pending[identifier] = task
		task.add_done_callback(lambda _: self._discard_pending(identifier, task))


	def _discard_pending (self, identifier: str, task: asyncio.Task) -> None:

		if self._pending.get(identifier) is task:
			del self._pending[identifier]


	def _commit (self, identifier: str, status: str, **fields: typing.Any) -> bool:

		"""
		Write a resolution result only if the identifier still exists.
		"""

		if identifier not in self._symbols:
			logger.debug(f"Discarding {status} result for removed identifier {identifier!r}")
			return False

		self.merge(identifier, status=status, **fields)
		self.events.emit_nowait("status", identifier, status)

		return True


	async def _resolve (self, identifier: str) -> None:

		"""
		Debounce, then look up and download one sound.

		Failures of any kind end in ``unavailable``; they never propagate.
		"""

		assert self.resolver is not None, "Resolution scheduled without a resolver"

		await asyncio.sleep(self.debounce)

		record = self._symbols.get(identifier)

		if record is None:
			return

		text = record.text or identifier
		parameters = dict(record.parameters)

		if not self._commit(identifier, SEARCHING):
			return

		try:
			candidate = await self.resolver.search(text, parameters)

		except asyncio.CancelledError:
			raise

		except Exception as exc:
			logger.warning(f"Search for {text!r} failed: {exc}")
			candidate = None

		if candidate is None:
			logger.info(f"No sound found for {identifier!r}")
			self._commit(identifier, UNAVAILABLE)
			return

		if not self._commit(identifier, DOWNLOADING):
			return

		try:
			sample = await self.resolver.fetch(candidate)

		except asyncio.CancelledError:
			raise

		except Exception as exc:
			logger.warning(f"Download of {candidate.name!r} for {identifier!r} failed: {exc}")
			self._commit(identifier, UNAVAILABLE)
			return

		if self._commit(identifier, AVAILABLE, value=sample):
			logger.info(f"Sound {identifier!r} available ({candidate.name})")


def _referenced_identifiers (result: soundwords.tokens.AnalysisResult) -> typing.Set[str]:

	"""
	Collect symbol keys referenced by a block's tokens and error spans.
	"""

	referenced: typing.Set[str] = set()

	for token in result.tokens:
		if token.type in (soundwords.tokens.SOUND_LITERAL, soundwords.tokens.VARIABLE, soundwords.tokens.VARIABLE_DECL, soundwords.tokens.FN):
			referenced.add(token.id)

	for error in result.errors:
		for lexeme in error.lexemes:
			if lexeme.type == soundwords.tokens.IDENTIFIER:
				referenced.add(lexeme.value)
				referenced.add(sound_id(lexeme.value))

	return referenced


def sound_id (text: str, parameters: typing.Optional[typing.Dict[str, typing.Any]] = None) -> str:

	"""
	Build the symbol key of a sound literal.

	Identical text with identical query parameters yields the same key, so
	every occurrence shares one resolved sample.  Parameters are sorted by
	name so their written order does not matter.
	"""

	base = "_".join(text.split())

	if not parameters:
		return base

	suffix = "_".join(f"{name}-{parameters[name]}" for name in sorted(parameters))

	return f"{base}__{suffix}"
