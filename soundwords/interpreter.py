import dataclasses
import logging
import random
import typing

import soundwords.analyzer
import soundwords.automaton
import soundwords.builder
import soundwords.event_emitter
import soundwords.lexer
import soundwords.memory
import soundwords.symbols
import soundwords.tokens


logger = logging.getLogger(__name__)

ANONYMOUS_PREFIX = "~"


@dataclasses.dataclass
class Block:

	"""
	One editor block and what it currently contributes.

	``bound`` holds the variables this block has put in memory.  They only
	change when the block analyzes cleanly, so a half-typed edit leaves the
	previous definition playing.
	"""

	key: str
	index: int
	text: str = ""
	result: soundwords.tokens.AnalysisResult = dataclasses.field(default_factory=soundwords.tokens.AnalysisResult)
	bound: typing.Set[str] = dataclasses.field(default_factory=set)

	@property
	def declarations (self) -> typing.Set[str]:
		return {token.value for token in self.result.tokens if token.type == soundwords.tokens.VARIABLE_DECL}

	def references (self, name: str) -> bool:
		return any(token.id == name and token.type in (soundwords.tokens.VARIABLE, soundwords.tokens.FN) for token in self.result.tokens)


class Interpreter:

	"""
	Turns block edits into variable bindings.

	Each edit runs lex -> analyze -> prune symbols -> build -> bind for the
	edited block.  When the set of declared variables changes, the other
	blocks are analyzed again (a word may have turned from a sound into a
	variable or back), and blocks that use a rebound variable are rebuilt.

	Listeners on ``self.events`` receive ``analyzed`` (key, result) for every
	block whose diagnostics may have changed, and ``removed`` (key).
	"""

	def __init__ (
		self,
		symbols: soundwords.symbols.SymbolTable,
		memory: soundwords.memory.Memory,
		rng: typing.Optional[random.Random] = None
	) -> None:

		self.symbols = symbols
		self.memory = memory
		self.analyzer = soundwords.analyzer.SemanticAnalyzer(symbols)
		self.builder = soundwords.builder.AutomatonBuilder(memory, rng=rng)
		self.events = soundwords.event_emitter.EventEmitter()

		self._blocks: typing.Dict[str, Block] = {}
		self._next_index = 0


	def blocks (self) -> typing.List[Block]:

		return sorted(self._blocks.values(), key=lambda block: block.index)


	def result (self, key: str) -> typing.Optional[soundwords.tokens.AnalysisResult]:

		block = self._blocks.get(key)
		return block.result if block else None


	def update_block (self, key: str, text: str) -> soundwords.tokens.AnalysisResult:

		"""
		Interpret the new text of one block and return its analysis.

		Example:
			```python
			result = interpreter.update_block("a", "x = kick*4")
			memory.get("x").value   # a sequence of four kick steps
			```
		"""

		block = self._blocks.get(key)

		if block is None:
			block = Block(key=key, index=self._next_index)
			self._blocks[key] = block
			self._next_index += 1

		before = self._declared()

		block.text = text
		self._analyze(block)

		touched = {key}
		rebound = self._bind(block)

		if self._declared() != before:
			rebound |= self._reanalyze_others(key, touched)

		self._rebuild_dependents(rebound, touched)

		for other in touched:
			self.events.emit_sync("analyzed", other, self._blocks[other].result)

		return block.result


	def remove_block (self, key: str) -> None:

		"""Forget a block: its identifiers and the variables it defined."""

		block = self._blocks.pop(key, None)

		if block is None:
			return

		had_declarations = bool(block.declarations or block.bound)

		self.symbols.forget_block(key)
		rebound = self._release(block, block.bound)

		touched: typing.Set[str] = set()

		if had_declarations:
			rebound |= self._reanalyze_others(key, touched)

		self._rebuild_dependents(rebound, touched)

		self.events.emit_sync("removed", key)

		for other in touched:
			self.events.emit_sync("analyzed", other, self._blocks[other].result)


	def _declared (self) -> typing.Set[str]:

		names: typing.Set[str] = set()

		for block in self._blocks.values():
			names |= block.declarations

		return names


	def _analyze (self, block: Block) -> soundwords.tokens.AnalysisResult:

		lexical = soundwords.lexer.tokenize(block.text, block.key)
		block.result = self.analyzer.analyze(lexical, block.key, block.index)
		self.symbols.update_active_identifiers(block.key, block.result)

		return block.result


	def _reanalyze_others (self, key: str, touched: typing.Set[str]) -> typing.Set[str]:

		"""Re-classify identifiers in every other block; rebind the ones whose tokens changed."""

		rebound: typing.Set[str] = set()

		for other in self.blocks():

			if other.key == key:
				continue

			previous = other.result
			current = self._analyze(other)

			if current.tokens != previous.tokens or current.errors != previous.errors:
				touched.add(other.key)
				rebound |= self._bind(other)

		return rebound


	def _rebuild_dependents (self, names: typing.Set[str], done: typing.Set[str]) -> None:

		"""Rebind every block that uses a rebound variable, following chains of use."""

		queue = list(names)

		while queue:

			name = queue.pop()

			for block in self.blocks():

				if block.key in done or not block.references(name):
					continue

				done.add(block.key)
				queue.extend(self._bind(block))


	def _statement (self, block: Block) -> typing.Optional[typing.Tuple[str, typing.List[soundwords.tokens.SemanticToken]]]:

		"""Return (variable name, right-hand side tokens) or None for a comment-only block."""

		tokens = [token for token in block.result.tokens if token.type != soundwords.tokens.COMMENT]

		if not tokens:
			return None

		if tokens[0].type == soundwords.tokens.VARIABLE_DECL:
			return tokens[0].value, tokens[2:]

		return f"{ANONYMOUS_PREFIX}{block.key}", tokens


	def _bind (self, block: Block) -> typing.Set[str]:

		"""
		Put a cleanly analyzed block's variable in memory.

		Returns the names whose binding changed.
		"""

		if not block.result.ok:
			logger.debug(f"Block {block.key!r} has errors - keeping its previous definition")
			return set()

		statement = self._statement(block)
		name = statement[0] if statement else None

		changed = self._release(block, block.bound - {name} if name else set(block.bound))

		if statement is None:
			block.bound = set()
			return changed

		name, rhs = statement

		try:
			binding = self.builder.build_binding(name, rhs, block=block.key)

		except (soundwords.builder.BuildError, soundwords.automaton.AutomatonError) as exc:
			logger.info(f"Block {block.key!r} did not build: {exc}")
			first, last = rhs[0], rhs[-1]
			block.result.errors.append(soundwords.tokens.ErrorToken(
				start = first.start,
				length = last.end - first.start,
				block = block.key,
				reasons = (str(exc),)
			))
			return changed

		self.memory.set(binding)
		block.bound = {name}
		changed.add(name)

		return changed


	def _release (self, block: Block, names: typing.Iterable[str]) -> typing.Set[str]:

		"""
		Give up variables a block no longer defines.

		Another block declaring the same name takes over; otherwise the
		variable is deleted from memory and from the symbol table.
		"""

		changed: typing.Set[str] = set()

		for name in list(names):

			block.bound.discard(name)
			changed.add(name)

			heir = next((other for other in self.blocks() if other is not block and name in other.declarations), None)

			if heir is not None and heir.result.ok:
				changed |= self._bind(heir)
				continue

			self.memory.delete(name)

			if not name.startswith(ANONYMOUS_PREFIX):
				self.symbols.remove(name)

		return changed
