"""First-pass semantic analysis of one block.

The analyzer walks a block's lexical tokens once, with a few tokens of
lookahead in either direction, and tags each token with its role.  It does
not build a tree: it has to be cheap enough to run on every keystroke, and
its output feeds both the editor (highlighting, inline errors) and the
automaton builder.

Each block holds one statement:

- an assignment - ``name = <number | frequency | function chain | sequence>``
- a bare sequence - ``kick snare [hat hat] | clap``
- a comment - ``# ...``

Malformed parts are reported as error tokens and skipped; a bad function
parameter only marks that parameter, so the rest of the statement still
highlights and the valid prefix is still reported.
"""

import logging
import typing

import soundwords.functions
import soundwords.symbols
import soundwords.tokens

from soundwords.tokens import LexicalToken


logger = logging.getLogger(__name__)


def _is (token: typing.Optional[LexicalToken], token_type: str, value: typing.Optional[str] = None) -> bool:

	"""Match a token by type and, optionally, exact value."""

	if token is None or token.type != token_type:
		return False

	return value is None or token.value == value


def _is_open (token: typing.Optional[LexicalToken]) -> bool:
	return _is(token, soundwords.tokens.BRACKET, "(") or _is(token, soundwords.tokens.BRACKET, "[")


def _is_close (token: typing.Optional[LexicalToken]) -> bool:
	return _is(token, soundwords.tokens.BRACKET, ")") or _is(token, soundwords.tokens.BRACKET, "]")


def _is_positive_int (token: LexicalToken) -> bool:

	try:
		value = float(token.value)
	except ValueError:
		return False

	return value >= 1 and value == int(value)


class SemanticAnalyzer:

	"""
	Tags lexical tokens with semantic roles and reports recoverable errors.

	The analyzer declares variables, functions and sounds in the symbol table
	as it meets them; identifiers are classified against that table, so a
	word is a variable only once some block has assigned it.
	"""

	def __init__ (self, symbols: soundwords.symbols.SymbolTable) -> None:

		self.symbols = symbols

		self._stream: typing.List[LexicalToken] = []
		self._index = 0
		self.block: str = ""
		self.block_index: int = 0
		self.result = soundwords.tokens.AnalysisResult()


	def reset (self, lexical: soundwords.tokens.LexicalAnalysis, block: str, block_index: int = 0) -> None:

		"""
		Load a block's lexical tokens; lexical errors seed the error list.
		"""

		self._stream = list(lexical.tokens)
		self._index = 0
		self.block = block
		self.block_index = block_index
		self.result = soundwords.tokens.AnalysisResult(errors=list(lexical.errors))


	def analyze (self, lexical: soundwords.tokens.LexicalAnalysis, block: str, block_index: int = 0) -> soundwords.tokens.AnalysisResult:

		"""
		Analyze one block and return its semantic tokens and errors.

		Example:
			```python
			result = analyzer.analyze(soundwords.lexer.tokenize("x = kick*4", "a"), "a")
			[t.type for t in result.tokens]
			# VARIABLE_DECL, ASSIGNMENT_OP, SOUND_LITERAL, REPETITION_OP, REPETITION_COUNT
			```
		"""

		self.reset(lexical, block, block_index)

		if self.is_assignment():
			self.parse_assignment()

		elif self.is_sequence():
			self.parse_sequence()
			self.parse_end_of_statement()

		else:
			self.parse_end_of_statement()

		return self.result


	# Cursor

	def peek (self, offset: int = 0) -> typing.Optional[LexicalToken]:

		"""
		Return the token ``offset`` positions from the cursor, or None when out of range.
		"""

		at = self._index + offset

		if 0 <= at < len(self._stream):
			return self._stream[at]

		return None


	def advance (self) -> typing.Optional[LexicalToken]:

		"""Move the cursor forward one token and return the new current token."""

		if self._index < len(self._stream):
			self._index += 1

		return self.peek()


	def consume (self) -> LexicalToken:

		"""Return the current token and move past it."""

		token = self.peek()

		if token is None:
			raise IndexError("consume() past the end of the block")

		self._index += 1

		return token


	def push (self, token: LexicalToken, token_type: typing.Optional[str] = None, **fields: typing.Any) -> None:

		self.result.tokens.append(soundwords.tokens.SemanticToken.from_lexical(token, token_type, **fields))


	def push_error (self, lexemes: typing.Sequence[LexicalToken], reason: str) -> None:

		"""Report the span covered by ``lexemes`` (first start to last end)."""

		start = lexemes[0].start
		end = lexemes[-1].end

		self.result.errors.append(soundwords.tokens.ErrorToken(
			start = start,
			length = end - start,
			block = self.block,
			reasons = (reason,),
			lexemes = tuple(lexemes)
		))


	def _rest_of_block (self) -> typing.List[LexicalToken]:

		"""Consume and return every remaining token."""

		remaining = self._stream[self._index:]
		self._index = len(self._stream)

		return remaining


	# Lookahead tests

	def is_variable (self, identifier: str) -> bool:
		return self.symbols.is_variable(identifier)

	def is_function (self, identifier: str) -> bool:
		return self.symbols.is_function(identifier)

	def is_sound_literal (self, identifier: str) -> bool:
		return not self.is_function(identifier) and not self.is_variable(identifier)


	def is_assignment (self) -> bool:
		return _is(self.peek(), soundwords.tokens.IDENTIFIER) and _is(self.peek(1), soundwords.tokens.OPERATOR, "=")

	def is_comment (self) -> bool:
		return _is(self.peek(), soundwords.tokens.COMMENT)

	def is_number (self) -> bool:
		return _is(self.peek(), soundwords.tokens.NUMBER)

	def is_hz (self) -> bool:
		return _is(self.peek(), soundwords.tokens.HZ) and _is(self.peek(1), soundwords.tokens.HZ_UNIT)


	def is_step_start (self, token: typing.Optional[LexicalToken]) -> bool:

		"""A token that can begin one step of a sequence."""

		if _is(token, soundwords.tokens.IDENTIFIER):
			assert token is not None
			return not self.is_function(token.value)

		return _is_open(token) or _is(token, soundwords.tokens.REST)


	def is_sequence (self) -> bool:
		return self.is_step_start(self.peek()) or self.is_prefix_repetition()


	def _ends_step (self, offset: int) -> bool:

		"""True when the token at ``offset`` can close a step (sound, group or repetition count)."""

		token = self.peek(offset)

		if _is(token, soundwords.tokens.IDENTIFIER) or _is_close(token) or _is(token, soundwords.tokens.REST):
			return True

		# The count of a postfix repetition: kick*4 | snare
		return _is(token, soundwords.tokens.NUMBER) and _is(self.peek(offset - 1), soundwords.tokens.OPERATOR, "*")


	def is_choice (self) -> bool:

		"""'|' between something that ends a step and something that starts one."""

		if not _is(self.peek(), soundwords.tokens.OPERATOR, "|") or not self._ends_step(-1):
			return False

		following = self.peek(1)

		if self.is_step_start(following):
			return True

		return _is(following, soundwords.tokens.NUMBER) and _is(self.peek(2), soundwords.tokens.OPERATOR, "*")


	def is_choice_parameter (self) -> bool:

		return (
			_is(self.peek(), soundwords.tokens.BRACKET, "(")
			and _is(self.peek(1), soundwords.tokens.NUMBER)
			and _is(self.peek(2), soundwords.tokens.BRACKET, ")")
		)


	def is_chain_operator (self) -> bool:

		"""'.' after a sound, function or group, followed by a known function name."""

		previous = self.peek(-1)
		following = self.peek(1)

		return (
			_is(self.peek(), soundwords.tokens.OPERATOR, ".")
			and (_is(previous, soundwords.tokens.IDENTIFIER) or _is_close(previous))
			and _is(following, soundwords.tokens.IDENTIFIER)
			and following is not None
			and self.is_function(following.value)
		)


	def is_repetition_operator (self) -> bool:

		"""Postfix form: <step> '*' NUMBER."""

		previous = self.peek(-1)

		return (
			_is(self.peek(), soundwords.tokens.OPERATOR, "*")
			and _is(self.peek(1), soundwords.tokens.NUMBER)
			and (_is(previous, soundwords.tokens.IDENTIFIER) or _is_close(previous) or _is(previous, soundwords.tokens.REST))
		)


	def is_prefix_repetition (self) -> bool:

		"""Prefix form: NUMBER '*' <step>."""

		return (
			_is(self.peek(), soundwords.tokens.NUMBER)
			and _is(self.peek(1), soundwords.tokens.OPERATOR, "*")
			and self.is_step_start(self.peek(2))
		)


	def has_fn_parameters (self) -> bool:
		return _is(self.peek(), soundwords.tokens.BRACKET, "(")


	def has_query_parameters (self) -> bool:

		"""'(' directly after a sound literal opens query parameters when it starts with ``name:`` or a flag."""

		if not _is(self.peek(), soundwords.tokens.BRACKET, "("):
			return False

		name = self.peek(1)

		if not _is(name, soundwords.tokens.IDENTIFIER):
			return False

		assert name is not None

		return _is(self.peek(2), soundwords.tokens.DELIMITER, ":") or soundwords.functions.is_flag_parameter(soundwords.functions.SOUND_QUERY, name.value)


	# Statements

	def parse_end_of_statement (self) -> None:

		"""Accept a trailing comment; anything else left in the block is an error."""

		token = self.peek()

		if token is None:
			return

		if self.is_comment():
			self.push(self.consume())
			return

		self.push_error(self._rest_of_block(), f"unexpected {token.value!r}")


	def parse_assignment (self) -> None:

		name = self.consume()
		operator = self.consume()

		declares_function = _is(self.peek(), soundwords.tokens.IDENTIFIER) and self.is_function(self.peek().value)  # type: ignore[union-attr]
		self._declare(name.value, soundwords.symbols.FUNCTION if declares_function else soundwords.symbols.VARIABLE)

		self.push(name, soundwords.tokens.VARIABLE_DECL)
		self.push(operator, soundwords.tokens.ASSIGNMENT_OP)

		if self.is_prefix_repetition():
			self.parse_sequence()

		elif self.is_number():
			self.push(self.consume())

		elif self.is_hz():
			self.push(self.consume())
			self.push(self.consume())

		elif declares_function:
			self.parse_fn()

		elif self.is_sequence():
			self.parse_sequence()

		else:
			self.push_error([name, operator] + self._rest_of_block(), f"nothing to assign to {name.value!r}")
			return

		self.parse_end_of_statement()


	def _declare (self, name: str, kind: str) -> None:

		"""Declare a variable or function, replacing a sound of the same name."""

		existing = self.symbols.get(name)

		if existing is not None and existing.kind != kind:
			self.symbols.remove(name)

		self.symbols.merge(name, kind=kind)


	# Functions

	def parse_fn_chain (self) -> None:

		self.push(self.consume(), soundwords.tokens.CHAINING_OP)
		self.parse_fn()


	def parse_fn (self) -> None:

		"""A function name, its optional parameters, and any functions chained after it."""

		fn_token = self.consume()
		parameters: typing.Dict[str, typing.Any] = {}
		parameter_tokens: typing.List[soundwords.tokens.SemanticToken] = []

		if self.has_fn_parameters():
			parameters, parameter_tokens = self.parse_fn_parameters(fn_token.value)

		self.push(fn_token, soundwords.tokens.FN, parameters=parameters)
		self.result.tokens.extend(parameter_tokens)

		if self.is_chain_operator():
			self.parse_fn_chain()


	def parse_fn_parameters (self, fn_name: str) -> typing.Tuple[typing.Dict[str, typing.Any], typing.List[soundwords.tokens.SemanticToken]]:

		"""
		Parse ``( name: value, flag, ... )`` for a function or sound query.

		Returns the translated parameters and the tagged tokens; the caller
		emits the tokens after the function (or sound) token so output stays
		in source order.
		"""

		tag = soundwords.tokens.SemanticToken.from_lexical
		parameters: typing.Dict[str, typing.Any] = {}
		emitted: typing.List[soundwords.tokens.SemanticToken] = []

		opening = self.consume()
		emitted.append(tag(opening, soundwords.tokens.FN_BRACKET))

		while self.peek() is not None and not _is(self.peek(), soundwords.tokens.BRACKET, ")"):

			token = self.peek()
			assert token is not None

			if not _is(token, soundwords.tokens.IDENTIFIER) or not soundwords.functions.is_parameter(fn_name, token.value):
				self.parse_error_until_end_of_param_scope(f"{_label(fn_name)} has no parameter {token.value!r}")
				continue

			if soundwords.functions.is_flag_parameter(fn_name, token.value):
				parameters.update(soundwords.functions.translate_argument(fn_name, token.value, []))
				emitted.append(tag(self.consume(), soundwords.tokens.FN_PARAMETER))
				emitted.extend(self._parameter_delimiter(fn_name))
				continue

			if not _is(self.peek(1), soundwords.tokens.DELIMITER, ":"):
				self.parse_error_until_end_of_param_scope(f"expected ':' after {token.value!r}")
				continue

			if not soundwords.functions.is_valid_argument(fn_name, token.value, self.peek(2), self.peek(3)):
				kind = soundwords.functions.BUILTINS[fn_name].parameter(token.value).kind  # type: ignore[union-attr]
				self.parse_error_until_end_of_param_scope(f"{token.value!r} expects a {kind} value")
				continue

			name = self.consume()
			delimiter = self.consume()
			args = [self.consume()]

			if _is(args[0], soundwords.tokens.HZ):
				args.append(self.consume())

			emitted.append(tag(name, soundwords.tokens.FN_PARAMETER))
			emitted.append(tag(delimiter, soundwords.tokens.FN_PARAM_KV_DELIMITER))
			emitted.extend(tag(arg, soundwords.tokens.FN_ARGUMENT) for arg in args)

			parameters.update(soundwords.functions.translate_argument(fn_name, name.value, args))
			emitted.extend(self._parameter_delimiter(fn_name))

		if _is(self.peek(), soundwords.tokens.BRACKET, ")"):
			emitted.append(tag(self.consume(), soundwords.tokens.FN_BRACKET))

		else:
			self.push_error([opening], f"parameters of {_label(fn_name)} are never closed")

		return parameters, emitted


	def _parameter_delimiter (self, fn_name: str) -> typing.List[soundwords.tokens.SemanticToken]:

		"""After a parameter: a comma, the closing bracket, or garbage up to the next of either."""

		token = self.peek()

		if _is(token, soundwords.tokens.DELIMITER, ","):
			return [soundwords.tokens.SemanticToken.from_lexical(self.consume(), soundwords.tokens.FN_PARAM_DELIMITER)]

		if token is not None and not _is(token, soundwords.tokens.BRACKET, ")"):
			self.parse_error_until_end_of_param_scope(f"unexpected {token.value!r} in parameters of {_label(fn_name)}")

		return []


	def parse_error_until_end_of_param_scope (self, reason: str) -> None:

		"""
		Report from the current token through the next ',' (inclusive) or up to ')'.
		"""

		skipped: typing.List[LexicalToken] = []

		while self.peek() is not None and not _is(self.peek(), soundwords.tokens.DELIMITER, ",") and not _is(self.peek(), soundwords.tokens.BRACKET, ")"):
			skipped.append(self.consume())

		if _is(self.peek(), soundwords.tokens.DELIMITER, ","):
			skipped.append(self.consume())

		if skipped:
			self.push_error(skipped, reason)


	# Sequences

	def parse_sequence (self) -> int:

		"""
		Parse steps until a closing bracket or the end of the block.

		Returns the number of steps parsed.  Stops without consuming at the
		first token that cannot continue the sequence.
		"""

		steps = 0

		while self.peek() is not None and not _is_close(self.peek()):

			token = self.peek()
			assert token is not None

			if self.is_prefix_repetition():
				self.parse_prefix_repetition()

			elif _is(token, soundwords.tokens.IDENTIFIER):
				self.parse_identifier()
				steps += 1

			elif _is(token, soundwords.tokens.REST):
				self.push(self.consume(), soundwords.tokens.REST, id="_")
				steps += 1

			elif _is_open(token):
				self.parse_group()
				steps += 1

			elif self.is_choice():
				self.parse_choice()

			elif self.is_chain_operator():
				self.parse_fn_chain()

			elif self.is_repetition_operator():
				self.parse_repetition()

			else:
				break

		return steps


	def parse_group (self) -> None:

		"""'( ... )' groups steps; '[ ... ]' squeezes them into one beat."""

		opening = self.consume()
		bracket_type = soundwords.tokens.SEQUENCE_BRACKET if opening.value == "(" else soundwords.tokens.BEAT_DIV_BRACKET
		closing_value = ")" if opening.value == "(" else "]"

		self.push(opening, bracket_type)

		steps = self.parse_sequence()

		if _is(self.peek(), soundwords.tokens.BRACKET, closing_value):
			closing = self.consume()
			self.push(closing, bracket_type)

			if steps == 0:
				self.push_error([opening, closing], "empty group")
			return

		remaining = self._rest_of_block()

		if remaining:
			self.push_error(remaining, f"expected {closing_value!r}")


	def parse_identifier (self) -> None:

		"""A variable, or a sound literal with optional query parameters."""

		token = self.consume()

		if self.is_variable(token.value):
			self.push(token, soundwords.tokens.VARIABLE)
			return

		if self.is_function(token.value):
			self.push_error([token], f"{token.value!r} is a function; chain it onto a sound with '.'")
			return

		parameters: typing.Dict[str, typing.Any] = {}
		parameter_tokens: typing.List[soundwords.tokens.SemanticToken] = []

		if self.has_query_parameters():
			parameters, parameter_tokens = self.parse_fn_parameters(soundwords.functions.SOUND_QUERY)

		identifier = soundwords.symbols.sound_id(token.value, parameters)

		self.push(token, soundwords.tokens.SOUND_LITERAL, id=identifier, parameters=parameters)
		self.result.tokens.extend(parameter_tokens)

		self.symbols.merge(identifier, kind=soundwords.symbols.SOUND, text=token.value, parameters=parameters)


	def parse_choice (self) -> None:

		"""'|' with an optional '(weight)' for the branch that follows."""

		operator = self.consume()
		self.push(operator, soundwords.tokens.CHOICE_OP)

		if not self.is_choice_parameter():
			return

		opening = self.consume()
		weight = self.consume()
		closing = self.consume()

		if float(weight.value) <= 0:
			self.push_error([opening, weight, closing], "choice weight must be positive")

		else:
			self.push(opening, soundwords.tokens.FN_BRACKET)
			self.push(weight, soundwords.tokens.CHOICE_WEIGHT)
			self.push(closing, soundwords.tokens.FN_BRACKET)

		if not self.is_sequence():
			self.push_error([operator] + self._rest_of_block(), "'|' must be followed by a sound or group")


	def parse_prefix_repetition (self) -> None:

		count = self.consume()
		operator = self.consume()

		if not _is_positive_int(count):
			self.push_error([count, operator], "repetition count must be a whole number of at least 1")
			return

		self.push(count, soundwords.tokens.REPETITION_COUNT)
		self.push(operator, soundwords.tokens.REPETITION_OP)


	def parse_repetition (self) -> None:

		operator = self.consume()
		count = self.consume()

		if not _is_positive_int(count):
			self.push_error([operator, count], "repetition count must be a whole number of at least 1")
			return

		self.push(operator, soundwords.tokens.REPETITION_OP)
		self.push(count, soundwords.tokens.REPETITION_COUNT)


def _label (fn_name: str) -> str:

	if fn_name == soundwords.functions.SOUND_QUERY:
		return "a sound"

	return f"{fn_name}()"
