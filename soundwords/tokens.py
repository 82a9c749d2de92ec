"""Token types passed between the lexer, the semantic analyzer and the builder.

Lexical tokens are the raw input: a typed slice of one block's text.
Semantic tokens are the analyzer's output: the same slices, tagged with the
role they play in the statement.  Error tokens mark source ranges that could
not be understood; they travel alongside the semantic tokens so the host
editor can highlight them while the valid parts of the block keep working.
"""

import dataclasses
import typing


# Lexical token types.

IDENTIFIER = "IDENTIFIER"
NUMBER = "NUMBER"
HZ = "HZ"
HZ_UNIT = "HZ_UNIT"
BRACKET = "BRACKET"
DELIMITER = "DELIMITER"
OPERATOR = "OPERATOR"
REST = "REST"
COMMENT = "COMMENT"


# Semantic token types.  NUMBER, HZ, HZ_UNIT, REST and COMMENT keep their lexical names.

VARIABLE = "VARIABLE"
VARIABLE_DECL = "VARIABLE_DECL"
ASSIGNMENT_OP = "ASSIGNMENT_OP"
FN = "FN"
FN_BRACKET = "FN_BRACKET"
FN_PARAMETER = "FN_PARAMETER"
FN_PARAM_KV_DELIMITER = "FN_PARAM_KV_DELIMITER"
FN_PARAM_DELIMITER = "FN_PARAM_DELIMITER"
FN_ARGUMENT = "FN_ARGUMENT"
SOUND_LITERAL = "SOUND_LITERAL"
BEAT_DIV_BRACKET = "BEAT_DIV_BRACKET"
SEQUENCE_BRACKET = "SEQUENCE_BRACKET"
CHOICE_OP = "CHOICE_OP"
CHOICE_WEIGHT = "CHOICE_WEIGHT"
REPETITION_OP = "REPETITION_OP"
REPETITION_COUNT = "REPETITION_COUNT"
CHAINING_OP = "CHAINING_OP"

# Tokens that only describe the parameters of the function or sound literal before them.
PARAMETER_TYPES = frozenset({
	FN_BRACKET,
	FN_PARAMETER,
	FN_PARAM_KV_DELIMITER,
	FN_PARAM_DELIMITER,
	FN_ARGUMENT,
})


@dataclasses.dataclass (frozen=True)
class LexicalToken:

	"""
	A typed slice of one block's source text.
	"""

	type: str
	value: str
	start: int
	length: int
	block: str

	@property
	def end (self) -> int:
		return self.start + self.length


@dataclasses.dataclass (frozen=True)
class SemanticToken:

	"""
	A lexical slice tagged with its role in the statement.

	``id`` is the identity used for cross references (the symbol-table key of
	a sound literal, the name of a variable).  ``instance`` is unique per
	occurrence: two ``kick`` literals in one block share an ``id`` but not an
	``instance``.
	"""

	id: str
	type: str
	value: str
	start: int
	length: int
	block: str
	parameters: typing.Dict[str, typing.Any] = dataclasses.field(default_factory=dict, compare=False)

	@property
	def instance (self) -> str:
		return f"{self.block}-{self.start}"

	@property
	def end (self) -> int:
		return self.start + self.length

	@classmethod
	def from_lexical (
		cls,
		token: LexicalToken,
		type: typing.Optional[str] = None,
		id: typing.Optional[str] = None,
		parameters: typing.Optional[typing.Dict[str, typing.Any]] = None
	) -> "SemanticToken":

		"""
		Tag a lexical token, keeping its span and value.
		"""

		return cls(
			id = id if id is not None else token.value,
			type = type if type is not None else token.type,
			value = token.value,
			start = token.start,
			length = token.length,
			block = token.block,
			parameters = dict(parameters) if parameters else {}
		)


@dataclasses.dataclass (frozen=True)
class ErrorToken:

	"""
	A source range the analyzer could not accept.

	``lexemes`` are the lexical tokens inside the range; the symbol table reads
	identifiers from them so a sound being edited is not dropped while its
	statement is temporarily malformed.
	"""

	start: int
	length: int
	block: str
	reasons: typing.Tuple[str, ...] = ()
	lexemes: typing.Tuple[LexicalToken, ...] = dataclasses.field(default=(), compare=False)

	@property
	def end (self) -> int:
		return self.start + self.length


@dataclasses.dataclass
class LexicalAnalysis:

	"""
	Output of the lexer for one block.
	"""

	tokens: typing.List[LexicalToken] = dataclasses.field(default_factory=list)
	errors: typing.List[ErrorToken] = dataclasses.field(default_factory=list)


@dataclasses.dataclass
class AnalysisResult:

	"""
	Output of the semantic analyzer for one block.  Both lists may be non-empty.
	"""

	tokens: typing.List[SemanticToken] = dataclasses.field(default_factory=list)
	errors: typing.List[ErrorToken] = dataclasses.field(default_factory=list)

	@property
	def ok (self) -> bool:
		return not self.errors

	def to_dict (self) -> typing.Dict[str, typing.Any]:

		"""
		Return a JSON-serialisable view for editors and the web UI.
		"""

		return {
			"tokens": [
				{
					"id": token.id,
					"instance": token.instance,
					"type": token.type,
					"value": token.value,
					"start": token.start,
					"length": token.length,
					"block": token.block,
					"parameters": token.parameters,
				}
				for token in self.tokens
			],
			"errors": [
				{
					"start": error.start,
					"length": error.length,
					"block": error.block,
					"reasons": list(error.reasons),
				}
				for error in self.errors
			],
		}
