import re
import typing

import soundwords.tokens


_TOKEN_PATTERN = re.compile(
	r"""
	(?P<space>\s+)
	| (?P<comment>\#.*)
	| (?P<quoted>"[^"\n]*"|'[^'\n]*')
	| (?P<hz>-?\d+(?:\.\d+)?)(?P<hz_unit>k?hz)\b
	| (?P<number>-?\d+(?:\.\d+)?)
	| (?P<identifier>[A-Za-z][A-Za-z0-9_\-]*)
	| (?P<rest>[_~])
	| (?P<bracket>[()\[\]])
	| (?P<delimiter>[,:])
	| (?P<operator>[=.*|])
	""",
	re.VERBOSE | re.IGNORECASE | re.DOTALL
)

_OPENING = {"(": ")", "[": "]"}
_CLOSING = {")": "(", "]": "["}


def tokenize (text: str, block: str) -> soundwords.tokens.LexicalAnalysis:

	"""
	Split one block of source text into lexical tokens.

	Characters that start no token are reported as error tokens and dropped
	from the stream.  Brackets are checked for balance; an unmatched bracket is
	reported but stays in the stream, and the analyzer decides what to do with it.

	Example:
		```python
		tokenize("x = kick*4", "a").tokens
		# IDENTIFIER x, OPERATOR =, IDENTIFIER kick, OPERATOR *, NUMBER 4
		```
	"""

	result = soundwords.tokens.LexicalAnalysis()
	position = 0

	while position < len(text):

		match = _TOKEN_PATTERN.match(text, position)

		if match is None:
			result.errors.append(soundwords.tokens.ErrorToken(
				start = position,
				length = 1,
				block = block,
				reasons = (f"unexpected character {text[position]!r}",)
			))
			position += 1
			continue

		position = match.end()
		kind = match.lastgroup

		if kind == "space":
			continue

		if kind == "hz_unit":
			# Both groups of a frequency matched; emit value and unit separately.
			result.tokens.append(_make(soundwords.tokens.HZ, match, "hz", block))
			result.tokens.append(_make(soundwords.tokens.HZ_UNIT, match, "hz_unit", block))
			continue

		if kind == "quoted":
			raw = match.group("quoted")
			result.tokens.append(soundwords.tokens.LexicalToken(
				type = soundwords.tokens.IDENTIFIER,
				value = raw[1:-1].strip(),
				start = match.start(),
				length = len(raw),
				block = block
			))
			continue

		result.tokens.append(_make(_KIND_TYPES[kind], match, kind, block))

	result.errors.extend(_check_brackets(result.tokens, block))

	return result


_KIND_TYPES = {
	"comment": soundwords.tokens.COMMENT,
	"number": soundwords.tokens.NUMBER,
	"identifier": soundwords.tokens.IDENTIFIER,
	"rest": soundwords.tokens.REST,
	"bracket": soundwords.tokens.BRACKET,
	"delimiter": soundwords.tokens.DELIMITER,
	"operator": soundwords.tokens.OPERATOR,
}


def _make (token_type: str, match: typing.Match[str], group: str, block: str) -> soundwords.tokens.LexicalToken:

	"""Build a lexical token from one named group of a match."""

	return soundwords.tokens.LexicalToken(
		type = token_type,
		value = match.group(group),
		start = match.start(group),
		length = match.end(group) - match.start(group),
		block = block
	)


def _check_brackets (tokens: typing.List[soundwords.tokens.LexicalToken], block: str) -> typing.List[soundwords.tokens.ErrorToken]:

	"""
	Report brackets that are never closed or closed by the wrong kind.
	"""

	errors: typing.List[soundwords.tokens.ErrorToken] = []
	stack: typing.List[soundwords.tokens.LexicalToken] = []

	for token in tokens:

		if token.type != soundwords.tokens.BRACKET:
			continue

		if token.value in _OPENING:
			stack.append(token)

		elif stack and stack[-1].value == _CLOSING[token.value]:
			stack.pop()

		else:
			errors.append(soundwords.tokens.ErrorToken(
				start = token.start,
				length = token.length,
				block = block,
				reasons = (f"unmatched {token.value!r}",),
				lexemes = (token,)
			))

	for token in stack:
		errors.append(soundwords.tokens.ErrorToken(
			start = token.start,
			length = token.length,
			block = block,
			reasons = (f"{token.value!r} is never closed",),
			lexemes = (token,)
		))

	return errors
