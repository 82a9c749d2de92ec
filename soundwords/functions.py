"""Built-in functions (effects) and the parameter rules the analyzer checks against.

A function is chained onto a sound, variable or group with ``.``::

    kick.volume(level: 0.5).lowpass(cutoff: 2khz)

Parameters are ``name: value`` pairs separated by commas, or bare flags
(``speed(rate: 0.5, reverse)``).  Sound literals accept query parameters
the same way (``kick(max: 2)``); those are described by the reserved
``SOUND_QUERY`` entry, which is not callable from source text.
"""

import dataclasses
import typing

import soundwords.tokens


NUMBER = "number"
HZ = "hz"
FLAG = "flag"
WORD = "word"

SOUND_QUERY = "_sound"


@dataclasses.dataclass (frozen=True)
class Parameter:

	"""
	One accepted parameter of a function.
	"""

	name: str
	kind: str
	default: typing.Any = None


@dataclasses.dataclass (frozen=True)
class Function:

	"""
	A built-in function and its parameters, keyed by name.
	"""

	name: str
	parameters: typing.Tuple[Parameter, ...] = ()

	def parameter (self, name: str) -> typing.Optional[Parameter]:

		for parameter in self.parameters:
			if parameter.name == name:
				return parameter

		return None

	def defaults (self) -> typing.Dict[str, typing.Any]:

		"""Return the value of every non-flag parameter that has a default."""

		return {p.name: p.default for p in self.parameters if p.kind != FLAG and p.default is not None}


BUILTINS: typing.Dict[str, Function] = {
	fn.name: fn for fn in (
		Function("volume", (Parameter("level", NUMBER, 1.0),)),
		Function("pan", (Parameter("position", NUMBER, 0.0),)),
		Function("speed", (Parameter("rate", NUMBER, 1.0), Parameter("reverse", FLAG))),
		Function("reverb", (Parameter("mix", NUMBER, 0.3), Parameter("decay", NUMBER, 2.0))),
		Function("delay", (Parameter("time", NUMBER, 0.25), Parameter("feedback", NUMBER, 0.4))),
		Function("lowpass", (Parameter("cutoff", HZ, 1000.0), Parameter("q", NUMBER, 1.0))),
		Function("highpass", (Parameter("cutoff", HZ, 200.0), Parameter("q", NUMBER, 1.0))),
		Function(SOUND_QUERY, (Parameter("min", NUMBER), Parameter("max", NUMBER), Parameter("tag", WORD))),
	)
}


def is_builtin (name: str) -> bool:

	"""Return True for a function callable from source text."""

	return name in BUILTINS and name != SOUND_QUERY


def is_parameter (fn_name: str, name: str) -> bool:

	fn = BUILTINS.get(fn_name)
	return fn is not None and fn.parameter(name) is not None


def is_flag_parameter (fn_name: str, name: str) -> bool:

	fn = BUILTINS.get(fn_name)
	parameter = fn.parameter(name) if fn else None
	return parameter is not None and parameter.kind == FLAG


def is_valid_argument (
	fn_name: str,
	name: str,
	first: typing.Optional[soundwords.tokens.LexicalToken],
	second: typing.Optional[soundwords.tokens.LexicalToken] = None
) -> bool:

	"""
	Check that the token(s) after ``name:`` have the type the parameter expects.

	A frequency is a ``HZ`` token followed by its unit; a plain number is also
	accepted for a frequency and read as Hz.
	"""

	fn = BUILTINS.get(fn_name)
	parameter = fn.parameter(name) if fn else None

	if parameter is None or first is None:
		return False

	if parameter.kind == NUMBER:
		return first.type == soundwords.tokens.NUMBER

	if parameter.kind == HZ:
		if first.type == soundwords.tokens.NUMBER:
			return True
		return first.type == soundwords.tokens.HZ and second is not None and second.type == soundwords.tokens.HZ_UNIT

	if parameter.kind == WORD:
		return first.type == soundwords.tokens.IDENTIFIER

	return False


def translate_argument (fn_name: str, name: str, args: typing.Sequence[soundwords.tokens.LexicalToken]) -> typing.Dict[str, typing.Any]:

	"""
	Convert validated argument tokens into a ``{name: value}`` entry.
	"""

	fn = BUILTINS[fn_name]
	parameter = fn.parameter(name)

	if parameter is None:
		raise ValueError(f"{fn_name}() has no parameter {name!r}")

	if parameter.kind == FLAG:
		return {name: True}

	if parameter.kind == WORD:
		return {name: args[0].value}

	value = float(args[0].value)

	if parameter.kind == HZ and len(args) > 1 and args[1].value.lower() == "khz":
		value *= 1000.0

	return {name: value}


def hz_value (value: str, unit: str) -> float:

	"""Convert a frequency literal into Hz."""

	return float(value) * (1000.0 if unit.lower() == "khz" else 1.0)
