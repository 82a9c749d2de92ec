import asyncio
import typing

import mido
import numpy
import pytest

import soundwords.automaton
import soundwords.memory
import soundwords.resolver
import soundwords.symbols


class FakeMidiOut:

	"""Minimal MIDI output stub that remembers what was sent."""

	def __init__ (self) -> None:

		self.sent: typing.List[mido.Message] = []
		self.closed = False

	def send (self, message: mido.Message) -> None:

		self.sent.append(message)

	def close (self) -> None:

		self.closed = True


def _fake_get_output_names () -> list[str]:

	"""Return a fixed list of MIDI output names for tests."""

	return ["Dummy MIDI"]


# Module-level reference so tests can inspect the most recently opened port.
_current_fake_output: typing.Optional[FakeMidiOut] = None


def _fake_open_output (name: str) -> FakeMidiOut:

	"""Return a fake MIDI output regardless of the name."""

	global _current_fake_output
	_current_fake_output = FakeMidiOut()
	return _current_fake_output


@pytest.fixture
def patch_midi (monkeypatch: pytest.MonkeyPatch) -> None:

	"""Patch mido to use a fake MIDI output for all tests that need it."""

	monkeypatch.setattr(mido, "get_output_names", _fake_get_output_names)
	monkeypatch.setattr(mido, "open_output", _fake_open_output)


class FakeResolver:

	"""
	Resolver stub: known words resolve to a tiny silent sample, others are not found.

	``calls`` records every search so tests can count resolution attempts.
	"""

	def __init__ (self, known: typing.Iterable[str] = ("kick", "snare", "hat"), fail: bool = False, delay: float = 0.0) -> None:

		self.known = set(known)
		self.fail = fail
		self.delay = delay
		self.calls: typing.List[typing.Tuple[str, typing.Dict[str, typing.Any]]] = []

	async def search (self, text: str, parameters: typing.Dict[str, typing.Any]) -> typing.Optional[soundwords.resolver.Candidate]:

		self.calls.append((text, dict(parameters)))

		if self.delay:
			await asyncio.sleep(self.delay)

		if self.fail:
			raise ConnectionError("lookup failed")

		if text not in self.known:
			return None

		return soundwords.resolver.Candidate(name=text, location=f"memory://{text}")

	async def fetch (self, candidate: soundwords.resolver.Candidate) -> soundwords.resolver.Sample:

		return soundwords.resolver.Sample(name=candidate.name, data=numpy.zeros(64, dtype="float32"), samplerate=44100)


class FakeSink:

	"""Audio sink stub recording every call the scheduler makes."""

	def __init__ (self) -> None:

		self.played: typing.List[typing.Tuple[float, soundwords.automaton.Step]] = []
		self.muted = False
		self.suspended = 0
		self.resumed = 0
		self.bpm_changes: typing.List[int] = []
		self.recordings_started = 0
		self.recordings_stopped = 0

	def play (self, step: soundwords.automaton.Step, delay: float) -> None:
		self.played.append((delay, step))

	def set_muted (self, muted: bool) -> None:
		self.muted = muted

	def set_bpm (self, bpm: int) -> None:
		self.bpm_changes.append(bpm)

	def suspend (self) -> None:
		self.suspended += 1

	def resume (self) -> None:
		self.resumed += 1

	async def start_recording (self) -> None:
		self.recordings_started += 1

	async def stop_recording (self) -> str:
		self.recordings_stopped += 1
		return "captured"

	def sounds (self) -> typing.List[typing.Optional[str]]:
		return [step.sound for _, step in self.played]


@pytest.fixture
def fake_resolver () -> FakeResolver:
	return FakeResolver()


@pytest.fixture
def fake_sink () -> FakeSink:
	return FakeSink()


@pytest.fixture
def symbols () -> soundwords.symbols.SymbolTable:

	"""A symbol table without a resolver (sounds are tracked but never resolved)."""

	return soundwords.symbols.SymbolTable(resolver=None, debounce=0.0)


@pytest.fixture
def memory () -> soundwords.memory.Memory:
	return soundwords.memory.Memory()
