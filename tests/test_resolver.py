import io
import pathlib
import random

import numpy
import pytest
import soundfile

import soundwords.resolver


def _write_wav (path: pathlib.Path, seconds: float, samplerate: int = 8000) -> None:

	soundfile.write(str(path), numpy.zeros(int(seconds * samplerate), dtype="float32"), samplerate)


@pytest.fixture
def samples (tmp_path: pathlib.Path) -> pathlib.Path:

	_write_wav(tmp_path / "Kick_Deep.wav", 0.5)
	_write_wav(tmp_path / "kick_short.wav", 0.1)
	_write_wav(tmp_path / "dog_bark.wav", 1.0)
	(tmp_path / "kick_notes.txt").write_text("not audio")

	return tmp_path


def test_duration_filter () -> None:

	assert soundwords.resolver._duration_filter({}) is None
	assert soundwords.resolver._duration_filter({"min": 0.5}) == "duration:[0.5 TO *]"
	assert soundwords.resolver._duration_filter({"min": 1.0, "max": 2.0}) == "duration:[1 TO 2]"


def test_missing_directory_rejected (tmp_path: pathlib.Path) -> None:

	with pytest.raises(ValueError):
		soundwords.resolver.DirectoryResolver(tmp_path / "missing")


@pytest.mark.asyncio
async def test_directory_search_and_fetch (samples: pathlib.Path) -> None:

	resolver = soundwords.resolver.DirectoryResolver(samples, rng=random.Random(0))

	candidate = await resolver.search("dog bark", {})

	assert candidate.name == "dog_bark"

	sample = await resolver.fetch(candidate)

	assert sample.samplerate == 8000
	assert sample.duration == pytest.approx(1.0)


@pytest.mark.asyncio
async def test_directory_duration_bounds (samples: pathlib.Path) -> None:

	resolver = soundwords.resolver.DirectoryResolver(samples)

	assert resolver._matches("kick", {}) == [samples / "Kick_Deep.wav", samples / "kick_short.wav"]
	assert (await resolver.search("kick", {"max": 0.2})).name == "kick_short"
	assert (await resolver.search("kick", {"min": 0.2})).name == "Kick_Deep"
	assert await resolver.search("kick", {"min": 5.0}) is None
	assert await resolver.search("theremin", {}) is None


@pytest.mark.asyncio
async def test_directory_tag_narrows (samples: pathlib.Path) -> None:

	resolver = soundwords.resolver.DirectoryResolver(samples)

	assert (await resolver.search("kick", {"tag": "deep"})).name == "Kick_Deep"


class _Response:

	def __init__ (self, body: dict = None, content: bytes = b"") -> None:

		self._body = body or {}
		self.content = content

	def raise_for_status (self) -> None:
		pass

	def json (self) -> dict:
		return self._body


@pytest.mark.asyncio
async def test_freesound_search_and_fetch (monkeypatch: pytest.MonkeyPatch) -> None:

	buffer = io.BytesIO()
	soundfile.write(buffer, numpy.zeros(4410, dtype="float32"), 44100, format="WAV")

	requests_made = []

	def fake_get (url, params=None, headers=None, timeout=None):

		requests_made.append((url, params, headers))

		if url == soundwords.resolver.FREESOUND_SEARCH_URL:
			return _Response({"results": [{"name": "kick 01", "previews": {"preview-hq-ogg": "https://cdn/kick.ogg"}}]})

		return _Response(content=buffer.getvalue())

	monkeypatch.setattr(soundwords.resolver.requests, "get", fake_get)

	resolver = soundwords.resolver.FreesoundResolver(token="abc")
	candidate = await resolver.search("kick", {"max": 2.0, "tag": "808"})

	assert candidate == soundwords.resolver.Candidate(name="kick 01", location="https://cdn/kick.ogg")

	url, params, headers = requests_made[0]

	assert params["query"] == "kick 808"
	assert params["filter"] == "duration:[* TO 2]"
	assert headers == {"Authorization": "Token abc"}

	sample = await resolver.fetch(candidate)

	assert sample.samplerate == 44100
	assert sample.duration == pytest.approx(0.1)


@pytest.mark.asyncio
async def test_freesound_no_results (monkeypatch: pytest.MonkeyPatch) -> None:

	monkeypatch.setattr(soundwords.resolver.requests, "get", lambda *args, **kwargs: _Response({"results": []}))

	resolver = soundwords.resolver.FreesoundResolver(token="abc")

	assert await resolver.search("nothing", {}) is None
