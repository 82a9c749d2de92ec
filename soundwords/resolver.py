"""Sound resolution collaborators.

A resolver turns a sound literal (``kick``, ``"dog bark"``, ``kick(max: 2)``)
into a decoded sample.  Resolution happens in two awaited phases so the
symbol table can report progress between them:

1. ``search(text, parameters)`` - find a candidate, or ``None`` when nothing matches.
2. ``fetch(candidate)`` - download and decode the candidate into a ``Sample``.

Two implementations ship with the package: ``FreesoundResolver`` searches the
freesound.org text API, and ``DirectoryResolver`` searches a local folder of
sample files.  Both decode audio with ``soundfile``.
"""

import asyncio
import dataclasses
import io
import logging
import os
import pathlib
import random
import typing

import numpy
import requests
import soundfile


logger = logging.getLogger(__name__)

FREESOUND_SEARCH_URL = "https://freesound.org/apiv2/search/text/"
FREESOUND_PAGE_SIZE = 150
AUDIO_SUFFIXES = (".wav", ".flac", ".ogg", ".aiff", ".aif")


@dataclasses.dataclass
class Sample:

	"""
	A decoded, playable sample.
	"""

	name: str
	data: numpy.ndarray
	samplerate: int

	@property
	def duration (self) -> float:
		return len(self.data) / float(self.samplerate) if self.samplerate else 0.0


@dataclasses.dataclass
class Candidate:

	"""
	A search hit that has not been downloaded yet.
	"""

	name: str
	location: str


@typing.runtime_checkable
class Resolver (typing.Protocol):

	"""
	Protocol for objects that can resolve sound literals into samples.
	"""

	async def search (self, text: str, parameters: typing.Dict[str, typing.Any]) -> typing.Optional[Candidate]:
		...

	async def fetch (self, candidate: Candidate) -> Sample:
		...


def _decode (name: str, payload: typing.Union[bytes, str, pathlib.Path]) -> Sample:

	"""Decode audio bytes or a file path into a float32 sample."""

	source: typing.Any = io.BytesIO(payload) if isinstance(payload, bytes) else str(payload)
	data, samplerate = soundfile.read(source, dtype="float32")

	return Sample(name=name, data=data, samplerate=int(samplerate))


def _duration_filter (parameters: typing.Dict[str, typing.Any]) -> typing.Optional[str]:

	"""Build a freesound duration filter from ``min`` / ``max`` query parameters."""

	low = parameters.get("min")
	high = parameters.get("max")

	if low is None and high is None:
		return None

	low_text = "*" if low is None else f"{float(low):g}"
	high_text = "*" if high is None else f"{float(high):g}"

	return f"duration:[{low_text} TO {high_text}]"


class FreesoundResolver:

	"""
	Resolve sounds by text search against freesound.org.

	A random hit among the results is chosen so repeated words do not always
	sound the same across sessions.  Blocking HTTP calls run in a worker
	thread (``asyncio.to_thread``) and never stall the scheduling loop.
	"""

	def __init__ (
		self,
		token: typing.Optional[str] = None,
		rng: typing.Optional[random.Random] = None,
		timeout: float = 10.0
	) -> None:

		token = token or os.environ.get("FREESOUND_API_TOKEN")

		if not token:
			raise ValueError("FreesoundResolver requires an API token (config or FREESOUND_API_TOKEN)")

		self._token = token
		self._rng = rng or random.Random()
		self._timeout = timeout


	async def search (self, text: str, parameters: typing.Dict[str, typing.Any]) -> typing.Optional[Candidate]:

		"""Return a random preview among the search results, or None."""

		query = " ".join([text, str(parameters["tag"])]) if parameters.get("tag") else text

		params: typing.Dict[str, typing.Any] = {
			"query": query,
			"fields": "name,previews",
			"page_size": FREESOUND_PAGE_SIZE,
		}

		duration = _duration_filter(parameters)

		if duration:
			params["filter"] = duration

		body = await asyncio.to_thread(self._get_json, FREESOUND_SEARCH_URL, params)
		results = body.get("results") or []

		if not results:
			return None

		result = self._rng.choice(results)

		return Candidate(name=result["name"], location=result["previews"]["preview-hq-ogg"])


	async def fetch (self, candidate: Candidate) -> Sample:

		"""Download the preview and decode it."""

		payload = await asyncio.to_thread(self._get_bytes, candidate.location)

		return _decode(candidate.name, payload)


	def _get_json (self, url: str, params: typing.Dict[str, typing.Any]) -> typing.Dict[str, typing.Any]:

		response = requests.get(
			url,
			params = params,
			headers = {"Authorization": f"Token {self._token}"},
			timeout = self._timeout
		)
		response.raise_for_status()

		return response.json()


	def _get_bytes (self, url: str) -> bytes:

		response = requests.get(url, timeout=self._timeout)
		response.raise_for_status()

		return response.content


class DirectoryResolver:

	"""
	Resolve sounds from a local folder of audio files.

	A sound matches every file whose name contains the literal text (spaces
	and underscores are interchangeable, case is ignored).  ``tag`` narrows
	the match further; ``min`` / ``max`` bound the file duration in seconds.
	"""

	def __init__ (self, path: typing.Union[str, pathlib.Path], rng: typing.Optional[random.Random] = None) -> None:

		self.path = pathlib.Path(path)

		if not self.path.is_dir():
			raise ValueError(f"Sample directory not found: {self.path}")

		self._rng = rng or random.Random()


	async def search (self, text: str, parameters: typing.Dict[str, typing.Any]) -> typing.Optional[Candidate]:

		matches = await asyncio.to_thread(self._matches, text, parameters)

		if not matches:
			return None

		chosen = self._rng.choice(matches)

		return Candidate(name=chosen.stem, location=str(chosen))


	async def fetch (self, candidate: Candidate) -> Sample:

		return await asyncio.to_thread(_decode, candidate.name, pathlib.Path(candidate.location))


	def _matches (self, text: str, parameters: typing.Dict[str, typing.Any]) -> typing.List[pathlib.Path]:

		"""List files matching the text, tag and duration bounds, sorted by name."""

		words = [_normalise(text)]

		if parameters.get("tag"):
			words.append(_normalise(str(parameters["tag"])))

		low = parameters.get("min")
		high = parameters.get("max")
		matches: typing.List[pathlib.Path] = []

		for path in sorted(self.path.rglob("*")):

			if path.suffix.lower() not in AUDIO_SUFFIXES:
				continue

			name = _normalise(path.stem)

			if not all(word in name for word in words):
				continue

			if low is not None or high is not None:
				duration = soundfile.info(str(path)).duration
				if low is not None and duration < float(low):
					continue
				if high is not None and duration > float(high):
					continue

			matches.append(path)

		return matches


def _normalise (text: str) -> str:

	return text.lower().replace(" ", "_")
