import logging
import typing

import soundwords.constants
import soundwords.event_emitter


logger = logging.getLogger(__name__)

PLAYING = "playing"
PAUSED = "paused"
RECORDING = "recording"
MUTED = "muted"
BPM = "bpm"


class Transport:

	"""
	Push-based playback controls.

	Each setter updates one value and announces it on ``self.events`` under
	the value's name (``playing``, ``paused``, ``recording``, ``muted``,
	``bpm``), fire-and-forget.  Setting a value to what it already is still
	announces it; listeners decide whether that matters.
	"""

	def __init__ (self, bpm: int = soundwords.constants.DEFAULT_BPM) -> None:

		if bpm <= 0:
			raise ValueError("BPM must be positive")

		self.playing = False
		self.paused = False
		self.recording = False
		self.muted = False
		self.bpm = bpm
		self.events = soundwords.event_emitter.EventEmitter()


	def set_playing (self, playing: bool) -> None:
		self._publish(PLAYING, bool(playing))

	def set_paused (self, paused: bool) -> None:
		self._publish(PAUSED, bool(paused))

	def set_recording (self, recording: bool) -> None:
		self._publish(RECORDING, bool(recording))

	def set_muted (self, muted: bool) -> None:
		self._publish(MUTED, bool(muted))


	def set_bpm (self, bpm: int) -> None:

		"""Change the tempo; values below 1 raise ``ValueError``."""

		bpm = int(bpm)

		if bpm <= 0:
			raise ValueError("BPM must be positive")

		self._publish(BPM, bpm)


	def state (self) -> typing.Dict[str, typing.Any]:

		return {name: getattr(self, name) for name in (PLAYING, PAUSED, RECORDING, MUTED, BPM)}


	def _publish (self, name: str, value: typing.Any) -> None:

		setattr(self, name, value)
		logger.debug(f"Transport {name} -> {value}")
		self.events.emit_nowait(name, value)
