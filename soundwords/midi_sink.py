"""MIDI output for scheduled steps.

Every audible step becomes a ``note_on`` at its delay and a ``note_off``
when its duration has passed.  The note comes from a configured
sound-to-note map, or from a stable hash of the sound id into the General
MIDI percussion range, so a given word always triggers the same drum.
"""

import asyncio
import datetime
import logging
import time
import typing
import zlib

import mido

import soundwords.automaton
import soundwords.constants
import soundwords.midi_utils


logger = logging.getLogger(__name__)

TICKS_PER_BEAT = 480


def note_for (sound: str, notes: typing.Optional[typing.Dict[str, int]] = None) -> int:

	"""
	Pick the MIDI note for a sound id.

	Looks up the full id first (``kick__max-2.0``), then the literal it was
	written as (``kick``), then hashes the id into 35-81.
	"""

	notes = notes or {}

	if sound in notes:
		return int(notes[sound])

	base = sound.split("__", 1)[0]

	if base in notes:
		return int(notes[base])

	span = soundwords.constants.GM_PERCUSSION_HIGH - soundwords.constants.GM_PERCUSSION_LOW + 1

	return soundwords.constants.GM_PERCUSSION_LOW + zlib.crc32(sound.encode("utf-8")) % span


def velocity_for (step: soundwords.automaton.Step) -> int:

	"""Scale the default velocity by the step's ``volume`` effect, clamped to 1-127."""

	effect = step.effect("volume")
	level = float(effect.parameters.get("level", 1.0)) if effect else 1.0

	return max(1, min(127, round(soundwords.constants.DEFAULT_VELOCITY * level)))


class MidiSink:

	"""
	Renders steps as MIDI notes on one channel.

	Steps whose sound has no sample yet are skipped unless
	``play_unresolved`` is set, in which case the note plays anyway (useful
	when the MIDI device, not the sample, makes the sound).
	"""

	def __init__ (
		self,
		output_device_name: typing.Optional[str] = None,
		channel: int = soundwords.constants.DEFAULT_MIDI_CHANNEL,
		notes: typing.Optional[typing.Dict[str, int]] = None,
		play_unresolved: bool = False,
		bpm: int = soundwords.constants.DEFAULT_BPM,
		midi_out: typing.Any = None
	) -> None:

		"""
		Parameters:
			output_device_name: MIDI output to open.  When omitted, auto-discovers
				the device the same way as ``midi_utils.select_output_device``.
			channel: MIDI channel, 0-15 (9 is the General MIDI drum channel).
			notes: Map of sound literal (or full sound id) to MIDI note.
			play_unresolved: Play steps whose sample has not arrived yet.
			bpm: Tempo used to place recorded messages on the MIDI-file grid.
			midi_out: An already opened output port; skips device discovery.
		"""

		if not 0 <= channel <= 15:
			raise ValueError("MIDI channel must be between 0 and 15")

		self.channel = channel
		self.notes = dict(notes or {})
		self.play_unresolved = play_unresolved
		self.bpm = bpm

		self.muted = False
		self.suspended = False
		self.active_notes: typing.Set[int] = set()
		self._handles: typing.Set[asyncio.TimerHandle] = set()

		self.recording = False
		self.recorded_events: typing.List[typing.Tuple[float, typing.Union[mido.Message, mido.MetaMessage]]] = []
		self._record_start = 0.0

		if midi_out is not None:
			self.output_device_name = output_device_name
			self.midi_out = midi_out
		else:
			self.output_device_name, self.midi_out = soundwords.midi_utils.select_output_device(output_device_name)


	def play (self, step: soundwords.automaton.Step, delay: float) -> None:

		"""Schedule one step ``delay`` seconds from now."""

		if self.suspended or step.rest:
			return

		if step.silent and not self.play_unresolved:
			return

		note = note_for(step.sound, self.notes)  # type: ignore[arg-type]
		velocity = velocity_for(step)
		length = float(step.duration) * 60.0 / self.bpm

		loop = asyncio.get_running_loop()
		self._later(loop, delay, self._note_on, note, velocity)
		self._later(loop, delay + length, self._note_off, note)


	def _later (self, loop: asyncio.AbstractEventLoop, delay: float, callback: typing.Callable[..., None], *args: typing.Any) -> None:

		handle: asyncio.TimerHandle

		def fire () -> None:
			self._handles.discard(handle)
			callback(*args)

		handle = loop.call_later(max(0.0, delay), fire)
		self._handles.add(handle)


	def _note_on (self, note: int, velocity: int) -> None:

		if self.muted or self.suspended:
			return

		if note in self.active_notes:
			self._send(mido.Message("note_off", channel=self.channel, note=note, velocity=0))

		self.active_notes.add(note)
		self._send(mido.Message("note_on", channel=self.channel, note=note, velocity=velocity))


	def _note_off (self, note: int) -> None:

		if note not in self.active_notes:
			return

		self.active_notes.discard(note)
		self._send(mido.Message("note_off", channel=self.channel, note=note, velocity=0))


	def _send (self, message: mido.Message) -> None:

		if self.recording:
			self.recorded_events.append((time.perf_counter() - self._record_start, message.copy()))

		if self.midi_out is None:
			return

		try:
			self.midi_out.send(message)
		except Exception:
			logger.exception("MIDI send failed (device may be disconnected)")


	def set_muted (self, muted: bool) -> None:

		self.muted = bool(muted)

		if self.muted:
			self._all_notes_off()

		logger.info("Output muted" if self.muted else "Output unmuted")


	def set_bpm (self, bpm: int) -> None:

		self.bpm = bpm

		if self.recording:
			self.recorded_events.append((time.perf_counter() - self._record_start, mido.MetaMessage("set_tempo", tempo=mido.bpm2tempo(bpm))))


	def suspend (self) -> None:

		"""Drop everything scheduled and silence sounding notes."""

		self.suspended = True

		for handle in list(self._handles):
			handle.cancel()

		self._handles.clear()
		self._all_notes_off()


	def resume (self) -> None:

		self.suspended = False


	def _all_notes_off (self) -> None:

		for note in sorted(self.active_notes):
			self._send(mido.Message("note_off", channel=self.channel, note=note, velocity=0))

		self.active_notes.clear()


	async def start_recording (self) -> None:

		self.recorded_events = [(0.0, mido.MetaMessage("set_tempo", tempo=mido.bpm2tempo(self.bpm)))]
		self._record_start = time.perf_counter()
		self.recording = True


	async def stop_recording (self) -> mido.MidiFile:

		"""
		Stop capturing and return what was sent as a single-track MIDI file.
		"""

		self.recording = False

		midi_file = mido.MidiFile(type=0, ticks_per_beat=TICKS_PER_BEAT)
		track = mido.MidiTrack()
		midi_file.tracks.append(track)

		tempo = mido.bpm2tempo(self.bpm)
		last_seconds = 0.0

		for seconds, message in sorted(self.recorded_events, key=lambda event: event[0]):

			delta = max(0, round(mido.second2tick(seconds - last_seconds, TICKS_PER_BEAT, tempo)))
			track.append(message.copy(time=delta))
			last_seconds = seconds

			if message.type == "set_tempo":
				tempo = message.tempo

		logger.info(f"Captured {len(self.recorded_events)} MIDI events")

		self.recorded_events = []

		return midi_file


	def close (self) -> None:

		self.suspend()

		if self.midi_out is not None:
			self.midi_out.close()
			self.midi_out = None


def save_recording (midi_file: mido.MidiFile, filename: typing.Optional[str] = None) -> typing.Optional[str]:

	"""
	Write a captured recording to disk, by default as ``session_YYYYmmdd_HHMMSS.mid``.

	Returns the filename, or None if saving failed.
	"""

	if filename is None:
		filename = datetime.datetime.now().strftime("session_%Y%m%d_%H%M%S.mid")

	try:
		midi_file.save(filename)
	except Exception as exc:
		logger.error(f"Failed to save MIDI recording: {exc}")
		return None

	logger.info(f"Saved {filename}")

	return filename
