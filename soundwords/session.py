import asyncio
import logging
import random
import signal
import typing

import soundwords.constants
import soundwords.interpreter
import soundwords.live_server
import soundwords.memory
import soundwords.midi_sink
import soundwords.osc
import soundwords.resolver
import soundwords.scheduler
import soundwords.symbols
import soundwords.tokens
import soundwords.transport
import soundwords.web_ui


logger = logging.getLogger(__name__)


async def run_until_stopped (session: "Session") -> None:

	"""
	Play until a stop signal is received, then stop cleanly.
	"""

	logger.info("Playing. Press Ctrl+C to stop.")

	stop_event = asyncio.Event()
	loop = asyncio.get_running_loop()

	def _request_stop () -> None:
		stop_event.set()

	for sig in (signal.SIGINT, signal.SIGTERM):
		loop.add_signal_handler(sig, _request_stop)

	session.transport.set_playing(True)

	await stop_event.wait()

	await session.scheduler.stop_recording()
	await session.scheduler.stop()


class Session:

	"""
	The top-level controller for a live-coding session.

	A session owns the whole pipeline - symbol table, memory, interpreter,
	transport, scheduler and MIDI output - and the optional live, OSC and web
	collaborators around it.

	Typical workflow:
	1. Create a ``Session`` with a tempo and, optionally, a sound resolver.
	2. Add blocks of source text with ``block()``.
	3. Enable ``live()``, ``osc()`` or ``web_ui()`` to edit and watch while playing.
	4. Call ``play()``.

	Example:
		```python
		session = soundwords.Session(bpm=120, output_device="IAC Driver Bus 1")
		session.block("drums", "x = kick*4 | [hat hat] snare")
		session.live()
		session.play()
		```
	"""

	def __init__ (
		self,
		bpm: int = soundwords.constants.DEFAULT_BPM,
		output_device: typing.Optional[str] = None,
		resolver: typing.Optional[soundwords.resolver.Resolver] = None,
		seed: typing.Optional[int] = None,
		channel: int = soundwords.constants.DEFAULT_MIDI_CHANNEL,
		notes: typing.Optional[typing.Dict[str, int]] = None,
		play_unresolved: typing.Optional[bool] = None,
		interval_ms: int = soundwords.constants.TICK_INTERVAL_MS,
		debounce: float = soundwords.constants.RESOLUTION_DEBOUNCE_SECONDS,
		record_filename: typing.Optional[str] = None,
		midi_out: typing.Any = None
	) -> None:

		"""
		Parameters:
			bpm: Starting tempo.
			output_device: MIDI output port name; discovered (or prompted for) when omitted.
			resolver: Looks up sound literals.  Without one, sounds never get
				samples and the MIDI notes play regardless.
			seed: Makes every choice draw repeatable.
			channel: MIDI channel for all notes.
			notes: Sound literal to MIDI note map.
			play_unresolved: Play notes for sounds without samples.  Defaults
				to True when there is no resolver.
			interval_ms: Scheduler tick length.
			debounce: Seconds before a newly typed sound is looked up.
			record_filename: Where recordings are saved (timestamped by default).
			midi_out: An already opened MIDI port, used instead of ``output_device``.
		"""

		self.rng = random.Random(seed)
		self.record_filename = record_filename

		self.symbols = soundwords.symbols.SymbolTable(resolver=resolver, debounce=debounce)
		self.memory = soundwords.memory.Memory()
		self.interpreter = soundwords.interpreter.Interpreter(self.symbols, self.memory, rng=self.rng)
		self.transport = soundwords.transport.Transport(bpm=bpm)

		self.sink = soundwords.midi_sink.MidiSink(
			output_device_name = output_device,
			channel = channel,
			notes = notes,
			play_unresolved = resolver is None if play_unresolved is None else play_unresolved,
			bpm = bpm,
			midi_out = midi_out
		)

		self.scheduler = soundwords.scheduler.Scheduler(self.memory, self.symbols, self.sink, bpm=bpm, interval_ms=interval_ms)
		self.scheduler.attach(self.transport)
		self.scheduler.events.on("recorded", self._save_recording)

		self._pending_blocks: typing.Dict[str, str] = {}
		self._live_server: typing.Optional[soundwords.live_server.LiveServer] = None
		self._osc_server: typing.Optional[soundwords.osc.OscServer] = None
		self._web_ui: typing.Optional[soundwords.web_ui.WebUI] = None


	@property
	def bpm (self) -> int:
		return self.transport.bpm


	def block (self, key: str, text: str) -> typing.Optional[soundwords.tokens.AnalysisResult]:

		"""
		Set the text of a block.

		Inside a running session the block is interpreted at once and its
		analysis returned.  Before ``play()`` it is queued (returning None) and
		interpreted when the session starts, since sound resolution needs the
		event loop.
		"""

		try:
			asyncio.get_running_loop()
		except RuntimeError:
			self._pending_blocks[key] = text
			return None

		return self.interpreter.update_block(key, text)


	def remove (self, key: str) -> None:

		if self._pending_blocks.pop(key, None) is not None:
			return

		self.interpreter.remove_block(key)


	def set_bpm (self, bpm: int) -> None:

		"""Change the tempo (applied between ticks)."""

		self.transport.set_bpm(bpm)


	def mute (self, muted: bool = True) -> None:
		self.transport.set_muted(muted)


	def record (self, recording: bool = True) -> None:

		"""Start or stop capturing output; needs the running session."""

		self.transport.set_recording(recording)


	def live (self, port: int = 5555) -> None:

		"""
		Enable the live text-input server.

		Editors (or ``python -m soundwords.live_client``) send block edits and
		receive diagnostics back.
		"""

		self._live_server = soundwords.live_server.LiveServer(self.interpreter, port=port)


	def osc (self, receive_port: int = 9000, send_port: int = 9001, send_host: str = "127.0.0.1") -> None:

		"""Enable OSC transport control and sound status broadcasting."""

		self._osc_server = soundwords.osc.OscServer(
			self.transport,
			receive_port = receive_port,
			send_port = send_port,
			send_host = send_host
		)


	def web_ui (self, port: int = 8765) -> None:

		"""Enable the WebSocket status feed."""

		self._web_ui = soundwords.web_ui.WebUI(port=port)


	def state (self) -> typing.Dict[str, typing.Any]:

		"""Return a snapshot of transport, variables and sound statuses."""

		state = self.transport.state()
		state["variables"] = {name: self.memory.get(name).kind for name in self.memory.names()}  # type: ignore[union-attr]
		state["threads"] = sorted(self.scheduler.threads)
		state["sounds"] = {}

		for identifier in self.symbols.identifiers():
			record = self.symbols.get(identifier)
			if record is not None and record.kind == soundwords.symbols.SOUND:
				state["sounds"][identifier] = record.status

		return state


	def play (self) -> None:

		"""
		Start the session.  Blocks until interrupted (Ctrl+C or SIGTERM).
		"""

		try:
			asyncio.run(self._run())

		except KeyboardInterrupt:
			pass


	async def _run (self) -> None:

		if self._web_ui is not None:
			await self._web_ui.start()
			self.symbols.events.on("status", self._web_ui.send_status)
			self.interpreter.events.on("analyzed", self._web_ui.send_diagnostics)
			self.interpreter.events.on("removed", self._web_ui.forget_block)

			for name in (soundwords.transport.PLAYING, soundwords.transport.PAUSED, soundwords.transport.RECORDING, soundwords.transport.MUTED, soundwords.transport.BPM):
				self.transport.events.on(name, self._publish_transport)

		if self._osc_server is not None:
			await self._osc_server.start()
			self.symbols.events.on("status", self._osc_server.send_status)

		if self._live_server is not None:
			await self._live_server.start()

		pending, self._pending_blocks = self._pending_blocks, {}

		for key, text in pending.items():
			result = self.interpreter.update_block(key, text)
			for error in result.errors:
				logger.warning(f"Block {key!r} {error.start}-{error.end}: {'; '.join(error.reasons)}")

		await run_until_stopped(self)

		if self._live_server is not None:
			await self._live_server.stop()

		if self._osc_server is not None:
			await self._osc_server.stop()

		if self._web_ui is not None:
			await self._web_ui.stop()

		self.sink.close()


	def _publish_transport (self, _value: typing.Any) -> None:

		if self._web_ui is not None:
			self._web_ui.send_transport(self.transport.state())


	def _save_recording (self, captured: typing.Any) -> None:

		if captured is not None:
			soundwords.midi_sink.save_recording(captured, self.record_filename)
