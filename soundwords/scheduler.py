"""Tempo-synchronised playback of every live variable.

The scheduler wakes on a fixed wall-clock interval (``TICK_INTERVAL_MS``)
that does not depend on tempo.  On every wake-up it sweeps all threads once:
each thread emits the steps whose start falls inside the next interval's
worth of beats, with the delay from now at which each should sound, and the
sink plays them.  Tempo changes and thread additions that arrive during a
sweep wait until it is over, so a sweep never sees two tempos or a half-built
thread set.
"""

import asyncio
import dataclasses
import fractions
import logging
import time
import typing

import soundwords.automaton
import soundwords.constants
import soundwords.event_emitter
import soundwords.memory
import soundwords.symbols
import soundwords.transport


logger = logging.getLogger(__name__)


class Sink (typing.Protocol):

	"""
	What the scheduler needs from an audio output.
	"""

	def play (self, step: soundwords.automaton.Step, delay: float) -> None:
		...

	def set_muted (self, muted: bool) -> None:
		...

	def set_bpm (self, bpm: int) -> None:
		...

	def suspend (self) -> None:
		...

	def resume (self) -> None:
		...

	async def start_recording (self) -> None:
		...

	async def stop_recording (self) -> typing.Any:
		...


class Thread:

	"""
	Playback cursor for one variable.

	The cursor is kept in exact beats: ``window_end`` is how far the thread
	has been asked to look ahead, ``next_beat`` where its next step starts.
	"""

	def __init__ (self, name: str, root: soundwords.automaton.Node, symbols: soundwords.symbols.SymbolTable) -> None:

		self.name = name
		self.root = root
		self.symbols = symbols

		self.next_beat = fractions.Fraction(0)
		self.window_end = fractions.Fraction(0)
		self.cycles = 0


	def reset (self) -> None:

		"""Return to the first step without rebuilding the automaton."""

		self.root.reset()
		self.next_beat = fractions.Fraction(0)
		self.window_end = fractions.Fraction(0)
		self.cycles = 0


	def run (self, bpm: int, interval_ms: int) -> typing.List[typing.Tuple[float, soundwords.automaton.Step]]:

		"""
		Emit the steps that start within the next tick.

		Returns ``(delay_seconds, step)`` pairs, the delay measured from the
		start of this tick.
		"""

		beats_per_tick = fractions.Fraction(interval_ms * bpm, soundwords.constants.MS_PER_MINUTE)
		window_start = self.window_end
		self.window_end += beats_per_tick

		emitted: typing.List[typing.Tuple[float, soundwords.automaton.Step]] = []

		while self.next_beat < self.window_end:

			step = self.resolve(self.root.next())
			delay = float((self.next_beat - window_start) * 60 / bpm)
			emitted.append((delay, step))

			self.next_beat += step.duration

			if self.root.advance():
				self.cycles += 1

		return emitted


	def resolve (self, step: soundwords.automaton.Step) -> soundwords.automaton.Step:

		"""Attach the sound's sample if it is available; otherwise the step stays silent."""

		if step.rest:
			return step

		record = self.symbols.get(step.sound)  # type: ignore[arg-type]

		if record is None or not record.available:
			return step

		return dataclasses.replace(step, sample=record.value)


class Scheduler:

	"""
	Owns one ``Thread`` per playable variable and drives them from one timer.

	Threads follow memory: defining a sequence variable binds a new thread
	(replacing any old one wholesale) and deleting it kills the thread.
	"""

	def __init__ (
		self,
		memory: soundwords.memory.Memory,
		symbols: soundwords.symbols.SymbolTable,
		sink: Sink,
		bpm: int = soundwords.constants.DEFAULT_BPM,
		interval_ms: int = soundwords.constants.TICK_INTERVAL_MS
	) -> None:

		"""
		Parameters:
			memory: Variable store whose ``set`` / ``delete`` events bind and kill threads.
			symbols: Source of resolved samples for emitted steps.
			sink: Audio output.
			bpm: Starting tempo in beats per minute.
			interval_ms: Wall-clock length of one tick.
		"""

		if sink is None:
			raise ValueError("Scheduler requires a sink")

		if bpm <= 0:
			raise ValueError("BPM must be positive")

		if interval_ms <= 0:
			raise ValueError("Tick interval must be positive")

		self.memory = memory
		self.symbols = symbols
		self.sink = sink
		self.interval_ms = int(interval_ms)

		self.bpm = int(bpm)
		self.next_bpm = self.bpm

		self.threads: typing.Dict[str, Thread] = {}
		self._pending: typing.Dict[str, typing.Optional[Thread]] = {}
		self._sweeping = False

		self.task: typing.Optional[asyncio.Task] = None
		self.tick_count = 0
		self.recording = False
		self.muted = False
		self.playing = False
		self.paused = False

		self.events = soundwords.event_emitter.EventEmitter()

		memory.events.on("set", self._on_set)
		memory.events.on("delete", self._on_delete)

		for name in memory.names():
			binding = memory.get(name)
			if binding is not None:
				self._on_set(binding)


	@property
	def running (self) -> bool:
		return self.task is not None and not self.task.done()


	# Threads

	def bind (self, name: str, root: soundwords.automaton.Node) -> Thread:

		"""Create (or replace) the thread for a variable."""

		thread = Thread(name, root, self.symbols)

		if self._sweeping:
			self._pending[name] = thread

		else:
			self.threads[name] = thread

		logger.info(f"Thread bound: {name}")

		return thread


	def kill (self, name: str) -> None:

		if self._sweeping:
			self._pending[name] = None

		else:
			self.threads.pop(name, None)
			self._pending.pop(name, None)

		logger.info(f"Thread killed: {name}")


	def _on_set (self, binding: soundwords.memory.Binding) -> None:

		if binding.playable:
			self.bind(binding.name, binding.value)

		elif binding.name in self.threads:
			self.kill(binding.name)


	def _on_delete (self, name: str, binding: soundwords.memory.Binding) -> None:

		if name in self.threads or name in self._pending:
			self.kill(name)


	# Tempo and ticks

	def set_bpm (self, bpm: int) -> None:

		"""
		Request a tempo change.

		While running (or in the middle of a sweep), the new tempo takes
		effect after the current sweep.
		"""

		bpm = int(bpm)

		if bpm <= 0:
			raise ValueError("BPM must be positive")

		self.next_bpm = bpm

		if not self.running and not self._sweeping:
			self._apply_bpm()


	def _apply_bpm (self) -> None:

		if self.next_bpm == self.bpm:
			return

		self.bpm = self.next_bpm
		self.sink.set_bpm(self.bpm)

		logger.info(f"BPM set to {self.bpm}")


	def tick (self) -> int:

		"""
		Sweep every thread once.  Returns the number of steps sent to the sink.
		"""

		sent = 0
		self._sweeping = True

		try:
			for thread in self.threads.values():

				for delay, step in thread.run(self.bpm, self.interval_ms):

					try:
						self.sink.play(step, delay)
						sent += 1
					except Exception:
						logger.exception(f"Sink failed to play {step.sound!r} for {thread.name}")

		finally:
			self._sweeping = False

		self._merge_pending()
		self._apply_bpm()
		self.tick_count += 1

		logger.debug(f"Tick {self.tick_count}: {sent} steps")

		return sent


	def _merge_pending (self) -> None:

		for name, thread in self._pending.items():

			if thread is None:
				self.threads.pop(name, None)

			else:
				self.threads[name] = thread

		self._pending.clear()


	async def _run_loop (self) -> None:

		"""Fire ``tick`` on the wall-clock interval, catching up if the loop fell behind."""

		interval = self.interval_ms / 1000.0
		next_tick_time = time.perf_counter()

		while True:

			while time.perf_counter() >= next_tick_time:
				self.tick()
				next_tick_time += interval

			await asyncio.sleep(max(0.0, next_tick_time - time.perf_counter()))


	# Lifecycle

	async def start (self) -> bool:

		"""
		Start the timer.  Returns False (and changes nothing) if it is already running.
		"""

		if self.running:
			return False

		self.sink.resume()
		self.task = asyncio.create_task(self._run_loop())

		logger.info("Scheduler started")

		await self.events.emit_async("start")

		return True


	async def _cancel_timer (self) -> None:

		if self.task is None:
			return

		task = self.task
		self.task = None
		task.cancel()

		try:
			await task
		except asyncio.CancelledError:
			pass


	async def stop (self) -> None:

		"""Stop the timer, rewind every thread and silence the sink."""

		await self._cancel_timer()
		self._merge_pending()
		self._apply_bpm()

		for thread in self.threads.values():
			thread.reset()

		self.sink.suspend()

		logger.info("Scheduler stopped")

		await self.events.emit_async("stop")


	async def pause (self) -> None:

		"""Stop the timer and silence the sink, keeping every thread where it is."""

		await self._cancel_timer()
		self.sink.suspend()

		logger.info("Scheduler paused")

		await self.events.emit_async("pause")


	def mute (self, muted: bool) -> None:

		self.muted = bool(muted)
		self.sink.set_muted(self.muted)


	async def start_recording (self) -> None:

		if self.recording:
			return

		await self.sink.start_recording()
		self.recording = True

		logger.info("Recording started")


	async def stop_recording (self) -> typing.Any:

		"""Close the capture channel and return what the sink captured (None if not recording)."""

		if not self.recording:
			return None

		captured = await self.sink.stop_recording()
		self.recording = False

		logger.info("Recording stopped")

		await self.events.emit_async("recorded", captured)

		return captured


	# Transport

	def attach (self, transport: soundwords.transport.Transport) -> None:

		"""Follow a transport's play / pause / record / mute / bpm signals."""

		transport.events.on(soundwords.transport.PLAYING, self._on_playing)
		transport.events.on(soundwords.transport.PAUSED, self._on_paused)
		transport.events.on(soundwords.transport.RECORDING, self._on_recording)
		transport.events.on(soundwords.transport.MUTED, self.mute)
		transport.events.on(soundwords.transport.BPM, self.set_bpm)


	async def _on_playing (self, playing: bool) -> None:

		self.playing = playing

		if playing:
			await self.start()
			return

		await self.stop_recording()
		await self.stop()


	async def _on_paused (self, paused: bool) -> None:

		self.paused = paused

		if not paused and self.playing:
			await self.start()
			return

		await self.stop_recording()
		await self.pause()


	async def _on_recording (self, recording: bool) -> None:

		if recording and not self.playing:
			self.playing = True
			await self.start()

		if recording:
			await self.start_recording()
			return

		await self.stop_recording()
