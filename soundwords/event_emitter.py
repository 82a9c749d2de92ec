import asyncio
import logging
import typing


logger = logging.getLogger(__name__)

CallbackType = typing.Callable[..., typing.Any]


class EventEmitter:

	"""
	Named-event registry shared by the interpreter, memory, symbol table and transport.

	Listeners may be plain functions or coroutine functions.  Three ways to emit:

	- ``emit_sync`` - call plain listeners now; coroutine listeners are an error.
	- ``emit_async`` - call plain listeners and await coroutine listeners.
	- ``emit_nowait`` - fire-and-forget: call plain listeners now and hand
	  coroutine listeners to the running loop as tasks.  Used for observer
	  notifications (symbol status, diagnostics) that must never hold up the caller.
	"""

	def __init__ (self) -> None:

		"""
		Initialize an empty event registry.
		"""

		self._listeners: typing.Dict[str, typing.List[CallbackType]] = {}
		self._background: typing.Set[asyncio.Task] = set()


	def on (self, event_name: str, callback: CallbackType) -> None:

		"""
		Register a callback for an event name.
		"""

		self._listeners.setdefault(event_name, []).append(callback)


	def off (self, event_name: str, callback: CallbackType) -> None:

		"""
		Unregister a previously registered callback.

		Raises ``ValueError`` if the callback is not registered for the event.
		"""

		if event_name not in self._listeners or callback not in self._listeners[event_name]:
			raise ValueError(f"Callback not registered for event {event_name!r}")

		self._listeners[event_name].remove(callback)


	def listeners (self, event_name: str) -> typing.List[CallbackType]:

		"""
		Return a copy of the callbacks registered for an event.
		"""

		return list(self._listeners.get(event_name, []))


	def emit_sync (self, event_name: str, *args: typing.Any, **kwargs: typing.Any) -> None:

		"""
		Emit an event and call non-async listeners immediately.
		"""

		# Iterate over a copy so a listener may unregister itself.
		for callback in self.listeners(event_name):

			if asyncio.iscoroutinefunction(callback):
				raise ValueError(f"Async callback encountered in emit_sync for {event_name!r}")

			callback(*args, **kwargs)


	async def emit_async (self, event_name: str, *args: typing.Any, **kwargs: typing.Any) -> None:

		"""
		Emit an event and await async listeners.
		"""

		tasks: typing.List[typing.Awaitable[typing.Any]] = []

		for callback in self.listeners(event_name):

			if asyncio.iscoroutinefunction(callback):
				tasks.append(callback(*args, **kwargs))

			else:
				callback(*args, **kwargs)

		if tasks:
			await asyncio.gather(*tasks)


	def emit_nowait (self, event_name: str, *args: typing.Any, **kwargs: typing.Any) -> None:

		"""
		Emit an event without waiting for coroutine listeners.

		Plain listeners run immediately.  Coroutine listeners are scheduled on
		the running loop; with no running loop they are skipped with a debug
		log, since there is nothing that could ever run them.
		"""

		for callback in self.listeners(event_name):

			if not asyncio.iscoroutinefunction(callback):
				callback(*args, **kwargs)
				continue

			try:
				loop = asyncio.get_running_loop()
			except RuntimeError:
				logger.debug(f"No running loop - skipped async listener for {event_name!r}")
				continue

			task = loop.create_task(callback(*args, **kwargs))

			# Hold a reference until the task finishes so it is not garbage collected mid-flight.
			self._background.add(task)
			task.add_done_callback(self._background.discard)
