"""OSC transport control and status broadcasting.

Start the OSC server by calling ``session.osc()`` before ``session.play()``.
The server listens on a UDP port (default 9000) for transport messages and
sends symbol status updates to a target host/port (default 127.0.0.1:9001).

Receive Handlers
────────────────
- ``/play <int>``: start (1) or stop (0) playback
- ``/pause <int>``: pause (1) or resume (0)
- ``/record <int>``: start (1) or stop (0) recording
- ``/mute <int>``: mute (1) or unmute (0) the output
- ``/bpm <int>``: set the tempo

Send Events
───────────
- ``/status/<identifier> <string>``: a sound changed resolution status
"""

import asyncio
import logging
import typing

import pythonosc.dispatcher
import pythonosc.osc_server
import pythonosc.udp_client

import soundwords.transport


logger = logging.getLogger(__name__)


class OscServer:

	"""Async OSC server/client driving a transport."""

	def __init__ (
		self,
		transport: soundwords.transport.Transport,
		receive_port: int = 9000,
		send_port: int = 9001,
		send_host: str = "127.0.0.1"
	) -> None:

		self._transport_state = transport
		self._receive_port = receive_port
		self._send_port = send_port
		self._send_host = send_host

		self._server: typing.Optional[typing.Any] = None
		self._transport: typing.Optional[asyncio.BaseTransport] = None
		self._client: typing.Optional[pythonosc.udp_client.SimpleUDPClient] = None
		self._dispatcher = pythonosc.dispatcher.Dispatcher()

		self._dispatcher.map("/play", self._switch(transport.set_playing))
		self._dispatcher.map("/pause", self._switch(transport.set_paused))
		self._dispatcher.map("/record", self._switch(transport.set_recording))
		self._dispatcher.map("/mute", self._switch(transport.set_muted))
		self._dispatcher.map("/bpm", self._handle_bpm)


	async def start (self) -> None:

		"""Start the OSC server and client."""

		self._client = pythonosc.udp_client.SimpleUDPClient(self._send_host, self._send_port)

		self._server = pythonosc.osc_server.AsyncIOOSCUDPServer(
			("0.0.0.0", self._receive_port),
			self._dispatcher,
			asyncio.get_running_loop()  # type: ignore[arg-type]
		)

		transport, _ = await self._server.create_serve_endpoint()
		self._transport = transport

		logger.info(f"OSC listening on :{self._receive_port}, sending to {self._send_host}:{self._send_port}")


	async def stop (self) -> None:

		if self._transport:
			self._transport.close()
			self._transport = None
			logger.info("OSC server stopped")


	def send (self, address: str, *args: typing.Any) -> None:

		"""Send an OSC message; failures are logged, never raised."""

		if self._client:
			try:
				self._client.send_message(address, args)
			except Exception as e:
				logger.warning(f"OSC send error: {e}")


	def send_status (self, identifier: str, status: str) -> None:

		self.send(f"/status/{identifier}", status)


	def map (self, address: str, handler: typing.Callable) -> None:

		"""Register a custom OSC handler."""

		self._dispatcher.map(address, handler)


	# Handlers

	def _switch (self, setter: typing.Callable[[bool], None]) -> typing.Callable[..., None]:

		"""Wrap a boolean transport setter as an OSC handler taking 0 / 1."""

		def handler (address: str, *args: typing.Any) -> None:

			if not args:
				logger.warning(f"OSC {address} needs a 0/1 argument")
				return

			try:
				setter(bool(int(args[0])))
			except (ValueError, TypeError):
				logger.warning(f"Invalid OSC argument for {address}: {args[0]}")

		return handler


	def _handle_bpm (self, address: str, *args: typing.Any) -> None:

		if not args:
			return

		try:
			self._transport_state.set_bpm(int(args[0]))
		except (ValueError, TypeError):
			logger.warning(f"Invalid OSC BPM argument: {args[0]}")
