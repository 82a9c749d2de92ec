import json
import logging
import typing

import websockets
import websockets.asyncio.server
import websockets.exceptions

import soundwords.tokens


logger = logging.getLogger(__name__)


class WebUI:

	"""
	Pushes symbol status and block diagnostics to browser clients over WebSockets.

	Messages are JSON objects:

	- ``{"type": "status", "identifier": ..., "status": ...}``
	- ``{"type": "diagnostics", "block": ..., "tokens": [...], "errors": [...]}``
	- ``{"type": "transport", ...}`` with the transport state

	New clients first receive the latest message of each kind, so a page
	opened mid-session shows the current state.  Sending never blocks the
	caller: ``websockets.broadcast`` queues the message on every connection.
	"""

	def __init__ (self, port: int = 8765, host: str = "0.0.0.0") -> None:

		self.port = port
		self.host = host
		self._server: typing.Optional[websockets.asyncio.server.Server] = None
		self._clients: typing.Set[websockets.asyncio.server.ServerConnection] = set()
		self._snapshot: typing.Dict[str, str] = {}


	async def start (self) -> None:

		try:
			self._server = await websockets.asyncio.server.serve(self._handle_client, self.host, self.port)
		except OSError as e:
			logger.error(f"WebSocket server error: {e}")
			return

		logger.info(f"Web UI websocket listening on {self.host}:{self.bound_port}")


	@property
	def bound_port (self) -> typing.Optional[int]:

		if self._server is None:
			return None

		for sock in self._server.sockets:
			return sock.getsockname()[1]

		return None


	async def stop (self) -> None:

		if self._server is not None:
			self._server.close()
			await self._server.wait_closed()
			self._server = None


	async def _handle_client (self, websocket: websockets.asyncio.server.ServerConnection) -> None:

		self._clients.add(websocket)

		try:
			for message in list(self._snapshot.values()):
				await websocket.send(message)

			# Incoming messages are ignored; iterate to notice the close.
			async for _message in websocket:
				pass

		except websockets.exceptions.ConnectionClosed:
			pass

		finally:
			self._clients.discard(websocket)


	def publish (self, key: str, payload: typing.Dict[str, typing.Any]) -> None:

		"""Remember ``payload`` as the latest for ``key`` and send it to every client."""

		message = json.dumps(payload)
		self._snapshot[key] = message

		if self._clients:
			websockets.broadcast(self._clients, message)


	def send_status (self, identifier: str, status: str) -> None:

		self.publish(f"status:{identifier}", {"type": "status", "identifier": identifier, "status": status})


	def send_diagnostics (self, block: str, result: soundwords.tokens.AnalysisResult) -> None:

		payload: typing.Dict[str, typing.Any] = {"type": "diagnostics", "block": block}
		payload.update(result.to_dict())

		self.publish(f"diagnostics:{block}", payload)


	def forget_block (self, block: str) -> None:

		self._snapshot.pop(f"diagnostics:{block}", None)
		self.publish(f"removed:{block}", {"type": "removed", "block": block})


	def send_transport (self, state: typing.Dict[str, typing.Any]) -> None:

		payload: typing.Dict[str, typing.Any] = {"type": "transport"}
		payload.update(state)

		self.publish("transport", payload)
