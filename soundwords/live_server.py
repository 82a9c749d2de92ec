"""TCP text-input server for a host editor.

Start the server with ``session.live()`` before ``session.play()``.  It
listens on a localhost TCP port (default 5555) and accepts block edits from
any source - the bundled client, an editor plugin, or a raw socket.

Protocol
────────
Messages are delimited by ``\\x04`` (ASCII EOT).  A request is the block key,
a newline, then the block's full text::

    drums\\nx = kick*4 | snare\\x04

Empty text removes the block.  The reply is the block's analysis as JSON
(``{"tokens": [...], "errors": [...]}``) followed by ``\\x04``; a malformed
request gets ``{"error": "..."}``.
"""

import asyncio
import json
import logging
import typing

import soundwords.interpreter


logger = logging.getLogger(__name__)

SENTINEL = b"\x04"


def parse_request (message: str) -> typing.Tuple[str, str]:

	"""
	Split a request into (block key, text).  Raises ``ValueError`` without a key.
	"""

	key, _, text = message.partition("\n")
	key = key.strip()

	if not key:
		raise ValueError("request must start with a block key line")

	return key, text


class LiveServer:

	"""Async TCP server that feeds block edits to an interpreter."""

	def __init__ (self, interpreter: soundwords.interpreter.Interpreter, port: int = 5555) -> None:

		self._interpreter = interpreter
		self._port = port
		self._server: typing.Optional[asyncio.AbstractServer] = None


	@property
	def port (self) -> typing.Optional[int]:

		"""The bound port (useful when started with port 0)."""

		if self._server is None or not self._server.sockets:
			return None

		return self._server.sockets[0].getsockname()[1]


	async def start (self) -> None:

		"""Start listening for connections on localhost."""

		self._server = await asyncio.start_server(
			self._handle_connection,
			host = "127.0.0.1",
			port = self._port
		)

		logger.info(f"Live server listening on 127.0.0.1:{self.port}")


	async def stop (self) -> None:

		"""Close the server and wait for it to shut down."""

		if self._server is not None:
			self._server.close()
			await self._server.wait_closed()
			self._server = None
			logger.info("Live server stopped")


	async def _handle_connection (self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:

		peer = writer.get_extra_info("peername")
		logger.info(f"Live client connected: {peer}")

		try:

			while True:

				data = await self._read_message(reader)

				if data is None:
					break

				response = self._respond(data)
				writer.write(response.encode("utf-8") + SENTINEL)
				await writer.drain()

		except ConnectionResetError:
			logger.info(f"Live client disconnected (reset): {peer}")

		except Exception as exc:
			logger.warning(f"Live connection error: {exc}")

		finally:
			writer.close()
			try:
				await writer.wait_closed()
			except (ConnectionResetError, BrokenPipeError):
				pass
			logger.info(f"Live client disconnected: {peer}")


	async def _read_message (self, reader: asyncio.StreamReader) -> typing.Optional[bytes]:

		"""Read bytes until the sentinel or EOF, returning them without the sentinel, or None."""

		try:
			data = await reader.readuntil(SENTINEL)
		except asyncio.IncompleteReadError:
			return None
		except ConnectionResetError:
			return None

		return data[:-len(SENTINEL)]


	def _respond (self, data: bytes) -> str:

		try:
			message = data.decode("utf-8")
		except UnicodeDecodeError as exc:
			logger.warning(f"Live message is not valid UTF-8: {exc}")
			return json.dumps({"error": "message is not valid UTF-8"})

		return self.handle(message)


	def handle (self, message: str) -> str:

		"""Apply one request and return the JSON reply."""

		try:
			key, text = parse_request(message)
		except ValueError as exc:
			logger.warning(f"Malformed live message: {exc}")
			return json.dumps({"error": str(exc)})

		if not text.strip():
			self._interpreter.remove_block(key)
			return json.dumps({"tokens": [], "errors": []})

		result = self._interpreter.update_block(key, text)

		return json.dumps(result.to_dict())
