"""Interactive client for a running soundwords live server.

Usage::

    python -m soundwords.live_client
    python -m soundwords.live_client --port 5555 --block main

Each line typed replaces the text of one block.  Prefix a line with
``@<key> `` to edit another block (``@drums x = kick*4``); a bare ``@<key>``
removes that block.  Errors come back with their column ranges.

Press Ctrl+C to cancel the current input.  Press Ctrl+D to quit.
"""

import argparse
import json
import socket
import sys
import typing


SENTINEL = b"\x04"


class LiveClient:

	"""TCP client that sends block edits to a running live server."""

	def __init__ (self) -> None:

		self._sock: typing.Optional[socket.socket] = None

	def connect (self, host: str = "127.0.0.1", port: int = 5555) -> None:

		self._sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
		self._sock.connect((host, port))

	def send (self, key: str, text: str) -> typing.Dict[str, typing.Any]:

		"""Replace a block's text and return the decoded reply."""

		if self._sock is None:
			raise ConnectionError("Not connected")

		self._sock.sendall(f"{key}\n{text}".encode("utf-8") + SENTINEL)

		chunks: typing.List[bytes] = []

		while True:
			chunk = self._sock.recv(4096)

			if not chunk:
				raise ConnectionError("Server closed connection")

			if SENTINEL in chunk:
				before, _, _ = chunk.partition(SENTINEL)
				chunks.append(before)
				break

			chunks.append(chunk)

		return json.loads(b"".join(chunks).decode("utf-8"))

	def close (self) -> None:

		if self._sock is not None:
			self._sock.close()
			self._sock = None


def split_line (line: str, default_key: str) -> typing.Tuple[str, str]:

	"""Return (block key, text) for one typed line."""

	if not line.startswith("@"):
		return default_key, line

	key, _, text = line[1:].partition(" ")

	return (key or default_key), text


def format_reply (reply: typing.Dict[str, typing.Any], text: str) -> str:

	"""Render a reply as a short human-readable report."""

	if "error" in reply:
		return f"! {reply['error']}"

	errors = reply.get("errors", [])

	if not errors:
		kinds = sorted({token["type"] for token in reply.get("tokens", [])})
		return f"ok ({len(reply.get('tokens', []))} tokens: {', '.join(kinds)})" if kinds else "ok"

	lines = []

	for error in errors:
		start = error["start"]
		end = start + error["length"]
		reasons = "; ".join(error["reasons"]) or "error"
		lines.append(f"{start}-{end} {text[start:end]!r}: {reasons}")

	return "\n".join(lines)


def main () -> None:

	parser = argparse.ArgumentParser(description="soundwords live coding client")
	parser.add_argument("--host", default="127.0.0.1", help="Server host (default: 127.0.0.1)")
	parser.add_argument("--port", type=int, default=5555, help="Server port (default: 5555)")
	parser.add_argument("--block", default="main", help="Block edited by lines without an @key prefix (default: main)")
	args = parser.parse_args()

	client = LiveClient()

	try:
		client.connect(args.host, args.port)
	except ConnectionRefusedError:
		print(f"Could not connect to {args.host}:{args.port}")
		print("Is the session running with session.live() enabled?")
		sys.exit(1)

	print(f"Connected to soundwords on {args.host}:{args.port} (block {args.block!r})\n")

	try:

		while True:

			try:
				line = input("~ ")
			except KeyboardInterrupt:
				print()
				continue

			key, text = split_line(line, args.block)

			try:
				reply = client.send(key, text)
			except ConnectionError:
				print("Connection lost.")
				break

			print(format_reply(reply, text))

	except EOFError:
		print()

	finally:
		client.close()


if __name__ == "__main__":
	main()
