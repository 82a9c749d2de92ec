import asyncio
import json

import pytest
import websockets.asyncio.client

import soundwords.analyzer
import soundwords.lexer
import soundwords.symbols
import soundwords.web_ui


async def _receive (connection: websockets.asyncio.client.ClientConnection) -> dict:

	return json.loads(await asyncio.wait_for(connection.recv(), timeout=2.0))


@pytest.mark.asyncio
async def test_new_client_receives_the_snapshot () -> None:

	"""Messages published before a client connects are replayed to it, latest per key."""

	ui = soundwords.web_ui.WebUI(port=0, host="127.0.0.1")
	await ui.start()

	ui.send_status("kick", "searching")
	ui.send_status("kick", "available")
	ui.send_transport({"playing": True, "bpm": 120})

	async with websockets.asyncio.client.connect(f"ws://127.0.0.1:{ui.bound_port}") as connection:

		first = await _receive(connection)
		second = await _receive(connection)

	assert first == {"type": "status", "identifier": "kick", "status": "available"}
	assert second == {"type": "transport", "playing": True, "bpm": 120}

	await ui.stop()


@pytest.mark.asyncio
async def test_connected_client_receives_diagnostics (symbols: soundwords.symbols.SymbolTable) -> None:

	ui = soundwords.web_ui.WebUI(port=0, host="127.0.0.1")
	await ui.start()

	result = soundwords.analyzer.SemanticAnalyzer(symbols).analyze(soundwords.lexer.tokenize("kick $", "a"), "a")

	async with websockets.asyncio.client.connect(f"ws://127.0.0.1:{ui.bound_port}") as connection:

		# Let the server register the connection before broadcasting.
		await asyncio.sleep(0.05)

		ui.send_diagnostics("a", result)
		message = await _receive(connection)

		ui.forget_block("a")
		removed = await _receive(connection)

	assert message["type"] == "diagnostics"
	assert message["block"] == "a"
	assert message["tokens"][0]["value"] == "kick"
	assert "unexpected character" in message["errors"][0]["reasons"][0]
	assert removed == {"type": "removed", "block": "a"}

	await ui.stop()


@pytest.mark.asyncio
async def test_publish_without_clients_only_updates_the_snapshot () -> None:

	ui = soundwords.web_ui.WebUI(port=0, host="127.0.0.1")

	ui.send_status("snare", "unavailable")

	assert ui.bound_port is None
	assert json.loads(ui._snapshot["status:snare"])["status"] == "unavailable"
