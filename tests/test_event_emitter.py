import asyncio

import pytest

import soundwords.event_emitter


def test_on_and_emit_sync () -> None:

	"""Registered sync callbacks are called on emit_sync."""

	emitter = soundwords.event_emitter.EventEmitter()
	received: list[int] = []

	emitter.on("tick", lambda v: received.append(v))
	emitter.emit_sync("tick", 42)

	assert received == [42]


def test_off_removes_callback () -> None:

	"""off() prevents a previously registered callback from being called."""

	emitter = soundwords.event_emitter.EventEmitter()
	received: list[int] = []

	def cb (v: int) -> None:
		received.append(v)

	emitter.on("tick", cb)
	emitter.off("tick", cb)
	emitter.emit_sync("tick", 1)

	assert received == []


def test_off_only_removes_target_callback () -> None:

	"""off() leaves other callbacks for the same event intact."""

	emitter = soundwords.event_emitter.EventEmitter()
	a: list[int] = []
	b: list[int] = []

	def cb_a (v: int) -> None:
		a.append(v)

	def cb_b (v: int) -> None:
		b.append(v)

	emitter.on("tick", cb_a)
	emitter.on("tick", cb_b)
	emitter.off("tick", cb_a)
	emitter.emit_sync("tick", 7)

	assert a == []
	assert b == [7]


def test_off_raises_for_unregistered_callback () -> None:

	"""off() raises ValueError when the callback was never registered."""

	emitter = soundwords.event_emitter.EventEmitter()

	with pytest.raises(ValueError, match="tick"):
		emitter.off("tick", lambda: None)


def test_listener_may_unregister_itself () -> None:

	emitter = soundwords.event_emitter.EventEmitter()
	received: list[str] = []

	def once (v: str) -> None:
		received.append(v)
		emitter.off("set", once)

	emitter.on("set", once)
	emitter.emit_sync("set", "x")
	emitter.emit_sync("set", "y")

	assert received == ["x"]


def test_emit_sync_rejects_async_callback () -> None:

	emitter = soundwords.event_emitter.EventEmitter()

	async def cb () -> None:
		pass

	emitter.on("tick", cb)

	with pytest.raises(ValueError, match="Async callback"):
		emitter.emit_sync("tick")


@pytest.mark.asyncio
async def test_emit_async_awaits_coroutines () -> None:

	"""emit_async calls plain listeners and awaits coroutine listeners."""

	emitter = soundwords.event_emitter.EventEmitter()
	received: list[str] = []

	async def slow (v: str) -> None:
		await asyncio.sleep(0)
		received.append(f"async {v}")

	emitter.on("stop", slow)
	emitter.on("stop", lambda v: received.append(f"sync {v}"))

	await emitter.emit_async("stop", "now")

	assert sorted(received) == ["async now", "sync now"]


@pytest.mark.asyncio
async def test_emit_nowait_schedules_coroutines () -> None:

	"""emit_nowait returns before coroutine listeners run; they run on the loop afterwards."""

	emitter = soundwords.event_emitter.EventEmitter()
	received: list[str] = []

	async def cb (v: str) -> None:
		received.append(v)

	emitter.on("status", cb)
	emitter.emit_nowait("status", "available")

	assert received == []

	await asyncio.sleep(0)
	await asyncio.sleep(0)

	assert received == ["available"]


def test_emit_nowait_without_loop_skips_coroutines () -> None:

	"""With no running loop, plain listeners still run and coroutine listeners are skipped."""

	emitter = soundwords.event_emitter.EventEmitter()
	received: list[str] = []

	async def cb (v: str) -> None:
		received.append(f"async {v}")

	emitter.on("status", cb)
	emitter.on("status", lambda v: received.append(f"sync {v}"))

	emitter.emit_nowait("status", "searching")

	assert received == ["sync searching"]
