import asyncio

import pytest

from core.player import FRAME_SIZE, SILENCE, ListenerSource, PlayerStatus, SharedAudioPlayer


def frame(byte: bytes) -> bytes:
    return byte * FRAME_SIZE


class DummySource:
    """Finite PCM source: returns each frame once, then b''."""

    def __init__(self, frames):
        self.frames = list(frames)
        self.cleaned = False

    def read(self):
        if self.frames:
            return self.frames.pop(0)
        return b""

    def is_opus(self):
        return False

    def cleanup(self):
        self.cleaned = True


class BrokenSource(DummySource):
    def read(self):
        raise RuntimeError("ffmpeg died")


class EndlessSource(DummySource):
    def read(self):
        return frame(b"\x07")


def idle_waiter(player):
    idle = asyncio.Event()

    async def on_idle():
        idle.set()

    player.on("idle", on_idle)
    return idle


@pytest.mark.asyncio
async def test_frames_fan_out_to_every_listener():
    player = SharedAudioPlayer(frame_delay=0.001)
    first, second = player.subscribe(), player.subscribe()
    idle = idle_waiter(player)
    source = DummySource([frame(b"\x01"), frame(b"\x02")])

    player.play(source)
    await asyncio.wait_for(idle.wait(), timeout=2)

    for listener in (first, second):
        assert listener.read() == frame(b"\x01")
        assert listener.read() == frame(b"\x02")
        assert listener.read() == SILENCE
    assert source.cleaned
    assert player.status is PlayerStatus.IDLE
    await player.close()


@pytest.mark.asyncio
async def test_idle_emitted_with_no_listeners():
    player = SharedAudioPlayer(frame_delay=0.001)
    idle = idle_waiter(player)

    player.play(DummySource([frame(b"\x01")]))
    await asyncio.wait_for(idle.wait(), timeout=2)

    assert player.listener_count == 0
    await player.close()


@pytest.mark.asyncio
async def test_idle_callback_can_start_next_track():
    player = SharedAudioPlayer(frame_delay=0.001)
    listener = player.subscribe()
    played = []
    done = asyncio.Event()
    queue = [DummySource([frame(b"\x02")])]

    async def on_idle():
        if queue:
            source = queue.pop(0)
            played.append(source)
            player.play(source)
        else:
            done.set()

    player.on("idle", on_idle)
    player.play(DummySource([frame(b"\x01")]))
    await asyncio.wait_for(done.wait(), timeout=2)

    assert len(played) == 1
    assert listener.read() == frame(b"\x01")
    assert listener.read() == frame(b"\x02")
    await player.close()


@pytest.mark.asyncio
async def test_play_replaces_current_source():
    player = SharedAudioPlayer(frame_delay=0.001)
    old, new = EndlessSource([]), EndlessSource([])

    player.play(old)
    player.play(new)

    assert old.cleaned
    assert player.source is new
    assert player.status is PlayerStatus.PLAYING

    await player.close()
    assert new.cleaned
    assert player.status is PlayerStatus.IDLE


@pytest.mark.asyncio
async def test_read_error_emits_error_then_idle():
    player = SharedAudioPlayer(frame_delay=0.001)
    events = []
    idle = asyncio.Event()

    async def on_error(error):
        events.append(("error", str(error)))

    async def on_idle():
        events.append(("idle", None))
        idle.set()

    player.on("error", on_error)
    player.on("idle", on_idle)
    source = BrokenSource([])

    player.play(source)
    await asyncio.wait_for(idle.wait(), timeout=2)

    assert events == [("error", "ffmpeg died"), ("idle", None)]
    assert source.cleaned
    await player.close()


@pytest.mark.asyncio
async def test_failing_callback_does_not_stop_others():
    player = SharedAudioPlayer(frame_delay=0.001)

    async def broken():
        raise RuntimeError("boom")

    player.on("idle", broken)
    idle = idle_waiter(player)

    player.play(DummySource([]))
    await asyncio.wait_for(idle.wait(), timeout=2)
    await player.close()


def test_unknown_event_rejected():
    player = SharedAudioPlayer()

    async def callback():
        pass

    with pytest.raises(ValueError):
        player.on("finish", callback)


def test_listener_returns_silence_when_empty():
    player = SharedAudioPlayer()
    listener = player.subscribe()
    assert listener.read() == SILENCE
    assert not listener.is_opus()


def test_listener_cleanup_unsubscribes():
    player = SharedAudioPlayer()
    listener = player.subscribe()
    assert isinstance(listener, ListenerSource)
    assert player.listener_count == 1

    listener.cleanup()

    assert player.listener_count == 0
    assert listener.closed
    assert listener.read() == b""
    listener.feed(frame(b"\x01"))
    assert listener.read() == b""
