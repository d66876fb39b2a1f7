# Copyright (C) 2026 grodz
#
# This file is part of KanyeBot.
#
# KanyeBot is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License
# along with this program. If not, see <https://www.gnu.org/licenses/>.

"""
Shared Audio Player - One Stream, Many Listeners

discord.py gives every VoiceClient its own player. KanyeBot wants every
connected guild to hear the exact same audio at the same time, so the master
stream lives here instead:

    SharedAudioPlayer (one per process)
        reads 20ms PCM frames from the current source on a fixed clock
        └── ListenerSource (one per voice connection)
                buffers frames; VoiceClient.play(listener) consumes them

The clock runs whether or not anyone is listening, so tracks advance even
with zero connections. When the current source runs dry the player emits
"idle"; a failing read emits "error" followed by "idle".
"""

import asyncio
from collections import deque
from enum import Enum
from time import perf_counter
from typing import Awaitable, Callable, Optional

import discord
from loguru import logger


FRAME_SIZE = 3840  # 20ms at 48kHz, 16-bit, stereo
FRAME_DELAY = 0.02
SILENCE = b"\x00" * FRAME_SIZE

# Frames a listener may fall behind before the oldest are dropped (1s)
LISTENER_BUFFER_FRAMES = 50

EVENTS = ("idle", "error")

PlayerCallback = Callable[..., Awaitable[None]]


class PlayerStatus(Enum):
    """
    State of the master stream.

    IDLE: No current source (between tracks or before the first one)
    PLAYING: A source is being read and fanned out to listeners
    """
    IDLE = 0
    PLAYING = 1


def _cleanup_source(source: discord.AudioSource) -> None:
    try:
        source.cleanup()
    except (OSError, RuntimeError, AttributeError) as e:
        logger.debug(f"audio source cleanup failed: {e}")


class ListenerSource(discord.AudioSource):
    """Per-connection view of the shared stream.

    read() is called every 20ms by discord.py's audio thread and never
    returns b'' while open: when no frame is buffered it returns silence, so
    the VoiceClient keeps one unbroken stream across track changes.
    """

    def __init__(self, player: "SharedAudioPlayer") -> None:
        self._player = player
        self._frames: deque[bytes] = deque(maxlen=LISTENER_BUFFER_FRAMES)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def feed(self, frame: bytes) -> None:
        if not self._closed:
            self._frames.append(frame)

    def read(self) -> bytes:
        if self._closed:
            return b""
        try:
            return self._frames.popleft()
        except IndexError:
            return SILENCE

    def is_opus(self) -> bool:
        return False

    def cleanup(self) -> None:
        self._closed = True
        self._frames.clear()
        self._player.unsubscribe(self)


class SharedAudioPlayer:
    """The master stream every voice connection subscribes to.

    Usage:
        player = SharedAudioPlayer()
        player.on("idle", play_something_else)
        player.play(discord.FFmpegPCMAudio(path))
        voice_client.play(player.subscribe())

    Callbacks are coroutine functions awaited on the event loop, in the order
    they were registered. A failing callback is logged and does not stop the
    stream.
    """

    def __init__(self, frame_delay: float = FRAME_DELAY) -> None:
        self.frame_delay = frame_delay
        self._source: Optional[discord.AudioSource] = None
        self._reading: Optional[discord.AudioSource] = None
        self._listeners: set[ListenerSource] = set()
        self._callbacks: dict[str, list[PlayerCallback]] = {event: [] for event in EVENTS}
        self._wakeup = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    # =========================================================================
    # Events
    # =========================================================================

    def on(self, event: str, callback: PlayerCallback) -> None:
        """Subscribe to "idle" (no args) or "error" (exception arg)."""
        if event not in self._callbacks:
            raise ValueError(f"unknown player event {event!r} (valid: {', '.join(EVENTS)})")
        self._callbacks[event].append(callback)

    async def _emit(self, event: str, *args) -> None:
        for callback in list(self._callbacks[event]):
            try:
                await callback(*args)
            except Exception:
                logger.opt(exception=True).error(f"player {event} handler failed")

    # =========================================================================
    # Listeners
    # =========================================================================

    def subscribe(self) -> ListenerSource:
        """Create a listener that receives every frame from now on."""
        listener = ListenerSource(self)
        self._listeners.add(listener)
        logger.debug(f"listener subscribed ({len(self._listeners)} total)")
        return listener

    def unsubscribe(self, listener: ListenerSource) -> None:
        if listener in self._listeners:
            self._listeners.discard(listener)
            logger.debug(f"listener unsubscribed ({len(self._listeners)} total)")

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    # =========================================================================
    # Playback
    # =========================================================================

    @property
    def status(self) -> PlayerStatus:
        return PlayerStatus.PLAYING if self._source is not None else PlayerStatus.IDLE

    @property
    def source(self) -> Optional[discord.AudioSource]:
        return self._source

    def play(self, source: discord.AudioSource) -> None:
        """Replace whatever is playing with source.

        The previous source is abandoned, never mixed: if the clock is in the
        middle of reading it, the clock cleans it up once the read returns.
        Must be called from the event loop.
        """
        previous, self._source = self._source, source
        if previous is not None and previous is not source and previous is not self._reading:
            _cleanup_source(previous)
        self._ensure_running()
        self._wakeup.set()

    def stop(self) -> None:
        """Drop the current source without emitting idle."""
        previous, self._source = self._source, None
        if previous is not None and previous is not self._reading:
            _cleanup_source(previous)

    def _ensure_running(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._run(), name="shared-audio-player")

    async def close(self) -> None:
        """Stop the clock, release the source and close every listener."""
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        self.stop()
        for listener in tuple(self._listeners):
            listener.cleanup()

    async def _run(self) -> None:
        """Clock loop: one frame per frame_delay, fanned out to all listeners."""
        loops = 0
        started = perf_counter()

        while True:
            source = self._source
            if source is None:
                self._wakeup.clear()
                await self._wakeup.wait()
                loops = 0
                started = perf_counter()
                continue

            error = None
            self._reading = source
            try:
                # FFmpeg pipe reads block, keep them off the event loop
                data = await asyncio.to_thread(source.read)
            except Exception as e:
                logger.opt(exception=True).error("shared stream read failed")
                data = b""
                error = e
            finally:
                self._reading = None

            if source is not self._source:
                # Replaced by play() while we were reading
                _cleanup_source(source)
                loops = 0
                started = perf_counter()
                continue

            if not data:
                self._source = None
                _cleanup_source(source)
                if error is not None:
                    await self._emit("error", error)
                await self._emit("idle")
                continue

            for listener in tuple(self._listeners):
                listener.feed(data)

            loops += 1
            delay = started + self.frame_delay * loops - perf_counter()
            await asyncio.sleep(max(0.0, delay))
