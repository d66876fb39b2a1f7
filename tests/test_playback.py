import random
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from core.player import SharedAudioPlayer
from core.playback import Station
from core.track import Track
from systems.subscriptions import SubscriptionRegistry
from utils.config import DEFAULT_SETTINGS, build_config, deep_merge


TRACKS = [
    Track("Runaway", "My Beautiful Dark Twisted Fantasy", "2010", "runaway.mp3"),
    Track("Ultralight Beam", "The Life of Pablo", "2016", "ultralight_beam.mp3"),
]


class DummyVoice:
    def __init__(self):
        self.player = SharedAudioPlayer()
        self.played = []

    def play(self, source):
        self.played.append(source)


class DummyClient:
    def __init__(self, channels):
        self.channels = channels

    def get_channel(self, channel_id):
        return self.channels.get(channel_id)


def make_config(presence_on=True, messages_on=True):
    return build_config(deep_merge({
        "token": "aaa.bbb.ccc",
        "now_playing": {
            "rich_presence": {
                "show_as_rich_presence": presence_on,
                "rich_presence_activity": "listening",
                "rich_presence_message": "{title}",
            },
            "subscribed_channels": {
                "send_track_change_messages": messages_on,
                "track_change_message": "now playing {title} ({year_of_release})",
            },
        },
    }, DEFAULT_SETTINGS))


def make_station(tmp_path, **flags):
    channel = MagicMock(spec=discord.TextChannel)
    channel.send = AsyncMock()
    registry = SubscriptionRegistry(DummyClient({100: channel}))
    registry.set_channel(1, 100)
    presence = AsyncMock()
    voice = DummyVoice()
    station = Station(
        TRACKS,
        voice,
        registry,
        make_config(**flags),
        tmp_path,
        update_presence=presence,
        rng=random.Random(7),
        source_factory=lambda path: SimpleNamespace(path=path),
    )
    return SimpleNamespace(station=station, voice=voice, channel=channel, presence=presence)


@pytest.mark.asyncio
async def test_start_plays_and_announces(tmp_path):
    setup = make_station(tmp_path)

    await setup.station.start()

    track = setup.station.current_track
    assert track in TRACKS
    assert [s.path for s in setup.voice.played] == [str(tmp_path / track.file_path)]
    setup.channel.send.assert_awaited_once()
    assert setup.channel.send.await_args.args == (f"now playing {track.title} ({track.year_of_release})",)
    setup.presence.assert_awaited_once_with("listening", track.title)


@pytest.mark.asyncio
async def test_start_is_idempotent(tmp_path):
    setup = make_station(tmp_path)

    await setup.station.start()
    await setup.station.start()

    assert len(setup.voice.played) == 1


@pytest.mark.asyncio
async def test_announcements_respect_flags(tmp_path):
    setup = make_station(tmp_path, presence_on=False, messages_on=False)

    await setup.station.start()

    assert len(setup.voice.played) == 1
    setup.channel.send.assert_not_awaited()
    setup.presence.assert_not_awaited()


@pytest.mark.asyncio
async def test_idle_plays_next_track(tmp_path):
    setup = make_station(tmp_path)
    await setup.station.start()

    # The master stream running dry triggers the next pick
    await setup.voice.player._emit("idle")
    await setup.voice.player._emit("idle")

    assert len(setup.voice.played) == 3
    assert setup.channel.send.await_count == 3


@pytest.mark.asyncio
async def test_play_random_without_presence_updater(tmp_path):
    setup = make_station(tmp_path)
    setup.station._update_presence = None

    track = await setup.station.play_random()

    assert setup.station.current_track is track
    setup.channel.send.assert_awaited_once()


@pytest.mark.asyncio
async def test_unopenable_track_is_skipped(tmp_path):
    setup = make_station(tmp_path)
    calls = []

    def flaky_factory(path):
        calls.append(path)
        if len(calls) == 2:
            raise OSError("ffmpeg failed to start")
        return SimpleNamespace(path=path)

    setup.station._source_factory = flaky_factory
    await setup.station.start()

    # The next pick fails to open, so another track is drawn straight away
    await setup.voice.player._emit("idle")

    assert len(calls) == 3
    assert [s.path for s in setup.voice.played] == [calls[0], calls[2]]
    assert setup.channel.send.await_count == 2


@pytest.mark.asyncio
async def test_play_random_gives_up_after_every_track_fails(tmp_path):
    setup = make_station(tmp_path)

    def broken_factory(path):
        raise discord.ClientException("ffmpeg was not found.")

    setup.station._source_factory = broken_factory

    assert await setup.station.play_random() is None
    assert setup.voice.played == []
    assert setup.station.current_track is None
    setup.channel.send.assert_not_awaited()
