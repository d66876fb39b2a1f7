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
Playback Loop

Picks a random track whenever the master stream goes idle, plays it, and
announces it (subscribed channels + rich presence) as configured.
"""

import random
from pathlib import Path
from typing import Awaitable, Callable, Optional

import discord
from loguru import logger

from core.track import Track, pick_random
from systems.subscriptions import SubscriptionRegistry
from systems.voice_manager import VoiceManager
from utils.config import Config
from utils.discord_helpers import make_audio_source


# (activity type name, text) -> None
PresenceUpdater = Callable[[str, str], Awaitable[object]]


class Station:
    """
    The radio: random track in, announcements out.

    Attributes:
        catalog: Every playable track
        voice: Voice manager owning the master stream
        registry: Subscribed text channels for announcements
        config: Now-playing settings
        tracks_dir: Directory track file paths are relative to
        current_track: Track on air (None before the first one)
    """

    def __init__(
        self,
        catalog: list[Track],
        voice: VoiceManager,
        registry: SubscriptionRegistry,
        config: Config,
        tracks_dir: Path,
        update_presence: Optional[PresenceUpdater] = None,
        rng: Optional[random.Random] = None,
        source_factory=make_audio_source,
    ) -> None:
        self.catalog = catalog
        self.voice = voice
        self.registry = registry
        self.config = config
        self.tracks_dir = tracks_dir
        self.current_track: Optional[Track] = None
        self._update_presence = update_presence
        self._rng = rng or random.Random()
        self._source_factory = source_factory
        self._started = False

    async def start(self) -> None:
        """Hook into the master stream and put the first track on air. Idempotent."""
        if self._started:
            return
        self._started = True
        self.voice.player.on("idle", self.play_random)
        await self.play_random()

    async def play_random(self) -> Optional[Track]:
        """Replace the current track with a random one and announce it.

        A track whose source cannot be opened (FFmpeg missing, file gone
        since startup) is skipped and another is drawn, up to one attempt
        per catalog entry. Returns None if every attempt failed; the stream
        then stays idle.
        """
        for _ in range(len(self.catalog)):
            track = pick_random(self.catalog, self._rng)
            try:
                source = self._source_factory(str(track.path(self.tracks_dir)))
            except (OSError, discord.ClientException) as e:
                logger.error(f"cannot open '{track.title}' ({track.file_path}): {e}")
                continue
            break
        else:
            logger.error("no track could be opened, playback stopped")
            return None

        self.voice.play(source)
        self.current_track = track
        logger.info(f"now streaming: {track.title}")

        await self._announce(track)
        return track

    async def _announce(self, track: Track) -> None:
        now_playing = self.config.now_playing

        channels = now_playing.subscribed_channels
        if channels.send_track_change_messages:
            delivered = await self.registry.broadcast(channels.track_change_message(track))
            logger.debug(f"track change announced in {delivered} channel(s)")

        presence = now_playing.rich_presence
        if presence.show_as_rich_presence and self._update_presence is not None:
            await self._update_presence(
                presence.rich_presence_activity,
                presence.rich_presence_message(track),
            )
