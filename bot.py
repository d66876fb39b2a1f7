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
KanyeBot
========================================================

A Discord radio bot: joins voice channels on request and streams random
tracks from a local library, the same stream to every server at once.

Startup order:
    1. .env, config.yaml and tracks.json are loaded and validated
       (any failure exits before touching the network)
    2. login; once the gateway is ready the first track goes on air
    3. %tunein in any server adds a listener
"""

import os
import sys
from pathlib import Path

import discord
from discord.ext import commands
from dotenv import load_dotenv
from loguru import logger

from core.player import SharedAudioPlayer
from core.playback import Station
from core.track import MANIFEST_NAME, CatalogError, Track, load_catalog
from handlers.commands import setup as setup_commands
from systems.subscriptions import SubscriptionRegistry
from systems.voice_manager import VoiceManager
from utils.config import Config, ConfigError, load_config, validate_config
from utils.discord_helpers import format_guild_log, update_presence
from utils.log import NOTICE, setup_logging


DEFAULT_CONFIG_PATH = "config.yaml"
DEFAULT_TRACKS_PATH = "tracks"


class KanyeBot(commands.Bot):
    """
    Discord client wiring the radio together.

    Owns one of each: subscription registry, shared audio player, voice
    manager, station and command dispatcher.
    """

    def __init__(self, config: Config, catalog: list[Track], tracks_dir: Path) -> None:
        intents = discord.Intents.default()
        intents.message_content = True
        intents.voice_states = True

        super().__init__(command_prefix=config.prefix, intents=intents, help_command=None)

        self.config = config
        self.registry = SubscriptionRegistry(self)
        self.player = SharedAudioPlayer()
        self.voice = VoiceManager(self.player, self.registry)
        self.station = Station(
            catalog,
            self.voice,
            self.registry,
            config,
            tracks_dir,
            update_presence=self.update_presence,
        )
        self.dispatcher = setup_commands(self.registry, self.voice, config.prefix)

    async def update_presence(self, activity_type: str, text: str) -> bool:
        return await update_presence(self, activity_type, text)

    async def on_ready(self) -> None:
        logger.log(NOTICE, f"logged in as {self.user} ({len(self.guilds)} servers)")
        logger.info(f"say {self.config.prefix}tunein from a voice channel to listen")
        # Presence needs the gateway, so the first track waits for ready.
        # on_ready fires again after reconnects; start() only runs once.
        await self.station.start()

    async def on_message(self, message: discord.Message) -> None:
        await self.dispatcher.handle_message(message)

    async def on_voice_state_update(self, member, before, after) -> None:
        # Kicked or disconnected from voice by someone else: stop announcing there
        if self.user and member.id == self.user.id and before.channel and not after.channel:
            logger.info(f"{format_guild_log(member.guild)}: disconnected from voice")
            self.registry.remove_channel(member.guild.id)

    async def on_guild_remove(self, guild: discord.Guild) -> None:
        logger.info(f"removed from {format_guild_log(guild)}")
        self.registry.remove_channel(guild.id)

    async def close(self) -> None:
        logger.info("shutting down...")
        for voice_client in list(self.voice_clients):
            channel = getattr(voice_client, "channel", None)
            if channel is not None:
                await self.voice.leave(channel)
        await self.player.close()
        if self.is_ready():
            await update_presence(self, None, None)
        await super().close()


def main() -> None:
    load_dotenv()
    setup_logging(os.getenv("LOG_LEVEL", "verbose"))

    config_path = Path(os.getenv("CONFIG_PATH") or DEFAULT_CONFIG_PATH)
    tracks_dir = Path(os.getenv("TRACKS_PATH") or DEFAULT_TRACKS_PATH)

    try:
        config = load_config(config_path)
    except ConfigError as e:
        logger.critical(f"failed to load configuration: {e}")
        sys.exit(1)

    setup_logging(config.log_level)

    errors = validate_config(config)
    if errors:
        for error in errors:
            logger.critical(f"configuration error: {error}")
        sys.exit(1)

    try:
        catalog = load_catalog(tracks_dir / MANIFEST_NAME, tracks_dir)
    except CatalogError as e:
        logger.critical(f"failed to load tracks: {e}")
        sys.exit(1)

    bot = KanyeBot(config, catalog, tracks_dir)
    logger.info("starting bot...")

    try:
        bot.run(config.token, log_handler=None)
    except discord.LoginFailure as e:
        logger.critical(f"login failed: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
