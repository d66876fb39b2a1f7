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
Voice Management System

Joins and leaves voice channels and plugs every connection into the shared
audio player, so all guilds hear the same stream.

Per guild there are only two states: disconnected, or connected and
listening to the shared player. There is no per-guild playback position.
"""

import asyncio
from typing import Optional

import discord
from loguru import logger

from core.player import SharedAudioPlayer
from systems.subscriptions import SubscriptionRegistry
from utils.discord_helpers import format_guild_log, has_voice_permissions, safe_disconnect, safe_send


VOICE_CONNECT_TIMEOUT = 10.0

NEED_PERMISSIONS_MESSAGE = "KanyeBot needs permission to join and speak in this channel."


class VoiceManager:
    """
    Voice connections for every guild, all fed by one SharedAudioPlayer.

    Attributes:
        player: The master stream
        registry: Used to tell a guild's subscribed channel about voice problems
    """

    def __init__(self, player: SharedAudioPlayer, registry: SubscriptionRegistry) -> None:
        self.player = player
        self.registry = registry
        self.player.on("error", self._on_player_error)

    async def _on_player_error(self, error: Exception) -> None:
        logger.error(f"the master stream threw an error: {error}")

    def play(self, source: discord.AudioSource) -> None:
        """Send a source to the master stream, replacing the current one."""
        self.player.play(source)

    async def join(self, voice_channel: discord.VoiceChannel) -> bool:
        """
        Connect to a voice channel and subscribe it to the master stream.

        If the bot lacks connect or speak permission, the guild's subscribed
        text channel (if any) is told so and no connection is attempted.

        Returns:
            True if connected and listening, False otherwise
        """
        guild = voice_channel.guild

        if not has_voice_permissions(voice_channel):
            logger.info(f"{format_guild_log(guild)}: missing connect/speak permission in #{voice_channel.name}")
            await safe_send(self.registry.resolve_channel(guild.id), NEED_PERMISSIONS_MESSAGE)
            return False

        try:
            voice_client = await voice_channel.connect(timeout=VOICE_CONNECT_TIMEOUT, self_deaf=True)
        except asyncio.TimeoutError:
            logger.error(f"{format_guild_log(guild)}: voice connection to #{voice_channel.name} timed out")
            return False
        except (discord.ClientException, discord.HTTPException) as e:
            logger.error(f"{format_guild_log(guild)}: voice connection to #{voice_channel.name} failed: {e}")
            return False

        voice_client.play(self.player.subscribe())
        logger.info(f"{format_guild_log(guild)}: tuned in to #{voice_channel.name}")
        return True

    async def leave(self, voice_channel: discord.VoiceChannel) -> None:
        """Disconnect the guild's voice connection, if there is one."""
        guild = voice_channel.guild
        voice_client: Optional[discord.VoiceClient] = guild.voice_client
        if voice_client is None:
            return

        # Disconnecting stops the VoiceClient's player, which cleans up its listener
        await safe_disconnect(voice_client, force=True)
        logger.info(f"{format_guild_log(guild)}: left #{voice_channel.name}")
