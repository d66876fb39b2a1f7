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
Prefix Commands

Messages starting with the configured prefix are split into a command name
and arguments and handed to the handler registered under that exact name
(case-sensitive, no aliases). Unknown commands are ignored silently, like
typos in any other bot.

Commands:
    tunein - join the caller's voice channel and announce tracks in this text channel
"""

from typing import Optional, Protocol

import discord
from loguru import logger

from systems.subscriptions import SubscriptionRegistry
from systems.voice_manager import VoiceManager
from utils.discord_helpers import format_guild_log, safe_send


MESSAGES = {
    "not_in_voice": "You're not in a voice channel that KanyeBot can join.",
    "already_connected": "KanyeBot is already in a voice channel in this server.",
    "not_text_channel": "Use this command in a regular text channel so KanyeBot can post what's playing there.",
}


class Command(Protocol):
    async def execute(
        self,
        args: list[str],
        guild: discord.Guild,
        member: discord.Member,
        message: discord.Message,
    ) -> None: ...


class TuneIn:
    """Join the caller's voice channel and subscribe the current text channel."""

    def __init__(self, registry: SubscriptionRegistry, voice: VoiceManager) -> None:
        self.registry = registry
        self.voice = voice

    async def execute(self, args, guild, member, message) -> None:
        voice_state = member.voice
        if not voice_state or not voice_state.channel:
            await safe_send(message.channel, MESSAGES["not_in_voice"])
            return

        if guild.voice_client is not None:
            await safe_send(message.channel, MESSAGES["already_connected"])
            return

        # Threads and voice-channel chats can't be subscribed
        if not isinstance(message.channel, discord.TextChannel):
            await safe_send(message.channel, MESSAGES["not_text_channel"])
            return

        # Subscribe first so a permission error reaches this channel
        self.registry.set_channel(guild.id, message.channel.id)

        joined = False
        try:
            joined = await self.voice.join(voice_state.channel)
        finally:
            if not joined:
                self.registry.remove_channel(guild.id)


class CommandDispatcher:
    """
    Routes prefix commands to their handlers.

    Attributes:
        prefix: Text every command starts with (e.g. "%")
        handlers: Command name -> handler
    """

    def __init__(self, prefix: str) -> None:
        self.prefix = prefix
        self.handlers: dict[str, Command] = {}

    def register(self, name: str, handler: Command) -> None:
        self.handlers[name] = handler

    def parse(self, content: str) -> Optional[tuple[str, list[str]]]:
        """Split "%tunein a b" into ("tunein", ["a", "b"]). None if not a command.

        The name must follow the prefix directly: "% tunein" is not a command.
        """
        if not content.startswith(self.prefix):
            return None
        rest = content[len(self.prefix):]
        if not rest or rest[0].isspace():
            return None
        parts = rest.split()
        return parts[0], parts[1:]

    async def dispatch(self, name, args, guild, member, message) -> None:
        handler = self.handlers.get(name)
        if handler is None:
            logger.debug(f"{format_guild_log(guild)}: unknown command {name!r} from {member}")
            return

        logger.debug(f"{format_guild_log(guild)}: {member} ran {name}")
        await handler.execute(args, guild, member, message)

    async def handle_message(self, message: discord.Message) -> None:
        """Entry point for every incoming message."""
        if message.author.bot:
            return

        parsed = self.parse(message.content)
        if parsed is None:
            return

        # Commands only make sense inside a server
        guild = message.guild
        member = message.author if isinstance(message.author, discord.Member) else None
        if guild is None or member is None:
            return

        name, args = parsed
        await self.dispatch(name, args, guild, member, message)


def setup(registry: SubscriptionRegistry, voice: VoiceManager, prefix: str) -> CommandDispatcher:
    """Build the dispatcher with every command registered."""
    dispatcher = CommandDispatcher(prefix)
    dispatcher.register("tunein", TuneIn(registry, voice))
    return dispatcher
