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
Subscription Registry

Remembers which text channel each guild tuned in from. That channel gets
"now playing" announcements and voice error messages for its guild.

State lives in memory only; a restart forgets every subscription.
"""

from typing import Optional

import discord
from loguru import logger

from utils.discord_helpers import safe_send


class SubscriptionRegistry:
    """
    guild id -> text channel id, at most one entry per guild.

    Only ids are stored. Channels are resolved against the client's live
    cache on every use, so a deleted channel simply stops resolving.

    Attributes:
        client: Discord client used to resolve channel ids
    """

    def __init__(self, client) -> None:
        self.client = client
        self._channels: dict[int, int] = {}

    def __len__(self) -> int:
        return len(self._channels)

    def __contains__(self, guild_id: int) -> bool:
        return guild_id in self._channels

    def get_channel_id(self, guild_id: int) -> Optional[int]:
        return self._channels.get(guild_id)

    def set_channel(self, guild_id: int, channel_id: int) -> None:
        """Subscribe a guild's text channel, replacing any earlier one."""
        previous = self._channels.get(guild_id)
        self._channels[guild_id] = channel_id
        if previous is not None and previous != channel_id:
            logger.debug(f"guild {guild_id}: subscription moved {previous} -> {channel_id}")

    def remove_channel(self, guild_id: int) -> None:
        """Forget a guild's subscription. No-op if there is none."""
        if self._channels.pop(guild_id, None) is not None:
            logger.debug(f"guild {guild_id}: subscription removed")

    def resolve_channel(self, guild_id: int) -> Optional[discord.TextChannel]:
        """Live text channel subscribed for a guild, or None."""
        channel_id = self._channels.get(guild_id)
        if channel_id is None:
            return None

        channel = self.client.get_channel(channel_id)
        if not isinstance(channel, discord.TextChannel):
            return None
        return channel

    async def broadcast(self, message: str) -> int:
        """
        Send message to every subscribed channel.

        Channels that no longer resolve, or that reject the message, are
        skipped without affecting the others.

        Returns:
            Number of channels the message was delivered to
        """
        delivered = 0
        for guild_id in list(self._channels):
            channel = self.resolve_channel(guild_id)
            if channel is None:
                logger.debug(f"guild {guild_id}: subscribed channel not found, skipping")
                continue
            if await safe_send(channel, message) is not None:
                delivered += 1
        return delivered
