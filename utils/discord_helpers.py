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
Discord API Helper Functions

Safe wrappers around the Discord calls KanyeBot makes. All functions accept
None where it makes sense and swallow the Discord API errors that are not
worth crashing over (deleted channels, lost permissions, rate limits).

- format_guild_log(): Human-readable guild name for log lines
- safe_send(): Send a message with mentions disabled
- safe_disconnect(): Disconnect a voice client without raising
- has_voice_permissions(): Can the bot connect and speak in a channel
- update_presence(): Set or clear the bot's activity, deduplicated
- make_audio_source(): FFmpeg PCM source for a local file
"""

import asyncio
from typing import Optional

import discord
from loguru import logger


# Local files only, no reconnect flags needed
FFMPEG_BEFORE_OPTIONS = "-nostdin"
FFMPEG_OPTIONS = "-vn -loglevel warning"

# Global presence state (bot-wide, not per-guild)
_current_presence: Optional[tuple[str, str]] = None
_presence_lock = asyncio.Lock()


def format_guild_log(guild) -> str:
    """
    Format guild for logging.

    Examples:
        >>> format_guild_log(message.guild)
        'My Discord Server'
        >>> format_guild_log(None)
        'DM'
    """
    if guild is None:
        return "DM"
    name = getattr(guild, "name", None)
    if name:
        return name
    return f"Guild #{getattr(guild, 'id', '?')}"


async def safe_send(channel, content: str) -> Optional[discord.Message]:
    """
    Send a message to a channel with error handling and mention suppression.

    Args:
        channel: Text channel to send to (None is safe)
        content: Message content

    Returns:
        Message object if sent successfully, None otherwise

    Note:
        Catches NotFound (channel deleted), Forbidden (lost permissions) and
        HTTPException (rate limited or other API error).
    """
    if not channel:
        return None
    try:
        # Track titles come from a user-edited manifest, never let them ping
        msg = await channel.send(content, allowed_mentions=discord.AllowedMentions.none())
    except (discord.NotFound, discord.Forbidden, discord.HTTPException) as e:
        logger.debug(f"could not send message: {e}")
        return None
    else:
        return msg


async def safe_disconnect(voice_client: Optional[discord.VoiceClient], force: bool = True) -> bool:
    """
    Disconnect from voice without raising.

    Returns:
        True if disconnected (or nothing to disconnect), False on error
    """
    if not voice_client:
        return True
    try:
        await voice_client.disconnect(force=force)
        return True
    except (discord.ClientException, discord.HTTPException) as e:
        logger.debug(f"disconnect failed (non-critical): {e}")
        return False
    except Exception as e:
        # aiohttp transport errors during shutdown
        logger.debug(f"disconnect failed with transport error (non-critical): {e}")
        return False


def has_voice_permissions(channel) -> bool:
    """
    Check the bot can both connect and speak in a voice channel.

    Returns False if guild.me is not available yet (startup race).
    """
    if not channel:
        return False
    me = channel.guild.me
    if not me:
        return False
    perms = channel.permissions_for(me)
    return bool(perms and perms.connect and perms.speak)


async def update_presence(bot, activity_type: Optional[str], text: Optional[str]) -> bool:
    """
    Update the bot's activity (e.g. "Listening to Runaway").

    Identical consecutive updates are skipped. The lock is held for the whole
    dedupe check -> API call -> state update so a failed call doesn't record
    a presence that was never set.

    Args:
        bot: Discord client
        activity_type: discord.ActivityType name ("listening", "playing", ...)
        text: Activity text (None = clear activity)

    Returns:
        True if the presence is now as requested, False on API error
    """
    global _current_presence

    wanted = (activity_type, text) if text else None

    async with _presence_lock:
        if wanted == _current_presence:
            return True

        try:
            if wanted:
                activity = discord.Activity(
                    type=getattr(discord.ActivityType, activity_type),
                    name=text[:128],  # Discord rejects longer activity names
                )
                await bot.change_presence(activity=activity)
            else:
                await bot.change_presence(activity=None)
            _current_presence = wanted
        except (discord.ClientException, discord.HTTPException) as e:
            logger.debug(f"presence update failed (non-critical): {e}")
            return False
        else:
            return True


def make_audio_source(path: str) -> discord.FFmpegPCMAudio:
    """
    Create a fresh audio source for a local file.

    Always decodes to 48kHz stereo PCM: the shared player fans raw frames out
    to every connection, and each VoiceClient encodes its own Opus.
    Sources are single-use.
    """
    logger.debug(f"creating pcm source for: {path}")
    return discord.FFmpegPCMAudio(
        path,
        before_options=FFMPEG_BEFORE_OPTIONS,
        options=FFMPEG_OPTIONS,
    )
