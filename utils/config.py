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

"""Configuration management for KanyeBot."""

import copy
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

import yaml
from loguru import logger

from core.track import Track


# =============================================================================
# DEFAULT SETTINGS SCHEMA
# =============================================================================
# These defaults fill in anything config.yaml leaves out.
# Environment variables override a few keys (see _apply_env_overrides).
#
#   prefix                 - Text before command names (e.g. "%" for %tunein)
#   token                  - Discord bot token (DISCORD_TOKEN env var wins)
#
# Logging Settings (logging.*):
#   level                  - Log verbosity: "minimal", "verbose", or "debug"
#
# Now Playing Settings (now_playing.*):
#   rich_presence.show_as_rich_presence       - Show the current track in bot status
#   rich_presence.rich_presence_activity      - playing, streaming, listening, watching, competing
#   rich_presence.rich_presence_message       - Status text template
#   subscribed_channels.send_track_change_messages - Announce track changes in subscribed channels
#   subscribed_channels.track_change_message  - Announcement template
#
# Templates use str.format placeholders:
#   {title}, {album_name}, {year_of_release}, {file_path}
# =============================================================================

DEFAULT_SETTINGS = {
    "prefix": "%",
    "token": "",
    "logging": {
        "level": "verbose",  # minimal, verbose, debug
    },
    "now_playing": {
        "rich_presence": {
            "show_as_rich_presence": False,
            "rich_presence_activity": None,
            "rich_presence_message": None,
        },
        "subscribed_channels": {
            "send_track_change_messages": False,
            "track_change_message": None,
        },
    },
}

CONFIG_TEMPLATE = """\
# KanyeBot Settings
# Edit these values, then restart the bot

prefix: "%"                 # commands look like %tunein
token: ""                   # bot token from https://discord.com/developers/applications
                            # (or set DISCORD_TOKEN in .env)

logging:
  level: verbose            # minimal, verbose, debug

now_playing:
  # Placeholders: {title}, {album_name}, {year_of_release}, {file_path}
  rich_presence:
    show_as_rich_presence: true
    rich_presence_activity: listening   # playing, streaming, listening, watching, competing
    rich_presence_message: "{title}"

  subscribed_channels:
    send_track_change_messages: true
    track_change_message: "now playing **{title}** from *{album_name}* ({year_of_release})"
"""

# discord.ActivityType members usable for a bot (custom is user-only)
ACTIVITY_TYPES = ("playing", "streaming", "listening", "watching", "competing")

# Used to dry-run message templates during validation
SAMPLE_TRACK = Track(
    title="Runaway",
    album_name="My Beautiful Dark Twisted Fantasy",
    year_of_release="2010",
    file_path="runaway.mp3",
)

TrackFormatter = Callable[[Track], str]


class ConfigError(Exception):
    """Raised when config.yaml is missing, unreadable, or has the wrong shape."""


@dataclass(frozen=True)
class RichPresenceConfig:
    show_as_rich_presence: bool = False
    rich_presence_activity: Optional[str] = None
    rich_presence_message: Optional[TrackFormatter] = None


@dataclass(frozen=True)
class SubscribedChannelsConfig:
    send_track_change_messages: bool = False
    track_change_message: Optional[TrackFormatter] = None


@dataclass(frozen=True)
class NowPlayingConfig:
    rich_presence: RichPresenceConfig = field(default_factory=RichPresenceConfig)
    subscribed_channels: SubscribedChannelsConfig = field(default_factory=SubscribedChannelsConfig)


@dataclass(frozen=True)
class Config:
    """Validated-once, read-only bot configuration.

    Attributes:
        prefix: Command prefix (e.g. "%")
        token: Discord bot token
        now_playing: Rich presence and track announcement settings
        log_level: "minimal", "verbose" or "debug"
    """

    prefix: str
    token: str
    now_playing: NowPlayingConfig = field(default_factory=NowPlayingConfig)
    log_level: str = "verbose"


def deep_merge(user: dict, defaults: dict) -> dict:
    """Merge user config with defaults, preserving nested structure.

    User values override defaults. For nested dicts, merges recursively.
    Unknown keys (not in defaults) are logged as warnings and ignored.

    Args:
        user: User-provided config from YAML file
        defaults: Default values to use for missing keys

    Returns:
        Merged config dict with all default keys present
    """
    result = copy.deepcopy(defaults)
    for key, value in user.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(value, result[key])
        elif key in defaults:
            result[key] = value
        else:
            logger.warning(f"unknown config key: {key}")
    return result


def write_template(path: Path, text: str) -> None:
    """Write a config template atomically (temp file, then rename)."""
    temp_path = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        temp_fd, temp_path = tempfile.mkstemp(dir=path.parent, suffix='.tmp')
        try:
            f = os.fdopen(temp_fd, 'w', encoding='utf-8')
        except Exception:
            os.close(temp_fd)
            raise
        with f:
            f.write(text)
        Path(temp_path).replace(path)
    except Exception:
        if temp_path:
            Path(temp_path).unlink(missing_ok=True)
        raise


def load_settings(path: Path) -> dict:
    """Read config.yaml and merge it over DEFAULT_SETTINGS.

    A missing file is generated from CONFIG_TEMPLATE so the user has something
    to edit, but startup still fails: there is no token yet.

    Raises:
        ConfigError: File missing, unreadable, invalid YAML, or not a mapping
    """
    if not path.exists():
        try:
            write_template(path, CONFIG_TEMPLATE)
        except OSError as e:
            raise ConfigError(f"{path} not found and a template could not be written: {e}") from e
        raise ConfigError(f"{path} not found, a template was written there - fill it in and restart")

    try:
        with open(path, 'r', encoding='utf-8') as f:
            user = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"failed to parse {path.name}: {e}") from e
    except OSError as e:
        raise ConfigError(f"cannot read {path}: {e}") from e

    if not isinstance(user, dict):
        raise ConfigError(f"{path.name} must be a mapping of settings")

    return deep_merge(user, DEFAULT_SETTINGS)


def _apply_env_overrides(settings: dict) -> None:
    """Environment variables always win over YAML (Docker / .env users)."""
    env_map = {
        "DISCORD_TOKEN": ("token",),
        "COMMAND_PREFIX": ("prefix",),
        "LOG_LEVEL": ("logging", "level"),
    }
    for env_key, setting_path in env_map.items():
        if value := os.getenv(env_key):
            target = settings
            for part in setting_path[:-1]:
                target = target.setdefault(part, {})
            target[setting_path[-1]] = value.strip()
            logger.debug(f"{env_key} overrides {'.'.join(setting_path)}")


def track_formatter(template: Optional[str]) -> Optional[TrackFormatter]:
    """Turn a message template into a Track -> str function.

    Returns None when no template is configured.
    """
    if template is None:
        return None

    def format_track(track: Track) -> str:
        return template.format(**track.as_format_kwargs())

    return format_track


def _section(settings: dict, *keys: str) -> dict:
    value = settings
    for key in keys:
        value = value.get(key)
        if not isinstance(value, dict):
            raise ConfigError(f"'{'.'.join(keys)}' must be a mapping")
    return value


def _flag(section: dict, key: str) -> bool:
    value = section.get(key)
    if not isinstance(value, bool):
        raise ConfigError(f"'{key}' must be true or false, got {value!r}")
    return value


def _optional_str(section: dict, key: str) -> Optional[str]:
    value = section.get(key)
    if value is None or isinstance(value, str):
        return value
    raise ConfigError(f"'{key}' must be text, got {value!r}")


def build_config(settings: dict) -> Config:
    """Convert a merged settings dict into a Config.

    Raises:
        ConfigError: A value has the wrong type
    """
    presence = _section(settings, "now_playing", "rich_presence")
    channels = _section(settings, "now_playing", "subscribed_channels")
    logging_settings = _section(settings, "logging")

    prefix = settings.get("prefix")
    token = settings.get("token")
    if not isinstance(prefix, str):
        raise ConfigError(f"'prefix' must be text, got {prefix!r}")
    if token is None:
        token = ""
    if not isinstance(token, str):
        raise ConfigError("'token' must be text")

    activity = _optional_str(presence, "rich_presence_activity")

    return Config(
        prefix=prefix,
        token=token.strip(),
        log_level=str(logging_settings.get("level") or "verbose"),
        now_playing=NowPlayingConfig(
            rich_presence=RichPresenceConfig(
                show_as_rich_presence=_flag(presence, "show_as_rich_presence"),
                rich_presence_activity=activity.lower() if activity else activity,
                rich_presence_message=track_formatter(_optional_str(presence, "rich_presence_message")),
            ),
            subscribed_channels=SubscribedChannelsConfig(
                send_track_change_messages=_flag(channels, "send_track_change_messages"),
                track_change_message=track_formatter(_optional_str(channels, "track_change_message")),
            ),
        ),
    )


def load_config(path: Path) -> Config:
    """Load config.yaml, apply env overrides, and build the Config.

    Does not validate - call validate_config() before connecting.
    """
    settings = load_settings(path)
    _apply_env_overrides(settings)
    config = build_config(settings)
    logger.debug(f"config loaded from {path}")
    return config


def _check_formatter(name: str, formatter: TrackFormatter, errors: list[str]) -> None:
    try:
        result = formatter(SAMPLE_TRACK)
    except (KeyError, IndexError, ValueError, AttributeError) as e:
        errors.append(f"{name} cannot be formatted: {e!r} (placeholders: {{title}}, {{album_name}}, {{year_of_release}}, {{file_path}})")
        return
    if not isinstance(result, str) or not result.strip():
        errors.append(f"{name} produces an empty message")


def validate_config(config: Config) -> list[str]:
    """Check that every enabled section is fully configured.

    Pure function: returns the list of problems instead of exiting, so the
    caller decides how to fail. An empty list means the config is usable.
    """
    errors = []

    if config.token == "":
        errors.append(
            "token is empty - it should contain your bot token from "
            "https://discord.com/developers/applications (or set DISCORD_TOKEN)"
        )
    elif len(config.token.split(".")) != 3:
        logger.warning("token format looks unusual (expected three dot-separated sections)")

    if not config.prefix or any(ch.isspace() for ch in config.prefix):
        errors.append(f"prefix {config.prefix!r} must be non-empty and contain no spaces")

    presence = config.now_playing.rich_presence
    if presence.show_as_rich_presence:
        if presence.rich_presence_activity is None:
            errors.append("rich presence is enabled but rich_presence_activity is not set")
        elif presence.rich_presence_activity not in ACTIVITY_TYPES:
            errors.append(
                f"rich_presence_activity {presence.rich_presence_activity!r} is invalid "
                f"(valid: {', '.join(ACTIVITY_TYPES)})"
            )

        if presence.rich_presence_message is None:
            errors.append("rich presence is enabled but rich_presence_message is not set")
        else:
            _check_formatter("rich_presence_message", presence.rich_presence_message, errors)

    channels = config.now_playing.subscribed_channels
    if channels.send_track_change_messages:
        if channels.track_change_message is None:
            errors.append("track change messages are enabled but track_change_message is not set")
        else:
            _check_formatter("track_change_message", channels.track_change_message, errors)

    return errors
