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

"""Logging setup for KanyeBot.

All project code logs through loguru. discord.py logs through the standard
library, so its records are forwarded into loguru by InterceptHandler.

Levels (config logging.level or LOG_LEVEL env var):
    minimal - warnings, errors and startup milestones
    verbose - normal operation messages (default)
    debug   - everything, including discord.py internals
"""

import logging
import sys

from loguru import logger


# Startup milestones (logged in, tracks loaded) sit between INFO and WARNING
# so they still show in minimal mode.
NOTICE = "NOTICE"

try:
    logger.level(NOTICE)
except ValueError:
    logger.level(NOTICE, no=25, color="<cyan><bold>")

LOG_LEVELS = {
    "minimal": NOTICE,
    "verbose": "INFO",
    "debug": "DEBUG",
}

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> "
    "<level>[{level: <6}]</level> "
    "<cyan>{name}</cyan>: {message}"
)


class InterceptHandler(logging.Handler):
    """Forward standard library log records into loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Walk back to the frame that made the logging call so {name} is right
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(level: str = "verbose") -> None:
    """Configure the stderr sink and route discord.py logging into loguru.

    Args:
        level: "minimal", "verbose" or "debug". Unknown values fall back to verbose.
    """
    loguru_level = LOG_LEVELS.get(str(level).lower())
    if loguru_level is None:
        loguru_level = LOG_LEVELS["verbose"]

    logger.remove()
    logger.add(sys.stderr, level=loguru_level, format=LOG_FORMAT)

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

    # discord.py is chatty at INFO (gateway, voice handshakes)
    library_level = logging.DEBUG if loguru_level == "DEBUG" else logging.WARNING
    for name in ("discord", "discord.player", "discord.voice_state", "discord.gateway"):
        logging.getLogger(name).setLevel(library_level)

    if str(level).lower() not in LOG_LEVELS:
        logger.warning(f"unknown log level {level!r}, using verbose")
