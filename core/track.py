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
Track Catalog

Loads the track manifest (tracks.json) once at startup. The catalog is a plain
list of Track records and is never mutated afterwards; a track's identity is
its position in that list.

Manifest format:
    {
        "tracks": [
            {"title": "...", "albumName": "...", "yearOfRelease": "...", "filePath": "..."}
        ]
    }

filePath is relative to the tracks directory (TRACKS_PATH, default ./tracks).
"""

import json
import random
from dataclasses import dataclass, fields
from pathlib import Path

from loguru import logger

from utils.log import NOTICE


MANIFEST_NAME = "tracks.json"

# Manifest key -> Track attribute
_MANIFEST_FIELDS = {
    "title": "title",
    "albumName": "album_name",
    "yearOfRelease": "year_of_release",
    "filePath": "file_path",
}


class CatalogError(Exception):
    """Raised when the track manifest is missing, malformed, or has no playable tracks."""


@dataclass(frozen=True)
class Track:
    """A single entry from tracks.json.

    Attributes:
        title: Name of the track
        album_name: Album the track belongs to (if applicable)
        year_of_release: Year the track or album was released
        file_path: Path of the audio file, relative to the tracks directory
    """

    title: str
    album_name: str
    year_of_release: str
    file_path: str

    def path(self, tracks_dir: Path) -> Path:
        """Resolve the audio file against the tracks directory."""
        return tracks_dir / self.file_path

    def as_format_kwargs(self) -> dict[str, str]:
        """Fields available to user message templates ({title}, {album_name}, ...)."""
        return {f.name: getattr(self, f.name) for f in fields(self)}


def _parse_entry(index: int, entry) -> Track:
    if not isinstance(entry, dict):
        raise CatalogError(f"track #{index} is not an object")

    values = {}
    for key, attr in _MANIFEST_FIELDS.items():
        value = entry.get(key)
        # yearOfRelease is sometimes written as a bare number
        if isinstance(value, int) and not isinstance(value, bool):
            value = str(value)
        if not isinstance(value, str):
            raise CatalogError(f"track #{index} is missing '{key}'")
        values[attr] = value

    return Track(**values)


def load_catalog(manifest_path: Path, tracks_dir: Path) -> list[Track]:
    """Load every playable track from the manifest.

    Entries whose audio file does not exist are skipped with a warning so a
    stale manifest doesn't stall playback.

    Args:
        manifest_path: Path to tracks.json
        tracks_dir: Directory that track filePaths are relative to

    Returns:
        List of Track objects in manifest order

    Raises:
        CatalogError: Manifest missing, not valid JSON, wrong shape, or no
            playable tracks left after skipping missing files
    """
    try:
        with open(manifest_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except FileNotFoundError:
        raise CatalogError(f"track manifest not found: {manifest_path}") from None
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise CatalogError(f"track manifest is not valid json: {e}") from e
    except OSError as e:
        raise CatalogError(f"cannot read track manifest: {e}") from e

    if not isinstance(data, dict) or not isinstance(data.get("tracks"), list):
        raise CatalogError(f"{manifest_path.name} must contain a 'tracks' list")

    tracks = []
    for index, entry in enumerate(data["tracks"]):
        track = _parse_entry(index, entry)
        if not track.path(tracks_dir).is_file():
            logger.warning(f"skipping '{track.title}', file not found: {track.file_path}")
            continue
        tracks.append(track)

    if not tracks:
        raise CatalogError(f"no playable tracks in {manifest_path}")

    logger.log(NOTICE, f"loaded {len(tracks)} tracks")
    return tracks


def pick_random(tracks: list[Track], rng: random.Random | None = None) -> Track:
    """Draw a track uniformly at random."""
    rng = rng or random
    return tracks[rng.randrange(len(tracks))]
