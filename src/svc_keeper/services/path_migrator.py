"""Repair stale storage-root paths inside the service config document.

The host environment may assign a new storage root on reinstall or upgrade and
copy old files across. Absolute paths persisted by the service (log files,
temp dirs, database paths) still point at the previous root, so the service
would read and write a directory it no longer has access to.

The storage root carries one canonical-UUID segment, for example
`/var/mobile/Containers/Data/Application/<UUID>/Documents`. A stale reference
is the same path shape with any other UUID in that segment. Matching is a
structured prefix/segment/suffix scan rather than a free-form regex, and only
occurrences that begin and end on a path boundary are rewritten.
"""

from __future__ import annotations

import logging
import string
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from svc_keeper.paths import (
    CONFIG_DOCUMENT_NAME,
    config_document_path,
    storage_root,
)
from svc_keeper.utils.atomic_io import atomic_write_bytes

logger = logging.getLogger(__name__)

MigrationOutcome = Literal["migrated", "not_needed"]

UUID_SEGMENT_LENGTH = 36
_UUID_HYPHEN_POSITIONS = frozenset({8, 13, 18, 23})
_HEX_DIGITS = frozenset(string.hexdigits)
# Characters that continue a path segment; a match must not be glued to one.
_SEGMENT_CHARS = frozenset(string.ascii_letters + string.digits + "._-~")


@dataclass(frozen=True)
class MigrationReport:
    """Outcome of one migration attempt."""

    outcome: MigrationOutcome
    document: Path
    replacements: int = 0


@dataclass(frozen=True)
class RootShape:
    """Storage root split around its UUID identifier segment."""

    prefix: str
    identifier: str
    suffix: str

    @property
    def full_path(self) -> str:
        return f"{self.prefix}/{self.identifier}{self.suffix}"


def is_uuid_segment(segment: str) -> bool:
    """Return whether `segment` is a canonical 8-4-4-4-12 hex UUID."""
    if len(segment) != UUID_SEGMENT_LENGTH:
        return False
    for index, char in enumerate(segment):
        if index in _UUID_HYPHEN_POSITIONS:
            if char != "-":
                return False
        elif char not in _HEX_DIGITS:
            return False
    return True


def split_storage_root(root: str) -> RootShape | None:
    """Split a slash-separated root at its first UUID segment."""
    if len(root) > 1:
        root = root.rstrip("/")
    segments = root.split("/")
    for index, segment in enumerate(segments):
        if is_uuid_segment(segment):
            return RootShape(
                prefix="/".join(segments[:index]),
                identifier=segment,
                suffix="".join(f"/{part}" for part in segments[index + 1 :]),
            )
    return None


def rewrite_stale_roots(text: str, shape: RootShape) -> tuple[str, int]:
    """Replace every stale-root occurrence in `text` with the current root.

    Returns the rewritten text and the number of replacements made.
    """
    lead = f"{shape.prefix}/"
    current = shape.full_path
    pieces: list[str] = []
    copied_to = 0
    cursor = 0
    replacements = 0
    while True:
        start = text.find(lead, cursor)
        if start < 0:
            break
        id_start = start + len(lead)
        id_end = id_start + UUID_SEGMENT_LENGTH
        end = id_end + len(shape.suffix)
        if (
            _starts_path(text, start)
            and is_uuid_segment(text[id_start:id_end])
            and text.startswith(shape.suffix, id_end)
            and _ends_segment(text, end)
        ):
            pieces.append(text[copied_to:start])
            pieces.append(current)
            copied_to = end
            cursor = end
            replacements += 1
        else:
            cursor = start + 1
    pieces.append(text[copied_to:])
    return "".join(pieces), replacements


def _starts_path(text: str, index: int) -> bool:
    if index == 0:
        return True
    previous = text[index - 1]
    return previous != "/" and previous not in _SEGMENT_CHARS


def _ends_segment(text: str, index: int) -> bool:
    return index >= len(text) or text[index] not in _SEGMENT_CHARS


class PathMigrator:
    """Rewrites stale absolute storage-root paths in the config document."""

    def __init__(
        self,
        *,
        root_provider: Callable[[], Path] = storage_root,
        document_name: str = CONFIG_DOCUMENT_NAME,
        encoding: str = "utf-8",
    ) -> None:
        self._root_provider = root_provider
        self._document_name = document_name
        self._encoding = encoding

    def migrate(self) -> MigrationReport:
        """Rewrite stale roots in place; raises `OSError` on read/write failure."""
        # The root can move between runs, so it is resolved on every attempt.
        root = self._root_provider()
        document = config_document_path(root, self._document_name)
        if not document.exists():
            logger.debug("No config document at %s; nothing to migrate.", document)
            return MigrationReport("not_needed", document)

        text = document.read_bytes().decode(self._encoding)
        root_text = root.as_posix()
        if root_text in text:
            return MigrationReport("not_needed", document)

        shape = split_storage_root(root_text)
        if shape is None:
            logger.debug("Storage root %s has no UUID segment; skipping.", root_text)
            return MigrationReport("not_needed", document)

        rewritten, replacements = rewrite_stale_roots(text, shape)
        if replacements == 0:
            return MigrationReport("not_needed", document)

        atomic_write_bytes(document, rewritten.encode(self._encoding))
        logger.info(
            "Rewrote %d stale storage root reference(s) in %s",
            replacements,
            document,
            extra={"storage_root": root_text},
        )
        return MigrationReport("migrated", document, replacements)
