"""Comparison of source and destination entry lists."""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from ..models import Entry

logger = logging.getLogger(__name__)


class ModificationReason(str, Enum):
    """Why an entry present on both sides counts as changed."""

    NEWER_MODIFICATION_TIME = "newer_modification_time"
    """Source was modified after the destination"""

    DIFFERENT_SIZE = "different_size"
    """Sizes differ"""

    DIFFERENT_CONTENT = "different_content"
    """Content checksums differ (deep comparison only)"""


ModificationPredicate = Callable[[Entry, Entry, bool], list[ModificationReason]]


@dataclass
class Modification:
    """An entry present on both sides and judged changed."""

    source: Entry
    destination: Entry
    reasons: list[ModificationReason]

    @property
    def path(self) -> str:
        return self.source.path

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source.to_dict(),
            "destination": self.destination.to_dict(),
            "reasons": [reason.value for reason in self.reasons],
        }


@dataclass
class Comparison:
    """Source and destination entries classified by path.

    Every path of either side lands in exactly one bucket.
    """

    additions: list[Entry] = field(default_factory=list)
    """Present in the source only"""

    modifications: list[Modification] = field(default_factory=list)
    """Present on both sides and changed"""

    deletions: list[Entry] = field(default_factory=list)
    """Present in the destination only"""

    unchanged: list[Entry] = field(default_factory=list)
    """Present on both sides and unchanged (source entries)"""

    @property
    def has_changes(self) -> bool:
        return bool(self.additions or self.modifications or self.deletions)

    def to_dict(self) -> dict[str, Any]:
        return {
            "additions": [e.to_dict() for e in self.additions],
            "modifications": [m.to_dict() for m in self.modifications],
            "deletions": [e.to_dict() for e in self.deletions],
            "unchanged": [e.to_dict() for e in self.unchanged],
        }


def is_modified(
    source: Entry, destination: Entry, deep_compare: bool = False
) -> list[ModificationReason]:
    """Collect the reasons a source entry differs from its destination.

    All checks run independently; an empty list means unchanged.

    Args:
        source: Entry from the source tree
        destination: Entry at the same path in the destination tree
        deep_compare: Whether to compare content checksums

    Returns:
        List of ModificationReason values (empty if unchanged)
    """
    reasons: list[ModificationReason] = []

    if (
        source.modified_time is not None
        and destination.modified_time is not None
        and source.modified_time > destination.modified_time
    ):
        reasons.append(ModificationReason.NEWER_MODIFICATION_TIME)

    if source.size != destination.size:
        reasons.append(ModificationReason.DIFFERENT_SIZE)

    if (
        deep_compare
        and source.content_hash
        and destination.content_hash
        and source.content_hash != destination.content_hash
    ):
        reasons.append(ModificationReason.DIFFERENT_CONTENT)

    return reasons


class TreeComparator:
    """Diffs two entry lists keyed by relative path."""

    def __init__(self, predicate: ModificationPredicate = is_modified):
        """Initialize the comparator.

        Args:
            predicate: Function deciding why two same-path entries differ
        """
        self.predicate = predicate

    def compare(
        self,
        source_entries: Iterable[Entry],
        dest_entries: Iterable[Entry],
        deep_compare: bool = False,
    ) -> Comparison:
        """Compare source entries against destination entries.

        Args:
            source_entries: Entries of the source tree
            dest_entries: Entries of the destination tree
            deep_compare: Whether to compare content checksums

        Returns:
            Comparison with additions, modifications, deletions and unchanged
        """
        source_map = self._index(source_entries, "source")
        dest_map = self._index(dest_entries, "destination")
        comparison = Comparison()

        for path, source in source_map.items():
            destination = dest_map.get(path)
            if destination is None:
                comparison.additions.append(source)
                continue

            reasons = self.predicate(source, destination, deep_compare)
            if reasons:
                comparison.modifications.append(
                    Modification(
                        source=source, destination=destination, reasons=reasons
                    )
                )
            else:
                comparison.unchanged.append(source)

        for path, destination in dest_map.items():
            if path not in source_map:
                comparison.deletions.append(destination)

        logger.debug(
            f"Compared {len(source_map)} source and {len(dest_map)} destination "
            f"paths: {len(comparison.additions)} additions, "
            f"{len(comparison.modifications)} modifications, "
            f"{len(comparison.deletions)} deletions, "
            f"{len(comparison.unchanged)} unchanged"
        )
        return comparison

    @staticmethod
    def _index(entries: Iterable[Entry], side: str) -> dict[str, Entry]:
        """Map path to entry, the last entry winning on a collision."""
        index: dict[str, Entry] = {}
        for entry in entries:
            if entry.path in index:
                logger.warning(
                    f"Path collision in {side} entries: '{entry.path}' "
                    f"(keeping {entry.id}, dropping {index[entry.path].id})"
                )
            index[entry.path] = entry
        return index
