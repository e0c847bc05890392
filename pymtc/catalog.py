import logging
from typing import Iterable, Optional

SECTION_LABEL_SEPARATOR = ": "


def split_section_label(label: str) -> Optional[tuple[str, str]]:
    """Split a "Track: Section" label into its parts, or None if it has no track."""
    index = label.find(":")
    if index <= 0:
        return None
    return label[:index].strip(), label[index + 1:].strip()


class DeviceCatalogCache:
    """Latest players, tracks and per-track sections reported by the device.

    Lists are replaced, never edited, and only when the new list differs, so
    callers can skip redrawing when an apply returns False. The cache does no
    I/O: when the track list changes, the caller re-queries the sections.
    """

    def __init__(self):
        self._logger = logging.getLogger(__name__)
        self._players: list[str] = []
        self._tracks: list[str] = []
        self._sections: dict[str, list[str]] = {}

    @property
    def players(self) -> list[str]:
        return list(self._players)

    @property
    def tracks(self) -> list[str]:
        return list(self._tracks)

    def get_sections(self, track: str) -> list[str]:
        return list(self._sections.get(track, []))

    def apply_player_list(self, names: Iterable[str]) -> bool:
        names = list(names)
        if names == self._players:
            return False
        self._players = names
        self._logger.info(f"Transports updated: {names}")
        return True

    def apply_track_list(self, names: Iterable[str]) -> bool:
        names = list(names)
        if names == self._tracks:
            return False
        self._tracks = names
        # Drop sections of tracks the device no longer reports
        self._sections = {track: sections for track, sections in self._sections.items() if track in names}
        self._logger.info(f"Track list updated: {names}")
        return True

    def apply_section_list(self, track: str, names: Iterable[str]) -> bool:
        names = list(names)
        # An unknown track counts as having no sections
        if names == self._sections.get(track, []):
            return False
        self._sections = {**self._sections, track: names}
        self._logger.info(f"Section list updated for {track}: {len(names)} sections - {names}")
        return True

    def section_labels(self) -> list[str]:
        """Every known section as "Track: Section", sorted case-insensitively."""
        labels = [
            f"{track}{SECTION_LABEL_SEPARATOR}{section}"
            for track in self._tracks
            for section in self._sections.get(track, [])
        ]
        return sorted(labels, key=str.lower)
