import json
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from pymtc.catalog import split_section_label
from pymtc.exceptions import ValidationError
from pymtc.framing import ENCODING, LINE_DELIMITER

# Cue numbers: 1, 1.2 or 1.2.3
CUE_NUMBER = re.compile(r"\d+(\.\d+){0,2}")

# Timecode: HH:MM:SS:FF
TIMECODE = re.compile(r"\d{2}:\d{2}:\d{2}:\d{2}")

# Play modes understood by the device
COMMAND_PLAY = "play"
COMMAND_PLAY_SECTION = "playSection"
COMMAND_LOOP = "loop"
COMMAND_STOP = "stop"
COMMAND_PAUSE = "pause"

TRANSPORT_COMMANDS = (COMMAND_PLAY, COMMAND_PLAY_SECTION, COMMAND_LOOP, COMMAND_STOP, COMMAND_PAUSE)
# stop/pause make no sense together with a target location
GO_TO_CUE_COMMANDS = (COMMAND_PLAY, COMMAND_PLAY_SECTION, COMMAND_LOOP)


@dataclass(frozen=True)
class TimedTransition:
    """Crossfade over a number of seconds."""
    seconds: float


@dataclass(frozen=True)
class TrackTransition:
    """Crossfade using a section of another track as the source."""
    track: str
    section: str


Transition = Union[TimedTransition, TrackTransition]


@dataclass(frozen=True)
class TrackCommand:
    player: str
    command: str
    track: Optional[str] = None
    location: Optional[str] = None
    transition: Optional[Transition] = None

    def to_message(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"player": self.player, "command": self.command}
        if self.track is not None:
            payload["track"] = self.track
        if self.location is not None:
            payload["location"] = self.location
        if isinstance(self.transition, TimedTransition):
            payload["transition"] = self.transition.seconds
        elif isinstance(self.transition, TrackTransition):
            payload["transitionTrack"] = self.transition.track
            payload["transitionSection"] = self.transition.section
        return {"track_command": payload}

    def encode(self) -> bytes:
        return encode_message(self.to_message())


@dataclass
class EncodeResult:
    """Outcome of an encode call. Exactly one of command/error is set."""
    command: Optional[TrackCommand] = None
    error: Optional[ValidationError] = field(default=None)

    @property
    def ok(self) -> bool:
        return self.command is not None


def encode_message(message: dict[str, Any]) -> bytes:
    """Serialize one wire message as a delimited line."""
    return (json.dumps(message) + LINE_DELIMITER).encode(ENCODING)


def parse_location(location) -> str:
    """Turn a cue number or timecode into the device's location string.

    A cue number like ``1.2`` becomes ``CUE 1.2``; a timecode such as
    ``00:12:30:05`` passes through unchanged.
    """
    token = "" if location is None else str(location).strip()
    if not token:
        raise ValidationError("Cue/Timecode cannot be empty")
    if TIMECODE.fullmatch(token):
        return token
    if CUE_NUMBER.fullmatch(token):
        return f"CUE {token}"
    raise ValidationError(
        f"Invalid location '{token}': expected CUE number (1, 1.2 or 1.2.3) or Timecode (00:00:00:00)"
    )


def _is_blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _require(value, label: str) -> str:
    if _is_blank(value):
        raise ValidationError(f"{label} cannot be empty")
    return str(value).strip()


def _parse_transition_seconds(value) -> Optional[float]:
    if _is_blank(value):
        return None
    if isinstance(value, bool):
        raise ValidationError(f"Invalid transition time: {value!r}")
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid transition time: {value!r}") from None
    if math.isnan(seconds) or math.isinf(seconds) or seconds < 0:
        raise ValidationError(f"Transition time must be a non-negative number, got {value!r}")
    return seconds


def _parse_transition_label(label) -> tuple[str, str]:
    parts = split_section_label(str(label))
    if parts is None:
        raise ValidationError(f"Invalid transition section '{label}': expected \"Track: Section\"")
    return parts


def _parse_transition(transition_seconds, transition_track, transition_section,
                      transition_label=None) -> Optional[Transition]:
    seconds = _parse_transition_seconds(transition_seconds)
    if not _is_blank(transition_label):
        if transition_track is not None or transition_section is not None:
            raise ValidationError("Give either a transition label or a transition track and section")
        transition_track, transition_section = _parse_transition_label(transition_label)
    track_based = transition_track is not None or transition_section is not None

    if track_based:
        if seconds is not None:
            raise ValidationError("Timed and track transitions are mutually exclusive")
        track = _require(transition_track, "Transition track")
        section = _require(transition_section, "Transition section")
        return TrackTransition(track, section)
    if seconds is not None:
        return TimedTransition(seconds)
    return None


class CommandEncoder:
    """Validates caller arguments and builds track_command messages.

    Encoding never raises; failures come back in ``EncodeResult.error`` so a
    bad action cannot take down the event loop.
    """

    def __init__(self):
        self._logger = logging.getLogger(__name__)

    def encode_go_to_cue(
        self,
        player,
        track,
        location,
        command=COMMAND_PLAY_SECTION,
        transition_seconds=None,
        transition_track=None,
        transition_section=None,
        transition_label=None,
    ) -> EncodeResult:
        """Build a go-to-cue command.

        A track transition is given either as ``transition_track`` and
        ``transition_section`` or as one ``transition_label`` taken from
        ``DeviceCatalogCache.section_labels()``.
        """
        try:
            player = _require(player, "Transport name")
            track = _require(track, "Track name")
            command = self._check_command(command, GO_TO_CUE_COMMANDS)
            location = parse_location(location)
            transition = _parse_transition(
                transition_seconds, transition_track, transition_section, transition_label
            )
        except ValidationError as e:
            self._logger.error(f"Go to cue not sent: {e}")
            return EncodeResult(error=e)
        return EncodeResult(TrackCommand(player, command, track, location, transition))

    def encode_transport_command(self, player, command=COMMAND_PLAY) -> EncodeResult:
        try:
            player = _require(player, "Transport name")
            command = self._check_command(command, TRANSPORT_COMMANDS)
        except ValidationError as e:
            self._logger.error(f"Transport command not sent: {e}")
            return EncodeResult(error=e)
        return EncodeResult(TrackCommand(player, command))

    @staticmethod
    def _check_command(command, allowed) -> str:
        command = _require(command, "Command")
        if command not in allowed:
            raise ValidationError(f"Unsupported command '{command}', expected one of: {', '.join(allowed)}")
        return command
