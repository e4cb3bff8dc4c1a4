"""Domain types and SRT cue parsing for rounded_subtitles."""

from __future__ import annotations

from dataclasses import dataclass, replace
import logging
import re
from typing import Sequence, Tuple

INVALID_CONFIG_CODE = "rounded_subtitles.input.invalid_config"
INVALID_COLOR_CODE = "rounded_subtitles.input.invalid_color"
INVALID_CUE_CODE = "rounded_subtitles.input.invalid_cue"
INVALID_SRT_CODE = "rounded_subtitles.input.invalid_srt"
INPUT_FILE_CODE = "rounded_subtitles.input.file_error"
EMPTY_SOURCE_CODE = "rounded_subtitles.input.empty_source"
NO_CUES_CODE = "rounded_subtitles.input.no_cues"
ENCODING_FALLBACK_CODE = "rounded_subtitles.input.encoding_fallback"
SKIPPED_BLOCK_CODE = "rounded_subtitles.input.skipped_block"

SRT_TIME_RANGE_PATTERN = re.compile(
    r"^(?P<start>\d{2}:\d{2}:\d{2},\d{3})\s*-->\s*(?P<end>\d{2}:\d{2}:\d{2},\d{3})"
)
SRT_TIMECODE_PATTERN = re.compile(r"^(\d{2}):(\d{2}):(\d{2}),(\d{3})$")
SOURCE_ENCODINGS = ("utf-8-sig", "cp1252", "latin-1")
LINE_BREAK_MARKER = "\\N"
MIN_CUE_GAP_SECONDS = 0.1
LOGGER = logging.getLogger("rounded_subtitles")


class SubtitleValidationError(ValueError):
    """Validation error with a stable error code."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code


class SubtitlePipelineError(RuntimeError):
    """Runtime error with a stable error code."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code


@dataclass(frozen=True)
class Cue:
    """One timed caption unit; text uses \\N between lines."""

    ordinal: int
    start_seconds: float
    end_seconds: float
    text: str

    def __post_init__(self) -> None:
        if self.ordinal < 1:
            raise SubtitleValidationError(
                INVALID_CUE_CODE, "cue ordinal must be at least 1"
            )
        if self.start_seconds < 0:
            raise SubtitleValidationError(
                INVALID_CUE_CODE, "cue start time must be non-negative"
            )
        if self.end_seconds <= self.start_seconds:
            raise SubtitleValidationError(
                INVALID_CUE_CODE, "cue end time must be after start time"
            )


def parse_timecode(timecode_value: str) -> float:
    """Parse an SRT timecode into seconds."""
    match = SRT_TIMECODE_PATTERN.fullmatch(timecode_value.strip())
    if not match:
        raise SubtitleValidationError(
            INVALID_SRT_CODE, f"invalid timecode: {timecode_value!r}"
        )
    hours, minutes, seconds, millis = (int(part) for part in match.groups())
    return hours * 3600 + minutes * 60 + seconds + millis / 1000.0


def format_timecode(seconds: float) -> str:
    """Format seconds as an SRT timecode (HH:MM:SS,mmm)."""
    if seconds < 0:
        raise SubtitleValidationError(
            INVALID_SRT_CODE, "timecode seconds must be non-negative"
        )
    total_millis = int(round(seconds * 1000))
    total_seconds, millis = divmod(total_millis, 1000)
    hours, remainder = divmod(total_seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d},{millis:03d}"


def decode_cue_source(raw_bytes: bytes) -> str:
    """Decode cue source bytes, falling back through legacy encodings."""
    for encoding in SOURCE_ENCODINGS:
        try:
            text_value = raw_bytes.decode(encoding)
        except UnicodeDecodeError:
            continue
        if encoding != SOURCE_ENCODINGS[0]:
            LOGGER.warning(
                "%s: source is not valid UTF-8; decoded as %s",
                ENCODING_FALLBACK_CODE,
                encoding,
            )
        return text_value
    # latin-1 maps every byte, so the loop always returns.
    raise SubtitleValidationError(
        INPUT_FILE_CODE, "cue source could not be decoded"
    )


def split_cue_lines(text_value: str) -> Tuple[str, ...]:
    """Split cue text at explicit line-break markers."""
    return tuple(text_value.split(LINE_BREAK_MARKER))


def normalize_cue_text(lines: Sequence[str]) -> str:
    """Join cue text lines with the explicit line-break marker."""
    return LINE_BREAK_MARKER.join(lines).strip()


def parse_block(block: str) -> Cue | None:
    """Parse a single numbered SRT block, or return None when it does not match."""
    lines = block.split("\n")
    while lines and not lines[0].strip():
        lines = lines[1:]
    if len(lines) < 2:
        return None
    index_text = lines[0].strip()
    if not index_text.isdigit() or int(index_text) < 1:
        return None
    match = SRT_TIME_RANGE_PATTERN.match(lines[1].strip())
    if not match:
        return None

    start_seconds = parse_timecode(match.group("start"))
    end_seconds = parse_timecode(match.group("end"))
    if end_seconds <= start_seconds:
        LOGGER.warning(
            "%s: cue %s ends before it starts", SKIPPED_BLOCK_CODE, index_text
        )
        return None

    text_lines = [line.strip() for line in lines[2:]]
    while text_lines and not text_lines[-1]:
        text_lines.pop()
    return Cue(
        ordinal=int(index_text),
        start_seconds=start_seconds,
        end_seconds=end_seconds,
        text=normalize_cue_text(text_lines),
    )


def close_small_gaps(
    cues: Sequence[Cue], min_gap_seconds: float = MIN_CUE_GAP_SECONDS
) -> Tuple[Cue, ...]:
    """Extend each cue to the next start when the gap is under min_gap_seconds."""
    # Timecodes carry whole milliseconds; compare there, not in float seconds.
    min_gap_millis = round(min_gap_seconds * 1000)
    adjusted: list[Cue] = []
    for index, cue in enumerate(cues):
        if index + 1 < len(cues):
            next_start = cues[index + 1].start_seconds
            gap_millis = round((next_start - cue.end_seconds) * 1000)
            if gap_millis < min_gap_millis and next_start > cue.start_seconds:
                cue = replace(cue, end_seconds=next_start)
        adjusted.append(cue)
    return tuple(adjusted)


def parse_cues(text_value: str) -> Tuple[Cue, ...]:
    """Parse SRT text into ordered cues; unmatched blocks are ignored."""
    normalized = (
        text_value.replace("\ufeff", "").replace("\r\n", "\n").replace("\r", "\n")
    )
    blocks = re.split(r"\n[ \t]*\n", normalized.strip())
    cues: list[Cue] = []
    for block in blocks:
        cue = parse_block(block)
        if cue is not None:
            cues.append(cue)
    return close_small_gaps(cues)


def parse_cue_source(raw_bytes: bytes) -> Tuple[Cue, ...]:
    """Decode and parse a cue source, rejecting empty or cue-less input."""
    text_value = decode_cue_source(raw_bytes)
    if not text_value.replace("\ufeff", "").strip():
        raise SubtitleValidationError(EMPTY_SOURCE_CODE, "cue source is empty")
    cues = parse_cues(text_value)
    if not cues:
        raise SubtitleValidationError(NO_CUES_CODE, "no cues found in source")
    return cues
