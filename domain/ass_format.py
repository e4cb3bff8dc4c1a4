"""ASS (Advanced SubStation Alpha) text primitives."""

from __future__ import annotations

from typing import Sequence

from domain.overlay_config import parse_hex_color

STYLE_FORMAT = (
    "Format: Name, Fontname, Fontsize, PrimaryColour, SecondaryColour, "
    "OutlineColour, BackColour, Bold, Italic, Underline, StrikeOut, ScaleX, "
    "ScaleY, Spacing, Angle, BorderStyle, Outline, Shadow, Alignment, MarginL, "
    "MarginR, MarginV, Encoding"
)
EVENT_FORMAT = (
    "Format: Layer, Start, End, Style, Name, MarginL, MarginR, MarginV, Effect, Text"
)


def format_ass_time(seconds: float) -> str:
    """Format time for ASS (H:MM:SS.cc, where cc is centiseconds)."""
    centiseconds = int(round(max(0.0, seconds) * 100))
    hours, centiseconds = divmod(centiseconds, 360_000)
    minutes, centiseconds = divmod(centiseconds, 6_000)
    secs, centiseconds = divmod(centiseconds, 100)
    return f"{hours:d}:{minutes:02d}:{secs:02d}.{centiseconds:02d}"


def format_ass_number(value: float) -> str:
    """Format a coordinate with at most two decimals and no trailing zeros."""
    text_value = f"{value:.2f}".rstrip("0").rstrip(".")
    if text_value in ("-0", ""):
        return "0"
    return text_value


def ass_color(rgb_hex: str) -> str:
    """Convert RRGGBB into the BBGGRR order ASS expects."""
    red, green, blue = parse_hex_color(rgb_hex)
    return f"{blue:02X}{green:02X}{red:02X}"


def ass_alpha(alpha: int) -> str:
    """Format an alpha value (0 opaque, 255 transparent) as two hex digits."""
    return f"{alpha:02X}"


def build_script_info(
    title: str,
    canvas_width_px: int,
    canvas_height_px: int,
    extra_fields: Sequence[str] = (),
) -> list[str]:
    """Build the [Script Info] section lines."""
    return [
        "[Script Info]",
        f"Title: {title}",
        "ScriptType: v4.00+",
        f"PlayResX: {canvas_width_px}",
        f"PlayResY: {canvas_height_px}",
        "WrapStyle: 0",
        "ScaledBorderAndShadow: yes",
        *extra_fields,
        "",
    ]


def build_style_line(
    name: str,
    font_name: str,
    font_size_px: float,
    primary_color: str,
    outline_color: str,
    alignment: int,
    margin_lr_px: int,
    margin_v_px: int,
) -> str:
    """Build a V4+ style line with outline and shadow disabled."""
    return (
        f"Style: {name},{font_name},{format_ass_number(font_size_px)},"
        f"&H00{primary_color},&H000000FF,&H00{outline_color},&H00000000,"
        f"0,0,0,0,100,100,0,0,1,0,0,{alignment},"
        f"{margin_lr_px},{margin_lr_px},{margin_v_px},1"
    )


def build_dialogue(
    layer: int, start_seconds: float, end_seconds: float, style: str, text: str
) -> str:
    """Build a Dialogue event line."""
    return (
        f"Dialogue: {layer},{format_ass_time(start_seconds)},"
        f"{format_ass_time(end_seconds)},{style},,0,0,0,,{text}"
    )
