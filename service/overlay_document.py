"""Assemble the ASS overlay document: header plus background/text event pairs."""

from __future__ import annotations

import logging
import sys
import time
from typing import Callable, Sequence, Tuple

from domain.ass_format import (
    EVENT_FORMAT,
    STYLE_FORMAT,
    ass_alpha,
    ass_color,
    build_dialogue,
    build_script_info,
    build_style_line,
    format_ass_number,
)
from domain.overlay_config import DEFAULT_FONT_NAME, LayoutConfig, OverlayStyle
from domain.scripts import ScriptFamily, classify_corpus, classify_text, is_rtl
from domain.subtitle_cues import Cue, SubtitlePipelineError
from service.box_layout import BoxGeometry, PathCommand, layout_box
from service.text_measurement import (
    DelegatedMeasurement,
    TextDimensionEstimator,
    build_estimator,
)

LOGGER = logging.getLogger("rounded_subtitles")

RUN_TIMEOUT_CODE = "rounded_subtitles.run.timeout"
SCRIPT_DETECTED_CODE = "rounded_subtitles.run.script_detected"
FONT_SELECTED_CODE = "rounded_subtitles.run.font_selected"
BOX_DETAIL_CODE = "rounded_subtitles.layout.box"

DOCUMENT_TITLE = "ASS subtitles with rounded background boxes"
TEXT_STYLE_NAME = "Default"
BOX_STYLE_NAME = "Box-BG"
BOX_LAYER = 0
TEXT_LAYER = 1
TEXT_MARGIN_LR_PX = 10
RTL_MARK = "\u200f"
LTR_MARK = "\u200e"
CJK_FONT_WINDOWS = "Microsoft YaHei"
CJK_FONT_DEFAULT = "Noto Sans CJK SC"


def encode_drawing(path: Sequence[PathCommand]) -> str:
    """Encode path commands in the ASS drawing mini-language."""
    parts: list[str] = []
    for command in path:
        parts.append(command.verb.value)
        for x_value, y_value in command.points:
            parts.append(format_ass_number(x_value))
            parts.append(format_ass_number(y_value))
    return " ".join(parts)


def select_document_font(
    font_name: str, document_script: ScriptFamily, platform: str = sys.platform
) -> str:
    """Swap the default Latin font for a CJK face when the document is CJK."""
    if document_script != ScriptFamily.CJK or font_name != DEFAULT_FONT_NAME:
        return font_name
    if platform.startswith("win"):
        return CJK_FONT_WINDOWS
    return CJK_FONT_DEFAULT


def direction_marker(cue_script: ScriptFamily, document_script: ScriptFamily) -> str:
    """Return a direction mark when the cue reads opposite to the document."""
    cue_rtl = is_rtl(cue_script)
    if cue_rtl == is_rtl(document_script):
        return ""
    return RTL_MARK if cue_rtl else LTR_MARK


def box_center(config: LayoutConfig, style: OverlayStyle) -> Tuple[float, float]:
    """Return the shared center of the box and its text."""
    return (
        config.canvas_width_px / 2,
        float(config.canvas_height_px - style.margin_bottom_px),
    )


def build_header(
    config: LayoutConfig,
    style: OverlayStyle,
    document_script: ScriptFamily,
    font_name: str,
) -> str:
    """Build script info, text and box styles, and the events format line."""
    lines = build_script_info(
        DOCUMENT_TITLE,
        config.canvas_width_px,
        config.canvas_height_px,
        extra_fields=(f"Language: {document_script.value}",),
    )
    background_color = ass_color(style.background_color)
    lines.extend(
        [
            "[V4+ Styles]",
            STYLE_FORMAT,
            build_style_line(
                TEXT_STYLE_NAME,
                font_name,
                config.font_size_px,
                ass_color(style.text_color),
                "000000",
                5,
                TEXT_MARGIN_LR_PX,
                style.margin_bottom_px,
            ),
            build_style_line(
                BOX_STYLE_NAME,
                font_name,
                config.font_size_px / 2,
                background_color,
                background_color,
                7,
                0,
                0,
            ),
            "",
            "[Events]",
            EVENT_FORMAT,
        ]
    )
    return "\n".join(lines) + "\n"


def emit_cue_events(
    cue: Cue,
    geometry: BoxGeometry,
    path: Sequence[PathCommand],
    style: OverlayStyle,
    config: LayoutConfig,
    document_script: ScriptFamily,
) -> Tuple[str, str]:
    """Emit the background entry and the text entry for one cue."""
    center_x, center_y = box_center(config, style)
    position = f"\\pos({format_ass_number(center_x)},{format_ass_number(center_y)})"
    background_text = (
        f"{{{position}\\bord0\\shad0"
        f"\\1c&H{ass_color(style.background_color)}&"
        f"\\1a&H{ass_alpha(style.background_alpha)}&\\p1}}"
        f"{encode_drawing(path)}{{\\p0}}"
    )
    marker = direction_marker(classify_text(cue.text), document_script)
    text_entry = f"{{\\an5{position}\\bord0\\shad0}}{marker}{cue.text}"
    background = build_dialogue(
        BOX_LAYER, cue.start_seconds, cue.end_seconds, BOX_STYLE_NAME, background_text
    )
    text_line = build_dialogue(
        TEXT_LAYER, cue.start_seconds, cue.end_seconds, TEXT_STYLE_NAME, text_entry
    )
    return background, text_line


def render_overlay_document(
    cues: Sequence[Cue],
    config: LayoutConfig,
    style: OverlayStyle,
    estimator: TextDimensionEstimator | None = None,
    deadline: float | None = None,
    clock: Callable[[], float] = time.monotonic,
) -> str:
    """Convert parsed cues into a complete ASS overlay document."""
    document_script = classify_corpus(cue.text for cue in cues)
    font_name = select_document_font(config.font_name, document_script)
    LOGGER.info("%s: %s", SCRIPT_DETECTED_CODE, document_script.value)
    if font_name != config.font_name:
        LOGGER.info("%s: %s", FONT_SELECTED_CODE, font_name)

    if estimator is None:
        delegated = None
        if config.use_precise_measurement:
            delegated = DelegatedMeasurement(
                config.precise_measurement_command,
                config.precise_measurement_timeout_seconds,
            )
            delegated.prepare(
                [cue.text for cue in cues],
                font_name,
                config.font_size_px,
                config.canvas_width_px,
                config.canvas_height_px,
            )
        estimator = build_estimator(config, delegated=delegated)

    events: list[str] = []
    for cue in cues:
        if deadline is not None and clock() > deadline:
            raise SubtitlePipelineError(
                RUN_TIMEOUT_CODE,
                f"conversion timed out before cue {cue.ordinal}",
            )
        dimension = estimator.estimate(
            cue.text,
            config.font_size_px,
            font_name,
            config.width_correction,
            config.line_spacing,
        )
        geometry, path = layout_box(dimension, config)
        if config.verbose:
            LOGGER.info(
                "%s: cue %d text=%.1fx%.1f box=%.1fx%.1f radius=%s->%s",
                BOX_DETAIL_CODE,
                cue.ordinal,
                dimension.width,
                dimension.height,
                geometry.width,
                geometry.height,
                format_ass_number(config.border_radius_px),
                format_ass_number(geometry.effective_radius),
            )
        events.extend(
            emit_cue_events(cue, geometry, path, style, config, document_script)
        )

    header = build_header(config, style, document_script, font_name)
    return header + "\n".join(events) + "\n"
