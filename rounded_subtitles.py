#!/usr/bin/env -S uv run
# /// script
# requires-python = ">=3.11"
# dependencies = [
#   "pillow>=10"
# ]
# ///
"""Convert SRT subtitles into ASS subtitles drawn on rounded background boxes."""

from __future__ import annotations

import argparse
import logging
import os
import shutil
import subprocess
import sys
import tempfile
import time
from dataclasses import dataclass
from typing import Any, Sequence, Tuple

from domain.overlay_config import (
    DEFAULT_CANVAS_HEIGHT_PX,
    DEFAULT_CANVAS_WIDTH_PX,
    LayoutConfig,
    OverlayStyle,
    apply_overrides,
    load_config_file,
    split_overrides,
)
from domain.subtitle_cues import (
    INPUT_FILE_CODE,
    INVALID_CONFIG_CODE,
    Cue,
    SubtitlePipelineError,
    SubtitleValidationError,
    parse_cue_source,
)
from service.overlay_document import render_overlay_document

LOGGER = logging.getLogger("rounded_subtitles")

OUTPUT_FILE_CODE = "rounded_subtitles.output.write_failed"
CANVAS_PROBE_CODE = "rounded_subtitles.input.canvas_probe"
CONVERTED_CODE = "rounded_subtitles.run.converted"
FFPROBE_TIMEOUT_SECONDS = 30.0
OUTPUT_EXTENSION = ".ass"


@dataclass(frozen=True)
class ConversionRequest:
    """Parsed CLI request and runtime options."""

    input_file: str
    output_file: str
    layout: LayoutConfig
    style: OverlayStyle
    timeout_seconds: float | None


def configure_logging() -> None:
    """Configure logging for CLI output."""
    logging.basicConfig(level=logging.INFO, format="%(message)s")


def default_output_path(input_file: str) -> str:
    """Place the output next to the input with an .ass extension."""
    stem, _ = os.path.splitext(input_file)
    return f"{stem}{OUTPUT_EXTENSION}"


def probe_canvas_size(video_file: str) -> Tuple[int, int] | None:
    """Return the first video stream's width and height, or None on failure."""
    if not os.path.isfile(video_file):
        LOGGER.warning("%s: video file not found: %s", CANVAS_PROBE_CODE, video_file)
        return None
    ffprobe_path = shutil.which("ffprobe")
    if not ffprobe_path:
        LOGGER.warning("%s: ffprobe not on PATH", CANVAS_PROBE_CODE)
        return None
    try:
        result = subprocess.run(
            [
                ffprobe_path,
                "-v",
                "error",
                "-select_streams",
                "v:0",
                "-show_entries",
                "stream=width,height",
                "-of",
                "csv=s=x:p=0",
                video_file,
            ],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            timeout=FFPROBE_TIMEOUT_SECONDS,
            check=False,
        )
    except (OSError, subprocess.SubprocessError) as exc:
        LOGGER.warning("%s: ffprobe failed (%s)", CANVAS_PROBE_CODE, exc)
        return None
    if result.returncode != 0:
        LOGGER.warning(
            "%s: ffprobe failed: %s", CANVAS_PROBE_CODE, result.stderr.strip()
        )
        return None
    first_line = result.stdout.strip().splitlines()[0] if result.stdout.strip() else ""
    width_text, _, height_text = first_line.partition("x")
    try:
        width, height = int(width_text), int(height_text)
    except ValueError:
        LOGGER.warning(
            "%s: unexpected ffprobe output: %r", CANVAS_PROBE_CODE, first_line
        )
        return None
    if width <= 0 or height <= 0:
        LOGGER.warning(
            "%s: invalid video size %sx%s", CANVAS_PROBE_CODE, width, height
        )
        return None
    return width, height


def collect_cli_overrides(parsed: argparse.Namespace) -> dict[str, Any]:
    """Map parsed flags onto config field names; unset flags map to None."""
    overrides: dict[str, Any] = {
        "font_name": parsed.font,
        "font_size_px": parsed.font_size,
        "text_color": parsed.text_color,
        "background_color": parsed.bg_color,
        "background_alpha": parsed.opacity,
        "padding_x_px": parsed.padding_x,
        "padding_y_px": parsed.padding_y,
        "border_radius_px": parsed.radius,
        "width_correction": parsed.width_correction,
        "line_spacing": parsed.line_spacing,
        "min_width_ratio": parsed.min_width_ratio,
        "max_width_ratio": parsed.max_width_ratio,
        "enforce_min_width": parsed.enforce_min_width,
        "margin_bottom_px": parsed.margin_bottom,
        "fonts_dir": parsed.fonts_dir,
        "precise_measurement_command": parsed.measure_command,
        "verbose": parsed.verbose,
    }
    if parsed.disable_precise_measurement:
        overrides["use_precise_measurement"] = False
    if parsed.disable_rasterization:
        overrides["use_local_rasterization"] = False
    return overrides


def resolve_canvas(
    parsed: argparse.Namespace, file_overrides: dict[str, Any]
) -> dict[str, Any]:
    """Pick the canvas size from flags, the config file, or the probed video."""
    if (parsed.width is None) != (parsed.height is None):
        raise SubtitleValidationError(
            INVALID_CONFIG_CODE, "width and height must be given together"
        )
    if parsed.width is not None:
        return {"canvas_width_px": parsed.width, "canvas_height_px": parsed.height}
    if "canvas_width_px" in file_overrides or "canvas_height_px" in file_overrides:
        return {}
    if parsed.video_file:
        probed = probe_canvas_size(parsed.video_file)
        if probed is not None:
            return {"canvas_width_px": probed[0], "canvas_height_px": probed[1]}
        LOGGER.warning(
            "%s: falling back to %dx%d",
            CANVAS_PROBE_CODE,
            DEFAULT_CANVAS_WIDTH_PX,
            DEFAULT_CANVAS_HEIGHT_PX,
        )
    return {}


def parse_args(argv: Sequence[str]) -> ConversionRequest:
    """Parse CLI arguments into a ConversionRequest."""
    parser = argparse.ArgumentParser(prog="rounded_subtitles.py", add_help=True)
    parser.add_argument("input_file", help="SRT file to convert")
    parser.add_argument(
        "-o", "--output", default=None, help="defaults to the input with .ass"
    )
    parser.add_argument("--config", default=None, help="JSON file of option overrides")
    parser.add_argument("-f", "--font", default=None)
    parser.add_argument("-s", "--font-size", type=float, default=None)
    parser.add_argument("--text-color", default=None, help="RRGGBB")
    parser.add_argument("--bg-color", default=None, help="RRGGBB")
    parser.add_argument(
        "--opacity", type=int, default=None, help="0 opaque .. 255 transparent"
    )
    parser.add_argument("--padding-x", type=float, default=None)
    parser.add_argument("--padding-y", type=float, default=None)
    parser.add_argument("--radius", type=float, default=None)
    parser.add_argument("--width-correction", type=float, default=None)
    parser.add_argument("--line-spacing", type=float, default=None)
    parser.add_argument("--min-width-ratio", type=float, default=None)
    parser.add_argument("--max-width-ratio", type=float, default=None)
    parser.add_argument("--enforce-min-width", action="store_true", default=None)
    parser.add_argument("--margin-bottom", type=int, default=None)
    parser.add_argument("--width", type=int, default=None)
    parser.add_argument("--height", type=int, default=None)
    parser.add_argument("--video-file", default=None, help="probe canvas size")
    parser.add_argument("--fonts-dir", default=None)
    parser.add_argument("--measure-command", default=None)
    parser.add_argument("--disable-precise-measurement", action="store_true")
    parser.add_argument("--disable-rasterization", action="store_true")
    parser.add_argument("--timeout-seconds", type=float, default=None)
    parser.add_argument("--verbose", action="store_true", default=None)

    parsed = parser.parse_args(argv)
    if parsed.timeout_seconds is not None and parsed.timeout_seconds <= 0:
        raise SubtitleValidationError(
            INVALID_CONFIG_CODE, "timeout-seconds must be positive"
        )

    file_overrides = load_config_file(parsed.config)
    file_layout, file_style = split_overrides(file_overrides)
    cli_layout, cli_style = split_overrides(collect_cli_overrides(parsed))
    cli_layout.update(resolve_canvas(parsed, file_overrides))

    layout = apply_overrides(apply_overrides(LayoutConfig(), file_layout), cli_layout)
    style = apply_overrides(apply_overrides(OverlayStyle(), file_style), cli_style)

    return ConversionRequest(
        input_file=parsed.input_file,
        output_file=parsed.output or default_output_path(parsed.input_file),
        layout=layout,
        style=style,
        timeout_seconds=parsed.timeout_seconds,
    )


def read_cue_source(file_path: str) -> Tuple[Cue, ...]:
    """Read and parse an SRT file."""
    try:
        with open(file_path, "rb") as file_handle:
            raw_bytes = file_handle.read()
    except FileNotFoundError as exc:
        raise SubtitleValidationError(
            INPUT_FILE_CODE, f"input file not found: {file_path}"
        ) from exc
    except OSError as exc:
        raise SubtitleValidationError(
            INPUT_FILE_CODE, f"input file could not be read: {file_path}"
        ) from exc
    return parse_cue_source(raw_bytes)


def write_document(file_path: str, text_value: str) -> None:
    """Write the document atomically through a temporary sibling file."""
    directory = os.path.dirname(os.path.abspath(file_path))
    tmp_path: str | None = None
    try:
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            newline="\n",
            dir=directory,
            prefix=".rounded_subtitles_",
            suffix=OUTPUT_EXTENSION,
            delete=False,
        ) as file_handle:
            tmp_path = file_handle.name
            file_handle.write(text_value)
        os.replace(tmp_path, file_path)
    except OSError as exc:
        if tmp_path is not None and os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise SubtitleValidationError(
            OUTPUT_FILE_CODE, f"output file could not be written: {file_path}"
        ) from exc


def run_conversion(request: ConversionRequest) -> int:
    """Convert one SRT file and return the number of cues written."""
    cues = read_cue_source(request.input_file)
    deadline = None
    if request.timeout_seconds is not None:
        deadline = time.monotonic() + request.timeout_seconds
    document = render_overlay_document(
        cues, request.layout, request.style, deadline=deadline
    )
    write_document(request.output_file, document)
    return len(cues)


def main() -> int:
    """CLI entrypoint."""
    configure_logging()

    try:
        request = parse_args(sys.argv[1:])
        cue_count = run_conversion(request)
    except SubtitleValidationError as exc:
        LOGGER.error("%s: %s", exc.code, str(exc).strip())
        return 1
    except SubtitlePipelineError as exc:
        LOGGER.error("%s: %s", exc.code, str(exc).strip())
        return 1
    except Exception as exc:
        LOGGER.error("rounded_subtitles.unhandled_error: %s", str(exc).strip())
        return 1

    LOGGER.info(
        "%s: %d cues written to %s", CONVERTED_CODE, cue_count, request.output_file
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
