"""Tiered text-dimension estimation for subtitle boxes.

Measurement runs an ordered list of strategies and keeps the first result:

1. delegated precise measurement by an external renderer (``mass``),
2. local rasterization of each line with Pillow and a resolved font file,
3. the empirical character-width model, which never fails.

Whatever tier produced the raw width, the same width corrections and the
reasonable-width cap are applied afterwards, so results are deterministic
for a given text and configuration on one machine.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import os
from pathlib import Path
import re
import shutil
import subprocess
import tempfile
from typing import Callable, Sequence, Tuple

from PIL import Image, ImageDraw, ImageFont

from domain.ass_format import (
    EVENT_FORMAT,
    STYLE_FORMAT,
    build_dialogue,
    build_script_info,
    build_style_line,
)
from domain.overlay_config import LayoutConfig
from domain.scripts import ScriptFamily, classify_text
from domain.subtitle_cues import (
    SubtitlePipelineError,
    split_cue_lines,
)
from service.font_profiles import (
    FontCategory,
    FontFileLocator,
    FontProfile,
    FontProfileResolver,
)

LOGGER = logging.getLogger("rounded_subtitles")

INVALID_DIMENSION_CODE = "rounded_subtitles.measure.invalid_dimension"
PRECISE_UNAVAILABLE_CODE = "rounded_subtitles.measure.precise_unavailable"
RASTER_UNAVAILABLE_CODE = "rounded_subtitles.measure.raster_unavailable"
MEASURE_DETAIL_CODE = "rounded_subtitles.measure.detail"

OVER_RENDER_ALLOWANCE = 1.05
REASONABLE_CHAR_WIDTH = 0.72
WIDTH_CAP_MULTIPLIER = 1.2
TALL_SCRIPT_HEIGHT_FACTOR = 1.2
TALL_SCRIPTS = frozenset({ScriptFamily.THAI, ScriptFamily.DEVANAGARI})

SCRIPT_WIDTH_RATIOS: dict[ScriptFamily, dict[FontCategory, float]] = {
    ScriptFamily.LATIN: {
        FontCategory.DEFAULT: 0.65,
        FontCategory.NARROW: 0.58,
        FontCategory.WIDE: 0.70,
        FontCategory.MONOSPACE: 0.75,
    },
    ScriptFamily.CYRILLIC: {
        FontCategory.DEFAULT: 0.65,
        FontCategory.NARROW: 0.56,
        FontCategory.WIDE: 0.71,
        FontCategory.MONOSPACE: 0.75,
    },
    ScriptFamily.ARABIC: {
        FontCategory.DEFAULT: 0.69,
        FontCategory.NARROW: 0.63,
        FontCategory.WIDE: 0.75,
        FontCategory.MONOSPACE: 0.75,
    },
    ScriptFamily.HEBREW: {
        FontCategory.DEFAULT: 0.68,
        FontCategory.NARROW: 0.60,
        FontCategory.WIDE: 0.73,
        FontCategory.MONOSPACE: 0.75,
    },
    ScriptFamily.CJK: {
        FontCategory.DEFAULT: 1.05,
        FontCategory.NARROW: 0.95,
        FontCategory.WIDE: 1.1,
        FontCategory.MONOSPACE: 1.05,
    },
    ScriptFamily.THAI: {
        FontCategory.DEFAULT: 0.75,
        FontCategory.NARROW: 0.69,
        FontCategory.WIDE: 0.81,
        FontCategory.MONOSPACE: 0.75,
    },
    ScriptFamily.DEVANAGARI: {
        FontCategory.DEFAULT: 0.78,
        FontCategory.NARROW: 0.73,
        FontCategory.WIDE: 0.85,
        FontCategory.MONOSPACE: 0.78,
    },
    ScriptFamily.OTHER: {
        FontCategory.DEFAULT: 0.69,
        FontCategory.NARROW: 0.63,
        FontCategory.WIDE: 0.75,
        FontCategory.MONOSPACE: 0.75,
    },
}

# Advance widths of common Latin glyphs as a fraction of the font size.
LATIN_CHAR_WIDTHS: dict[str, float] = {
    "i": 0.28, "l": 0.28, "I": 0.34, "j": 0.34, "t": 0.41,
    "r": 0.41, "f": 0.41, "s": 0.48, "a": 0.54, "e": 0.54,
    "n": 0.63, "o": 0.63, "u": 0.63, "c": 0.54, "z": 0.54,
    "g": 0.60, "k": 0.60, "v": 0.60, "x": 0.60, "y": 0.60,
    "b": 0.60, "d": 0.60, "h": 0.60, "p": 0.60, "q": 0.60,
    "m": 0.98, "w": 0.89, "A": 0.81, "B": 0.81, "C": 0.81,
    "D": 0.81, "E": 0.75, "F": 0.69, "G": 0.89, "H": 0.89,
    "J": 0.63, "K": 0.81, "L": 0.69, "M": 1.03, "N": 0.89,
    "O": 0.95, "P": 0.75, "Q": 0.95, "R": 0.81, "S": 0.75,
    "T": 0.75, "U": 0.89, "V": 0.81, "W": 1.15, "X": 0.81,
    "Y": 0.75, "Z": 0.75, "0": 0.63, "1": 0.63, "2": 0.63,
    "3": 0.63, "4": 0.63, "5": 0.63, "6": 0.63, "7": 0.63,
    "8": 0.63, "9": 0.63, ".": 0.34, ",": 0.34, ":": 0.34,
    ";": 0.34, "!": 0.34, "?": 0.54, '"': 0.41, "'": 0.28,
    "(": 0.41, ")": 0.41, "[": 0.41, "]": 0.41, "{": 0.41,
    "}": 0.41, "*": 0.48, "+": 0.69, "-": 0.41, "_": 0.63,
    "/": 0.34, "\\": 0.34, "@": 1.03, "#": 0.69, "$": 0.63,
    "%": 1.03, "^": 0.63, "&": 0.81, " ": 0.34,
}  # fmt: skip

REPORT_LINE_PATTERN = re.compile(r"^Line (\d+):")
REPORT_DIMENSIONS_PATTERN = re.compile(r"^\s*Dimensions: (\d+) x (\d+) pixels")


@dataclass(frozen=True)
class Dimension:
    """Width and height of rendered text in pixels."""

    width: float
    height: float

    def __post_init__(self) -> None:
        if self.width < 0 or self.height < 0:
            raise SubtitlePipelineError(
                INVALID_DIMENSION_CODE, "dimension must be non-negative"
            )


@dataclass(frozen=True)
class MeasurementRequest:
    """Everything a measurement strategy needs for one text."""

    text: str
    font_size_px: float
    font_name: str
    line_spacing: float
    profile: FontProfile
    script: ScriptFamily

    @property
    def lines(self) -> Tuple[str, ...]:
        """Return the text split at explicit line breaks."""
        return split_cue_lines(self.text)


MeasurementStrategy = Callable[[MeasurementRequest], Dimension | None]


def estimate_height(
    line_count: int, font_size_px: float, line_spacing: float, script: ScriptFamily
) -> float:
    """Sum line heights; every line but the last carries the line spacing."""
    line_height = font_size_px
    if script in TALL_SCRIPTS:
        line_height *= TALL_SCRIPT_HEIGHT_FACTOR
    if line_count <= 0:
        return 0.0
    return line_height * line_spacing * (line_count - 1) + line_height


def empirical_line_width(
    line: str, font_size_px: float, script: ScriptFamily, profile: FontProfile
) -> float:
    """Estimate one line's width from per-script and per-glyph width ratios."""
    ratios = SCRIPT_WIDTH_RATIOS.get(script, SCRIPT_WIDTH_RATIOS[ScriptFamily.OTHER])
    base_ratio = ratios.get(profile.category, ratios[FontCategory.DEFAULT])
    if script == ScriptFamily.LATIN:
        total_ratio = sum(
            LATIN_CHAR_WIDTHS.get(character, base_ratio) for character in line
        )
    else:
        total_ratio = len(line) * base_ratio
    return total_ratio * profile.factor * font_size_px


def empirical_dimensions(request: MeasurementRequest) -> Dimension:
    """Measure text with the empirical character-width model."""
    lines = request.lines
    width = max(
        empirical_line_width(
            line, request.font_size_px, request.script, request.profile
        )
        for line in lines
    )
    height = estimate_height(
        len(lines), request.font_size_px, request.line_spacing, request.script
    )
    return Dimension(width=width, height=height)


def apply_width_corrections(
    raw_width: float, text_value: str, font_size_px: float, width_correction: float
) -> float:
    """Apply the width correction, over-render allowance, and reasonable-width cap."""
    width = max(0.0, raw_width) * width_correction * OVER_RENDER_ALLOWANCE
    char_count = sum(len(line) for line in split_cue_lines(text_value))
    reasonable_max_width = char_count * font_size_px * REASONABLE_CHAR_WIDTH
    if width > reasonable_max_width * WIDTH_CAP_MULTIPLIER:
        width = reasonable_max_width
    return max(0.0, width)


@dataclass
class RasterMeasurement:
    """Measure glyph runs with Pillow using a font file from the locator."""

    locator: FontFileLocator
    font_cache: dict[Tuple[str, int], ImageFont.FreeTypeFont] = field(
        default_factory=dict
    )
    failed_fonts: set[str] = field(default_factory=set)

    def load_font(self, font_file_path: str, font_size: int) -> ImageFont.FreeTypeFont:
        """Load a font and cache by path and size."""
        cache_key = (font_file_path, font_size)
        cached_font = self.font_cache.get(cache_key)
        if cached_font is not None:
            return cached_font
        font = ImageFont.truetype(
            font_file_path, size=font_size, layout_engine=ImageFont.Layout.BASIC
        )
        self.font_cache[cache_key] = font
        return font

    def __call__(self, request: MeasurementRequest) -> Dimension | None:
        font_file_path = self.locator.locate(request.font_name)
        if font_file_path is None or font_file_path in self.failed_fonts:
            return None
        font_size = max(1, int(round(request.font_size_px)))
        try:
            font = self.load_font(font_file_path, font_size)
            draw_context = ImageDraw.Draw(Image.new("RGBA", (1, 1)))
            width = max(
                float(draw_context.textlength(line, font=font)) if line else 0.0
                for line in request.lines
            )
        except Exception as exc:
            self.failed_fonts.add(font_file_path)
            LOGGER.warning(
                "%s: failed to measure with %s (%s)",
                RASTER_UNAVAILABLE_CODE,
                font_file_path,
                str(exc).strip(),
            )
            return None
        height = estimate_height(
            len(request.lines),
            request.font_size_px,
            request.line_spacing,
            request.script,
        )
        return Dimension(width=width, height=height)


def build_measurement_document(
    texts: Sequence[str],
    font_name: str,
    font_size_px: float,
    canvas_width_px: int,
    canvas_height_px: int,
) -> str:
    """Build a minimal ASS document holding one event per text."""
    lines = build_script_info(
        "Temporary ASS file for measurement", canvas_width_px, canvas_height_px
    )
    lines.extend(
        [
            "[V4+ Styles]",
            STYLE_FORMAT,
            build_style_line(
                "Default", font_name, font_size_px, "FFFFFF", "000000", 5, 10, 10
            ),
            "",
            "[Events]",
            EVENT_FORMAT,
        ]
    )
    for index, text_value in enumerate(texts):
        lines.append(
            build_dialogue(0, float(index), float(index + 1), "Default", text_value)
        )
    return "\n".join(lines) + "\n"


def parse_measurement_report(report_text: str) -> dict[int, Dimension]:
    """Parse the measurer's report into dimensions keyed by zero-based event index."""
    dimensions: dict[int, Dimension] = {}
    current_index: int | None = None
    for line in report_text.splitlines():
        line_match = REPORT_LINE_PATTERN.match(line)
        if line_match:
            current_index = int(line_match.group(1)) - 1
            continue
        dimension_match = REPORT_DIMENSIONS_PATTERN.match(line)
        if dimension_match and current_index is not None:
            dimensions[current_index] = Dimension(
                width=float(dimension_match.group(1)),
                height=float(dimension_match.group(2)),
            )
            current_index = None
    return dimensions


@dataclass
class DelegatedMeasurement:
    """Precise per-text dimensions from an external renderer, fetched in one batch."""

    command: str
    timeout_seconds: float
    measured: dict[str, Dimension] = field(default_factory=dict)

    def prepare(
        self,
        texts: Sequence[str],
        font_name: str,
        font_size_px: float,
        canvas_width_px: int,
        canvas_height_px: int,
    ) -> bool:
        """Measure all texts at once; return False when the measurer is unavailable."""
        executable = shutil.which(self.command)
        if executable is None:
            LOGGER.warning(
                "%s: %s not found on PATH", PRECISE_UNAVAILABLE_CODE, self.command
            )
            return False
        document = build_measurement_document(
            texts, font_name, font_size_px, canvas_width_px, canvas_height_px
        )
        try:
            with tempfile.TemporaryDirectory(prefix="rounded_subtitles_") as tmp_dir:
                document_path = os.path.join(tmp_dir, "measure.ass")
                with open(document_path, "w", encoding="utf-8") as file_handle:
                    file_handle.write(document)
                result = subprocess.run(
                    [
                        executable,
                        document_path,
                        str(canvas_width_px),
                        str(canvas_height_px),
                    ],
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    text=True,
                    encoding="utf-8",
                    errors="replace",
                    timeout=self.timeout_seconds,
                    check=False,
                )
        except subprocess.TimeoutExpired:
            LOGGER.warning(
                "%s: %s timed out after %ss",
                PRECISE_UNAVAILABLE_CODE,
                self.command,
                self.timeout_seconds,
            )
            return False
        except OSError as exc:
            LOGGER.warning(
                "%s: %s could not be executed (%s)",
                PRECISE_UNAVAILABLE_CODE,
                self.command,
                str(exc).strip(),
            )
            return False
        if result.returncode != 0:
            LOGGER.warning(
                "%s: %s failed with exit code %s",
                PRECISE_UNAVAILABLE_CODE,
                self.command,
                result.returncode,
            )
            return False
        dimensions = parse_measurement_report(result.stdout)
        if not dimensions:
            LOGGER.warning(
                "%s: %s produced no dimensions", PRECISE_UNAVAILABLE_CODE, self.command
            )
            return False
        for index, text_value in enumerate(texts):
            dimension = dimensions.get(index)
            if dimension is not None and text_value not in self.measured:
                self.measured[text_value] = dimension
        return True

    def __call__(self, request: MeasurementRequest) -> Dimension | None:
        return self.measured.get(request.text)


@dataclass
class TextDimensionEstimator:
    """Run measurement strategies in order and post-process the winner."""

    resolver: FontProfileResolver
    strategies: Tuple[Tuple[str, MeasurementStrategy], ...] = ()
    verbose: bool = False

    def build_request(
        self, text_value: str, font_size_px: float, font_name: str, line_spacing: float
    ) -> MeasurementRequest:
        """Resolve the font profile and effective script for a text."""
        profile = self.resolver.resolve(font_name)
        script = profile.script_override or classify_text(text_value)
        return MeasurementRequest(
            text=text_value,
            font_size_px=font_size_px,
            font_name=font_name,
            line_spacing=line_spacing,
            profile=profile,
            script=script,
        )

    def estimate(
        self,
        text_value: str,
        font_size_px: float,
        font_name: str,
        width_correction: float = 0.95,
        line_spacing: float = 1.2,
    ) -> Dimension:
        """Return the padded-box-ready dimensions of a (multi-line) text."""
        request = self.build_request(text_value, font_size_px, font_name, line_spacing)
        raw_dimension: Dimension | None = None
        tier_name = "empirical"
        for name, strategy in self.strategies:
            raw_dimension = strategy(request)
            if raw_dimension is not None:
                tier_name = name
                break
        if raw_dimension is None:
            raw_dimension = empirical_dimensions(request)

        width = apply_width_corrections(
            raw_dimension.width, text_value, font_size_px, width_correction
        )
        dimension = Dimension(width=width, height=max(0.0, raw_dimension.height))
        if self.verbose:
            LOGGER.info(
                "%s: %r tier=%s script=%s category=%s raw=%.2fx%.2f final=%.2fx%.2f",
                MEASURE_DETAIL_CODE,
                text_value[:20],
                tier_name,
                request.script.value,
                request.profile.category.value,
                raw_dimension.width,
                raw_dimension.height,
                dimension.width,
                dimension.height,
            )
        return dimension


def build_estimator(
    config: LayoutConfig,
    resolver: FontProfileResolver | None = None,
    locator: FontFileLocator | None = None,
    delegated: DelegatedMeasurement | None = None,
) -> TextDimensionEstimator:
    """Assemble the strategy tiers enabled by the run configuration."""
    strategies: list[Tuple[str, MeasurementStrategy]] = []
    if config.use_precise_measurement and delegated is not None:
        strategies.append(("precise", delegated))
    if config.use_local_rasterization:
        if locator is None:
            extra_dirs: Tuple[Path, ...] = ()
            if config.fonts_dir:
                extra_dirs = (Path(config.fonts_dir).expanduser(),)
            locator = FontFileLocator(extra_dirs=extra_dirs)
        strategies.append(("raster", RasterMeasurement(locator)))
    return TextDimensionEstimator(
        resolver=resolver or FontProfileResolver(),
        strategies=tuple(strategies),
        verbose=config.verbose,
    )
