"""Layout and style configuration for rounded_subtitles."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
import json
from pathlib import Path
import re
from typing import Any, Tuple

from domain.subtitle_cues import (
    INPUT_FILE_CODE,
    INVALID_COLOR_CODE,
    INVALID_CONFIG_CODE,
    SubtitleValidationError,
)

DEFAULT_FONT_NAME = "Arial"
DEFAULT_FONT_SIZE_PX = 48
DEFAULT_CANVAS_WIDTH_PX = 1920
DEFAULT_CANVAS_HEIGHT_PX = 1080
DEFAULT_PRECISE_MEASUREMENT_COMMAND = "mass"
HEX_COLOR_PATTERN = re.compile(r"#?([0-9a-fA-F]{6})")


def require_number(name: str, value: Any) -> None:
    """Reject values that are not int or float; bool is not a number here."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise SubtitleValidationError(
            INVALID_CONFIG_CODE, f"{name} must be a number, got {value!r}"
        )


def require_integer(name: str, value: Any) -> None:
    """Reject values that are not whole ints."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise SubtitleValidationError(
            INVALID_CONFIG_CODE, f"{name} must be an integer, got {value!r}"
        )


def require_flag(name: str, value: Any) -> None:
    """Reject values that are not true or false."""
    if not isinstance(value, bool):
        raise SubtitleValidationError(
            INVALID_CONFIG_CODE, f"{name} must be true or false, got {value!r}"
        )


def require_text(name: str, value: Any) -> None:
    """Reject values that are not strings."""
    if not isinstance(value, str):
        raise SubtitleValidationError(
            INVALID_CONFIG_CODE, f"{name} must be a string, got {value!r}"
        )


@dataclass(frozen=True)
class LayoutConfig:
    """Immutable measurement and box-layout options for one conversion run."""

    font_name: str = DEFAULT_FONT_NAME
    font_size_px: float = DEFAULT_FONT_SIZE_PX
    width_correction: float = 0.95
    line_spacing: float = 1.2
    padding_x_px: float = 20
    padding_y_px: float = 10
    border_radius_px: float = 10
    min_width_ratio: float = 0.0
    max_width_ratio: float = 0.9
    enforce_min_width: bool = False
    canvas_width_px: int = DEFAULT_CANVAS_WIDTH_PX
    canvas_height_px: int = DEFAULT_CANVAS_HEIGHT_PX
    use_precise_measurement: bool = True
    use_local_rasterization: bool = True
    precise_measurement_command: str = DEFAULT_PRECISE_MEASUREMENT_COMMAND
    precise_measurement_timeout_seconds: float = 10.0
    fonts_dir: str | None = None
    verbose: bool = False

    def __post_init__(self) -> None:
        for name in (
            "font_size_px",
            "width_correction",
            "line_spacing",
            "padding_x_px",
            "padding_y_px",
            "border_radius_px",
            "min_width_ratio",
            "max_width_ratio",
            "precise_measurement_timeout_seconds",
        ):
            require_number(name, getattr(self, name))
        require_integer("canvas_width_px", self.canvas_width_px)
        require_integer("canvas_height_px", self.canvas_height_px)
        for name in (
            "enforce_min_width",
            "use_precise_measurement",
            "use_local_rasterization",
            "verbose",
        ):
            require_flag(name, getattr(self, name))
        require_text("font_name", self.font_name)
        require_text("precise_measurement_command", self.precise_measurement_command)
        if self.fonts_dir is not None:
            require_text("fonts_dir", self.fonts_dir)
        if not self.font_name.strip():
            raise SubtitleValidationError(
                INVALID_CONFIG_CODE, "font_name must be non-empty"
            )
        if self.font_size_px <= 0:
            raise SubtitleValidationError(
                INVALID_CONFIG_CODE, "font_size_px must be positive"
            )
        if self.width_correction <= 0:
            raise SubtitleValidationError(
                INVALID_CONFIG_CODE, "width_correction must be positive"
            )
        if self.line_spacing <= 0:
            raise SubtitleValidationError(
                INVALID_CONFIG_CODE, "line_spacing must be positive"
            )
        if self.canvas_width_px <= 0 or self.canvas_height_px <= 0:
            raise SubtitleValidationError(
                INVALID_CONFIG_CODE, "canvas width and height must be positive"
            )
        if not 0.0 <= self.min_width_ratio <= 1.0:
            raise SubtitleValidationError(
                INVALID_CONFIG_CODE, "min_width_ratio must be within [0, 1]"
            )
        if not 0.0 < self.max_width_ratio <= 1.0:
            raise SubtitleValidationError(
                INVALID_CONFIG_CODE, "max_width_ratio must be within (0, 1]"
            )
        if self.precise_measurement_timeout_seconds <= 0:
            raise SubtitleValidationError(
                INVALID_CONFIG_CODE,
                "precise_measurement_timeout_seconds must be positive",
            )
        if self.fonts_dir is not None and not self.fonts_dir.strip():
            raise SubtitleValidationError(
                INVALID_CONFIG_CODE, "fonts_dir must be non-empty"
            )


@dataclass(frozen=True)
class OverlayStyle:
    """Colors and placement shared by every emitted cue."""

    text_color: str = "FFFFFF"
    background_color: str = "000000"
    background_alpha: int = 80
    margin_bottom_px: int = 50

    def __post_init__(self) -> None:
        require_text("text_color", self.text_color)
        require_text("background_color", self.background_color)
        require_integer("background_alpha", self.background_alpha)
        require_integer("margin_bottom_px", self.margin_bottom_px)
        parse_hex_color(self.text_color)
        parse_hex_color(self.background_color)
        if not 0 <= self.background_alpha <= 255:
            raise SubtitleValidationError(
                INVALID_CONFIG_CODE, "background_alpha must be within [0, 255]"
            )
        if self.margin_bottom_px < 0:
            raise SubtitleValidationError(
                INVALID_CONFIG_CODE, "margin_bottom_px must be non-negative"
            )


def parse_hex_color(color_value: str) -> Tuple[int, int, int]:
    """Parse an RRGGBB color (optional leading #) into an RGB tuple."""
    match_value = HEX_COLOR_PATTERN.fullmatch(color_value.strip())
    if not match_value:
        raise SubtitleValidationError(
            INVALID_COLOR_CODE, f"invalid color value: {color_value!r}"
        )
    rgb_hex = match_value.group(1)
    return (int(rgb_hex[0:2], 16), int(rgb_hex[2:4], 16), int(rgb_hex[4:6], 16))


def load_config_file(path: str | None) -> dict[str, Any]:
    """Load overrides from a JSON config file; None yields no overrides."""
    if not path:
        return {}
    config_path = Path(path)
    try:
        raw_text = config_path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise SubtitleValidationError(
            INPUT_FILE_CODE, f"config file not found: {path}"
        ) from exc
    except OSError as exc:
        raise SubtitleValidationError(
            INPUT_FILE_CODE, f"config file error: {path}"
        ) from exc
    try:
        data = json.loads(raw_text)
    except json.JSONDecodeError as exc:
        raise SubtitleValidationError(
            INVALID_CONFIG_CODE, f"config file is not valid JSON: {exc.msg}"
        ) from exc
    if not isinstance(data, dict):
        raise SubtitleValidationError(
            INVALID_CONFIG_CODE, "config must be a JSON object at top-level"
        )
    return data


def split_overrides(
    overrides: dict[str, Any],
) -> Tuple[dict[str, Any], dict[str, Any]]:
    """Split flat overrides into LayoutConfig and OverlayStyle fields."""
    layout_names = {field.name for field in dataclasses.fields(LayoutConfig)}
    style_names = {field.name for field in dataclasses.fields(OverlayStyle)}
    layout_overrides = {k: v for k, v in overrides.items() if k in layout_names}
    style_overrides = {k: v for k, v in overrides.items() if k in style_names}
    return layout_overrides, style_overrides


def apply_overrides(base: Any, overrides: dict[str, Any]) -> Any:
    """Return a copy of a config dataclass with known fields overridden."""
    known = {field.name for field in dataclasses.fields(base)}
    changes = {k: v for k, v in overrides.items() if k in known and v is not None}
    if not changes:
        return base
    try:
        return dataclasses.replace(base, **changes)
    except TypeError as exc:
        raise SubtitleValidationError(INVALID_CONFIG_CODE, str(exc)) from exc
