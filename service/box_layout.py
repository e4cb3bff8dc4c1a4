"""Background box geometry and rounded-rectangle drawing paths."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Tuple

from domain.overlay_config import LayoutConfig
from service.text_measurement import Dimension

CANVAS_WIDTH_LIMIT_RATIO = 0.98
ZERO_PADDING_EXTRA_PX = 2.0
# Cubic control-point distance that approximates a quarter circle.
ARC_KAPPA = 0.5523

Point = Tuple[float, float]


class PathVerb(str, Enum):
    """Drawing commands shared with the ASS vector mini-language."""

    MOVE = "m"
    LINE = "l"
    BEZIER = "b"


@dataclass(frozen=True)
class PathCommand:
    """One drawing command with its points, relative to the box center."""

    verb: PathVerb
    points: Tuple[Point, ...]


@dataclass(frozen=True)
class BoxGeometry:
    """Half extents of a background box and the corner radius actually used."""

    half_width: float
    half_height: float
    effective_radius: float

    @property
    def width(self) -> float:
        """Full box width in pixels."""
        return self.half_width * 2

    @property
    def height(self) -> float:
        """Full box height in pixels."""
        return self.half_height * 2


def clamp_border_radius(
    half_width: float, half_height: float, requested_radius: float
) -> float:
    """Clamp a requested radius so the corners fit inside the box."""
    if requested_radius <= 0:
        return 0.0
    max_allowed_radius = max(1.0, min(half_width, half_height) - 1)
    return min(float(requested_radius), max_allowed_radius)


def compute_box_width(text_width: float, config: LayoutConfig) -> float:
    """Pad the text width and clamp it to the canvas limits."""
    padding_x = max(0.0, config.padding_x_px)
    if padding_x == 0:
        box_width = text_width + ZERO_PADDING_EXTRA_PX
    else:
        box_width = text_width + padding_x * 2
    if config.enforce_min_width:
        box_width = max(box_width, config.canvas_width_px * config.min_width_ratio)
    return min(
        box_width,
        config.canvas_width_px * CANVAS_WIDTH_LIMIT_RATIO,
        config.canvas_width_px * config.max_width_ratio,
    )


def compute_box_height(text_height: float, config: LayoutConfig) -> float:
    """Pad the text height; vertical padding has no zero special case."""
    return text_height + max(0.0, config.padding_y_px) * 2


def compute_box_geometry(dimension: Dimension, config: LayoutConfig) -> BoxGeometry:
    """Derive clamped box geometry from measured text dimensions."""
    half_width = compute_box_width(dimension.width, config) / 2
    half_height = compute_box_height(dimension.height, config) / 2
    return BoxGeometry(
        half_width=half_width,
        half_height=half_height,
        effective_radius=clamp_border_radius(
            half_width, half_height, config.border_radius_px
        ),
    )


def corner_arc(start: Point, corner: Point, end: Point) -> PathCommand:
    """Build a cubic segment from start to end bending toward the corner."""
    control_start = (
        start[0] + (corner[0] - start[0]) * ARC_KAPPA,
        start[1] + (corner[1] - start[1]) * ARC_KAPPA,
    )
    control_end = (
        end[0] + (corner[0] - end[0]) * ARC_KAPPA,
        end[1] + (corner[1] - end[1]) * ARC_KAPPA,
    )
    return PathCommand(PathVerb.BEZIER, (control_start, control_end, end))


def build_rectangle_path(
    half_width: float, half_height: float
) -> Tuple[PathCommand, ...]:
    """Build a closed four-sided path with square corners."""
    return (
        PathCommand(PathVerb.MOVE, ((-half_width, -half_height),)),
        PathCommand(PathVerb.LINE, ((half_width, -half_height),)),
        PathCommand(PathVerb.LINE, ((half_width, half_height),)),
        PathCommand(PathVerb.LINE, ((-half_width, half_height),)),
        PathCommand(PathVerb.LINE, ((-half_width, -half_height),)),
    )


def build_rounded_rect_path(geometry: BoxGeometry) -> Tuple[PathCommand, ...]:
    """Build a clockwise closed path for the box, rounding corners when radius > 0."""
    hw = geometry.half_width
    hh = geometry.half_height
    radius = geometry.effective_radius
    if radius <= 0:
        return build_rectangle_path(hw, hh)
    return (
        PathCommand(PathVerb.MOVE, ((-hw + radius, -hh),)),
        PathCommand(PathVerb.LINE, ((hw - radius, -hh),)),
        corner_arc((hw - radius, -hh), (hw, -hh), (hw, -hh + radius)),
        PathCommand(PathVerb.LINE, ((hw, hh - radius),)),
        corner_arc((hw, hh - radius), (hw, hh), (hw - radius, hh)),
        PathCommand(PathVerb.LINE, ((-hw + radius, hh),)),
        corner_arc((-hw + radius, hh), (-hw, hh), (-hw, hh - radius)),
        PathCommand(PathVerb.LINE, ((-hw, -hh + radius),)),
        corner_arc((-hw, -hh + radius), (-hw, -hh), (-hw + radius, -hh)),
    )


def layout_box(
    dimension: Dimension, config: LayoutConfig
) -> Tuple[BoxGeometry, Tuple[PathCommand, ...]]:
    """Compute box geometry and its drawing path for one measured text."""
    geometry = compute_box_geometry(dimension, config)
    return geometry, build_rounded_rect_path(geometry)
