from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

PointF = Tuple[float, float]
PointI = Tuple[int, int]


def round_half_up(value: float, ndigits: int = 0) -> float:
    # Python's round() is banker's rounding; the quantization below must round .5 upwards
    # so that e.g. hue 120.5 and 121.0 land on the same integer degree.
    factor = 10 ** ndigits
    return math.floor(float(value) * factor + 0.5) / factor


def _finite_number(value: Any, name: str) -> Optional[float]:
    # Returns None for non-numeric input so pydantic's own type validation reports it.
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    value = float(value)
    if not math.isfinite(value):
        raise ValueError(f"{name} must be a finite number")
    return value


class ColorSpace(str, Enum):
    HSL = "hsl"
    HSB = "hsb"


class WireModel(BaseModel):
    """Immutable model serialized with camelCase keys on the worker/HTTP boundary."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        allow_inf_nan=False,
    )

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class RGB(WireModel):
    r: int
    g: int
    b: int

    @field_validator("r", "g", "b", mode="before")
    @classmethod
    def _clamp_channel(cls, value: Any) -> Any:
        number = _finite_number(value, "channel")
        if number is None:
            return value
        return int(min(max(round_half_up(number), 0), 255))

    def as_tuple(self) -> Tuple[int, int, int]:
        return self.r, self.g, self.b


class SampleParams(WireModel):
    """
    Inputs of one boundary computation.

    Values are quantized on construction (integer size, integer hue mod 360,
    alpha clamped and rounded to 2 decimals) so that numerically-equivalent
    requests produce bit-identical curves and identical fingerprints.
    """

    width: int
    height: int
    hue: int
    background_color: RGB
    foreground_alpha: float = 1.0
    threshold: float = Field(gt=0)
    color_space: ColorSpace = ColorSpace.HSB

    @field_validator("width", "height", mode="before")
    @classmethod
    def _round_size(cls, value: Any) -> Any:
        number = _finite_number(value, "size")
        if number is None:
            return value
        return int(round_half_up(number))

    @field_validator("hue", mode="before")
    @classmethod
    def _quantize_hue(cls, value: Any) -> Any:
        number = _finite_number(value, "hue")
        if number is None:
            return value
        return int(round_half_up(number)) % 360

    @field_validator("foreground_alpha", mode="before")
    @classmethod
    def _quantize_alpha(cls, value: Any) -> Any:
        number = _finite_number(value, "foreground_alpha")
        if number is None:
            return value
        return round_half_up(min(max(number, 0.0), 1.0), 2)

    def fingerprint(self) -> str:
        # Only the quantized values take part, so two requests with the same fingerprint
        # always describe the same computation.
        bg = self.background_color
        return (
            f"{self.hue}-{self.width}-{self.height}-{self.foreground_alpha}-"
            f"{self.threshold}-{self.color_space.value}-{bg.r}-{bg.g}-{bg.b}"
        )


class BezierSegment(WireModel):
    start: PointF
    cp1: PointF
    cp2: PointF
    end: PointF


class BoundaryInfo(WireModel):
    points: Tuple[PointI, ...]
    simplified_points: Tuple[PointF, ...]
    bezier_segments: Tuple[BezierSegment, ...]


class BoundaryCalculationResult(WireModel):
    # Either boundary may be absent when the transition does not happen inside the frame.
    lower_boundary: Optional[BoundaryInfo] = None
    upper_boundary: Optional[BoundaryInfo] = None
    threshold: float


class RecommendedPoint(WireModel):
    x: float
    y: float
    sl_x: float
    sl_y: float


@dataclass(frozen=True, slots=True)
class SafeInterval:
    """Maximal run of safe rows [start_y, end_y] (inclusive) inside one sampled column."""

    start_y: int
    end_y: int


@dataclass(frozen=True, slots=True)
class ColumnScan:
    x: int
    intervals: Tuple[SafeInterval, ...]


@dataclass(frozen=True, slots=True)
class ScanResult:
    columns: Tuple[ColumnScan, ...]
    # True when some sample other than the zero-chroma/zero-value origin met the threshold.
    any_non_origin_safe: bool


__all__ = [
    "BezierSegment",
    "BoundaryCalculationResult",
    "BoundaryInfo",
    "ColorSpace",
    "ColumnScan",
    "PointF",
    "PointI",
    "RGB",
    "RecommendedPoint",
    "SafeInterval",
    "SampleParams",
    "ScanResult",
    "WireModel",
    "round_half_up",
]
