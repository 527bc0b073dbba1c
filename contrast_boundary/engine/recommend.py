from typing import NamedTuple, Optional, Tuple

import numpy as np

from contrast_boundary.engine.types import (
    BoundaryCalculationResult,
    BoundaryInfo,
    RecommendedPoint,
    round_half_up,
)

BEZIER_SAMPLES = 20
LINEAR_SAMPLES = 10
FIND_Y_SAMPLES = 50

# Recommended points sit this many pixels inside the safe side of a boundary.
SAFETY_MARGIN = 3.0
# A boundary whose ends average within this distance of the edge it hugs is ignored.
EDGE_THRESHOLD = 5.0


class NearestPoint(NamedTuple):
    x: float
    y: float
    distance: float


def evaluate_cubic(p0: np.ndarray, p1: np.ndarray, p2: np.ndarray, p3: np.ndarray, t: np.ndarray) -> np.ndarray:
    u = 1.0 - t
    return u * u * u * p0 + 3.0 * u * u * t * p1 + 3.0 * u * t * t * p2 + t * t * t * p3


def _control_points(boundary: BoundaryInfo) -> np.ndarray:
    # (segments, 4, 2): start, cp1, cp2, end
    return np.asarray(
        [[seg.start, seg.cp1, seg.cp2, seg.end] for seg in boundary.bezier_segments],
        dtype=np.float64,
    )


def sample_boundary(boundary: BoundaryInfo) -> np.ndarray:
    """
    Sample a boundary densely, in curve order.

    Bezier segments are evaluated at BEZIER_SAMPLES + 1 parameters each
    (endpoints included); a boundary without segments falls back to
    LINEAR_SAMPLES + 1 points per simplified-polyline edge. Returns (N, 2).
    """
    if boundary.bezier_segments:
        ctrl = _control_points(boundary)
        t = np.linspace(0.0, 1.0, BEZIER_SAMPLES + 1)[None, :, None]
        pts = evaluate_cubic(ctrl[:, None, 0], ctrl[:, None, 1], ctrl[:, None, 2], ctrl[:, None, 3], t)
        return pts.reshape(-1, 2)

    if len(boundary.simplified_points) >= 2:
        poly = np.asarray(boundary.simplified_points, dtype=np.float64)
        t = np.linspace(0.0, 1.0, LINEAR_SAMPLES + 1)[None, :, None]
        pts = poly[:-1, None, :] + (poly[1:, None, :] - poly[:-1, None, :]) * t
        return pts.reshape(-1, 2)

    return np.empty((0, 2), dtype=np.float64)


def find_nearest_point_on_boundary(
    boundary: Optional[BoundaryInfo],
    current_x: float,
    current_y: float,
    safety_offset: float,
    canvas_height: float,
) -> Optional[NearestPoint]:
    # Negative safety_offset moves samples up (above a lower boundary), positive moves them down.
    if boundary is None:
        return None

    samples = sample_boundary(boundary)
    if samples.size == 0:
        return None

    xs = samples[:, 0]
    ys = samples[:, 1] + float(safety_offset)
    valid = (ys >= 0.0) & (ys <= float(canvas_height))
    if not np.any(valid):
        return None

    distances = np.hypot(xs - float(current_x), ys - float(current_y))
    distances = np.where(valid, distances, np.inf)
    # argmin returns the first minimum, so the earliest sample wins exact ties.
    idx = int(np.argmin(distances))
    return NearestPoint(float(xs[idx]), float(ys[idx]), float(distances[idx]))


def pick_nearer(first: Optional[NearestPoint], second: Optional[NearestPoint]) -> Optional[NearestPoint]:
    # On an exact tie the first candidate (the one computed first) is kept.
    if first is None:
        return second
    if second is None:
        return first
    return first if first.distance <= second.distance else second


def boundary_x_range(boundary: Optional[BoundaryInfo]) -> Optional[Tuple[float, float]]:
    if boundary is None:
        return None
    if boundary.bezier_segments:
        xs = [p for seg in boundary.bezier_segments for p in (seg.start[0], seg.end[0])]
        return min(xs), max(xs)
    if len(boundary.simplified_points) >= 2:
        xs = [p[0] for p in boundary.simplified_points]
        return min(xs), max(xs)
    return None


def _find_y_on_segments(boundary: BoundaryInfo, x: float) -> Optional[float]:
    segments = boundary.bezier_segments

    min_x, max_x = np.inf, -np.inf
    left_y = right_y = 0.0
    for seg in segments:
        for px, py in (seg.start, seg.end):
            if px < min_x:
                min_x, left_y = px, py
            if px > max_x:
                max_x, right_y = px, py

    if x < min_x:
        return left_y
    if x > max_x:
        return right_y

    t = np.linspace(0.0, 1.0, FIND_Y_SAMPLES + 1)
    for seg in segments:
        lo = min(seg.start[0], seg.end[0])
        hi = max(seg.start[0], seg.end[0])
        if not (lo - 1.0 <= x <= hi + 1.0):
            continue
        bx = evaluate_cubic(seg.start[0], seg.cp1[0], seg.cp2[0], seg.end[0], t)
        by = evaluate_cubic(seg.start[1], seg.cp1[1], seg.cp2[1], seg.end[1], t)
        return float(by[int(np.argmin(np.abs(bx - x)))])
    return None


def _find_y_on_polyline(boundary: BoundaryInfo, x: float) -> Optional[float]:
    points = boundary.simplified_points
    if len(points) < 2:
        return None

    first_x, last_x = points[0][0], points[-1][0]
    ascending = first_x < last_x
    if x < min(first_x, last_x):
        return points[0][1] if ascending else points[-1][1]
    if x > max(first_x, last_x):
        return points[-1][1] if ascending else points[0][1]

    for (x0, y0), (x1, y1) in zip(points[:-1], points[1:]):
        if min(x0, x1) <= x <= max(x0, x1):
            if x1 == x0:
                return y0
            return y0 + (x - x0) / (x1 - x0) * (y1 - y0)
    return None


def find_y_at_x(boundary: Optional[BoundaryInfo], x: float) -> Optional[float]:
    """Boundary y at column ``x``; endpoint y outside the curve's x-range, None if unknown."""
    if boundary is None:
        return None
    if boundary.bezier_segments:
        y = _find_y_on_segments(boundary, x)
        if y is not None:
            return y
    return _find_y_on_polyline(boundary, x)


def _mean_end_y(boundary: Optional[BoundaryInfo]) -> Optional[float]:
    if boundary is None or not boundary.bezier_segments:
        return None
    segments = boundary.bezier_segments
    total = sum(seg.start[1] + seg.end[1] for seg in segments)
    return total / (len(segments) * 2)


def _in_range(x: float, x_range: Optional[Tuple[float, float]]) -> bool:
    return x_range is not None and x_range[0] <= x <= x_range[1]


def position_to_pixel(saturation: float, value: float, width: int, height: int) -> Tuple[float, float]:
    # Normalized picker coordinates -> pixel coordinates (y grows downwards).
    return round_half_up(saturation * width), round_half_up((1.0 - value) * height)


def calculate_recommended_point(
    result: Optional[BoundaryCalculationResult],
    current_x: float,
    current_y: float,
    width: int,
    height: int,
    safety_margin: float = SAFETY_MARGIN,
) -> Optional[RecommendedPoint]:
    """
    Nearest point on the safe side of the boundaries, or None.

    None is returned when there is nothing to project onto, when the current
    position is already inside the safe region, or when every candidate is
    clipped by the canvas.
    """
    if result is None or width <= 0 or height <= 0:
        return None
    if result.lower_boundary is None and result.upper_boundary is None:
        return None

    # A boundary hugging the edge it bounds (upper at the top, lower at the
    # bottom) leaves no room to move into; treat it as absent.
    upper_mean = _mean_end_y(result.upper_boundary)
    lower_mean = _mean_end_y(result.lower_boundary)
    lower = result.lower_boundary
    upper = result.upper_boundary
    if lower_mean is not None and lower_mean > height - EDGE_THRESHOLD:
        lower = None
    if upper_mean is not None and upper_mean < EDGE_THRESHOLD:
        upper = None

    lower_y = find_y_at_x(lower, current_x)
    upper_y = find_y_at_x(upper, current_x)
    above_lower = (
        lower_y is not None
        and _in_range(current_x, boundary_x_range(lower))
        and current_y < lower_y - safety_margin
    )
    below_upper = (
        upper_y is not None
        and _in_range(current_x, boundary_x_range(upper))
        and current_y > upper_y + safety_margin
    )

    if lower is not None and upper is None and above_lower:
        return None
    if upper is not None and lower is None and below_upper:
        return None
    if lower is not None and upper is not None and (above_lower or below_upper):
        return None

    nearest = pick_nearer(
        find_nearest_point_on_boundary(lower, current_x, current_y, -safety_margin, height),
        find_nearest_point_on_boundary(upper, current_x, current_y, safety_margin, height),
    )
    if nearest is None:
        return None

    x = min(max(nearest.x, 0.0), float(width))
    y = min(max(nearest.y, 0.0), float(height))
    return RecommendedPoint(x=x, y=y, sl_x=x / width, sl_y=1.0 - y / height)
