import math
from typing import List, Optional, Sequence, Tuple

import numpy as np

from contrast_boundary.engine.types import BezierSegment, BoundaryInfo, PointF, PointI

# Simplification tolerance as a fraction of the point cloud's bounding-box extent.
SIMPLIFY_EPSILON_FACTOR = 0.02
CORNER_THRESHOLD_RAD = math.pi / 2.0

# Key points this close to the frame are snapped onto it and get hard corners.
EDGE_Y_TOLERANCE = 5
EDGE_X_TOLERANCE = 1

# Control point distance along the tangent, as a fraction of the chord length.
CONTROL_TENSION = 0.375

# Curve ends touching the top/bottom edge are pushed this far outside the frame
# so the drawn boundary does not show a flat clipped stub at the edge.
EDGE_OFFSET = 2
EDGE_SNAP = 1

SegmentPoints = Tuple[PointF, PointF, PointF, PointF]


def extend_to_edges(points: Sequence[PointI], width: int) -> List[PointI]:
    # The curves must span the full sampling area: reuse the nearest y at x=0 / x=width.
    if not points:
        return []
    pts = [(int(x), int(y)) for x, y in points]
    if pts[0][0] > 0:
        pts.insert(0, (0, pts[0][1]))
    else:
        pts[0] = (0, pts[0][1])
    if pts[-1][0] < width:
        pts.append((width, pts[-1][1]))
    else:
        pts[-1] = (width, pts[-1][1])
    return pts


def dedupe_consecutive(points: Sequence) -> list:
    out = []
    for p in points:
        if out and p[0] == out[-1][0] and p[1] == out[-1][1]:
            continue
        out.append(p)
    return out


def bounding_box_extent(points: Sequence) -> float:
    if len(points) == 0:
        return 1.0
    arr = np.asarray(points, dtype=np.float64)
    span = arr.max(axis=0) - arr.min(axis=0)
    extent = float(max(span[0], span[1]))
    return extent or 1.0


def _segment_distances(pts: np.ndarray, first: int, last: int) -> np.ndarray:
    # Distance of pts[first+1:last] to the closed segment pts[first] -> pts[last].
    a = pts[first]
    ab = pts[last] - a
    inner = pts[first + 1 : last] - a
    length_sq = float(ab @ ab)
    if length_sq == 0.0:
        return np.hypot(inner[:, 0], inner[:, 1])
    t = np.clip((inner @ ab) / length_sq, 0.0, 1.0)
    diff = inner - t[:, None] * ab
    return np.hypot(diff[:, 0], diff[:, 1])


def simplify_polyline(points: Sequence, epsilon: float) -> list:
    """
    Ramer-Douglas-Peucker reduction.

    Spans are processed from an explicit stack instead of recursion so long,
    nearly collinear runs cannot exhaust the interpreter's call stack. The kept
    set is the same as the recursive formulation: a span keeps its farthest
    point (first one on ties) when it deviates by more than ``epsilon``.
    """
    n = len(points)
    if n <= 2:
        return list(points)

    pts = np.asarray(points, dtype=np.float64)
    keep = np.zeros(n, dtype=bool)
    keep[0] = keep[-1] = True

    stack = [(0, n - 1)]
    while stack:
        first, last = stack.pop()
        if last - first < 2:
            continue
        distances = _segment_distances(pts, first, last)
        offset = int(np.argmax(distances))
        if float(distances[offset]) > epsilon:
            index = first + 1 + offset
            keep[index] = True
            stack.append((index, last))
            stack.append((first, index))

    return [p for p, k in zip(points, keep) if k]


def _snap_key_points(key_points: List[PointF], width: int, height: int) -> List[PointF]:
    if not key_points:
        return key_points

    def snap_y(y: float) -> float:
        if y <= EDGE_Y_TOLERANCE:
            return 0.0
        if y >= height - EDGE_Y_TOLERANCE:
            return float(height)
        return y

    fx, fy = key_points[0]
    if fx <= EDGE_X_TOLERANCE:
        fx = 0.0
    key_points[0] = (fx, snap_y(fy))
    if len(key_points) > 1:
        lx, ly = key_points[-1]
        key_points[-1] = (lx, snap_y(ly))
    return dedupe_consecutive(key_points)


def _chord_angle(p1: PointF, p2: PointF) -> float:
    return math.atan2(p2[1] - p1[1], p2[0] - p1[0])


def _angle_difference(a1: float, a2: float) -> float:
    diff = a2 - a1
    while diff <= -math.pi:
        diff += 2.0 * math.pi
    while diff > math.pi:
        diff -= 2.0 * math.pi
    return abs(diff)


def detect_corners(key_points: Sequence[PointF], threshold: float = CORNER_THRESHOLD_RAD) -> List[bool]:
    corners = [False] * len(key_points)
    if len(key_points) < 3:
        return corners
    prev_angle = _chord_angle(key_points[0], key_points[1])
    for i in range(1, len(key_points) - 1):
        angle = _chord_angle(key_points[i], key_points[i + 1])
        if _angle_difference(prev_angle, angle) > threshold:
            corners[i] = True
        prev_angle = angle
    return corners


def _unit(dx: float, dy: float) -> PointF:
    length = math.hypot(dx, dy)
    if length == 0.0:
        return 0.0, 0.0
    return dx / length, dy / length


def estimate_tangents(key_points: Sequence[PointF], corners: Sequence[bool]) -> List[Optional[PointF]]:
    # Corners get no tangent: both adjoining control points collapse onto them.
    n = len(key_points)
    tangents: List[Optional[PointF]] = [None] * n
    if n < 2:
        return tangents
    tangents[0] = _unit(key_points[1][0] - key_points[0][0], key_points[1][1] - key_points[0][1])
    tangents[-1] = _unit(key_points[-1][0] - key_points[-2][0], key_points[-1][1] - key_points[-2][1])
    for i in range(1, n - 1):
        if corners[i]:
            continue
        prev, nxt = key_points[i - 1], key_points[i + 1]
        tangents[i] = _unit(nxt[0] - prev[0], nxt[1] - prev[1])
    return tangents


def _is_sharp(point: PointF, corner: bool, width: int, height: int) -> bool:
    x, y = point
    return (
        corner
        or y <= EDGE_Y_TOLERANCE
        or y >= height - EDGE_Y_TOLERANCE
        or x <= EDGE_X_TOLERANCE
        or x >= width - EDGE_X_TOLERANCE
    )


def _clamp_y(point: PointF, height: int) -> PointF:
    # A cubic stays inside its control polygon's hull, so bounding control points
    # bounds the curve to the frame plus the edge offset.
    return point[0], min(max(point[1], -float(EDGE_OFFSET)), float(height + EDGE_OFFSET))


def build_segments(
    key_points: Sequence[PointF],
    corners: Sequence[bool],
    tangents: Sequence[Optional[PointF]],
    width: int,
    height: int,
) -> List[SegmentPoints]:
    segments: List[SegmentPoints] = []
    for i in range(len(key_points) - 1):
        p0 = key_points[i]
        p3 = key_points[i + 1]
        chord = math.hypot(p3[0] - p0[0], p3[1] - p0[1])
        reach = chord * CONTROL_TENSION

        cp1 = p0
        t0 = tangents[i]
        if t0 is not None and not _is_sharp(p0, corners[i], width, height):
            cp1 = _clamp_y((p0[0] + t0[0] * reach, p0[1] + t0[1] * reach), height)

        cp2 = p3
        t3 = tangents[i + 1]
        if t3 is not None and not _is_sharp(p3, corners[i + 1], width, height):
            cp2 = _clamp_y((p3[0] - t3[0] * reach, p3[1] - t3[1] * reach), height)

        segments.append((p0, cp1, cp2, p3))
    return segments


def soften_edges(segments: List[SegmentPoints], height: int) -> List[SegmentPoints]:
    if not segments:
        return segments
    top = -float(EDGE_OFFSET)
    bottom = float(height + EDGE_OFFSET)

    start, cp1, cp2, end = segments[0]
    if start[1] <= EDGE_SNAP:
        start, cp1 = (start[0], top), (cp1[0], min(cp1[1], top))
    elif start[1] >= height - EDGE_SNAP:
        start, cp1 = (start[0], bottom), (cp1[0], max(cp1[1], bottom))
    segments[0] = (start, cp1, cp2, end)

    start, cp1, cp2, end = segments[-1]
    if end[1] <= EDGE_SNAP:
        end, cp2 = (end[0], top), (cp2[0], min(cp2[1], top))
    elif end[1] >= height - EDGE_SNAP:
        end, cp2 = (end[0], bottom), (cp2[0], max(cp2[1], bottom))
    segments[-1] = (start, cp1, cp2, end)
    return segments


def fit_smooth_curve(
    points: Sequence[PointI],
    width: int,
    height: int,
    corner_threshold: float = CORNER_THRESHOLD_RAD,
) -> Tuple[List[PointF], List[SegmentPoints]]:
    """
    Fit piecewise cubic segments through a simplified version of ``points``.

    Returns the key points (the simplified, edge-snapped polyline) and one
    segment per consecutive key-point pair. Fewer than two key points yields
    no segments.
    """
    if len(points) < 2:
        return [], []

    epsilon = bounding_box_extent(points) * SIMPLIFY_EPSILON_FACTOR
    key_points = [(float(x), float(y)) for x, y in simplify_polyline(points, epsilon)]
    key_points = _snap_key_points(key_points, width, height)
    if len(key_points) < 2:
        return [], []

    corners = detect_corners(key_points, corner_threshold)
    tangents = estimate_tangents(key_points, corners)
    segments = build_segments(key_points, corners, tangents, width, height)
    return key_points, segments


def to_bezier_segments(segments: Sequence[SegmentPoints]) -> Tuple[BezierSegment, ...]:
    return tuple(BezierSegment(start=s, cp1=c1, cp2=c2, end=e) for s, c1, c2, e in segments)


def fit_boundary(raw_points: Sequence[PointI], width: int, height: int) -> Optional[BoundaryInfo]:
    # None means "no usable boundary"; the resolver decides what that implies.
    points = dedupe_consecutive(extend_to_edges(raw_points, width))
    if len(points) < 2:
        return None

    key_points, segments = fit_smooth_curve(points, width, height)
    if not segments:
        return None

    segments = soften_edges(segments, height)
    return BoundaryInfo(
        points=tuple(points),
        simplified_points=tuple(key_points),
        bezier_segments=to_bezier_segments(segments),
    )
