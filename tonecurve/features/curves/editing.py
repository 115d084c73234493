import math
from typing import Sequence

from tonecurve.domain.constants import DRAG_X_EPSILON, MAX_EDITABLE_POINTS, MIN_EDITABLE_POINTS
from tonecurve.domain.errors import CurveEditError, NonFinitePointError
from tonecurve.features.curves.models import CurvePoint, ToneCurve


def constrained_drag_point(
    candidate: CurvePoint,
    index: int,
    points: Sequence[CurvePoint],
    lock_endpoints: bool = True,
    x_epsilon: float = DRAG_X_EPSILON,
) -> CurvePoint:
    """
    Limits a dragged point so it cannot cross its neighbours or leave the unit square.
    Locked endpoints may only move vertically.
    """
    clamped = candidate.clamped()
    if not 0 <= index < len(points):
        return clamped

    if lock_endpoints and index in (0, len(points) - 1):
        return CurvePoint(points[index].x, clamped.y)

    x = clamped.x
    if index > 0:
        x = max(x, points[index - 1].x + x_epsilon)
    if index < len(points) - 1:
        x = min(x, points[index + 1].x - x_epsilon)

    return CurvePoint(x, clamped.y).clamped()


def move_point(
    curve: ToneCurve,
    index: int,
    candidate: CurvePoint,
    lock_endpoints: bool = True,
    x_epsilon: float = DRAG_X_EPSILON,
) -> ToneCurve:
    points = list(curve.points)
    if not 0 <= index < len(points):
        raise IndexError(f"Point index {index} out of range for {len(points)} points")

    points[index] = constrained_drag_point(candidate, index, curve.points, lock_endpoints, x_epsilon)
    return curve.replace(points)


def insert_point(curve: ToneCurve, point: CurvePoint, x_epsilon: float = DRAG_X_EPSILON) -> ToneCurve:
    """
    Adds a control point strictly between two existing ones, at least x_epsilon from each.
    Existing points, endpoints included, are never moved or replaced by an insert.
    """
    if not point.is_finite:
        raise NonFinitePointError(point.x, point.y)
    if len(curve) >= MAX_EDITABLE_POINTS:
        raise CurveEditError(f"Curve already has the maximum of {MAX_EDITABLE_POINTS} points")

    candidate = point.clamped()
    points = list(curve.points)
    index = next((i for i, p in enumerate(points) if p.x > candidate.x), 0)
    if index == 0:
        raise CurveEditError(f"x={candidate.x} is not between two control points")

    left, right = points[index - 1], points[index]
    if candidate.x <= left.x + x_epsilon or candidate.x >= right.x - x_epsilon:
        raise CurveEditError(f"x={candidate.x} is too close to a neighbouring control point")

    points.insert(index, candidate)
    return curve.replace(points)


def remove_point(curve: ToneCurve, index: int) -> ToneCurve:
    points = list(curve.points)
    if not 0 <= index < len(points):
        raise IndexError(f"Point index {index} out of range for {len(points)} points")
    if index in (0, len(points) - 1):
        raise IndexError("Endpoints cannot be removed")
    if len(points) <= MIN_EDITABLE_POINTS:
        raise CurveEditError(f"Curve needs more than {MIN_EDITABLE_POINTS} points to remove one")

    del points[index]
    return curve.replace(points)


def nearest_point_index(
    points: Sequence[CurvePoint],
    target: CurvePoint,
    max_distance: float,
) -> int | None:
    """
    Index of the control point closest to target within max_distance.
    Later points win ties so overlapping handles pick the one drawn on top.
    """
    best_index = None
    best_distance = max_distance

    for index, point in enumerate(points):
        distance = math.hypot(point.x - target.x, point.y - target.y)
        if distance <= best_distance:
            best_distance = distance
            best_index = index

    return best_index
