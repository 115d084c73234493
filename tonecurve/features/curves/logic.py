"""
Monotone cubic (Fritsch-Carlson) sampling of tone curves and the LUTs derived from it.

The scalar path (sample) and the vectorized path (sample_array) evaluate the same
piecewise Hermite polynomial; LUT and path generation use the vectorized one.
"""

import math
from bisect import bisect_right
from typing import Sequence

import numpy as np

from tonecurve.domain.constants import (
    CURVE_EPSILON,
    CURVE_MAX_VALUE,
    CURVE_MIN_VALUE,
    DEFAULT_LUT_RESOLUTION,
    DEFAULT_SAMPLES_PER_SEGMENT,
    MIN_LUT_RESOLUTION,
    MONOTONE_RADIUS_SQ,
)
from tonecurve.domain.errors import InvalidResolutionError
from tonecurve.domain.types import LutBuffer, PathBuffer, RGBA_CHANNELS
from tonecurve.features.curves.models import CurvePoint, ToneCurve, ToneCurveSet


def _clamp_unit(value: float) -> float:
    return min(max(value, CURVE_MIN_VALUE), CURVE_MAX_VALUE)


def monotone_tangents(points: Sequence[CurvePoint]) -> list[float]:
    """
    Fritsch-Carlson tangents for a strictly increasing run of control points.

    Interior tangents are a width-weighted harmonic mean of the adjacent secants,
    or zero at local extrema and flat neighbours. Each segment's tangent pair is
    then pulled back inside the radius-3 circle so the segment cannot overshoot.
    """
    n = len(points)
    if n == 2:
        dx = points[1].x - points[0].x
        slope = 0.0 if dx <= CURVE_EPSILON else (points[1].y - points[0].y) / dx
        return [slope, slope]

    h = [0.0] * (n - 1)
    delta = [0.0] * (n - 1)
    for i in range(n - 1):
        h[i] = points[i + 1].x - points[i].x
        delta[i] = 0.0 if h[i] <= CURVE_EPSILON else (points[i + 1].y - points[i].y) / h[i]

    m = [0.0] * n
    m[0] = delta[0]
    m[n - 1] = delta[n - 2]

    for i in range(1, n - 1):
        d0, d1 = delta[i - 1], delta[i]
        if d0 == 0.0 or d1 == 0.0 or (d0 > 0.0) != (d1 > 0.0):
            m[i] = 0.0
        else:
            w1 = 2.0 * h[i] + h[i - 1]
            w2 = h[i] + 2.0 * h[i - 1]
            m[i] = (w1 + w2) / ((w1 / d0) + (w2 / d1))

    for i in range(n - 1):
        if abs(delta[i]) <= CURVE_EPSILON:
            m[i] = 0.0
            m[i + 1] = 0.0
            continue

        a = m[i] / delta[i]
        b = m[i + 1] / delta[i]
        magnitude = a * a + b * b
        if magnitude > MONOTONE_RADIUS_SQ:
            tau = 3.0 / math.sqrt(magnitude)
            m[i] = tau * a * delta[i]
            m[i + 1] = tau * b * delta[i]

    return m


def segment_index(points: Sequence[CurvePoint], x: float) -> int:
    """
    Index i of the segment with points[i].x <= x <= points[i + 1].x.
    On an interior knot the segment starting at that knot is chosen.
    """
    xs = [p.x for p in points]
    index = bisect_right(xs, x) - 1
    return max(0, min(len(points) - 2, index))


def evaluate_segment(points: Sequence[CurvePoint], tangents: Sequence[float], index: int, x: float) -> float:
    """
    Cubic Hermite value of segment `index` at x, clamped to [0, 1].
    """
    start, end = points[index], points[index + 1]
    h = end.x - start.x
    if h <= CURVE_EPSILON:
        return _clamp_unit(end.y)

    t = (x - start.x) / h
    t2 = t * t
    t3 = t2 * t

    h00 = 2.0 * t3 - 3.0 * t2 + 1.0
    h10 = t3 - 2.0 * t2 + t
    h01 = -2.0 * t3 + 3.0 * t2
    h11 = t3 - t2

    y = h00 * start.y + h10 * h * tangents[index] + h01 * end.y + h11 * h * tangents[index + 1]
    return _clamp_unit(y)


def _linear_sample(start: CurvePoint, end: CurvePoint, x: float) -> float:
    dx = end.x - start.x
    if dx <= CURVE_EPSILON:
        return _clamp_unit(end.y)
    t = (x - start.x) / dx
    return _clamp_unit(start.y + t * (end.y - start.y))


def sample(curve: ToneCurve, x: float) -> float:
    """
    Evaluates the curve at x. Inputs outside the knot range return the endpoint value.
    """
    points = curve.points
    if x <= points[0].x:
        return points[0].y
    if x >= points[-1].x:
        return points[-1].y

    if len(points) == 2:
        return _linear_sample(points[0], points[1], x)

    tangents = monotone_tangents(points)
    return evaluate_segment(points, tangents, segment_index(points, x), x)


def sample_array(curve: ToneCurve, xs: np.ndarray | Sequence[float]) -> np.ndarray:
    """
    Vectorized sample(): evaluates the curve at every x in xs (float64 result).
    """
    xs = np.asarray(xs, dtype=np.float64)
    points = curve.points
    px = np.array([p.x for p in points], dtype=np.float64)
    py = np.array([p.y for p in points], dtype=np.float64)
    n = len(points)

    idx = np.clip(np.searchsorted(px, xs, side="right") - 1, 0, n - 2)
    x0, x1 = px[idx], px[idx + 1]
    y0, y1 = py[idx], py[idx + 1]
    h = x1 - x0
    degenerate = h <= CURVE_EPSILON
    t = (xs - x0) / np.where(degenerate, 1.0, h)

    if n == 2:
        inner = y0 + t * (y1 - y0)
    else:
        m = np.asarray(monotone_tangents(points), dtype=np.float64)
        t2 = t * t
        t3 = t2 * t
        inner = (
            (2.0 * t3 - 3.0 * t2 + 1.0) * y0
            + (t3 - 2.0 * t2 + t) * h * m[idx]
            + (-2.0 * t3 + 3.0 * t2) * y1
            + (t3 - t2) * h * m[idx + 1]
        )

    inner = np.clip(np.where(degenerate, y1, inner), CURVE_MIN_VALUE, CURVE_MAX_VALUE)
    out = np.where(xs <= px[0], py[0], inner)
    return np.where(xs >= px[-1], py[-1], out)


def _domain(resolution: int) -> np.ndarray:
    if resolution < MIN_LUT_RESOLUTION:
        raise InvalidResolutionError(resolution)
    return np.arange(resolution, dtype=np.float64) / float(resolution - 1)


def make_lut(curve: ToneCurve, resolution: int = DEFAULT_LUT_RESOLUTION) -> LutBuffer:
    """
    Samples the curve at `resolution` evenly spaced inputs covering [0, 1] inclusive.
    """
    return sample_array(curve, _domain(resolution)).astype(np.float32)


def make_composite_lut(curve_set: ToneCurveSet, resolution: int = DEFAULT_LUT_RESOLUTION) -> LutBuffer:
    """
    Interleaved RGBA LUT [r0, g0, b0, a0, r1, ...] of master followed by each channel curve.
    """
    master = sample_array(curve_set.master, _domain(resolution))

    lut = np.empty((resolution, RGBA_CHANNELS), dtype=np.float32)
    lut[:, 0] = sample_array(curve_set.red, master)
    lut[:, 1] = sample_array(curve_set.green, master)
    lut[:, 2] = sample_array(curve_set.blue, master)
    lut[:, 3] = 1.0
    return lut.reshape(-1)


def sample_path(curve: ToneCurve, samples_per_segment: int = DEFAULT_SAMPLES_PER_SEGMENT) -> PathBuffer:
    """
    Dense (x, y) polyline for drawing the curve, denser for curves with more knots.
    """
    segment_count = max(1, len(curve.points) - 1)
    sample_count = max(2, segment_count * max(2, samples_per_segment) + 1)

    xs = np.arange(sample_count, dtype=np.float64) / float(sample_count - 1)
    return np.column_stack([xs, sample_array(curve, xs)])
