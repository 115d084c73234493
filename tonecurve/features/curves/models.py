import math
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Iterable, Iterator, Sequence, Tuple

from tonecurve.domain.constants import (
    CURVE_EPSILON,
    CURVE_MAX_VALUE,
    CURVE_MIN_VALUE,
    DEFAULT_POINT_COUNT,
    MIN_CURVE_POINTS,
)
from tonecurve.domain.errors import (
    InsufficientPointsError,
    NonFinitePointError,
    NonIncreasingXError,
)


def _clamp(value: float) -> float:
    return min(max(value, CURVE_MIN_VALUE), CURVE_MAX_VALUE)


@dataclass(frozen=True)
class CurvePoint:
    """
    A control point in normalized (input, output) space.
    """

    x: float
    y: float

    @property
    def is_finite(self) -> bool:
        return math.isfinite(self.x) and math.isfinite(self.y)

    def clamped(self) -> "CurvePoint":
        return CurvePoint(_clamp(self.x), _clamp(self.y))


class CurveChannel(StrEnum):
    MASTER = "master"
    RED = "red"
    GREEN = "green"
    BLUE = "blue"


@dataclass(frozen=True)
class ToneCurve:
    """
    One channel's tone mapping as an immutable, validated run of control points.
    Construction clamps, sorts, deduplicates and pins the endpoints to x=0 and x=1.
    Editing never happens in place: replace() returns a new validated curve.
    """

    points: Tuple[CurvePoint, ...] = field()

    def __init__(self, points: Iterable[CurvePoint]) -> None:
        raw = tuple(points)
        self._validate_finite(raw)
        normalized = self.normalized(raw)
        self.validate(normalized)
        object.__setattr__(self, "points", normalized)

    @classmethod
    def from_pairs(cls, pairs: Iterable[Tuple[float, float]]) -> "ToneCurve":
        return cls(CurvePoint(float(x), float(y)) for x, y in pairs)

    @classmethod
    def linear(cls) -> "ToneCurve":
        return _LINEAR

    @property
    def is_linear(self) -> bool:
        return self == _LINEAR

    def replace(self, points: Iterable[CurvePoint]) -> "ToneCurve":
        """
        Builds the replacement curve. On failure self is untouched and still valid.
        """
        return ToneCurve(points)

    def as_pairs(self) -> list[Tuple[float, float]]:
        return [(p.x, p.y) for p in self.points]

    def __len__(self) -> int:
        return len(self.points)

    def __iter__(self) -> Iterator[CurvePoint]:
        return iter(self.points)

    def __getitem__(self, index: int) -> CurvePoint:
        return self.points[index]

    @staticmethod
    def normalized(points: Sequence[CurvePoint]) -> Tuple[CurvePoint, ...]:
        """
        Clamp, sort, collapse duplicate x (last wins) and pin the endpoints.
        Always succeeds; empty input yields an empty tuple.
        """
        if not points:
            return ()

        ordered = sorted((p.clamped() for p in points), key=lambda p: (p.x, p.y))

        deduped: list[CurvePoint] = []
        for point in ordered:
            if deduped and abs(deduped[-1].x - point.x) <= CURVE_EPSILON:
                deduped[-1] = point
            else:
                deduped.append(point)

        first, last = deduped[0], deduped[-1]
        if first.x > CURVE_MIN_VALUE:
            deduped.insert(0, CurvePoint(CURVE_MIN_VALUE, first.y))
        if last.x < CURVE_MAX_VALUE:
            deduped.append(CurvePoint(CURVE_MAX_VALUE, last.y))

        # Overwrite any float drift on the pinned endpoints
        deduped[0] = CurvePoint(CURVE_MIN_VALUE, deduped[0].y)
        deduped[-1] = CurvePoint(CURVE_MAX_VALUE, deduped[-1].y)

        return tuple(deduped)

    @staticmethod
    def validate(points: Sequence[CurvePoint]) -> None:
        if len(points) < MIN_CURVE_POINTS:
            raise InsufficientPointsError(MIN_CURVE_POINTS, len(points))

        for point in points:
            if not point.is_finite:
                raise NonFinitePointError(point.x, point.y)

        for index in range(1, len(points)):
            if points[index].x <= points[index - 1].x:
                raise NonIncreasingXError(index)

    @staticmethod
    def _validate_finite(points: Sequence[CurvePoint]) -> None:
        for point in points:
            if not point.is_finite:
                raise NonFinitePointError(point.x, point.y)


_STEP = 1.0 / (DEFAULT_POINT_COUNT - 1)
_LINEAR = ToneCurve(CurvePoint(i * _STEP, i * _STEP) for i in range(DEFAULT_POINT_COUNT))


@dataclass(frozen=True)
class ToneCurveSet:
    """
    Master plus per-channel curves. Master is applied first, then the channel curve.
    """

    master: ToneCurve = _LINEAR
    red: ToneCurve = _LINEAR
    green: ToneCurve = _LINEAR
    blue: ToneCurve = _LINEAR

    @classmethod
    def identity(cls) -> "ToneCurveSet":
        return cls()

    @property
    def is_identity(self) -> bool:
        return all(curve.is_linear for _, curve in self)

    def __getitem__(self, channel: CurveChannel | str) -> ToneCurve:
        return getattr(self, CurveChannel(channel).value)

    def __iter__(self) -> Iterator[Tuple[CurveChannel, ToneCurve]]:
        for channel in CurveChannel:
            yield channel, getattr(self, channel.value)

    def with_curve(self, channel: CurveChannel | str, curve: ToneCurve) -> "ToneCurveSet":
        curves = {c.value: existing for c, existing in self}
        curves[CurveChannel(channel).value] = curve
        return ToneCurveSet(**curves)
