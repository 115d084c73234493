class ToneCurveError(ValueError):
    """
    Base class for validation failures of curves, LUTs and cubes.
    """


class InsufficientPointsError(ToneCurveError):
    def __init__(self, minimum: int, actual: int) -> None:
        super().__init__(f"Curve needs at least {minimum} points, got {actual}")
        self.minimum = minimum
        self.actual = actual


class NonFinitePointError(ToneCurveError):
    def __init__(self, x: float, y: float) -> None:
        super().__init__(f"Control point ({x}, {y}) is not finite")
        self.x = x
        self.y = y


class NonIncreasingXError(ToneCurveError):
    def __init__(self, index: int) -> None:
        super().__init__(f"Control point {index} does not increase in x")
        self.index = index


class InvalidResolutionError(ToneCurveError):
    def __init__(self, resolution: int) -> None:
        super().__init__(f"LUT resolution must be >= 2, got {resolution}")
        self.resolution = resolution


class InvalidDimensionError(ToneCurveError):
    def __init__(self, dimension: int) -> None:
        super().__init__(f"Cube dimension must be >= 2, got {dimension}")
        self.dimension = dimension


class CurveEditError(ToneCurveError):
    """
    An interactive edit was refused; the curve it was applied to is unchanged.
    """


class RenderError(RuntimeError):
    """
    The renderer could not produce an image. The underlying failure is chained as __cause__.
    """


class RenderCancelledError(Exception):
    """
    The request was superseded or cancelled; no result was delivered and no state changed.
    Deliberately not a RenderError so callers never present it as a failure.
    """
