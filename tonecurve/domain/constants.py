# Two control points closer than this on the x axis are treated as the same input level.
CURVE_EPSILON: float = 1e-6

CURVE_MIN_VALUE: float = 0.0
CURVE_MAX_VALUE: float = 1.0

# Point count of the canonical linear curve
DEFAULT_POINT_COUNT: int = 5
MIN_CURVE_POINTS: int = 2

# Interactive editing keeps at least three and at most seventeen points
MIN_EDITABLE_POINTS: int = 3
MAX_EDITABLE_POINTS: int = 17

DEFAULT_LUT_RESOLUTION: int = 1024
MIN_LUT_RESOLUTION: int = 2

DEFAULT_CUBE_DIMENSION: int = 64
MIN_CUBE_DIMENSION: int = 2

# Display path density for the editor overlay
DEFAULT_SAMPLES_PER_SEGMENT: int = 48

# Minimum horizontal gap kept between a dragged point and its neighbours
DRAG_X_EPSILON: float = 0.001

# Fritsch-Carlson bound: tangent ratios inside a circle of radius 3 keep a segment monotone
MONOTONE_RADIUS_SQ: float = 9.0
