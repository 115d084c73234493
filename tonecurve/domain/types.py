from typing import TypeAlias
import numpy as np
import numpy.typing as npt


# Image Types
# Floating point image 0.0 - 1.0 (Height, Width, Channels), 3 or 4 channels
ImageBuffer: TypeAlias = npt.NDArray[np.float32]

# Flat curve samples, one value per domain step
LutBuffer: TypeAlias = npt.NDArray[np.float32]

# Color cube (Blue, Green, Red, RGBA), red varies fastest in memory
CubeBuffer: TypeAlias = npt.NDArray[np.float32]

# (x, y) polyline in normalized curve space
PathBuffer: TypeAlias = npt.NDArray[np.float64]

RGBA_CHANNELS = 4
