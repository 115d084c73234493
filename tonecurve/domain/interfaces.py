from typing import Any, Awaitable, Protocol, runtime_checkable

from tonecurve.domain.types import ImageBuffer


@runtime_checkable
class IRenderer(Protocol):
    """
    Applies a curve set to an image. May be synchronous or return an awaitable.
    One call per coordinator is in flight at a time.
    """

    name: str

    def render(self, image: ImageBuffer, curve_set: Any) -> ImageBuffer | Awaitable[ImageBuffer]: ...
