import asyncio
from dataclasses import dataclass
from enum import StrEnum
from typing import Callable, Optional

from tonecurve.domain.errors import RenderCancelledError, RenderError
from tonecurve.domain.types import ImageBuffer
from tonecurve.features.curves.models import ToneCurveSet
from tonecurve.kernel.system.config import APP_CONFIG, EngineConfig
from tonecurve.kernel.system.logging import get_logger, setup_logging
from tonecurve.services.rendering.coordinator import RenderCoordinator
from tonecurve.services.rendering.renderers import ColorCubeRenderer, create_renderer

logger = get_logger(__name__)


class RenderQuality(StrEnum):
    INTERACTIVE = "interactive"
    FULL = "full"


@dataclass(frozen=True)
class RenderTask:
    """
    Request parameters for a single render pass.
    """

    image: ImageBuffer
    curve_set: ToneCurveSet
    quality: RenderQuality
    generation: int = 0


class PreviewScheduler:
    """
    Drives a fast preview coordinator and a full-quality coordinator from a stream of edits.

    While a preview is in flight, further edits collapse into one pending task holding the
    latest curves; it is issued as soon as the current preview returns, until edits stop.
    """

    def __init__(
        self,
        preview: RenderCoordinator,
        full: RenderCoordinator,
        on_rendered: Callable[[ImageBuffer, RenderQuality], None],
        on_error: Optional[Callable[[RenderError], None]] = None,
    ) -> None:
        self.preview = preview
        self.full = full
        self._on_rendered = on_rendered
        self._on_error = on_error

        # Render Flow Control
        self._is_rendering = False
        self._pending_render_task: Optional[RenderTask] = None
        self._preview_loop: Optional[asyncio.Task] = None
        self._full_tasks: set[asyncio.Task] = set()

        # Requests issued so far, and the one that last asked for full quality
        self._generation = 0
        self._full_generation = 0

    @property
    def preview_in_flight(self) -> bool:
        return self._is_rendering

    @property
    def full_in_flight(self) -> bool:
        return any(not t.done() for t in self._full_tasks)

    @property
    def has_pending(self) -> bool:
        return self._pending_render_task is not None

    def request_preview(self, image: ImageBuffer, curve_set: ToneCurveSet) -> None:
        self._generation += 1
        task = RenderTask(image, curve_set, RenderQuality.INTERACTIVE, self._generation)

        if self._is_rendering:
            self._pending_render_task = task
            return

        self._is_rendering = True
        self._preview_loop = asyncio.get_running_loop().create_task(self._drain_previews(task))

    def begin_interaction(self) -> None:
        """
        A drag started: any full-quality render in flight is already stale.
        """
        self.full.cancel_in_flight()

    def request_full(self, image: ImageBuffer, curve_set: ToneCurveSet) -> None:
        # A late preview must not replace the full-quality result
        self._pending_render_task = None
        self.preview.cancel_in_flight()

        self._generation += 1
        self._full_generation = self._generation
        task = RenderTask(image, curve_set, RenderQuality.FULL, self._generation)
        full_task = asyncio.get_running_loop().create_task(self._render(self.full, task))
        self._full_tasks.add(full_task)
        full_task.add_done_callback(self._full_tasks.discard)

    async def wait_idle(self) -> None:
        while True:
            running = [t for t in self._tasks() if not t.done()]
            if not running:
                return
            await asyncio.gather(*running, return_exceptions=True)

    async def aclose(self) -> None:
        self._pending_render_task = None
        tasks = self._tasks()
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await self.preview.aclose()
        await self.full.aclose()

    def _tasks(self) -> list[asyncio.Task]:
        tasks = list(self._full_tasks)
        if self._preview_loop is not None:
            tasks.append(self._preview_loop)
        return tasks

    async def _drain_previews(self, task: RenderTask) -> None:
        next_task: Optional[RenderTask] = task
        try:
            while next_task is not None:
                await self._render(self.preview, next_task)
                next_task, self._pending_render_task = self._pending_render_task, None
        finally:
            self._is_rendering = False

    async def _render(self, coordinator: RenderCoordinator, task: RenderTask) -> None:
        try:
            image = await coordinator.render(task.image, task.curve_set)
        except RenderCancelledError as e:
            logger.debug(f"{task.quality} render cancelled: {e}")
            return
        except RenderError as e:
            logger.error(f"{task.quality} render failed: {e}")
            self._pending_render_task = None
            if self._on_error is not None:
                self._on_error(e)
            return

        if self._is_stale(task):
            logger.debug(f"{task.quality} render #{task.generation} outdated, dropped")
            return

        self._on_rendered(image, task.quality)

    def _is_stale(self, task: RenderTask) -> bool:
        if task.quality == RenderQuality.FULL:
            return task.generation != self._generation
        return task.generation < self._full_generation


def create_scheduler(
    on_rendered: Callable[[ImageBuffer, RenderQuality], None],
    on_error: Optional[Callable[[RenderError], None]] = None,
    config: EngineConfig = APP_CONFIG,
) -> PreviewScheduler:
    """
    Low-fidelity cube coordinator for previews, configured backend for full quality.
    Applies the configured log level to the engine logger.
    """
    setup_logging(config.log_level)
    preview = RenderCoordinator(ColorCubeRenderer(config.preview_cube_dimension), name="preview")
    full = RenderCoordinator(
        create_renderer(config.backend, config.lut_resolution, config.cube_dimension),
        name="full",
    )
    return PreviewScheduler(preview, full, on_rendered, on_error)
