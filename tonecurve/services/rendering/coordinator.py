"""
Single-flight render coordination.

Each RenderCoordinator runs one owner task that consumes an inbox of messages
(new requests, finished work, cancellations, shutdown). Only the owner touches
the serial counter and the in-flight handle, so supersession is decided in one
place: the newest issued request is the only one whose result can be delivered.
"""

import asyncio
import inspect
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Optional

from tonecurve.domain.errors import RenderCancelledError, RenderError
from tonecurve.domain.interfaces import IRenderer
from tonecurve.domain.types import ImageBuffer
from tonecurve.features.curves.models import ToneCurveSet
from tonecurve.kernel.system.logging import get_logger

logger = get_logger(__name__)


class RenderState(StrEnum):
    IDLE = "idle"
    RENDERING = "rendering"
    SUPERSEDED = "superseded"


@dataclass(eq=False)
class _RenderRequest:
    image: ImageBuffer
    curve_set: ToneCurveSet
    reply: asyncio.Future
    serial: int = 0
    cancelled: bool = False
    task: Optional[asyncio.Task] = field(default=None, repr=False)


@dataclass(frozen=True, eq=False)
class _Completion:
    request: _RenderRequest
    task: asyncio.Task


@dataclass(frozen=True)
class _CancelInFlight:
    pass


@dataclass(frozen=True, eq=False)
class _Abandon:
    reply: asyncio.Future


@dataclass(frozen=True)
class _Shutdown:
    pass


class RenderCoordinator:
    """
    Serializes renders against one renderer with last-issued-wins delivery.

    render() cancels whatever is in flight and starts the new request; a request
    that was superseded or explicitly cancelled raises RenderCancelledError
    instead of delivering its image, even if the renderer already finished it.
    """

    def __init__(self, renderer: IRenderer, name: str = "render") -> None:
        self.renderer = renderer
        self.name = name
        self._serial = 0
        self._in_flight: Optional[_RenderRequest] = None
        self._last_outcome = RenderState.IDLE
        self._inbox: Optional[asyncio.Queue] = None
        self._owner: Optional[asyncio.Task] = None
        self._closed = False

    async def __aenter__(self) -> "RenderCoordinator":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    @property
    def backend_name(self) -> str:
        return getattr(self.renderer, "name", type(self.renderer).__name__)

    @property
    def serial(self) -> int:
        return self._serial

    @property
    def state(self) -> RenderState:
        if self._in_flight is not None:
            return RenderState.RENDERING
        return self._last_outcome

    @property
    def is_rendering(self) -> bool:
        return self._in_flight is not None

    def status_text(self) -> str:
        return f"Rendered using {self.backend_name}."

    async def render(self, image: ImageBuffer, curve_set: ToneCurveSet) -> ImageBuffer:
        if self._closed:
            raise RenderCancelledError(f"{self.name}: coordinator is closed")

        reply = asyncio.get_running_loop().create_future()
        self._post(_RenderRequest(image=image, curve_set=curve_set, reply=reply))
        try:
            return await reply
        except asyncio.CancelledError:
            # The caller stopped waiting; its work must not keep running.
            self._post(_Abandon(reply))
            raise

    def cancel_in_flight(self) -> None:
        """
        Cancels the current request without starting a new one. Safe to call repeatedly.
        """
        if self._inbox is None or self._owner is None or self._owner.done():
            return
        self._inbox.put_nowait(_CancelInFlight())

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._owner is None or self._owner.done() or self._inbox is None:
            return
        self._inbox.put_nowait(_Shutdown())
        await asyncio.shield(self._owner)

    def _post(self, message: Any) -> None:
        if self._owner is None or self._owner.done():
            self._inbox = asyncio.Queue()
            self._owner = asyncio.get_running_loop().create_task(self._run(self._inbox), name=f"{self.name}-coordinator")
        assert self._inbox is not None
        self._inbox.put_nowait(message)

    async def _run(self, inbox: asyncio.Queue) -> None:
        try:
            while True:
                message = await inbox.get()
                if isinstance(message, _RenderRequest):
                    self._start(message, inbox)
                elif isinstance(message, _Completion):
                    self._complete(message.request, message.task)
                elif isinstance(message, _CancelInFlight):
                    self._cancel_current("cancelled")
                elif isinstance(message, _Abandon):
                    if self._in_flight is not None and self._in_flight.reply is message.reply:
                        self._cancel_current("abandoned")
                elif isinstance(message, _Shutdown):
                    return
        finally:
            self._cancel_current("shut down")
            while not inbox.empty():
                pending = inbox.get_nowait()
                if isinstance(pending, _RenderRequest):
                    self._resolve_cancelled(pending, "shut down")

    def _start(self, request: _RenderRequest, inbox: asyncio.Queue) -> None:
        if request.reply.done():
            return

        self._serial += 1
        request.serial = self._serial

        if self._in_flight is not None:
            logger.debug(f"{self.name}: request #{self._in_flight.serial} superseded by #{request.serial}")
            self._cancel_current("superseded")

        task = asyncio.get_running_loop().create_task(self._execute(request))
        task.add_done_callback(lambda t, r=request: inbox.put_nowait(_Completion(r, t)))
        request.task = task
        self._in_flight = request

    def _cancel_current(self, reason: str) -> None:
        request = self._in_flight
        if request is None:
            return
        self._in_flight = None
        request.cancelled = True
        if request.task is not None:
            request.task.cancel()
        self._resolve_cancelled(request, reason)
        self._last_outcome = RenderState.SUPERSEDED

    def _resolve_cancelled(self, request: _RenderRequest, reason: str) -> None:
        if not request.reply.done():
            request.reply.set_exception(RenderCancelledError(f"{self.name}: request #{request.serial} {reason}"))

    def _complete(self, request: _RenderRequest, task: asyncio.Task) -> None:
        if self._in_flight is request:
            self._in_flight = None

        error = None if task.cancelled() else task.exception()

        if task.cancelled() or request.cancelled or request.serial != self._serial:
            # Finished work from a superseded request is dropped, never delivered.
            self._resolve_cancelled(request, "superseded")
            return

        if request.reply.done():
            return

        if error is not None:
            logger.error(f"{self.name}: request #{request.serial} failed: {error}")
            request.reply.set_exception(error)
        else:
            request.reply.set_result(task.result())
        self._last_outcome = RenderState.IDLE

    async def _execute(self, request: _RenderRequest) -> ImageBuffer:
        try:
            return await self._invoke(request.image, request.curve_set)
        except RenderError:
            raise
        except Exception as e:
            raise RenderError(f"{self.backend_name} render failed: {e}") from e

    async def _invoke(self, image: ImageBuffer, curve_set: ToneCurveSet) -> ImageBuffer:
        render = self.renderer.render
        if inspect.iscoroutinefunction(render):
            return await render(image, curve_set)

        result = await asyncio.to_thread(render, image, curve_set)
        if inspect.isawaitable(result):
            result = await result
        return result
