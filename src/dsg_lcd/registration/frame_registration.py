"""Synchronous frame-to-frame registration service used by the agent solver.

The service takes two frame ids (query and match keyframes of the visual
odometry front end) and returns whether they could be registered together
with the relative pose ``match_T_query``.

``FrameRegistrationService`` is the capability the agent solver depends on.
``QueueFrameRegistrationClient`` and ``serve_frame_registration`` implement
it over a pair of (multiprocessing) queues, with the server running in
another process or thread.
"""

from __future__ import annotations

import itertools
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from queue import Empty
from typing import Any, Callable

import numpy as np

logger = logging.getLogger(__name__)


@dataclass
class FrameRegistrationRequest:
    """Request to register two keyframes.

    Attributes:
        query: Frame id of the query keyframe
        match: Frame id of the matched keyframe
        request_id: Id used to pair responses with requests
    """

    query: int
    match: int
    request_id: int = 0


@dataclass
class FrameRegistrationResponse:
    """Frame registration result.

    Attributes:
        valid: Whether the frames could be registered
        match_q_query: Relative orientation as a (w, x, y, z) quaternion
        match_t_query: Relative translation
        request_id: Id of the request this answers
    """

    valid: bool
    match_q_query: np.ndarray = field(
        default_factory=lambda: np.array([1.0, 0.0, 0.0, 0.0])
    )
    match_t_query: np.ndarray = field(default_factory=lambda: np.zeros(3))
    request_id: int = 0


@dataclass
class FrameRegistrationShutdownMessage:
    """Signal to stop a frame registration server."""

    pass


class FrameRegistrationService(ABC):
    """Blocking frame registration capability."""

    @abstractmethod
    def exists(self) -> bool:
        """Whether the service is reachable."""

    @abstractmethod
    def call(
        self, request: FrameRegistrationRequest
    ) -> FrameRegistrationResponse | None:
        """Send a request and wait for the response.

        Returns:
            The response, or None if the call itself failed
        """


class QueueFrameRegistrationClient(FrameRegistrationService):
    """Frame registration client talking to a server through queues."""

    def __init__(
        self,
        to_server: Any,
        from_server: Any,
        timeout: float = 5.0,
        is_alive: Callable[[], bool] | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            to_server: Queue requests are sent on
            from_server: Queue responses are received on
            timeout: Seconds to wait for a response
            is_alive: Liveness probe of the server (always alive if None)
        """
        self._to_server = to_server
        self._from_server = from_server
        self._timeout = timeout
        self._is_alive = is_alive
        self._request_ids = itertools.count()

    def exists(self) -> bool:
        if self._to_server is None or self._from_server is None:
            return False
        return self._is_alive is None or bool(self._is_alive())

    def call(
        self, request: FrameRegistrationRequest
    ) -> FrameRegistrationResponse | None:
        request.request_id = next(self._request_ids)
        try:
            self._to_server.put(request)
        except (ValueError, OSError) as e:
            logger.error(f"Failed to send frame registration request: {e}")
            return None

        deadline = time.monotonic() + self._timeout
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                logger.error(
                    f"Frame registration timed out after {self._timeout:.1f} s"
                )
                return None

            try:
                response = self._from_server.get(timeout=remaining)
            except Empty:
                continue
            except (ValueError, OSError, EOFError) as e:
                logger.error(f"Failed to receive frame registration response: {e}")
                return None

            if not isinstance(response, FrameRegistrationResponse):
                logger.error(
                    f"Unexpected frame registration reply {type(response).__name__}"
                )
                return None

            if response.request_id != request.request_id:
                logger.debug(f"Dropping stale response {response.request_id}")
                continue
            return response


def serve_frame_registration(
    requests: Any,
    responses: Any,
    handler: Callable[[FrameRegistrationRequest], FrameRegistrationResponse],
    poll_timeout: float = 1.0,
) -> None:
    """Answer frame registration requests until a shutdown message arrives.

    Args:
        requests: Queue requests are received on
        responses: Queue responses are sent on
        handler: Computes the response for a request
        poll_timeout: Seconds to block on the request queue per poll
    """
    logger.info("Frame registration server started")

    while True:
        try:
            msg = requests.get(timeout=poll_timeout)
        except Empty:
            continue

        if isinstance(msg, FrameRegistrationShutdownMessage):
            logger.info("Frame registration server shutdown received")
            break

        if not isinstance(msg, FrameRegistrationRequest):
            logger.warning(f"Ignoring unexpected message {type(msg).__name__}")
            continue

        try:
            response = handler(msg)
        except Exception:
            logger.exception(
                f"Frame registration handler failed for {msg.query} -> {msg.match}"
            )
            response = FrameRegistrationResponse(valid=False)

        response.request_id = msg.request_id
        responses.put(response)

    logger.info("Frame registration server stopped")
