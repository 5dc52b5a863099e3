"""
Inbound webhook path: verify, parse, dispatch.

A request moves Received -> Verified -> Parsed -> Dispatched and ends as
Completed, HandlerError or Rejected. Rejection happens before the handler
is reached; a handler failure is confined to its own request.
"""

import enum
import inspect
import logging
import traceback
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from fastapi.concurrency import run_in_threadpool

from ghapp.errors import (
    GitHubAppError,
    HandlerError,
    MalformedPayload,
    MalformedSignature,
    SignatureMismatch,
    UnknownEventOrMalformedPayload,
)
from ghapp.events import Event, UnknownEvent, parse_event
from ghapp.github.signature import SignatureVerifier

logger = logging.getLogger(__name__)

# may return a value or an awaitable
Handler = Callable[[Event], Any]


def _is_async(handler: Handler) -> bool:
    return inspect.iscoroutinefunction(handler) or inspect.iscoroutinefunction(
        getattr(handler, "__call__", None)
    )


class DispatchState(enum.Enum):
    RECEIVED = "received"
    VERIFIED = "verified"
    PARSED = "parsed"
    DISPATCHED = "dispatched"
    REJECTED = "rejected"
    COMPLETED = "completed"
    HANDLER_ERROR = "handler_error"


@dataclass
class DispatchOutcome:
    state: DispatchState
    status_code: int
    event: Event | None = None
    error: GitHubAppError | None = None
    result: Any = None

    @property
    def ok(self) -> bool:
        return self.state is DispatchState.COMPLETED


def _reject(status_code: int, error: GitHubAppError) -> DispatchOutcome:
    return DispatchOutcome(DispatchState.REJECTED, status_code, error=error)


class EventDispatcher:
    """
    Turns a raw webhook request into a handler call.

    With no secret configured, signatures are not checked (useful behind a
    trusted proxy or in local development) and a warning is logged for
    every request.
    """

    def __init__(self, handler: Handler, secret: bytes | str | None = None, algorithm: str = "sha256"):
        self._handler = handler
        self._verifier = SignatureVerifier(secret, algorithm) if secret else None

    @property
    def verifies_signatures(self) -> bool:
        return self._verifier is not None

    async def dispatch(self, headers: Mapping[str, str], body: bytes) -> DispatchOutcome:
        headers = {k.lower(): v for k, v in headers.items()}
        delivery = headers.get("x-github-delivery", "-")

        outcome = self._check_request(headers, body)
        if outcome is None:
            outcome = await self._run(headers["x-github-event"], body, delivery)

        if outcome.state is DispatchState.REJECTED:
            logger.warning("Rejected delivery %s: %s", delivery, outcome.error)
        elif outcome.state is DispatchState.COMPLETED:
            logger.info("Delivered %s event %s", outcome.event.kind, delivery)
        return outcome

    def _check_request(self, headers: dict, body: bytes) -> DispatchOutcome | None:
        """Received -> Verified. Returns a rejection, or None to carry on."""
        content_type = headers.get("content-type", "").split(";", 1)[0].strip().lower()
        if content_type != "application/json":
            return _reject(400, MalformedPayload("Invalid or missing Content-Type"))

        if not headers.get("x-github-event"):
            return _reject(400, MalformedPayload("Missing X-GitHub-Event"))

        if self._verifier is None:
            logger.warning("No webhook secret configured; skipping signature verification")
            return None

        signature = headers.get(self._verifier.header_name.lower())
        if not signature:
            return _reject(401, MalformedSignature(f"Missing {self._verifier.header_name}"))
        try:
            valid = self._verifier.verify(body, signature)
        except MalformedSignature as exc:
            return _reject(401, exc)
        if not valid:
            return _reject(401, SignatureMismatch(f"Invalid {self._verifier.header_name}"))
        return None

    async def _run(self, event_type: str, body: bytes, delivery: str) -> DispatchOutcome:
        try:
            event = parse_event(event_type, body)
        except UnknownEventOrMalformedPayload as exc:
            return _reject(400, exc)
        if isinstance(event, UnknownEvent):
            return _reject(400, UnknownEventOrMalformedPayload(f"Unsupported event type: {event_type}"))

        try:
            if _is_async(self._handler):
                result = self._handler(event)
            else:
                # blocking handlers must not run on the event loop
                result = await run_in_threadpool(self._handler, event)
            if inspect.isawaitable(result):
                result = await result
        except Exception as exc:
            logger.error(
                "Handler failed for %s delivery %s:\n%s", event_type, delivery, traceback.format_exc(),
            )
            error = HandlerError(f"{type(exc).__name__}: {exc}")
            error.__cause__ = exc
            return DispatchOutcome(DispatchState.HANDLER_ERROR, 500, event=event, error=error)

        return DispatchOutcome(DispatchState.COMPLETED, 200, event=event, result=result)
