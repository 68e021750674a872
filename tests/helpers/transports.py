"""Scripted transports and fakes for client tests."""

import asyncio
from collections.abc import Callable, Sequence

from resilient_http.http.errors import TransportError, TransportErrorKind
from resilient_http.http.headers import HeaderMap
from resilient_http.http.models import RawResponse, Request


Outcome = RawResponse | TransportError | Callable[[Request], RawResponse]


def raw(
    status_code: int = 200,
    body: bytes = b"",
    headers: dict[str, str | list[str]] | None = None,
    url: str = "",
) -> RawResponse:
    """Build a RawResponse with minimal boilerplate."""
    return RawResponse(
        status_code=status_code,
        headers=HeaderMap(headers),
        body=body,
        url=url,
    )


def reset_error() -> TransportError:
    """Build a connection-reset transport error."""
    return TransportError(TransportErrorKind.CONNECTION_RESET, "socket hang up")


class ScriptedTransport:
    """Transport replaying a fixed sequence of outcomes.

    The last outcome repeats once the script is exhausted. Every request
    sent is recorded in ``requests``.
    """

    def __init__(self, outcomes: Sequence[Outcome]) -> None:
        self._outcomes = list(outcomes)
        self.requests: list[Request] = []
        self.closed = False

    async def send(self, request: Request) -> RawResponse:
        self.requests.append(request)
        index = min(len(self.requests) - 1, len(self._outcomes) - 1)
        outcome = self._outcomes[index]
        await asyncio.sleep(0)
        if isinstance(outcome, TransportError):
            raise outcome
        if isinstance(outcome, RawResponse):
            return outcome
        return outcome(request)

    async def aclose(self) -> None:
        self.closed = True


class RecordingSleep:
    """Sleep replacement recording requested delays without waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
