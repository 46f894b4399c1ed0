"""Decode raw transport and API exceptions into a small set of known shapes.

Provider normalizers and retry predicates work on the tagged result of
``parse_raw_error`` instead of probing exception attributes ad hoc.
"""

from __future__ import annotations

import errno
import socket
from dataclasses import dataclass
from typing import Any

import httpx

NETWORK_ERROR_CODES = frozenset(
    {"ECONNRESET", "ECONNREFUSED", "ETIMEDOUT", "ENOTFOUND", "EAI_AGAIN"}
)

NETWORK_ERROR_MESSAGES = ("network error", "socket hang up", "connection refused")


@dataclass(frozen=True)
class HttpErrorShape:
    """The server answered with an error status."""

    status: int
    status_text: str | None = None
    data: Any = None
    message: str | None = None


@dataclass(frozen=True)
class NetworkErrorShape:
    """The request never produced a response."""

    code: str | None = None
    message: str | None = None


@dataclass(frozen=True)
class GenericErrorShape:
    """Anything that is neither an HTTP nor a network failure."""

    message: str | None = None


RawErrorShape = HttpErrorShape | NetworkErrorShape | GenericErrorShape


def _as_int(value: object) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    return None


def get_status_code(error: BaseException) -> int | None:
    """Return the HTTP status carried by *error*, if any.

    The status of an attached response wins over a status stored on the
    exception itself.
    """
    response = getattr(error, "response", None)
    if response is not None:
        for attr in ("status_code", "status"):
            status = _as_int(getattr(response, attr, None))
            if status is not None:
                return status
    for attr in ("status", "status_code"):
        status = _as_int(getattr(error, attr, None))
        if status is not None:
            return status
    return None


def _oserror_code(error: OSError) -> str | None:
    if isinstance(error, socket.gaierror):
        if error.errno == socket.EAI_AGAIN:
            return "EAI_AGAIN"
        return "ENOTFOUND"
    if isinstance(error, TimeoutError):
        return "ETIMEDOUT"
    if error.errno is not None:
        return errno.errorcode.get(error.errno)
    return None


def network_error_code(error: BaseException) -> str | None:
    """Map *error* onto a POSIX-style network error code such as ``ECONNRESET``."""
    code = getattr(error, "code", None)
    if isinstance(code, str) and code in NETWORK_ERROR_CODES:
        return code

    if isinstance(error, httpx.TimeoutException):
        return "ETIMEDOUT"

    # httpx wraps the socket error; the chained OSError is more precise
    seen = {id(error)}
    chained = error.__cause__ or error.__context__
    while chained is not None and id(chained) not in seen:
        seen.add(id(chained))
        if isinstance(chained, OSError):
            found = _oserror_code(chained)
            if found in NETWORK_ERROR_CODES:
                return found
        chained = chained.__cause__ or chained.__context__

    if isinstance(error, httpx.ConnectError):
        return "ECONNREFUSED"
    if isinstance(error, (httpx.NetworkError, httpx.RemoteProtocolError)):
        return "ECONNRESET"
    if isinstance(error, OSError):
        return _oserror_code(error)
    return None


def is_network_error(error: BaseException) -> bool:
    """Return True when *error* is a transport-level failure."""
    if network_error_code(error) in NETWORK_ERROR_CODES:
        return True
    message = str(error).lower()
    return any(fragment in message for fragment in NETWORK_ERROR_MESSAGES)


def _response_data(response: Any) -> Any:
    data = getattr(response, "data", None)
    if data is not None:
        return data
    if isinstance(response, httpx.Response):
        try:
            return response.json()
        except (ValueError, httpx.ResponseNotRead):
            return response.text or None
    return None


def parse_raw_error(error: BaseException) -> RawErrorShape:
    """Decode *error* into an HTTP, network, or generic shape."""
    message = str(error) or None

    status = get_status_code(error)
    if status is not None:
        response = getattr(error, "response", None)
        status_text = None
        data = None
        if response is not None:
            status_text = getattr(response, "reason_phrase", None) or getattr(
                response, "status_text", None
            )
            data = _response_data(response)
        return HttpErrorShape(
            status=status, status_text=status_text, data=data, message=message
        )

    if is_network_error(error):
        return NetworkErrorShape(code=network_error_code(error), message=message)

    return GenericErrorShape(message=message)
