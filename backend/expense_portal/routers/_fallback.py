from typing import Callable, List, Optional, TypeVar

from fastapi import Response

from ..services import DegradedModeProvider

T = TypeVar("T")

ERROR_HEADER = "X-Error-Message"


def header_safe(message: str) -> str:
    # header values are single-line latin-1
    flat = " ".join(message.split())
    return flat.encode("latin-1", "replace").decode("latin-1")[:500]


def collection_or_fallback(
    response: Response,
    items: List[T],
    error: Optional[str],
    provider: Optional[DegradedModeProvider],
    fallback: Callable[[DegradedModeProvider], List[T]],
) -> List[T]:
    """Return ``items``; on error report it in a header and, when degraded
    mode is on, serve placeholder data instead."""
    if error is None:
        return items
    response.headers[ERROR_HEADER] = header_safe(error)
    if provider is not None:
        return fallback(provider)
    return items
