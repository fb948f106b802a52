"""Shared send/log/parse pipeline for vendor adapters.

Each adapter builds and signs its own ``httpx.Request``; this module only
sends it, reads the body and optionally validates it into a model. It never
retries and never looks at status codes: what a status code means is the
adapter's business.
"""

from typing import Any, TypeVar

import httpx
import pydantic
from pydantic import TypeAdapter

from zonekeeper._logging import Timer, get_account_extra, get_logger
from zonekeeper.exceptions import NetworkError, ParseError

logger = get_logger(__name__)

T = TypeVar("T")


async def execute_request(
    client: httpx.AsyncClient,
    request: httpx.Request,
    provider: str,
    label: str,
) -> tuple[int, str]:
    """Send a prepared request and read the response text.

    Args:
        client: HTTP client to send with.
        request: Fully prepared request (URL, headers and body attached).
        provider: Provider name, for logs and errors.
        label: Action name or path, for logs.

    Returns:
        Tuple of (status_code, response_text).

    Raises:
        NetworkError: If the request cannot be sent or the body cannot be read.
    """
    extra: dict[str, Any] = {"provider": provider, "action": label, **get_account_extra()}
    logger.debug("Sending %s %s", request.method, label, extra=extra)

    # A provider that was replaced or unregistered may still be held by an
    # in-flight operation after its client was closed.
    if client.is_closed:
        logger.warning("Request on closed client", extra=extra)
        raise NetworkError(provider, "client closed")

    with Timer() as timer:
        try:
            response = await client.send(request)
        except httpx.HTTPError as e:
            logger.warning(
                "Request failed",
                extra={**extra, "error": str(e) or type(e).__name__},
            )
            raise NetworkError(provider, str(e) or type(e).__name__) from e

        try:
            await response.aread()
            text = response.text
        except (httpx.HTTPError, httpx.StreamError) as e:
            raise NetworkError(provider, f"Failed to read response: {e}") from e

    logger.debug(
        "Response received",
        extra={
            **extra,
            "status_code": response.status_code,
            "elapsed_ms": round(timer.elapsed_ms, 1),
        },
    )
    return response.status_code, text


def parse_json(text: str, type_: Any, provider: str) -> Any:
    """Validate a JSON response body into a type.

    Args:
        text: Response body.
        type_: Pydantic model or any type a TypeAdapter accepts.
        provider: Provider name, for errors.

    Returns:
        The validated value.

    Raises:
        ParseError: If the body is not JSON or does not match the type.
    """
    try:
        return TypeAdapter(type_).validate_json(text)
    except pydantic.ValidationError as e:
        logger.error(
            "Failed to parse response",
            extra={"provider": provider, "detail": str(e), "raw_body": text},
        )
        raise ParseError(provider, str(e), raw_body=text) from e


async def execute_and_parse(
    client: httpx.AsyncClient,
    request: httpx.Request,
    type_: type[T],
    provider: str,
    label: str,
) -> T:
    """Send a request and validate the JSON response body.

    Args:
        client: HTTP client to send with.
        request: Fully prepared request.
        type_: Type to validate the body into.
        provider: Provider name.
        label: Action name or path, for logs.

    Returns:
        The validated response.

    Raises:
        NetworkError: On transport failure.
        ParseError: If the body does not match the type.
    """
    _, text = await execute_request(client, request, provider, label)
    return parse_json(text, type_, provider)
