from __future__ import annotations

import httpx

from sieve.app.errors import ResourceExhaustedError, TransientDependencyError

RESOURCE_EXHAUSTED_MARKER = "RESOURCE_EXHAUSTED"
RESOURCE_EXHAUSTED_STATUS_CODES = {429}


def is_resource_exhausted_message(message: str) -> bool:
    return RESOURCE_EXHAUSTED_MARKER in message.upper().replace(" ", "_")


def raise_for_dependency_status(response: httpx.Response, *, backend: str) -> None:
    if response.is_success:
        return
    body = response.text
    if (
        response.status_code in RESOURCE_EXHAUSTED_STATUS_CODES
        or is_resource_exhausted_message(body)
    ):
        raise ResourceExhaustedError(
            f"{backend} rejected the request ({response.status_code})"
        )
    raise TransientDependencyError(
        f"{backend} request failed with status {response.status_code}"
    )


def transport_failure(exc: httpx.HTTPError, *, backend: str) -> TransientDependencyError:
    return TransientDependencyError(f"{backend} transport error: {exc.__class__.__name__}")
