"""Plugin mutation hook.

Before the engine writes a translated object it may hand it to an external
mutator. Objects cross that boundary as canonical JSON bytes (sorted keys,
compact separators) so that a no-op mutator returns byte-identical output
and never causes a spurious patch.

A mutator may change anything except the object's identity: apiVersion,
kind, namespace and name are verified after the round trip.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod

import httpx
import structlog

from vcsync.models.objects import KubeObject, name_of, namespace_of

_log = structlog.get_logger(component="sync.mutation")


class MutationIdentityError(Exception):
    """A mutator changed apiVersion, kind, namespace or name."""

    def __init__(self, field_name: str, before: str, after: str) -> None:
        super().__init__(f"mutation changed {field_name}: {before!r} -> {after!r}")
        self.field_name = field_name


class MutationError(Exception):
    """The mutator could not be reached or returned an unusable response."""


def canonical_json(obj: KubeObject) -> bytes:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode()


def _identity(obj: KubeObject) -> dict[str, str]:
    return {
        "apiVersion": str(obj.get("apiVersion", "")),
        "kind": str(obj.get("kind", "")),
        "namespace": namespace_of(obj),
        "name": name_of(obj),
    }


def verify_identity(before: KubeObject, after: KubeObject) -> None:
    old = _identity(before)
    new = _identity(after)
    for field_name, value in old.items():
        if new[field_name] != value:
            raise MutationIdentityError(field_name, value, new[field_name])


class MutationHook(ABC):
    """Receives an object about to be written and returns the object to write."""

    @abstractmethod
    async def mutate_bytes(self, payload: bytes, side: str, operation: str) -> bytes:
        """Transform canonical JSON *payload*; *operation* is "create" or "update"."""

    async def mutate(self, obj: KubeObject, side: str, operation: str) -> KubeObject:
        result = await self.mutate_bytes(canonical_json(obj), side, operation)
        try:
            mutated = json.loads(result)
        except ValueError as exc:
            raise MutationError(f"mutator returned invalid JSON: {exc}") from exc
        if not isinstance(mutated, dict):
            raise MutationError("mutator returned a non-object JSON document")
        verify_identity(obj, mutated)
        return mutated


class WebhookMutationHook(MutationHook):
    """POSTs the canonical object to a URL and uses the response body.

    Args:
        url:     Full endpoint URL.
        headers: Optional extra headers (e.g. Authorization).
        timeout: HTTP request timeout in seconds. Defaults to 10.
    """

    def __init__(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not url:
            raise ValueError("Mutation webhook url must not be empty")
        self._url = url
        self._headers = headers or {}
        self._timeout = timeout
        self._transport = transport

    async def mutate_bytes(self, payload: bytes, side: str, operation: str) -> bytes:
        request_headers = {
            "Content-Type": "application/json",
            "X-Vcsync-Side": side,
            "X-Vcsync-Operation": operation,
            **self._headers,
        }
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(self._url, content=payload, headers=request_headers)
        except httpx.TimeoutException as exc:
            _log.warning("mutation_webhook_timeout", url=self._url)
            raise MutationError("mutation webhook timed out") from exc
        except httpx.HTTPError as exc:
            _log.warning("mutation_webhook_http_error", error=str(exc))
            raise MutationError(f"mutation webhook failed: {exc}") from exc

        if not response.is_success:
            _log.warning(
                "mutation_webhook_non_2xx_response",
                status_code=response.status_code,
                body=response.text[:200],
            )
            raise MutationError(f"mutation webhook returned {response.status_code}")
        return response.content
