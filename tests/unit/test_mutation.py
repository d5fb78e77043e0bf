"""Unit tests for the mutation hook boundary.

Covers canonical JSON encoding, the identity check, and the webhook hook
driven through httpx.MockTransport.
"""

from __future__ import annotations

import json
from typing import Any

import httpx
import pytest

from vcsync.sync.mutation import (
    MutationError,
    MutationHook,
    MutationIdentityError,
    WebhookMutationHook,
    canonical_json,
    verify_identity,
)

_URL = "http://mutator.local/mutate"

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_obj(**meta: Any) -> dict[str, Any]:
    metadata = {"name": "web", "namespace": "vc-ns"}
    metadata.update(meta)
    return {"apiVersion": "v1", "kind": "Pod", "metadata": metadata, "spec": {"b": 1, "a": [2, 1]}}


def _make_hook(handler, **kwargs: Any) -> WebhookMutationHook:
    return WebhookMutationHook(_URL, transport=httpx.MockTransport(handler), **kwargs)


# ---------------------------------------------------------------------------
# Canonical JSON and identity
# ---------------------------------------------------------------------------


class TestCanonicalJson:
    def test_keys_sorted_and_compact(self) -> None:
        assert canonical_json({"b": 1, "a": {"d": 2, "c": 3}}) == b'{"a":{"c":3,"d":2},"b":1}'

    def test_key_order_does_not_matter(self) -> None:
        assert canonical_json({"x": 1, "y": 2}) == canonical_json({"y": 2, "x": 1})

    def test_list_order_is_preserved(self) -> None:
        assert canonical_json({"l": [2, 1]}) == b'{"l":[2,1]}'


class TestVerifyIdentity:
    def test_unchanged_identity_passes(self) -> None:
        before = _make_obj()
        after = _make_obj(labels={"added": "yes"})
        verify_identity(before, after)

    @pytest.mark.parametrize(
        ("field_name", "change"),
        [
            ("name", lambda o: o["metadata"].update(name="other")),
            ("namespace", lambda o: o["metadata"].update(namespace="kube-system")),
            ("kind", lambda o: o.update(kind="Secret")),
            ("apiVersion", lambda o: o.update(apiVersion="v2")),
        ],
    )
    def test_identity_change_raises(self, field_name: str, change) -> None:
        after = _make_obj()
        change(after)
        with pytest.raises(MutationIdentityError) as exc_info:
            verify_identity(_make_obj(), after)
        assert exc_info.value.field_name == field_name


class _Static(MutationHook):
    def __init__(self, payload: bytes) -> None:
        self._payload = payload

    async def mutate_bytes(self, payload: bytes, side: str, operation: str) -> bytes:
        return self._payload


class TestMutationHook:
    async def test_invalid_json_raises(self) -> None:
        with pytest.raises(MutationError, match="invalid JSON"):
            await _Static(b"not json").mutate(_make_obj(), "host", "create")

    async def test_non_object_raises(self) -> None:
        with pytest.raises(MutationError, match="non-object"):
            await _Static(b"[1, 2]").mutate(_make_obj(), "host", "create")


# ---------------------------------------------------------------------------
# WebhookMutationHook
# ---------------------------------------------------------------------------


class TestWebhookMutationHook:
    def test_empty_url_rejected(self) -> None:
        with pytest.raises(ValueError):
            WebhookMutationHook("")

    async def test_echo_returns_equal_object(self) -> None:
        hook = _make_hook(lambda request: httpx.Response(200, content=request.content))
        obj = _make_obj()
        assert await hook.mutate(obj, "host", "create") == obj

    async def test_request_carries_canonical_body_and_headers(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, content=request.content)

        hook = _make_hook(handler, headers={"Authorization": "Bearer t"})
        obj = _make_obj()
        await hook.mutate(obj, "virtual", "update")

        request = seen[0]
        assert request.method == "POST"
        assert request.content == canonical_json(obj)
        assert request.headers["X-Vcsync-Side"] == "virtual"
        assert request.headers["X-Vcsync-Operation"] == "update"
        assert request.headers["Authorization"] == "Bearer t"

    async def test_mutated_fields_are_returned(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            body["metadata"]["labels"] = {"mutated": "true"}
            return httpx.Response(200, json=body)

        result = await _make_hook(handler).mutate(_make_obj(), "host", "create")
        assert result["metadata"]["labels"] == {"mutated": "true"}

    async def test_identity_change_is_rejected(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            body["metadata"]["name"] = "renamed"
            return httpx.Response(200, json=body)

        with pytest.raises(MutationIdentityError):
            await _make_hook(handler).mutate(_make_obj(), "host", "create")

    async def test_non_2xx_raises(self) -> None:
        hook = _make_hook(lambda request: httpx.Response(500, text="boom"))
        with pytest.raises(MutationError, match="500"):
            await hook.mutate(_make_obj(), "host", "create")

    async def test_transport_error_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(MutationError, match="failed"):
            await _make_hook(handler).mutate(_make_obj(), "host", "create")

    async def test_timeout_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(MutationError, match="timed out"):
            await _make_hook(handler).mutate(_make_obj(), "host", "create")
