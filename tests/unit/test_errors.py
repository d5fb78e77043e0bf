"""Unit tests for the API error taxonomy and its translation from ApiException."""

from __future__ import annotations

import json

import pytest
from kubernetes_asyncio.client.exceptions import ApiException

from vcsync.clients.errors import (
    AlreadyExistsError,
    ApiError,
    ConflictError,
    ForbiddenError,
    InvalidError,
    NotFoundError,
    error_from_status,
    is_rejection,
)
from vcsync.clients.kube import _translate


class TestErrorFromStatus:
    @pytest.mark.parametrize(
        ("status", "reason", "expected"),
        [
            (404, "", NotFoundError),
            (409, "AlreadyExists", AlreadyExistsError),
            (409, "Conflict", ConflictError),
            (403, "", ForbiddenError),
            (422, "", InvalidError),
            (500, "InternalError", ApiError),
        ],
    )
    def test_status_maps_to_class(self, status: int, reason: str, expected: type[ApiError]) -> None:
        exc = error_from_status(status, reason, "msg")
        assert type(exc) is expected
        assert exc.status == status
        assert exc.message == "msg"

    def test_already_exists_is_a_conflict(self) -> None:
        assert isinstance(error_from_status(409, "AlreadyExists"), ConflictError)

    def test_default_reason_filled_in(self) -> None:
        assert error_from_status(404).reason == "NotFound"

    def test_rejections(self) -> None:
        assert is_rejection(ForbiddenError(403)) is True
        assert is_rejection(InvalidError(422)) is True
        assert is_rejection(ConflictError(409)) is False
        assert is_rejection(RuntimeError("x")) is False


class TestTranslateApiException:
    def test_status_body_supplies_reason_and_message(self) -> None:
        exc = ApiException(status=409, reason="Conflict")
        exc.body = json.dumps({"kind": "Status", "reason": "AlreadyExists", "message": "pods \"web\" already exists"})
        translated = _translate(exc)
        assert isinstance(translated, AlreadyExistsError)
        assert translated.message == 'pods "web" already exists'

    def test_unparseable_body_falls_back_to_http_reason(self) -> None:
        exc = ApiException(status=403, reason="Forbidden")
        exc.body = "<html>nope</html>"
        translated = _translate(exc)
        assert isinstance(translated, ForbiddenError)
        assert translated.message == "Forbidden"
