"""Unit tests for merge-patch computation and the Patcher write plan."""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock, MagicMock

from hypothesis import given, settings
from hypothesis import strategies as st

from vcsync.models.objects import GroupVersionKind
from vcsync.sync.patcher import Patcher, create_merge_patch, three_way_merge

_POD = GroupVersionKind("", "v1", "Pod")
_CONFIGMAP = GroupVersionKind("", "v1", "ConfigMap")

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_json_leaf = st.one_of(st.integers(), st.text(max_size=5), st.booleans())
_json_map = st.recursive(
    st.dictionaries(st.text(min_size=1, max_size=4), _json_leaf, max_size=4),
    lambda children: st.dictionaries(st.text(min_size=1, max_size=4), children, max_size=4),
    max_leaves=12,
)


def _apply(target: Any, patch: Any) -> Any:
    if not isinstance(patch, dict):
        return patch
    result = dict(target) if isinstance(target, dict) else {}
    for key, value in patch.items():
        if value is None:
            result.pop(key, None)
        else:
            result[key] = _apply(result.get(key), value)
    return result


def _make_ctx(patch_result: dict[str, Any] | None = None) -> tuple[MagicMock, AsyncMock]:
    client = AsyncMock()
    client.patch.return_value = patch_result or {"metadata": {"resourceVersion": "8"}}
    client.patch_status.return_value = {}
    ctx = MagicMock()
    ctx.client.return_value = client
    return ctx, client


def _make_pod(**overrides: Any) -> dict[str, Any]:
    pod: dict[str, Any] = {
        "apiVersion": "v1",
        "kind": "Pod",
        "metadata": {"name": "web", "namespace": "vc-ns", "resourceVersion": "7", "uid": "u1"},
        "spec": {"containers": [{"name": "app", "image": "nginx:1"}]},
    }
    pod.update(overrides)
    return pod


# ---------------------------------------------------------------------------
# create_merge_patch
# ---------------------------------------------------------------------------


class TestCreateMergePatch:
    def test_equal_objects_give_empty_patch(self) -> None:
        assert create_merge_patch({"a": {"b": 1}}, {"a": {"b": 1}}) == {}

    def test_removed_key_maps_to_none(self) -> None:
        assert create_merge_patch({"a": 1, "b": 2}, {"a": 1}) == {"b": None}

    def test_nested_maps_recurse(self) -> None:
        before = {"metadata": {"labels": {"a": "1", "b": "2"}}}
        after = {"metadata": {"labels": {"a": "1", "c": "3"}}}
        assert create_merge_patch(before, after) == {"metadata": {"labels": {"b": None, "c": "3"}}}

    def test_lists_are_replaced_wholesale(self) -> None:
        assert create_merge_patch({"l": [1, 2]}, {"l": [1, 3]}) == {"l": [1, 3]}

    @given(before=_json_map, after=_json_map)
    @settings(max_examples=200)
    def test_patch_transforms_before_into_after(self, before: dict, after: dict) -> None:
        assert _apply(before, create_merge_patch(before, after)) == after


# ---------------------------------------------------------------------------
# three_way_merge
# ---------------------------------------------------------------------------


class TestThreeWayMerge:
    def test_absent_desired_with_last_removes(self) -> None:
        assert three_way_merge(5, None, 5) is None

    def test_absent_desired_without_last_keeps_live(self) -> None:
        assert three_way_merge(None, None, 30) == 30

    def test_live_only_keys_survive(self) -> None:
        merged = three_way_merge({"a": 1}, {"a": 2}, {"a": 1, "defaulted": True})
        assert merged == {"a": 2, "defaulted": True}

    def test_keys_dropped_from_desired_are_removed(self) -> None:
        merged = three_way_merge({"a": 1, "b": 2}, {"a": 1}, {"a": 1, "b": 2, "c": 3})
        assert merged == {"a": 1, "c": 3}

    def test_equal_length_lists_merge_elementwise(self) -> None:
        merged = three_way_merge(
            [{"name": "app"}],
            [{"name": "app", "image": "v2"}],
            [{"name": "app", "image": "v1", "imagePullPolicy": "Always"}],
        )
        assert merged == [{"name": "app", "image": "v2", "imagePullPolicy": "Always"}]

    def test_length_change_replaces_list(self) -> None:
        assert three_way_merge([1], [1, 2], [1]) == [1, 2]

    def test_scalar_desired_wins(self) -> None:
        assert three_way_merge(1, 2, 3) == 2


# ---------------------------------------------------------------------------
# Patcher.apply
# ---------------------------------------------------------------------------


class TestPatcherApply:
    async def test_no_change_issues_no_write(self) -> None:
        ctx, client = _make_ctx()
        writes = await Patcher(ctx).apply("host", _POD, _make_pod(), _make_pod())
        assert writes == 0
        client.patch.assert_not_awaited()
        client.patch_status.assert_not_awaited()

    async def test_main_patch_carries_resource_version(self) -> None:
        ctx, client = _make_ctx()
        after = _make_pod(spec={"containers": [{"name": "app", "image": "nginx:2"}]})

        writes = await Patcher(ctx).apply("host", _POD, _make_pod(), after)

        assert writes == 1
        client.patch.assert_awaited_once_with(
            _POD,
            "vc-ns",
            "web",
            {
                "spec": {"containers": [{"name": "app", "image": "nginx:2"}]},
                "metadata": {"resourceVersion": "7"},
            },
        )

    async def test_status_goes_to_subresource_with_new_version(self) -> None:
        ctx, client = _make_ctx()
        before = _make_pod()
        after = _make_pod(metadata={**before["metadata"], "labels": {"a": "b"}}, status={"phase": "Running"})

        writes = await Patcher(ctx).apply("virtual", _POD, before, after)

        assert writes == 2
        main_patch = client.patch.await_args.args[3]
        assert "status" not in main_patch
        client.patch_status.assert_awaited_once_with(
            _POD,
            "vc-ns",
            "web",
            {"status": {"phase": "Running"}, "metadata": {"resourceVersion": "8"}},
        )

    async def test_status_only_change_uses_read_version(self) -> None:
        ctx, client = _make_ctx()
        after = _make_pod(status={"phase": "Running"})

        assert await Patcher(ctx).apply("virtual", _POD, _make_pod(), after) == 1

        client.patch.assert_not_awaited()
        assert client.patch_status.await_args.args[3]["metadata"] == {"resourceVersion": "7"}

    async def test_volatile_metadata_never_patched(self) -> None:
        ctx, client = _make_ctx()
        after = _make_pod(metadata={"name": "web", "namespace": "vc-ns", "resourceVersion": "99", "uid": "u2"})
        assert await Patcher(ctx).apply("host", _POD, _make_pod(), after) == 0

    async def test_kinds_without_status_keep_status_in_main_patch(self) -> None:
        ctx, client = _make_ctx()
        before = {"metadata": {"name": "c", "namespace": "vc-ns"}, "data": {"a": "1"}}
        after = {"metadata": {"name": "c", "namespace": "vc-ns"}, "data": {"a": "2"}}

        assert await Patcher(ctx).apply("host", _CONFIGMAP, before, after, has_status=False) == 1

        client.patch.assert_awaited_once_with(_CONFIGMAP, "vc-ns", "c", {"data": {"a": "2"}})
        client.patch_status.assert_not_awaited()
