"""Unit tests for environment-based configuration loading."""

from __future__ import annotations

import pytest

from vcsync.config import load_config
from vcsync.models.config import LegacyMarkerPolicy


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    import os

    for key in list(os.environ):
        if key.startswith("VCSYNC_"):
            monkeypatch.delenv(key)


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------


class TestDefaults:
    def test_defaults(self) -> None:
        config = load_config()
        assert config.translate.name == "vcluster"
        assert config.translate.target_namespace == "vcluster"
        assert config.translate.multi_namespace is False
        assert config.translate.legacy_marker_policy == LegacyMarkerPolicy.STRICT
        assert config.controller.enabled_kinds == ("ConfigMap", "Secret", "Pod")
        assert config.controller.workers == 10
        assert config.api.port == 8080
        assert config.log.level == "info"

    def test_target_namespace_defaults_to_current(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("VCSYNC_CURRENT_NAMESPACE", "team-a")
        config = load_config()
        assert config.translate.current_namespace == "team-a"
        assert config.translate.target_namespace == "team-a"
        assert config.translate.scope_namespace == "team-a"

    def test_scope_namespace_in_multi_namespace_mode(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("VCSYNC_CURRENT_NAMESPACE", "vc-ns")
        monkeypatch.setenv("VCSYNC_TARGET_NAMESPACE", "tenants")
        monkeypatch.setenv("VCSYNC_MULTI_NAMESPACE", "true")
        assert load_config().translate.scope_namespace == "vc-ns"


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


class TestParsing:
    def test_lists_are_split_and_trimmed(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("VCSYNC_ENABLED_KINDS", "Pod, ConfigMap ,")
        monkeypatch.setenv("VCSYNC_SYNC_LABELS", "team,app.kubernetes.io/*")
        config = load_config()
        assert config.controller.enabled_kinds == ("Pod", "ConfigMap")
        assert config.translate.sync_labels == ("team", "app.kubernetes.io/*")

    def test_integers_are_clamped(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("VCSYNC_WORKERS", "500")
        monkeypatch.setenv("VCSYNC_RESYNC_INTERVAL", "1")
        config = load_config()
        assert config.controller.workers == 100
        assert config.controller.resync_interval == 10

    def test_legacy_policy(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("VCSYNC_LEGACY_MARKER_POLICY", "ACCEPT-LEGACY")
        monkeypatch.setenv("VCSYNC_LEGACY_MARKER_VALUES", "old-a,old-b")
        config = load_config()
        assert config.translate.legacy_marker_policy == LegacyMarkerPolicy.ACCEPT_LEGACY
        assert config.translate.legacy_marker_values == ("old-a", "old-b")

    def test_kubeconfig_paths(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("VCSYNC_HOST_KUBECONFIG", "/etc/host.conf")
        config = load_config()
        assert config.clusters.host_kubeconfig == "/etc/host.conf"
        assert config.clusters.virtual_kubeconfig == "/data/vcluster/admin.conf"


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestValidation:
    @pytest.mark.parametrize("value", ["UPPER", "-leading", "has_underscore", "a" * 64])
    def test_invalid_instance_name(self, monkeypatch: pytest.MonkeyPatch, value: str) -> None:
        monkeypatch.setenv("VCSYNC_NAME", value)
        with pytest.raises(ValueError, match="DNS-1123"):
            load_config()

    def test_invalid_log_level(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("VCSYNC_LOG_LEVEL", "verbose")
        with pytest.raises(ValueError, match="log level"):
            load_config()

    def test_wildcard_must_be_a_suffix(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("VCSYNC_SYNC_LABELS", "app.*.io/name")
        with pytest.raises(ValueError, match="sync label pattern"):
            load_config()

    def test_unknown_legacy_policy(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("VCSYNC_LEGACY_MARKER_POLICY", "lenient")
        with pytest.raises(ValueError, match="legacy marker policy"):
            load_config()

    def test_non_numeric_integer(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("VCSYNC_WORKERS", "many")
        with pytest.raises(ValueError):
            load_config()
