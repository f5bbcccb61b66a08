"""Tests for Settings, policy enums and DetectionConfig wiring."""

from __future__ import annotations

import pytest

from eamwatch.api import deps
from eamwatch.config import Settings
from eamwatch.ingestion.memory_store import InMemoryStore
from eamwatch.pipeline_config import (
    DetectionConfig,
    HeaderQuality,
    MessageType,
    ScoringWeights,
    StoreBackend,
)

# ---------------------------------------------------------------------------
# Enum tests
# ---------------------------------------------------------------------------


class TestMessageType:
    def test_values(self) -> None:
        assert MessageType.STRUCTURED.value == "STRUCTURED"
        assert MessageType.UNKNOWN.value == "UNKNOWN"

    def test_invalid_raises(self) -> None:
        with pytest.raises(ValueError):
            MessageType("invalid")

    def test_is_str_subclass(self) -> None:
        """Enum values behave as plain strings for JSON serialization."""
        assert isinstance(MessageType.STRUCTURED, str)


class TestStoreBackend:
    def test_from_string(self) -> None:
        assert StoreBackend("memory") is StoreBackend.MEMORY
        assert StoreBackend("supabase") is StoreBackend.SUPABASE

    def test_invalid_raises(self) -> None:
        with pytest.raises(ValueError):
            StoreBackend("sqlite")


class TestHeaderQuality:
    def test_values(self) -> None:
        assert HeaderQuality.WELL_FORMED.value == "well_formed"
        assert HeaderQuality.PARTIAL.value == "partial"
        assert HeaderQuality.NONE.value == "none"


# ---------------------------------------------------------------------------
# DetectionConfig tests
# ---------------------------------------------------------------------------


class TestDetectionConfig:
    def test_defaults(self) -> None:
        cfg = DetectionConfig()
        assert cfg.accept_threshold == 40
        assert cfg.window_size == 3
        assert cfg.min_fallback_fragments == 3
        assert cfg.repeat_lookback_ms == 30 * 60 * 1000
        assert cfg.weights == ScoringWeights()

    def test_immutable(self) -> None:
        cfg = DetectionConfig()
        with pytest.raises(AttributeError):
            cfg.accept_threshold = 10  # type: ignore[misc]

    def test_from_settings(self) -> None:
        settings = Settings(
            _env_file=None,  # type: ignore[call-arg]
            accept_threshold=55,
            related_radius_seconds=60,
            repeat_lookback_minutes=5,
            store_timeout_seconds=1.5,
            sliding_window_size=4,
        )
        cfg = DetectionConfig.from_settings(settings)
        assert cfg.accept_threshold == 55
        assert cfg.related_radius_ms == 60_000
        assert cfg.repeat_lookback_ms == 300_000
        assert cfg.store_timeout_s == 1.5
        assert cfg.window_size == 4


class TestSettings:
    def test_defaults(self) -> None:
        settings = Settings(_env_file=None)  # type: ignore[call-arg]
        assert settings.related_radius_seconds == 120
        assert settings.processed_cache_ttl_minutes == 30
        assert settings.body_similarity_threshold == 0.85

    def test_env_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ACCEPT_THRESHOLD", "60")
        monkeypatch.setenv("STORE_BACKEND", "memory")
        settings = Settings(_env_file=None)  # type: ignore[call-arg]
        assert settings.accept_threshold == 60
        assert settings.store_backend == "memory"


class TestDependencies:
    def test_memory_backend_selected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(
            deps, "get_settings", lambda: Settings(_env_file=None, store_backend="memory")  # type: ignore[call-arg]
        )
        deps.get_store.cache_clear()
        try:
            assert isinstance(deps.get_store(), InMemoryStore)
        finally:
            deps.get_store.cache_clear()
