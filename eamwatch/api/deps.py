"""Process-wide store, detector and dispatcher, exposed as FastAPI dependencies."""

from __future__ import annotations

import logging
from functools import lru_cache

from eamwatch.config import get_settings
from eamwatch.detection.cache import ProcessedSetCache
from eamwatch.detection.detector import Detector
from eamwatch.ingestion.memory_store import InMemoryStore
from eamwatch.ingestion.pipeline import ChannelDispatcher
from eamwatch.ingestion.storage import MessageStore, SupabaseStore
from eamwatch.pipeline_config import DetectionConfig, StoreBackend

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_store() -> MessageStore:
    """Return the configured store backend."""
    backend = StoreBackend(get_settings().store_backend)
    logger.info("Using %s store backend", backend.value)
    if backend is StoreBackend.MEMORY:
        return InMemoryStore()
    return SupabaseStore()


@lru_cache(maxsize=1)
def get_detector() -> Detector:
    settings = get_settings()
    cache = ProcessedSetCache(
        max_entries=settings.processed_cache_max_entries,
        ttl_seconds=settings.processed_cache_ttl_minutes * 60,
    )
    return Detector(get_store(), DetectionConfig.from_settings(settings), cache=cache)


@lru_cache(maxsize=1)
def get_dispatcher() -> ChannelDispatcher:
    return ChannelDispatcher(get_detector())


async def close_dispatcher() -> None:
    """Drain the dispatcher if one was created."""
    if get_dispatcher.cache_info().currsize:
        await get_dispatcher().close()
