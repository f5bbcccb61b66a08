"""Detected-message endpoints: list, search, statistics, detail, per-recording."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any, TypeVar

from fastapi import APIRouter, Depends, HTTPException, Query

from eamwatch.api.deps import get_detector, get_store
from eamwatch.api.models import MessageOut, StatisticsResponse
from eamwatch.detection.detector import Detector
from eamwatch.ingestion.storage import MessageStore, StoreUnavailableError
from eamwatch.pipeline_config import MessageType

router = APIRouter()

T = TypeVar("T")


async def _read(func: Callable[..., T], *args: Any) -> T:
    try:
        return await asyncio.to_thread(func, *args)
    except StoreUnavailableError as exc:
        raise HTTPException(status_code=503, detail=f"Store unavailable: {exc}") from exc


@router.get("/api/messages", response_model=list[MessageOut])
async def list_messages(
    message_type: MessageType | None = Query(default=None, alias="type"),
    min_confidence: int = Query(default=0, ge=0, le=100),
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    store: MessageStore = Depends(get_store),
) -> list[MessageOut]:
    """List detected messages, newest first."""
    messages = await _read(store.list_messages, message_type, min_confidence, limit, offset)
    return [MessageOut.from_message(m) for m in messages]


@router.get("/api/messages/search", response_model=list[MessageOut])
async def search_messages(
    q: str = "",
    limit: int = Query(default=50, ge=1, le=500),
    store: MessageStore = Depends(get_store),
) -> list[MessageOut]:
    """Substring search over message headers and bodies."""
    if not q.strip():
        raise HTTPException(status_code=400, detail="Query parameter 'q' must not be empty")
    messages = await _read(store.search_messages, q.strip(), limit)
    return [MessageOut.from_message(m) for m in messages]


@router.get("/api/messages/statistics", response_model=StatisticsResponse)
async def message_statistics(
    store: MessageStore = Depends(get_store),
    detector: Detector = Depends(get_detector),
) -> StatisticsResponse:
    stats = await _read(store.statistics)
    return StatisticsResponse(messages=stats, detector=detector.stats())


@router.get("/api/messages/{message_id}", response_model=MessageOut)
async def get_message(message_id: str, store: MessageStore = Depends(get_store)) -> MessageOut:
    message = await _read(store.get_message, message_id)
    if message is None:
        raise HTTPException(status_code=404, detail="Message not found")
    return MessageOut.from_message(message)


@router.get("/api/recordings/{fragment_id}/messages", response_model=list[MessageOut])
async def messages_for_recording(
    fragment_id: str, store: MessageStore = Depends(get_store)
) -> list[MessageOut]:
    """Messages whose recording ids include *fragment_id*."""
    messages = await _read(store.messages_for_recording, fragment_id)
    return [MessageOut.from_message(m) for m in messages]
