"""Fragment intake: persist a fragment and run the detection cycle it triggers."""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException

from eamwatch.api.deps import get_dispatcher, get_store
from eamwatch.api.models import FragmentIn, FragmentResult
from eamwatch.ingestion.pipeline import ChannelDispatcher, DispatcherClosedError
from eamwatch.ingestion.storage import MessageStore, StoreUnavailableError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/api/fragments", response_model=FragmentResult)
async def submit_fragment(
    body: FragmentIn,
    store: MessageStore = Depends(get_store),
    dispatcher: ChannelDispatcher = Depends(get_dispatcher),
) -> FragmentResult:
    """Store a transcribed fragment and evaluate its channel.

    A cycle abandoned because the store failed mid-evaluation still returns
    200 with ``state=REJECTED`` and ``error`` set; the fragment is picked up
    again by the channel's next evaluation.
    """
    fragment = body.to_fragment()
    try:
        await asyncio.to_thread(store.add_fragment, fragment)
    except StoreUnavailableError as exc:
        raise HTTPException(status_code=503, detail=f"Store unavailable: {exc}") from exc

    try:
        future = dispatcher.submit(fragment)
    except DispatcherClosedError as exc:
        raise HTTPException(status_code=503, detail="Service is shutting down") from exc

    outcome = await future
    return FragmentResult.from_outcome(fragment.id, outcome)
