"""Webhook endpoint for WAHA gateway events."""

import json

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from wahub.database import get_session_factory_dependency
from wahub.exceptions import MalformedEvent
from wahub.ingestion import IngestionPipeline

router = APIRouter()


def get_ingestion_pipeline(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory_dependency),
) -> IngestionPipeline:
    """Pipeline bound to the application's session factory."""
    return IngestionPipeline(session_factory)


@router.post("/webhooks/whatsapp")
async def whatsapp_webhook(
    request: Request,
    pipeline: IngestionPipeline = Depends(get_ingestion_pipeline),
):
    """
    Receive one gateway event.

    Every well-formed event is acknowledged, including orphaned sessions,
    duplicates and unknown event kinds, so the gateway does not retry them.
    """
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise MalformedEvent("Body is not valid JSON")

    result = await pipeline.ingest(body)

    if not result.acknowledged:
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to persist event"},
        )

    return {"success": True}
