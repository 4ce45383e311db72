"""API routes for embedding index management."""

import hashlib
import hmac
import secrets
from datetime import UTC, datetime
from typing import Any

import pydantic
from fastapi import APIRouter, Body, Depends, Header, Request
from pydantic import BaseModel, Field, StrictStr

from hospital_search.api.dependencies import get_indexer, get_store
from hospital_search.config import Settings, get_settings
from hospital_search.embeddings.composer import needs_reindex
from hospital_search.exceptions import (
    HospitalSearchError,
    UnauthorizedError,
    ValidationError,
)
from hospital_search.indexing.engine import HospitalIndexer
from hospital_search.indexing.models import IndexingOptions
from hospital_search.logging_config import get_logger
from hospital_search.store.models import HospitalRecord
from hospital_search.store.service import HospitalStore

logger = get_logger(__name__)

router = APIRouter(prefix="/hospitals/embeddings", tags=["Indexing"])

# Conservative pacing for unattended runs.
CRON_BATCH_SIZE = 5
CRON_DELAY_SECONDS = 2.0

WEBHOOK_SIGNATURE_HEADER = "x-webhook-signature"
WEBHOOK_TABLE = "hospitals"
WEBHOOK_EVENTS = ("INSERT", "UPDATE")


def _now() -> str:
    return datetime.now(UTC).isoformat()


def _dump(model: BaseModel) -> dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True)


class ReindexRequest(BaseModel):
    """Request body for targeted reindexing."""

    hospital_ids: list[StrictStr] = Field(min_length=1, description="Hospital ids to re-embed")


class WebhookEvent(BaseModel):
    """Row change notification from the database."""

    type: str
    table: str
    record: dict[str, Any] | None = None
    old_record: dict[str, Any] | None = None


@router.post("")
async def start_indexing(
    options: IndexingOptions | None = Body(default=None),
    indexer: HospitalIndexer = Depends(get_indexer),
) -> dict[str, Any]:
    """Run indexing to completion and return its progress."""
    options = options or IndexingOptions()
    progress = await indexer.start_indexing(options)
    return {
        "message": "Indexing completed successfully",
        "progress": _dump(progress),
        "options": _dump(options),
    }


@router.get("")
async def embedding_status(
    indexer: HospitalIndexer = Depends(get_indexer),
) -> dict[str, Any]:
    """Embedding coverage statistics."""
    status = await indexer.get_embedding_status()
    return {"statistics": _dump(status), "timestamp": _now()}


@router.put("")
async def reindex_hospitals(
    request: ReindexRequest,
    indexer: HospitalIndexer = Depends(get_indexer),
) -> dict[str, Any]:
    """Re-embed specific hospitals."""
    progress = await indexer.reindex_hospitals(request.hospital_ids)
    return {
        "message": "Reindexing completed",
        "result": _dump(progress),
        "completed_at": _now(),
    }


@router.delete("")
async def reset_embeddings(
    indexer: HospitalIndexer = Depends(get_indexer),
) -> dict[str, Any]:
    """Clear every stored embedding. Irreversible."""
    cleared = await indexer.reset_embeddings()
    return {
        "message": "All embeddings have been reset successfully",
        "cleared": cleared,
        "reset_at": _now(),
    }


@router.post("/cancel")
async def cancel_indexing(
    indexer: HospitalIndexer = Depends(get_indexer),
) -> dict[str, Any]:
    """Ask a running indexing job to stop after its current batch."""
    cancelled = indexer.cancel()
    return {
        "cancelled": cancelled,
        "message": "Cancellation requested" if cancelled else "No indexing run in progress",
    }


@router.post("/cron")
async def cron_indexing(
    authorization: str | None = Header(default=None),
    settings: Settings = Depends(get_settings),
    indexer: HospitalIndexer = Depends(get_indexer),
) -> dict[str, Any]:
    """Scheduled trigger: index hospitals missing an embedding."""
    secret = settings.indexing.cron_secret
    if secret is not None and secret.get_secret_value():
        expected = f"Bearer {secret.get_secret_value()}"
        if not secrets.compare_digest(authorization or "", expected):
            raise UnauthorizedError()

    stats = await indexer.get_embedding_status()
    if stats.without_embeddings == 0:
        return {
            "status": "complete",
            "message": "All hospitals already have embeddings",
            "stats": _dump(stats),
            "timestamp": _now(),
        }

    progress = await indexer.start_indexing(
        IndexingOptions(
            batch_size=CRON_BATCH_SIZE,
            delay_between_batches=CRON_DELAY_SECONDS,
        )
    )
    return {
        "status": "completed",
        "message": "Background indexing completed",
        "result": _dump(progress),
        "timestamp": _now(),
    }


@router.get("/cron")
async def cron_status(
    indexer: HospitalIndexer = Depends(get_indexer),
) -> dict[str, Any]:
    stats = await indexer.get_embedding_status()
    return {"status": "healthy", "stats": _dump(stats), "last_checked": _now()}


def verify_webhook_signature(body: bytes, signature: str | None, secret: str) -> None:
    """Check an HMAC-SHA256 hex signature of the raw request body.

    Raises:
        UnauthorizedError: If the signature is missing or wrong.
    """
    if not signature:
        raise UnauthorizedError("Missing webhook signature")
    expected = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    if not hmac.compare_digest(signature.strip().lower(), expected):
        raise UnauthorizedError("Invalid webhook signature")


@router.post("/webhook")
async def hospital_change_webhook(
    request: Request,
    settings: Settings = Depends(get_settings),
    store: HospitalStore = Depends(get_store),
    indexer: HospitalIndexer = Depends(get_indexer),
) -> dict[str, Any]:
    """Save a changed hospital row and re-embed it when its text changed."""
    body = await request.body()

    secret = settings.indexing.webhook_secret
    if secret is not None and secret.get_secret_value():
        verify_webhook_signature(
            body,
            request.headers.get(WEBHOOK_SIGNATURE_HEADER),
            secret.get_secret_value(),
        )

    try:
        event = WebhookEvent.model_validate_json(body)
    except pydantic.ValidationError as e:
        raise ValidationError(
            "Invalid webhook payload",
            details={"errors": e.errors(include_url=False, include_context=False)},
        ) from e

    logger.info(
        f"Received {event.type} event for table {event.table}",
        extra={"hospital_id": (event.record or {}).get("id")},
    )

    if event.table != WEBHOOK_TABLE:
        return {"status": "ignored", "message": "Event not for hospitals table"}
    if event.type not in WEBHOOK_EVENTS:
        return {"status": "ignored", "message": "Event type not handled"}

    record = event.record
    if not record or not record.get("id"):
        raise ValidationError("Invalid hospital record")
    hospital_id = str(record["id"])
    try:
        hospital = HospitalRecord.model_validate(
            {**{k: v for k, v in record.items() if k != "embedding"}, "id": hospital_id}
        )
    except pydantic.ValidationError as e:
        raise ValidationError(
            "Invalid hospital record",
            details={"errors": e.errors(include_url=False, include_context=False)},
        ) from e
    hospital_name = hospital.name

    # The row is saved first so the embedding is built from its new fields.
    existing = await store.get_hospital(hospital_id) if event.type == "UPDATE" else None
    if existing is None:
        await store.upsert_hospitals(
            [hospital.model_copy(update={"has_embedding": False, "embedding_text_hash": None})]
        )
    else:
        await store.update_hospital(hospital)

    if not hospital.is_active:
        return {"status": "skipped", "message": "Hospital is inactive"}

    has_vector = existing is not None and existing.has_embedding
    old_record = event.old_record if event.type == "UPDATE" else None
    if not needs_reindex(old_record, {**record, "has_embedding": has_vector}):
        return {"status": "skipped", "message": "No embedding generation needed"}

    # The webhook answers 200 on indexing failures so the sender does not retry.
    try:
        progress = await indexer.reindex_hospitals([hospital_id])
    except HospitalSearchError as e:
        logger.error(
            f"Webhook reindex failed: {e.message}",
            extra={"hospital_id": hospital_id, "error_code": e.code.value},
        )
        return {
            "status": "error",
            "message": "Failed to generate embedding",
            "error": e.message,
            "hospital_id": hospital_id,
            "hospital_name": hospital_name,
            "timestamp": _now(),
        }

    if progress.total == 0:
        return {"status": "skipped", "message": "Hospital is not indexable"}

    if progress.errors:
        return {
            "status": "error",
            "message": "Failed to generate embedding",
            "error": progress.errors[0].error,
            "hospital_id": hospital_id,
            "hospital_name": hospital_name,
            "timestamp": _now(),
        }

    return {
        "status": "success",
        "message": "Embedding generated successfully",
        "hospital_id": hospital_id,
        "hospital_name": hospital_name,
        "timestamp": _now(),
    }


@router.get("/webhook")
async def webhook_health() -> dict[str, str]:
    return {
        "status": "healthy",
        "message": "Hospital embeddings webhook is operational",
        "timestamp": _now(),
    }
