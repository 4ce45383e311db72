"""Batch indexing of hospital embeddings."""

import asyncio
import math
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager

from hospital_search.config import IndexingSettings, get_settings
from hospital_search.embeddings.composer import embedding_text_hash, is_embedding_stale
from hospital_search.embeddings.models import EmbeddingOptions, TaskType
from hospital_search.embeddings.service import EmbeddingService
from hospital_search.exceptions import (
    DatabaseError,
    IndexingInProgressError,
    ValidationError,
)
from hospital_search.indexing.models import EmbeddingStatus, IndexingOptions, IndexingProgress
from hospital_search.logging_config import get_logger
from hospital_search.observability.metrics import (
    track_indexing_outcome,
    update_embedding_coverage,
)
from hospital_search.store.models import HospitalRecord
from hospital_search.store.service import HospitalStore

logger = get_logger(__name__)


class HospitalIndexer:
    """Generates and stores hospital embeddings in bounded batches.

    One run at a time per indexer: starting a run, a targeted reindex or a
    reset while another holds the indexer raises IndexingInProgressError.
    Per-hospital failures are recorded in the run's progress and never
    abort it. Cancellation is honoured between batches.
    """

    def __init__(
        self,
        store: HospitalStore,
        embedding_service: EmbeddingService,
        settings: IndexingSettings | None = None,
    ) -> None:
        """Initialize the indexer.

        Args:
            store: Hospital storage the vectors are written to.
            embedding_service: Embedding generation.
            settings: Batch size and pacing defaults.
        """
        self._store = store
        self._embedding_service = embedding_service
        self._settings = settings or get_settings().indexing
        self._lock = asyncio.Lock()
        self._cancel_requested = asyncio.Event()
        self._progress: IndexingProgress | None = None

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    @property
    def last_progress(self) -> IndexingProgress | None:
        """Progress of the current or most recent run."""
        return self._progress

    def cancel(self) -> bool:
        """Ask the running job to stop after its current batch.

        Returns:
            False when nothing is running.
        """
        if not self.is_running:
            return False
        self._cancel_requested.set()
        logger.info("Indexing cancellation requested")
        return True

    @asynccontextmanager
    async def _exclusive(self, operation: str) -> AsyncIterator[None]:
        if self._lock.locked():
            raise IndexingInProgressError(details={"operation": operation})
        async with self._lock:
            self._cancel_requested.clear()
            yield

    async def _select_candidates(self, options: IndexingOptions) -> list[HospitalRecord]:
        if options.force_regenerate:
            return await self._store.list_indexing_candidates(missing_only=False)
        if options.include_stale:
            records = await self._store.list_indexing_candidates(missing_only=False)
            return [r for r in records if not r.has_embedding or is_embedding_stale(r)]
        return await self._store.list_indexing_candidates(missing_only=True)

    async def _process_batch(
        self,
        batch: Sequence[HospitalRecord],
        progress: IndexingProgress,
    ) -> None:
        result = await self._embedding_service.generate_batch_embeddings(
            batch,
            EmbeddingOptions(task_type=TaskType.RETRIEVAL_DOCUMENT),
        )

        for index, (record, vector) in enumerate(zip(batch, result.embeddings, strict=True)):
            if vector is None:
                error = result.error_for(index) or "Embedding generation failed"
                logger.warning(
                    f"Failed to embed hospital {record.name}: {error}",
                    extra={"hospital_id": record.id},
                )
                progress.record_failure(record.id, record.name, error)
                continue

            try:
                await self._store.update_embedding(record.id, vector, embedding_text_hash(record))
            except DatabaseError as e:
                logger.warning(
                    f"Failed to store embedding for {record.name}: {e.message}",
                    extra={"hospital_id": record.id},
                )
                progress.record_failure(record.id, record.name, e.message)
                continue

            progress.record_success()

    async def _run(
        self,
        candidates: list[HospitalRecord],
        batch_size: int,
        delay: float,
    ) -> IndexingProgress:
        progress = IndexingProgress(
            total=len(candidates),
            total_batches=math.ceil(len(candidates) / batch_size),
        )
        self._progress = progress

        if not candidates:
            logger.info("No hospitals need indexing")
            return progress.complete()

        logger.info(
            f"Indexing {len(candidates)} hospitals in {progress.total_batches} batches",
            extra={"batch_size": batch_size, "delay": delay},
        )

        cancelled = False
        for number, start in enumerate(range(0, len(candidates), batch_size), start=1):
            if self._cancel_requested.is_set():
                cancelled = True
                break

            progress.start_batch(number)
            await self._process_batch(candidates[start : start + batch_size], progress)
            logger.info(
                f"Batch {number}/{progress.total_batches} complete",
                extra={"successful": progress.successful, "failed": progress.failed},
            )

            if delay > 0 and start + batch_size < len(candidates):
                await asyncio.sleep(delay)

        progress.complete(cancelled=cancelled)
        track_indexing_outcome(progress.successful, progress.failed)
        logger.info(
            f"Indexing {'cancelled' if cancelled else 'complete'}: "
            f"{progress.successful} successful, {progress.failed} failed",
            extra={"processed": progress.processed, "total": progress.total},
        )
        return progress

    async def start_indexing(self, options: IndexingOptions | None = None) -> IndexingProgress:
        """Embed every hospital that needs a vector.

        Args:
            options: Candidate selection and pacing.

        Returns:
            The completed run's progress.

        Raises:
            IndexingInProgressError: If another run holds the indexer.
            DatabaseError: If candidates cannot be selected.
        """
        options = options or IndexingOptions()
        batch_size = options.batch_size or self._settings.batch_size
        delay = (
            options.delay_between_batches
            if options.delay_between_batches is not None
            else self._settings.delay_between_batches
        )

        async with self._exclusive("index"):
            candidates = await self._select_candidates(options)
            return await self._run(candidates, batch_size, delay)

    async def reindex_hospitals(self, hospital_ids: Sequence[str]) -> IndexingProgress:
        """Re-embed specific hospitals regardless of their current vector.

        Inactive and unknown ids are not candidates.

        Raises:
            ValidationError: If no ids are given.
            IndexingInProgressError: If another run holds the indexer.
        """
        ids = list(dict.fromkeys(i for i in hospital_ids if i))
        if not ids:
            raise ValidationError("hospital_ids must be a non-empty list of ids")

        async with self._exclusive("reindex"):
            candidates = await self._store.list_indexing_candidates(
                missing_only=False,
                hospital_ids=ids,
            )
            if len(candidates) < len(ids):
                logger.info(
                    f"{len(ids) - len(candidates)} requested hospitals are not indexable",
                    extra={"requested": len(ids)},
                )
            return await self._run(
                candidates,
                self._settings.batch_size,
                self._settings.delay_between_batches,
            )

    async def reset_embeddings(self) -> int:
        """Clear every stored hospital embedding.

        Returns:
            Number of hospitals that had an embedding.
        """
        async with self._exclusive("reset"):
            cleared = await self._store.clear_embeddings()
        logger.warning(f"Reset {cleared} hospital embeddings")
        update_embedding_coverage(0.0)
        return cleared

    async def get_embedding_status(self) -> EmbeddingStatus:
        """Current embedding coverage of active hospitals."""
        total = await self._store.count_hospitals()
        with_embeddings = await self._store.count_hospitals(with_embedding=True)
        status = EmbeddingStatus.from_counts(total, with_embeddings)
        update_embedding_coverage(status.coverage)
        return status
