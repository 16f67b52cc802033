"""
Concurrent ingestion pipeline.

A producer (the calling thread) enumerates jobs into a bounded queue; a
fixed pool of worker threads embeds and stores them:

    source -> IngestJob -> queue.Queue(maxsize=C) -> W workers
           -> sink.get_embedding -> sink.store_knowledge

``put`` blocks while the queue is full, so a slow backend throttles the
producer instead of buffering the whole source in memory. When the producer
is done it enqueues one sentinel per worker; each worker exits on its
sentinel after the jobs ahead of it are drained.
"""

import logging
import queue
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from ..config.config_loader import DEFAULT_CHANNEL_CAPACITY, DEFAULT_WORKERS, KnowledgeConfig
from ..core.exceptions import KnowledgeConfigError
from ..core.types import EmbeddingRecord, IngestJob
from .sources import SourceSpec, iter_jobs


logger = logging.getLogger(__name__)


# Marks the end of the job stream for one worker
_SENTINEL = object()


@dataclass
class PipelineConfig:
    """
    Configuration for the ingestion pipeline.

    Attributes:
        workers: Number of worker threads (W)
        channel_capacity: Maximum number of queued jobs (C)
    """
    workers: int = DEFAULT_WORKERS
    channel_capacity: int = DEFAULT_CHANNEL_CAPACITY

    def __post_init__(self):
        if self.workers <= 0:
            raise KnowledgeConfigError(f"workers must be positive, got {self.workers}")
        if self.channel_capacity <= 0:
            raise KnowledgeConfigError(
                f"channel_capacity must be positive, got {self.channel_capacity}"
            )

    @classmethod
    def from_config(cls, config: KnowledgeConfig) -> "PipelineConfig":
        return cls(workers=config.workers, channel_capacity=config.channel_capacity)


@dataclass
class IngestReport:
    """Aggregate metrics for one ingestion run."""
    run_id: str
    started_at: datetime
    ended_at: Optional[datetime] = None
    jobs_enqueued: int = 0
    jobs_succeeded: int = 0
    jobs_failed: int = 0
    status: str = "running"
    failed_sources: List[str] = field(default_factory=list)

    # Per-worker metrics
    worker_metrics: Dict[str, dict] = field(default_factory=dict)

    @property
    def jobs_processed(self) -> int:
        return self.jobs_succeeded + self.jobs_failed

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.ended_at is None:
            return None
        return (self.ended_at - self.started_at).total_seconds()


class IngestionPipeline:
    """
    Bounded producer/worker-pool pipeline.

    The sink is anything with ``get_embedding(text)`` and
    ``store_knowledge(record)``; normally the KnowledgeStore facade, which
    shares one embedding handle and one vector store across all workers.

    Example:
        >>> pipeline = IngestionPipeline(store, PipelineConfig(workers=4))
        >>> report = pipeline.run(iter_jobs(SourceSpec.directory("docs")))
        >>> report.jobs_succeeded
        12
    """

    def __init__(self, sink, config: Optional[PipelineConfig] = None):
        """
        Initialize the pipeline.

        Args:
            sink: Object providing get_embedding and store_knowledge
            config: Pipeline configuration (uses defaults if not provided)
        """
        self.sink = sink
        self.config = config or PipelineConfig()
        self._metrics_lock = threading.Lock()

    def run(self, jobs: Iterable[IngestJob], run_id: Optional[str] = None) -> IngestReport:
        """
        Process every job from ``jobs`` and wait for all workers.

        Per-job failures are logged and counted; they never abort the run.
        An exception raised while enumerating ``jobs`` still closes the queue
        and waits for the workers before it propagates.

        Args:
            jobs: Iterable of jobs, consumed in the calling thread
            run_id: Optional run identifier (generated if not provided)

        Returns:
            IngestReport with aggregate statistics
        """
        if run_id is None:
            run_id = str(uuid.uuid4())

        logger.info(
            f"Starting ingestion run: {run_id} (workers={self.config.workers}, "
            f"channel_capacity={self.config.channel_capacity})",
            extra={"run_id": run_id},
        )

        report = IngestReport(run_id=run_id, started_at=datetime.now(timezone.utc))
        channel: "queue.Queue" = queue.Queue(maxsize=self.config.channel_capacity)

        worker_failed = False
        executor = ThreadPoolExecutor(
            max_workers=self.config.workers,
            thread_name_prefix="knowledge-worker",
        )
        try:
            futures = {
                executor.submit(self._worker_loop, f"worker-{i}", channel, report): f"worker-{i}"
                for i in range(self.config.workers)
            }

            try:
                for job in jobs:
                    channel.put(job)
                    with self._metrics_lock:
                        report.jobs_enqueued += 1
                    logger.debug(
                        f"Enqueued {job.data_source}",
                        extra={"run_id": run_id, "data_source": str(job.data_source)},
                    )
            except BaseException:
                report.status = "aborted"
                raise
            finally:
                # Close the channel: one sentinel per worker, behind all jobs
                for _ in range(self.config.workers):
                    channel.put(_SENTINEL)

                wait(futures)
                for future, worker_id in futures.items():
                    if future.exception() is not None:
                        worker_failed = True
                        logger.error(
                            f"Worker {worker_id} failed with error: {future.exception()}",
                            extra={"run_id": run_id, "worker_id": worker_id},
                        )
                report.ended_at = datetime.now(timezone.utc)
        finally:
            executor.shutdown(wait=True)

        report.status = "failed" if worker_failed else "completed"
        logger.info(
            f"Run {report.status}: {run_id} enqueued={report.jobs_enqueued}, "
            f"succeeded={report.jobs_succeeded}, failed={report.jobs_failed}",
            extra={"run_id": run_id},
        )
        return report

    def _worker_loop(self, worker_id: str, channel: "queue.Queue", report: IngestReport) -> None:
        """Receive jobs until this worker's sentinel arrives."""
        run_id = report.run_id
        logger.debug(f"Worker {worker_id} starting", extra={"run_id": run_id, "worker_id": worker_id})

        worker_metrics = {
            "jobs_processed": 0,
            "jobs_succeeded": 0,
            "jobs_failed": 0,
        }

        try:
            while True:
                job = channel.get()
                if job is _SENTINEL:
                    break

                context = {
                    "run_id": run_id,
                    "worker_id": worker_id,
                    "data_source": str(job.data_source),
                }
                try:
                    self._process_job(job, context)
                    worker_metrics["jobs_succeeded"] += 1
                    with self._metrics_lock:
                        report.jobs_succeeded += 1
                except Exception as e:
                    worker_metrics["jobs_failed"] += 1
                    with self._metrics_lock:
                        report.jobs_failed += 1
                        report.failed_sources.append(str(job.data_source))
                    logger.error(f"Failed to ingest {job.data_source}: {e}", extra=context)

                worker_metrics["jobs_processed"] += 1
        finally:
            with self._metrics_lock:
                report.worker_metrics[worker_id] = worker_metrics

            logger.debug(
                f"Worker {worker_id} stopped. Processed: {worker_metrics['jobs_processed']}",
                extra={"run_id": run_id, "worker_id": worker_id},
            )

    def _process_job(self, job: IngestJob, context: Dict[str, str]) -> None:
        logger.info(f"Processing: {job.data_source}", extra=context)

        content = job.read_content()
        embedding = self.sink.get_embedding(content)
        self.sink.store_knowledge(
            EmbeddingRecord(
                data_source=job.data_source,
                embedding=embedding,
                content=content,
                metadata=job.metadata,
            )
        )


def ingest(
    sink,
    spec: SourceSpec,
    config: Optional[PipelineConfig] = None,
    run_id: Optional[str] = None,
    session=None,
) -> IngestReport:
    """
    Ingest one source through a fresh pipeline.

    Args:
        sink: Object providing get_embedding and store_knowledge
        spec: What to ingest
        config: Pipeline configuration
        run_id: Optional run identifier
        session: Optional requests session for URL sources

    Returns:
        IngestReport for the run

    Raises:
        KnowledgeSourceError: If a directory is missing or a URL cannot be fetched
    """
    pipeline = IngestionPipeline(sink, config)
    return pipeline.run(iter_jobs(spec, session=session), run_id=run_id)
