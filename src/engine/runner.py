# src/engine/runner.py — v2
"""Streaming execution engine: run a planned BatchRun with a worker pool.

Jobs whose predecessors are all done sit in a ready queue; a fixed pool of
asyncio workers pulls from it. Every status transition happens under one
asyncio.Lock. Per-item failures are isolated: a failed job cascades to its
dependents only, and the item's outcome is reported once, when its last
job settles. Each settled item is persisted before the worker moves on.

Terminal paths:
  complete    every job settled
  fatalError  a batch-fatal error (ProviderUnreachable), or every executed
              job failed with AdaptorUnavailable for the same adaptor
  (silent)    the subscriber closed the sink: no new jobs start, in-flight
              jobs finish and persist, unstarted jobs fail as 'cancelled'
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

from genstage.core.errors import AdaptorUnavailable, DependencyFailed, GenerationError, JobCancelled
from genstage.core.models import BatchRun, FinalSummary, GenerationJob, ItemOutcome
from genstage.engine.classify import classify_error
from genstage.engine.events import COMPLETE, FATAL_ERROR, ITEM_RESULT, PROGRESS, START, ProgressSink
from genstage.engine.executor import JobExecutor, JobOutput
from genstage.engine.recorder import ResultRecorder
from genstage.logging.context import set_batch_context, set_job_context
from genstage.tracking.usage import UsageTracker

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENCY = 3

_DEPENDENCY_FAILED = DependencyFailed.kind
_CANCELLED = JobCancelled.kind


class StreamingEngine:
    """Execute BatchRuns and stream their progress.

    Args:
        executor: Runs individual jobs.
        recorder: Persists item outcomes.
        max_concurrency: Worker pool size (ENGINE_MAX_CONCURRENCY).
    """

    def __init__(
        self,
        executor: JobExecutor,
        recorder: ResultRecorder,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self._executor = executor
        self._recorder = recorder
        self._max_concurrency = max_concurrency

    async def run(
        self,
        batch: BatchRun,
        sink: ProgressSink,
    ) -> FinalSummary:
        """Run every job of ``batch``; always returns a FinalSummary.

        Job-level errors never escape; they end up in item outcomes.
        """
        execution = _BatchExecution(
            batch=batch,
            sink=sink,
            executor=self._executor,
            recorder=self._recorder,
            max_concurrency=self._max_concurrency,
        )
        return await execution.run()


class _BatchExecution:
    """Mutable state of one engine run."""

    def __init__(
        self,
        batch: BatchRun,
        sink: ProgressSink,
        executor: JobExecutor,
        recorder: ResultRecorder,
        max_concurrency: int,
    ) -> None:
        self.batch = batch
        self.sink = sink
        self.executor = executor
        self.recorder = recorder
        self.max_concurrency = max_concurrency

        self.lock = asyncio.Lock()
        self.queue: asyncio.Queue[str | None] = asyncio.Queue()
        self.done = asyncio.Event()
        self.jobs: dict[str, GenerationJob] = {j.job_id: j for j in batch.jobs}
        self.dependents: dict[str, list[str]] = {j.job_id: [] for j in batch.jobs}
        for job in batch.jobs:
            for pred in job.predecessors:
                self.dependents[pred].append(job.job_id)

        self.outcomes: dict[int, ItemOutcome] = {}
        self.failures: dict[str, GenerationError] = {}
        self.tracker = UsageTracker()
        self.fatal: str | None = None
        self.cancelled = False

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    async def run(self) -> FinalSummary:
        start = time.monotonic()
        batch = self.batch
        set_batch_context(batch.batch_id, batch.project_id)
        batch.status = "executing"

        logger.info(
            "Batch %s started: %d items, %d jobs, concurrency %d",
            batch.batch_id, len(batch.slots), len(batch.jobs), self.max_concurrency,
        )
        await self._emit(START, {"totalItems": len(batch.slots), "batchId": batch.batch_id})

        if self.sink.closed:
            async with self.lock:
                self._cancel_pending("subscriber disconnected")
        for job in batch.jobs:
            if not job.predecessors:
                self.queue.put_nowait(job.job_id)
        async with self.lock:
            self._check_done()

        workers = [
            asyncio.create_task(self._worker())
            for _ in range(min(self.max_concurrency, len(batch.jobs)))
        ]
        await self.done.wait()

        if self.fatal:
            for worker in workers:
                worker.cancel()
        else:
            for _ in workers:
                self.queue.put_nowait(None)
        await asyncio.gather(*workers, return_exceptions=True)

        async with self.lock:
            # Workers cancelled by a fatal error leave running jobs behind.
            self._cancel_pending("batch aborted", include_running=True)

        if self.fatal is None:
            self.fatal = self._all_same_adaptor_unavailable()

        summary = self._summary(int((time.monotonic() - start) * 1000))
        batch.status = "terminal"

        try:
            await self.recorder.record_batch(summary)
        except Exception:
            logger.exception("Failed to persist summary of batch %s", batch.batch_id)

        if self.fatal:
            logger.error("Batch %s aborted: %s", batch.batch_id, self.fatal)
            await self._emit(FATAL_ERROR, {"message": self.fatal})
        else:
            logger.info(
                "Batch %s complete: %d succeeded, %d failed, %dms%s",
                batch.batch_id, summary.succeeded, summary.failed, summary.duration_ms,
                " (cancelled)" if summary.cancelled else "",
            )
            await self._emit(COMPLETE, {"summary": summary.model_dump(mode="json")})
        await self._close_sink()
        return summary

    async def _worker(self) -> None:
        while True:
            job_id = await self.queue.get()
            if job_id is None:
                return
            job = self.jobs[job_id]

            async with self.lock:
                if job.status != "pending":
                    continue
                if self.fatal or self.sink.closed:
                    self._cancel_pending("subscriber disconnected")
                    self._check_done()
                    continue
                job.status = "running"
                predecessor_results = {
                    self.jobs[p].step: self.jobs[p].result or {} for p in job.predecessors
                }

            set_job_context(job.item_id, job.step)
            await self._emit(
                PROGRESS,
                {
                    "message": f"Generating {job.capability} for step '{job.step}'",
                    "percent": self._percent(),
                    "itemId": job.item_id,
                },
            )

            try:
                output = await self.executor.execute(
                    job, self.batch.project_id, self.batch.task, predecessor_results
                )
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                await self._settle_failure(job, classify_error(exc))
            else:
                await self._settle_success(job, output)

    # ------------------------------------------------------------------
    # Settlement
    # ------------------------------------------------------------------

    async def _settle_success(self, job: GenerationJob, output: JobOutput) -> None:
        async with self.lock:
            job.status = "done"
            job.result = output.result
            job.usage = output.usage
            self.tracker.record(
                job.job_id, job.item_id, output.model.adaptor_id, output.model.model_id,
                job.capability, output.usage,
            )
            for dep_id in self.dependents[job.job_id]:
                dep = self.jobs[dep_id]
                if dep.status == "pending" and all(
                    self.jobs[p].status == "done" for p in dep.predecessors
                ):
                    self.queue.put_nowait(dep_id)
            outcome = self._settle_slot(job.slot)
            percent = self._percent()

        logger.info("Step %s done for item %s", job.step, job.item_id)
        if outcome is None:
            await self._emit(
                PROGRESS,
                {"message": f"Step '{job.step}' complete", "percent": percent, "itemId": job.item_id},
            )
        await self._finish(outcome)

    async def _settle_failure(self, job: GenerationJob, error: GenerationError) -> None:
        async with self.lock:
            job.status = "failed"
            job.error = error.message
            job.error_kind = error.kind
            self.failures[job.job_id] = error
            self._cascade(job)
            if error.fatal and self.fatal is None:
                self.fatal = error.message
            outcome = self._settle_slot(job.slot)

        logger.warning("Step %s failed for item %s [%s]: %s",
                       job.step, job.item_id, error.kind, error.message)
        await self._finish(outcome)

    async def _finish(self, outcome: ItemOutcome | None) -> None:
        """Persist and report a settled item, then check for batch completion."""
        if outcome is not None and outcome.error_kind != _CANCELLED:
            try:
                await self.recorder.record_item(self.batch.project_id, self.batch.task, outcome)
            except Exception:
                logger.exception("Failed to persist outcome of item %s", outcome.item_id)
            await self._emit(ITEM_RESULT, _item_payload(outcome))

        async with self.lock:
            if self.fatal:
                self._cancel_pending("batch aborted")
                self.done.set()
            elif self.sink.closed:
                self._cancel_pending("subscriber disconnected")
            self._check_done()

    def _cascade(self, failed: GenerationJob) -> None:
        stack = list(self.dependents[failed.job_id])
        while stack:
            dep = self.jobs[stack.pop()]
            if dep.status != "pending":
                continue
            dep.status = "failed"
            dep.error = f"Predecessor step '{failed.step}' failed"
            dep.error_kind = _DEPENDENCY_FAILED
            stack.extend(self.dependents[dep.job_id])

    def _cancel_pending(self, reason: str, include_running: bool = False) -> None:
        """Fail every job that has not started (lock held)."""
        statuses = ("pending", "running") if include_running else ("pending",)
        touched: set[int] = set()
        for job in self.batch.jobs:
            if job.status in statuses:
                job.status = "failed"
                job.error = f"Cancelled: {reason}"
                job.error_kind = _CANCELLED
                touched.add(job.slot)
        if touched:
            if self.fatal is None:
                self.cancelled = True
            for slot in touched:
                self._settle_slot(slot)

    def _check_done(self) -> None:
        if all(job.is_terminal for job in self.batch.jobs):
            self.done.set()

    def _settle_slot(self, slot: int) -> ItemOutcome | None:
        """Build the item's outcome once all its jobs are terminal (lock held)."""
        if slot in self.outcomes:
            return None
        jobs = self.batch.jobs_for_slot(slot)
        if not all(j.is_terminal for j in jobs):
            return None

        steps = {j.step: j.result for j in jobs if j.status == "done" and j.result is not None}
        if all(j.status == "done" for j in jobs):
            outcome = ItemOutcome(
                item_id=jobs[0].item_id, status="succeeded", result=jobs[-1].result, steps=steps
            )
        else:
            failed = [j for j in jobs if j.status == "failed"]
            root = next((j for j in failed if j.error_kind != _DEPENDENCY_FAILED), failed[0])
            outcome = ItemOutcome(
                item_id=jobs[0].item_id,
                status="failed",
                error=root.error,
                error_kind=root.error_kind,
                failed_step=root.step,
                steps=steps,
            )
        self.outcomes[slot] = outcome
        return outcome

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _emit(self, event: str, payload: dict[str, Any]) -> None:
        if self.sink.closed:
            return
        if self.fatal and event != FATAL_ERROR:
            return
        try:
            await self.sink.emit(event, payload)
        except Exception:
            logger.exception("Sink failed on %s event; treating subscriber as gone", event)
            await self._close_sink()

    async def _close_sink(self) -> None:
        try:
            await self.sink.close()
        except Exception:
            logger.exception("Sink failed to close for batch %s", self.batch.batch_id)

    def _percent(self) -> int:
        total = len(self.batch.jobs)
        settled = sum(1 for j in self.batch.jobs if j.is_terminal)
        return int(100 * settled / total) if total else 100

    def _all_same_adaptor_unavailable(self) -> str | None:
        if any(j.status == "done" for j in self.batch.jobs) or not self.failures:
            return None
        errors = list(self.failures.values())
        if not all(isinstance(e, AdaptorUnavailable) for e in errors):
            return None
        adaptor_ids = {e.adaptor_id for e in errors}  # type: ignore[attr-defined]
        if len(adaptor_ids) != 1 or None in adaptor_ids:
            return None
        return f"Adaptor '{adaptor_ids.pop()}' unavailable for every job: {errors[0].message}"

    def _summary(self, duration_ms: int) -> FinalSummary:
        outcomes = [self.outcomes[slot] for slot in sorted(self.outcomes)]
        return FinalSummary(
            batch_id=self.batch.batch_id,
            project_id=self.batch.project_id,
            product=self.batch.product,
            task=self.batch.task,
            total_items=len(self.batch.slots),
            succeeded=sum(1 for o in outcomes if o.status == "succeeded"),
            failed=sum(1 for o in outcomes if o.status == "failed"),
            outcomes=outcomes,
            usage=self.tracker.totals().model_dump(mode="json"),
            fatal_error=self.fatal,
            cancelled=self.cancelled,
            duration_ms=duration_ms,
        )


def _item_payload(outcome: ItemOutcome) -> dict[str, Any]:
    if outcome.status == "succeeded":
        return {"itemId": outcome.item_id, "status": "succeeded", "result": outcome.result}
    return {
        "itemId": outcome.item_id,
        "status": "failed",
        "error": outcome.error,
        "errorKind": outcome.error_kind,
        "failedStep": outcome.failed_step,
    }
