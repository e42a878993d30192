"""Per-repository queues that drive ChangeEvents through the pipeline."""

import asyncio
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple

from src.config.logging import get_logger
from src.exceptions import PermanentPlatformError, PlatformError, QueueFullError
from src.models import RepoTarget
from src.schemas import (
    ChangeEvent,
    DiagramChange,
    FileAnalysis,
    FileStatus,
    PipelineState,
    RunOutcome,
    RunReport,
)

from ..protocols.platform_protocol import HostingPlatformProtocol
from .change_detector import ChangeDetector
from .diagram_processor import DiagramProcessor
from .reconciler import Reconciler

logger = get_logger("orchestrator")

PlatformFactory = Callable[[RepoTarget], HostingPlatformProtocol]


class RepositoryWorker:
    """Processes the events of one repository strictly in arrival order."""

    def __init__(
        self,
        target: RepoTarget,
        platform: HostingPlatformProtocol,
        processor: DiagramProcessor,
        reconciler: Reconciler,
        detector: Optional[ChangeDetector] = None,
        queue_max_depth: int = 32,
        processed_limit: int = 1024,
    ):
        self.target = target
        self.platform = platform
        self.processor = processor
        self.reconciler = reconciler
        self.detector = detector or ChangeDetector()
        self.queue: "asyncio.Queue[Tuple[ChangeEvent, datetime]]" = asyncio.Queue(
            maxsize=queue_max_depth
        )
        self.processed_limit = processed_limit

        self.state = PipelineState.IDLE
        self.progress: Tuple[int, int] = (0, 0)
        self.last_error: Optional[str] = None
        self._pending: Set[str] = set()
        self._reports: "OrderedDict[str, RunReport]" = OrderedDict()
        self._task: Optional[asyncio.Task] = None

    # --- lifecycle ---

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(
                self._run(), name=f"diagram-sync:{self.target.repository}"
            )

    async def stop(self, drain: bool = True) -> None:
        if drain and self._task is not None and not self._task.done():
            await self.queue.join()
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        close = getattr(self.platform, "close", None)
        if callable(close):
            close()

    def update_target(self, target: RepoTarget, platform: HostingPlatformProtocol) -> None:
        """Swap configuration; the event in flight keeps the values it started with."""
        old_platform = self.platform
        self.target = target
        self.platform = platform
        close = getattr(old_platform, "close", None)
        if old_platform is not platform and callable(close):
            close()

    # --- intake ---

    def is_known(self, commit_sha: str) -> bool:
        return commit_sha in self._pending or commit_sha in self._reports

    def submit(self, event: ChangeEvent) -> Dict[str, Any]:
        """Queue an event without blocking. Raises QueueFullError at capacity."""
        if self.is_known(event.commit_sha):
            return {"status": "duplicate", "commit_sha": event.commit_sha}
        try:
            self.queue.put_nowait((event, datetime.now(timezone.utc)))
        except asyncio.QueueFull:
            raise QueueFullError(self.target.repository, self.queue.maxsize)
        self._pending.add(event.commit_sha)
        logger.info("Queued %s for %s", event.commit_sha[:7], self.target.repository)
        return {
            "status": "queued",
            "commit_sha": event.commit_sha,
            "position": self.queue.qsize(),
        }

    def report(self, commit_sha: str) -> Optional[RunReport]:
        return self._reports.get(commit_sha)

    def status(self) -> Dict[str, Any]:
        current, total = self.progress
        return {
            "repository": self.target.repository,
            "branch": self.target.branch,
            "state": self.state.value,
            "progress": {"current": current, "total": total},
            "queue_depth": self.queue.qsize(),
            "processed": len(self._reports),
            "last_error": self.last_error,
        }

    # --- processing ---

    async def _run(self) -> None:
        while True:
            event, received_at = await self.queue.get()
            try:
                report = await self.process_event(event, received_at)
            except Exception as e:  # noqa: BLE001 - one bad event must not stop the worker
                logger.exception("Unexpected failure processing %s", event.commit_sha)
                self.state = PipelineState.FAILED
                self.last_error = str(e)
                report = self._failed(event, [f"Unexpected error: {e}"])
            finally:
                self._pending.discard(event.commit_sha)
                self.queue.task_done()
            self._remember(report)

    async def process_event(
        self, event: ChangeEvent, received_at: Optional[datetime] = None
    ) -> RunReport:
        """Run one event through detect, process and reconcile."""
        target = self.target
        platform = self.platform
        generated_at = event.timestamp or received_at or datetime.now(timezone.utc)

        try:
            self.state = PipelineState.DETECTING
            changes = await asyncio.to_thread(self.detector.detect, target, event, platform)

            self.state = PipelineState.PROCESSING
            self.progress = (0, len(changes))
            outcomes = await asyncio.gather(
                *(
                    self._analyze(platform, event, change, generated_at)
                    for change in changes
                ),
                return_exceptions=True,
            )
            # Collect every platform failure of the event before giving up on it
            errors = []
            for outcome in outcomes:
                if isinstance(outcome, PlatformError):
                    errors.append(str(outcome))
                elif isinstance(outcome, BaseException):
                    raise outcome
            if errors:
                return self._fail(event, errors)

            analyses: List[FileAnalysis] = list(outcomes)
            if not analyses:
                self.state = PipelineState.IDLE
                logger.info("No diagram changes in %s", event.commit_sha[:7])
                return RunReport(
                    repository=target.repository,
                    commit_sha=event.commit_sha,
                    outcome=RunOutcome.NO_CHANGES,
                )

            self.state = PipelineState.RECONCILING
            report = await asyncio.to_thread(
                self.reconciler.reconcile, target, event, analyses, platform
            )
        except PlatformError as e:
            return self._fail(event, [str(e)])

        if report.errors:
            self._fail(event, report.errors)
        else:
            self.state = PipelineState.IDLE
            self.last_error = None
        logger.info(
            "Processed %s for %s: %s (%d written, %d deleted, %d issue(s))",
            event.commit_sha[:7],
            target.repository,
            report.outcome.value,
            len(report.written),
            len(report.deleted),
            len(report.issues),
        )
        return report

    async def _analyze(
        self,
        platform: HostingPlatformProtocol,
        event: ChangeEvent,
        change: DiagramChange,
        generated_at: datetime,
    ) -> FileAnalysis:
        content = None
        if change.status != FileStatus.DELETED:
            raw = await asyncio.to_thread(platform.fetch_file, change.path, event.commit_sha)
            if raw is None:
                raise PermanentPlatformError(
                    f"{change.path} not found at {event.commit_sha[:7]}", status_code=404
                )
            content = raw.decode("utf-8", errors="replace")

        analysis = await asyncio.to_thread(
            self.processor.process, change, content, generated_at
        )
        current, total = self.progress
        self.progress = (current + 1, total)
        return analysis

    def _fail(self, event: ChangeEvent, errors: List[str]) -> RunReport:
        self.state = PipelineState.FAILED
        self.last_error = "; ".join(errors)
        logger.error("Run for %s failed: %s", event.commit_sha[:7], self.last_error)
        return self._failed(event, errors)

    def _failed(self, event: ChangeEvent, errors: List[str]) -> RunReport:
        return RunReport(
            repository=self.target.repository,
            commit_sha=event.commit_sha,
            outcome=RunOutcome.FAILED,
            errors=errors,
        )

    def _remember(self, report: RunReport) -> None:
        self._reports[report.commit_sha] = report
        self._reports.move_to_end(report.commit_sha)
        while len(self._reports) > self.processed_limit:
            self._reports.popitem(last=False)


class PipelineOrchestrator:
    """Routes events to per-repository workers.

    Repositories run in parallel; events of one repository run one at a time
    because each commit depends on the branch head left by the previous one.
    """

    def __init__(
        self,
        targets: Iterable[RepoTarget],
        platform_factory: PlatformFactory,
        processor: Optional[DiagramProcessor] = None,
        reconciler: Optional[Reconciler] = None,
        queue_max_depth: int = 32,
        processed_limit: int = 1024,
    ):
        self.platform_factory = platform_factory
        self.processor = processor or DiagramProcessor()
        self.reconciler = reconciler or Reconciler()
        self.queue_max_depth = queue_max_depth
        self.processed_limit = processed_limit
        self.workers: Dict[str, RepositoryWorker] = {}
        self._started = False
        for target in targets:
            self.workers[target.repository] = self._build_worker(target)

    def _build_worker(self, target: RepoTarget) -> RepositoryWorker:
        return RepositoryWorker(
            target=target,
            platform=self.platform_factory(target),
            processor=self.processor,
            reconciler=self.reconciler,
            queue_max_depth=self.queue_max_depth,
            processed_limit=self.processed_limit,
        )

    async def start(self) -> None:
        for worker in self.workers.values():
            worker.start()
        self._started = True

    async def stop(self) -> None:
        await asyncio.gather(*(worker.stop() for worker in self.workers.values()))
        self._started = False

    async def drain(self) -> None:
        """Wait until every queued event has been processed."""
        await asyncio.gather(*(worker.queue.join() for worker in self.workers.values()))

    def submit(self, event: ChangeEvent) -> Dict[str, Any]:
        """Accept one webhook delivery.

        Returns a status dict: ``queued``, ``duplicate``, ``ignored`` or
        ``unknown_repository``. Raises QueueFullError when the repository's
        queue is at capacity.
        """
        if event.event_type != "push":
            logger.debug("Ignoring %s event for %s", event.event_type, event.repository)
            return {"status": "ignored", "reason": f"event type {event.event_type}"}

        worker = self.workers.get(event.repository)
        if worker is None:
            return {"status": "unknown_repository", "repository": event.repository}

        if event.branch != worker.target.branch:
            return {"status": "ignored", "reason": f"branch {event.branch} is not monitored"}

        return worker.submit(event)

    def get_report(self, commit_sha: str) -> Optional[RunReport]:
        for worker in self.workers.values():
            report = worker.report(commit_sha)
            if report is not None:
                return report
        return None

    def status(self) -> Dict[str, Any]:
        return {
            "repositories": [worker.status() for worker in self.workers.values()],
        }

    async def reload_targets(
        self, targets: Iterable[RepoTarget], reconciler: Optional[Reconciler] = None
    ) -> List[str]:
        """Apply a new configuration without dropping queued events."""
        wanted = {target.repository: target for target in targets}

        if reconciler is not None:
            self.reconciler = reconciler
            for worker in self.workers.values():
                worker.reconciler = reconciler

        for name in [name for name in self.workers if name not in wanted]:
            worker = self.workers.pop(name)
            await worker.stop(drain=True)
            logger.info("Stopped monitoring %s", name)

        for name, target in wanted.items():
            worker = self.workers.get(name)
            if worker is None:
                worker = self._build_worker(target)
                self.workers[name] = worker
                if self._started:
                    worker.start()
                logger.info("Started monitoring %s", name)
            elif worker.target != target:
                worker.update_target(target, self.platform_factory(target))
                logger.info("Updated configuration of %s", name)

        return sorted(self.workers)
