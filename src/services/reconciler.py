"""Turns per-file analyses into one atomic metadata commit and validation issues."""

import hashlib
from typing import Dict, List, Optional, Sequence, Tuple

from src.config.logging import get_logger
from src.exceptions import PermanentPlatformError, PlatformError, ReconciliationConflict
from src.models import RepoTarget
from src.schemas import (
    ChangeEvent,
    FileAnalysis,
    FileOperation,
    IssueRecord,
    ReconciliationBatch,
    RunOutcome,
    RunReport,
    ValidationFailure,
)

from ..protocols.platform_protocol import HostingPlatformProtocol, issue_marker
from .metadata_writer import MetadataWriter, sidecar_path

logger = get_logger("reconciler")

DEFAULT_ISSUE_LABELS = ("diagram-validation", "automated-issue")

# A conflicting batch is rebuilt against the new head this many extra times
CONFLICT_RETRIES = 1


def issue_key(failure: ValidationFailure) -> str:
    """Idempotency key: hash of the path and the failing blocks' content."""
    digest = hashlib.sha256(failure.path.encode("utf-8"))
    for block in failure.blocks:
        digest.update(b"\0")
        digest.update(block.dialect.encode("utf-8"))
        digest.update(b"\0")
        digest.update(block.content.encode("utf-8"))
    return digest.hexdigest()


def build_issue(failure: ValidationFailure, labels: Sequence[str]) -> IssueRecord:
    key = issue_key(failure)
    sections = []
    for block, result in zip(failure.blocks, failure.results):
        errors = "\n".join(f"- {error}" for error in result.errors)
        sections.append(
            f"### `{block.dialect}` block at bytes {block.start}-{block.end}\n\n{errors}"
        )

    body = "\n\n".join(
        [
            "## Diagram Validation Failed",
            f"**File:** `{failure.path}`",
            *sections,
            "**Action Required:**\n"
            "Please review and fix the diagram syntax. These problems were detected "
            "during automatic validation of the latest push.",
            "---\n*This issue was opened automatically by the diagram sync bot.*",
            issue_marker(key),
        ]
    )
    return IssueRecord(
        path=failure.path,
        dialects=failure.dialects,
        key=key,
        title=f"Invalid diagram syntax in {failure.path}",
        body=body,
        labels=list(labels),
    )


def _decode(raw: Optional[bytes]) -> Optional[str]:
    if raw is None:
        return None
    return raw.decode("utf-8", errors="replace")


class Reconciler:
    """Stages metadata changes for one event and applies them in a single commit."""

    def __init__(self, labels: Sequence[str] = DEFAULT_ISSUE_LABELS):
        self.labels = list(labels)

    def plan(
        self,
        target: RepoTarget,
        event: ChangeEvent,
        analyses: List[FileAnalysis],
        platform: HostingPlatformProtocol,
    ) -> Tuple[ReconciliationBatch, List[IssueRecord]]:
        """Compute the batch against the current branch head, plus issues to file.

        Sources sharing a stem (``a.md`` and ``a.puml``) share one sidecar
        path, so analyses are grouped by that path and each path gets at most
        one operation.
        """
        issues: List[IssueRecord] = []
        claims: Dict[str, List[FileAnalysis]] = {}
        for analysis in analyses:
            failure = analysis.failure()
            if failure is not None:
                issues.append(build_issue(failure, self.labels))
            claims.setdefault(sidecar_path(analysis.path), []).append(analysis)

        operations: List[FileOperation] = []
        for metadata_path, claimants in claims.items():
            operation = self._resolve(target, metadata_path, claimants, platform)
            if operation is not None:
                operations.append(operation)

        batch = ReconciliationBatch(
            operations=operations, message=self.summary(event, operations)
        )
        return batch, issues

    @staticmethod
    def _resolve(
        target: RepoTarget,
        metadata_path: str,
        claimants: List[FileAnalysis],
        platform: HostingPlatformProtocol,
    ) -> Optional[FileOperation]:
        live = [a for a in claimants if not a.deleted and a.blocks]
        if not live:
            if platform.fetch_file(metadata_path, target.branch) is not None:
                return FileOperation(path=metadata_path)
            return None

        # A live source with invalid blocks keeps its last good record
        writers = sorted((a for a in live if a.failure() is None), key=lambda a: a.path)
        if not writers:
            return None
        owner = writers[0]
        if len(claimants) > 1:
            logger.warning(
                "%s is shared by %s, keeping the record of %s",
                metadata_path,
                ", ".join(a.path for a in claimants),
                owner.path,
            )

        existing = _decode(platform.fetch_file(metadata_path, target.branch))
        if MetadataWriter.same_record(existing, owner.metadata):
            return None
        return FileOperation(path=metadata_path, content=owner.metadata)

    @staticmethod
    def summary(event: ChangeEvent, operations: List[FileOperation]) -> str:
        if not operations:
            return ""
        lines = [
            f"Auto-update diagram metadata for {event.commit_sha[:7]}",
            "",
        ]
        for op in operations:
            verb = "Remove" if op.is_delete else "Update"
            lines.append(f"- {verb} {op.path}")
        return "\n".join(lines) + "\n"

    def reconcile(
        self,
        target: RepoTarget,
        event: ChangeEvent,
        analyses: List[FileAnalysis],
        platform: HostingPlatformProtocol,
    ) -> RunReport:
        """Commit the batch (rebuilt once on conflict), then file issues."""
        attempt = 0
        while True:
            batch, issues = self.plan(target, event, analyses, platform)
            if not batch.operations:
                new_commit = None
                break
            try:
                new_commit = platform.commit_batch(
                    batch.operations, batch.message, target.branch
                )
                break
            except ReconciliationConflict as e:
                if attempt >= CONFLICT_RETRIES:
                    raise PermanentPlatformError(
                        f"Batch for {event.commit_sha[:7]} kept conflicting: {e}",
                        status_code=e.status_code,
                    ) from e
                attempt += 1
                logger.warning(
                    "Branch %s moved during commit, rebuilding batch: %s", target.branch, e
                )

        # A failed issue must not hide a commit that already landed
        filed: List[IssueRecord] = []
        errors: List[str] = []
        for issue in issues:
            try:
                filed.append(self.file_issue(issue, platform))
            except PlatformError as e:
                logger.error("Could not file issue for %s: %s", issue.path, e)
                errors.append(f"Issue for {issue.path} not filed: {e}")

        if new_commit and filed:
            outcome = RunOutcome.COMMITTED_WITH_ISSUES
        elif new_commit:
            outcome = RunOutcome.COMMITTED
        elif filed:
            outcome = RunOutcome.ISSUED
        elif errors:
            outcome = RunOutcome.FAILED
        else:
            outcome = RunOutcome.NO_CHANGES

        return RunReport(
            repository=target.repository,
            commit_sha=event.commit_sha,
            outcome=outcome,
            new_commit_sha=new_commit,
            written=batch.written,
            deleted=batch.deleted,
            issues=filed,
            errors=errors,
        )

    def file_issue(
        self, issue: IssueRecord, platform: HostingPlatformProtocol
    ) -> IssueRecord:
        """Check-then-open. Concurrent runs may still open a duplicate."""
        existing = platform.find_open_issue(issue.key)
        if existing is not None:
            logger.info("Issue #%s already tracks %s", existing, issue.path)
            return issue.model_copy(update={"number": existing, "created": False})

        number = platform.create_issue(issue.title, issue.body, issue.labels)
        return issue.model_copy(update={"number": number, "created": True})
