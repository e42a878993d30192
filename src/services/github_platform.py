import logging
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import quote

import httpx
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.config.logging import get_logger
from src.exceptions import (
    PermanentPlatformError,
    PlatformError,
    ReconciliationConflict,
    TransientPlatformError,
)
from src.schemas import FileOperation

from ..protocols.platform_protocol import issue_marker

logger = get_logger("platform.github")

_BLOB_MODE = "100644"


class GitHubPlatform:
    """GitHub REST client for one repository.

    Every request is retried with exponential backoff while it fails with a
    TransientPlatformError; other failures surface immediately. Batch commits
    go through the Git Data API so that nothing is visible on the branch
    until the final ref update.
    """

    def __init__(
        self,
        repository: str,
        token: str = "",
        api_url: str = "https://api.github.com",
        timeout: float = 10.0,
        max_attempts: int = 5,
        backoff_multiplier: float = 0.5,
        backoff_max: float = 8.0,
        issue_labels: Sequence[str] = (),
        client: Optional[httpx.Client] = None,
    ):
        self._repository = repository
        self.max_attempts = max_attempts
        self.backoff_multiplier = backoff_multiplier
        self.backoff_max = backoff_max
        self.issue_labels = list(issue_labels)

        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = client or httpx.Client(
            base_url=api_url.rstrip("/"), headers=headers, timeout=timeout
        )

    @property
    def repository(self) -> str:
        return self._repository

    def close(self) -> None:
        self._client.close()

    # --- transport ---

    def _request(
        self, method: str, path: str, allow_not_found: bool = False, **kwargs: Any
    ) -> Optional[httpx.Response]:
        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.backoff_multiplier, max=self.backoff_max),
            retry=retry_if_exception_type(TransientPlatformError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        return retrying(self._send, method, path, allow_not_found, **kwargs)

    def _send(
        self, method: str, path: str, allow_not_found: bool, **kwargs: Any
    ) -> Optional[httpx.Response]:
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise TransientPlatformError(f"{method} {path} timed out: {e}") from e
        except httpx.TransportError as e:
            raise TransientPlatformError(f"{method} {path} failed: {e}") from e

        if response.status_code == 404 and allow_not_found:
            return None
        if response.is_success:
            return response
        raise self._classify(method, path, response)

    @staticmethod
    def _classify(method: str, path: str, response: httpx.Response) -> PlatformError:
        status = response.status_code
        message = f"{method} {path} returned {status}: {response.text[:200]}"
        rate_limited = status == 429 or (
            status == 403
            and (
                response.headers.get("x-ratelimit-remaining") == "0"
                or "rate limit" in response.text.lower()
            )
        )
        if rate_limited or status >= 500:
            return TransientPlatformError(message, status_code=status)
        return PermanentPlatformError(message, status_code=status)

    def _json(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        return self._request(method, path, **kwargs).json()

    # --- content ---

    def fetch_file(self, path: str, ref: str) -> Optional[bytes]:
        """Raw file bytes at ``ref``, or None when the path is absent."""
        response = self._request(
            "GET",
            f"/repos/{self._repository}/contents/{quote(path)}",
            allow_not_found=True,
            params={"ref": ref},
            headers={"Accept": "application/vnd.github.raw+json"},
        )
        if response is None:
            return None
        return response.content

    # --- batch commit ---

    def commit_batch(
        self, operations: List[FileOperation], message: str, branch: str
    ) -> str:
        if not operations:
            raise ValueError("A batch commit needs at least one operation")

        repo = self._repository
        ref_path = f"/repos/{repo}/git/refs/heads/{quote(branch)}"
        head = self._json("GET", f"/repos/{repo}/git/ref/heads/{quote(branch)}")["object"]["sha"]
        base_tree = self._json("GET", f"/repos/{repo}/git/commits/{head}")["tree"]["sha"]

        entries = []
        for op in operations:
            entry = {"path": op.path, "mode": _BLOB_MODE, "type": "blob"}
            if op.is_delete:
                entry["sha"] = None
            else:
                entry["content"] = op.content
            entries.append(entry)

        tree = self._json(
            "POST",
            f"/repos/{repo}/git/trees",
            json={"base_tree": base_tree, "tree": entries},
        )["sha"]
        commit = self._json(
            "POST",
            f"/repos/{repo}/git/commits",
            json={"message": message, "tree": tree, "parents": [head]},
        )["sha"]

        try:
            self._request("PATCH", ref_path, json={"sha": commit, "force": False})
        except PermanentPlatformError as e:
            # 422 means the update is no longer a fast-forward of the branch
            if e.status_code in (409, 422):
                raise ReconciliationConflict(
                    f"{branch} moved away from {head[:7]}", status_code=e.status_code
                ) from e
            raise

        logger.info("Committed %d file(s) to %s@%s as %s", len(operations), repo, branch, commit[:7])
        return commit

    # --- issues ---

    def find_open_issue(self, key: str) -> Optional[int]:
        marker = issue_marker(key)
        params: Dict[str, Any] = {"state": "open", "per_page": 100}
        if self.issue_labels:
            params["labels"] = ",".join(self.issue_labels)

        url: Optional[str] = f"/repos/{self._repository}/issues"
        while url:
            response = self._request("GET", url, params=params)
            for issue in response.json():
                if "pull_request" in issue:
                    continue
                if marker in (issue.get("body") or ""):
                    return issue["number"]
            next_link = response.links.get("next")
            url = next_link["url"] if next_link else None
            # The next link already carries the query string
            params = {}
        return None

    def create_issue(self, title: str, body: str, labels: List[str]) -> int:
        issue = self._json(
            "POST",
            f"/repos/{self._repository}/issues",
            json={"title": title, "body": body, "labels": labels},
        )
        logger.info("Opened issue #%s on %s: %s", issue["number"], self._repository, title)
        return issue["number"]
