import logging
import threading
from typing import Any

import requests

from ..config import Config
from ..converters.adf import markup_to_adf
from ..errors import (
    AuthError,
    NotFoundError,
    SyncValidationError,
    TrackerConnectionError,
    TransformError,
)
from ..validators import validate_project_key, validate_summary
from .models import CreatedIssue, RemoteIssue, RemoteStatus, Transition
from .throttle import RateLimiter, TTLCache

logger = logging.getLogger(__name__)

SEARCH_PAGE_SIZE = 100
ISSUE_FIELDS = "summary,description,status,priority,assignee,created,updated,duedate"


class JiraClient:
    """Jira Cloud REST client covering the operations the sync engine needs.

    Every call goes through the injected ``RateLimiter`` and carries a
    bounded ``(connect, read)`` timeout. HTTP and network failures are
    translated into the ``jira_sync_mcp.errors`` taxonomy.
    """

    def __init__(
        self,
        config: Config,
        limiter: RateLimiter | None = None,
        cache: TTLCache | None = None,
        connect_timeout: float = 10.0,
    ):
        self.config = config
        self.limiter = limiter or RateLimiter()
        self.cache = cache or TTLCache()
        self.timeout = (connect_timeout, config.timeout)
        self.base_url = config.base_url
        self._thread_local = threading.local()

    @property
    def session(self) -> requests.Session:
        """Session for the current thread."""
        return self._get_session()

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = self._create_session()
        return self._thread_local.session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.auth = (self.config.email, self.config.api_token)
        session.verify = not self.config.insecure
        session.headers.update(
            {
                "Accept": "application/json",
                "Content-Type": "application/json",
            }
        )
        return session

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        """
        Make a REST request and return the decoded JSON body (or None).
        """
        url = f"{self.base_url}{path}"
        self.limiter.acquire()
        logger.debug("%s %s", method, path)
        try:
            response = self._get_session().request(
                method,
                url,
                params=params,
                json=json,
                timeout=self.timeout,
            )
        except requests.Timeout as e:
            raise TrackerConnectionError(
                f"{method} {path} timed out: {e}"
            ) from e
        except requests.ConnectionError as e:
            raise TrackerConnectionError(
                f"Cannot reach Jira at {self.config.domain}: {e}"
            ) from e
        except requests.RequestException as e:
            raise TrackerConnectionError(
                f"{method} {path} failed: {e}"
            ) from e

        status = response.status_code
        if status >= 400:
            detail = self._error_detail(response)
            message = f"{method} {path} failed with HTTP {status}: {detail}"
            match status:
                case 401:
                    raise AuthError(message, status_code=status)
                case 404:
                    raise NotFoundError(message, status_code=status)
                case 400 | 403 | 409 | 422:
                    raise SyncValidationError(message, status_code=status)
                case _:
                    raise TrackerConnectionError(message, status_code=status)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise TransformError(
                f"{method} {path} returned invalid JSON"
            ) from e

    @staticmethod
    def _error_detail(response: requests.Response) -> str:
        """Extract Jira's errorMessages/errors from an error response."""
        try:
            body = response.json()
        except ValueError:
            return response.text[:200] or response.reason or "no details"
        if not isinstance(body, dict):
            return str(body)[:200]
        parts = list(body.get("errorMessages") or [])
        errors = body.get("errors") or {}
        if isinstance(errors, dict):
            parts.extend(f"{k}: {v}" for k, v in errors.items())
        return "; ".join(str(p) for p in parts) or response.reason or "no details"

    def _description_payload(self, markup: str) -> str | dict[str, Any]:
        # API v3 only accepts Atlassian Document Format bodies
        if self.config.api_version >= 3:
            return markup_to_adf(markup)
        return markup

    def validate_connection(self) -> str:
        """
        Validate credentials by calling /myself.
        Returns the account display name if successful.
        """
        me = self._request("GET", "/myself")
        if not isinstance(me, dict):
            raise TransformError("Unexpected /myself response")
        return str(me.get("displayName") or me.get("emailAddress") or "")

    def get_project_statuses(self, project_key: str) -> list[RemoteStatus]:
        """
        List the workflow statuses used by a project.

        Statuses are grouped per issue type by Jira; they are flattened and
        de-duplicated by id. Results are cached for the cache TTL.
        """
        cache_key = f"statuses:{project_key}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        payload = self._request("GET", f"/project/{project_key}/statuses")
        if not isinstance(payload, list):
            raise TransformError(
                f"Unexpected statuses response for project {project_key}"
            )

        statuses: dict[str, RemoteStatus] = {}
        for issue_type in payload:
            entries = (
                issue_type.get("statuses")
                if isinstance(issue_type, dict)
                else None
            )
            for raw in entries or []:
                try:
                    status = RemoteStatus.from_api(raw)
                except TransformError as e:
                    logger.warning("Skipping malformed status: %s", e)
                    continue
                statuses.setdefault(status.id, status)

        result = list(statuses.values())
        self.cache.set(cache_key, result)
        return result

    def invalidate_statuses(self, project_key: str) -> None:
        self.cache.invalidate(f"statuses:{project_key}")

    def get_project_issues(self, project_key: str) -> list[RemoteIssue]:
        """
        List all issues of a project, newest first, following pagination.
        """
        is_valid, reason = validate_project_key(project_key)
        if not is_valid:
            raise SyncValidationError(reason)

        issues: list[RemoteIssue] = []
        start_at = 0
        while True:
            page = self._request(
                "GET",
                "/search",
                params={
                    "jql": f"project = {project_key} ORDER BY created DESC",
                    "startAt": start_at,
                    "maxResults": SEARCH_PAGE_SIZE,
                    "fields": ISSUE_FIELDS,
                },
            )
            if not isinstance(page, dict):
                raise TransformError("Unexpected search response")
            raw_issues = page.get("issues") or []
            for raw in raw_issues:
                try:
                    issues.append(RemoteIssue.from_api(raw))
                except TransformError as e:
                    logger.warning("Skipping malformed issue: %s", e)
            start_at += len(raw_issues)
            total = int(page.get("total") or 0)
            if not raw_issues or start_at >= total:
                break
        logger.debug(
            "Fetched %d issues for project %s", len(issues), project_key
        )
        return issues

    def get_issue(self, issue_id_or_key: str) -> RemoteIssue:
        """
        Get a single issue by id or key.
        """
        payload = self._request(
            "GET",
            f"/issue/{issue_id_or_key}",
            params={"fields": ISSUE_FIELDS},
        )
        return RemoteIssue.from_api(payload)

    def create_issue(
        self,
        project_key: str,
        summary: str,
        description: str,
        issue_type: str = "Story",
        priority: str | None = None,
    ) -> CreatedIssue:
        """
        Create a new issue.

        Args:
            project_key: Project to create the issue in
            summary: Issue title (required)
            description: Body in Jira wiki markup
            issue_type: Issue type name (default: Story)
            priority: Priority name such as "High"

        Returns:
            CreatedIssue with the new id and key

        Raises:
            SyncValidationError: If the summary is invalid or Jira rejects the data
        """
        is_valid, reason = validate_summary(summary)
        if not is_valid:
            raise SyncValidationError(reason)

        fields: dict[str, Any] = {
            "project": {"key": project_key},
            "summary": summary,
            "issuetype": {"name": issue_type},
        }
        if description:
            fields["description"] = self._description_payload(description)
        if priority:
            fields["priority"] = {"name": priority}

        payload = self._request("POST", "/issue", json={"fields": fields})
        created = CreatedIssue.from_api(payload)
        logger.info("Created issue %s (id %s)", created.key, created.id)
        return created

    def update_issue(
        self,
        issue_key: str,
        summary: str,
        description: str,
        priority: str | None = None,
        transition_id: str | None = None,
    ) -> None:
        """
        Update an issue's fields, then apply a workflow transition if given.
        """
        is_valid, reason = validate_summary(summary)
        if not is_valid:
            raise SyncValidationError(reason)

        fields: dict[str, Any] = {
            "summary": summary,
            "description": self._description_payload(description)
            if description
            else None,
        }
        if priority:
            fields["priority"] = {"name": priority}

        self._request("PUT", f"/issue/{issue_key}", json={"fields": fields})

        if transition_id:
            self.transition_issue(issue_key, transition_id)

    def transition_issue(self, issue_key: str, transition_id: str) -> None:
        """Move an issue through a workflow transition."""
        self._request(
            "POST",
            f"/issue/{issue_key}/transitions",
            json={"transition": {"id": transition_id}},
        )
        logger.debug("Applied transition %s to %s", transition_id, issue_key)

    def get_issue_transitions(self, issue_key: str) -> list[Transition]:
        """
        List transitions available from the issue's current status.
        """
        payload = self._request("GET", f"/issue/{issue_key}/transitions")
        if not isinstance(payload, dict):
            raise TransformError(
                f"Unexpected transitions response for {issue_key}"
            )
        transitions: list[Transition] = []
        for raw in payload.get("transitions") or []:
            try:
                transitions.append(Transition.from_api(raw))
            except TransformError as e:
                logger.warning("Skipping malformed transition: %s", e)
        return transitions
