from unittest.mock import Mock, patch

import pytest
import requests

from jira_sync_mcp.config import Config
from jira_sync_mcp.core.client import JiraClient
from jira_sync_mcp.core.throttle import RateLimiter, TTLCache
from jira_sync_mcp.errors import (
    AuthError,
    NotFoundError,
    SyncValidationError,
    TrackerConnectionError,
    TransformError,
)

SESSION_REQUEST = "jira_sync_mcp.core.client.requests.Session.request"


def _response(status_code=200, body=None, reason="OK"):
    response = Mock()
    response.status_code = status_code
    response.reason = reason
    if body is None:
        response.content = b""
        response.json.side_effect = ValueError("no body")
        response.text = ""
    else:
        response.content = b"{...}"
        response.json.return_value = body
    return response


def _issue_payload(issue_id="10001", key="ABC-1", **fields):
    data = {
        "summary": "Fix login",
        "description": "Steps",
        "status": {"id": "3", "name": "Done"},
        "priority": {"name": "High"},
        "assignee": {"displayName": "Dana"},
        "created": "2026-03-01T09:00:00.000+0000",
        "updated": "2026-03-01T10:30:00.000+0000",
        "duedate": "2026-04-01",
    }
    data.update(fields)
    return {"id": issue_id, "key": key, "fields": data}


@pytest.fixture
def client(mock_config):
    limiter = RateLimiter(min_interval=0, chunk_delay=0, sleep=lambda s: None)
    return JiraClient(mock_config, limiter=limiter, cache=TTLCache(ttl=300))


# TestJiraClient tests
def test_base_url(client):
    """Test that the REST base URL is built from domain and API version."""
    assert client.base_url == "https://acme.atlassian.net/rest/api/2"


def test_session_creation_secure(client):
    """Test that session is created with basic auth and SSL verification."""
    assert client.session.auth == ("bot@example.com", "secret-token")
    assert client.session.verify


def test_session_creation_insecure():
    """Test that session is created with SSL verification disabled in insecure mode."""
    config = Config(
        domain="acme.atlassian.net",
        email="bot@example.com",
        api_token="t",
        insecure=True,
    )
    assert not JiraClient(config).session.verify


def test_timeouts(client):
    """Connect and read timeouts are both bounded."""
    assert client.timeout == (10.0, 60.0)


@patch(SESSION_REQUEST)
def test_validate_connection(mock_request, client):
    mock_request.return_value = _response(body={"displayName": "Sync Bot"})

    assert client.validate_connection() == "Sync Bot"
    args, kwargs = mock_request.call_args
    assert args == ("GET", "https://acme.atlassian.net/rest/api/2/myself")
    assert kwargs["timeout"] == (10.0, 60.0)


@pytest.mark.parametrize(
    ("status", "error"),
    [
        (401, AuthError),
        (404, NotFoundError),
        (400, SyncValidationError),
        (403, SyncValidationError),
        (422, SyncValidationError),
        (429, TrackerConnectionError),
        (503, TrackerConnectionError),
    ],
)
@patch(SESSION_REQUEST)
def test_http_status_mapping(mock_request, client, status, error):
    mock_request.return_value = _response(
        status, body={"errorMessages": ["nope"], "errors": {"summary": "bad"}}
    )

    with pytest.raises(error) as exc_info:
        client.validate_connection()

    assert exc_info.value.status_code == status
    assert "nope; summary: bad" in exc_info.value.message


@patch(SESSION_REQUEST)
def test_auth_error_is_fatal(mock_request, client):
    mock_request.return_value = _response(401, reason="Unauthorized")
    with pytest.raises(AuthError) as exc_info:
        client.validate_connection()
    assert exc_info.value.fatal is True


@patch(SESSION_REQUEST)
def test_network_errors(mock_request, client):
    mock_request.side_effect = requests.ConnectionError("refused")
    with pytest.raises(TrackerConnectionError, match="Cannot reach Jira"):
        client.validate_connection()

    mock_request.side_effect = requests.Timeout("slow")
    with pytest.raises(TrackerConnectionError, match="timed out"):
        client.validate_connection()


@pytest.mark.parametrize(
    "error",
    [
        requests.exceptions.ChunkedEncodingError("broken"),
        requests.exceptions.ContentDecodingError("bad gzip"),
        requests.exceptions.TooManyRedirects("loop"),
        requests.exceptions.InvalidURL("bad host"),
    ],
)
@patch(SESSION_REQUEST)
def test_other_transport_errors_map_to_connection_error(
    mock_request, client, error
):
    mock_request.side_effect = error
    with pytest.raises(TrackerConnectionError) as exc_info:
        client.get_project_issues("ABC")
    assert exc_info.value.__cause__ is error
    assert exc_info.value.fatal is False


@patch(SESSION_REQUEST)
def test_invalid_json(mock_request, client):
    response = _response(body={})
    response.json.side_effect = ValueError("bad json")
    mock_request.return_value = response
    with pytest.raises(TransformError):
        client.validate_connection()


@patch(SESSION_REQUEST)
def test_get_project_issues_paginates(mock_request, client):
    """Search pages are followed until total is reached."""
    mock_request.side_effect = [
        _response(body={"issues": [_issue_payload("1", "ABC-1")], "total": 2}),
        _response(body={"issues": [_issue_payload("2", "ABC-2")], "total": 2}),
    ]

    issues = client.get_project_issues("ABC")

    assert [i.key for i in issues] == ["ABC-1", "ABC-2"]
    first_params = mock_request.call_args_list[0].kwargs["params"]
    second_params = mock_request.call_args_list[1].kwargs["params"]
    assert first_params["jql"] == "project = ABC ORDER BY created DESC"
    assert first_params["startAt"] == 0
    assert second_params["startAt"] == 1


@patch(SESSION_REQUEST)
def test_get_project_issues_skips_malformed(mock_request, client):
    mock_request.return_value = _response(
        body={"issues": [{"id": "1"}, _issue_payload()], "total": 2}
    )

    issues = client.get_project_issues("ABC")

    assert len(issues) == 1
    issue = issues[0]
    assert issue.status_id == "3"
    assert issue.priority == "High"
    assert issue.assignee == "Dana"
    assert issue.updated.isoformat() == "2026-03-01T10:30:00+00:00"


def test_get_project_issues_rejects_bad_key(client):
    with pytest.raises(SyncValidationError):
        client.get_project_issues("abc; DROP")


@patch(SESSION_REQUEST)
def test_get_project_statuses_flattens_and_caches(mock_request, client):
    status = {
        "id": "3",
        "name": "Done",
        "statusCategory": {"key": "done", "colorName": "green"},
    }
    mock_request.return_value = _response(
        body=[
            {"name": "Story", "statuses": [status]},
            {"name": "Bug", "statuses": [status]},
        ]
    )

    first = client.get_project_statuses("ABC")
    second = client.get_project_statuses("ABC")

    assert [s.name for s in first] == ["Done"]
    assert first[0].category_key == "done"
    assert second == first
    assert mock_request.call_count == 1

    client.invalidate_statuses("ABC")
    client.get_project_statuses("ABC")
    assert mock_request.call_count == 2


@patch(SESSION_REQUEST)
def test_create_issue(mock_request, client):
    mock_request.return_value = _response(
        201, body={"id": "10005", "key": "ABC-5"}
    )

    created = client.create_issue(
        "ABC", "New task", "Some *markup*", issue_type="Task", priority="High"
    )

    assert (created.id, created.key) == ("10005", "ABC-5")
    fields = mock_request.call_args.kwargs["json"]["fields"]
    assert fields == {
        "project": {"key": "ABC"},
        "summary": "New task",
        "issuetype": {"name": "Task"},
        "description": "Some *markup*",
        "priority": {"name": "High"},
    }


@pytest.mark.parametrize("issue_id", [None, ""])
@patch(SESSION_REQUEST)
def test_create_issue_without_id_rejected(mock_request, client, issue_id):
    mock_request.return_value = _response(
        201, body={"id": issue_id, "key": "ABC-5"}
    )
    with pytest.raises(TransformError, match="Malformed created issue"):
        client.create_issue("ABC", "New task", "text")


@patch(SESSION_REQUEST)
def test_create_issue_v3_sends_adf(mock_request, mock_config):
    mock_config.api_version = 3
    client = JiraClient(mock_config, limiter=RateLimiter(min_interval=0))
    mock_request.return_value = _response(201, body={"id": "1", "key": "ABC-1"})

    client.create_issue("ABC", "New task", "text")

    description = mock_request.call_args.kwargs["json"]["fields"]["description"]
    assert description["type"] == "doc"


def test_create_issue_rejects_empty_summary(client):
    with pytest.raises(SyncValidationError):
        client.create_issue("ABC", "   ", "")


@patch(SESSION_REQUEST)
def test_update_issue_with_transition(mock_request, client):
    mock_request.return_value = _response(204)

    client.update_issue("ABC-1", "Renamed", "", priority="Low", transition_id="31")

    put, post = mock_request.call_args_list
    assert put.args[0] == "PUT"
    assert put.args[1].endswith("/issue/ABC-1")
    assert put.kwargs["json"]["fields"] == {
        "summary": "Renamed",
        "description": None,
        "priority": {"name": "Low"},
    }
    assert post.args[0] == "POST"
    assert post.args[1].endswith("/issue/ABC-1/transitions")
    assert post.kwargs["json"] == {"transition": {"id": "31"}}


@patch(SESSION_REQUEST)
def test_get_issue_transitions(mock_request, client):
    mock_request.return_value = _response(
        body={
            "transitions": [
                {"id": "21", "name": "Start", "to": {"id": "2", "name": "In Progress"}},
                {"id": "bad"},
            ]
        }
    )

    transitions = client.get_issue_transitions("ABC-1")

    assert len(transitions) == 1
    assert transitions[0].id == "21"
    assert transitions[0].to_status_id == "2"


@patch(SESSION_REQUEST)
def test_requests_are_paced(mock_request, mock_config):
    limiter = Mock(spec=RateLimiter)
    client = JiraClient(mock_config, limiter=limiter)
    mock_request.return_value = _response(body={"displayName": "x"})

    client.validate_connection()
    client.validate_connection()

    assert limiter.acquire.call_count == 2
