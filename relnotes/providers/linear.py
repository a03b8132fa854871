"""Linear GraphQL API client."""

import asyncio
import json
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
import structlog

from relnotes.models import ConnectionResult, LinearIssueLite, ProjectRef, StateType, TeamRef

ENDPOINT = "https://api.linear.app/graphql"

MAX_ATTEMPTS = 2  # one retry, only for 429
DEFAULT_RETRY_AFTER = 2.0
MAX_RETRY_WAIT = 10.0

logger = structlog.get_logger(__name__)


class LinearAPIError(Exception):
    """HTTP, rate-limit or GraphQL-level failure from the Linear API."""

    def __init__(self, message: str, status: int, data: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.data = data


_VIEWER = """
query {
  viewer {
    id
    name
    email
    displayName
    avatarUrl
    isMe
    organization {
      id
      name
      urlKey
      logoUrl
      userCount
      allowedAuthServices
    }
  }
}
"""

_ORGANIZATION = """
query {
  organization {
    id
    name
    urlKey
    logoUrl
    userCount
    allowedAuthServices
    createdAt
    updatedAt
  }
}
"""

_TEAMS = """
query GetTeams($first: Int!, $after: String) {
  teams(first: $first, after: $after) {
    nodes {
      id
      name
      key
      description
      color
      createdAt
      updatedAt
      organization { id name }
    }
    pageInfo { hasNextPage hasPreviousPage startCursor endCursor }
  }
}
"""

_ISSUE_FIELDS = """
      id
      identifier
      number
      title
      description
      priority
      estimate
      url
      createdAt
      updatedAt
      completedAt
      canceledAt
      state { id name type color }
      team { id name key }
      assignee { id name displayName email avatarUrl }
      creator { id name displayName email avatarUrl }
      labels { nodes { id name color } }
"""

_ISSUES_TEMPLATE = """
query GetIssues($first: Int!, $after: String) {
  issues(%(arguments)s) {
    nodes {
%(fields)s
      project {
        id
        name
        description
        color
        state
        progress
        startedAt
        completedAt
        targetDate
      }
    }
    pageInfo { hasNextPage hasPreviousPage startCursor endCursor }
  }
}
"""

_ISSUE = (
    """
query GetIssue($issueId: String!) {
  issue(id: $issueId) {
%s
    project { id name description color state startedAt completedAt targetDate }
    comments { nodes { id body createdAt user { id name displayName } } }
    history {
      nodes {
        id
        createdAt
        actor { id name displayName }
        fromState { id name type }
        toState { id name type }
      }
    }
  }
}
"""
    % _ISSUE_FIELDS
)

_PROJECTS = """
query GetProjects($first: Int!, $after: String) {
  projects(first: $first, after: $after) {
    nodes {
      id
      name
      description
      color
      state
      startedAt
      completedAt
      targetDate
      progress
      url
      createdAt
      updatedAt
    }
    pageInfo { hasNextPage hasPreviousPage startCursor endCursor }
  }
}
"""

_SEARCH_ISSUES = """
query SearchIssues($query: String!, $first: Int!, $teamId: String) {
  issueSearch(query: $query, first: $first, teamId: $teamId) {
    nodes {
      id
      identifier
      number
      title
      description
      priority
      url
      createdAt
      updatedAt
      state { id name type color }
      team { id name key }
      assignee { id name displayName avatarUrl }
      labels { nodes { id name color } }
    }
    pageInfo { hasNextPage hasPreviousPage startCursor endCursor }
  }
}
"""


def issues_arguments(
    team_id: str | None = None,
    assignee_id: str | None = None,
    state_type: StateType | None = None,
    updated_since: str | None = None,
) -> str:
    """Return the argument list for issues(...), with a filter clause only when a condition is set."""
    filters = []
    if team_id:
        filters.append(f"team: {{ id: {{ eq: {json.dumps(team_id)} }} }}")
    if assignee_id:
        filters.append(f"assignee: {{ id: {{ eq: {json.dumps(assignee_id)} }} }}")
    if state_type:
        filters.append(f"state: {{ type: {{ eq: {json.dumps(state_type)} }} }}")
    if updated_since:
        filters.append(f"updatedAt: {{ gte: {json.dumps(updated_since)} }}")

    arguments = ["first: $first", "after: $after"]
    if filters:
        arguments.append(f"filter: {{ {', '.join(filters)} }}")
    return ", ".join(arguments)


def issue_from_node(node: dict) -> LinearIssueLite:
    team = node.get("team") or {}
    project = node.get("project")
    return LinearIssueLite(
        id=node["id"],
        identifier=node["identifier"],
        title=node["title"],
        description=node.get("description"),
        priority=node.get("priority"),
        labels=[label["name"] for label in (node.get("labels") or {}).get("nodes", [])],
        url=node.get("url"),
        completed_at=node.get("completedAt"),
        state=(node.get("state") or {}).get("name"),
        state_type=(node.get("state") or {}).get("type"),
        team=TeamRef(id=team.get("id"), name=team.get("name")),
        project=ProjectRef(id=project["id"], name=project.get("name")) if project else None,
    )


def _retry_after_seconds(header: str | None) -> float:
    try:
        seconds = float(header) if header else 0.0
    except ValueError:
        seconds = 0.0
    if not seconds or seconds != seconds:  # missing, zero or NaN
        seconds = DEFAULT_RETRY_AFTER
    return max(0.0, min(seconds, MAX_RETRY_WAIT))


def _read_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text or None


def _unwrap(data: dict | None, key: str) -> Any:
    if isinstance(data, dict) and key in data:
        return data[key]
    return None


class LinearAPIClient:
    """Authenticated GraphQL transport. The access token is passed per call so one client serves every tenant."""

    def __init__(
        self,
        http: httpx.AsyncClient | None = None,
        *,
        endpoint: str = ENDPOINT,
        timeout: float = 30,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(timeout=timeout)
        self._endpoint = endpoint
        self._sleep = sleep

    async def __aenter__(self) -> "LinearAPIClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def request(self, query: str, variables: dict | None, token: str) -> dict | None:
        variables = variables or {}
        for attempt in range(MAX_ATTEMPTS):
            logger.debug(
                "linear_request",
                attempt=attempt,
                preview=" ".join(query.split())[:200],
                variables=variables,
            )
            response = await self._http.post(
                self._endpoint,
                json={"query": query, "variables": variables},
                headers={
                    "Authorization": f"Bearer {token}",
                    "Content-Type": "application/json",
                },
            )

            if response.status_code == 429:
                retry_after = response.headers.get("retry-after")
                if attempt < MAX_ATTEMPTS - 1:
                    wait = _retry_after_seconds(retry_after)
                    logger.warning("linear_rate_limited", retry_in=wait, attempt=attempt)
                    await self._sleep(wait)
                    continue
                raise LinearAPIError(
                    f"Linear API rate limit exceeded. Retry after: {retry_after or 'unknown'}",
                    429,
                    {"retry_after": retry_after, "body": _read_body(response)},
                )

            if not response.is_success:
                body = _read_body(response)
                logger.error("linear_http_error", status=response.status_code, body=body)
                raise LinearAPIError(
                    f"Linear API request failed: {response.status_code} {response.reason_phrase}",
                    response.status_code,
                    body,
                )

            payload = _read_body(response)
            if not isinstance(payload, dict):
                logger.error("linear_unexpected_body", status=response.status_code, body=payload)
                raise LinearAPIError("Linear API returned a non-JSON response", response.status_code, payload)
            errors = payload.get("errors")
            if errors:
                logger.error("linear_graphql_errors", errors=errors)
                messages = ", ".join(str(e.get("message", "")) if isinstance(e, dict) else str(e) for e in errors)
                raise LinearAPIError(f"GraphQL errors: {messages}", 400, errors)
            return payload.get("data")

        raise LinearAPIError("Unexpected error in Linear client request", 500)

    async def get_viewer(self, token: str) -> dict | None:
        return _unwrap(await self.request(_VIEWER, {}, token), "viewer")

    async def get_organization(self, token: str) -> dict | None:
        return _unwrap(await self.request(_ORGANIZATION, {}, token), "organization")

    async def get_teams(self, token: str, *, first: int = 50, after: str | None = None) -> dict | None:
        return _unwrap(await self.request(_TEAMS, {"first": first, "after": after}, token), "teams")

    async def get_issues(
        self,
        token: str,
        *,
        first: int = 50,
        after: str | None = None,
        team_id: str | None = None,
        assignee_id: str | None = None,
        state_type: StateType | None = None,
        updated_since: str | None = None,
    ) -> dict | None:
        # ordering is left to the server default
        query = _ISSUES_TEMPLATE % {
            "arguments": issues_arguments(team_id, assignee_id, state_type, updated_since),
            "fields": _ISSUE_FIELDS,
        }
        return _unwrap(await self.request(query, {"first": first, "after": after}, token), "issues")

    async def get_issue(self, token: str, issue_id: str) -> dict | None:
        return _unwrap(await self.request(_ISSUE, {"issueId": issue_id}, token), "issue")

    async def get_projects(self, token: str, *, first: int = 50, after: str | None = None) -> dict | None:
        return _unwrap(await self.request(_PROJECTS, {"first": first, "after": after}, token), "projects")

    async def search_issues(
        self,
        token: str,
        query: str,
        *,
        first: int = 50,
        team_id: str | None = None,
    ) -> dict | None:
        variables = {"query": query, "first": first, "teamId": team_id}
        return _unwrap(await self.request(_SEARCH_ISSUES, variables, token), "issueSearch")

    async def test_connection(self, token: str) -> ConnectionResult:
        try:
            viewer = await self.get_viewer(token)
        except (LinearAPIError, httpx.HTTPError) as exc:
            return ConnectionResult(success=False, error=str(exc) or type(exc).__name__)

        if not viewer:
            return ConnectionResult(success=False, error="Unable to fetch user information")
        return ConnectionResult(success=True, user=viewer, organization=viewer.get("organization"))
