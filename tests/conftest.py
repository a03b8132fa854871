"""Shared test fixtures."""

import pytest

import relnotes.settings as settings_module
from relnotes.models import LinearIssueLite, ProjectRef, TeamRef


def make_issue(identifier: str, title: str, labels: list[str] | None = None, **fields) -> LinearIssueLite:
    return LinearIssueLite(
        id=fields.pop("id", f"id-{identifier.lower()}"),
        identifier=identifier,
        title=title,
        labels=labels or [],
        state_type=fields.pop("state_type", "completed"),
        team=fields.pop("team", TeamRef(id="team-eng", name="Engineering")),
        **fields,
    )


def issue_node(identifier: str, title: str, **overrides) -> dict:
    """A raw issues-query node as Linear returns it."""
    node = {
        "id": f"id-{identifier.lower()}",
        "identifier": identifier,
        "title": title,
        "description": None,
        "priority": 2,
        "url": f"https://linear.app/acme/issue/{identifier}",
        "completedAt": "2024-01-10T12:00:00.000Z",
        "state": {"id": "s1", "name": "Done", "type": "completed", "color": "#0f0"},
        "team": {"id": "team-eng", "name": "Engineering", "key": "ENG"},
        "labels": {"nodes": []},
        "project": None,
    }
    node.update(overrides)
    return node


@pytest.fixture(autouse=True)
def reset_lru_cache():
    """Clear the cached config.toml before and after each test."""
    settings_module._load_toml.cache_clear()
    yield
    settings_module._load_toml.cache_clear()


@pytest.fixture
def worked_issues() -> list[LinearIssueLite]:
    return [
        make_issue("ENG-1", "Add SSO", ["feature"]),
        make_issue("ENG-2", "Fix crash on save", []),
        make_issue("ENG-3", "Remove v1 API", ["breaking"]),
        make_issue("ENG-4", "Faster search", []),
    ]


@pytest.fixture
def sample_issue() -> LinearIssueLite:
    return make_issue(
        "ENG-123",
        "Fix null check in auth middleware",
        ["bug", "auth"],
        description="The middleware throws when session is None.",
        priority=2,
        url="https://linear.app/acme/issue/ENG-123",
        completed_at="2024-01-10T12:00:00.000Z",
        state="Done",
        project=ProjectRef(id="proj-1", name="Auth"),
    )


@pytest.fixture
def organization() -> dict:
    return {
        "name": "Acme",
        "meta_description": "Acme builds deployment tooling.",
        "settings": {"industry": "DevTools", "product_type": "SaaS"},
    }
