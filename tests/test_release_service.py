"""Tests for LinearReleaseService: validation, aggregation, categorization and prompt building."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from conftest import issue_node, make_issue

from relnotes.models import (
    AggregationInput,
    DateRange,
    IssueFilters,
    ProjectRef,
    Sections,
    TeamRef,
)
from relnotes.release_service import MAX_PAGES, LinearReleaseService


def _page(nodes: list[dict], has_next: bool = False, cursor: str | None = None) -> dict:
    return {"nodes": nodes, "pageInfo": {"hasNextPage": has_next, "endCursor": cursor}}


def _service(*pages: dict) -> tuple[LinearReleaseService, MagicMock]:
    client = MagicMock()
    client.get_issues = AsyncMock(side_effect=list(pages))
    return LinearReleaseService("lin_oauth_tok", client), client


class TestValidateInput:
    def test_teams_required(self) -> None:
        result = LinearReleaseService.validate_input(AggregationInput(teams=[]))
        assert result.is_valid is False
        assert [e.code for e in result.errors] == ["TEAMS_REQUIRED"]

    def test_date_order(self) -> None:
        criteria = AggregationInput(teams=["t"], date_range=DateRange(from_="2025-02-01", to="2025-01-01"))
        result = LinearReleaseService.validate_input(criteria)
        assert [e.code for e in result.errors] == ["INVALID_DATE_RANGE"]

    @pytest.mark.parametrize(("priority", "code"), [(-1, "MIN_PRIORITY_NEGATIVE"), (6, "MIN_PRIORITY_TOO_HIGH")])
    def test_priority_bounds(self, priority: int, code: str) -> None:
        criteria = AggregationInput(teams=["t"], issue_filters=IssueFilters(min_priority=priority))
        result = LinearReleaseService.validate_input(criteria)
        assert [e.code for e in result.errors] == [code]

    def test_valid(self) -> None:
        criteria = AggregationInput(
            teams=["t"],
            date_range=DateRange(from_="2025-01-01", to="2025-02-01"),
            issue_filters=IssueFilters(min_priority=0),
        )
        result = LinearReleaseService.validate_input(criteria)
        assert result.is_valid is True
        assert result.errors == []


class TestAggregate:
    @pytest.mark.asyncio
    async def test_server_filters_use_first_team_and_completed_state(self) -> None:
        service, client = _service(_page([issue_node("ENG-1", "Add SSO")]))
        criteria = AggregationInput(
            teams=["team-eng", "team-web"],
            date_range=DateRange(from_="2024-01-01"),
            page_size=25,
        )

        await service.aggregate(criteria)

        client.get_issues.assert_awaited_once_with(
            "lin_oauth_tok",
            first=25,
            after=None,
            team_id="team-eng",
            updated_since="2024-01-01",
            state_type="completed",
        )

    @pytest.mark.asyncio
    async def test_pages_until_no_next_page(self) -> None:
        service, client = _service(
            _page([issue_node("ENG-1", "a")], has_next=True, cursor="c1"),
            _page([issue_node("ENG-2", "b")], has_next=False, cursor="c2"),
        )

        result = await service.aggregate(AggregationInput(teams=["team-eng"]))

        assert [i.identifier for i in result.issues] == ["ENG-1", "ENG-2"]
        assert result.total_issues == 2
        assert client.get_issues.await_args_list[1].kwargs["after"] == "c1"

    @pytest.mark.asyncio
    async def test_pagination_is_capped(self) -> None:
        client = MagicMock()
        client.get_issues = AsyncMock(return_value=_page([issue_node("ENG-1", "a")], has_next=True, cursor="more"))
        service = LinearReleaseService("tok", client)

        result = await service.aggregate(AggregationInput(teams=["team-eng"]))

        assert client.get_issues.await_count == MAX_PAGES == 5
        assert result.total_issues == 5

    @pytest.mark.asyncio
    async def test_no_teams_still_fetches(self) -> None:
        service, client = _service(_page([issue_node("ENG-1", "a")]))

        result = await service.aggregate(AggregationInput(teams=[]))

        assert result.total_issues == 1
        assert "team_id" not in client.get_issues.await_args.kwargs

    @pytest.mark.asyncio
    async def test_null_connection_is_empty(self) -> None:
        service, _ = _service(None)  # type: ignore[arg-type]
        result = await service.aggregate(AggregationInput(teams=["t"]))
        assert result.issues == []
        assert result.total_issues == 0

    @pytest.mark.asyncio
    async def test_multi_team_filter_uses_full_list(self) -> None:
        service, _ = _service(
            _page(
                [
                    issue_node("ENG-1", "a"),
                    issue_node("WEB-1", "b", team={"id": "team-web", "name": "Web"}),
                    issue_node("OPS-1", "c", team={"id": "team-ops", "name": "Ops"}),
                ]
            )
        )

        result = await service.aggregate(AggregationInput(teams=["team-eng", "team-web"]))

        assert [i.identifier for i in result.issues] == ["ENG-1", "WEB-1"]

    @pytest.mark.asyncio
    async def test_label_priority_and_end_date_filters(self) -> None:
        service, _ = _service(
            _page(
                [
                    issue_node("ENG-1", "a", labels={"nodes": [{"name": "feature"}]}, priority=3),
                    issue_node("ENG-2", "b", labels={"nodes": [{"name": "bug"}]}, priority=1),
                    issue_node("ENG-3", "c", labels={"nodes": [{"name": "feature"}]}, priority=None),
                    issue_node(
                        "ENG-4",
                        "d",
                        labels={"nodes": [{"name": "bug"}]},
                        priority=4,
                        completedAt="2024-03-01T00:00:00.000Z",
                    ),
                ]
            )
        )
        criteria = AggregationInput(
            teams=["team-eng"],
            date_range=DateRange(from_="2024-01-01", to="2024-02-01"),
            issue_filters=IssueFilters(labels=["feature", "bug"], min_priority=1),
        )

        result = await service.aggregate(criteria)

        # ENG-3 has no priority (treated as 0); ENG-4 completed after the window
        assert [i.identifier for i in result.issues] == ["ENG-1", "ENG-2"]

    @pytest.mark.asyncio
    async def test_project_and_state_filters(self) -> None:
        service, _ = _service(
            _page(
                [
                    issue_node("ENG-1", "a", project={"id": "p1", "name": "Auth"}),
                    issue_node("ENG-2", "b", project=None),
                    issue_node(
                        "ENG-3",
                        "c",
                        project={"id": "p1", "name": "Auth"},
                        state={"name": "Canceled", "type": "canceled"},
                    ),
                ]
            )
        )
        criteria = AggregationInput(
            teams=["team-eng"],
            projects=["p1"],
            issue_filters=IssueFilters(state_types=["completed"]),
        )

        result = await service.aggregate(criteria)

        assert [i.identifier for i in result.issues] == ["ENG-1"]

    @pytest.mark.asyncio
    async def test_filter_to_empty_is_not_an_error(self) -> None:
        service, _ = _service(_page([issue_node("ENG-1", "a")]))
        criteria = AggregationInput(teams=["team-eng"], issue_filters=IssueFilters(labels=["nope"]))

        result = await service.aggregate(criteria)

        assert result.issues == []
        assert result.total_issues == 0


class TestCategorize:
    def test_worked_example(self, worked_issues) -> None:
        sections = LinearReleaseService.categorize(worked_issues)
        assert [i.identifier for i in sections.features] == ["ENG-1"]
        assert [i.identifier for i in sections.bugfixes] == ["ENG-2"]
        assert [i.identifier for i in sections.breaking] == ["ENG-3"]
        assert [i.identifier for i in sections.improvements] == ["ENG-4"]

    def test_label_and_title_scenario(self) -> None:
        issues = [
            make_issue("ENG-1", "Breaking: Update API auth", ["security"]),
            make_issue("ENG-2", "Handle empty cart", ["bug"]),
            make_issue("ENG-3", "Dark mode", ["feature"]),
            make_issue("ENG-4", "Keyboard shortcuts", ["enhancement"]),
        ]
        sections = LinearReleaseService.categorize(issues)
        assert len(sections.features) == 2
        assert len(sections.bugfixes) == 1
        assert len(sections.breaking) == 1
        assert len(sections.improvements) == 0

    def test_breaking_wins_over_bug(self) -> None:
        sections = LinearReleaseService.categorize([make_issue("ENG-1", "x", ["bug", "breaking"])])
        assert [i.identifier for i in sections.breaking] == ["ENG-1"]
        assert sections.bugfixes == []

    def test_bug_wins_over_feature(self) -> None:
        sections = LinearReleaseService.categorize([make_issue("ENG-1", "Fix feature toggle", [])])
        assert len(sections.bugfixes) == 1

    def test_deprecation_label_is_breaking(self) -> None:
        sections = LinearReleaseService.categorize([make_issue("ENG-1", "Old endpoint", ["Deprecation"])])
        assert len(sections.breaking) == 1

    def test_every_issue_in_exactly_one_bucket(self) -> None:
        issues = [
            make_issue(f"ENG-{n}", title, labels)
            for n, (title, labels) in enumerate(
                [
                    ("Add export", ["feat"]),
                    ("Fix login", []),
                    ("Breaking rename", []),
                    ("Polish UI", ["design"]),
                    ("Bug in search", ["feature"]),
                    ("Tune cache", []),
                ]
            )
        ]
        sections = LinearReleaseService.categorize(issues)
        buckets = (sections.features, sections.improvements, sections.bugfixes, sections.breaking)
        ids = [i.identifier for bucket in buckets for i in bucket]
        assert sorted(ids) == sorted(i.identifier for i in issues)
        assert sections.total() == len(issues)

    def test_empty(self) -> None:
        assert LinearReleaseService.categorize([]) == Sections()


def _sections() -> Sections:
    return Sections(
        features=[
            make_issue(
                "ENG-1",
                "Add SSO",
                ["feature"],
                description="Sign in with Okta.\nWorks with SAML.",
                team=TeamRef(id="team-eng", name="Platform"),
            )
        ],
        bugfixes=[make_issue("ENG-2", "Fix crash on save", [], team=TeamRef(id="team-eng", name="Platform"))],
    )


class TestBuildPrompt:
    def test_deterministic(self, organization) -> None:
        kwargs = dict(organization=organization, ai_context={"tone": "casual"}, version="v2.1.0", teams=["team-eng"])
        first = LinearReleaseService.build_prompt(_sections(), **kwargs)
        second = LinearReleaseService.build_prompt(_sections(), **kwargs)
        assert first == second

    def test_titles_and_descriptions_verbatim(self) -> None:
        prompts = LinearReleaseService.build_prompt(_sections())
        assert "- Add SSO: Sign in with Okta. Works with SAML. (ENG-1) — Platform" in prompts.user_prompt
        assert "- Fix crash on save (ENG-2) — Platform" in prompts.user_prompt

    def test_identifiers_can_be_hidden(self) -> None:
        prompts = LinearReleaseService.build_prompt(_sections(), include_identifiers=False)
        assert "Add SSO" in prompts.user_prompt
        assert "Fix crash on save" in prompts.user_prompt
        assert "ENG-1" not in prompts.user_prompt
        assert "ENG-2" not in prompts.user_prompt
        assert "Platform" not in prompts.user_prompt

    def test_empty_sections_are_omitted(self) -> None:
        prompts = LinearReleaseService.build_prompt(_sections())
        assert "## 🚀 New Features" in prompts.user_prompt
        assert "## 🐛 Bug Fixes" in prompts.user_prompt
        assert "Breaking Changes" not in prompts.user_prompt
        assert "## ✨ Improvements" not in prompts.user_prompt

    def test_section_order_is_fixed(self) -> None:
        sections = Sections(
            breaking=[make_issue("ENG-3", "Drop v1", [])],
            features=[make_issue("ENG-1", "Add SSO", [])],
            improvements=[make_issue("ENG-4", "Faster search", [])],
        )
        user = LinearReleaseService.build_prompt(sections).user_prompt
        assert user.index("New Features") < user.index("✨ Improvements") < user.index("Breaking Changes")

    def test_defaults_in_header(self) -> None:
        system = LinearReleaseService.build_prompt(_sections()).system_prompt
        assert "specializing in software release notes" in system
        assert "Language: English" in system
        assert "Audience: mixed" in system
        assert "Tone: professional" in system
        assert "Output Format: markdown" in system
        assert "Content Style: detailed with no emojis and metrics" in system

    def test_explicit_false_metrics_honored(self) -> None:
        system = LinearReleaseService.build_prompt(_sections(), ai_context={"include_metrics": False}).system_prompt
        assert "with no emojis and no metrics" in system
        assert "Include specific numbers" not in system

    def test_organization_context(self, organization) -> None:
        system = LinearReleaseService.build_prompt(_sections(), organization=organization).system_prompt
        assert "specializing in DevTools release notes" in system
        assert "Organization Context:\nOrganization: Acme builds deployment tooling.\nIndustry: DevTools" in system
        assert "Target Market" not in system

    def test_optional_metadata_lines(self) -> None:
        system = LinearReleaseService.build_prompt(
            _sections(),
            version="v2.1.0",
            release_date="2024-02-01",
            date_range=DateRange(from_="2024-01-01"),
            teams=["team-eng", "team-web"],
            projects=["p1"],
        ).system_prompt
        assert "Release Version: v2.1.0" in system
        assert "Release Date: 2024-02-01" in system
        assert "Time Window: 2024-01-01 to N/A" in system
        assert "Teams in Scope: team-eng, team-web" in system
        assert "Projects in Scope: p1" in system

    def test_absent_metadata_lines(self) -> None:
        system = LinearReleaseService.build_prompt(_sections()).system_prompt
        for marker in ("Release Version", "Release Date", "Time Window", "Teams in Scope", "Projects in Scope"):
            assert marker not in system

    def test_house_style_template_and_example(self) -> None:
        system = LinearReleaseService.build_prompt(
            _sections(),
            ai_context={"system_prompt": "Always say 'crew'.", "example_output": "# v1\n- Shiny"},
            template="# Title\n## Highlights",
        ).system_prompt
        assert "House style guidelines (must follow):\nAlways say 'crew'." in system
        assert "Template structure (must be reflected in the final output):\n# Title\n## Highlights" in system
        assert "Example Output (for style reference; do not copy content):\n# v1\n- Shiny" in system

    def test_content_rules_by_audience(self) -> None:
        technical = LinearReleaseService.build_prompt(_sections(), ai_context={"audience": "developers"}).system_prompt
        general = LinearReleaseService.build_prompt(_sections(), ai_context={"audience": "business"}).system_prompt
        assert "Include technical details, API changes" in technical
        assert "Remove internal technical details" not in technical
        assert "Remove internal technical details" in general
        assert "Include technical details, API changes" not in general

    def test_emoji_rule(self) -> None:
        system = LinearReleaseService.build_prompt(_sections(), ai_context={"include_emojis": True}).system_prompt
        assert "Use appropriate emojis" in system
        assert "with emojis and metrics" in system

    def test_concise_body(self) -> None:
        prompts = LinearReleaseService.build_prompt(_sections(), ai_context={"brevity_level": "concise"})
        assert "brief executive summary (2-3 sentences)" in prompts.user_prompt
        assert "## Notable Changes" not in prompts.user_prompt
        assert "Keep descriptions brief" in prompts.system_prompt

    def test_detailed_body_technical_details_for_developers_only(self) -> None:
        developers = LinearReleaseService.build_prompt(_sections(), ai_context={"audience": "developers"})
        users = LinearReleaseService.build_prompt(_sections(), ai_context={"audience": "users"})
        assert "## Upgrade Notes" in developers.user_prompt
        assert "## Technical Details" in developers.user_prompt
        assert "## Upgrade Notes" in users.user_prompt
        assert "## Technical Details" not in users.user_prompt

    def test_comprehensive_body(self) -> None:
        prompts = LinearReleaseService.build_prompt(_sections(), ai_context={"brevity_level": "comprehensive"})
        for heading in ("Technical Implementation", "Upgrade Guide", "Performance Impact", "Security Updates"):
            assert f"## {heading}" in prompts.user_prompt
        assert "Provide thorough explanations" in prompts.system_prompt

    def test_instructions_echo(self) -> None:
        prompts = LinearReleaseService.build_prompt(_sections(), instructions="Mention the migration window.")
        assert "Additional Context: Mention the migration window." in prompts.user_prompt

    def test_user_prompt_preamble(self) -> None:
        user = LinearReleaseService.build_prompt(_sections()).user_prompt
        assert user.startswith("TASK: Generate professional release notes based on the categorized Linear issues")

    def test_only_issue_text_from_input(self, sample_issue) -> None:
        issue = sample_issue.model_copy(update={"project": ProjectRef(id="p9", name="Secret")})
        sections = Sections(improvements=[issue])
        user = LinearReleaseService.build_prompt(sections).user_prompt
        assert "Secret" not in user
        assert "linear.app" not in user
        assert "- Fix null check in auth middleware: The middleware throws when session is None. (ENG-123)" in user
