"""Linear issue aggregation, categorization and release-notes prompt building."""

import re
from collections.abc import Callable, Mapping
from typing import Any

import structlog

from relnotes.models import (
    AggregationInput,
    AggregationResult,
    AIContext,
    DateRange,
    LinearIssueLite,
    Organization,
    PromptPair,
    Sections,
    ValidationIssue,
    ValidationResult,
)
from relnotes.prompt_engine import coerce_ai_context, coerce_organization, resolve_preferences
from relnotes.providers.linear import LinearAPIClient, issue_from_node
from relnotes.validation import parse_date

MAX_PAGES = 5
TECHNICAL_AUDIENCES = ("developers", "technical")

_BREAKING_LABEL = re.compile(r"breaking|deprecation", re.IGNORECASE)
_BREAKING_TITLE = re.compile(r"breaking", re.IGNORECASE)
_BUG_LABEL = re.compile(r"bug|fix", re.IGNORECASE)
_BUG_TITLE = re.compile(r"fix|bug", re.IGNORECASE)
_FEATURE_LABEL = re.compile(r"feature|enhancement|feat", re.IGNORECASE)
_FEATURE_TITLE = re.compile(r"feat|feature", re.IGNORECASE)

_SECTION_HEADINGS = (
    ("features", "🚀 New Features"),
    ("improvements", "✨ Improvements"),
    ("bugfixes", "🐛 Bug Fixes"),
    ("breaking", "⚠️ Breaking Changes"),
)

_STATIC_RULES = [
    "Formatting and Style Rules:",
    "- Use clear, scannable Markdown with proper headings and bullet points.",
    "- Create a professional, engaging heading that reflects the release theme.",
    "- Avoid internal jargon and ticket noise; emphasize user-facing impact.",
    "- Keep sentences concise; use parallel structure across bullets.",
    "- Where helpful, include identifiers (e.g., ENG-123) without overloading the text.",
    "- If a section has no items, omit that section entirely.",
]

_TECHNICAL_CONTENT_RULES = [
    "- Include technical details, API changes, and implementation specifics",
    "- Include library names, framework versions, and technical specifications",
    "- Include contributor names and technical credits when relevant",
]
_GENERAL_CONTENT_RULES = [
    "- Remove internal technical details and implementation specifics",
    "- Remove individual contributor names unless they are public figures",
    "- Remove library/vendor names unless they are essential for user understanding",
    "- Focus on user-facing benefits and business value",
]

_BREVITY_RULES = {
    "concise": [
        "- Keep descriptions brief and focused on key points",
        "- Use bullet points for quick scanning",
    ],
    "detailed": [
        "- Provide sufficient detail for understanding impact",
        "- Balance brevity with completeness",
    ],
    "comprehensive": [
        "- Include comprehensive details and context",
        "- Provide thorough explanations for complex changes",
    ],
}

_SUMMARY_INSTRUCTIONS = {
    "concise": "Provide a brief executive summary (2-3 sentences) highlighting the key improvements.",
    "detailed": (
        "Provide a comprehensive executive summary capturing the release theme, key improvements, and user impact."
    ),
    "comprehensive": (
        "Provide a detailed executive summary with business context, technical overview, and user impact analysis."
    ),
}

_DETAILED_EXTRAS = [
    "## Notable Changes\nInclude any cross-cutting changes, migrations, or platform-level updates if applicable.\n",
    "## Upgrade Notes\nIf any breaking changes or migrations exist, provide concise upgrade guidance.\n",
]
_DETAILED_TECHNICAL = (
    "## Technical Details\nInclude relevant technical specifications, API changes, or implementation notes.\n"
)
_COMPREHENSIVE_EXTRAS = [
    "## Notable Changes\nInclude comprehensive details about cross-cutting changes, migrations, "
    "and platform-level updates.\n",
    "## Technical Implementation\nProvide detailed technical specifications, API changes, and implementation notes.\n",
    "## Upgrade Guide\nProvide detailed upgrade instructions, migration steps, and compatibility notes.\n",
    "## Performance Impact\nInclude any performance improvements, optimizations, or resource usage changes.\n",
    "## Security Updates\nHighlight any security improvements, vulnerability fixes, or compliance updates.\n",
]

logger = structlog.get_logger(__name__)


def _narrow(
    issues: list[LinearIssueLite],
    keep: Callable[[LinearIssueLite], bool],
    event: str,
    **context: Any,
) -> list[LinearIssueLite]:
    kept = [issue for issue in issues if keep(issue)]
    if not kept and issues:
        logger.warning(event, **context)
    return kept


def _format_issue(issue: LinearIssueLite, include_identifiers: bool) -> str:
    line = f"- {issue.title}"
    if issue.description:
        flattened = issue.description.replace("\n", " ")
        line += f": {flattened}"
    if include_identifiers:
        if issue.identifier:
            line += f" ({issue.identifier})"
        if issue.team and issue.team.name:
            line += f" — {issue.team.name}"
    return line


def _build_section(name: str, issues: list[LinearIssueLite], include_identifiers: bool) -> str:
    if not issues:
        return ""
    lines = "\n".join(_format_issue(issue, include_identifiers) for issue in issues)
    return f"\n## {name}\n{lines}\n"


class LinearReleaseService:
    """Aggregates completed Linear work for one access token and turns it into release-notes prompts."""

    def __init__(self, access_token: str, client: LinearAPIClient) -> None:
        self._access_token = access_token
        self._client = client

    @staticmethod
    def validate_input(criteria: AggregationInput) -> ValidationResult:
        errors: list[ValidationIssue] = []

        if not criteria.teams:
            errors.append(
                ValidationIssue(field="teams", message="At least one team must be selected", code="TEAMS_REQUIRED")
            )

        date_range = criteria.date_range
        if date_range and date_range.from_ and date_range.to:
            start, end = parse_date(date_range.from_), parse_date(date_range.to)
            if start and end and start > end:
                errors.append(
                    ValidationIssue(
                        field="date_range",
                        message="Start date must be before end date",
                        code="INVALID_DATE_RANGE",
                    )
                )

        min_priority = criteria.issue_filters.min_priority if criteria.issue_filters else None
        if min_priority is not None and min_priority < 0:
            errors.append(
                ValidationIssue(
                    field="issue_filters.min_priority",
                    message="Minimum priority must be non-negative",
                    code="MIN_PRIORITY_NEGATIVE",
                )
            )
        if min_priority is not None and min_priority > 5:
            errors.append(
                ValidationIssue(
                    field="issue_filters.min_priority",
                    message="Minimum priority must be 5 or less (Linear uses 0-5 scale)",
                    code="MIN_PRIORITY_TOO_HIGH",
                )
            )

        return ValidationResult(errors=errors)

    def _build_filter_options(self, criteria: AggregationInput) -> dict[str, str]:
        # The issues query accepts a single team; remaining teams are filtered client-side.
        options: dict[str, str] = {}
        if criteria.teams:
            options["team_id"] = criteria.teams[0]
            logger.info("linear_team_filter", team_id=options["team_id"])
        else:
            logger.warning("linear_no_teams", detail="No teams provided, will fetch all issues")

        if criteria.date_range and criteria.date_range.from_:
            options["updated_since"] = criteria.date_range.from_
            logger.info("linear_date_filter", updated_since=options["updated_since"])

        # release notes only summarize completed work
        options["state_type"] = "completed"
        logger.info("linear_filter_options", **options)
        return options

    async def aggregate(self, criteria: AggregationInput) -> AggregationResult:
        filter_options = self._build_filter_options(criteria)
        logger.info(
            "linear_aggregate",
            teams=criteria.teams,
            access_token="present" if self._access_token else "missing",
        )

        fetched: list[LinearIssueLite] = []
        after: str | None = None
        pages = 0
        while True:
            page = await self._client.get_issues(
                self._access_token,
                first=criteria.page_size,
                after=after,
                **filter_options,
            )
            page = page or {}
            fetched.extend(issue_from_node(node) for node in page.get("nodes") or [])

            page_info = page.get("pageInfo") or {}
            after = page_info.get("endCursor") if page_info.get("hasNextPage") else None
            pages += 1
            if not after or pages >= MAX_PAGES:
                break

        issues = self._apply_client_side_filters(fetched, criteria)
        return AggregationResult(issues=issues, total_issues=len(issues))

    @staticmethod
    def _apply_client_side_filters(
        issues: list[LinearIssueLite],
        criteria: AggregationInput,
    ) -> list[LinearIssueLite]:
        filtered = issues
        filters = criteria.issue_filters

        if len(criteria.teams) > 1:
            teams = criteria.teams
            filtered = _narrow(
                filtered,
                lambda issue: bool(issue.team and issue.team.id and issue.team.id in teams),
                "linear_team_filter_emptied",
                teams=teams,
            )

        if criteria.projects:
            projects = criteria.projects
            filtered = _narrow(
                filtered,
                lambda issue: bool(issue.project and issue.project.id in projects),
                "linear_project_filter_emptied",
                projects=projects,
            )

        if filters and filters.state_types:
            state_types = filters.state_types
            filtered = _narrow(
                filtered,
                lambda issue: bool(issue.state_type and issue.state_type in state_types),
                "linear_state_filter_emptied",
                state_types=state_types,
            )

        if filters and filters.labels:
            labels = filters.labels
            filtered = _narrow(
                filtered,
                lambda issue: any(label in labels for label in issue.labels),
                "linear_label_filter_emptied",
                labels=labels,
            )

        if filters and filters.min_priority is not None:
            min_priority = filters.min_priority
            filtered = _narrow(
                filtered,
                lambda issue: (issue.priority if issue.priority is not None else 0) >= min_priority,
                "linear_priority_filter_emptied",
                min_priority=min_priority,
            )

        if criteria.date_range and criteria.date_range.to:
            # ISO strings compare chronologically when formats match
            end = criteria.date_range.to
            filtered = _narrow(
                filtered,
                lambda issue: bool(issue.completed_at and issue.completed_at <= end),
                "linear_date_filter_emptied",
                end_date=end,
            )

        if len(filtered) != len(issues):
            logger.info("linear_issues_filtered", fetched=len(issues), kept=len(filtered))
        return filtered

    @staticmethod
    def categorize(issues: list[LinearIssueLite]) -> Sections:
        """Bucket issues by label and title. Precedence: breaking, bug, feature, then improvements."""
        buckets: dict[str, list[LinearIssueLite]] = {
            "features": [],
            "improvements": [],
            "bugfixes": [],
            "breaking": [],
        }
        for issue in issues:
            labels = issue.labels or []
            title = (issue.title or "").lower()
            if any(_BREAKING_LABEL.search(label) for label in labels) or _BREAKING_TITLE.search(title):
                buckets["breaking"].append(issue)
            elif any(_BUG_LABEL.search(label) for label in labels) or _BUG_TITLE.search(title):
                buckets["bugfixes"].append(issue)
            elif any(_FEATURE_LABEL.search(label) for label in labels) or _FEATURE_TITLE.search(title):
                buckets["features"].append(issue)
            else:
                buckets["improvements"].append(issue)
        return Sections(**buckets)

    @staticmethod
    def build_prompt(
        sections: Sections,
        *,
        organization: Organization | Mapping[str, Any] | None = None,
        ai_context: AIContext | Mapping[str, Any] | None = None,
        version: str | None = None,
        release_date: str | None = None,
        instructions: str | None = None,
        template: str | None = None,
        date_range: DateRange | None = None,
        teams: list[str] | None = None,
        projects: list[str] | None = None,
        include_identifiers: bool = True,
    ) -> PromptPair:
        """Build the system and user prompts for a release-notes generation request.

        The only issue-derived text placed in the prompts is each issue's own title,
        description, identifier and team name. ``include_identifiers=False`` drops the
        identifier and team suffixes so non-technical audiences get cleaner input.
        """
        org = coerce_organization(organization) if organization is not None else None
        context = coerce_ai_context(ai_context)
        preferences = resolve_preferences(context)
        audience = preferences.audience
        brevity = preferences.brevity_level

        org_context = []
        if org:
            if org.meta_description:
                org_context.append(f"Organization: {org.meta_description}")
            if org.settings.industry:
                org_context.append(f"Industry: {org.settings.industry}")
            if org.settings.product_type:
                org_context.append(f"Product Type: {org.settings.product_type}")
            if org.settings.target_market:
                org_context.append(f"Target Market: {org.settings.target_market}")
            if org.settings.company_description:
                org_context.append(f"Company Description: {org.settings.company_description}")

        content_rules = _TECHNICAL_CONTENT_RULES if audience in TECHNICAL_AUDIENCES else _GENERAL_CONTENT_RULES

        formatting_rules = []
        if preferences.include_emojis:
            formatting_rules.append("- Use appropriate emojis to enhance readability and engagement")
        if preferences.include_metrics:
            formatting_rules.append("- Include specific numbers and measurable improvements when available")
        formatting_rules.extend(_BREVITY_RULES.get(brevity, []))

        industry = (org.settings.industry if org else None) or "software"
        emojis = "emojis" if preferences.include_emojis else "no emojis"
        metrics = "metrics" if preferences.include_metrics else "no metrics"
        header_lines = [
            f"Role: You are an experienced product technical writer specializing in {industry} release notes.",
            f"Language: {preferences.language}",
            f"Audience: {audience}",
            f"Tone: {preferences.tone}",
            f"Output Format: {preferences.output_format}",
            f"Content Style: {brevity} with {emojis} and {metrics}",
        ]
        if org_context:
            header_lines.append("Organization Context:\n" + "\n".join(org_context))
        if version:
            header_lines.append(f"Release Version: {version}")
        if release_date:
            header_lines.append(f"Release Date: {release_date}")
        if date_range and (date_range.from_ or date_range.to):
            header_lines.append(f"Time Window: {date_range.from_ or 'N/A'} to {date_range.to or 'N/A'}")
        if teams:
            header_lines.append(f"Teams in Scope: {', '.join(teams)}")
        if projects:
            header_lines.append(f"Projects in Scope: {', '.join(projects)}")
        if context.system_prompt:
            header_lines.append(f"House style guidelines (must follow):\n{context.system_prompt}\n")
        header = "\n".join(header_lines)

        body_parts = [_SUMMARY_INSTRUCTIONS.get(brevity, _SUMMARY_INSTRUCTIONS["comprehensive"])]
        body_parts.extend(
            _build_section(heading, getattr(sections, key), include_identifiers) for key, heading in _SECTION_HEADINGS
        )
        if brevity == "detailed":
            body_parts.extend(_DETAILED_EXTRAS)
            body_parts.append(_DETAILED_TECHNICAL if audience == "developers" else "")
        elif brevity != "concise":
            body_parts.extend(_COMPREHENSIVE_EXTRAS)
        body_parts.append(f"\nAdditional Context: {instructions}\n" if instructions else "")
        body = "\n".join(body_parts)

        rules = "\n".join(_STATIC_RULES + content_rules + formatting_rules)
        template_hint = f"\nTemplate structure (must be reflected in the final output):\n{template}\n" if template else ""
        example = (
            f"\n\nExample Output (for style reference; do not copy content):\n{context.example_output}\n"
            if context.example_output
            else ""
        )

        system_prompt = "\n\n".join([header, rules, template_hint, example])
        user_prompt = "\n\n".join(
            [
                "TASK: Generate professional release notes based on the categorized Linear issues below.",
                "IMPORTANT: Create an engaging, professional heading that captures the release theme and version.",
                body,
            ]
        )
        return PromptPair(system_prompt=system_prompt, user_prompt=user_prompt)
