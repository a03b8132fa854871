"""End-to-end release-notes generation: validate, aggregate, categorize, prompt, generate, draft."""

import asyncio
import json
import re
import time
from collections.abc import Mapping
from datetime import date
from typing import Any

import structlog

from relnotes.generators.base import TextGenerator
from relnotes.models import (
    AggregationInput,
    AIContext,
    GenerationOptions,
    GenerationRequest,
    Organization,
    PreparedGeneration,
    ReleaseDraft,
    ValidationResult,
)
from relnotes.prompt_engine import coerce_ai_context, coerce_organization
from relnotes.release_service import LinearReleaseService

MAX_INSTRUCTIONS_LENGTH = 1000
MAX_VERSION_LENGTH = 100
MAX_SOURCE_TICKETS = 50

_HTML_TAG = re.compile(r"<[^>]+>")

logger = structlog.get_logger(__name__)


class ReleaseNotesError(RuntimeError):
    pass


class InvalidRequestError(ReleaseNotesError):
    def __init__(self, result: ValidationResult) -> None:
        self.result = result
        super().__init__("Invalid input parameters: " + "; ".join(e.message for e in result.errors))


class NoIssuesFoundError(ReleaseNotesError):
    def __init__(self) -> None:
        super().__init__(
            "No issues found matching the selected criteria. Adjust the team selection, "
            "date range, or issue filters to include completed issues."
        )


def sanitize_request(request: GenerationRequest) -> GenerationRequest:
    """Clamp free-text fields before they reach a prompt."""
    return request.model_copy(
        update={
            "instructions": request.instructions[:MAX_INSTRUCTIONS_LENGTH] if request.instructions else None,
            "version": request.version[:MAX_VERSION_LENGTH] if request.version else None,
        }
    )


def is_technical(ai_context: AIContext) -> bool:
    return ai_context.tone == "technical" or ai_context.audience == "developers"


def _template_sections(content: Any) -> list:
    if isinstance(content, Mapping):
        parsed: Any = content
    else:
        try:
            parsed = json.loads(content or '{"sections":[]}')
        except (TypeError, ValueError):
            logger.warning("template_content_not_json")
            parsed = {}
    sections = parsed.get("sections") if isinstance(parsed, Mapping) else None
    return sections if isinstance(sections, list) else []


def build_template_requirements(template: Mapping[str, Any]) -> str:
    """Render a stored template record as a strict TEMPLATE REQUIREMENTS block for the system prompt."""
    sections = _template_sections(template.get("content"))
    if sections:
        sections_text = "\n".join(
            f"- {(s.get('name') if isinstance(s, Mapping) else None) or 'Unnamed'} "
            f"({(s.get('type') if isinstance(s, Mapping) else None) or 'text'}): "
            f"{(s.get('prompt') if isinstance(s, Mapping) else None) or 'No prompt specified'}"
            for s in sections
        )
    else:
        sections_text = "No specific sections defined"

    return f"""

TEMPLATE REQUIREMENTS:
Template: {template.get("name")} ({template.get("category") or "custom"})
Description: {template.get("description") or "Custom template"}

{template.get("system_prompt") or ""}

Template Sections Required:
{sections_text}

Example Output Style:
{template.get("example_output") or "Follow the template structure above"}

Tone Override: {template.get("tone") or "Use organization default"}
Audience Override: {template.get("target_audience") or "Use organization default"}
Output Format: {template.get("output_format") or "markdown"}

IMPORTANT: Follow the template structure exactly while maintaining the professional tone and voice established above."""


async def build_generation_prompts(
    service: LinearReleaseService,
    request: GenerationRequest,
    *,
    organization: Organization | Mapping[str, Any] | None = None,
    ai_context: AIContext | Mapping[str, Any] | None = None,
) -> PreparedGeneration:
    """Run every step up to, but not including, the text-generation call."""
    request = sanitize_request(request)
    criteria = AggregationInput(
        teams=request.teams,
        projects=request.projects,
        date_range=request.date_range,
        issue_filters=request.issue_filters,
        page_size=request.page_size,
    )
    validation = service.validate_input(criteria)
    if not validation.is_valid:
        raise InvalidRequestError(validation)

    result = await service.aggregate(criteria)
    issues = result.issues
    if request.selected_issues:
        selected = set(request.selected_issues)
        issues = [issue for issue in issues if issue.identifier in selected or issue.id in selected]
    if not issues:
        raise NoIssuesFoundError()

    context = coerce_ai_context(ai_context)
    org = coerce_organization(organization) if organization is not None else None
    include_identifiers = is_technical(context)
    template = request.template

    logger.info(
        "release_generation_context",
        teams=len(request.teams),
        projects=len(request.projects),
        total_issues=len(issues),
        has_template=bool(template),
        has_instructions=bool(request.instructions),
        has_version=bool(request.version),
        is_technical=include_identifiers,
    )

    sections = service.categorize(issues)
    prompts = service.build_prompt(
        sections,
        organization=org,
        ai_context=context,
        version=request.version,
        release_date=request.release_date,
        instructions=request.instructions,
        template=template if isinstance(template, str) else None,
        date_range=request.date_range,
        teams=request.teams,
        projects=request.projects,
        include_identifiers=include_identifiers,
    )
    if isinstance(template, Mapping) and template.get("name"):
        prompts = prompts.model_copy(
            update={"system_prompt": prompts.system_prompt + build_template_requirements(template)}
        )

    return PreparedGeneration(
        issues=issues,
        sections=sections,
        prompts=prompts,
        include_identifiers=include_identifiers,
    )


def slugify(title: str) -> str:
    return re.sub(r"[^\w-]+", "", re.sub(r"[\s_]+", "-", title.lower().strip()))


async def generate_release_notes(
    service: LinearReleaseService,
    generator: TextGenerator,
    request: GenerationRequest,
    *,
    organization: Organization | Mapping[str, Any] | None = None,
    ai_context: AIContext | Mapping[str, Any] | None = None,
    options: GenerationOptions | None = None,
    timeout: float | None = None,
    today: date | None = None,
    slug_suffix: str | None = None,
) -> ReleaseDraft:
    """Generate a release-notes draft. Generation failures propagate unchanged, with no retry or fallback text."""
    prepared = await build_generation_prompts(
        service,
        request,
        organization=organization,
        ai_context=ai_context,
    )
    async with asyncio.timeout(timeout):
        content = await generator.generate(
            prepared.prompts.system_prompt,
            prepared.prompts.user_prompt,
            options,
        )

    version = sanitize_request(request).version
    title = f"Release {version}" if version else f"Release Notes - {(today or date.today()).isoformat()}"
    suffix = slug_suffix or str(int(time.time() * 1000))
    return ReleaseDraft(
        title=title,
        slug=f"{slugify(title)}-{suffix}",
        version=version,
        content_markdown=content,
        content_html=content if _HTML_TAG.search(content) else None,
        source_ticket_ids=[issue.identifier for issue in prepared.issues[:MAX_SOURCE_TICKETS]],
    )
