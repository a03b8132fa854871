"""Validators for each step of the release-notes wizard.

Every validator is pure: it never raises and never performs I/O, it returns a
ValidationResult whose errors block generation and whose warnings are advisory.
Time-relative checks take ``now`` as an argument so results are reproducible.
"""

import re
from collections.abc import Mapping
from datetime import UTC, date, datetime, time
from typing import Any

from relnotes.models import ValidationIssue, ValidationResult

AI_DECIDE = "ai-decide"

REPOSITORY_PROVIDERS = ("github", "gitlab", "bitbucket")
TEMPLATE_CATEGORIES = ("traditional", "modern", "technical", "marketing", "changelog", "minimal")
TEMPLATE_TONES = ("professional", "casual", "technical", "enthusiastic", "formal")
TEMPLATE_AUDIENCES = ("developers", "business", "users", "mixed")

VERSION_PATTERN = re.compile(r"^v?\d+(\.\d+)*(-[A-Za-z0-9]+)?$")

MAX_BRANCH_LENGTH = 100
MAX_VERSION_LENGTH = 50
MAX_INSTRUCTIONS_LENGTH = 1000
MIN_INSTRUCTIONS_LENGTH = 10
SECONDS_PER_DAY = 60 * 60 * 24


def _issue(field: str, message: str, code: str) -> ValidationIssue:
    return ValidationIssue(field=field, message=message, code=code)


def parse_date(value: Any) -> datetime | None:
    """Parse an ISO date or datetime; naive values are taken as UTC. Returns None when unparseable."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _days_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / SECONDS_PER_DAY


def validate_repository_selection(repository: Mapping | None) -> ValidationResult:
    errors: list[ValidationIssue] = []
    warnings: list[ValidationIssue] = []

    if not repository:
        errors.append(_issue("repository", "Repository selection is required", "REPOSITORY_REQUIRED"))
        return ValidationResult(errors=errors, warnings=warnings)

    if not repository.get("id"):
        errors.append(_issue("repository.id", "Repository ID is missing", "REPOSITORY_ID_MISSING"))
    if not repository.get("full_name"):
        errors.append(_issue("repository.full_name", "Repository full name is missing", "REPOSITORY_NAME_MISSING"))

    provider = repository.get("provider")
    if not provider:
        errors.append(_issue("repository.provider", "Repository provider is missing", "REPOSITORY_PROVIDER_MISSING"))
    elif provider not in REPOSITORY_PROVIDERS:
        errors.append(_issue("repository.provider", "Invalid repository provider", "REPOSITORY_PROVIDER_INVALID"))

    if repository.get("private") is True:
        warnings.append(
            _issue(
                "repository.private",
                "Private repository selected - ensure you have proper access",
                "REPOSITORY_PRIVATE",
            )
        )
    if not repository.get("description"):
        warnings.append(
            _issue(
                "repository.description",
                "Repository has no description - this may affect AI generation quality",
                "REPOSITORY_NO_DESCRIPTION",
            )
        )

    return ValidationResult(errors=errors, warnings=warnings)


def validate_data_source_options(options: Mapping | None, *, now: datetime | None = None) -> ValidationResult:
    errors: list[ValidationIssue] = []
    warnings: list[ValidationIssue] = []

    if not options:
        errors.append(_issue("data_sources", "Data source options are required", "DATA_SOURCES_REQUIRED"))
        return ValidationResult(errors=errors, warnings=warnings)

    if not options.get("commits") and not options.get("issues"):
        errors.append(
            _issue(
                "data_sources",
                "At least one data source (commits or issues) must be selected",
                "NO_DATA_SOURCES_SELECTED",
            )
        )

    date_range = options.get("date_range")
    if not date_range:
        errors.append(_issue("data_sources.date_range", "Date range is required", "DATE_RANGE_REQUIRED"))
    else:
        raw_from, raw_to = date_range.get("from"), date_range.get("to")
        if not raw_from:
            errors.append(_issue("data_sources.date_range.from", "Start date is required", "START_DATE_REQUIRED"))
        if not raw_to:
            errors.append(_issue("data_sources.date_range.to", "End date is required", "END_DATE_REQUIRED"))

        if raw_from and raw_to:
            from_date, to_date = parse_date(raw_from), parse_date(raw_to)
            if from_date is None or to_date is None:
                errors.append(_issue("data_sources.date_range", "Invalid date format", "INVALID_DATE_FORMAT"))
            else:
                current = now or datetime.now(UTC)
                if from_date > to_date:
                    errors.append(
                        _issue("data_sources.date_range", "Start date must be before end date", "INVALID_DATE_RANGE")
                    )
                if to_date > current:
                    warnings.append(_issue("data_sources.date_range.to", "End date is in the future", "FUTURE_END_DATE"))

                span = _days_between(from_date, to_date)
                if span > 365:
                    warnings.append(
                        _issue(
                            "data_sources.date_range",
                            "Date range is very large (>1 year) - this may affect performance",
                            "LARGE_DATE_RANGE",
                        )
                    )
                if span < 1:
                    warnings.append(
                        _issue(
                            "data_sources.date_range",
                            "Date range is very small (<1 day) - you may not get enough data",
                            "SMALL_DATE_RANGE",
                        )
                    )

    branch = options.get("branch")
    if branch and not isinstance(branch, str):
        errors.append(_issue("data_sources.branch", "Branch name must be a string", "INVALID_BRANCH_TYPE"))
    elif isinstance(branch, str) and len(branch) > MAX_BRANCH_LENGTH:
        errors.append(_issue("data_sources.branch", "Branch name is too long", "BRANCH_NAME_TOO_LONG"))

    return ValidationResult(errors=errors, warnings=warnings)


def validate_template_selection(template: Any) -> ValidationResult:
    errors: list[ValidationIssue] = []
    warnings: list[ValidationIssue] = []

    if not template:
        errors.append(_issue("template", "Template selection is required", "TEMPLATE_REQUIRED"))
        return ValidationResult(errors=errors, warnings=warnings)

    if template == AI_DECIDE:
        return ValidationResult()

    if not isinstance(template, Mapping):
        errors.append(_issue("template", "Invalid template format", "TEMPLATE_INVALID_FORMAT"))
        return ValidationResult(errors=errors, warnings=warnings)

    required = (
        ("id", "Template ID is missing", "TEMPLATE_ID_MISSING"),
        ("name", "Template name is missing", "TEMPLATE_NAME_MISSING"),
        ("system_prompt", "Template system prompt is missing", "TEMPLATE_SYSTEM_PROMPT_MISSING"),
        ("user_prompt_template", "Template user prompt is missing", "TEMPLATE_USER_PROMPT_MISSING"),
    )
    for key, message, code in required:
        if not template.get(key):
            errors.append(_issue(f"template.{key}", message, code))

    enumerations = (
        ("category", TEMPLATE_CATEGORIES, "Invalid template category", "TEMPLATE_INVALID_CATEGORY"),
        ("tone", TEMPLATE_TONES, "Invalid template tone", "TEMPLATE_INVALID_TONE"),
        ("target_audience", TEMPLATE_AUDIENCES, "Invalid template target audience", "TEMPLATE_INVALID_AUDIENCE"),
    )
    for key, allowed, message, code in enumerations:
        value = template.get(key)
        if value and value not in allowed:
            errors.append(_issue(f"template.{key}", message, code))

    if not template.get("uses_org_ai_context"):
        warnings.append(
            _issue(
                "template.uses_org_ai_context",
                "Template does not use organization AI context - results may be less personalized",
                "TEMPLATE_NO_ORG_CONTEXT",
            )
        )

    return ValidationResult(errors=errors, warnings=warnings)


def validate_additional_instructions(data: Mapping, *, now: datetime | None = None) -> ValidationResult:
    errors: list[ValidationIssue] = []
    warnings: list[ValidationIssue] = []

    version = data.get("version")
    if version:
        if not isinstance(version, str):
            errors.append(_issue("version", "Version must be a string", "VERSION_INVALID_TYPE"))
        else:
            if len(version) > MAX_VERSION_LENGTH:
                errors.append(
                    _issue("version", "Version string is too long (max 50 characters)", "VERSION_TOO_LONG")
                )
            if not VERSION_PATTERN.fullmatch(version):
                warnings.append(
                    _issue(
                        "version",
                        "Version format may not follow semantic versioning (e.g., v1.0.0)",
                        "VERSION_FORMAT_WARNING",
                    )
                )

    release_date = data.get("release_date")
    if release_date:
        parsed = parse_date(release_date)
        if parsed is None:
            errors.append(_issue("release_date", "Invalid release date format", "RELEASE_DATE_INVALID"))
        else:
            age = _days_between(parsed, now or datetime.now(UTC))
            if age > 365:
                warnings.append(
                    _issue("release_date", "Release date is more than 1 year in the past", "RELEASE_DATE_OLD")
                )
            if age < -365:
                warnings.append(
                    _issue(
                        "release_date",
                        "Release date is more than 1 year in the future",
                        "RELEASE_DATE_FAR_FUTURE",
                    )
                )

    instructions = data.get("instructions")
    if instructions:
        if not isinstance(instructions, str):
            errors.append(_issue("instructions", "Instructions must be a string", "INSTRUCTIONS_INVALID_TYPE"))
        else:
            if len(instructions) > MAX_INSTRUCTIONS_LENGTH:
                errors.append(
                    _issue(
                        "instructions",
                        "Instructions are too long (max 1000 characters)",
                        "INSTRUCTIONS_TOO_LONG",
                    )
                )
            if len(instructions) < MIN_INSTRUCTIONS_LENGTH:
                warnings.append(
                    _issue(
                        "instructions",
                        "Instructions are very short - consider adding more detail",
                        "INSTRUCTIONS_TOO_SHORT",
                    )
                )

    return ValidationResult(errors=errors, warnings=warnings)


def validate_complete_wizard_data(wizard_data: Mapping, *, now: datetime | None = None) -> ValidationResult:
    results = [
        validate_repository_selection(wizard_data.get("repository")),
        validate_data_source_options(wizard_data.get("data_sources"), now=now),
        validate_template_selection(wizard_data.get("template")),
        validate_additional_instructions(
            {
                "version": wizard_data.get("version"),
                "release_date": wizard_data.get("release_date"),
                "instructions": wizard_data.get("instructions"),
            },
            now=now,
        ),
    ]
    errors = [error for result in results for error in result.errors]
    warnings = [warning for result in results for warning in result.warnings]

    repository = wizard_data.get("repository")
    data_sources = wizard_data.get("data_sources")
    if repository and data_sources:
        if repository.get("provider") == "gitlab" and data_sources.get("include_pull_requests"):
            warnings.append(
                _issue(
                    "data_sources.include_pull_requests",
                    "GitLab uses merge requests instead of pull requests",
                    "GITLAB_PULL_REQUESTS_WARNING",
                )
            )

    return ValidationResult(errors=errors, warnings=warnings)


def validate_generation_request(request: Mapping | None) -> ValidationResult:
    errors: list[ValidationIssue] = []

    if not request:
        errors.append(_issue("request", "Generation request is required", "REQUEST_REQUIRED"))
        return ValidationResult(errors=errors)

    if not request.get("repository"):
        errors.append(_issue("repository", "Repository is required for generation", "REPOSITORY_REQUIRED"))
    if not request.get("data_sources"):
        errors.append(_issue("data_sources", "Data sources are required for generation", "DATA_SOURCES_REQUIRED"))
    if not request.get("template"):
        errors.append(_issue("template", "Template selection is required for generation", "TEMPLATE_REQUIRED"))

    data_sources = request.get("data_sources")
    if data_sources and not data_sources.get("commits") and not data_sources.get("issues"):
        errors.append(_issue("data_sources", "At least one data source must be enabled", "NO_DATA_SOURCES_ENABLED"))

    return ValidationResult(errors=errors)


def format_validation_errors(errors: list[ValidationIssue]) -> str:
    if not errors:
        return ""
    if len(errors) == 1:
        return errors[0].message
    return "Multiple validation errors:\n" + "\n".join(f"• {e.message}" for e in errors)


def format_validation_warnings(warnings: list[ValidationIssue]) -> str:
    if not warnings:
        return ""
    if len(warnings) == 1:
        return warnings[0].message
    return "Warnings:\n" + "\n".join(f"• {w.message}" for w in warnings)
