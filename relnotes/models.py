"""Shared pydantic models: the contract between the Linear client, services, prompt engine and CLI."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, computed_field

StateType = Literal["backlog", "unstarted", "started", "completed", "canceled"]
SectionName = Literal["features", "improvements", "bugfixes", "breaking"]

SECTION_NAMES: tuple[SectionName, ...] = ("features", "improvements", "bugfixes", "breaking")


class TeamRef(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str | None = None
    name: str | None = None


class ProjectRef(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str | None = None


class LinearIssueLite(BaseModel):
    """Normalized projection of a Linear issue, just what release notes need."""

    model_config = ConfigDict(frozen=True)

    id: str
    identifier: str  # ENG-123
    title: str
    description: str | None = None
    priority: int | None = None  # 0-5, None = untriaged
    labels: list[str] = []
    url: str | None = None
    completed_at: str | None = None  # ISO date string
    state: str | None = None  # display name
    state_type: str | None = None  # backlog | unstarted | started | completed | canceled
    team: TeamRef | None = None
    project: ProjectRef | None = None  # None = "no project"


class DateRange(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    from_: str | None = Field(default=None, alias="from")
    to: str | None = None


class IssueFilters(BaseModel):
    model_config = ConfigDict(frozen=True)

    state_types: list[str] = []
    labels: list[str] = []
    min_priority: int | None = None


class AggregationInput(BaseModel):
    model_config = ConfigDict(frozen=True)

    teams: list[str]  # first is queried server-side, all are filtered client-side
    projects: list[str] = []
    date_range: DateRange | None = None
    issue_filters: IssueFilters | None = None
    page_size: int = 100


class AggregationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    issues: list[LinearIssueLite]
    total_issues: int


class Sections(BaseModel):
    """Release-note buckets; every aggregated issue lands in exactly one."""

    model_config = ConfigDict(frozen=True)

    features: list[LinearIssueLite] = []
    improvements: list[LinearIssueLite] = []
    bugfixes: list[LinearIssueLite] = []
    breaking: list[LinearIssueLite] = []

    def total(self) -> int:
        return len(self.features) + len(self.improvements) + len(self.bugfixes) + len(self.breaking)


class OrganizationSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    industry: str | None = None
    company_size: str | None = None
    product_type: str | None = None
    target_market: str | None = None
    company_description: str | None = None


class Organization(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str | None = None
    name: str = "your organization"
    slug: str | None = None
    meta_description: str | None = None
    brand_color: str | None = None
    settings: OrganizationSettings = OrganizationSettings()


class AIContext(BaseModel):
    """Organization AI-context record. Every field is optional; defaults live in resolve_preferences."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    system_prompt: str | None = None
    user_prompt_template: str | None = None
    audience: str | None = None  # developers | business | users | mixed | executives
    tone: str | None = None  # professional | casual | technical | enthusiastic | formal
    output_format: str | None = None  # markdown | html
    example_output: str | None = None
    language: str | None = None
    include_emojis: bool | None = None
    include_metrics: bool | None = None
    brevity_level: str | None = None  # concise | detailed | comprehensive
    template_style: str | None = None


class UserPreferences(BaseModel):
    model_config = ConfigDict(frozen=True)

    tone: str = "professional"
    audience: str = "mixed"
    output_format: str = "markdown"
    language: str = "English"
    include_emojis: bool = False
    include_metrics: bool = True
    brevity_level: str = "detailed"


class PromptContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    organization: Organization
    preferences: UserPreferences
    content_type: str = "release_notes"  # release_notes | feature_announcement | bug_fix | security_update
    template_style: str | None = None


class PromptPair(BaseModel):
    model_config = ConfigDict(frozen=True)

    system_prompt: str
    user_prompt: str


class ValidationIssue(BaseModel):
    """A single validation error or warning."""

    model_config = ConfigDict(frozen=True)

    field: str
    message: str
    code: str


class ValidationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    errors: list[ValidationIssue] = []
    warnings: list[ValidationIssue] = []

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_valid(self) -> bool:
        return not self.errors


class ConnectionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool
    user: dict | None = None
    organization: dict | None = None
    error: str | None = None


class GenerationOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    model: str | None = None
    max_tokens: int | None = None
    temperature: float | None = None


class ReleaseDraft(BaseModel):
    """Generated release notes, ready for the persistence layer."""

    model_config = ConfigDict(frozen=True)

    title: str
    slug: str
    version: str | None = None
    content_markdown: str
    content_html: str | None = None  # set only when the generator already returned HTML
    status: str = "draft"
    source_ticket_ids: list[str] = []


class GenerationRequest(BaseModel):
    """One release-notes generation request as submitted by the wizard or CLI."""

    model_config = ConfigDict(frozen=True)

    teams: list[str]
    projects: list[str] = []
    date_range: DateRange | None = None
    issue_filters: IssueFilters | None = None
    page_size: int = 100
    selected_issues: list[str] = []  # identifiers or ids; empty = keep everything aggregated
    template: str | dict | None = None  # str = structural hint, dict = stored template record
    instructions: str | None = None
    version: str | None = None
    release_date: str | None = None


class PreparedGeneration(BaseModel):
    model_config = ConfigDict(frozen=True)

    issues: list[LinearIssueLite]
    sections: Sections
    prompts: PromptPair
    include_identifiers: bool
