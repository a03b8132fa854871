"""Professional system-prompt construction from organization context and AI preferences.

The caller only supplies the content request; role, company context, audience,
tone, format and quality rules are assembled here. Rendering is a pure function
of the PromptContext: the same context always yields the same prompt.
"""

from collections.abc import Mapping
from typing import Any

from relnotes.models import AIContext, Organization, OrganizationSettings, PromptContext, UserPreferences

CONTENT_TYPES = ("release_notes", "feature_announcement", "bug_fix", "security_update")

_ROLES = {
    "release_notes": "expert release notes writer and product communicator",
    "feature_announcement": "product marketing specialist and feature evangelist",
    "bug_fix": "technical communicator specializing in issue resolution",
    "security_update": "security communications expert and technical writer",
}
_DEFAULT_ROLE = "professional technical writer"

_AUDIENCE_GUIDELINES = {
    "developers": {
        "focus": "technical accuracy, implementation details, and developer workflow impact",
        "language": "precise technical terminology, code references, and architectural considerations",
        "priorities": "functionality, performance, compatibility, and technical debt reduction",
        "avoid": "marketing speak, oversimplification, or business jargon without technical context",
    },
    "business": {
        "focus": "business value, ROI, competitive advantages, and strategic impact",
        "language": "business terminology, metrics, and outcome-focused descriptions",
        "priorities": "revenue impact, efficiency gains, market positioning, and user satisfaction",
        "avoid": "excessive technical details, jargon without business context, or feature lists without value",
    },
    "users": {
        "focus": "user experience improvements, new capabilities, and practical benefits",
        "language": "clear, jargon-free explanations with relatable examples",
        "priorities": "usability, accessibility, time savings, and problem resolution",
        "avoid": "technical implementation details, business metrics, or developer-focused content",
    },
    "mixed": {
        "focus": "balanced coverage of technical capabilities and business value",
        "language": "accessible explanations with technical depth where relevant",
        "priorities": "comprehensive understanding for diverse stakeholders",
        "avoid": "assuming uniform technical knowledge or business context",
    },
    "executives": {
        "focus": "strategic impact, competitive positioning, and organizational benefits",
        "language": "executive-level terminology focusing on outcomes and implications",
        "priorities": "business transformation, risk mitigation, and strategic advantage",
        "avoid": "granular technical details, feature-level descriptions, or operational minutiae",
    },
}

_TONES = {
    "professional": {
        "characteristics": "authoritative, polished, and business-appropriate",
        "voice": "confident and competent without being overly formal",
        "structure": "well-organized with clear hierarchy and logical flow",
        "language": "precise, professional vocabulary with industry-standard terminology",
    },
    "casual": {
        "characteristics": "approachable, conversational, and friendly",
        "voice": "warm and personable while maintaining credibility",
        "structure": "natural flow with conversational transitions",
        "language": "everyday language with minimal jargon, contractions welcome",
    },
    "technical": {
        "characteristics": "precise, detailed, and technically accurate",
        "voice": "authoritative and methodical with deep technical insight",
        "structure": "systematic and comprehensive with technical depth",
        "language": "technical terminology, specifications, and implementation details",
    },
    "enthusiastic": {
        "characteristics": "energetic, positive, and engaging",
        "voice": "excited about improvements while maintaining professionalism",
        "structure": "dynamic flow with emphasis on benefits and positive impact",
        "language": "active voice, positive framing, and benefit-focused descriptions",
    },
    "formal": {
        "characteristics": "structured, official, and ceremonial",
        "voice": "dignified and authoritative with institutional weight",
        "structure": "traditional format with formal conventions",
        "language": "formal vocabulary, complete sentences, and official terminology",
    },
}

_FORMATS = {
    "markdown": {
        "structure": "Use proper markdown hierarchy (# ## ###) for headings",
        "formatting": "Use **bold** for emphasis, *italics* for subtle emphasis, `code` for technical terms",
        "lists": "Use - for unordered lists, 1. for ordered lists",
        "links": "Format links as [text](url) when referencing external resources",
    },
    "html": {
        "structure": "Use semantic HTML tags (h1, h2, h3) for proper hierarchy",
        "formatting": "Use <strong> for emphasis, <em> for subtle emphasis, <code> for technical terms",
        "lists": "Use <ul>/<li> for unordered lists, <ol>/<li> for ordered lists",
        "links": 'Format links as <a href="url">text</a> when referencing external resources',
    },
}

_BREVITY = {
    "concise": "Keep descriptions brief and focused - aim for 1-2 sentences per point",
    "detailed": "Provide comprehensive explanations with context and implications",
    "comprehensive": "Include thorough coverage with examples, context, and detailed explanations",
}

_USER_PROMPT_TEMPLATES = {
    "release_notes": """Create release notes for the following changes:

{changes}

Additional context:
{additional_context}

Focus on the value and impact of these changes for users.""",
    "feature_announcement": """Create a feature announcement for:

{feature_details}

Context:
{additional_context}

Highlight the benefits and use cases for this new capability.""",
    "bug_fix": """Create communication about the following bug fixes:

{fixes}

Context:
{additional_context}

Focus on the problems resolved and improvements users will experience.""",
    "security_update": """Create communication about these security updates:

{security_changes}

Context:
{additional_context}

Balance transparency with appropriate security considerations.""",
}


def _title_case_first(value: str) -> str:
    return value[:1].upper() + value[1:]


def _role_definition(context: PromptContext) -> str:
    role = _ROLES.get(context.content_type, _DEFAULT_ROLE)
    name = context.organization.name
    return f"""You are a {role} working for {name}. Your expertise lies in transforming technical changes into clear, valuable communications that resonate with your target audience.

Your primary responsibility is to create content that:
- Clearly communicates the value and impact of changes
- Maintains {name}'s brand voice and professional standards
- Serves the specific needs of your {context.preferences.audience} audience
- Follows industry best practices for {context.content_type.replace("_", " ", 1)}"""


def _company_context(org: Organization) -> str:
    settings = org.settings
    lines = ["COMPANY CONTEXT:", f"Organization: {org.name}"]
    if org.meta_description:
        lines.append(f"Company Description: {org.meta_description}")
    if settings.industry:
        lines.append(f"Industry: {settings.industry}")
    if settings.product_type:
        lines.append(f"Product Type: {settings.product_type}")
    if settings.target_market:
        lines.append(f"Target Market: {settings.target_market}")
    if settings.company_description:
        lines.append(f"Additional Context: {settings.company_description}")

    industry = settings.industry or "technology"
    market = settings.target_market or "professional"
    lines.append("")
    lines.append(
        f"Your writing should reflect {org.name}'s position in the {industry} space "
        f"and speak to their {market} audience."
    )
    return "\n".join(lines)


def _audience_guidelines(audience: str) -> str:
    guide = _AUDIENCE_GUIDELINES.get(audience, _AUDIENCE_GUIDELINES["mixed"])
    return f"""AUDIENCE GUIDELINES:
Target Audience: {_title_case_first(audience)}

Focus Areas: {guide["focus"]}
Language Style: {guide["language"]}
Content Priorities: {guide["priorities"]}
Avoid: {guide["avoid"]}

Tailor every sentence to serve this audience's specific needs and knowledge level."""


def _tone_instructions(tone: str) -> str:
    guide = _TONES.get(tone, _TONES["professional"])
    return f"""TONE INSTRUCTIONS:
Writing Tone: {_title_case_first(tone)}

Characteristics: {guide["characteristics"]}
Voice: {guide["voice"]}
Structure: {guide["structure"]}
Language: {guide["language"]}

Every sentence should embody this tone while serving your audience's needs."""


def _format_specifications(preferences: UserPreferences) -> str:
    specs = _FORMATS.get(preferences.output_format, _FORMATS["markdown"])
    text = f"""FORMAT SPECIFICATIONS:
Output Format: {preferences.output_format.upper()}

{specs["structure"]}
{specs["formatting"]}
{specs["lists"]}
{specs["links"]}"""

    if preferences.include_emojis:
        text += "\nEmojis: Use relevant emojis strategically to enhance readability and engagement"
    if preferences.include_metrics:
        text += "\nMetrics: Include specific numbers, percentages, and measurable improvements when available"
    if preferences.brevity_level in _BREVITY:
        text += f"\nBrevity: {_BREVITY[preferences.brevity_level]}"
    return text


def _quality_standards() -> str:
    return """QUALITY STANDARDS:

Accuracy: Every statement must be factually correct and verifiable
Clarity: Complex concepts should be explained in accessible terms for your audience
Completeness: Cover all significant aspects without overwhelming detail
Consistency: Maintain uniform style, terminology, and structure throughout
Value Focus: Every item should clearly communicate benefit or impact to users

Content Requirements:
- Lead with the most important information
- Group related changes logically
- Use parallel structure for similar items
- Include context for why changes matter
- Maintain positive framing while being honest about challenges"""


def _output_constraints(preferences: UserPreferences) -> str:
    return f"""OUTPUT CONSTRAINTS:

Structure: Organize content with clear sections and logical hierarchy
Length: Provide appropriate detail level for your audience without unnecessary verbosity
Language: Use {preferences.language or "English"} throughout
Formatting: Strictly follow {preferences.output_format.upper()} formatting requirements

Quality Checklist:
✓ Content serves the target audience's specific needs
✓ Tone is consistent with specified style
✓ Format follows technical specifications
✓ Information is accurate and valuable
✓ Structure supports easy scanning and comprehension

Do not include meta-commentary about the prompt or your process. Focus entirely on creating valuable content."""


class ProfessionalPromptEngine:
    @staticmethod
    def generate_system_prompt(context: PromptContext) -> str:
        preferences = context.preferences
        sections = [
            _role_definition(context),
            _company_context(context.organization),
            _audience_guidelines(preferences.audience),
            _tone_instructions(preferences.tone),
            _format_specifications(preferences),
            _quality_standards(),
            _output_constraints(preferences),
            f"Remember: You are representing {context.organization.name} and writing for their "
            f"{preferences.audience}. Every word should reflect their brand and serve their users' needs.",
        ]
        return "\n\n".join(sections)

    @staticmethod
    def generate_user_prompt_template(content_type: str) -> str:
        """Return the static user-prompt template for a content type, with ``{placeholder}`` slots."""
        return _USER_PROMPT_TEMPLATES.get(content_type, _USER_PROMPT_TEMPLATES["release_notes"])


def resolve_preferences(ai_context: AIContext | None) -> UserPreferences:
    """Apply defaults to an AI-context record. Empty strings count as unset; booleans only default when absent."""
    ctx = ai_context or AIContext()
    defaults = UserPreferences()
    return UserPreferences(
        tone=ctx.tone or defaults.tone,
        audience=ctx.audience or defaults.audience,
        output_format=ctx.output_format or defaults.output_format,
        language=ctx.language or defaults.language,
        include_emojis=defaults.include_emojis if ctx.include_emojis is None else ctx.include_emojis,
        include_metrics=defaults.include_metrics if ctx.include_metrics is None else ctx.include_metrics,
        brevity_level=ctx.brevity_level or defaults.brevity_level,
    )


def _present(data: Mapping[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in data.items() if value is not None}


def coerce_organization(data: Organization | Mapping[str, Any] | None) -> Organization:
    if isinstance(data, Organization):
        return data
    fields = _present(data or {})
    fields["settings"] = OrganizationSettings.model_validate(_present(fields.get("settings") or {}))
    return Organization.model_validate(fields)


def coerce_ai_context(data: AIContext | Mapping[str, Any] | None) -> AIContext:
    if isinstance(data, AIContext):
        return data
    return AIContext.model_validate(_present(data or {}))


def build_prompt_context(
    organization_data: Organization | Mapping[str, Any] | None,
    ai_context_data: AIContext | Mapping[str, Any] | None,
    content_type: str = "release_notes",
) -> PromptContext:
    """Map loosely-typed organization and AI-context records into a PromptContext."""
    ai_context = coerce_ai_context(ai_context_data)
    return PromptContext(
        organization=coerce_organization(organization_data),
        preferences=resolve_preferences(ai_context),
        content_type=content_type,
        template_style=ai_context.template_style,
    )


def generate_professional_system_prompt(
    organization_data: Organization | Mapping[str, Any] | None,
    ai_context_data: AIContext | Mapping[str, Any] | None,
    content_type: str = "release_notes",
) -> str:
    context = build_prompt_context(organization_data, ai_context_data, content_type)
    return ProfessionalPromptEngine.generate_system_prompt(context)
