"""Select the text generator once, at startup, from settings."""

from relnotes.generators.azure_openai import AzureOpenAIGenerator
from relnotes.generators.base import GeneratorConfigError, TextGenerator
from relnotes.generators.gemini import GeminiGenerator
from relnotes.settings import RelnotesSettings

PROVIDERS = ("gemini", "azure-openai")


def resolve_provider(settings: RelnotesSettings) -> str:
    """Explicit ai_provider wins; otherwise Gemini when a Gemini key is configured, else Azure OpenAI."""
    if settings.ai_provider:
        return settings.ai_provider.strip().lower()
    return "gemini" if settings.gemini_api_key else "azure-openai"


def get_text_generator(settings: RelnotesSettings) -> TextGenerator:
    provider = resolve_provider(settings)
    match provider:
        case "gemini":
            if not settings.gemini_api_key:
                raise GeneratorConfigError("GEMINI_API_KEY not set. Set RELNOTES_GEMINI_API_KEY.")
            return GeminiGenerator(
                settings.gemini_api_key.get_secret_value(),
                settings.gemini_model,
                max_tokens=settings.generation_max_tokens,
                temperature=settings.generation_temperature,
            )
        case "azure-openai":
            if not settings.azure_openai_api_key or not settings.azure_openai_endpoint:
                raise GeneratorConfigError(
                    "Azure OpenAI is not configured. Set RELNOTES_AZURE_OPENAI_API_KEY and "
                    "RELNOTES_AZURE_OPENAI_ENDPOINT, or RELNOTES_GEMINI_API_KEY to use Gemini."
                )
            return AzureOpenAIGenerator(
                settings.azure_openai_api_key.get_secret_value(),
                settings.azure_openai_endpoint,
                settings.azure_openai_deployment,
                api_version=settings.azure_openai_api_version,
                max_tokens=settings.generation_max_tokens,
                temperature=settings.generation_temperature,
            )
        case _:
            raise GeneratorConfigError(f"Unknown AI provider '{provider}'. Valid: {', '.join(PROVIDERS)}")
