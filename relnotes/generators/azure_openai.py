"""Azure OpenAI text generator (chat completions)."""

import openai
import structlog

from relnotes.generators.base import GenerationError, TextGenerator
from relnotes.models import GenerationOptions

DEFAULT_DEPLOYMENT = "gpt-4o-mini"
DEFAULT_API_VERSION = "2024-10-21"

logger = structlog.get_logger(__name__)


class AzureOpenAIGenerator(TextGenerator):
    name = "azure-openai"

    def __init__(
        self,
        api_key: str,
        endpoint: str,
        deployment: str = DEFAULT_DEPLOYMENT,
        *,
        api_version: str = DEFAULT_API_VERSION,
        max_tokens: int = 2000,
        temperature: float = 0.7,
        client: openai.AsyncAzureOpenAI | None = None,
    ) -> None:
        self._client = client or openai.AsyncAzureOpenAI(
            api_key=api_key,
            azure_endpoint=endpoint,
            api_version=api_version,
        )
        self._deployment = deployment
        self._max_tokens = max_tokens
        self._temperature = temperature

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        options: GenerationOptions | None = None,
    ) -> str:
        options = options or GenerationOptions()
        deployment = options.model or self._deployment
        completion = await self._client.chat.completions.create(
            model=deployment,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            max_tokens=options.max_tokens or self._max_tokens,
            temperature=options.temperature if options.temperature is not None else self._temperature,
        )
        content = (completion.choices[0].message.content or "").strip() if completion.choices else ""
        if not content:
            logger.warning("azure_openai_empty_response", deployment=deployment)
            raise GenerationError("No response generated from Azure OpenAI")
        return content
