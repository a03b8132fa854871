"""Google Gemini text generator."""

import structlog
from google import genai
from google.genai import types

from relnotes.generators.base import GenerationError, TextGenerator
from relnotes.models import GenerationOptions

DEFAULT_MODEL = "gemini-2.0-flash"

logger = structlog.get_logger(__name__)


class GeminiGenerator(TextGenerator):
    name = "gemini"

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        *,
        max_tokens: int = 2000,
        temperature: float = 0.7,
        client: genai.Client | None = None,
    ) -> None:
        self._client = client or genai.Client(api_key=api_key)
        self._model = model
        self._max_tokens = max_tokens
        self._temperature = temperature

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        options: GenerationOptions | None = None,
    ) -> str:
        options = options or GenerationOptions()
        config = types.GenerateContentConfig(
            system_instruction=system_prompt,
            max_output_tokens=options.max_tokens or self._max_tokens,
            temperature=options.temperature if options.temperature is not None else self._temperature,
        )
        response = await self._client.aio.models.generate_content(
            model=options.model or self._model,
            contents=user_prompt,
            config=config,
        )
        text = (response.text or "").strip()
        if not text:
            logger.warning("gemini_empty_response", model=options.model or self._model)
            raise GenerationError("No response generated from Gemini")
        return text
