"""Abstract base class for text generators."""

from abc import ABC, abstractmethod

from relnotes.models import GenerationOptions


class GenerationError(RuntimeError):
    """The provider answered but produced no usable text."""


class GeneratorConfigError(RuntimeError):
    """The selected provider is missing credentials or configuration."""


class TextGenerator(ABC):
    name: str

    @abstractmethod
    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        options: GenerationOptions | None = None,
    ) -> str: ...
