"""Settings resolution with profile precedence chain and named profile support."""

import os
from collections.abc import Mapping
from functools import lru_cache
from pathlib import Path

import tomlkit
import typer
from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

CONFIG_PATH = Path.home() / ".config" / "relnotes" / "config.toml"


class RelnotesSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="RELNOTES_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    default_profile: str | None = None

    # Linear
    linear_api_key: SecretStr | None = None
    linear_team_ids: list[str] = []
    linear_page_size: int = 100

    # Text generation
    ai_provider: str | None = None  # "gemini" | "azure-openai", auto-selected when unset
    gemini_api_key: SecretStr | None = None
    gemini_model: str = "gemini-2.0-flash"
    azure_openai_api_key: SecretStr | None = None
    azure_openai_endpoint: str | None = None
    azure_openai_deployment: str = "gpt-4o-mini"
    azure_openai_api_version: str = "2024-10-21"
    generation_max_tokens: int = 2000
    generation_temperature: float = 0.7
    generation_timeout: float | None = None  # seconds

    # Organization and AI-context records, usually [<profile>.organization] / [<profile>.ai_context]
    organization: dict = {}
    ai_context: dict = {}

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # "json" | "console"


@lru_cache(maxsize=1)
def _load_toml() -> tomlkit.TOMLDocument:
    """Load ~/.config/relnotes/config.toml, returning empty document if missing."""
    if not CONFIG_PATH.exists():
        return tomlkit.document()
    return tomlkit.load(CONFIG_PATH.open())


def _list_profiles(config: Mapping) -> list[str]:
    # tomlkit Table implements MutableMapping but not dict, so check Mapping
    return [k for k, v in config.items() if isinstance(v, Mapping)]


def get_settings(profile: str | None = None, require_linear: bool = True) -> RelnotesSettings:
    """Resolve the active profile and return a fully populated RelnotesSettings.

    Precedence (highest to lowest):
    1. profile argument (--profile CLI flag)
    2. RELNOTES_DEFAULT_PROFILE env var
    3. default_profile key in ~/.config/relnotes/config.toml
    4. First profile defined in ~/.config/relnotes/config.toml
    """
    toml_config = _load_toml()

    active = (
        profile
        or os.environ.get("RELNOTES_DEFAULT_PROFILE")
        or toml_config.get("default_profile")
        or ((_profiles := _list_profiles(toml_config)) and _profiles[0] or None)
    )

    profile_defaults: dict = {}
    if active:
        if active in toml_config and isinstance(toml_config[active], Mapping):
            profile_defaults = toml_config[active].unwrap()
        else:
            profiles = _list_profiles(toml_config)
            typer.echo(f"Profile '{active}' not found in {CONFIG_PATH}. Available: {profiles or '(none)'}")
            raise typer.Exit(1)

    # env vars + .env always override profile defaults
    settings = RelnotesSettings(**profile_defaults)

    if require_linear and not settings.linear_api_key:
        typer.echo(
            "Missing Linear credentials. Set RELNOTES_LINEAR_API_KEY or "
            f"linear_api_key in the [{active or 'profile'}] section of {CONFIG_PATH}"
        )
        raise typer.Exit(1)

    return settings
