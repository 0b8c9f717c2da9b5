"""Settings resolution: environment and .env over ~/.config/tabletbot/config.toml defaults."""

from functools import lru_cache
from pathlib import Path

import tomlkit
import typer
from pydantic import SecretStr
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from tabletbot.models import RepositoryDetails

CONFIG_PATH = Path.home() / ".config" / "tabletbot" / "config.toml"


class BotSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="TABLETBOT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Discord
    discord_token: SecretStr | None = None

    # GitHub
    github_token: SecretStr | None = None
    github_auth: str = "token"  # "token" | "gh-cli"
    default_repo_owner: str = "OpenTabletDriver"
    default_repo_name: str = "OpenTabletDriver"
    rate_limit_reserve: int = 2  # skip lookups once remaining quota is at or below this

    # Support forum whose new threads get a diagnostics prompt; unset disables it
    diagnostics_forum_id: int | None = None

    # State
    data_dir: Path | None = None
    state_path: Path | None = None  # defaults to <data_dir or cwd>/state.json

    log_level: str = "INFO"

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # init kwargs carry config.toml defaults, so the environment must outrank them
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    @property
    def default_repository(self) -> RepositoryDetails:
        return RepositoryDetails(owner=self.default_repo_owner, name=self.default_repo_name)

    def resolved_state_path(self) -> Path:
        if self.state_path:
            return self.state_path
        return (self.data_dir or Path.cwd()) / "state.json"


@lru_cache(maxsize=1)
def _load_toml() -> tomlkit.TOMLDocument:
    """Load ~/.config/tabletbot/config.toml, returning empty document if missing."""
    if not CONFIG_PATH.exists():
        return tomlkit.document()
    return tomlkit.load(CONFIG_PATH.open())


def get_settings(require_discord: bool = True) -> BotSettings:
    """Return fully populated BotSettings.

    Precedence (highest to lowest):
    1. TABLETBOT_* environment variables
    2. .env in cwd
    3. top-level keys in ~/.config/tabletbot/config.toml
    """
    # tomlkit items unwrap to plain python values
    defaults = {key: value for key, value in _load_toml().unwrap().items() if not isinstance(value, dict)}
    settings = BotSettings(**defaults)

    if require_discord and not settings.discord_token:
        typer.echo(f"Missing Discord credentials. Set TABLETBOT_DISCORD_TOKEN or discord_token in {CONFIG_PATH}")
        raise typer.Exit(1)
    if settings.github_auth == "token" and not settings.github_token:
        typer.echo(
            "Missing GitHub credentials. Set TABLETBOT_GITHUB_TOKEN or "
            f"github_token in {CONFIG_PATH}, "
            'or set github_auth = "gh-cli" to use the gh CLI.'
        )
        raise typer.Exit(1)

    return settings
