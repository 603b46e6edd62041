from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # ── Admission policy ──────────────────────────────────────
    max_players: int = 10
    # Only this display name may take the host seat. Empty disables the rule.
    reserved_host_name: str = "Samuel"
    host_required_first: bool = True
    creator_satisfies_host_requirement: bool = True
    reconnect_replaces_host: bool = True

    # ── Seats ─────────────────────────────────────────────────
    # A joining creator also occupies the host seat.
    creator_is_host: bool = False
    creator_removal_cascades_host: bool = False
    privileged_may_enter_battlefield: bool = False

    # ── Battlefield grid ──────────────────────────────────────
    grid_columns: int = 40
    grid_rows: int = 25

    # ── Login table (hardcoded, not a security boundary) ──────
    host_password: str = "dragon"
    creator_password: str = "forge"

    # ── App ───────────────────────────────────────────────────
    cors_origins: str = "*"
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="TABLETOP_",
        env_file=".env",
        case_sensitive=False,
    )

    @property
    def cors_origins_list(self) -> list[str]:
        """Split comma-separated origins into a list, stripping whitespace."""
        return [origin.strip() for origin in self.cors_origins.split(",")]


@lru_cache()
def get_settings() -> Settings:
    """Cached settings loader; reads the environment and ``.env`` once."""
    return Settings()
