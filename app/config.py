"""Runtime configuration."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings.

    Attributes
    ----------
    app_name : str
        Human-readable application name.
    database_url : str
        SQLAlchemy database URL.
    code_expiry_hours : int
        Default lifetime of an authorization code.
    code_length : int
        Number of characters in a generated authorization code.
    max_request_quantity : int
        Largest quantity a student may request at once.
    bootstrap_enabled : bool
        Whether one-time unauthenticated bootstrap is allowed.
    log_level : str
        Root logging level applied at startup.
    """

    model_config = SettingsConfigDict(env_prefix="LAB_INVENTORY_", extra="ignore")

    app_name: str = "Lab Inventory"
    database_url: str = "sqlite+aiosqlite:///./lab_inventory.db"
    code_expiry_hours: int = Field(default=48, ge=1, le=168)
    code_length: int = Field(default=8, ge=6, le=32)
    max_request_quantity: int = Field(default=10, ge=1)
    bootstrap_enabled: bool = True
    log_level: str = "INFO"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings.

    Returns
    -------
    Settings
        Cached settings instance.
    """
    return Settings()
