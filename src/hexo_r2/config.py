"""Application configuration using Pydantic Settings."""

from functools import lru_cache
from pathlib import Path

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Settings without which no upload can happen, mapped to their env var names
REQUIRED_SETTINGS: dict[str, str] = {
    "r2_access_key_id": "R2_ACCESS_KEY_ID",
    "r2_secret_access_key": "R2_SECRET_ACCESS_KEY",
    "r2_account_id": "R2_ACCOUNT_ID",
    "r2_bucket": "R2_BUCKET",
    "r2_public_base_url": "R2_PUBLIC_BASE_URL",
}


class ConfigMissingError(Exception):
    """Raised when required settings are absent."""

    def __init__(self, missing: list[str]) -> None:
        self.missing = missing
        super().__init__(f"Missing required settings: {', '.join(missing)}")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Cloudflare R2 credentials and bucket
    r2_access_key_id: str = ""
    r2_secret_access_key: str = ""
    r2_account_id: str = ""
    r2_bucket: str = ""

    # Public URL prefix the bucket is served under, e.g. https://images.example.com
    r2_public_base_url: str = ""

    # Prepended to every object key
    r2_key_prefix: str = "blog/"

    # Posts path - defaults to source/_posts under the working directory
    posts_dir: str = ""

    # Forward proxy for image downloads
    proxy: str = Field(
        default="",
        validation_alias=AliasChoices("https_proxy", "http_proxy", "all_proxy", "proxy"),
    )

    # Image URL signing (rendered HTML only)
    image_sign_secret: str | None = None
    image_sign_domain: str = ""

    # CDN image transformation (rendered HTML only)
    cdn_transform_enabled: bool = True
    cdn_transform_in_dev: bool = False
    cdn_transform_options: str = "format=auto,quality=85,metadata=none"

    # Debug logging
    debug: bool = False

    @field_validator("r2_public_base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @property
    def resolved_posts_dir(self) -> Path:
        """Return the posts directory, using source/_posts if not set."""
        if self.posts_dir:
            return Path(self.posts_dir).resolve()
        return Path.cwd() / "source" / "_posts"

    @property
    def r2_endpoint_url(self) -> str:
        """S3-compatible endpoint for the configured account."""
        return f"https://{self.r2_account_id}.r2.cloudflarestorage.com"

    @property
    def signing_enabled(self) -> bool:
        """Check if image URL signing has everything it needs."""
        return bool(self.image_sign_secret and self.image_sign_domain)

    def missing_settings(self) -> list[str]:
        """Return env var names of required settings that are empty."""
        return [env for name, env in REQUIRED_SETTINGS.items() if not getattr(self, name)]

    def require_migration_settings(self) -> None:
        """Raise ConfigMissingError unless every required setting is present."""
        missing = self.missing_settings()
        if missing:
            raise ConfigMissingError(missing)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
