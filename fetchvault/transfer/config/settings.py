"""
Settings for the transfer service.

FETCHVAULT_* environment variables and .env are read by pydantic-settings;
an optional YAML profile per environment supplies defaults on top.
"""

import os
import re
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

ENVIRONMENTS = ("dev", "devlocal", "staging", "prod")
STORE_BACKENDS = ("dynamodb", "local")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class TransferSettings(BaseSettings):
    """Everything the API, pipeline and stores read at startup."""

    model_config = SettingsConfigDict(
        env_prefix="FETCHVAULT_", env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    # Environment
    environment: str = Field("dev", description="Environment name (dev/devlocal/staging/prod)")

    # Job record store
    store_backend: str = Field("local", description="Record store backend (dynamodb/local)")
    local_state_file: Optional[Path] = Field(None, description="JSON file mirroring the local record store")
    aws_region: str = Field("us-east-1")
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None
    dynamodb_table: str = Field("fetchvault-downloads", description="DynamoDB table name for download jobs")
    localstack_endpoint: Optional[str] = Field(None, description="LocalStack endpoint for local development")

    # Object store (any S3-compatible service)
    s3_endpoint_url: Optional[str] = Field(None, description="Explicit S3-compatible endpoint")
    r2_account_id: Optional[str] = Field(None, description="Cloudflare account id, derives the R2 endpoint")
    s3_region: Optional[str] = Field(None, description="Signing region, defaults to auto for custom endpoints")
    s3_access_key_id: Optional[str] = None
    s3_secret_access_key: Optional[str] = None
    s3_bucket: str = Field("r2c")
    s3_force_path_style: bool = Field(True)
    public_base_url: Optional[str] = Field(None, description="Public base URL used to build storage locators")
    signed_url_ttl_seconds: int = Field(3600, ge=1, le=604800)
    multipart_chunk_size: int = Field(10 * 1024 * 1024, ge=5 * 1024 * 1024)
    multipart_concurrency: int = Field(4, ge=1, le=32)

    # Source fetch
    user_agent: str = Field(BROWSER_USER_AGENT)
    request_timeout: Optional[int] = Field(None, ge=1, description="Total fetch timeout in seconds (None waits forever)")
    max_content_length: Optional[int] = Field(None, ge=1, description="Reject sources larger than this many bytes")

    # API
    list_limit: int = Field(50, ge=1, le=1000)
    shutdown_grace_seconds: float = Field(5.0, ge=0)

    # Logging
    log_level: str = Field("INFO", description="DEBUG/INFO/WARNING/ERROR/CRITICAL")
    json_logs: bool = Field(True, description="JSON lines instead of console rendering")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        return _one_of("log level", v.upper(), LOG_LEVELS)

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        return _one_of("environment", v, ENVIRONMENTS)

    @field_validator("store_backend")
    @classmethod
    def validate_store_backend(cls, v: str) -> str:
        return _one_of("store backend", v.lower(), STORE_BACKENDS)

    @model_validator(mode="after")
    def validate_localstack(self) -> "TransferSettings":
        if self.environment == "devlocal" and not self.localstack_endpoint:
            raise ValueError("localstack_endpoint is required for devlocal environment")
        return self

    @model_validator(mode="after")
    def resolve_s3_region(self) -> "TransferSettings":
        if self.s3_region is None:
            self.s3_region = "auto" if self.s3_endpoint_url or self.r2_account_id else self.aws_region
        return self

    @property
    def s3_endpoint(self) -> Optional[str]:
        """Endpoint for the object store, resolved from explicit, R2 or LocalStack settings"""
        if self.s3_endpoint_url:
            return self.s3_endpoint_url.rstrip("/")
        if self.r2_account_id:
            return f"https://{self.r2_account_id}.r2.cloudflarestorage.com"
        if self.localstack_endpoint:
            return self.localstack_endpoint.rstrip("/")
        return None

    @property
    def has_storage_credentials(self) -> bool:
        return bool(self.s3_access_key_id and self.s3_secret_access_key)


def _one_of(label: str, value: str, allowed: Tuple[str, ...]) -> str:
    if value not in allowed:
        raise ValueError(f"Invalid {label}: {value}. Must be one of {list(allowed)}")
    return value


# ${NAME} or ${NAME:default}
_ENV_REFERENCE = re.compile(r"\$\{(?P<name>[^}:]+)(?::(?P<default>[^}]*))?\}")


def expand_env_references(value: Any) -> Any:
    """Substitute ${NAME:default} references in every string of a loaded YAML tree."""
    if isinstance(value, dict):
        return {key: expand_env_references(item) for key, item in value.items()}
    if isinstance(value, list):
        return [expand_env_references(item) for item in value]
    if not isinstance(value, str):
        return value

    def _substitute(match: "re.Match[str]") -> str:
        default = match.group("default")
        # Unset without a default stays literal so the validator reports it
        return os.environ.get(match.group("name"), default if default is not None else match.group(0))

    return _ENV_REFERENCE.sub(_substitute, value)


def load_config_from_yaml(file_path: Path) -> Dict[str, Any]:
    """
    Read a YAML profile and expand environment references in it.

    Raises:
        FileNotFoundError: If file_path does not exist
        yaml.YAMLError: If the file is not valid YAML
    """
    if not file_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {file_path}")

    with open(file_path, "r", encoding="utf-8") as f:
        return expand_env_references(yaml.safe_load(f) or {})


def get_config_file_path(environment: str) -> Path:
    """Bundled profile for an environment (dev.yaml, prod.yaml, ...)."""
    return Path(__file__).parent / f"{environment}.yaml"


def load_settings(
    environment: Optional[str] = None, config_file: Optional[Path] = None, **overrides: Any
) -> TransferSettings:
    """
    Build settings from a YAML profile, the environment and explicit overrides.

    Profile values and overrides are passed as init arguments, so they take
    precedence over FETCHVAULT_* variables; profiles reference those variables
    with ${...} where the environment should win.

    Args:
        environment: Profile name; FETCHVAULT_ENVIRONMENT or "dev" when omitted
        config_file: Explicit profile path instead of the bundled one
        **overrides: Field values applied last
    """
    environment = environment or os.getenv("FETCHVAULT_ENVIRONMENT", "dev")

    profile_path = config_file or get_config_file_path(environment)
    profile: Dict[str, Any] = {}
    if config_file is not None or profile_path.exists():
        profile = load_config_from_yaml(profile_path)

    return TransferSettings(**{**profile, "environment": environment, **overrides})


_settings: Optional[TransferSettings] = None


def get_cached_settings() -> TransferSettings:
    """Process-wide settings, loaded on first use."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings_cache() -> None:
    global _settings
    _settings = None
