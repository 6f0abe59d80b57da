# -*- coding: utf-8 -*-
"""Location: ./teamgate/config.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Teamgate Contributors

Teamgate Configuration.
This module defines configuration settings for the team join approval service
using Pydantic. It loads configuration from environment variables with sensible
defaults.

Environment variables:
- APP_NAME: Service name (default: "Teamgate")
- HOST: Host to bind to (default: "127.0.0.1")
- PORT: Port to listen on (default: 4455)
- DATABASE_URL: Database URL (default: "sqlite:///./teamgate.db")
- APPROVAL_PROVIDERS: Enabled approval providers, CSV or JSON list of "mail", "issue_tracker" (default: both)
- ALLOW_HTTP: Build http:// action links when served from localhost (default: False)
- LOGGING_VERSION: Version tag embedded in rendered mail (default: "dev")
- GITHUB_API_URL: GitHub REST endpoint (default: "https://api.github.com")
- GITHUB_WORKFLOW_REPOSITORY: "owner/name" of the repository receiving join issues (default: unset)
- MAIL_PROVIDER: smtp, mock or none (default: "none")
- DIRECTORY_PROVIDER: passthrough or http (default: "passthrough")
- LOG_LEVEL: Logging level (default: "INFO")

Examples:
    >>> from teamgate.config import Settings
    >>> s = Settings(approval_providers="mail")
    >>> sorted(s.approval_providers)
    ['mail']
    >>> s2 = Settings(approval_providers='["mail", "issue_tracker"]')
    >>> sorted(s2.approval_providers)
    ['issue_tracker', 'mail']
    >>> s3 = Settings(approval_providers="")
    >>> s3.approval_providers
    set()
"""

# Standard
from functools import lru_cache
from importlib.resources import files
import json
import logging
from pathlib import Path
from typing import Annotated, Any, Literal, Optional, Set

# Third-Party
from pydantic import Field, field_validator, PositiveInt, SecretStr
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

# Settings warnings can be emitted before LoggingService installs its handlers
if not logging.getLogger().handlers:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

logger = logging.getLogger(__name__)

APPROVAL_PROVIDER_KINDS = frozenset({"mail", "issue_tracker"})


class Settings(BaseSettings):
    """
    Teamgate configuration settings.

    Examples:
        >>> from teamgate.config import Settings
        >>> s = Settings()
        >>> s.app_name
        'Teamgate'
        >>> s.port
        4455
        >>> s.mail_resolution_concurrency
        5
        >>> s.mail_provider
        'none'
    """

    # Basic Settings
    app_name: str = "Teamgate"
    host: str = "127.0.0.1"
    port: PositiveInt = Field(default=4455, ge=1, le=65535)
    database_url: str = "sqlite:///./teamgate.db"
    templates_dir: Path = Field(default_factory=lambda: Path(str(files("teamgate") / "templates")))
    app_root_path: str = ""

    # Approval providers
    approval_providers: Annotated[Set[str], NoDecode] = Field(default_factory=lambda: {"mail", "issue_tracker"}, description="Enabled approval providers (CSV or JSON list)")
    allow_http: bool = Field(default=False, description="Use http:// for approval links when the display host is localhost")
    logging_version: str = Field(default="dev", description="Version tag embedded in rendered mail content")
    mail_resolution_concurrency: PositiveInt = Field(default=5, description="Maximum concurrent mail address resolutions")
    mail_service_name: str = "Teamgate"

    # GitHub (organization, teams and workflow repository)
    github_api_url: str = "https://api.github.com"
    github_site_url: str = "https://github.com"
    github_token: Optional[SecretStr] = Field(default=None, description="Token used for GitHub REST calls")
    github_workflow_repository: Optional[str] = Field(default=None, description="owner/name of the repository receiving join request issues")
    github_all_members_team: str = Field(default="everyone", description="Slug of the broad-access team that can be joined without approval")
    http_timeout: float = Field(default=30.0, description="Timeout in seconds for outbound HTTP calls")

    # Mail
    mail_provider: Literal["smtp", "mock", "none"] = "none"
    smtp_host: str = "localhost"
    smtp_port: PositiveInt = 587
    smtp_user: Optional[str] = None
    smtp_password: Optional[SecretStr] = None
    smtp_use_tls: bool = True
    smtp_from: str = "noreply@example.com"
    smtp_timeout: float = 50.0

    # Directory (UPN -> mail address)
    directory_provider: Literal["passthrough", "http"] = "passthrough"
    directory_api_url: Optional[str] = None
    directory_api_token: Optional[SecretStr] = None

    # Identity headers set by the upstream authentication proxy
    identity_header_account_id: str = "X-Teamgate-Account-Id"
    identity_header_login: str = "X-Teamgate-Login"
    identity_header_name: str = "X-Teamgate-Name"
    identity_header_upn: str = "X-Teamgate-Upn"

    # Correlation ID
    correlation_id_enabled: bool = True
    correlation_id_header: str = "X-Correlation-ID"
    correlation_id_preserve: bool = True
    correlation_id_response_header: bool = True

    # Logging
    log_level: str = "INFO"
    log_to_file: bool = False
    log_file: Optional[str] = None
    log_folder: Optional[str] = None
    log_filemode: str = "a+"
    log_rotation_enabled: bool = False
    log_max_size_mb: int = 1
    log_backup_count: int = 5

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore")

    @field_validator("approval_providers", mode="before")
    @classmethod
    def _parse_approval_providers(cls, value: Any) -> Set[str]:
        """Parse the provider list from CSV, JSON or an iterable.

        Args:
            value: Raw value from the environment or constructor

        Returns:
            Set[str]: Normalized provider kinds

        Raises:
            ValueError: If an unknown provider kind is configured
        """
        if value is None:
            return set()
        if isinstance(value, str):
            raw = value.strip()
            if raw.startswith("["):
                items = json.loads(raw)
            else:
                items = raw.split(",")
        else:
            items = list(value)
        kinds = {str(item).strip().lower() for item in items if str(item).strip()}
        unknown = kinds - APPROVAL_PROVIDER_KINDS
        if unknown:
            raise ValueError(f"Unknown approval providers: {', '.join(sorted(unknown))}")
        return kinds

    @field_validator("github_workflow_repository")
    @classmethod
    def _validate_workflow_repository(cls, value: Optional[str]) -> Optional[str]:
        """Require the owner/name form for the workflow repository.

        Args:
            value: Configured repository

        Returns:
            Optional[str]: The repository, or None when blank

        Raises:
            ValueError: If the value is not of the form owner/name
        """
        if value is None or not value.strip():
            return None
        value = value.strip()
        if value.count("/") != 1 or value.startswith("/") or value.endswith("/"):
            raise ValueError("github_workflow_repository must look like 'owner/name'")
        return value


@lru_cache()
def get_settings() -> Settings:
    """Settings read once from the environment and `.env`.

    Returns:
        Settings: The shared instance

    Examples:
        >>> settings = get_settings()
        >>> isinstance(settings, Settings)
        True
        >>> get_settings() is settings
        True
    """
    loaded = Settings()
    logger.debug(f"Approval providers configured: {sorted(loaded.approval_providers)}")
    return loaded


settings = get_settings()
