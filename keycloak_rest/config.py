"""
Configuration management for the Keycloak client.

This module resolves how to reach a realm: either from a Keycloak
installation file (the JSON descriptor Keycloak generates for a client) or
from explicit realm/server settings loaded from environment variables.
It also holds the settings of the optional MCP server.
"""

import os
from typing import Optional, Dict, Any
from dataclasses import dataclass, field
from pathlib import Path
import json
import logging

from keycloak_rest.exceptions import InstallationFileNotFound, KeycloakConfigurationError

logger = logging.getLogger(__name__)

KEYCLOAK_JSON_FILE = "config/keycloak.json"
OLD_KEYCLOAK_JSON_FILE = "keycloak.json"

_TRUTHY = ("true", "1", "yes")


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in _TRUTHY


@dataclass
class RealmConfig:
    """Resolved connection details for a single realm."""

    realm: str
    auth_server_url: str
    client_id: Optional[str] = None
    secret: Optional[str] = None
    public_key: Optional[str] = None
    source: str = "settings"  # installation or settings

    @property
    def realm_url(self) -> str:
        return f"{self.auth_server_url}/realms/{self.realm}"

    @property
    def admin_url(self) -> str:
        return f"{self.auth_server_url}/admin/realms/{self.realm}/"

    @classmethod
    def from_installation(cls, data: Dict[str, Any]) -> "RealmConfig":
        """Build from the contents of an installation file."""
        credentials = data.get("credentials") or {}
        return cls(
            realm=data["realm"],
            auth_server_url=data["auth-server-url"].rstrip("/"),
            client_id=data.get("resource"),
            secret=credentials.get("secret"),
            public_key=data.get("realm-public-key"),
            source="installation",
        )


@dataclass
class KeycloakSettings:
    """Keycloak connection settings."""

    realm: str = ""
    auth_server_url: str = ""
    proxy: str = ""
    generate_request_exception: bool = True
    custom_host_header: Optional[str] = None
    validate_token_when_call_has_role: bool = False
    installation_file: Optional[str] = None
    verify_ssl: bool = True
    timeout: float = 30.0

    def __post_init__(self) -> None:
        if self.installation_file is not None:
            self.set_installation_file(self.installation_file)

    def set_installation_file(self, path: Optional[str]) -> None:
        """
        Declare the installation file to use.

        Raises:
            InstallationFileNotFound: If path is not a string naming an existing file
        """
        if not isinstance(path, str) or not Path(path).is_file():
            raise InstallationFileNotFound(path)
        self.installation_file = path

    def resolve_installation_file(self) -> str:
        """
        Return the installation file to read.

        The declared file wins; otherwise the current default location is
        used when present and the legacy location when it is not.
        """
        if self.installation_file:
            return self.installation_file
        if Path(KEYCLOAK_JSON_FILE).exists():
            return KEYCLOAK_JSON_FILE
        return OLD_KEYCLOAK_JSON_FILE

    def resolve_realm(self) -> RealmConfig:
        """
        Resolve the realm connection from the installation file or settings.

        Returns:
            RealmConfig for the realm

        Raises:
            KeycloakConfigurationError: If no installation file exists and
                realm or auth_server_url is blank, or if the installation
                file is not a JSON object with realm and auth-server-url
        """
        installation_file = self.resolve_installation_file()
        path = Path(installation_file)

        if path.is_file():
            invalid = f"Installation file {installation_file} is not a valid Keycloak descriptor"
            with path.open(encoding="utf-8") as fh:
                try:
                    data = json.load(fh)
                except json.JSONDecodeError as e:
                    raise KeycloakConfigurationError(invalid) from e
            if not isinstance(data, dict):
                raise KeycloakConfigurationError(invalid)
            try:
                realm_config = RealmConfig.from_installation(data)
            except KeyError as e:
                raise KeycloakConfigurationError(
                    f"Installation file {installation_file} is missing {e.args[0]!r}"
                ) from e
            logger.debug(f"Realm '{realm_config.realm}' resolved from {installation_file}")
            return realm_config

        if not self.realm or not self.auth_server_url:
            raise KeycloakConfigurationError(
                f"{installation_file} and realm settings not found. "
                "Please provide an installation file or set KEYCLOAK_REALM and KEYCLOAK_AUTH_SERVER_URL"
            )

        return RealmConfig(
            realm=self.realm,
            auth_server_url=self.auth_server_url.rstrip("/"),
        )

    @classmethod
    def from_env(cls) -> "KeycloakSettings":
        """Load Keycloak settings from environment variables."""
        return cls(
            realm=os.getenv("KEYCLOAK_REALM", ""),
            auth_server_url=os.getenv("KEYCLOAK_AUTH_SERVER_URL") or os.getenv("KEYCLOAK_SERVER_URL", ""),
            proxy=os.getenv("KEYCLOAK_PROXY", ""),
            generate_request_exception=_env_flag("KEYCLOAK_GENERATE_REQUEST_EXCEPTION", "true"),
            custom_host_header=os.getenv("KEYCLOAK_CUSTOM_HOST_HEADER") or None,
            validate_token_when_call_has_role=_env_flag("KEYCLOAK_VALIDATE_TOKEN_WHEN_CALL_HAS_ROLE", "false"),
            installation_file=os.getenv("KEYCLOAK_INSTALLATION_FILE") or None,
            verify_ssl=_env_flag("KEYCLOAK_VERIFY_SSL", "true"),
            timeout=float(os.getenv("KEYCLOAK_TIMEOUT", "30")),
        )


@dataclass
class ServerConfig:
    """Configuration of the MCP server exposing Keycloak operations."""

    name: str = "Keycloak Admin MCP Server"
    host: str = "0.0.0.0"
    port: int = 8000
    transport: str = "stdio"  # http, sse, or stdio

    environment: str = "development"
    debug: bool = False

    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None

    keycloak: KeycloakSettings = field(default_factory=KeycloakSettings)

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """Load server configuration from environment variables."""
        return cls(
            name=os.getenv("SERVER_NAME", "Keycloak Admin MCP Server"),
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "8000")),
            transport=os.getenv("TRANSPORT", "stdio"),
            environment=os.getenv("ENVIRONMENT", "development"),
            debug=_env_flag("DEBUG", "false"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
            log_file=os.getenv("LOG_FILE"),
            keycloak=KeycloakSettings.from_env(),
        )

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def validate(self) -> None:
        """Validate configuration and raise errors for invalid settings."""
        if self.port < 1 or self.port > 65535:
            raise ValueError(f"Invalid port number: {self.port}")

        if self.transport not in ("http", "sse", "stdio"):
            raise ValueError(f"Invalid transport: {self.transport}. Must be one of: http, sse, stdio")

        if self.is_production and self.keycloak.proxy and not self.keycloak.verify_ssl:
            logger.warning("SSL verification is disabled while routing Keycloak traffic through a proxy")


# Global settings instances
_settings: Optional[KeycloakSettings] = None
_config: Optional[ServerConfig] = None
_UNSET = object()


def get_settings() -> KeycloakSettings:
    """Get the process-wide Keycloak settings, loading them if necessary."""
    global _settings
    if _settings is None:
        _settings = KeycloakSettings.from_env()
    return _settings


def configure(settings: Optional[KeycloakSettings] = None, **overrides: Any) -> KeycloakSettings:
    """
    Replace the process-wide Keycloak settings.

    Args:
        settings: Settings to install; the current settings when omitted
        **overrides: Field values applied on top (installation_file must name an existing file)

    Returns:
        The installed settings
    """
    global _settings
    base = settings or get_settings()
    installation_file = overrides.pop("installation_file", _UNSET)
    for key, value in overrides.items():
        if not hasattr(base, key):
            raise ValueError(f"Unknown Keycloak setting: {key}")
        setattr(base, key, value)
    if installation_file is not _UNSET:
        base.set_installation_file(installation_file)
    _settings = base
    return _settings


def reload_settings() -> KeycloakSettings:
    """Reload Keycloak settings from environment (useful for testing)."""
    global _settings
    _settings = None
    return get_settings()


def get_config() -> ServerConfig:
    """Get the global server configuration instance, loading it if necessary."""
    global _config
    if _config is None:
        _config = ServerConfig.from_env()
        _config.validate()
    return _config


def reload_config() -> ServerConfig:
    """Reload server configuration from environment (useful for testing)."""
    global _config
    _config = None
    return get_config()
