"""Client for Keycloak's token, authorization and admin REST endpoints."""

from keycloak_rest.config import (
    KEYCLOAK_JSON_FILE,
    OLD_KEYCLOAK_JSON_FILE,
    KeycloakSettings,
    RealmConfig,
    configure,
    get_settings,
    reload_settings,
)
from keycloak_rest.exceptions import (
    KeycloakError,
    InstallationFileNotFound,
    KeycloakConfigurationError,
    UserLoginNotFound,
)
from keycloak_rest.auth import (
    KeycloakClient,
    KeycloakToken,
    KeycloakAdmin,
    KeycloakInternal,
)

__version__ = "1.0.0"

__all__ = [
    "__version__",
    "KEYCLOAK_JSON_FILE",
    "OLD_KEYCLOAK_JSON_FILE",
    "KeycloakSettings",
    "RealmConfig",
    "configure",
    "get_settings",
    "reload_settings",
    "KeycloakError",
    "InstallationFileNotFound",
    "KeycloakConfigurationError",
    "UserLoginNotFound",
    "KeycloakClient",
    "KeycloakToken",
    "KeycloakAdmin",
    "KeycloakInternal",
]
