"""Exceptions raised by the Keycloak client."""

from typing import Optional


class KeycloakError(Exception):
    """Base class for errors raised by this package."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class InstallationFileNotFound(KeycloakError):
    """Raised when a declared installation file does not exist."""

    def __init__(self, path: Optional[str] = None):
        self.path = path
        super().__init__(f"Keycloak installation file not found: {path!r}")


class KeycloakConfigurationError(KeycloakError):
    """Raised when neither an installation file nor realm settings are usable."""


class UserLoginNotFound(KeycloakError):
    """Raised when no user matches a username or email lookup."""

    def __init__(self, login: str):
        self.login = login
        super().__init__(f"User not found: {login}")
