"""Keycloak token, admin and service account clients."""

from keycloak_rest.auth.transport import KeycloakTransport
from keycloak_rest.auth.keycloak_client import KeycloakClient, KeycloakToken, format_scope
from keycloak_rest.auth.admin import KeycloakAdmin
from keycloak_rest.auth.internal import KeycloakInternal

__all__ = [
    # HTTP
    "KeycloakTransport",
    # OpenID Connect endpoints
    "KeycloakClient",
    "KeycloakToken",
    "format_scope",
    # Admin REST API
    "KeycloakAdmin",
    # Service account
    "KeycloakInternal",
]
