"""
Keycloak client for token acquisition and login redirects.

This module maps OAuth2 grants onto the realm's token endpoint, builds
login-redirect URLs for the authorization endpoint, and offers helpers to
inspect the resulting tokens (roles, attributes, introspection).
"""

import logging
import textwrap
from typing import Optional, Dict, Any, List, Union
from datetime import datetime, timedelta, timezone
from dataclasses import dataclass
from urllib.parse import urlencode

import httpx
import jwt

from keycloak_rest.config import KeycloakSettings, RealmConfig, get_settings
from keycloak_rest.auth.transport import KeycloakTransport
from keycloak_rest.exceptions import KeycloakError

logger = logging.getLogger(__name__)

TOKEN_EXCHANGE_GRANT = "urn:ietf:params:oauth:grant-type:token-exchange"
ACCESS_TOKEN_TYPE = "urn:ietf:params:oauth:token-type:access_token"

Scope = Union[str, List[str], None]


@dataclass
class KeycloakToken:
    """Keycloak access token with parsed claims."""

    access_token: str
    refresh_token: Optional[str]
    expires_in: int
    token_type: str
    scope: Optional[str]

    # Parsed claims
    sub: str
    preferred_username: str
    email: Optional[str]
    roles: List[str]
    resource_access: Dict[str, Any]

    issued_at: datetime
    expires_at: datetime

    @property
    def is_expired(self) -> bool:
        """Check if token is expired."""
        return datetime.now(timezone.utc) >= self.expires_at

    @property
    def needs_refresh(self) -> bool:
        """Check if token should be refreshed (within 5 minutes of expiry)."""
        return datetime.now(timezone.utc) >= (self.expires_at - timedelta(minutes=5))

    def client_roles(self, client_id: str) -> List[str]:
        return list(self.resource_access.get(client_id, {}).get("roles", []))

    @classmethod
    def from_response(cls, token_data: Dict[str, Any]) -> "KeycloakToken":
        """Parse a token endpoint response."""
        access_token = token_data["access_token"]
        claims = jwt.decode(access_token, options={"verify_signature": False})

        issued_at = datetime.now(timezone.utc)
        expires_in = token_data.get("expires_in", 300)

        return cls(
            access_token=access_token,
            refresh_token=token_data.get("refresh_token"),
            expires_in=expires_in,
            token_type=token_data.get("token_type", "Bearer"),
            scope=token_data.get("scope"),
            sub=claims.get("sub", ""),
            preferred_username=claims.get("preferred_username", ""),
            email=claims.get("email"),
            roles=list(claims.get("realm_access", {}).get("roles", [])),
            resource_access=claims.get("resource_access", {}),
            issued_at=issued_at,
            expires_at=issued_at + timedelta(seconds=expires_in),
        )


def format_scope(scope: Scope) -> Optional[str]:
    """Join scope names with a single space; blank scopes yield None."""
    if not scope:
        return None
    if isinstance(scope, str):
        return scope
    return " ".join(scope)


class KeycloakClient:
    """
    Client for a realm's OpenID Connect endpoints.

    This client handles:
    - Token requests for the password, authorization code, refresh token,
      client credentials and token exchange grants
    - Login redirect and account URLs
    - Introspection, userinfo and logout
    - Role and attribute checks on access tokens

    Client id and secret default to the installation file's client.
    """

    def __init__(
        self,
        settings: Optional[KeycloakSettings] = None,
        http_client: Optional[httpx.Client] = None,
    ):
        """
        Initialize Keycloak client.

        Args:
            settings: Keycloak settings; the process-wide settings when omitted
            http_client: Optional preconfigured httpx client
        """
        self.settings = settings or get_settings()
        self.transport = KeycloakTransport(self.settings, http_client)
        self._realm_config: Optional[RealmConfig] = None
        self._openid_configuration: Optional[Dict[str, Any]] = None

    def __enter__(self) -> "KeycloakClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self.transport.close()

    @property
    def realm_config(self) -> RealmConfig:
        if self._realm_config is None:
            self._realm_config = self.settings.resolve_realm()
            logger.info(
                f"Keycloak client initialized for realm '{self._realm_config.realm}' "
                f"at {self._realm_config.auth_server_url}"
            )
        return self._realm_config

    @property
    def realm(self) -> str:
        return self.realm_config.realm

    @property
    def auth_server_url(self) -> str:
        return self.realm_config.auth_server_url

    @property
    def openid_configuration(self) -> Dict[str, Any]:
        """The realm's discovery document, fetched on first use."""
        if self._openid_configuration is None:
            config_url = f"{self.realm_config.realm_url}/.well-known/openid-configuration"
            logger.debug(f"Fetching OpenID configuration from {config_url}")
            configuration = self.transport.request("GET", config_url)
            if not isinstance(configuration, dict) or "token_endpoint" not in configuration:
                raise KeycloakError(f"Invalid OpenID configuration returned by {config_url}")
            self._openid_configuration = configuration
        return self._openid_configuration

    def refresh_openid_configuration(self) -> Dict[str, Any]:
        self._openid_configuration = None
        return self.openid_configuration

    def _endpoint(self, name: str, override: Optional[str] = None) -> str:
        if override:
            return override
        endpoint = self.openid_configuration.get(name)
        if not endpoint:
            raise KeycloakError(f"Realm '{self.realm}' does not advertise {name}")
        return endpoint

    def _credentials(self, client_id: Optional[str], secret: Optional[str]) -> Dict[str, str]:
        data = {"client_id": client_id or self.realm_config.client_id or ""}
        secret = secret or self.realm_config.secret
        if secret:
            data["client_secret"] = secret
        return data

    def _request_token(
        self,
        payload: Dict[str, Any],
        scope: Scope = None,
        token_endpoint: Optional[str] = None,
    ) -> Any:
        scope_value = format_scope(scope)
        if scope_value:
            payload["scope"] = scope_value

        logger.info(f"Requesting token with grant '{payload['grant_type']}'")
        return self.transport.post_form(self._endpoint("token_endpoint", token_endpoint), payload)

    # -------------------------------------------------------------------------
    # Token grants
    # -------------------------------------------------------------------------

    def get_token(
        self,
        user: str,
        password: str,
        client_id: Optional[str] = None,
        secret: Optional[str] = None,
        scope: Scope = None,
    ) -> Any:
        """
        Request a token with the resource owner password grant.

        Args:
            user: Username
            password: User password
            client_id: Client ID (defaults to the installation client)
            secret: Client secret (defaults to the installation secret)
            scope: Scope names to request

        Returns:
            Token endpoint response (access_token, refresh_token, ...)
        """
        payload = self._credentials(client_id, secret)
        payload.update({
            "username": user,
            "password": password,
            "grant_type": "password",
        })
        return self._request_token(payload, scope)

    def get_token_by_code(
        self,
        code: str,
        redirect_uri: str,
        client_id: Optional[str] = None,
        secret: Optional[str] = None,
        scope: Scope = None,
    ) -> Any:
        """
        Exchange an authorization code for a token.

        Args:
            code: Authorization code received on the redirect URI
            redirect_uri: Redirect URI used for the login redirect
            client_id: Client ID
            secret: Client secret
            scope: Scope names to request

        Returns:
            Token endpoint response
        """
        payload = self._credentials(client_id, secret)
        payload.update({
            "code": code,
            "redirect_uri": redirect_uri,
            "grant_type": "authorization_code",
        })
        return self._request_token(payload, scope)

    def get_token_by_refresh_token(
        self,
        refresh_token: str,
        client_id: Optional[str] = None,
        secret: Optional[str] = None,
        token_endpoint: Optional[str] = None,
    ) -> Any:
        """Refresh a token using a refresh token."""
        payload = self._credentials(client_id, secret)
        payload.update({
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        })
        return self._request_token(payload, token_endpoint=token_endpoint)

    def get_token_by_client_credentials(
        self,
        client_id: Optional[str] = None,
        secret: Optional[str] = None,
        token_endpoint: Optional[str] = None,
    ) -> Any:
        """Request a service account token with the client credentials grant."""
        payload = self._credentials(client_id, secret)
        payload["grant_type"] = "client_credentials"
        return self._request_token(payload, token_endpoint=token_endpoint)

    def get_token_by_exchange(
        self,
        issuer: str,
        issuer_token: str,
        client_id: Optional[str] = None,
        secret: Optional[str] = None,
        token_endpoint: Optional[str] = None,
    ) -> Any:
        """
        Exchange a token issued by an external identity provider.

        Args:
            issuer: Alias of the identity provider that issued the token
            issuer_token: The external access token
            client_id: Client ID (also used as audience)
            secret: Client secret
            token_endpoint: Override of the discovered token endpoint

        Returns:
            Token endpoint response
        """
        payload = self._credentials(client_id, secret)
        payload.update({
            "audience": payload["client_id"],
            "grant_type": TOKEN_EXCHANGE_GRANT,
            "subject_token_type": ACCESS_TOKEN_TYPE,
            "subject_issuer": issuer,
            "subject_token": issuer_token,
        })
        return self._request_token(payload, token_endpoint=token_endpoint)

    def get_token_introspection(
        self,
        token: str,
        client_id: Optional[str] = None,
        secret: Optional[str] = None,
        introspection_endpoint: Optional[str] = None,
    ) -> Any:
        """Introspect a token, authenticating the client with HTTP Basic."""
        credentials = self._credentials(client_id, secret)
        auth = httpx.BasicAuth(credentials["client_id"], credentials.get("client_secret", ""))
        endpoint = self._endpoint("introspection_endpoint", introspection_endpoint)
        return self.transport.post_form(endpoint, {"token": token}, auth=auth)

    # -------------------------------------------------------------------------
    # URLs
    # -------------------------------------------------------------------------

    def url_login_redirect(
        self,
        redirect_uri: str,
        response_type: str = "code",
        client_id: Optional[str] = None,
        authorization_endpoint: Optional[str] = None,
        scope: Scope = None,
    ) -> str:
        """
        Build the URL that sends a user to the realm's login page.

        Args:
            redirect_uri: Where Keycloak redirects after login
            response_type: OAuth2 response type
            client_id: Client ID
            authorization_endpoint: Override of the discovered endpoint
            scope: Scope names to request

        Returns:
            Authorization endpoint URL with form-encoded query
        """
        params = {
            "response_type": response_type,
            "client_id": client_id or self.realm_config.client_id or "",
            "redirect_uri": redirect_uri,
        }
        scope_value = format_scope(scope)
        if scope_value:
            params["scope"] = scope_value

        endpoint = self._endpoint("authorization_endpoint", authorization_endpoint)
        return f"{endpoint}?{urlencode(params)}"

    def url_user_account(self) -> str:
        """URL of the realm's account console."""
        return f"{self.realm_config.realm_url}/account"

    # -------------------------------------------------------------------------
    # Session
    # -------------------------------------------------------------------------

    def get_userinfo(self, access_token: str, userinfo_endpoint: Optional[str] = None) -> Any:
        """
        Fetch user info for an access token.

        Args:
            access_token: The access token

        Returns:
            User info from Keycloak
        """
        return self.transport.request(
            "GET",
            self._endpoint("userinfo_endpoint", userinfo_endpoint),
            headers={"Authorization": f"Bearer {access_token}"},
        )

    def logout(
        self,
        refresh_token: str,
        redirect_uri: Optional[str] = None,
        client_id: Optional[str] = None,
        secret: Optional[str] = None,
        end_session_endpoint: Optional[str] = None,
    ) -> Any:
        """
        End the session bound to a refresh token.

        Returns:
            True on success, or the error body when request exceptions are disabled
        """
        logger.info("Logging out from Keycloak")

        endpoint = self._endpoint("end_session_endpoint", end_session_endpoint)
        if redirect_uri:
            endpoint = f"{endpoint}?{urlencode({'redirect_uri': redirect_uri})}"

        payload = self._credentials(client_id, secret)
        payload["refresh_token"] = refresh_token

        result = self.transport.post_form(endpoint, payload)
        if result is True:
            logger.info("Logout successful")
        return result

    def user_signed_in(
        self,
        access_token: str,
        client_id: Optional[str] = None,
        secret: Optional[str] = None,
        introspection_endpoint: Optional[str] = None,
    ) -> bool:
        """Check whether introspection reports the token as active."""
        try:
            result = self.get_token_introspection(access_token, client_id, secret, introspection_endpoint)
        except (httpx.HTTPError, KeycloakError) as e:
            logger.warning(f"Token introspection failed: {e}")
            return False
        return isinstance(result, dict) and result.get("active") is True

    # -------------------------------------------------------------------------
    # Token inspection
    # -------------------------------------------------------------------------

    def decode_access_token(self, access_token: str) -> Dict[str, Any]:
        """Decode access token claims without verifying the signature."""
        return jwt.decode(access_token, options={"verify_signature": False})

    def decode_id_token(self, id_token: str, audience: Optional[str] = None) -> Dict[str, Any]:
        """
        Decode and verify an RS256 ID token.

        The installation file's realm public key is used when present;
        otherwise the signing key is looked up in the realm's JWKS.

        Raises:
            jwt.PyJWTError: If verification fails
        """
        public_key = self.realm_config.public_key
        if public_key:
            body = "\n".join(textwrap.wrap(public_key, 64))
            key: Any = f"-----BEGIN PUBLIC KEY-----\n{body}\n-----END PUBLIC KEY-----"
        else:
            key = self._signing_key(id_token)

        return jwt.decode(
            id_token,
            key,
            algorithms=["RS256"],
            audience=audience,
            options={"verify_aud": audience is not None},
        )

    def _signing_key(self, token: str) -> Any:
        kid = jwt.get_unverified_header(token).get("kid")
        jwks = self.transport.request("GET", self._endpoint("jwks_uri"))
        jwk_set = jwt.PyJWKSet.from_dict(jwks)
        for jwk in jwk_set.keys:
            if jwk.key_id == kid:
                return jwk.key
        raise KeycloakError(f"No signing key found in realm JWKS for kid {kid!r}")

    def get_attribute(self, attribute_name: str, access_token: str) -> Any:
        """Return a claim of the access token."""
        return self.decode_access_token(access_token).get(attribute_name)

    def has_role(
        self,
        role: str,
        access_token: str,
        client_id: Optional[str] = None,
        secret: Optional[str] = None,
        introspection_endpoint: Optional[str] = None,
    ) -> bool:
        """
        Check if the token carries a client role.

        When validate_token_when_call_has_role is enabled the token is
        introspected first and inactive tokens never have roles.

        Args:
            role: Role name to check for
            access_token: The access token
            client_id: Client whose roles are checked (defaults to the installation client)

        Returns:
            True if the token has the client role
        """
        if self.settings.validate_token_when_call_has_role and not self.user_signed_in(
            access_token, client_id, secret, introspection_endpoint
        ):
            return False

        client_id = client_id or self.realm_config.client_id
        claims = self.decode_access_token(access_token)
        resource = claims.get("resource_access", {}).get(client_id) or {}
        return role in resource.get("roles", [])

    def has_realm_role(self, role: str, access_token: str) -> bool:
        """Check if the token carries a realm role."""
        claims = self.decode_access_token(access_token)
        return role in claims.get("realm_access", {}).get("roles", [])
