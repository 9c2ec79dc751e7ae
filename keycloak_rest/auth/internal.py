"""
Service account operations.

These helpers run admin calls on behalf of the installation client itself,
authorised with a client credentials token, so applications can manage
their own users without holding an administrator's token.
"""

import logging
from typing import Optional, Dict, Any, List, Callable

from keycloak_rest.auth.admin import KeycloakAdmin, Query
from keycloak_rest.auth.keycloak_client import KeycloakClient
from keycloak_rest.exceptions import KeycloakError, UserLoginNotFound

logger = logging.getLogger(__name__)


class KeycloakInternal:
    """User management through the installation client's service account."""

    def __init__(
        self,
        client: KeycloakClient,
        client_id: Optional[str] = None,
        secret: Optional[str] = None,
    ):
        """
        Initialize service account helpers.

        Args:
            client: Keycloak client
            client_id: Service account client (defaults to the installation client)
            secret: Its secret (defaults to the installation secret)
        """
        self.client = client
        self.client_id = client_id
        self.secret = secret
        self.admin = KeycloakAdmin(client, token_provider=self.service_account_token)

    @property
    def effective_client_id(self) -> Optional[str]:
        return self.client_id or self.client.realm_config.client_id

    def service_account_token(self) -> str:
        """Obtain an access token with the client credentials grant."""
        token = self.client.get_token_by_client_credentials(self.client_id, self.secret)
        if not isinstance(token, dict) or "access_token" not in token:
            raise KeycloakError(f"Service account token request failed: {token}")
        return token["access_token"]

    def get_users(self, query: Query = None) -> Any:
        return self.admin.get_users(query)

    def get_user_info(self, user_login: str, whole_word: bool = False) -> Any:
        """
        Look up users by username, or by email when the login contains "@".

        Args:
            user_login: Username or email
            whole_word: Return only the exact match instead of every partial match

        Returns:
            The matching user when whole_word is set, otherwise the list of matches

        Raises:
            UserLoginNotFound: If nothing matches
        """
        field = "email" if "@" in user_login else "username"
        users = self.get_users({field: user_login}) or []
        if whole_word:
            login = user_login.lower()
            users = [user for user in users if (user.get(field) or "").lower() == login]
        if not users:
            raise UserLoginNotFound(user_login)
        return users[0] if whole_word else users

    def exists_name_or_email(self, value: str, user_id: Optional[str] = None) -> bool:
        """Check whether another user already uses the value as username or email."""
        value = (value or "").lower()
        users = self.get_users({"search": value}) or []
        return any(
            user.get("id") != user_id
            and value in ((user.get("username") or "").lower(), (user.get("email") or "").lower())
            for user in users
        )

    def change_password(self, user_id: str, redirect_uri: Optional[str] = None) -> Any:
        """Email the user an UPDATE_PASSWORD action link."""
        return self.admin.update_account_email(
            user_id,
            ["UPDATE_PASSWORD"],
            redirect_uri,
            self.effective_client_id if redirect_uri else None,
        )

    def forgot_password(self, user_login: str, redirect_uri: Optional[str] = None) -> Any:
        user = self.get_user_info(user_login, whole_word=True)
        logger.info(f"Sending password reset to user {user['id']}")
        return self.change_password(user["id"], redirect_uri)

    def _service_client(self) -> Dict[str, Any]:
        clients = self.admin.get_clients({"clientId": self.effective_client_id}) or []
        if not clients:
            raise KeycloakError(f"Client not found: {self.effective_client_id}")
        return clients[0]

    def get_client_roles(self) -> Any:
        return self.admin.get_all_roles_client(self._service_client()["id"])

    def get_client_user_roles(self, user_id: str) -> Any:
        return self.admin.get_client_level_role_for_user_and_app(user_id, self._service_client()["id"])

    def has_role(self, user_id: str, user_role: str) -> bool:
        roles = self.get_client_user_roles(user_id) or []
        return any(role.get("name") == user_role for role in roles)

    def create_simple_user(
        self,
        username: str,
        password: str,
        email: str,
        first_name: str = "",
        last_name: str = "",
        realm_roles_names: Optional[List[str]] = None,
        client_roles_names: Optional[List[str]] = None,
        on_created: Optional[Callable[[Dict[str, Any]], Any]] = None,
    ) -> Any:
        """
        Create an enabled user with a password and roles.

        An existing user with the same username is reused. Otherwise the user
        is created, and an email already used by another account fails with
        Keycloak's conflict response.

        Args:
            username: Username (stored lowercase)
            password: Permanent password
            email: Email address
            first_name: First name
            last_name: Last name
            realm_roles_names: Realm roles to grant
            client_roles_names: Roles of the service client to grant
            on_created: Called with the user representation once set up

        Returns:
            The callback's result when given, otherwise the user representation
        """
        username = username.lower()

        try:
            user = self.get_user_info(username, whole_word=True)
        except UserLoginNotFound:
            self.admin.create_user({
                "username": username,
                "email": email,
                "firstName": first_name,
                "lastName": last_name,
                "enabled": True,
            })
            logger.info(f"Created user {username}")
            user = self.get_user_info(username, whole_word=True)
        user_id = user["id"]

        self.admin.reset_password(user_id, {"type": "password", "temporary": False, "value": password})

        if realm_roles_names:
            roles = [self.admin.get_realm_role(name) for name in realm_roles_names if name]
            if roles:
                self.admin.add_realm_level_roles_to_user(user_id, roles)

        if client_roles_names:
            client = self._service_client()["id"]
            roles = [self.admin.get_roles_client_by_name(client, name) for name in client_roles_names if name]
            if roles:
                self.admin.add_client_level_roles_to_user(user_id, client, roles)

        if on_created is not None:
            return on_created(user)
        return user

    def create_starter_user(
        self,
        username: str,
        password: str,
        email: str,
        client_roles_names: Optional[List[str]] = None,
        on_created: Optional[Callable[[Dict[str, Any]], Any]] = None,
    ) -> Any:
        return self.create_simple_user(
            username, password, email, "", "", [], client_roles_names, on_created
        )
