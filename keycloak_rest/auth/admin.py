"""
Keycloak admin REST API.

Thin mapping from method calls onto the realm's admin resources
(``/admin/realms/{realm}/...``). Every call is authorised with a bearer
token, either passed explicitly or obtained from a token provider.
"""

import logging
from typing import Optional, Dict, Any, List, Callable

from keycloak_rest.auth.keycloak_client import KeycloakClient
from keycloak_rest.exceptions import KeycloakError

logger = logging.getLogger(__name__)

Query = Optional[Dict[str, Any]]


class KeycloakAdmin:
    """Admin operations for users, groups, roles, clients and sessions."""

    def __init__(
        self,
        client: KeycloakClient,
        token_provider: Optional[Callable[[], str]] = None,
    ):
        """
        Initialize admin API.

        Args:
            client: Keycloak client whose realm and transport are used
            token_provider: Callable returning an access token when none is passed
        """
        self.client = client
        self.token_provider = token_provider

    def full_url(self, service: str) -> str:
        return self.client.realm_config.admin_url + service

    def _effective_access_token(self, access_token: Optional[str]) -> str:
        if access_token:
            return access_token
        if self.token_provider is None:
            raise KeycloakError("An access token is required for admin requests")
        return self.token_provider()

    def generic_request(
        self,
        method: str,
        service: str,
        query: Query = None,
        body: Any = None,
        access_token: Optional[str] = None,
    ) -> Any:
        """
        Call an admin resource.

        Args:
            method: HTTP method
            service: Path below the realm's admin URL (e.g. "users/{id}")
            query: Query parameters
            body: JSON body for POST, PUT and DELETE
            access_token: Bearer token (falls back to the token provider)

        Returns:
            Decoded response; True for empty bodies
        """
        headers = {"Authorization": f"Bearer {self._effective_access_token(access_token)}"}
        url = self.full_url(service)
        logger.debug(f"Admin request: {method} {url}")
        return self.client.transport.request(
            method,
            url,
            params=query,
            json=body,
            headers=headers,
        )

    def generic_get(self, service: str, query: Query = None, access_token: Optional[str] = None) -> Any:
        return self.generic_request("GET", service, query, None, access_token)

    def generic_post(
        self, service: str, query: Query = None, body: Any = None, access_token: Optional[str] = None
    ) -> Any:
        return self.generic_request("POST", service, query, body, access_token)

    def generic_put(
        self, service: str, query: Query = None, body: Any = None, access_token: Optional[str] = None
    ) -> Any:
        return self.generic_request("PUT", service, query, body, access_token)

    def generic_delete(
        self, service: str, query: Query = None, body: Any = None, access_token: Optional[str] = None
    ) -> Any:
        return self.generic_request("DELETE", service, query, body, access_token)

    # -------------------------------------------------------------------------
    # Users
    # -------------------------------------------------------------------------

    def get_users(self, query: Query = None, access_token: Optional[str] = None) -> Any:
        return self.generic_get("users/", query, access_token)

    def create_user(self, user_representation: Dict[str, Any], access_token: Optional[str] = None) -> Any:
        return self.generic_post("users/", None, user_representation, access_token)

    def count_users(self, access_token: Optional[str] = None) -> Any:
        return self.generic_get("users/count/", None, access_token)

    def get_user(self, user_id: str, access_token: Optional[str] = None) -> Any:
        return self.generic_get(f"users/{user_id}", None, access_token)

    def update_user(
        self, user_id: str, user_representation: Dict[str, Any], access_token: Optional[str] = None
    ) -> Any:
        return self.generic_put(f"users/{user_id}", None, user_representation, access_token)

    def delete_user(self, user_id: str, access_token: Optional[str] = None) -> Any:
        return self.generic_delete(f"users/{user_id}", None, None, access_token)

    def reset_password(
        self, user_id: str, credential_representation: Dict[str, Any], access_token: Optional[str] = None
    ) -> Any:
        return self.generic_put(f"users/{user_id}/reset-password", None, credential_representation, access_token)

    def update_account_email(
        self,
        user_id: str,
        actions: List[str],
        redirect_uri: Optional[str] = None,
        client_id: Optional[str] = None,
        access_token: Optional[str] = None,
    ) -> Any:
        """Send an email asking the user to perform the given required actions."""
        query = {"redirect_uri": redirect_uri or None, "client_id": client_id or None}
        return self.generic_put(f"users/{user_id}/execute-actions-email", query, actions, access_token)

    def revoke_consent_user(
        self, user_id: str, client_id: Optional[str] = None, access_token: Optional[str] = None
    ) -> Any:
        client_id = client_id or self.client.realm_config.client_id
        return self.generic_delete(f"users/{user_id}/consents/{client_id}", None, None, access_token)

    def get_user_sessions(self, user_id: str, access_token: Optional[str] = None) -> Any:
        return self.generic_get(f"users/{user_id}/sessions", None, access_token)

    def logout_user(self, user_id: str, access_token: Optional[str] = None) -> Any:
        """Remove all sessions of a user."""
        return self.generic_post(f"users/{user_id}/logout", None, None, access_token)

    def list_offline_session(self, client_id: str, access_token: Optional[str] = None) -> Any:
        """List offline sessions of a client (by internal client id)."""
        return self.generic_get(f"clients/{client_id}/offline-sessions", None, access_token)

    # -------------------------------------------------------------------------
    # Groups
    # -------------------------------------------------------------------------

    def get_groups(self, query: Query = None, access_token: Optional[str] = None) -> Any:
        return self.generic_get("groups/", query, access_token)

    def get_group(self, group_id: str, access_token: Optional[str] = None) -> Any:
        return self.generic_get(f"groups/{group_id}", None, access_token)

    # -------------------------------------------------------------------------
    # Realm roles
    # -------------------------------------------------------------------------

    def get_role_mappings(self, user_id: str, access_token: Optional[str] = None) -> Any:
        return self.generic_get(f"users/{user_id}/role-mappings", None, access_token)

    def get_users_by_role_name(self, role_name: str, access_token: Optional[str] = None) -> Any:
        return self.generic_get(f"roles/{role_name}/users", None, access_token)

    def get_realm_role(self, role_name: str, access_token: Optional[str] = None) -> Any:
        return self.generic_get(f"roles/{role_name}", None, access_token)

    def add_realm_level_roles_to_user(
        self, user_id: str, role_representation: List[Dict[str, Any]], access_token: Optional[str] = None
    ) -> Any:
        return self.generic_post(f"users/{user_id}/role-mappings/realm", None, role_representation, access_token)

    # -------------------------------------------------------------------------
    # Clients
    # -------------------------------------------------------------------------

    def get_clients(self, query: Query = None, access_token: Optional[str] = None) -> Any:
        return self.generic_get("clients/", query, access_token)

    def get_all_roles_client(self, client_id: str, access_token: Optional[str] = None) -> Any:
        return self.generic_get(f"clients/{client_id}/roles", None, access_token)

    def get_roles_client_by_name(self, client_id: str, role_name: str, access_token: Optional[str] = None) -> Any:
        return self.generic_get(f"clients/{client_id}/roles/{role_name}", None, access_token)

    def get_users_client_by_role_name(
        self, client_id: str, role_name: str, access_token: Optional[str] = None
    ) -> Any:
        return self.generic_get(f"clients/{client_id}/roles/{role_name}/users", None, access_token)

    def get_client_level_role_for_user_and_app(
        self, user_id: str, client: str, access_token: Optional[str] = None
    ) -> Any:
        return self.generic_get(f"users/{user_id}/role-mappings/clients/{client}", None, access_token)

    def add_client_level_roles_to_user(
        self,
        user_id: str,
        client: str,
        role_representation: List[Dict[str, Any]],
        access_token: Optional[str] = None,
    ) -> Any:
        return self.generic_post(
            f"users/{user_id}/role-mappings/clients/{client}", None, role_representation, access_token
        )

    def delete_client_level_roles_from_user(
        self,
        user_id: str,
        client: str,
        role_representation: List[Dict[str, Any]],
        access_token: Optional[str] = None,
    ) -> Any:
        return self.generic_delete(
            f"users/{user_id}/role-mappings/clients/{client}", None, role_representation, access_token
        )

    def get_effective_client_level_role_composite_user(
        self, user_id: str, client: str, access_token: Optional[str] = None
    ) -> Any:
        return self.generic_get(f"users/{user_id}/role-mappings/clients/{client}/composite", None, access_token)

    def update_effective_user_roles(
        self,
        user_id: str,
        client_id: str,
        role_names: List[str],
        access_token: Optional[str] = None,
    ) -> bool:
        """
        Make the user's roles on a client exactly the named roles.

        Args:
            user_id: User ID
            client_id: Client ID (clientId, not internal id)
            role_names: Role names the user should end up with

        Returns:
            True once the mappings are updated
        """
        access_token = self._effective_access_token(access_token)
        clients = self.get_clients({"clientId": client_id}, access_token)
        if not clients:
            raise KeycloakError(f"Client not found: {client_id}")
        client = clients[0]["id"]

        wanted = [name for name in role_names if name]
        current_roles = self.get_client_level_role_for_user_and_app(user_id, client, access_token) or []
        current_names = {role["name"] for role in current_roles}

        new_roles = [
            self.get_roles_client_by_name(client, name, access_token)
            for name in wanted
            if name not in current_names
        ]
        stale_roles = [
            {"name": role["name"], "id": role["id"]}
            for role in current_roles
            if role["name"] not in wanted
        ]

        if stale_roles:
            self.delete_client_level_roles_from_user(user_id, client, stale_roles, access_token)
        if new_roles:
            self.add_client_level_roles_to_user(user_id, client, new_roles, access_token)

        logger.info(
            f"Updated roles of user {user_id} on client {client_id}: "
            f"{len(new_roles)} added, {len(stale_roles)} removed"
        )
        return True
