"""
MCP tools exposing Keycloak user and session administration.

Tools run through the installation client's service account and return
plain dictionaries; failures are logged and reported as
``{"success": False, "error": ...}`` instead of raising.
"""

import logging
from typing import Optional, List, Dict, Any, Callable
from functools import wraps

import httpx
from fastmcp import FastMCP

from keycloak_rest.auth.internal import KeycloakInternal
from keycloak_rest.exceptions import KeycloakError

logger = logging.getLogger(__name__)


def format_tool_error(error: Exception) -> Dict[str, Any]:
    """Format a Keycloak or HTTP error for a tool response."""
    result: Dict[str, Any] = {"success": False, "error": str(error)}
    if isinstance(error, httpx.HTTPStatusError):
        result["status_code"] = error.response.status_code
    return result


def keycloak_tool(func: Callable) -> Callable:
    """Report Keycloak and HTTP failures of a tool as an error result."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except (KeycloakError, httpx.HTTPError) as e:
            logger.error(f"Tool {func.__name__} failed: {e}")
            return format_tool_error(e)

    return wrapper


def register_admin_tools(mcp: FastMCP, internal: KeycloakInternal) -> None:
    """
    Register Keycloak administration tools.

    Args:
        mcp: FastMCP server instance
        internal: Service account helpers used by the tools
    """
    admin = internal.admin
    client = internal.client

    @mcp.tool()
    @keycloak_tool
    def list_users(search: Optional[str] = None, max_results: int = 100) -> Dict[str, Any]:
        """
        List users of the realm.

        Args:
            search: Substring matched against username, email, first and last name
            max_results: Maximum number of users returned

        Returns:
            Matching users
        """
        users = admin.get_users({"search": search, "max": max_results})
        return {"success": True, "count": len(users), "users": users}

    @mcp.tool()
    @keycloak_tool
    def get_user(user_id: str) -> Dict[str, Any]:
        """Get a user by id."""
        return {"success": True, "user": admin.get_user(user_id)}

    @mcp.tool()
    @keycloak_tool
    def delete_user(user_id: str) -> Dict[str, Any]:
        """Delete a user by id."""
        logger.info(f"Deleting user {user_id}")
        admin.delete_user(user_id)
        return {"success": True, "deleted": user_id}

    @mcp.tool()
    @keycloak_tool
    def list_offline_sessions(client_id: str) -> Dict[str, Any]:
        """
        List offline sessions of a client.

        Args:
            client_id: The clientId of the client (not its internal id)

        Returns:
            Offline sessions of the client
        """
        clients = admin.get_clients({"clientId": client_id})
        if not clients:
            return {"success": False, "error": f"Client not found: {client_id}"}
        sessions = admin.list_offline_session(clients[0]["id"])
        return {"success": True, "client_id": client_id, "sessions": sessions}

    @mcp.tool()
    @keycloak_tool
    def login_url(redirect_uri: str, scope: Optional[List[str]] = None) -> Dict[str, Any]:
        """Build the login redirect URL for the installation client."""
        return {"success": True, "url": client.url_login_redirect(redirect_uri, scope=scope)}

    @mcp.tool()
    @keycloak_tool
    def check_user_role(user_id: str, role: str) -> Dict[str, Any]:
        """Check whether a user holds a role of the installation client."""
        return {"success": True, "user_id": user_id, "role": role, "has_role": internal.has_role(user_id, role)}

    @mcp.tool()
    @keycloak_tool
    def send_password_reset(user_login: str, redirect_uri: Optional[str] = None) -> Dict[str, Any]:
        """
        Email a password reset link.

        Args:
            user_login: Username or email of the user
            redirect_uri: Where the user lands after updating the password
        """
        internal.forgot_password(user_login, redirect_uri)
        return {"success": True, "user_login": user_login}
