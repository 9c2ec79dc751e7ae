"""
Tests for the MCP tools and resources.

Tools are registered on a recording stand-in for FastMCP so they can be
called as plain functions.
"""

from typing import Any, Callable, Dict

import pytest

from keycloak_rest.auth.internal import KeycloakInternal
from keycloak_rest.resources.keycloak_resources import describe_connection, register_keycloak_resources
from keycloak_rest.tools.admin_tools import register_admin_tools

from conftest import ADMIN_URL, AUTHORIZATION_ENDPOINT, TOKEN_ENDPOINT


class RecordingMCP:
    """Collects decorated tools and resources by name."""

    def __init__(self):
        self.tools: Dict[str, Callable] = {}
        self.resources: Dict[str, Callable] = {}

    def tool(self, *args: Any, **kwargs: Any) -> Callable:
        def decorator(func: Callable) -> Callable:
            self.tools[func.__name__] = func
            return func
        return decorator

    def resource(self, uri: str, *args: Any, **kwargs: Any) -> Callable:
        def decorator(func: Callable) -> Callable:
            self.resources[uri] = func
            return func
        return decorator


@pytest.fixture
def tools(installed_client, fake):
    fake.add("POST", TOKEN_ENDPOINT, json={"access_token": "service-token"})
    mcp = RecordingMCP()
    register_admin_tools(mcp, KeycloakInternal(installed_client))
    return mcp.tools


class TestAdminTools:
    """Test tool results."""

    def test_registered_tools(self, tools):
        assert set(tools) == {
            "list_users",
            "get_user",
            "delete_user",
            "list_offline_sessions",
            "login_url",
            "check_user_role",
            "send_password_reset",
        }

    def test_list_users(self, tools, fake):
        fake.add("GET", ADMIN_URL + "users/", json=[{"id": "u-1"}])

        result = tools["list_users"](search="tes")

        assert result == {"success": True, "count": 1, "users": [{"id": "u-1"}]}
        params = fake.last("GET", ADMIN_URL + "users/").url.params
        assert params["search"] == "tes"
        assert params["max"] == "100"

    def test_delete_user(self, tools, fake):
        fake.add("DELETE", ADMIN_URL + "users/u-1", status_code=204)

        assert tools["delete_user"]("u-1") == {"success": True, "deleted": "u-1"}

    def test_http_error_is_reported(self, tools, fake):
        fake.add("GET", ADMIN_URL + "users/u-9", json={"error": "User not found"}, status_code=404)

        result = tools["get_user"]("u-9")

        assert result["success"] is False
        assert result["status_code"] == 404

    def test_list_offline_sessions(self, tools, fake):
        fake.add("GET", ADMIN_URL + "clients/", json=[{"id": "client-uuid", "clientId": "web"}])
        fake.add("GET", ADMIN_URL + "clients/client-uuid/offline-sessions", json=[{"id": "s-1"}])

        result = tools["list_offline_sessions"]("web")

        assert result == {"success": True, "client_id": "web", "sessions": [{"id": "s-1"}]}

    def test_list_offline_sessions_unknown_client(self, tools, fake):
        fake.add("GET", ADMIN_URL + "clients/", json=[])

        assert tools["list_offline_sessions"]("web")["success"] is False

    def test_login_url(self, tools):
        result = tools["login_url"]("https://app/cb", ["openid"])

        assert result["success"] is True
        assert result["url"].startswith(AUTHORIZATION_ENDPOINT + "?response_type=code&client_id=installed-client")
        assert result["url"].endswith("&scope=openid")

    def test_check_user_role(self, tools, fake):
        fake.add("GET", ADMIN_URL + "clients/", json=[{"id": "client-uuid", "clientId": "installed-client"}])
        fake.add("GET", ADMIN_URL + "users/u-1/role-mappings/clients/client-uuid", json=[{"name": "admin"}])

        result = tools["check_user_role"]("u-1", "admin")

        assert result == {"success": True, "user_id": "u-1", "role": "admin", "has_role": True}

    def test_password_reset_for_unknown_user(self, tools, fake):
        fake.add("GET", ADMIN_URL + "users/", json=[])

        result = tools["send_password_reset"]("ghost@example.com")

        assert result["success"] is False
        assert "ghost@example.com" in result["error"]


class TestKeycloakResources:
    """Test the connection description resource."""

    def test_describes_connection_without_secret(self, installed_client, installation_file):
        text = describe_connection(installed_client)

        assert "**Realm:** realm_test" in text
        assert "**Resolved from:** installation" in text
        assert installation_file in text
        assert "installed-secret" not in text

    def test_registered(self, client):
        mcp = RecordingMCP()

        register_keycloak_resources(mcp, client)

        assert "**Server:** https://test.org/auth" in mcp.resources["config://keycloak"]()
