"""
MCP resources describing the Keycloak connection.

Secrets never appear in resource content.
"""

import logging
from datetime import datetime, timezone
from fastmcp import FastMCP

from keycloak_rest.auth.keycloak_client import KeycloakClient

logger = logging.getLogger(__name__)


def describe_connection(client: KeycloakClient) -> str:
    """Render the resolved realm connection as markdown."""
    settings = client.settings
    realm = client.realm_config

    return f"""
# Keycloak Connection

**Realm:** {realm.realm}
**Server:** {realm.auth_server_url}
**Resolved from:** {realm.source}
**Installation file:** {settings.resolve_installation_file()}
**Client:** {realm.client_id or "None"}

## Transport
- Proxy: {settings.proxy or "None"}
- Custom Host header: {settings.custom_host_header or "None"}
- Verify SSL: {settings.verify_ssl}
- Timeout: {settings.timeout}s

## Behaviour
- Raise on HTTP errors: {settings.generate_request_exception}
- Introspect on role checks: {settings.validate_token_when_call_has_role}

*Retrieved at: {datetime.now(timezone.utc).isoformat()}*
"""


def register_keycloak_resources(mcp: FastMCP, client: KeycloakClient) -> None:
    """
    Register Keycloak resources with the MCP server.

    Args:
        mcp: FastMCP server instance
        client: Keycloak client whose configuration is described
    """

    @mcp.resource("config://keycloak")
    def get_keycloak_config() -> str:
        """Describe the realm connection used by the server."""
        return describe_connection(client)
