"""
Keycloak admin MCP server.

Entry point that loads configuration, sets up logging, resolves the
Keycloak realm and exposes user and session administration as MCP tools.
"""

import logging
import sys
from fastmcp import FastMCP

from keycloak_rest.config import get_config
from keycloak_rest.utils.logging_config import setup_logging
from keycloak_rest.auth.keycloak_client import KeycloakClient
from keycloak_rest.auth.internal import KeycloakInternal
from keycloak_rest.tools.admin_tools import register_admin_tools
from keycloak_rest.resources.keycloak_resources import register_keycloak_resources

logger = logging.getLogger(__name__)


def create_server() -> FastMCP:
    """
    Create and configure the FastMCP server.

    Returns:
        Configured FastMCP server instance

    Raises:
        KeycloakError: If the realm cannot be resolved
    """
    config = get_config()

    setup_logging(
        level=config.log_level,
        format_type=config.log_format,
        log_file=config.log_file,
    )

    client = KeycloakClient(config.keycloak)
    realm = client.realm_config

    logger.info(
        "Initializing MCP server",
        extra={
            "name": config.name,
            "environment": config.environment,
            "realm": realm.realm,
            "auth_server_url": realm.auth_server_url,
        },
    )

    if not realm.client_id:
        logger.warning("No installation client configured; service account tools will fail")

    mcp = FastMCP(name=config.name)

    register_admin_tools(mcp, KeycloakInternal(client))
    register_keycloak_resources(mcp, client)

    logger.info("Server initialization complete")
    return mcp


def main() -> None:
    """Create the server and run it with the configured transport."""
    try:
        mcp = create_server()
        config = get_config()

        logger.info(f"Starting MCP server with {config.transport} transport")

        if config.transport == "stdio":
            mcp.run(transport="stdio")
        else:
            mcp.run(transport=config.transport, host=config.host, port=config.port)

    except KeyboardInterrupt:
        logger.info("Server shutdown requested")
        sys.exit(0)
    except Exception as e:
        logger.critical(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
