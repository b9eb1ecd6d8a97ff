"""Library Circulation MCP Server - FastMCP Implementation

Exposes the circulation engine of a multi-branch library to MCP clients.

Features exposed:
- Resources: effective circulation policy, branch list
- Tools: checkout, return, extend, loan lookup and listing, reservations,
  availability reconciliation
"""

import logging
import signal
import sys
from typing import Any

from fastmcp import FastMCP

from .config import get_config
from .database.session import get_db_manager
from .observability import initialize_observability
from .resources import all_resources
from .tools import all_tools
from .tools.common import CirculationTool

# stderr for logs, stdout for the MCP protocol
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stderr)],
)

logger = logging.getLogger(__name__)

config = get_config()

mcp = FastMCP(
    name=config.server_name,
    version=config.server_version,
    instructions=(
        "Library Circulation MCP Server. Check books out to members, take returns, "
        "extend loans and manage reservation queues across library branches. Every "
        "tool takes a 'caller' object identifying the librarian; staff only reach "
        "their own branch and shared records. The caller is not authenticated by this "
        "server and must be supplied by a trusted client or gateway. Read "
        "library://policy for the loan rules currently in force."
    ),
)

# =============================================================================
# REGISTRATION
# =============================================================================

for resource in all_resources:
    logger.debug("Registering resource: %s with URI: %s", resource["name"], resource["uri"])
    mcp.resource(
        uri=resource["uri"],
        name=resource["name"],
        description=resource["description"],
        mime_type=resource["mime_type"],
    )(resource["handler"])

logger.info("Registered %d resources", len(all_resources))

for tool in all_tools:
    logger.debug("Registering tool: %s", tool["name"])
    try:
        mcp.add_tool(CirculationTool.from_definition(tool))
    except Exception:
        logger.exception("Failed to register tool %s", tool["name"])
        raise

logger.info("Registered %d tools", len(all_tools))


# =============================================================================
# TRANSPORT
# =============================================================================


def _configure_logging() -> None:
    level = logging.DEBUG if config.debug else getattr(logging, config.log_level)
    logging.getLogger().setLevel(level)
    if not config.is_development:
        logging.getLogger("fastmcp").setLevel(logging.WARNING)


def run_server() -> None:
    """Prepare the database and serve on the configured transport."""
    _configure_logging()
    initialize_observability()

    db_manager = get_db_manager()
    db_manager.init_database()
    if not db_manager.verify_connection():
        logger.error("Database is not reachable at %s", db_manager.database_url)
        sys.exit(1)

    def signal_handler(signum: int, _frame: Any) -> None:
        logger.info("Received signal %s, initiating shutdown...", signum)
        db_manager.close()
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        if config.transport == "stdio":
            logger.info("Starting %s v%s on stdio", config.server_name, config.server_version)
            mcp.run(transport="stdio")
        else:
            logger.info(
                "Starting %s v%s on http://%s:%d",
                config.server_name,
                config.server_version,
                config.http_host,
                config.http_port,
            )
            mcp.run(transport="streamable-http", host=config.http_host, port=config.http_port)
    except Exception:
        logger.exception("Fatal error in MCP server")
        sys.exit(1)
    finally:
        db_manager.close()


def main() -> None:
    """Entry point for ``library-circulation-mcp``."""
    try:
        logger.info("Library Circulation MCP Server %s", config.server_version)
        logger.info("Transport: %s, database: %s", config.transport, config.database_path)
        run_server()
    except KeyboardInterrupt:
        logger.info("Server stopped by user")


if __name__ == "__main__":
    main()
