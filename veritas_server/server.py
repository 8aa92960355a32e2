"""
Veritas MCP Server - Main Entry Point

FastMCP server with STDIO and SSE transport support.
"""

import argparse
import logging
from fastmcp import FastMCP

from veritas_server.config import get_settings

# Import tools (registered with decorators)
from veritas_server.tools import (
    ask_question,
    submit_review,
    review_status,
    escalate_overdue_reviews,
)


def create_app() -> FastMCP:
    """Create and configure the MCP application."""
    mcp = FastMCP(
        name="veritas-mcp",
        instructions=(
            "Grounded legal question answering. Answers cite retrieved "
            "sources; every citation is validated and low-confidence answers "
            "are queued for human review."
        ),
    )

    # Register all tools
    mcp.mount(ask_question.router)
    mcp.mount(submit_review.router)
    mcp.mount(review_status.router)
    mcp.mount(escalate_overdue_reviews.router)

    return mcp


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Veritas MCP Server")
    parser.add_argument(
        "--transport",
        choices=["stdio", "sse"],
        default=None,
        help="Transport protocol (default: from env)"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port for SSE transport (default: from env)"
    )
    args = parser.parse_args()

    settings = get_settings()
    logging.basicConfig(level=getattr(logging, settings.log.level))

    transport = args.transport or settings.mcp.transport
    port = args.port or settings.mcp.port

    mcp = create_app()

    if transport == "stdio":
        mcp.run(transport="stdio")
    else:
        mcp.run(transport="sse", host=settings.mcp.host, port=port)


if __name__ == "__main__":
    main()
