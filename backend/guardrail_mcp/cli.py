#!/usr/bin/env python3
"""Command line entry point for the guardrail MCP server.

Usage:
    safety-guardrail-mcp serve --transport streamable-http --port 3001
    safety-guardrail-mcp serve --transport sse --port 3000
    API_KEY=... STRATEGY_KEY=... safety-guardrail-mcp stdio

Examples:
    # Both HTTP transports on one listener
    safety-guardrail-mcp serve --transport all

    # Launched by an MCP client as a subprocess
    API_KEY=sk-... STRATEGY_KEY=default python -m guardrail_mcp.cli stdio
"""

import argparse
import asyncio
import logging
import sys

import uvicorn

from guardrail_mcp import config
from guardrail_mcp.errors import Unauthorized

logger = logging.getLogger(__name__)


class GuardrailHTTPServer(uvicorn.Server):
    """uvicorn server that closes session streams before shutting down.

    Open SSE responses would otherwise keep uvicorn waiting on connections
    until the graceful-shutdown timeout.
    """

    def handle_exit(self, sig: int, frame: object) -> None:
        from guardrail_mcp.transport.manager import get_session_manager

        if not self.should_exit:
            logger.info("Shutting down server, closing session streams...")
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                loop = None
            manager = get_session_manager()
            if loop is not None:
                loop.call_soon_threadsafe(manager.close_connections)
            else:
                manager.close_connections()
        super().handle_exit(sig, frame)


def serve(transport: str, host: str, port: int) -> None:
    """Run an HTTP transport under uvicorn."""
    from guardrail_mcp.main import create_app

    app = create_app(transport)
    uvicorn_config = uvicorn.Config(
        app,
        host=host,
        port=port,
        log_level=config.LOG_LEVEL.lower(),
        timeout_graceful_shutdown=config.SHUTDOWN_GRACE_SECONDS,
    )
    logger.info(f"MCP {transport} server listening on {host}:{port}")
    GuardrailHTTPServer(uvicorn_config).run()


def run_stdio() -> int:
    """Run the stdio transport; logs go to stderr since stdout carries frames."""
    from guardrail_mcp.stdio import run_stdio as _run_stdio

    try:
        asyncio.run(_run_stdio())
    except Unauthorized as e:
        logger.error(e.message)
        return 1
    except KeyboardInterrupt:
        pass
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Safety guardrail MCP server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve_parser = subparsers.add_parser("serve", help="Serve over HTTP")
    serve_parser.add_argument(
        "--transport",
        choices=["streamable-http", "sse", "all"],
        default=config.MCP_TRANSPORT,
        help="Transport variant (default: %(default)s)",
    )
    serve_parser.add_argument("--host", default=config.HOST, help="Bind address")
    serve_parser.add_argument("--port", type=int, default=config.PORT, help="Listen port")

    subparsers.add_parser("stdio", help="Serve over stdin/stdout")

    args = parser.parse_args(argv)

    if args.command == "stdio":
        logging.basicConfig(
            level=getattr(logging, config.LOG_LEVEL, logging.INFO),
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            stream=sys.stderr,
        )
        return run_stdio()

    serve(args.transport, args.host, args.port)
    return 0


if __name__ == "__main__":
    sys.exit(main())
