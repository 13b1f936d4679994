"""stdio transport: newline-delimited JSON-RPC over stdin/stdout.

A single implicit session whose credentials come from the environment. There
is no registry, event log or reconnect: the process is the session.
"""

import asyncio
import json
import logging
import sys
from collections.abc import AsyncIterator, Callable
from typing import Any

from guardrail_mcp import config
from guardrail_mcp.errors import InternalError, ParseError, Unauthorized
from guardrail_mcp.models.jsonrpc import JSONRPCMessage, parse_messages
from guardrail_mcp.models.session import AuthorizationContext
from guardrail_mcp.protocol.server import GuardrailServer

logger = logging.getLogger(__name__)


async def serve_stream(
    server: GuardrailServer,
    lines: AsyncIterator[str],
    write: Callable[[str], None],
) -> None:
    """Answer JSON-RPC messages read from ``lines`` until it is exhausted.

    Requests are handled concurrently; each response and notification is
    written as one JSON line. In-flight requests are drained before returning.
    """

    def emit(message: dict[str, Any]) -> None:
        write(json.dumps(message, ensure_ascii=False))

    async def answer(message: JSONRPCMessage) -> None:
        try:
            response = await server.handle(message)
        except Exception as e:
            logger.exception(f"Error handling {message.method}: {e}")
            response = (
                InternalError("Internal server error").to_jsonrpc(message.id)
                if message.is_request
                else None
            )
        if response is not None:
            emit(response)

    server.set_notifier(emit)
    tasks: set[asyncio.Task] = set()
    try:
        async for line in lines:
            line = line.strip()
            if not line:
                continue
            try:
                messages, _ = parse_messages(line)
            except ParseError as e:
                emit(e.to_jsonrpc())
                continue
            for message in messages:
                task = asyncio.create_task(answer(message))
                tasks.add(task)
                task.add_done_callback(tasks.discard)

        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
    finally:
        server.set_notifier(None)


async def _stdin_lines() -> AsyncIterator[str]:
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()
    await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), sys.stdin)
    while True:
        line = await reader.readline()
        if not line:
            return
        yield line.decode("utf-8")


def _write_stdout(line: str) -> None:
    sys.stdout.write(line + "\n")
    sys.stdout.flush()


async def run_stdio(api_key: str | None = None, strategy_key: str | None = None) -> None:
    """Serve the guardrail tools over this process's stdin and stdout.

    Raises:
        Unauthorized: If API_KEY or STRATEGY_KEY is not set.
    """
    api_key = api_key or config.API_KEY
    strategy_key = strategy_key or config.STRATEGY_KEY
    if not api_key or not strategy_key:
        raise Unauthorized("API_KEY and STRATEGY_KEY environment variables must be set")

    server = GuardrailServer(AuthorizationContext(credential=api_key, policy_key=strategy_key))
    logger.info("Starting stdio server")
    await serve_stream(server, _stdin_lines(), _write_stdout)
    logger.info("stdin closed, stdio server exiting")
