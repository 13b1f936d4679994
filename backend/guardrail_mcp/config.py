"""Runtime configuration read from the environment."""

import os

# Transport selection: "streamable-http", "sse" or "all"
MCP_TRANSPORT = os.getenv("MCP_TRANSPORT", "streamable-http")
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "3001"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Session lifecycle
SESSION_IDLE_TIMEOUT_SECONDS = float(os.getenv("SESSION_IDLE_TIMEOUT_SECONDS", "1800"))
HANDSHAKE_TIMEOUT_SECONDS = float(os.getenv("HANDSHAKE_TIMEOUT_SECONDS", "60"))
SESSION_SWEEP_INTERVAL_SECONDS = float(os.getenv("SESSION_SWEEP_INTERVAL_SECONDS", "60"))
EVENT_LOG_MAX_EVENTS = int(os.getenv("EVENT_LOG_MAX_EVENTS", "1000"))
TERMINATED_SESSION_MEMORY = int(os.getenv("TERMINATED_SESSION_MEMORY", "10000"))
SHUTDOWN_GRACE_SECONDS = int(os.getenv("SHUTDOWN_GRACE_SECONDS", "5"))

# Moderation gateway
GUARDRAIL_API_BASE_URL = os.getenv("GUARDRAIL_API_BASE_URL", "https://api.chuangsiai.com")
GUARDRAIL_INPUT_PATH = os.getenv("GUARDRAIL_INPUT_PATH", "/v1/guardrail/input")
GUARDRAIL_OUTPUT_PATH = os.getenv("GUARDRAIL_OUTPUT_PATH", "/v1/guardrail/output")
GUARDRAIL_TIMEOUT_SECONDS = float(os.getenv("GUARDRAIL_TIMEOUT_SECONDS", "10"))

SERVER_NAME = "safety-guardrail"
SERVER_VERSION = "1.0.0"

# stdio transport credentials
API_KEY = os.getenv("API_KEY")
STRATEGY_KEY = os.getenv("STRATEGY_KEY")
