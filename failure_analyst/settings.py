"""Configuration settings for the failure analysis assistant."""

import logging
import os
from dotenv import load_dotenv

load_dotenv()

# Logging setup
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
    datefmt="%H:%M:%S",
)

# OpenRouter
# Any OpenAI-compatible chat model works, e.g.:
# - anthropic/claude-3-5-sonnet (balanced)
# - meta-llama/llama-3.1-70b-instruct
OPENROUTER_API_KEY = os.getenv("OPENROUTER_API_KEY")
OPENROUTER_BASE_URL = os.getenv("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1")
OPENROUTER_DEFAULT_MODEL = os.getenv("OPENROUTER_DEFAULT_MODEL", "anthropic/claude-3-5-sonnet")

# Anthropic (direct API)
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY")
ANTHROPIC_DEFAULT_MODEL = os.getenv("ANTHROPIC_DEFAULT_MODEL", "claude-3-5-sonnet-20241022")

# Telemetry gateway (HTTP backend for the tool executors)
TELEMETRY_BASE_URL = os.getenv("TELEMETRY_BASE_URL", "http://localhost:8080/telemetry")
TELEMETRY_API_TOKEN = os.getenv("TELEMETRY_API_TOKEN")

# Retry settings for the telemetry gateway
MAX_RETRIES = 4
RETRY_BACKOFF_FACTOR = 0.5  # seconds, doubled per attempt

# Session persistence
SESSION_STORE_PATH = os.getenv("SESSION_STORE_PATH", ".failure_analyst/sessions.json")
