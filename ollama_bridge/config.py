"""
Configuration constants and environment loading for ollama-bridge.
"""

import os
from enum import Enum
from typing import Mapping, Optional


# ─────────────────────────────────────────────────────────────────────
# DEFAULTS
# ─────────────────────────────────────────────────────────────────────

DEFAULT_OLLAMA_BASE_URL: str = "http://localhost:11434"
DEFAULT_TIMEOUT_SECONDS: int = 300  # 5 minutes
DEFAULT_TEMPERATURE: float = 0.0
DEFAULT_TOP_P: float = 1.0

DEFAULT_EMBEDDING_MODEL: str = "nomic-embed-text"
DEFAULT_JSON_MODEL: str = "gpt-oss:20b"


# ─────────────────────────────────────────────────────────────────────
# INTERNAL CONSTANTS
# ─────────────────────────────────────────────────────────────────────

CHARS_PER_TOKEN: int = 4  # rough estimate for English text
TURN_SEPARATOR: str = "\n\n"
UNSUPPORTED_FRAGMENT_MARKER: str = "[Unsupported content type]"


# ─────────────────────────────────────────────────────────────────────
# ENVIRONMENT LOADING
# ─────────────────────────────────────────────────────────────────────

def get_ollama_base_url() -> str:
    """
    Get the Ollama server URL from environment or default.

    Set OLLAMA_BASE_URL in .env (default: http://localhost:11434).
    """
    url = os.environ.get("OLLAMA_BASE_URL", "").strip()
    return (url or DEFAULT_OLLAMA_BASE_URL).rstrip("/")


def get_default_model() -> Optional[str]:
    """Get the default model from OLLAMA_MODEL, or None if unset."""
    model = os.environ.get("OLLAMA_MODEL", "").strip()
    return model or None


def get_timeout_seconds() -> int:
    """
    Get the HTTP timeout from environment or default.

    Set OLLAMA_TIMEOUT_SECONDS in .env (default: 300).
    """
    try:
        return int(os.environ.get("OLLAMA_TIMEOUT_SECONDS", str(DEFAULT_TIMEOUT_SECONDS)))
    except ValueError:
        return DEFAULT_TIMEOUT_SECONDS


# ─────────────────────────────────────────────────────────────────────
# AUTHENTICATION
# ─────────────────────────────────────────────────────────────────────

class AuthType(str, Enum):
    """Authentication methods the agent CLI can be configured with."""
    LOGIN_WITH_GOOGLE = "oauth-personal"
    USE_GEMINI = "gemini-api-key"
    USE_VERTEX_AI = "vertex-ai"
    CLOUD_SHELL = "cloud-shell"
    USE_OLLAMA = "ollama"


def get_selected_auth_type() -> str:
    """
    Get the selected auth method from environment.

    Set OLLAMA_BRIDGE_AUTH_TYPE in .env (default: ollama).
    """
    value = os.environ.get("OLLAMA_BRIDGE_AUTH_TYPE", "").strip()
    return value or AuthType.USE_OLLAMA.value


def validate_auth_method(
    auth_method: str,
    env: Optional[Mapping[str, str]] = None,
) -> Optional[str]:
    """
    Check that the environment carries what the given auth method needs.

    Args:
        auth_method: One of the AuthType values
        env: Environment to inspect (defaults to os.environ)

    Returns:
        None if the configuration is usable, otherwise a message telling the
        user what to set.
    """
    env = os.environ if env is None else env

    if auth_method in (AuthType.LOGIN_WITH_GOOGLE.value, AuthType.CLOUD_SHELL.value):
        return None

    if auth_method == AuthType.USE_GEMINI.value:
        if not env.get("GEMINI_API_KEY"):
            return (
                "GEMINI_API_KEY environment variable not found. Add that to your "
                "environment and try again (no reload needed if using .env)!"
            )
        return None

    if auth_method == AuthType.USE_VERTEX_AI.value:
        has_project_location = bool(
            env.get("GOOGLE_CLOUD_PROJECT") and env.get("GOOGLE_CLOUD_LOCATION")
        )
        has_api_key = bool(env.get("GOOGLE_API_KEY"))
        if not has_project_location and not has_api_key:
            return (
                "When using Vertex AI, you must specify either:\n"
                "• GOOGLE_CLOUD_PROJECT and GOOGLE_CLOUD_LOCATION environment variables.\n"
                "• GOOGLE_API_KEY environment variable (if using express mode).\n"
                "Update your environment and try again (no reload needed if using .env)!"
            )
        return None

    if auth_method == AuthType.USE_OLLAMA.value:
        # Local server, no credentials
        return None

    return "Invalid auth method selected."
