"""Model catalog: the `/models` listing of installed Ollama models.

Usage:
    output = await render_models_command(get_selected_auth_type(), "llama3.1:latest", generator)
    print(output.text)
"""

import logging
from typing import Literal, Optional

from pydantic import BaseModel

from ollama_bridge.adapters.ollama import OllamaContentGenerator, OllamaError
from ollama_bridge.config import AuthType
from ollama_bridge.schema import ModelTag

logger = logging.getLogger(__name__)

NOT_OLLAMA_MESSAGE = (
    "The /models command is only available when using Ollama authentication. "
    "Set OLLAMA_BRIDGE_AUTH_TYPE=ollama or configure Ollama in settings."
)
NO_MODELS_MESSAGE = "No Ollama models found. Install models using: ollama pull <model-name>"


class CommandOutput(BaseModel):
    """Text a slash command hands back to the UI."""
    kind: Literal["info", "error"]
    text: str


def format_models_listing(models: list[ModelTag], current_model: Optional[str]) -> str:
    """Render installed models as markdown, marking the current one."""
    current = current_model or "Not set"
    lines = [
        f"📋 **Available Ollama Models** ({len(models)})",
        "",
        f"🔹 **Current model:** {current}",
        "",
    ]

    for index, model in enumerate(models, start=1):
        marker = "✅ " if model.name == current else "   "
        size = f"({model.size_gb:.1f}GB)" if model.size_gb is not None else ""
        lines.append(f"{marker}{index}. **{model.name}** {size}".rstrip())
        if model.modified_at is not None:
            lines.append(f"     Last modified: {model.modified_at.date().isoformat()}")
        lines.append("")

    lines.extend([
        "",
        "💡 **To switch models:**",
        "   • Use `--model=<model-name>` flag",
        "   • Or set OLLAMA_MODEL in your environment or .env",
        "",
        "🔍 **Examples:**",
        '   • `ollama-bridge generate --model=llama3.1:latest --prompt "What is AI?"`',
        "   • `OLLAMA_MODEL=phi4-mini:latest ollama-bridge generate --stream --prompt \"Hi\"`",
    ])
    return "\n".join(lines) + "\n"


def format_models_error(message: str, base_url: str) -> str:
    return (
        f"❌ **Error fetching Ollama models:**\n\n{message}\n\n"
        f"Make sure Ollama is running and accessible at: {base_url}"
    )


async def render_models_command(
    auth_type: str,
    current_model: Optional[str],
    generator: OllamaContentGenerator,
) -> CommandOutput:
    """
    Build the `/models` command output.

    Errors never escape: a wrong auth type or an unreachable server comes
    back as an "error" CommandOutput.
    """
    if auth_type != AuthType.USE_OLLAMA.value:
        return CommandOutput(kind="error", text=NOT_OLLAMA_MESSAGE)

    try:
        models = await generator.get_available_models()
    except OllamaError as e:
        logger.debug("Model listing failed: %s", e)
        return CommandOutput(kind="error", text=format_models_error(str(e), generator.base_url))

    if not models:
        return CommandOutput(kind="info", text=NO_MODELS_MESSAGE)

    return CommandOutput(kind="info", text=format_models_listing(models, current_model))
