"""CLI entry point for ollama-bridge.

Headless access to the adapter for scripts and terminal use.

Entry point:
    ollama-bridge models [--json] [--current <model>]
    ollama-bridge generate --prompt <text> [--system <text>] [--model <id>] [--stream]
    ollama-bridge count-tokens --prompt <text>
    ollama-bridge check-auth <method>
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Optional

from dotenv import load_dotenv

from ollama_bridge.adapters.ollama import OllamaContentGenerator, OllamaError
from ollama_bridge.catalog import render_models_command
from ollama_bridge.config import (
    get_default_model,
    get_selected_auth_type,
    validate_auth_method,
)
from ollama_bridge.normalizer import StreamReadError
from ollama_bridge.schema import ConversationTurn, GenerateContentRequest, UsageCounters

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────────────
# ARGUMENT PARSING
# ─────────────────────────────────────────────────────────────────────


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ollama-bridge",
        description="Talk to a local Ollama server through the provider-shaped adapter.",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable debug logging"
    )
    parser.add_argument(
        "--base-url", default=None, help="Ollama server URL (default: OLLAMA_BASE_URL)"
    )
    sub = parser.add_subparsers(dest="command")

    # models
    models_p = sub.add_parser("models", help="List installed models")
    models_p.add_argument(
        "--json", action="store_true", dest="json_output",
        help="JSON output (name, size, modified_at per model)",
    )
    models_p.add_argument("--current", default=None, help="Model to mark as current")

    # generate
    gen_p = sub.add_parser("generate", help="Run one generation")
    gen_p.add_argument("--prompt", required=True, help="User message")
    gen_p.add_argument("--system", default=None, help="System message")
    gen_p.add_argument("--model", default=None, help="Model ID (default: OLLAMA_MODEL)")
    gen_p.add_argument("--temperature", type=float, default=None, help="Sampling temperature")
    gen_p.add_argument("--stream", action="store_true", help="Print chunks as they arrive")

    # count-tokens
    count_p = sub.add_parser("count-tokens", help="Estimate prompt tokens")
    count_p.add_argument("--prompt", required=True, help="User message")
    count_p.add_argument("--system", default=None, help="System message")

    # check-auth
    auth_p = sub.add_parser("check-auth", help="Validate an auth method against the environment")
    auth_p.add_argument("method", nargs="?", default=None, help="Auth method (default: OLLAMA_BRIDGE_AUTH_TYPE)")

    return parser


def _build_turns(prompt: str, system: Optional[str] = None) -> list[ConversationTurn]:
    turns = []
    if system:
        turns.append(ConversationTurn.from_text("system", system))
    turns.append(ConversationTurn.from_text("user", prompt))
    return turns


def _print_usage(usage: Optional[UsageCounters]) -> None:
    if usage is None:
        return
    print(
        f"\n[tokens] prompt={usage.prompt_tokens} completion={usage.completion_tokens} "
        f"total={usage.total_tokens}",
        file=sys.stderr,
    )


# ─────────────────────────────────────────────────────────────────────
# COMMANDS
# ─────────────────────────────────────────────────────────────────────


async def _cmd_models(
    generator: OllamaContentGenerator,
    json_output: bool = False,
    current: Optional[str] = None,
) -> int:
    """List installed models. Returns exit code."""
    if json_output:
        try:
            models = await generator.get_available_models()
        except OllamaError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
        json.dump([m.model_dump(mode="json") for m in models], sys.stdout, indent=2)
        sys.stdout.write("\n")
        return 0

    output = await render_models_command(
        get_selected_auth_type(), current or get_default_model(), generator
    )
    if output.kind == "error":
        print(output.text, file=sys.stderr)
        return 1
    print(output.text)
    return 0


async def _cmd_generate(
    generator: OllamaContentGenerator,
    prompt: str,
    system: Optional[str] = None,
    model: Optional[str] = None,
    temperature: Optional[float] = None,
    stream: bool = False,
) -> int:
    """Run one generation. Returns exit code."""
    model_id = model or get_default_model()
    if not model_id:
        print("Error: no model given (use --model or set OLLAMA_MODEL)", file=sys.stderr)
        return 1

    request = GenerateContentRequest(
        model=model_id,
        contents=_build_turns(prompt, system),
        temperature=temperature,
    )

    try:
        if stream:
            async with await generator.generate_content_stream(request) as events:
                async for event in events:
                    sys.stdout.write(event.text)
                    sys.stdout.flush()
            sys.stdout.write("\n")
            _print_usage(events.usage)
        else:
            response = await generator.generate_content(request)
            print(response.text)
            if response.usage_metadata is not None:
                _print_usage(UsageCounters(
                    prompt_tokens=response.usage_metadata.prompt_token_count,
                    completion_tokens=response.usage_metadata.candidates_token_count,
                    total_tokens=response.usage_metadata.total_token_count,
                ))
    except (OllamaError, StreamReadError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 0


async def _cmd_count_tokens(
    generator: OllamaContentGenerator,
    prompt: str,
    system: Optional[str] = None,
) -> int:
    request = GenerateContentRequest(
        model=get_default_model() or "",
        contents=_build_turns(prompt, system),
    )
    result = await generator.count_tokens(request)
    print(result.total_tokens)
    return 0


def _cmd_check_auth(method: Optional[str] = None) -> int:
    """Validate an auth method. Returns exit code."""
    error = validate_auth_method(method or get_selected_auth_type())
    if error:
        print(error, file=sys.stderr)
        return 1
    print("ok")
    return 0


async def _run_async(args: argparse.Namespace) -> int:
    async with OllamaContentGenerator(base_url=args.base_url) as generator:
        if args.command == "models":
            return await _cmd_models(generator, json_output=args.json_output, current=args.current)
        if args.command == "generate":
            return await _cmd_generate(
                generator,
                prompt=args.prompt,
                system=args.system,
                model=args.model,
                temperature=args.temperature,
                stream=args.stream,
            )
        if args.command == "count-tokens":
            return await _cmd_count_tokens(generator, prompt=args.prompt, system=args.system)
    return 1


# ─────────────────────────────────────────────────────────────────────
# ENTRY POINT
# ─────────────────────────────────────────────────────────────────────


def main():
    parser = _build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    # Logging
    level = logging.DEBUG if args.verbose else logging.WARNING
    logging.basicConfig(level=level, format="%(name)s %(message)s", stream=sys.stderr)

    # Load env
    load_dotenv()

    # Dispatch
    if args.command == "check-auth":
        code = _cmd_check_auth(args.method)
    elif args.command in ("models", "generate", "count-tokens"):
        code = asyncio.run(_run_async(args))
    else:
        parser.print_help()
        code = 1

    sys.exit(code)


if __name__ == "__main__":
    main()
