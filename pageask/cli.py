from __future__ import annotations

import argparse
import base64
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional, Set

try:
    import tomllib  # Python 3.11+
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib  # type: ignore

from dotenv import load_dotenv

from .constants import (
    DEFAULT_CHAT_URL,
    DEFAULT_MODEL,
    DEFAULT_PORT,
    DEFAULT_RESPONSES_URL,
    DEFAULT_TEMPERATURE,
    DEFAULT_TIMEOUT_SECONDS,
    ENV_API_KEY,
    ENV_CHAT_URL,
    ENV_LOG_LEVEL,
    ENV_MODEL,
    ENV_PORT,
    ENV_RESPONSES_URL,
)
from .model_client import ClientConfig, ValidationError
from .schemas import AskRequest

LOG_FORMAT = "%(asctime)s.%(msecs)03d [%(levelname)s] [%(name)s] %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")

IMAGE_MIME_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
}


def explicit_cli_destinations(argv: List[str]) -> Set[str]:
    explicit: Set[str] = set()
    for token in argv:
        if token == "--":
            break
        if not token.startswith("--"):
            continue
        flag = token[2:]
        if "=" in flag:
            flag = flag.split("=", 1)[0]
        if flag.startswith("no-"):
            flag = flag[3:]
        explicit.add(flag.replace("-", "_"))
    return explicit


def apply_config_defaults(
    parser: argparse.ArgumentParser,
    args: argparse.Namespace,
    cli_explicit: Optional[Set[str]] = None,
) -> None:
    explicit = cli_explicit or set()
    config_path: Path = args.config  # type: ignore[assignment]
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")
    with config_path.open("rb") as handle:
        data = tomllib.load(handle)
    actions = {action.dest: action for action in parser._actions}
    for key, value in data.items():
        if not hasattr(args, key) or key in ("command", "config"):
            continue
        if key in explicit:
            continue
        action = actions.get(key)
        current = getattr(args, key)
        default = parser.get_default(key)
        if action is not None and action.type is not None and isinstance(default, str):
            default = action.type(default)
        if current != default:
            continue
        if action is not None and action.type is not None and value is not None:
            try:
                value = action.type(value)
            except (TypeError, ValueError):
                parser.error(f"{config_path}: invalid value for {key}: {value!r}")
        if action is not None and action.choices and value not in action.choices:
            parser.error(
                f"{config_path}: {key} must be one of {', '.join(map(str, action.choices))}, got {value!r}"
            )
        setattr(args, key, value)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description=(
            "Answer questions about a web page through an OpenAI-style model API "
            "(chat, vision or web search)."
        )
    )
    parser.add_argument(
        "command",
        choices=["serve", "ask"],
        help="serve: run the HTTP API; ask: answer one question and print JSON.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Optional TOML config file to supply defaults (see page_assistant.example.toml).",
    )
    parser.add_argument(
        "--api-key",
        default=os.getenv(ENV_API_KEY),
        help=f"Bearer token for the model API (defaults to ${ENV_API_KEY}).",
    )
    parser.add_argument(
        "--chat-url",
        default=os.getenv(ENV_CHAT_URL) or DEFAULT_CHAT_URL,
        help="Chat completions URL used for plain-text and vision questions.",
    )
    parser.add_argument(
        "--responses-url",
        default=os.getenv(ENV_RESPONSES_URL) or DEFAULT_RESPONSES_URL,
        help="Responses API URL used for web-search questions.",
    )
    parser.add_argument(
        "--model",
        default=os.getenv(ENV_MODEL) or DEFAULT_MODEL,
        help="Model name sent upstream.",
    )
    parser.add_argument(
        "--temperature",
        type=float,
        default=DEFAULT_TEMPERATURE,
        help="Sampling temperature for chat requests.",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_TIMEOUT_SECONDS,
        help="Upstream request timeout in seconds.",
    )
    parser.add_argument(
        "--log-level",
        default=(os.getenv(ENV_LOG_LEVEL) or "INFO").upper(),
        choices=LOG_LEVELS,
        type=str.upper,
        help="Log verbosity, fixed for the lifetime of the process.",
    )
    parser.add_argument(
        "--host",
        default="0.0.0.0",
        help="Bind address for serve.",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=os.getenv(ENV_PORT) or DEFAULT_PORT,
        help="Bind port for serve.",
    )
    parser.add_argument("--question", default="", help="Question to ask (ask command).")
    parser.add_argument("--url", default="", help="Page URL (ask command).")
    parser.add_argument("--title", default="", help="Page title (ask command).")
    parser.add_argument(
        "--page-content",
        default="",
        help="Page text or JSON with headings/paragraphs (ask command).",
    )
    parser.add_argument(
        "--page-content-file",
        type=Path,
        default=None,
        help="Read page content from this file instead of --page-content.",
    )
    parser.add_argument(
        "--screenshot-file",
        type=Path,
        default=None,
        help="PNG/JPEG/WebP screenshot to attach (ask command).",
    )
    parser.add_argument(
        "--web-search",
        action="store_true",
        help="Let the model search the web instead of reading the page.",
    )
    parser.add_argument(
        "--simple",
        action="store_true",
        help="Ask for a short answer of at most about 100 words.",
    )
    return parser


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    load_dotenv()
    argv = sys.argv[1:] if argv is None else argv
    parser = build_parser()
    args = parser.parse_args(argv)
    cli_explicit = explicit_cli_destinations(argv)
    config_path = None
    if args.config:
        config_path = Path(args.config)
    else:
        candidate = Path("page_assistant.toml")
        if candidate.exists():
            config_path = candidate
    if config_path:
        args.config = config_path
        apply_config_defaults(parser, args, cli_explicit=cli_explicit)
    args.log_level = str(args.log_level).upper()
    if args.log_level not in LOG_LEVELS:
        parser.error(f"log level must be one of {', '.join(LOG_LEVELS)}, got {args.log_level!r}")
    return args


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        force=True,
    )


def build_client_config(args: argparse.Namespace) -> ClientConfig:
    return ClientConfig(
        api_key=args.api_key,
        chat_url=args.chat_url,
        responses_url=args.responses_url,
        model=args.model,
        temperature=args.temperature,
        timeout=args.timeout,
    )


def image_path_to_data_url(image_path: Path) -> str:
    mime = IMAGE_MIME_TYPES.get(image_path.suffix.lower())
    if not mime:
        raise ValidationError(f"Unsupported screenshot format: {image_path}")
    encoded = base64.b64encode(image_path.read_bytes()).decode("ascii")
    return f"data:{mime};base64,{encoded}"


def build_ask_request(args: argparse.Namespace) -> AskRequest:
    page_content = args.page_content
    if args.page_content_file:
        page_content = args.page_content_file.read_text(encoding="utf-8")
    screenshot = ""
    if args.screenshot_file:
        screenshot = image_path_to_data_url(args.screenshot_file)
    return AskRequest(
        question=args.question,
        url=args.url,
        title=args.title,
        page_content=page_content,
        screenshot=screenshot,
        use_web_search=args.web_search,
        is_simple=args.simple,
    )
