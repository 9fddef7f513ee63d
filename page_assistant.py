#!/usr/bin/env python3
"""Answer questions about web pages through an OpenAI-style model API."""

from __future__ import annotations

import json
import logging
import sys
from typing import List, Optional

from pageask.cli import (
    build_ask_request,
    build_client_config,
    configure_logging,
    parse_args,
)
from pageask.model_client import AssistantError, ask_model
from pageask.server import create_app

logger = logging.getLogger("page_assistant")


def serve(args) -> None:
    import uvicorn

    config = build_client_config(args)
    if not config.api_key:
        logger.warning("LLM_API_KEY is not set; every ask request will fail until it is configured")
    app = create_app(config)
    logger.info("Serving on http://%s:%s (model=%s)", args.host, args.port, config.model)
    uvicorn.run(app, host=args.host, port=args.port, log_level=args.log_level.lower())


def ask_once(args) -> int:
    for path in (args.page_content_file, args.screenshot_file):
        if path is not None and not path.is_file():
            print(f"Input file not found: {path}", file=sys.stderr)
            return 1
    config = build_client_config(args)
    try:
        request = build_ask_request(args)
        response = ask_model(request, config)
    except AssistantError as exc:
        print(f"{type(exc).__name__}: {exc}", file=sys.stderr)
        return 1
    except OSError as exc:
        print(f"Could not read input: {exc}", file=sys.stderr)
        return 1
    print(json.dumps(response.model_dump(by_alias=True), ensure_ascii=False, indent=2))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level)
    if args.command == "serve":
        serve(args)
        return 0
    return ask_once(args)


if __name__ == "__main__":
    sys.exit(main())
