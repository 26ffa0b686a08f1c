"""Command-line interface for Caption Review.

WHY: A review session is started from the terminal with the list of
images to caption. The CLI collects model and server options, sets up
logging, builds the app, and runs it under uvicorn.

HOW: argparse parses the image paths and options; flags fall back to the
values in caption_review.config (which reads the environment and .env).
The prompt file, if any, is read up front so a bad path fails before the
server starts.

RULES:
- Positional arguments: one or more image paths (none is a usage error)
- Missing image files are warned about but stay in the queue; reading
  them fails at review time with an error event
- --autostart begins captioning before the first viewer connects
- Python 3.9 compatible (no match/case, no X | Y unions)
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import List, Optional

from caption_review import __version__
from caption_review.config import (
    CAPTION_PROMPT_FILE,
    HTTP_HOST,
    HTTP_PORT,
    MAX_TOKENS,
    MODEL_API_KEY,
    MODEL_BASE_URL,
    MODEL_NAME,
    load_prompt,
)

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="caption-review",
        description="Caption images with a vision model and review each result in the browser.",
    )

    parser.add_argument(
        "images",
        nargs="+",
        help="Image files to caption, in review order.",
    )
    parser.add_argument("--version", action="version", version=__version__)

    parser.add_argument(
        "--host",
        default=HTTP_HOST,
        help="Address for the viewer server (default: %(default)s).",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=HTTP_PORT,
        help="Port for the viewer server (default: %(default)s).",
    )

    parser.add_argument(
        "--base-url",
        default=MODEL_BASE_URL,
        help="OpenAI-compatible model endpoint (default: %(default)s).",
    )
    parser.add_argument(
        "--model",
        default=MODEL_NAME,
        help="Model name sent with each request (default: %(default)s).",
    )
    parser.add_argument(
        "--api-key",
        default=MODEL_API_KEY,
        help="API key for the model endpoint (default: $MODEL_API_KEY).",
    )
    parser.add_argument(
        "--max-tokens",
        type=int,
        default=MAX_TOKENS,
        help="Maximum tokens per caption (default: %(default)s).",
    )
    parser.add_argument(
        "--prompt-file",
        default=CAPTION_PROMPT_FILE,
        help="Text file with the instruction prompt (default: built-in prompt).",
    )

    parser.add_argument(
        "--autostart",
        action="store_true",
        help="Start captioning immediately instead of waiting for a viewer.",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: %(default)s).",
    )

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for the CLI.

    RULES:
    - argv=None means use sys.argv (normal CLI invocation)
    - Explicit argv is for testing
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    try:
        prompt = load_prompt(args.prompt_file)
    except (OSError, ValueError) as exc:
        parser.error("cannot load prompt: {}".format(exc))

    for image in args.images:
        if not Path(image).is_file():
            logger.warning("Image not found (will report an error when reached): %s", image)

    from caption_review.server.app import create_app

    app = create_app(
        args.images,
        base_url=args.base_url,
        model=args.model,
        api_key=args.api_key,
        max_tokens=args.max_tokens,
        prompt=prompt,
        autostart=args.autostart,
    )

    logger.info("HTTP Server running on http://localhost:%d", args.port)
    logger.info("Open your browser to view the interface")

    import uvicorn
    uvicorn.run(app, host=args.host, port=args.port, log_level=args.log_level.lower())


if __name__ == "__main__":
    main()
