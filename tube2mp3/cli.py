from __future__ import annotations

import argparse
import asyncio
import os

from .container import build_context
from .errors import ConfigurationError
from .logging_utils import get_logger


logger = get_logger(__name__)


EX_TEMPFAIL = getattr(os, "EX_TEMPFAIL", 75)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="tube2mp3 CLI")
    parser.add_argument("link", help="YouTube watch or youtu.be share link")
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Only print the download URL (or the error message)",
    )

    args = parser.parse_args(argv)

    try:
        context = build_context()
    except ConfigurationError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 2

    def show_progress(message: str) -> None:
        if not args.quiet:
            print(message)

    result = asyncio.run(context.pipeline.convert(args.link, on_progress=show_progress))

    if result.ok:
        assert result.link is not None
        if args.quiet:
            print(result.link.url)
        else:
            print(result.message)
            print(f"Download here (valid until {result.link.expires_at:%Y-%m-%d %H:%M:%S %Z}):")
            print(result.link.url)
        return 0

    print(result.message)
    return EX_TEMPFAIL if result.retryable else 1


if __name__ == "__main__":
    raise SystemExit(main())
