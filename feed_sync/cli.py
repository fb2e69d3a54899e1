"""Command-line interface for the feed_sync engine."""

from __future__ import annotations

import argparse
import json
import logging
import time
from pathlib import Path
from typing import List, Optional

from .config import AppConfig, parse_app_config
from .errors import FeedError
from .pipeline import FeedPipeline
from .session import FeedSessionController, SessionStatus

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Create the CLI argument parser."""
    parser = argparse.ArgumentParser(
        description="Fetch, page through and watch RSS/Atom feeds."
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to the configuration XML file. Defaults are used when omitted.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (e.g. DEBUG, INFO, WARNING). Overrides config.",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Optional path to a log file. Overrides config.",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    fetch = commands.add_parser("fetch", help="Print one page of a feed as JSON.")
    fetch.add_argument("url")
    fetch.add_argument("--start-index", type=int, default=1)
    fetch.add_argument("--max-results", type=int, default=None)

    watch = commands.add_parser(
        "watch", help="Load a feed, then poll for new items and backfill older ones."
    )
    watch.add_argument("url")
    watch.add_argument(
        "--duration",
        type=float,
        default=None,
        help="Stop after this many seconds instead of running until interrupted.",
    )

    serve = commands.add_parser("serve", help="Run the HTTP relay and feed API.")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)

    return parser


def configure_logging(level_name: str, log_file: Optional[str] = None) -> None:
    """Initialise logging according to options."""
    log_level = getattr(logging, level_name.upper(), None)
    if not isinstance(log_level, int):
        raise ValueError(f"Unsupported log level: {level_name}")

    formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    root_logger.setLevel(log_level)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    root_logger.addHandler(stream_handler)

    if log_file:
        log_path = Path(log_file)
        if log_path.parent and not log_path.parent.exists():
            log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)
        logger.debug(
            "Logger initialised with level %s and file output to %s",
            level_name.upper(),
            log_path,
        )
    else:
        logger.debug(
            "Logger initialised with console output at level %s", level_name.upper()
        )


def run_fetch(config: AppConfig, url: str, start_index: int, max_results: Optional[int]) -> str:
    pipeline = FeedPipeline.from_config(config)
    result = pipeline.load_page(url, start_index, max_results or config.session.page_size)
    return json.dumps(result.page.to_dict(), indent=2, ensure_ascii=False)


def run_watch(config: AppConfig, url: str, duration: Optional[float]) -> int:
    controller = FeedSessionController(
        FeedPipeline.from_config(config),
        page_size=config.session.page_size,
        poll_size=config.session.poll_size,
        poll_interval=config.session.poll_interval,
        backfill_interval=config.session.backfill_interval,
    )
    with controller:
        session = controller.load_feed(url).result()
        title = session.channel.title if session.channel else url
        print(f"{title}: {len(session.articles)} articles")
        for article in session.articles:
            print(f"  {article.published_at}  {article.title}")

        announced = set(session.guids)
        controller.start_polling()
        controller.start_backfill()
        deadline = None if duration is None else time.monotonic() + duration
        try:
            while deadline is None or time.monotonic() < deadline:
                time.sleep(1.0)
                current = controller.session
                for article in current.articles:
                    if article.guid in announced:
                        continue
                    announced.add(article.guid)
                    marker = "[new]" if article.is_new else "[older]"
                    print(f"{marker} {article.published_at}  {article.title}")
        except KeyboardInterrupt:
            logger.info("Interrupted; stopping watch of %s", url)

    return 0 if controller.session.status is SessionStatus.READY else 1


def run_serve(config: AppConfig, host: Optional[str], port: Optional[int]) -> None:
    import uvicorn

    from .server import create_app

    app = create_app(FeedPipeline.from_config(config), config)
    bind_host = host or config.server.host
    bind_port = port or config.server.port
    logger.info("Starting API server on %s:%s", bind_host, bind_port)
    uvicorn.run(app, host=bind_host, port=bind_port)


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        app_config = parse_app_config(args.config) if args.config else AppConfig()

        # CLI overrides config
        log_level = args.log_level or app_config.logging.level
        log_file = args.log_file or app_config.logging.file
        configure_logging(log_level, log_file)

        if args.command == "fetch":
            print(run_fetch(app_config, args.url, args.start_index, args.max_results))
            return 0
        if args.command == "watch":
            return run_watch(app_config, args.url, args.duration)
        run_serve(app_config, args.host, args.port)
    except ValueError as exc:
        parser.error(str(exc))
    except (FeedError, FileNotFoundError) as exc:
        logger.error("%s", exc)
        return 1
    except Exception:  # noqa: BLE001
        logger.exception("Unexpected error during execution.")
        return 1

    return 0
