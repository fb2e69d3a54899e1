"""FastAPI application exposing the relay and paginated feed endpoints."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from .config import AppConfig
from .errors import FeedError, InvalidURLError, NotAFeedError, OriginError, TransportError
from .fetching import validate_url
from .pipeline import FeedPipeline, page_number

logger = logging.getLogger(__name__)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"message": message})


def _parse_positive(value: str, name: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValueError(f"`{name}` must be an integer.") from None
    if number < 1:
        raise ValueError(f"`{name}` must be positive.")
    return number


def create_app(
    pipeline: Optional[FeedPipeline] = None, config: Optional[AppConfig] = None
) -> FastAPI:
    config = config or AppConfig()
    pipeline = pipeline or FeedPipeline.from_config(config)

    relay_cache_control = (
        f"s-maxage={int(config.cache.raw_ttl)}, stale-while-revalidate, public, "
        f"max-age={config.cache.browser_max_age}"
    )

    app = FastAPI(title="Feed Sync", version="1.0.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    @app.get("/healthz")
    def health_check() -> dict:
        return {"status": "ok"}

    @app.get("/api/rss-fetcher")
    def relay_feed(url: Optional[str] = Query(None)) -> Response:
        """Forward the origin body for ``url`` with its content type."""
        try:
            url = validate_url(url)
            raw, cache_hit = pipeline.fetch_raw(url)
        except InvalidURLError:
            return _error(
                400, "A valid `url` query parameter starting with http/https is required."
            )
        except OriginError as exc:
            return _error(exc.status_code, str(exc))
        except NotAFeedError as exc:
            return _error(400, str(exc))
        except TransportError as exc:
            return _error(500, str(exc))

        return Response(
            content=raw.body,
            media_type=raw.content_type,
            headers={
                "Cache-Control": relay_cache_control,
                "X-Cache": "HIT" if cache_hit else "MISS",
            },
        )

    @app.get("/api/articles")
    def feed_articles(
        url: Optional[str] = Query(None),
        start_index: str = Query("1", alias="startIndex"),
        max_results: str = Query("25", alias="maxResults"),
    ) -> JSONResponse:
        """Return one normalized page of ``url`` as ``{channel, articles}``."""
        try:
            url = validate_url(url)
            start = _parse_positive(start_index, "startIndex")
            size = _parse_positive(max_results, "maxResults")
        except InvalidURLError:
            return _error(400, "A valid `url` query parameter is required.")
        except ValueError as exc:
            return _error(400, str(exc))

        try:
            result = pipeline.load_page(url, start, size)
        except FeedError as exc:
            logger.error("Error in /api/articles for URL %s: %s", url, exc)
            return _error(500, str(exc))

        logger.debug(
            "Served page %d of %s (%s)",
            page_number(start, size),
            url,
            "HIT" if result.cache_hit else "MISS",
        )
        return JSONResponse(
            content=result.page.to_dict(),
            headers={"X-Cache": "HIT" if result.cache_hit else "MISS"},
        )

    return app
