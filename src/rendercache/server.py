"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

FastAPI host exposing on-demand revalidation endpoints.
"""

from __future__ import annotations

import hmac
import logging

from pydantic import BaseModel, Field

from .errors import RenderCacheError
from .handler import PageCache

logger = logging.getLogger("rendercache.server")

TOKEN_HEADER = "x-revalidate-token"


class RevalidateTagRequest(BaseModel):
    """Body for tag invalidation."""

    tag: str = Field(min_length=1)
    allow_cache_keys: list[str] = Field(default_factory=list)


class RevalidatePathRequest(BaseModel):
    """Body for path invalidation."""

    path: str = Field(min_length=1)
    allow_cache_keys: list[str] = Field(default_factory=list)


class RevalidationServiceHostError(RenderCacheError):
    """Raised for invalid revalidation host setup."""


class RevalidationServiceHost:
    """
    Expose tag/path invalidation of a ``PageCache`` over HTTP.

    When ``token`` is set every revalidation request must carry it in the
    ``x-revalidate-token`` header.
    """

    def __init__(
        self,
        page_cache: PageCache,
        *,
        token: str | None = None,
        service_name: str = "rendercache-revalidation",
    ) -> None:
        if token is not None and not token.strip():
            raise RevalidationServiceHostError("Revalidation token must be non-empty")
        self.page_cache = page_cache
        self.token = token
        self.service_name = service_name

    def _authorized(self, supplied: str | None) -> bool:
        if self.token is None:
            return True
        if not supplied:
            return False
        return hmac.compare_digest(supplied.encode("utf-8"), self.token.encode("utf-8"))

    def create_app(self):
        """Create and return FastAPI app exposing revalidation endpoints."""
        try:
            from fastapi import FastAPI, Header, HTTPException
        except Exception as exc:  # pragma: no cover - optional runtime path
            raise RevalidationServiceHostError(
                "FastAPI is required to host revalidation endpoints"
            ) from exc

        app = FastAPI(title=self.service_name)
        page_cache = self.page_cache

        def _authorize(token: str | None) -> None:
            if not self._authorized(token):
                raise HTTPException(status_code=401, detail="Invalid revalidation token")

        @app.get("/healthz")
        async def healthz() -> dict[str, str]:
            return {"status": "ok", "backend": page_cache.backend.backend_id}

        @app.post("/revalidate/tag")
        async def revalidate_tag(
            body: RevalidateTagRequest,
            x_revalidate_token: str | None = Header(default=None),
        ):
            _authorize(x_revalidate_token)
            await page_cache.revalidate_tag(body.tag, allow_cache_keys=body.allow_cache_keys)
            logger.info("Revalidated tag %s", body.tag)
            return {"revalidated": True, "scope": "tag", "target": body.tag}

        @app.post("/revalidate/path")
        async def revalidate_path(
            body: RevalidatePathRequest,
            x_revalidate_token: str | None = Header(default=None),
        ):
            _authorize(x_revalidate_token)
            await page_cache.delete_path(body.path, allow_cache_keys=body.allow_cache_keys)
            logger.info("Revalidated path %s", body.path)
            return {"revalidated": True, "scope": "path", "target": body.path}

        return app
