"""
basic_page_cache.py — Minimal rendercache example.

Caches a rendered page per locale cookie and device class, then
invalidates it by tag. Uses the in-memory backend unless
RENDERCACHE_BACKEND selects another one.

Usage:
    export RENDERCACHE_BACKEND=redis RENDERCACHE_REDIS_URL=redis://localhost:6379/0
    python examples/basic_page_cache.py
"""

from rendercache import (
    CacheEntry,
    CacheHandlerConfig,
    PageCache,
    PageValue,
    RenderContext,
    create_cache_backend_from_env,
)


async def main() -> None:
    config = CacheHandlerConfig().with_cookies("locale").with_device_split()
    page_cache = PageCache(create_cache_backend_from_env(), config=config)

    handler = page_cache.for_request(
        RenderContext(
            headers={"cookie": "locale=en", "user-agent": "Mozilla/5.0 (iPhone)"},
            is_app_router=True,
        )
    )
    print("key:", handler.page_cache_key("/blog"))

    await handler.set(
        "/blog",
        CacheEntry(
            value=PageValue(html="<h1>Blog</h1>", page_data="0:[]"),
            headers={"x-next-cache-tags": "posts"},
            revalidate=60,
        ),
    )
    print("cached:", await handler.get("/blog") is not None)

    await page_cache.revalidate_tag("posts")
    print("after revalidate:", await handler.get("/blog"))


if __name__ == "__main__":
    import asyncio

    asyncio.run(main())
