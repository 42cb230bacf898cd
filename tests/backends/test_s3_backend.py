from __future__ import annotations

import asyncio
import json
import logging

import pytest
from botocore.exceptions import ClientError

from rendercache import CacheEntry, FetchValue, PageValue, RenderContext, RouteValue
from rendercache.backends.s3 import S3CacheBackend, build_tagging

APP_ROUTER = RenderContext(is_app_router=True)
PAGES_ROUTER = RenderContext()


def run_async(coro):
    return asyncio.run(coro)


def page(tags: str = "", *, payload="1:[\"$\",\"p\",null,{}]", revalidate: int | None = 60) -> CacheEntry:
    headers = {"x-next-cache-tags": tags} if tags else {}
    return CacheEntry(
        value=PageValue(html="<html>hi</html>", page_data=payload, status=200),
        headers=headers,
        revalidate=revalidate,
        last_modified=1_000,
    )


def test_build_tagging_encodes_indexed_keys():
    assert build_tagging(["a", "b c"]) == "revalidateTag0=a&revalidateTag1=b+c"


def test_build_tagging_caps_object_tags():
    tagging = build_tagging([f"t{i}" for i in range(12)])
    assert "revalidateTag9=t9" in tagging
    assert "revalidateTag10" not in tagging


def test_page_round_trip_with_app_router(fake_s3):
    backend = S3CacheBackend("bucket", client=fake_s3)
    entry = page("posts,_N_T_/blog")

    async def scenario() -> CacheEntry | None:
        await backend.set("/blog", "variant", entry, APP_ROUTER)
        return await backend.get("/blog", "variant")

    restored = run_async(scenario())

    assert restored is not None
    assert restored.kind == "PAGE"
    assert restored.value.html == entry.value.html
    assert restored.value.page_data == entry.value.page_data
    assert sorted(fake_s3.objects) == [
        "/blog/variant.html",
        "/blog/variant.json",
        "/blog/variant.rsc",
    ]
    rsc = fake_s3.objects["/blog/variant.rsc"]
    assert rsc["Body"].decode("utf-8") == entry.value.page_data
    assert rsc["ContentType"] == "text/x-component"
    assert fake_s3.objects["/blog/variant.html"]["ContentType"] == "text/html"
    for row in fake_s3.objects.values():
        assert row["CacheControl"] == "max-age=60"
        assert row["Tagging"] == "revalidateTag0=posts&revalidateTag1=_N_T_%2Fblog"


def test_page_without_app_router_skips_rsc(fake_s3):
    backend = S3CacheBackend("bucket", client=fake_s3)
    run_async(backend.set("/about", "k", page(revalidate=None), PAGES_ROUTER))

    assert sorted(fake_s3.objects) == ["/about/k.html", "/about/k.json"]
    assert fake_s3.objects["/about/k.json"]["CacheControl"] is None
    assert fake_s3.objects["/about/k.json"]["Tagging"] is None


def test_route_and_fetch_write_json_only(fake_s3):
    backend = S3CacheBackend("bucket", client=fake_s3)
    route = CacheEntry(value=RouteValue(body="{}"), headers={"x-next-cache-tags": "api"})
    fetch = CacheEntry(
        value=FetchValue(data={"n": 1}),
        headers={"x-next-cache-tags": "ignored"},
        tags=["products"],
    )

    async def scenario() -> None:
        await backend.set("/api", "route", route, APP_ROUTER)
        await backend.set("fetch", "abc", fetch, APP_ROUTER)

    run_async(scenario())

    assert sorted(fake_s3.objects) == ["/api/route.json", "fetch/abc.json"]
    assert fake_s3.objects["/api/route.json"]["Tagging"] == "revalidateTag0=api"
    assert fake_s3.objects["fetch/abc.json"]["Tagging"] == "revalidateTag0=products"
    stored = json.loads(fake_s3.objects["fetch/abc.json"]["Body"])
    assert stored["value"] == {"kind": "FETCH", "data": {"n": 1}, "url": None}


def test_get_missing_returns_none(fake_s3):
    backend = S3CacheBackend("bucket", client=fake_s3)
    assert run_async(backend.get("/nope", "k")) is None


def test_get_propagates_other_errors(fake_s3):
    backend = S3CacheBackend("bucket", client=fake_s3)
    fake_s3.fail_get_with = "AccessDenied"
    with pytest.raises(ClientError):
        run_async(backend.get("/blog", "k"))


def test_delete_then_get_is_miss(fake_s3):
    backend = S3CacheBackend("bucket", client=fake_s3)

    async def scenario() -> CacheEntry | None:
        await backend.set("/blog", "k", page("posts"), APP_ROUTER)
        await backend.delete("/blog", "k")
        await backend.delete("/blog", "never-written")
        return await backend.get("/blog", "k")

    assert run_async(scenario()) is None
    assert fake_s3.objects == {}


def test_revalidate_tag_removes_only_tagged_entries_across_pages(fake_s3):
    backend = S3CacheBackend("bucket", client=fake_s3)

    async def scenario() -> None:
        await backend.set("/blog", "a", page("posts"), APP_ROUTER)
        await backend.set("/blog", "b", page("posts,featured"), PAGES_ROUTER)
        await backend.set("/shop", "c", page("products"), APP_ROUTER)
        await backend.set(
            "fetch", "d", CacheEntry(value=FetchValue(data=1), tags=["posts"]), APP_ROUTER
        )
        await backend.revalidate_tag("posts", None, [])

    run_async(scenario())

    assert sorted(fake_s3.objects) == ["/shop/c.html", "/shop/c.json", "/shop/c.rsc"]
    assert len(fake_s3.list_calls) > 1
    assert all(call["Prefix"] == "" for call in fake_s3.list_calls)


def test_revalidate_tag_honors_allow_filter(fake_s3):
    backend = S3CacheBackend("bucket", client=fake_s3)

    async def scenario() -> None:
        await backend.set("/blog", "blog-mobile", page("posts"), APP_ROUTER)
        await backend.set("/blog", "blog-desktop", page("posts"), APP_ROUTER)
        await backend.revalidate_tag("posts", None, ["blog-mobile"])

    run_async(scenario())

    assert sorted(fake_s3.objects) == [
        "/blog/blog-desktop.html",
        "/blog/blog-desktop.json",
        "/blog/blog-desktop.rsc",
    ]


def test_path_form_tag_deletes_by_path(fake_s3):
    backend = S3CacheBackend("bucket", client=fake_s3)

    async def scenario() -> None:
        await backend.set("/blog", "a", page(), APP_ROUTER)
        await backend.set("/blog/post", "b", page(), APP_ROUTER)
        await backend.revalidate_tag("_N_T_/blog", None, [])

    run_async(scenario())

    assert sorted(fake_s3.objects) == ["/blog/post/b.html", "/blog/post/b.json", "/blog/post/b.rsc"]
    assert fake_s3.list_calls[0]["Prefix"] == "/blog/"
    assert fake_s3.list_calls[0]["Delimiter"] == "/"


def test_delete_all_by_path_with_filter_keeps_sibling_variants(fake_s3):
    backend = S3CacheBackend("bucket", client=fake_s3)
    fake_s3.objects["/blog/notes.txt"] = {"Body": b"x", "Tagging": None}

    async def scenario() -> None:
        for variant in ("blog", "blog-mobile", "blog-tablet"):
            await backend.set("/blog", variant, page(), APP_ROUTER)
        await backend.delete_all_by_path("/blog", None, ["blog-mobile"])

    run_async(scenario())

    remaining = sorted(fake_s3.objects)
    assert "/blog/blog-mobile.json" not in remaining
    assert "/blog/blog-mobile.rsc" not in remaining
    assert "/blog/blog.json" in remaining
    assert "/blog/blog-tablet.html" in remaining
    assert "/blog/notes.txt" in remaining


def test_delete_objects_chunks_and_tolerates_failed_chunk(fake_s3):
    backend = S3CacheBackend("bucket", client=fake_s3)
    keys = [f"k{i:04d}.json" for i in range(2500)]
    for key in keys:
        fake_s3.objects[key] = {"Body": b"{}", "Tagging": None}
    fake_s3.fail_delete_containing = {"k0000.json"}

    run_async(backend.delete_objects(keys))

    assert sorted(len(call) for call in fake_s3.delete_calls) == [500, 1000, 1000]
    assert sorted(fake_s3.objects) == keys[:1000]


def test_set_propagates_write_failure():
    class _FailingHtmlClient:
        def put_object(self, **kwargs):
            if kwargs["Key"].endswith(".html"):
                raise ClientError({"Error": {"Code": "SlowDown"}}, "PutObject")
            return {}

    backend = S3CacheBackend("bucket", client=_FailingHtmlClient())
    with pytest.raises(ClientError):
        run_async(backend.set("/blog", "k", page(), APP_ROUTER))


def test_bucket_name_is_required(fake_s3):
    with pytest.raises(ValueError):
        S3CacheBackend("", client=fake_s3)


def test_object_removed_before_tag_lookup_counts_as_untagged(fake_s3):
    backend = S3CacheBackend("bucket", client=fake_s3)

    async def scenario() -> None:
        await backend.set("/blog", "a", page("posts"), APP_ROUTER)
        await backend.set("/blog", "gone", page("posts"), PAGES_ROUTER)
        fake_s3.vanish_before_tagging = {"/blog/gone.html", "/blog/gone.json"}
        await backend.revalidate_tag("posts", None, [])

    run_async(scenario())

    assert fake_s3.objects == {}
    deleted = [key for call in fake_s3.delete_calls for key in call]
    assert sorted(deleted) == ["/blog/a.html", "/blog/a.json", "/blog/a.rsc"]


def test_per_key_delete_errors_are_logged(fake_s3, caplog):
    backend = S3CacheBackend("bucket", client=fake_s3)
    fake_s3.reject_delete_keys = {"/blog/a.html"}

    async def scenario() -> None:
        await backend.set("/blog", "a", page("posts"), APP_ROUTER)
        await backend.revalidate_tag("posts", None, [])

    with caplog.at_level(logging.WARNING, logger="rendercache.backends.s3"):
        run_async(scenario())

    assert sorted(fake_s3.objects) == ["/blog/a.html"]
    assert any(
        "Failed to delete cache object /blog/a.html" in record.getMessage()
        for record in caplog.records
    )
