"""
Shared fixtures for rendercache tests.

Provides:
- an in-process fake of the boto3 S3 client (paginated listing, object
  tagging, batch delete, botocore not-found errors)
- fakeredis-backed async clients, optionally emulating RediSearch tag queries
"""

from __future__ import annotations

import io
import re
import threading
from urllib.parse import parse_qsl

import pytest
from botocore.exceptions import ClientError
from fakeredis import aioredis
from redis.exceptions import ResponseError


def _client_error(code: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class FakeS3Client:
    """Synchronous stand-in for ``boto3.client("s3")`` keeping objects in a dict."""

    def __init__(self, *, page_size: int = 2) -> None:
        self.objects: dict[str, dict] = {}
        self.page_size = page_size
        self.list_calls: list[dict] = []
        self.delete_calls: list[list[str]] = []
        self.fail_get_with: str | None = None
        self.fail_delete_containing: set[str] = set()
        self.reject_delete_keys: set[str] = set()
        self.vanish_before_tagging: set[str] = set()
        self._lock = threading.Lock()

    def put_object(self, *, Bucket, Key, Body, ContentType=None, CacheControl=None, Tagging=None):
        with self._lock:
            self.objects[Key] = {
                "Body": Body,
                "ContentType": ContentType,
                "CacheControl": CacheControl,
                "Tagging": Tagging,
            }
        return {}

    def get_object(self, *, Bucket, Key):
        if self.fail_get_with:
            raise _client_error(self.fail_get_with, "GetObject")
        row = self.objects.get(Key)
        if row is None:
            raise _client_error("NoSuchKey", "GetObject")
        return {"Body": io.BytesIO(row["Body"])}

    def get_object_tagging(self, *, Bucket, Key):
        if Key in self.vanish_before_tagging:
            with self._lock:
                self.objects.pop(Key, None)
        row = self.objects.get(Key)
        if row is None:
            raise _client_error("NoSuchKey", "GetObjectTagging")
        pairs = parse_qsl(row["Tagging"] or "")
        return {"TagSet": [{"Key": key, "Value": value} for key, value in pairs]}

    def list_objects_v2(self, *, Bucket, Prefix="", Delimiter=None, ContinuationToken=None):
        self.list_calls.append(
            {"Prefix": Prefix, "Delimiter": Delimiter, "ContinuationToken": ContinuationToken}
        )
        with self._lock:
            keys = sorted(key for key in self.objects if key.startswith(Prefix))
        if Delimiter:
            keys = [key for key in keys if Delimiter not in key[len(Prefix) :]]
        start = int(ContinuationToken or 0)
        response: dict = {"Contents": [{"Key": key} for key in keys[start : start + self.page_size]]}
        if start + self.page_size < len(keys):
            response["NextContinuationToken"] = str(start + self.page_size)
        return response

    def delete_objects(self, *, Bucket, Delete):
        keys = [item["Key"] for item in Delete["Objects"]]
        with self._lock:
            self.delete_calls.append(keys)
        if self.fail_delete_containing.intersection(keys):
            raise _client_error("InternalError", "DeleteObjects")
        rejected = [key for key in keys if key in self.reject_delete_keys]
        deleted = [key for key in keys if key not in self.reject_delete_keys]
        with self._lock:
            for key in deleted:
                self.objects.pop(key, None)
        response: dict = {"Deleted": [{"Key": key} for key in deleted]}
        if rejected:
            response["Errors"] = [
                {"Key": key, "Code": "AccessDenied", "Message": "Access Denied"}
                for key in rejected
            ]
        return response


class SearchableFakeRedis:
    """fakeredis async client with minimal ``FT.CREATE``/``FT.SEARCH`` support."""

    _QUERY_RE = re.compile(r"^@tags:\{(.*)\}$")

    def __init__(self) -> None:
        self._inner = aioredis.FakeRedis(decode_responses=True)
        self.indexes: set[str] = set()
        self.index_prefixes: dict[str, tuple[str, ...]] = {}

    def __getattr__(self, name):
        return getattr(self._inner, name)

    async def execute_command(self, *args):
        command = args[0]
        if command == "FT.CREATE":
            if args[1] in self.indexes:
                raise ResponseError("Index already exists")
            self.indexes.add(args[1])
            prefixes: tuple[str, ...] = ()
            if "PREFIX" in args:
                at = args.index("PREFIX")
                prefixes = tuple(args[at + 2 : at + 2 + int(args[at + 1])])
            self.index_prefixes[args[1]] = prefixes
            return "OK"
        if command == "FT.SEARCH":
            match = self._QUERY_RE.match(args[2])
            assert match is not None
            tag = re.sub(r"\\(.)", r"\1", match.group(1))
            offset, count = int(args[5]), int(args[6])
            prefixes = self.index_prefixes.get(args[1], ())
            matched = []
            async for key in self._inner.scan_iter(match="*"):
                if prefixes and not key.startswith(prefixes):
                    continue
                if await self._inner.type(key) != "hash":
                    continue
                tags = (await self._inner.hget(key, "tags") or "").split(",")
                if tag in tags:
                    matched.append(key)
            matched.sort()
            return [len(matched), *matched[offset : offset + count]]
        return await self._inner.execute_command(*args)


@pytest.fixture
def fake_s3() -> FakeS3Client:
    return FakeS3Client()


@pytest.fixture
def make_redis():
    """Factory for fresh fakeredis clients; call inside the running loop."""

    def factory(*, searchable: bool = False):
        if searchable:
            return SearchableFakeRedis()
        return aioredis.FakeRedis(decode_responses=True)

    return factory
