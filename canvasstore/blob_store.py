"""
Blob store backends.

A blob store is the only durable medium: keys are slash-separated paths,
values are JSON documents. Three backends ship here:

- MemoryBlobStore: dict in process memory (tests, throwaway stores)
- LocalBlobStore: one file per key under a root directory
- GCSBlobStore: Google Cloud Storage JSON API over httpx

All of them satisfy BlobStoreProtocol. Reads of an absent key return None,
deletes of an absent key succeed, and prefix listings skip objects that fail
to parse. Transport errors are not caught here.
"""

import asyncio
import json
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any, Callable, Optional
from urllib.parse import quote, urlparse

import httpx

from .errors import CorruptDocumentError

logger = logging.getLogger(__name__)

# Timeouts for the GCS backend
DEFAULT_TIMEOUT = 30.0

# Suffix of in-flight local writes, never listed
_TMP_SUFFIX = ".tmp"


def _encode(value: Any) -> bytes:
    return json.dumps(value, ensure_ascii=False).encode("utf-8")


def _decode(path: str, raw: bytes) -> Any:
    try:
        return json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise CorruptDocumentError(path, str(e)) from e


async def _parse_all(store, paths: list[str]) -> list[Any]:
    """Read every path concurrently, dropping corrupt or vanished objects."""

    async def read_one(path: str) -> Optional[Any]:
        try:
            return await store.read_json(path)
        except CorruptDocumentError as e:
            logger.warning("Skipping unparsable object: %s", e)
            return None

    results = await asyncio.gather(*(read_one(p) for p in paths))
    return [r for r in results if r is not None]


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------

class MemoryBlobStore:
    """
    Blob store held in a dict.

    Values are kept serialized so that a stored document can never alias a
    caller's object, and so tests can plant corrupt bytes in ``objects``.
    Every call yields to the event loop once, like a real transport would.
    """

    def __init__(self):
        self.objects: dict[str, bytes] = {}

    async def read_json(self, path: str) -> Optional[Any]:
        await asyncio.sleep(0)
        raw = self.objects.get(path)
        if raw is None:
            return None
        return _decode(path, raw)

    async def write_json(self, path: str, value: Any) -> None:
        await asyncio.sleep(0)
        self.objects[path] = _encode(value)

    async def exists(self, path: str) -> bool:
        await asyncio.sleep(0)
        return path in self.objects

    async def delete_file(self, path: str) -> None:
        await asyncio.sleep(0)
        self.objects.pop(path, None)

    async def delete_by_prefix(self, prefix: str) -> None:
        await asyncio.sleep(0)
        for key in [k for k in self.objects if k.startswith(prefix)]:
            del self.objects[key]

    async def list_json_files(self, prefix: str) -> list[Any]:
        keys = sorted(k for k in self.objects if k.startswith(prefix))
        return await _parse_all(self, keys)

    async def close(self) -> None:
        pass


# ---------------------------------------------------------------------------
# Local filesystem
# ---------------------------------------------------------------------------

class LocalBlobStore:
    """
    Blob store backed by a directory tree, one file per key.

    Filesystem calls run in a worker thread so the event loop is never
    blocked. Writes land in a temp file first and are renamed into place,
    so a reader sees either the old or the new document.
    """

    def __init__(self, root: Path):
        """
        Args:
            root: Directory holding the data; created on demand
        """
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    def _resolve(self, key: str) -> Path:
        """Map a key to a file path, refusing anything that escapes the root."""
        if not key or key.startswith("/"):
            raise ValueError(f"Invalid blob key: {key!r}")
        parts = key.split("/")
        if any(p in ("", ".", "..") for p in parts):
            raise ValueError(f"Invalid blob key: {key!r}")
        return self._root.joinpath(*parts)

    def _keys_with_prefix(self, prefix: str) -> list[str]:
        # Walk only the deepest directory the prefix pins down
        base = prefix.rsplit("/", 1)[0] if "/" in prefix else ""
        start = self._root.joinpath(*base.split("/")) if base else self._root
        if not start.is_dir():
            return []
        keys = []
        for dirpath, _dirnames, filenames in os.walk(start):
            for name in filenames:
                if name.endswith(_TMP_SUFFIX):
                    continue
                key = Path(dirpath, name).relative_to(self._root).as_posix()
                if key.startswith(prefix):
                    keys.append(key)
        return sorted(keys)

    def _read(self, key: str) -> Optional[bytes]:
        try:
            return self._resolve(key).read_bytes()
        except FileNotFoundError:
            return None

    def _write(self, key: str, data: bytes) -> None:
        path = self._resolve(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=path.parent, suffix=_TMP_SUFFIX)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp, path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def _delete_prefix(self, prefix: str) -> None:
        if prefix.endswith("/"):
            directory = self._resolve(prefix.rstrip("/"))
            if directory.is_dir():
                shutil.rmtree(directory)
            return
        for key in self._keys_with_prefix(prefix):
            self._resolve(key).unlink(missing_ok=True)

    async def read_json(self, path: str) -> Optional[Any]:
        raw = await asyncio.to_thread(self._read, path)
        if raw is None:
            return None
        return _decode(path, raw)

    async def write_json(self, path: str, value: Any) -> None:
        await asyncio.to_thread(self._write, path, _encode(value))

    async def exists(self, path: str) -> bool:
        return await asyncio.to_thread(self._resolve(path).is_file)

    async def delete_file(self, path: str) -> None:
        await asyncio.to_thread(self._resolve(path).unlink, missing_ok=True)

    async def delete_by_prefix(self, prefix: str) -> None:
        await asyncio.to_thread(self._delete_prefix, prefix)

    async def list_json_files(self, prefix: str) -> list[Any]:
        keys = await asyncio.to_thread(self._keys_with_prefix, prefix)
        return await _parse_all(self, keys)

    async def close(self) -> None:
        pass


# ---------------------------------------------------------------------------
# Google Cloud Storage
# ---------------------------------------------------------------------------

class _BearerAuth(httpx.Auth):
    """Sets the Authorization header from a token provider on every request."""

    def __init__(self, token_provider: Callable[[], str]):
        self._token_provider = token_provider

    def auth_flow(self, request):
        request.headers["Authorization"] = f"Bearer {self._token_provider()}"
        yield request


class GCSBlobStore:
    """
    Blob store on a Google Cloud Storage bucket via the JSON API.

    Authentication is a bearer access token obtained outside this class
    (metadata server, gcloud, workload identity). A fixed ``token`` stops
    working when it expires, typically after an hour; long-running
    processes should pass ``token_provider`` instead, which is called for
    every request and may cache and refresh as it sees fit. Point
    ``api_url`` at a local emulator for development.
    """

    def __init__(
        self,
        bucket: str,
        *,
        token: str | None = None,
        token_provider: Callable[[], str] | None = None,
        api_url: str = "https://storage.googleapis.com",
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._bucket = bucket
        self._api_url = api_url.rstrip("/")

        # Refuse non-HTTPS for remote APIs (bearer token would be sent in cleartext)
        if not self._api_url.startswith("https://"):
            host = urlparse(self._api_url).hostname or ""
            if host not in ("localhost", "127.0.0.1", "::1"):
                raise ValueError(
                    f"GCS API URL must use HTTPS (got {self._api_url}). "
                    "Use HTTPS to protect credentials, or use localhost for an emulator."
                )

        if token and token_provider:
            raise ValueError("Pass either token or token_provider, not both")
        auth = None
        if token_provider is not None:
            auth = _BearerAuth(token_provider)
        elif token:
            auth = _BearerAuth(lambda: token)

        self._client = httpx.AsyncClient(
            base_url=self._api_url,
            auth=auth,
            timeout=timeout,
            transport=transport,
        )

    def _object_url(self, path: str) -> str:
        return f"/storage/v1/b/{self._bucket}/o/{quote(path, safe='')}"

    async def _list_names(self, prefix: str) -> list[str]:
        names: list[str] = []
        params: dict[str, str] = {"prefix": prefix, "fields": "items(name),nextPageToken"}
        while True:
            resp = await self._client.get(f"/storage/v1/b/{self._bucket}/o", params=params)
            resp.raise_for_status()
            data = resp.json()
            names.extend(item["name"] for item in data.get("items", []))
            page_token = data.get("nextPageToken")
            if not page_token:
                return names
            params["pageToken"] = page_token

    async def read_json(self, path: str) -> Optional[Any]:
        resp = await self._client.get(self._object_url(path), params={"alt": "media"})
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        return _decode(path, resp.content)

    async def write_json(self, path: str, value: Any) -> None:
        resp = await self._client.post(
            f"/upload/storage/v1/b/{self._bucket}/o",
            params={"uploadType": "media", "name": path},
            content=_encode(value),
            headers={"Content-Type": "application/json"},
        )
        resp.raise_for_status()

    async def exists(self, path: str) -> bool:
        resp = await self._client.get(self._object_url(path), params={"fields": "name"})
        if resp.status_code == 404:
            return False
        resp.raise_for_status()
        return True

    async def delete_file(self, path: str) -> None:
        resp = await self._client.delete(self._object_url(path))
        # 404 is fine, already gone
        if resp.status_code != 404:
            resp.raise_for_status()

    async def delete_by_prefix(self, prefix: str) -> None:
        names = await self._list_names(prefix)
        await asyncio.gather(*(self.delete_file(n) for n in names))
        if names:
            logger.debug("Deleted %d object(s) under %s", len(names), prefix)

    async def list_json_files(self, prefix: str) -> list[Any]:
        names = await self._list_names(prefix)
        return await _parse_all(self, names)

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()
