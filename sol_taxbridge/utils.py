"""Caching, JSON and number helpers shared by the ingestion and provider layers."""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from decimal import Decimal
import hashlib
import json
from pathlib import Path
import threading
from typing import Any, Iterable, Iterator

import httpx

try:  # pragma: no cover
    import orjson
except ImportError:  # pragma: no cover - the "speed" extra is not installed
    orjson = None  # type: ignore


CACHE_ROOT = Path("./cache")
LAMPORTS_PER_SOL = Decimal("1000000000")
SOL_QUANTUM = Decimal("0.000000001")


def ensure_cache_dir(*parts: str) -> Path:
    """Return a cache directory ensuring it exists."""

    path = CACHE_ROOT.joinpath(*parts)
    path.mkdir(parents=True, exist_ok=True)
    return path


def json_dumps(data: Any) -> str:
    if orjson is not None:  # pragma: no cover - executed when orjson available
        return orjson.dumps(data, default=str).decode("utf-8")
    return json.dumps(data, default=str)


def json_loads(data: str) -> Any:
    if orjson is not None:  # pragma: no cover
        return orjson.loads(data)
    return json.loads(data)


def sha1_digest(value: str) -> str:
    return hashlib.sha1(value.encode("utf-8")).hexdigest()


def write_jsonl(path: Path, records: Iterable[Any], *, mode: str = "a") -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open(mode, encoding="utf-8") as fh:
        for item in records:
            fh.write(json_dumps(item))
            fh.write("\n")


def read_jsonl(path: Path) -> Iterator[Any]:
    """Yield one decoded record per non-blank line; a missing file yields nothing."""

    if not path.exists():
        return
    with path.open("r", encoding="utf-8") as fh:
        for line in filter(None, (raw.strip() for raw in fh)):
            yield json_loads(line)


def lamports_to_sol(value: int | float | Decimal) -> Decimal:
    return (Decimal(str(value)) / LAMPORTS_PER_SOL).quantize(SOL_QUANTUM)


def to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def from_unix(ts: int | float) -> datetime:
    return datetime.fromtimestamp(ts, tz=timezone.utc)


def short_sig(signature: str) -> str:
    return f"{signature[:8]}..." if len(signature) > 8 else signature


SECRET_PARAMS = ("api-key", "key")


def redact_api_key(url: str) -> str:
    try:
        parsed = httpx.URL(url)
    except httpx.InvalidURL:
        return url
    for name in SECRET_PARAMS:
        if name in parsed.params:
            parsed = parsed.copy_set_param(name, "REDACTED")
    return str(parsed)


def run_async(coro):
    """Run ``coro`` to completion from synchronous code.

    When an event loop is already running in this thread the coroutine is
    executed on a private loop in a worker thread.
    """

    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)

    result_container: dict[str, Any] = {}
    error_container: dict[str, BaseException] = {}

    def runner() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        try:
            result_container["result"] = loop.run_until_complete(coro)
        except BaseException as exc:  # pragma: no cover - re-raised below
            error_container["error"] = exc
        finally:
            loop.close()

    thread = threading.Thread(target=runner)
    thread.start()
    thread.join()
    if "error" in error_container:
        raise error_container["error"]
    return result_container["result"]
