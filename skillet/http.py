"""Shared HTTP client construction and capped streaming downloads."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path

import httpx

from skillet.config import get_config
from skillet.exceptions import ResolveError
from skillet.logging import get_logger

log = get_logger(__name__)

_SNIFF_BYTES = 8


@dataclass
class DownloadResult:
    path: Path
    final_url: str
    content_type: str
    size: int
    head: bytes = b""


def create_http_client() -> httpx.AsyncClient:
    """Create an AsyncClient configured from the network section of the config."""
    cfg = get_config()
    return httpx.AsyncClient(
        timeout=cfg.network.timeout_seconds,
        follow_redirects=True,
        headers={"User-Agent": cfg.network.user_agent},
    )


@asynccontextmanager
async def http_client(client: httpx.AsyncClient | None = None) -> AsyncIterator[httpx.AsyncClient]:
    """Yield the given client, or a fresh one that is closed on exit."""
    if client is not None:
        yield client
        return
    owned = create_http_client()
    try:
        yield owned
    finally:
        await owned.aclose()


async def download_to_file(
    client: httpx.AsyncClient,
    url: str,
    destination: Path,
    *,
    max_bytes: int,
    error_cls: type[ResolveError],
    label: str = "Archive",
) -> DownloadResult:
    """Stream ``url`` into ``destination``, aborting once ``max_bytes`` is exceeded.

    The partially written file is removed on any failure.
    """
    total = 0
    head = b""
    try:
        async with client.stream("GET", url, follow_redirects=True) as response:
            if not response.is_success:
                raise error_cls(
                    f"{label} request failed: {response.status_code} {response.reason_phrase}".rstrip()
                )
            with destination.open("wb") as out_file:
                async for chunk in response.aiter_bytes():
                    total += len(chunk)
                    if total > max_bytes:
                        raise error_cls(f"{label} download exceeds limit ({max_bytes} bytes)")
                    if len(head) < _SNIFF_BYTES:
                        head += chunk[: _SNIFF_BYTES - len(head)]
                    out_file.write(chunk)
            result = DownloadResult(
                path=destination,
                final_url=str(response.url),
                content_type=response.headers.get("content-type", ""),
                size=total,
                head=head,
            )
    except httpx.HTTPError as exc:
        destination.unlink(missing_ok=True)
        raise error_cls(f"Failed to fetch {label.lower()}: {exc}") from exc
    except ResolveError:
        destination.unlink(missing_ok=True)
        raise

    log.debug("Downloaded", url=url, final_url=result.final_url, size=total)
    return result
