"""Binary resource downloader (images and other non-HTML files)."""

from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlsplit

import httpx

from pagebroker.security.url_policy import AccessPolicy, ensure_url_allowed
from pagebroker.utils.errors import DownloadError
from pagebroker.utils.logger import get_logger

log = get_logger(__name__)

USER_AGENT = "pagebroker-fetch/0.1"


@dataclass(frozen=True)
class DownloadedResource:
    """Raw bytes of a downloaded resource plus what the server said about it."""

    url: str
    final_url: str
    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


def filename_from_url(url: str) -> str:
    """Last path segment of *url*, or "" for the root."""
    path = urlsplit(url).path
    return path.rstrip("/").rsplit("/", 1)[-1] if path.strip("/") else ""


def download_resource(
    url: str,
    policy: AccessPolicy,
    max_bytes: int,
    client: Optional[httpx.Client] = None,
    timeout: float = 30.0,
) -> DownloadedResource:
    """GET *url* and return its body, refusing bodies larger than *max_bytes*.

    ``max_bytes == 0`` disables the ceiling.
    """
    ensure_url_allowed(url, policy)
    url = url.strip()

    own_client = client is None
    if own_client:
        client = httpx.Client(timeout=timeout, follow_redirects=True)
    log.info("Downloading resource: %s", url)
    try:
        with client.stream("GET", url, headers={"User-Agent": USER_AGENT}) as resp:
            if not resp.is_success:
                raise DownloadError(f"bad status: {resp.status_code} {resp.reason_phrase}")
            data = _read_limited(resp, max_bytes)
            final_url = str(resp.url)
            content_type = resp.headers.get("content-type", "")
    except httpx.HTTPError as e:
        raise DownloadError(f"failed to download {url}: {e}") from e
    finally:
        if own_client:
            client.close()

    log.debug("Downloaded %d bytes from %s", len(data), final_url)
    return DownloadedResource(
        url=url,
        final_url=final_url,
        filename=filename_from_url(final_url),
        content_type=content_type,
        data=data,
    )


def _read_limited(resp: httpx.Response, max_bytes: int) -> bytes:
    buf = bytearray()
    for chunk in resp.iter_bytes():
        buf.extend(chunk)
        if max_bytes and len(buf) > max_bytes:
            raise DownloadError(f"resource exceeds maximum size of {max_bytes} bytes")
    return bytes(buf)
