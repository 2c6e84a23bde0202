"""Archive downloads."""
from __future__ import annotations

from pathlib import Path
from typing import Protocol
import urllib.error
import urllib.request

from .errors import FetchError


class Fetcher(Protocol):
    def fetch(self, url: str, destination: Path) -> Path:
        """Download *url* to *destination* and return the written path."""
        ...


class UrllibFetcher:
    """:class:`Fetcher` streaming responses to disk with :mod:`urllib.request`."""

    def __init__(self, console, *, chunk_size: int = 1 << 20, user_agent: str = "winebuild") -> None:
        self._console = console
        self._chunk_size = chunk_size
        self._user_agent = user_agent

    def fetch(self, url: str, destination: Path) -> Path:
        self._console.info(f"Downloading {url}")
        destination.parent.mkdir(parents=True, exist_ok=True)
        req = urllib.request.Request(url, headers={"User-Agent": self._user_agent})
        try:
            with urllib.request.urlopen(req) as response, destination.open("wb") as handle:
                total = int(response.headers.get("Content-Length") or 0)
                received = 0
                while True:
                    chunk = response.read(self._chunk_size)
                    if not chunk:
                        break
                    handle.write(chunk)
                    received += len(chunk)
                    if total:
                        self._console.debug(f"{destination.name}: {received * 100 // total}% ({received}/{total} bytes)")
        except urllib.error.HTTPError as exc:
            raise FetchError(f"Failed to download {url}: HTTP {exc.code} {exc.reason}") from exc
        except urllib.error.URLError as exc:
            raise FetchError(f"Failed to download {url}: {exc.reason}") from exc
        except OSError as exc:
            raise FetchError(f"Failed to download {url}: {exc}") from exc
        return destination


__all__ = ["Fetcher", "UrllibFetcher"]
