from abc import ABC, abstractmethod
import asyncio
import logging
import shutil
from pathlib import Path
from typing import Dict, Optional
from urllib.parse import unquote, urlparse
import requests

from app.internal.errors import FetchFailure

logger = logging.getLogger(__name__)


def file_name(uri: str) -> str:
    parsed = urlparse(uri)
    name = Path(unquote(parsed.path)).name
    if not name:
        raise FetchFailure(uri, "uri has no file name")
    return name


class AbstractFileFetcher(ABC):
    """
    Copies a remote or local file into a directory of the job
    workspace and returns the local path.
    """

    @abstractmethod
    def fetch_sync(self, uri: str, directory: Path) -> Path:
        pass

    async def fetch(self, uri: str, directory: Path) -> Path:
        # Fetches block on disk or network, keep them off the event loop
        return await asyncio.to_thread(self.fetch_sync, uri, directory)


class LocalFileFetcher(AbstractFileFetcher):
    def fetch_sync(self, uri: str, directory: Path) -> Path:
        parsed = urlparse(uri)
        source = Path(unquote(parsed.path) if parsed.scheme else uri)
        if not source.is_file():
            raise FetchFailure(uri, "file not found")
        destination = directory.joinpath(file_name(uri))
        try:
            directory.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(source, destination)
        except OSError as e:
            raise FetchFailure(uri, str(e)) from e
        return destination


class HTTPFileFetcher(AbstractFileFetcher):
    CHUNK_SIZE = 1024 * 1024

    def __init__(self, timeout: float = 60.0):
        self.timeout = timeout

    def fetch_sync(self, uri: str, directory: Path) -> Path:
        destination = directory.joinpath(file_name(uri))
        try:
            directory.mkdir(parents=True, exist_ok=True)
            with requests.get(uri, stream=True, timeout=self.timeout) as res:
                res.raise_for_status()
                with open(destination, "wb") as f:
                    for chunk in res.iter_content(self.CHUNK_SIZE):
                        f.write(chunk)
        except (requests.RequestException, OSError) as e:
            raise FetchFailure(uri, str(e)) from e
        return destination


class SchemeFileFetcher(AbstractFileFetcher):
    """
    Dispatches on the uri scheme. Bare paths are local files.
    """

    def __init__(
        self, fetchers: Optional[Dict[str, AbstractFileFetcher]] = None
    ):
        if fetchers is None:
            local = LocalFileFetcher()
            http = HTTPFileFetcher()
            fetchers = {"": local, "file": local, "http": http, "https": http}
        self.fetchers = fetchers

    def fetch_sync(self, uri: str, directory: Path) -> Path:
        scheme = urlparse(uri).scheme.lower()
        fetcher = self.fetchers.get(scheme)
        if fetcher is None:
            raise FetchFailure(uri, f"scheme '{scheme}' not supported")
        logger.debug(f"fetching {uri} into {directory}")
        return fetcher.fetch_sync(uri, directory)
