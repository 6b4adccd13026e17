"""
Catalog access: repository manifests, plugin lists and package downloads.

A repository manifest points at one or more plugin lists; each plugin list
is a JSON array (or a single object) of plugin descriptors.
"""

from __future__ import annotations

import asyncio
import logging
import re
import threading
from pathlib import Path
from typing import Any

import httpx
from pydantic import ValidationError

from mosaic.errors import DownloadError
from mosaic.models import PluginDescriptor, Repository, RepositoryData
from mosaic.persistence import read_json, write_json

logger = logging.getLogger(__name__)

_GITHUB_BLOB = re.compile(r"^https://github\.com/([A-Za-z0-9-]+)/([A-Za-z0-9_.-]+)/(.*)$")


def convert_raw_git_url(url: str) -> str:
    """Rewrite ``github.com/<owner>/<repo>/<path>`` to raw.githubusercontent.com."""
    match = _GITHUB_BLOB.match(url)
    if match:
        owner, repo, path = match.groups()
        return f"https://raw.githubusercontent.com/{owner}/{repo}/{path}"
    return url


class CatalogClient:
    """Fetches catalog documents and plugin packages over HTTP.

    Args:
        timeout: Per-request timeout in seconds.
        transport: Optional httpx transport, used by tests.
    """

    def __init__(self, timeout: float = 30.0, transport: httpx.AsyncBaseTransport | None = None):
        self._client = httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            transport=transport,
        )

    async def _get(self, url: str) -> httpx.Response:
        target = convert_raw_git_url(url)
        try:
            response = await self._client.get(target)
        except httpx.TimeoutException as e:
            raise DownloadError(url, "request timed out") from e
        except httpx.HTTPError as e:
            raise DownloadError(url, str(e) or type(e).__name__) from e
        if not response.is_success:
            raise DownloadError(url, f"HTTP {response.status_code}", response.status_code)
        return response

    async def _get_json(self, url: str) -> Any:
        response = await self._get(url)
        try:
            return response.json()
        except ValueError as e:
            raise DownloadError(url, f"invalid JSON: {e}") from e

    async def fetch_repository(self, url: str) -> Repository:
        """Fetch and validate a repository manifest.

        Raises:
            DownloadError: Unreachable, non-2xx, or not a repository manifest.
        """
        data = await self._get_json(url)
        try:
            return Repository.model_validate(data)
        except ValidationError as e:
            raise DownloadError(url, f"not a repository manifest: {e.error_count()} error(s)") from e

    async def fetch_plugin_list(self, url: str) -> list[PluginDescriptor]:
        """Fetch a plugin list. Malformed entries are skipped."""
        data = await self._get_json(url)
        items = data if isinstance(data, list) else [data]
        descriptors: list[PluginDescriptor] = []
        for item in items:
            try:
                descriptors.append(PluginDescriptor.model_validate(item))
            except ValidationError as e:
                logger.warning(f"Skipping malformed plugin entry in {url}: {e.error_count()} error(s)")
        return descriptors

    async def get_repo_plugins(self, repository_url: str) -> list[PluginDescriptor]:
        """All plugins offered by a repository.

        Plugin lists are fetched concurrently. A failing list is logged and
        skipped. Descriptors are de-duplicated by package URL and tagged
        with *repository_url*.

        Raises:
            DownloadError: The repository manifest itself could not be fetched.
        """
        repository = await self.fetch_repository(repository_url)
        results = await asyncio.gather(
            *(self.fetch_plugin_list(u) for u in repository.plugin_lists),
            return_exceptions=True,
        )

        seen: set[str] = set()
        plugins: list[PluginDescriptor] = []
        for list_url, result in zip(repository.plugin_lists, results):
            if isinstance(result, BaseException):
                if not isinstance(result, DownloadError):
                    raise result
                logger.warning(f"Skipping plugin list {list_url}: {result.message}")
                continue
            for descriptor in result:
                if descriptor.url in seen:
                    continue
                seen.add(descriptor.url)
                plugins.append(descriptor.model_copy(update={"repository_url": repository_url}))

        logger.info(f"Repository {repository.name}: {len(plugins)} plugin(s)")
        return plugins

    async def download(self, url: str) -> bytes:
        """Download raw package bytes.

        Raises:
            DownloadError: Unreachable or non-2xx.
        """
        response = await self._get(url)
        logger.debug(f"Downloaded {len(response.content)} bytes from {url}")
        return response.content

    async def aclose(self) -> None:
        await self._client.aclose()


class RepositoryStore:
    """JSON-backed list of repositories the user has added."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _load(self) -> list[RepositoryData]:
        raw = read_json(self.path, [])
        repos: list[RepositoryData] = []
        for item in raw if isinstance(raw, list) else []:
            try:
                repos.append(RepositoryData.model_validate(item))
            except ValidationError as e:
                logger.warning(f"Skipping malformed repository entry: {e.error_count()} error(s)")
        return repos

    def list(self) -> list[RepositoryData]:
        with self._lock:
            return self._load()

    def add(self, repository: RepositoryData) -> bool:
        """Add *repository*. Returns False if its URL is already present."""
        with self._lock:
            repos = self._load()
            if any(r.url == repository.url for r in repos):
                logger.warning(f"Repository with URL {repository.url} already exists")
                return False
            repos.append(repository)
            write_json(self.path, [r.model_dump(mode="json", by_alias=True) for r in repos])
        logger.info(f"Added repository {repository.name} ({repository.url})")
        return True

    def remove(self, url: str) -> bool:
        with self._lock:
            repos = self._load()
            remaining = [r for r in repos if r.url != url]
            if len(remaining) == len(repos):
                return False
            write_json(self.path, [r.model_dump(mode="json", by_alias=True) for r in remaining])
        logger.info(f"Removed repository {url}")
        return True
