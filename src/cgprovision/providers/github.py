"""GitHub release provider: tag lookup plus release-asset download."""
from __future__ import annotations

import logging
import os
import tempfile
from typing import Any, BinaryIO, Callable, Dict, List, Optional

import requests

from cgprovision.constants import Constants, ProviderNames
from cgprovision.common.errors import DecodeError, InvalidVersion, NetworkError, VersionNotFound
from cgprovision.common.http_client import HttpClient
from cgprovision.common.logging_utils import extra_context, is_debug_enabled
from cgprovision.common.platform_utils import archive_format, asset_name, executable_name
from cgprovision.versioning import Version, parse_version
from .archive import extract_entry
from .base import Provider, ProviderVars, require_string

logger = logging.getLogger(__name__)


def tag_matches(tag: str, version: Version) -> bool:
    """Return True if ``tag`` names ``version`` or a more specific release of it.

    Components are compared numerically, so "v1.2" matches "v1.2.3" but
    not "v1.20.0".
    """
    try:
        tag_version = parse_version(tag)
    except InvalidVersion:
        return False
    return tag_version.parts[: len(version.parts)] == version.parts


class GitHubProvider(Provider):
    """Releases published on GitHub as ``<repo>-<os>-<arch>`` archives.

    Supports optional authentication for the tags API via the GITHUB_TOKEN
    environment variable.
    """

    name = ProviderNames.GITHUB.value

    def __init__(self, http: HttpClient, token: Optional[str] = None):
        self.http = http
        self.token = token or os.environ.get(Constants.ENV_GITHUB_TOKEN)

    def _get_headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/vnd.github+json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def validate_vars(self, provider_vars: ProviderVars) -> List[str]:
        errors: List[str] = []
        require_string(provider_vars, "owner", errors)
        require_string(provider_vars, "repository", errors)
        return errors

    def list_tags(self, owner: str, repo: str) -> List[str]:
        """Return tag names of ``owner/repo``, newest first as GitHub lists them."""
        url = Constants.TAGS_URL.format(api=Constants.GITHUB_API_BASE, owner=owner, repo=repo)
        data: Any = self.http.fetch_json(
            url,
            max_age=Constants.VERSIONS_CACHE_MAX_AGE,
            headers=self._get_headers(),
        )
        if not isinstance(data, list):
            raise DecodeError(f"unexpected tag list for {owner}/{repo}")
        return [tag["name"] for tag in data if isinstance(tag, dict) and isinstance(tag.get("name"), str)]

    def find_tag(self, owner: str, repo: str, version: Version) -> str:
        for tag in self.list_tags(owner, repo):
            if tag_matches(tag, version):
                return tag
        raise VersionNotFound(f"no release of {owner}/{repo} matches version {version}")

    def find_exact_version(self, provider_vars: ProviderVars, version: Version) -> Version:
        tag = self.find_tag(provider_vars["owner"], provider_vars["repository"], version)
        return parse_version(tag)

    def asset_url(self, owner: str, repo: str, version: Version) -> str:
        return Constants.RELEASE_ASSET_URL.format(
            base=Constants.GITHUB_BASE,
            owner=owner,
            repo=repo,
            tag=f"v{version}",
            asset=asset_name(repo),
        )

    def download_binary(
        self,
        target: BinaryIO,
        provider_vars: ProviderVars,
        version: Version,
        progress: Optional[Callable[[int, int], None]] = None,
    ) -> None:
        owner, repo = provider_vars["owner"], provider_vars["repository"]
        url = self.asset_url(owner, repo, version)
        if is_debug_enabled(logger):
            logger.debug(
                "Downloading release asset",
                extra=extra_context(
                    event="download",
                    component="github_provider",
                    target=url,
                    version=str(version),
                ),
            )
        body = self.http.fetch_file(url, max_age=0, progress=progress)
        with tempfile.TemporaryFile() as archive:
            try:
                body.copy_to(archive)
            except requests.RequestException as exc:
                raise NetworkError(f"download {url}: {exc}") from exc
            archive.seek(0)
            extract_entry(archive, archive_format(), executable_name(repo), target)
