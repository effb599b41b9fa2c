# secufix/fetcher.py
import re
import base64
import logging
from pathlib import Path

import requests

from .errors import InvalidRepositoryError, FetchError
from .models import ManifestFile, MANIFEST_ECOSYSTEMS
from .parser import UNSUPPORTED_MANIFESTS

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"
GITHUB_URL_PATTERN = re.compile(r'github\.com[/:]([^/]+)/([^/?#]+)')

# Supported manifests plus the ones we recognise and report as unsupported
RECOGNIZED_MANIFESTS = set(MANIFEST_ECOSYSTEMS) | set(UNSUPPORTED_MANIFESTS)


def parse_repo_url(repo_url: str) -> tuple[str, str]:
    """Extracts (owner, repo) from a GitHub URL such as https://github.com/owner/repo.git."""
    if not repo_url or not isinstance(repo_url, str):
        raise InvalidRepositoryError("GitHub URL is required")
    match = GITHUB_URL_PATTERN.search(repo_url.strip())
    if not match:
        raise InvalidRepositoryError(f"Invalid GitHub URL: {repo_url}")
    owner, repo = match.group(1), match.group(2)
    if repo.endswith('.git'):
        repo = repo[:-len('.git')]
    if not owner or not repo:
        raise InvalidRepositoryError(f"Invalid GitHub URL: {repo_url}")
    return owner, repo


def is_recognized_manifest(file_name: str) -> bool:
    return file_name in RECOGNIZED_MANIFESTS or file_name.endswith('.gradle')


class GitHubFetcher:
    """Retrieves dependency manifests from the root of a GitHub repository via the contents API."""

    def __init__(self, token: str | None = None, session: requests.Session | None = None, timeout: float = 30):
        self.session = session or requests.Session()
        self.timeout = timeout
        self.session.headers.update({'Accept': 'application/vnd.github.v3+json'})
        if token:
            self.session.headers['Authorization'] = f"token {token}"

    def _get(self, url: str):
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except requests.exceptions.RequestException as e:
            raise FetchError(f"Failed to fetch {url}: {e}") from e
        except ValueError as e:
            raise FetchError(f"Invalid JSON returned by {url}: {e}") from e

    def fetch_file_content(self, owner: str, repo: str, path: str) -> str:
        logger.info(f"Fetching content of {path} from {owner}/{repo}...")
        data = self._get(f"{GITHUB_API_URL}/repos/{owner}/{repo}/contents/{path}")
        try:
            content = base64.b64decode(data["content"]).decode('utf-8')
        except (KeyError, TypeError, ValueError) as e:  # binascii.Error and UnicodeDecodeError are ValueErrors
            raise FetchError(f"Failed to decode content of {path}: {e}") from e
        logger.info(f"Successfully fetched {path} ({len(content)} characters)")
        return content

    def fetch_manifests(self, owner: str, repo: str) -> list[ManifestFile]:
        logger.info(f"Fetching files from {owner}/{repo}...")
        listing = self._get(f"{GITHUB_API_URL}/repos/{owner}/{repo}/contents")
        if not isinstance(listing, list):
            raise FetchError(f"Unexpected contents listing for {owner}/{repo}")

        entries = [e for e in listing if isinstance(e, dict) and e.get("type", "file") == "file"
                   and is_recognized_manifest(e.get("name", ""))]
        logger.info(f"Found {len(entries)} dependency files: {[e['name'] for e in entries]}")
        if not entries:
            logger.warning("No dependency files found!")
            return []
        return [
            ManifestFile(name=e["name"], content=self.fetch_file_content(owner, repo, e.get("path", e["name"])),
                         path=e.get("path", e["name"]))
            for e in entries
        ]


def read_local_manifests(target: str | Path) -> list[ManifestFile]:
    """Reads recognised manifests from a local directory (top level only) or a single manifest file."""
    path = Path(target)
    if path.is_file():
        candidates = [path]
    elif path.is_dir():
        candidates = sorted(p for p in path.iterdir() if p.is_file() and is_recognized_manifest(p.name))
    else:
        raise FetchError(f"Path not found: {path}")

    manifests = []
    for candidate in candidates:
        try:
            content = candidate.read_text(encoding='utf-8')
        except (OSError, UnicodeDecodeError) as e:
            raise FetchError(f"Could not read {candidate}: {e}") from e
        manifests.append(ManifestFile(name=candidate.name, content=content, path=str(candidate)))
    logger.info(f"Found {len(manifests)} dependency files in {path}")
    return manifests
