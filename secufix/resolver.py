# secufix/resolver.py
import re
import logging
from dataclasses import dataclass
from functools import cmp_to_key

import requests
from packaging.version import parse as parse_version, InvalidVersion

from .config import ScanConfig
from .models import UNSPECIFIED_VERSION

logger = logging.getLogger(__name__)

NPM_REGISTRY_URL = "https://registry.npmjs.org/{name}"
PYPI_JSON_URL = "https://pypi.org/pypi/{name}/json"
MAVEN_SEARCH_URL = "https://search.maven.org/solrsearch/select"

# Only plain major.minor.patch releases are considered as upgrade targets
RELEASE_PATTERN = re.compile(r'^\d+\.\d+\.\d+$')

# Known-good versions for the supported package set. Maven entries are keyed by artifactId.
SECURE_VERSIONS = {
    "npm": {
        "express": "4.18.2",
        "lodash": "4.17.21",
        "axios": "1.6.2",
        "react": "18.2.0",
        "next": "14.0.3",
    },
    "pypi": {
        "Flask": "2.2.3",
        "requests": "2.31.0",
        "django": "4.2.7",
        "numpy": "1.26.1",
    },
    "maven": {
        "spring-core": "5.3.30",
        "jackson-databind": "2.15.3",
        "log4j-core": "2.20.0",
    },
}


def build_secure_table(overrides: dict | None = None) -> dict[str, dict[str, str]]:
    """Static table merged with per-ecosystem overrides from the config."""
    table = {ecosystem: dict(entries) for ecosystem, entries in SECURE_VERSIONS.items()}
    for ecosystem, entries in (overrides or {}).items():
        if not isinstance(entries, dict):
            logger.warning(f"Ignoring secure_versions override for '{ecosystem}': not a mapping.")
            continue
        table.setdefault(ecosystem, {}).update({str(k): str(v) for k, v in entries.items()})
    return table


# --- Version ordering strategies ---
# Lexicographic string comparison is the default: "1.10.0" < "1.9.0" under it.
# "semantic" swaps in packaging's PEP 440 ordering for a stricter comparison.

def lexicographic_compare(a: str, b: str) -> int:
    return (a > b) - (a < b)


def semantic_compare(a: str, b: str) -> int:
    try:
        va, vb = parse_version(a), parse_version(b)
    except InvalidVersion:
        return lexicographic_compare(a, b)
    return (va > vb) - (va < vb)


VERSION_ORDERINGS = {
    "lexicographic": lexicographic_compare,
    "semantic": semantic_compare,
}


def select_upgrade_version(versions: list[str], current_version: str, compare=lexicographic_compare) -> str | None:
    """
    Smallest strict major.minor.patch release greater than current_version; if
    none is greater, the largest published version. None when nothing is published.
    """
    if not versions:
        return None
    key = cmp_to_key(compare)
    newer = [v for v in versions if RELEASE_PATTERN.match(v) and compare(v, current_version) > 0]
    if newer:
        return min(newer, key=key)
    return max(versions, key=key)


def update_command(package_name: str, version: str, ecosystem: str) -> str:
    if ecosystem == "npm":
        return f"npm install {package_name}@{version}"
    elif ecosystem == "pypi":
        return f"pip install {package_name}=={version}"
    elif ecosystem == "maven":
        return f"mvn versions:use-dep-version -Dincludes={package_name} -DdepVersion={version}"
    return f"Upgrade {package_name} to {version}"


def fallback_command(package_name: str, ecosystem: str) -> str:
    if ecosystem == "npm":
        return f"npm install {package_name}@latest"
    elif ecosystem == "pypi":
        return f"pip install --upgrade {package_name}"
    elif ecosystem == "maven":
        return f"mvn versions:use-latest-releases -Dincludes={package_name}"
    return f"Upgrade {package_name} to the latest version"


@dataclass(frozen=True)
class ResolvedVersion:
    secure_version: str
    update_command: str
    source: str  # "table", "registry" or "fallback"


class SecureVersionResolver:
    """Determines the target secure version for a package: static table first, then the registry."""

    def __init__(self, config: ScanConfig, session: requests.Session | None = None):
        self.config = config
        self.session = session or requests.Session()
        self.table = build_secure_table(config.secure_versions)
        self.compare = VERSION_ORDERINGS.get(config.version_ordering, lexicographic_compare)

    def table_version(self, package_name: str, ecosystem: str) -> str | None:
        entries = self.table.get(ecosystem, {})
        if package_name in entries:
            return entries[package_name]
        if ecosystem == "maven" and ":" in package_name:
            return entries.get(package_name.split(":", 1)[1])
        return None

    def resolve(self, package_name: str, current_version: str, ecosystem: str) -> ResolvedVersion | None:
        known = self.table_version(package_name, ecosystem)
        if known:
            return ResolvedVersion(known, update_command(package_name, known, ecosystem), "table")
        if not self.config.live_lookup:
            return None

        logger.info(f"Fetching secure version for {package_name}@{current_version}...")
        try:
            versions = self.fetch_published_versions(package_name, ecosystem)
        except (requests.exceptions.RequestException, ValueError, KeyError, TypeError) as e:
            logger.error(f"Error fetching secure version for {package_name}: {e}")
            versions = []

        secure_version = select_upgrade_version(versions, current_version, self.compare)
        if not secure_version:
            return ResolvedVersion(UNSPECIFIED_VERSION, fallback_command(package_name, ecosystem), "fallback")
        logger.info(f"{package_name}: {current_version} -> {secure_version}")
        return ResolvedVersion(secure_version, update_command(package_name, secure_version, ecosystem), "registry")

    # --- Registry lookups ---

    def fetch_published_versions(self, package_name: str, ecosystem: str) -> list[str]:
        if ecosystem == "npm":
            data = self._get_json(NPM_REGISTRY_URL.format(name=package_name))
            return list(data["versions"].keys())
        elif ecosystem == "pypi":
            data = self._get_json(PYPI_JSON_URL.format(name=package_name))
            return list(data["releases"].keys())
        elif ecosystem == "maven":
            group_id, _, artifact_id = package_name.partition(":")
            params = {"q": f'g:"{group_id}" AND a:"{artifact_id}"', "core": "gav", "rows": 200, "wt": "json"}
            data = self._get_json(MAVEN_SEARCH_URL, params=params)
            return [doc["v"] for doc in data["response"]["docs"]]
        raise ValueError(f"No registry known for ecosystem '{ecosystem}'")

    def _get_json(self, url: str, params: dict | None = None):
        response = self.session.get(url, params=params, timeout=self.config.registry_timeout)
        response.raise_for_status()
        return response.json()
