# secufix/oracle.py
import time
import logging

import requests

from .config import ScanConfig
from .models import Dependency, VulnerabilityFinding, severity_from_score

logger = logging.getLogger(__name__)

OSS_INDEX_URL = "https://ossindex.sonatype.org/api/v3/component-report"
USER_AGENT = "SecuFix-Vulnerability-Scanner"


def build_purl(package_name: str, version: str, ecosystem: str) -> str:
    """Package-url style coordinate, e.g. pkg:npm/lodash@4.17.0 or pkg:maven/g:a@1.0."""
    return f"pkg:{ecosystem}/{package_name}@{version}"


class VulnerabilityOracle:
    """
    Client for the Sonatype OSS Index component-report endpoint.

    lookup() never raises: transport failures are retried (429, 5xx, no response)
    and then reported as a single 'Scan Error' finding with unknown severity.
    """

    def __init__(self, config: ScanConfig, session: requests.Session | None = None, sleep=time.sleep):
        self.config = config
        self.session = session or requests.Session()
        self.sleep = sleep
        self.session.headers.update({'Content-Type': 'application/json', 'User-Agent': USER_AGENT})
        if config.oss_index_user and config.oss_index_token:
            self.session.auth = (config.oss_index_user, config.oss_index_token)
        else:
            logger.warning("No OSS Index credentials provided - lookups may be rate limited.")

    def lookup(self, package_name: str, version: str, ecosystem: str) -> list[VulnerabilityFinding]:
        purl = build_purl(package_name, version, ecosystem)
        logger.info(f"Scanning {package_name}@{version} ({purl})...")

        attempt = 0
        while True:
            failure, retryable = None, False
            try:
                response = self.session.post(OSS_INDEX_URL, json={"coordinates": [purl]},
                                             timeout=self.config.oracle_timeout)
            except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
                failure, retryable = f"No response received: {e}", True
            except requests.exceptions.RequestException as e:
                failure = f"Request failed: {e}"
            else:
                status = response.status_code
                if status == 429 or status >= 500:
                    failure, retryable = f"HTTP {status} from vulnerability database", True
                elif status >= 400:
                    if status in (401, 403):
                        logger.warning("Authentication error from OSS Index - check OSS_INDEX_USER/OSS_INDEX_TOKEN.")
                    failure = f"HTTP {status} from vulnerability database"
                else:
                    return self._parse_report(response, package_name, version)

            if retryable and attempt < self.config.max_retries:
                attempt += 1
                wait_time = attempt * self.config.retry_base_delay
                logger.warning(f"{failure} for {package_name}@{version} - waiting {wait_time}s "
                               f"before retry {attempt}/{self.config.max_retries}")
                self.sleep(wait_time)
                continue

            logger.error(f"Error scanning {package_name}@{version}: {failure}")
            return [VulnerabilityFinding.scan_error(
                package_name, version,
                "Vulnerability scan failed after multiple attempts. Manual review recommended."
                if retryable else "Vulnerability scan failed. Manual review recommended.",
                error=failure,
            )]

    def _parse_report(self, response: requests.Response, package_name: str, version: str) -> list[VulnerabilityFinding]:
        try:
            data = response.json()
        except ValueError as e:
            logger.error(f"Error decoding OSS Index response for {package_name}@{version}: {e}")
            return [VulnerabilityFinding.scan_error(
                package_name, version, "Unreadable response from vulnerability database", error=str(e))]

        if not isinstance(data, list) or not data or not isinstance(data[0], dict):
            logger.warning(f"Unexpected response format for {package_name}@{version}: {data!r}")
            return [VulnerabilityFinding.scan_error(
                package_name, version, "Unexpected response format from vulnerability database")]

        vulnerabilities = data[0].get("vulnerabilities") or []
        if not isinstance(vulnerabilities, list) or not all(isinstance(v, dict) for v in vulnerabilities):
            logger.warning(f"Unexpected vulnerability entries for {package_name}@{version}: {vulnerabilities!r}")
            return [VulnerabilityFinding.scan_error(
                package_name, version, "Unexpected response format from vulnerability database")]
        if not vulnerabilities:
            logger.info(f"No vulnerabilities found in {package_name}@{version}")
            return []

        logger.info(f"Found {len(vulnerabilities)} vulnerabilities in {package_name}@{version}")
        findings = []
        for vuln in vulnerabilities:
            score = vuln.get("cvssScore")
            findings.append(VulnerabilityFinding(
                package=package_name,
                version=version,
                severity=severity_from_score(score),
                title=vuln.get("title") or "Untitled vulnerability",
                description=vuln.get("description") or "",
                cvss_score=score if isinstance(score, (int, float)) and not isinstance(score, bool) else None,
                cve=vuln.get("cve"),
                reference=vuln.get("reference"),
            ))
        return findings

    def lookup_all(self, dependencies: list[Dependency]) -> list[VulnerabilityFinding]:
        """
        Looks up every dependency that has a specific version, one call at a time,
        waiting request_delay between consecutive calls to stay under the rate limit.
        """
        findings = []
        first = True
        for dep in dependencies:
            if not dep.has_specific_version:
                logger.info(f"Skipping {dep.package_name} with unspecified version")
                continue
            if not first:
                self.sleep(self.config.request_delay)
            first = False
            findings.extend(self.lookup(dep.package_name, dep.normalized_version, dep.ecosystem))
        return findings
