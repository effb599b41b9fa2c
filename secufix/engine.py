# secufix/engine.py
import logging

from . import ai_analyzer
from .aggregator import aggregate
from .config import ScanConfig
from .decision import plan_upgrades
from .errors import RewriteError
from .fetcher import GitHubFetcher, parse_repo_url
from .models import FileScanResult, ManifestFile, ScanReport, VulnerabilityFinding
from .oracle import VulnerabilityOracle
from .parser import parse_manifest
from .resolver import SecureVersionResolver
from .rewriter import rewrite

logger = logging.getLogger(__name__)


class ScanEngine:
    """
    Runs parse -> oracle lookups -> secure-version planning -> rewrite for each
    manifest, one file after another, and folds the results into a ScanReport.
    Failures stay inside the smallest scope that keeps partial results.
    """

    def __init__(self, config: ScanConfig, oracle: VulnerabilityOracle | None = None,
                 resolver: SecureVersionResolver | None = None, ai_client=None):
        self.config = config
        self.oracle = oracle or VulnerabilityOracle(config)
        self.resolver = resolver or SecureVersionResolver(config)
        self.ai_client = ai_client

    def scan_file(self, manifest: ManifestFile) -> FileScanResult:
        logger.info(f"Scanning {manifest.name}...")
        result = FileScanResult(file_name=manifest.name, path=manifest.path)

        parsed = parse_manifest(manifest.name, manifest.content)
        if not parsed.ok:
            result.vulnerabilities = list(parsed.errors)
            return result
        result.dependencies = parsed.dependencies

        result.vulnerabilities = self.oracle.lookup_all(parsed.dependencies)
        result.secure_versions = plan_upgrades(parsed.dependencies, result.vulnerabilities, self.resolver,
                                               sweep_static_table=self.config.sweep_static_table)

        needs_rewrite = manifest.name == "pom.xml" or any(not rec.is_secure for rec in result.secure_versions)
        if needs_rewrite:
            try:
                result.updated_content = rewrite(manifest.name, manifest.content, result.secure_versions,
                                                 secure_table=self.resolver.table.get("maven"),
                                                 force_update=self.config.force_update)
            except RewriteError as e:
                logger.error(f"Could not generate updated {manifest.name}: {e}")
                result.error = str(e)
            if result.updated_content == manifest.content:
                result.updated_content = None

        if self.config.ai_review:
            result.ai_review = ai_analyzer.review_manifest(manifest.content, manifest.name, self.config,
                                                           client=self.ai_client)

        summary = result.summary()
        logger.info(f"{manifest.name}: {summary['total']} findings, {summary['upgrades']} upgrades proposed")
        return result

    def scan_manifests(self, manifests: list[ManifestFile], owner: str | None = None,
                       repo: str | None = None) -> ScanReport:
        results = []
        for manifest in manifests:
            try:
                results.append(self.scan_file(manifest))
            except Exception as e:
                # One file's failure never invalidates the other files
                logger.error(f"Unexpected error scanning {manifest.name}: {e}", exc_info=True)
                results.append(FileScanResult(
                    file_name=manifest.name,
                    path=manifest.path,
                    vulnerabilities=[VulnerabilityFinding.scan_error(
                        manifest.name, "N/A", f"Unexpected error during scan: {e}", error=str(e))],
                    error=str(e),
                ))
        report = aggregate(results, owner=owner, repo=repo)
        logger.info(f"Scan finished: {report.status} ({report.total_vulnerabilities} findings in {report.total_files} files)")
        return report

    def scan_repository(self, repo_url: str, fetcher: GitHubFetcher | None = None) -> ScanReport:
        """Raises InvalidRepositoryError before any fetch, FetchError when the repository is unreachable."""
        owner, repo = parse_repo_url(repo_url)
        logger.info(f"Processing repository: {owner}/{repo}")
        fetcher = fetcher or GitHubFetcher(self.config.github_token, timeout=self.config.github_timeout)
        manifests = fetcher.fetch_manifests(owner, repo)
        return self.scan_manifests(manifests, owner=owner, repo=repo)
