# secufix/aggregator.py
from dataclasses import replace

from .models import FileScanResult, ScanReport


def _stamp_file(result: FileScanResult) -> FileScanResult:
    stamped = [v if v.file else replace(v, file=result.file_name) for v in result.vulnerabilities]
    return replace(result, vulnerabilities=stamped)


def aggregate(file_results: list[FileScanResult], owner: str | None = None, repo: str | None = None) -> ScanReport:
    """
    Folds per-file results into one repository report. Findings are concatenated
    as-is (no dedup across files). No files at all is a 'warning', never 'secure'.
    """
    if not file_results:
        return ScanReport(files=(), total_files=0, total_vulnerabilities=0, status="warning",
                          message="No dependency files found.", owner=owner, repo=repo)

    files = tuple(_stamp_file(result) for result in file_results)
    total = sum(len(result.vulnerabilities) for result in files)
    if total > 0:
        status, message = "vulnerable", f"Found {total} vulnerabilities"
    else:
        status, message = "secure", "No vulnerabilities found"
    return ScanReport(files=files, total_files=len(files), total_vulnerabilities=total,
                      status=status, message=message, owner=owner, repo=repo)
