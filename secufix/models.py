# secufix/models.py
from dataclasses import dataclass, field
from typing import Optional

SEVERITY_LEVELS = ("high", "medium", "low", "unknown")

# Maps a recognized manifest file name to the ecosystem used for purls/registries
MANIFEST_ECOSYSTEMS = {
    "package.json": "npm",
    "requirements.txt": "pypi",
    "pom.xml": "maven",
}

UNSPECIFIED_VERSION = "latest"


def severity_from_score(score) -> str:
    """Buckets a CVSS score into high/medium/low. Missing or unreadable scores are 'unknown'."""
    if score is None or isinstance(score, bool):
        return "unknown"
    try:
        value = float(score)
    except (TypeError, ValueError):
        return "unknown"
    if value != value:  # NaN
        return "unknown"
    if value >= 7.0:
        return "high"
    elif value >= 4.0:
        return "medium"
    else:
        return "low"


@dataclass(frozen=True)
class Dependency:
    package_name: str
    declared_version: str  # Raw expression as written, e.g. "^4.17.0" or ">=2.0"
    normalized_version: str  # Range operators stripped, "latest" when unspecified
    ecosystem: str

    @property
    def has_specific_version(self) -> bool:
        return self.normalized_version != UNSPECIFIED_VERSION


@dataclass(frozen=True)
class VulnerabilityFinding:
    package: str
    version: str
    severity: str
    title: str
    description: str
    cvss_score: Optional[float] = None
    cve: Optional[str] = None
    reference: Optional[str] = None
    error: Optional[str] = None
    file: Optional[str] = None  # Stamped by the aggregator

    @property
    def is_placeholder(self) -> bool:
        # Unknown severity means "assume vulnerable, review manually"
        return self.severity == "unknown"

    @classmethod
    def scan_error(cls, package: str, version: str, description: str, error: str | None = None) -> "VulnerabilityFinding":
        return cls(package=package, version=version, severity="unknown", title="Scan Error",
                   description=description, error=error)

    @classmethod
    def parse_error(cls, file_name: str, message: str) -> "VulnerabilityFinding":
        return cls(package=file_name, version="N/A", severity="unknown", title="Parse Error",
                   description=f"Failed to parse {file_name}: {message}", error=message)

    @classmethod
    def unsupported_format(cls, file_name: str, description: str) -> "VulnerabilityFinding":
        return cls(package=file_name, version="N/A", severity="unknown", title="Unsupported Format",
                   description=description)

    def to_dict(self) -> dict:
        data = {
            "package": self.package,
            "version": self.version,
            "severity": self.severity,
            "title": self.title,
            "description": self.description,
            "cvssScore": self.cvss_score,
            "cve": self.cve,
            "reference": self.reference,
        }
        if self.error is not None:
            data["error"] = self.error
        if self.file is not None:
            data["file"] = self.file
        return data


@dataclass(frozen=True)
class SecureVersionRecommendation:
    package_name: str
    current_version: str
    secure_version: str
    update_command: str
    is_secure: bool

    def to_dict(self) -> dict:
        return {
            "packageName": self.package_name,
            "currentVersion": self.current_version,
            "secureVersion": self.secure_version,
            "updateCommand": self.update_command,
            "isSecure": self.is_secure,
        }


@dataclass(frozen=True)
class ManifestFile:
    name: str
    content: str
    path: Optional[str] = None  # Local path or repository path, when known

    @property
    def ecosystem(self) -> str | None:
        return MANIFEST_ECOSYSTEMS.get(self.name)


@dataclass
class FileScanResult:
    file_name: str
    vulnerabilities: list[VulnerabilityFinding] = field(default_factory=list)
    secure_versions: list[SecureVersionRecommendation] = field(default_factory=list)
    updated_content: Optional[str] = None
    dependencies: list[Dependency] = field(default_factory=list)
    ai_review: Optional[dict] = None
    error: Optional[str] = None
    path: Optional[str] = None

    def summary(self) -> dict:
        counts = {level: 0 for level in SEVERITY_LEVELS}
        for finding in self.vulnerabilities:
            counts[finding.severity if finding.severity in counts else "unknown"] += 1
        return {
            "total": len(self.vulnerabilities),
            **counts,
            "upgrades": sum(1 for rec in self.secure_versions if not rec.is_secure),
        }

    def to_dict(self) -> dict:
        data = {
            "fileName": self.file_name,
            "vulnerabilities": [v.to_dict() for v in self.vulnerabilities],
            "secureVersions": [r.to_dict() for r in self.secure_versions],
            "updatedContent": self.updated_content,
            "summary": self.summary(),
        }
        if self.ai_review is not None:
            data["aiReview"] = self.ai_review
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass(frozen=True)
class ScanReport:
    files: tuple[FileScanResult, ...]
    total_files: int
    total_vulnerabilities: int
    status: str  # "secure", "vulnerable" or "warning"
    message: str
    owner: Optional[str] = None
    repo: Optional[str] = None

    @property
    def vulnerabilities(self) -> list[VulnerabilityFinding]:
        # Same package in two manifests yields two findings; no dedup
        findings = []
        for result in self.files:
            findings.extend(result.vulnerabilities)
        return findings

    @property
    def http_status(self) -> int:
        return 404 if self.status == "warning" else 200

    def to_dict(self) -> dict:
        data = {
            "owner": self.owner,
            "repo": self.repo,
            "status": self.status,
            "message": self.message,
            "totalFiles": self.total_files,
            "totalVulnerabilities": self.total_vulnerabilities,
        }
        if self.status != "warning":
            data["files"] = [r.to_dict() for r in self.files]
            data["vulnerabilities"] = [v.to_dict() for v in self.vulnerabilities]
        return data
