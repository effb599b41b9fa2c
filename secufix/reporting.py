# secufix/reporting.py
import html  # For HTML escaping
import json
import logging
from pathlib import Path

from .models import ScanReport, VulnerabilityFinding

logger = logging.getLogger(__name__)

SEVERITY_ORDER = {"unknown": 0, "low": 1, "medium": 2, "high": 3}


def _sorted_findings(findings: list[VulnerabilityFinding]) -> list[VulnerabilityFinding]:
    return sorted(findings, key=lambda f: (SEVERITY_ORDER.get(f.severity, 0), f.package, f.cve or ""), reverse=True)


def render_text(report: ScanReport) -> str:
    lines = ["--- Scan Report (Text) ---"]
    if report.owner and report.repo:
        lines.append(f"Repository: {report.owner}/{report.repo}")
    status_label = {"secure": "Secure", "vulnerable": "Vulnerable"}.get(report.status, "Warning")
    lines.append(f"Status: {status_label} - {report.message}")

    for result in report.files:
        summary = result.summary()
        lines.append("")
        lines.append(f"== {result.file_name} ({summary['total']} findings: {summary['high']} high, "
                     f"{summary['medium']} medium, {summary['low']} low, {summary['unknown']} unknown)")
        for finding in _sorted_findings(result.vulnerabilities):
            lines.append(f"  - {finding.package}@{finding.version} [{finding.severity.upper()}] {finding.title}")
            if finding.cve:
                lines.append(f"    CVE:   {finding.cve}")
            if finding.description:
                lines.append(f"    Desc:  {finding.description}")
        upgrades = [rec for rec in result.secure_versions if not rec.is_secure]
        if upgrades:
            lines.append("  Recommended upgrades:")
            for rec in upgrades:
                lines.append(f"    {rec.package_name}: {rec.current_version} -> {rec.secure_version}  ({rec.update_command})")
        if result.updated_content is not None:
            lines.append("  Updated manifest content is available (use --fix to write it).")
        if result.ai_review:
            if "error" in result.ai_review:
                lines.append(f"  AI review: {result.ai_review['error']}")
            else:
                lines.append(f"  AI review: {result.ai_review.get('summary', '')}")
    lines.append("--- End Report ---")
    return "\n".join(lines)


def render_json(report: ScanReport) -> str:
    return json.dumps(report.to_dict(), indent=2)


def render_html(report: ScanReport) -> str:
    html_css = """<style>
body { font-family: sans-serif; margin: 20px; background-color: #f4f7f6; color: #333; }
table { border-collapse: collapse; margin: 1em 0; width: 100%; box-shadow: 0 2px 8px rgba(0,0,0,0.1); background-color: #fff; }
th, td { border: 1px solid #ddd; padding: 10px 15px; text-align: left; vertical-align: top; }
th { background-color: #6c7ae0; color: white; font-weight: bold; text-transform: uppercase; letter-spacing: 0.05em; }
tr:nth-child(even) { background-color: #f9f9f9; }
caption { caption-side: top; font-size: 1.3em; font-weight: bold; margin-bottom: 10px; text-align: left; color: #444; }
.severity-high { color: #FF8C00; font-weight: bold; } .severity-medium { color: #DAA520; }
.severity-low { color: #32CD32; } .severity-unknown { color: #808080; }
pre { white-space: pre-wrap; word-wrap: break-word; margin: 0; font-family: inherit; font-size: 0.95em; }
h1 { color: #333; border-bottom: 2px solid #6c7ae0; padding-bottom: 10px; }
</style>"""
    title = "SecuFix Scan Report"
    if report.owner and report.repo:
        title += f": {report.owner}/{report.repo}"
    parts = [f"""<!DOCTYPE html><html lang="en"><head><title>{html.escape(title)}</title><meta charset="UTF-8">{html_css}</head><body><h1>{html.escape(title)}</h1>""",
             f"<p>Status: <strong>{html.escape(report.status)}</strong> - {html.escape(report.message)}</p>"]

    for result in report.files:
        parts.append(f"<table><caption>{html.escape(result.file_name)}</caption>"
                     "<thead><tr><th>Severity</th><th>Score</th><th>Package</th><th>Version</th><th>Title</th><th>Description</th></tr></thead><tbody>")
        for finding in _sorted_findings(result.vulnerabilities):
            score = str(finding.cvss_score) if finding.cvss_score is not None else "N/A"
            parts.append(f"""<tr><td class="severity-{html.escape(finding.severity)}">{html.escape(finding.severity.upper())}</td>"""
                         f"<td>{html.escape(score)}</td><td>{html.escape(finding.package)}</td><td>{html.escape(finding.version)}</td>"
                         f"<td>{html.escape(finding.title)}</td><td><pre>{html.escape(finding.description)}</pre></td></tr>")
        parts.append("</tbody></table>")
        upgrades = [rec for rec in result.secure_versions if not rec.is_secure]
        if upgrades:
            parts.append("<table><thead><tr><th>Package</th><th>Current</th><th>Secure</th><th>Command</th></tr></thead><tbody>")
            for rec in upgrades:
                parts.append(f"<tr><td>{html.escape(rec.package_name)}</td><td>{html.escape(rec.current_version)}</td>"
                             f"<td>{html.escape(rec.secure_version)}</td><td><code>{html.escape(rec.update_command)}</code></td></tr>")
            parts.append("</tbody></table>")
    parts.append("</body></html>")
    return "\n".join(parts)


RENDERERS = {"text": render_text, "json": render_json, "html": render_html}


def write_report(report: ScanReport, output_format: str = "text", output_file: str | None = None) -> str:
    """Renders the report; saves it when output_file is given. Returns the rendered text."""
    rendered = RENDERERS[output_format](report)
    if output_file:
        path = Path(output_file)
        path.write_text(rendered, encoding='utf-8')
        logger.info(f"Report saved to: {path.resolve()}")
    return rendered
