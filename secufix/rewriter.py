# secufix/rewriter.py
import re
import json
import logging

from .errors import RewriteError
from .decision import already_secure
from .models import SecureVersionRecommendation, UNSPECIFIED_VERSION
from .resolver import SECURE_VERSIONS

logger = logging.getLogger(__name__)

# name, optional (operator, version), then whatever follows (markers, inline comment)
REQ_LINE_PATTERN = re.compile(
    r'^(?P<indent>\s*)(?P<name>[a-zA-Z0-9_.-]+)'
    r'(?:(?P<ws>\s*)(?P<op>==|>=|<=|~=|!=|>|<)(?P<ws2>\s*)(?P<version>[a-zA-Z0-9_.*+!-]+))?'
    r'(?P<rest>.*)$'
)
# Operators kept on rewrite; anything else ("<", "!=", ...) is pinned with "=="
KEPT_OPERATORS = ("==", ">=", "~=")


def _pending(recommendations: list[SecureVersionRecommendation]) -> dict[str, SecureVersionRecommendation]:
    """Recommendations that call for a change, keyed by package name."""
    return {
        rec.package_name: rec
        for rec in recommendations
        if not rec.is_secure and rec.secure_version != UNSPECIFIED_VERSION
    }


def rewrite_package_json(content: str, recommendations: list[SecureVersionRecommendation]) -> str:
    try:
        package_json = json.loads(content)
    except ValueError as e:
        raise RewriteError(f"package.json is not valid JSON: {e}") from e
    if not isinstance(package_json, dict):
        raise RewriteError("package.json top-level value is not an object")

    pending = _pending(recommendations)
    for section in ("dependencies", "devDependencies"):
        entries = package_json.get(section)
        if not isinstance(entries, dict):
            continue
        for name, rec in pending.items():
            if name not in entries:
                continue
            if already_secure(str(entries[name]), rec.secure_version):
                continue
            # Always written with a caret, whatever prefix the entry had before
            entries[name] = f"^{rec.secure_version}"
            logger.info(f"package.json [{section}] {name} -> ^{rec.secure_version}")

    updated = json.dumps(package_json, indent=2, ensure_ascii=False)
    if content.endswith("\n"):
        updated += "\n"
    return updated


def _rewrite_requirement_line(line: str, pending: dict[str, SecureVersionRecommendation]) -> str:
    body, eol = (line[:-1], "\r") if line.endswith("\r") else (line, "")
    stripped = body.strip()
    if not stripped or stripped.startswith('#'):
        return line

    match = REQ_LINE_PATTERN.match(body)
    if not match or match.group('name') not in pending:
        return line
    rec = pending[match.group('name')]
    operator = match.group('op')
    if operator is None and match.group('rest').strip() and not match.group('rest').lstrip().startswith(('#', ';')):
        # Not a plain "name" line (extras, URL, ...), leave it alone
        return line
    if operator is not None and match.group('rest').lstrip().startswith(','):
        # Multi-clause specifier ("a>=1,<2") is left as written
        logger.warning(f"requirements.txt: not rewriting multi-clause specifier '{stripped}'")
        return line
    if operator is not None and already_secure(f"{operator}{match.group('version')}", rec.secure_version):
        return line

    new_operator = operator if operator in KEPT_OPERATORS else "=="
    new_line = f"{match.group('indent')}{match.group('name')}{match.group('ws') or ''}{new_operator}{match.group('ws2') or ''}{rec.secure_version}{match.group('rest')}"
    logger.info(f"requirements.txt: '{stripped}' -> '{new_line.strip()}'")
    return new_line + eol


def rewrite_requirements(content: str, recommendations: list[SecureVersionRecommendation]) -> str:
    """Line count and order are preserved; only lines with a pending recommendation change."""
    pending = _pending(recommendations)
    return "\n".join(_rewrite_requirement_line(line, pending) for line in content.split("\n"))


def rewrite_pom_xml(content: str, secure_table: dict[str, str] | None = None, force_update: bool = False) -> str:
    """
    Table-driven: every artifactId in the maven secure table is checked, whether
    or not a finding was reported for it. Matching is case-sensitive.
    """
    table = SECURE_VERSIONS["maven"] if secure_table is None else secure_table
    for artifact_id, secure_version in table.items():
        pattern = re.compile(r'(<artifactId>' + re.escape(artifact_id) + r'</artifactId>\s*<version>)([^<]+)(</version>)')

        def replace_version(match, artifact_id=artifact_id, secure_version=secure_version):
            if match.group(2) == secure_version and not force_update:
                return match.group(0)
            logger.info(f"pom.xml: {artifact_id} {match.group(2)} -> {secure_version}")
            return f"{match.group(1)}{secure_version}{match.group(3)}"

        content = pattern.sub(replace_version, content)
    return content


def rewrite(file_name: str, content: str, recommendations: list[SecureVersionRecommendation],
            secure_table: dict[str, str] | None = None, force_update: bool = False) -> str:
    """Returns the manifest text with upgraded versions. Raises RewriteError when it cannot."""
    if file_name == "package.json":
        return rewrite_package_json(content, recommendations)
    elif file_name == "requirements.txt":
        return rewrite_requirements(content, recommendations)
    elif file_name == "pom.xml":
        return rewrite_pom_xml(content, secure_table, force_update)
    raise RewriteError(f"No rewriter available for '{file_name}'")
