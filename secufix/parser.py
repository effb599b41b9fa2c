# secufix/parser.py
import re
import json
import logging
from dataclasses import dataclass, field

from lxml import etree

from .models import Dependency, VulnerabilityFinding, UNSPECIFIED_VERSION

logger = logging.getLogger(__name__)

# Regex for "package<op>version" lines; operator set follows pip's comparison operators
REQ_PATTERN = re.compile(r'^([a-zA-Z0-9_.-]+)\s*(==|>=|<=|~=|!=|>|<)\s*([a-zA-Z0-9_.*+!-]+)')
# A line holding nothing but a package name (no version constraint)
BARE_REQ_PATTERN = re.compile(r'^[a-zA-Z0-9_.-]+$')
# Non-greedy, DOTALL match over <dependency> blocks: groupId, artifactId, version in order
POM_DEPENDENCY_PATTERN = re.compile(
    r'<dependency>.*?<groupId>(.*?)</groupId>.*?<artifactId>(.*?)</artifactId>'
    r'.*?<version>(.*?)</version>.*?</dependency>',
    re.DOTALL,
)
# Leading characters that are neither digits nor dots ("^", "~", ">=", "v", ...)
LEADING_RANGE_PATTERN = re.compile(r'^[^0-9.]+')

# Known manifest names we recognise but cannot scan yet
UNSUPPORTED_MANIFESTS = {
    "build.gradle": "Gradle scanning is not yet implemented.",
    "build.gradle.kts": "Gradle scanning is not yet implemented.",
    "Gemfile": "Ruby Gemfile scanning is not yet implemented.",
    "Gemfile.lock": "Ruby Gemfile scanning is not yet implemented.",
}


@dataclass
class ParsedManifest:
    dependencies: list[Dependency] = field(default_factory=list)
    # Parse Error / Unsupported Format markers; empty when parsing succeeded
    errors: list[VulnerabilityFinding] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def normalize_npm_version(expression: str) -> str:
    """Strips range prefixes from an npm version expression ('^4.17.0' -> '4.17.0')."""
    normalized = LEADING_RANGE_PATTERN.sub('', expression.strip())
    return normalized or UNSPECIFIED_VERSION


def parse_package_json(content: str, source_hint: str = "package.json") -> list[Dependency]:
    """
    Parses package.json content. 'dependencies' and 'devDependencies' are merged
    into one ordered mapping; a devDependencies entry overrides a direct one.
    Raises ValueError (json.JSONDecodeError included) on malformed content.
    """
    data = json.loads(content)
    if not isinstance(data, dict):
        raise ValueError("top-level JSON value is not an object")

    merged = {}
    for section in ("dependencies", "devDependencies"):
        entries = data.get(section) or {}
        if not isinstance(entries, dict):
            logger.warning(f"{source_hint}: '{section}' is not an object, skipping it.")
            continue
        merged.update(entries)

    dependencies = []
    for name, expression in merged.items():
        expression = str(expression)
        dependencies.append(Dependency(
            package_name=name,
            declared_version=expression,
            normalized_version=normalize_npm_version(expression),
            ecosystem="npm",
        ))
    logger.info(f"Parsed {len(dependencies)} dependencies from {source_hint}.")
    return dependencies


def parse_requirements(content: str, source_hint: str = "requirements.txt") -> list[Dependency]:
    """Parses requirements.txt content."""
    dependencies = []
    for line_num, line in enumerate(content.splitlines(), 1):
        line = line.strip()
        if not line or line.startswith('#'):
            continue

        match = REQ_PATTERN.match(line)
        if match:
            name, operator, version = match.groups()
            dependencies.append(Dependency(
                package_name=name,
                declared_version=f"{operator}{version}",
                normalized_version=version,
                ecosystem="pypi",
            ))
        elif BARE_REQ_PATTERN.match(line):
            # Listed, but there is no specific version to look up
            dependencies.append(Dependency(
                package_name=line,
                declared_version="",
                normalized_version=UNSPECIFIED_VERSION,
                ecosystem="pypi",
            ))
        else:
            logger.debug(f"{source_hint}: skipping line {line_num}, not a 'package<op>version' entry: '{line}'")

    logger.info(f"Parsed {len(dependencies)} dependencies from {source_hint}.")
    return dependencies


def parse_pom_xml(content: str, source_hint: str = "pom.xml") -> list[Dependency]:
    """
    Parses pom.xml content. The document must be well-formed XML; dependency
    coordinates are then pulled out of the <dependency> blocks by regex.
    Raises etree.XMLSyntaxError on malformed XML.
    """
    # Well-formedness check only; encode so an XML declaration with encoding is accepted
    etree.fromstring(content.encode('utf-8'))

    dependencies = []
    for match in POM_DEPENDENCY_PATTERN.finditer(content):
        group_id, artifact_id, version = (part.strip() for part in match.groups())
        dependencies.append(Dependency(
            package_name=f"{group_id}:{artifact_id}",
            declared_version=version,
            normalized_version=version,
            ecosystem="maven",
        ))
    logger.info(f"Parsed {len(dependencies)} dependencies from {source_hint}.")
    return dependencies


def parse_manifest(file_name: str, content: str) -> ParsedManifest:
    """
    Parses a manifest into Dependency records. Never raises: malformed content
    yields a 'Parse Error' marker and unknown formats an 'Unsupported Format' marker.
    """
    try:
        if file_name == "package.json":
            return ParsedManifest(dependencies=parse_package_json(content, file_name))
        elif file_name == "requirements.txt":
            return ParsedManifest(dependencies=parse_requirements(content, file_name))
        elif file_name == "pom.xml":
            return ParsedManifest(dependencies=parse_pom_xml(content, file_name))
    except (ValueError, etree.XMLSyntaxError) as e:
        logger.error(f"Error parsing {file_name}: {e}")
        return ParsedManifest(errors=[VulnerabilityFinding.parse_error(file_name, str(e))])

    if file_name in UNSUPPORTED_MANIFESTS:
        description = UNSUPPORTED_MANIFESTS[file_name]
    elif file_name.endswith('.gradle'):
        description = "Gradle scanning is not yet implemented."
    else:
        description = f"No parser available for '{file_name}'."
    logger.warning(f"Unsupported file format: {file_name}")
    return ParsedManifest(errors=[VulnerabilityFinding.unsupported_format(file_name, description)])
