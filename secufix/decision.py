# secufix/decision.py
import logging

from .models import Dependency, VulnerabilityFinding, SecureVersionRecommendation
from .resolver import SecureVersionResolver, ResolvedVersion

logger = logging.getLogger(__name__)

# Longest operators first so "==" is not read as "="
RANGE_OPERATORS = ("==", ">=", "<=", "~=", "!=", "^", "~", ">", "<", "=")


def already_secure(declared_version: str, secure_version: str) -> bool:
    """True when the declared expression is the secure version, bare or behind one range operator."""
    declared = declared_version.strip()
    if declared == secure_version:
        return True
    for operator in RANGE_OPERATORS:
        if declared.startswith(operator):
            return declared[len(operator):].strip() == secure_version
    return False


def decide(dependency: Dependency, resolved: ResolvedVersion) -> SecureVersionRecommendation:
    # Plain string equality on purpose: "1.0" and "1.0.0" count as different versions
    return SecureVersionRecommendation(
        package_name=dependency.package_name,
        current_version=dependency.normalized_version,
        secure_version=resolved.secure_version,
        update_command=resolved.update_command,
        is_secure=dependency.normalized_version == resolved.secure_version,
    )


def plan_upgrades(dependencies: list[Dependency], findings: list[VulnerabilityFinding],
                  resolver: SecureVersionResolver, sweep_static_table: bool = True) -> list[SecureVersionRecommendation]:
    """
    Recommendations for one manifest. Only dependencies with at least one finding
    are resolved (registry calls cost time and rate limit); with sweep_static_table
    every dependency that has a static table entry is checked as well.
    """
    flagged = {finding.package for finding in findings}
    recommendations = []
    for dep in dependencies:
        in_table = resolver.table_version(dep.package_name, dep.ecosystem) is not None
        if dep.package_name not in flagged and not (sweep_static_table and in_table):
            continue
        try:
            resolved = resolver.resolve(dep.package_name, dep.normalized_version, dep.ecosystem)
        except Exception as e:
            # One dependency's failure never invalidates the others
            logger.error(f"Could not resolve a secure version for {dep.package_name}: {e}", exc_info=True)
            continue
        if resolved is None:
            logger.debug(f"No secure version known for {dep.package_name}")
            continue
        recommendation = decide(dep, resolved)
        if recommendation.is_secure or already_secure(dep.declared_version, resolved.secure_version):
            logger.info(f"{dep.package_name} {dep.declared_version or '(unpinned)'} is already on the secure version")
        else:
            logger.info(f"{dep.package_name}: {dep.normalized_version} -> {resolved.secure_version}")
        recommendations.append(recommendation)
    return recommendations
