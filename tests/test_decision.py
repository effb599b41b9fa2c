import sys
import unittest
from pathlib import Path
from unittest import mock

sys.path.append(str(Path(__file__).parent.parent))

from secufix.config import ScanConfig
from secufix.decision import already_secure, decide, plan_upgrades
from secufix.models import Dependency, VulnerabilityFinding
from secufix.resolver import ResolvedVersion, SecureVersionResolver


def finding(package, version="1.0.0", severity="high"):
    return VulnerabilityFinding(package=package, version=version, severity=severity,
                                title="Something bad", description="")


class TestDecide(unittest.TestCase):
    def test_exact_string_equality(self):
        dep = Dependency("Flask", "==2.2.3", "2.2.3", "pypi")
        rec = decide(dep, ResolvedVersion("2.2.3", "pip install Flask==2.2.3", "table"))
        self.assertTrue(rec.is_secure)
        self.assertEqual(rec.current_version, "2.2.3")

    def test_equivalent_but_differently_written_versions_are_not_secure(self):
        dep = Dependency("lib", "==1.0", "1.0", "pypi")
        rec = decide(dep, ResolvedVersion("1.0.0", "pip install lib==1.0.0", "registry"))
        self.assertFalse(rec.is_secure)

    def test_already_secure_with_range_operators(self):
        self.assertTrue(already_secure("^4.17.21", "4.17.21"))
        self.assertTrue(already_secure(">= 2.31.0", "2.31.0"))
        self.assertTrue(already_secure("4.17.21", "4.17.21"))
        self.assertFalse(already_secure("^4.17.0", "4.17.21"))
        self.assertFalse(already_secure("", "4.17.21"))


class TestPlanUpgrades(unittest.TestCase):
    def setUp(self):
        self.resolver = SecureVersionResolver(ScanConfig(live_lookup=False))
        self.deps = [
            Dependency("lodash", "^4.17.0", "4.17.0", "npm"),
            Dependency("left-pad", "1.0.0", "1.0.0", "npm"),
            Dependency("express", "4.18.2", "4.18.2", "npm"),
        ]

    def test_table_sweep_covers_packages_without_findings(self):
        recs = plan_upgrades(self.deps, [], self.resolver)
        self.assertEqual([r.package_name for r in recs], ["lodash", "express"])
        self.assertFalse(recs[0].is_secure)
        self.assertEqual(recs[0].secure_version, "4.17.21")
        self.assertTrue(recs[1].is_secure)

    def test_without_sweep_only_flagged_packages_are_resolved(self):
        recs = plan_upgrades(self.deps, [finding("lodash", "4.17.0")], self.resolver, sweep_static_table=False)
        self.assertEqual([r.package_name for r in recs], ["lodash"])

    def test_flagged_package_without_known_version_is_skipped_in_static_mode(self):
        recs = plan_upgrades(self.deps, [finding("left-pad")], self.resolver, sweep_static_table=False)
        self.assertEqual(recs, [])

    def test_one_failing_resolution_does_not_stop_the_rest(self):
        resolver = mock.Mock()
        resolver.table_version.return_value = None
        resolver.resolve.side_effect = [RuntimeError("boom"),
                                        ResolvedVersion("2.0.0", "npm install left-pad@2.0.0", "registry")]
        recs = plan_upgrades(self.deps[:2], [finding("lodash"), finding("left-pad")], resolver)
        self.assertEqual(len(recs), 1)
        self.assertEqual(recs[0].package_name, "left-pad")
        self.assertEqual(recs[0].secure_version, "2.0.0")

    def test_placeholder_findings_still_trigger_resolution(self):
        placeholder = VulnerabilityFinding.scan_error("left-pad", "1.0.0", "scan failed")
        resolver = mock.Mock()
        resolver.table_version.return_value = None
        resolver.resolve.return_value = ResolvedVersion("latest", "npm install left-pad@latest", "fallback")
        recs = plan_upgrades(self.deps[1:2], [placeholder], resolver)
        self.assertEqual(recs[0].update_command, "npm install left-pad@latest")
        self.assertFalse(recs[0].is_secure)


if __name__ == '__main__':
    unittest.main()
