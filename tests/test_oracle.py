import sys
import unittest
from pathlib import Path
from unittest import mock

import requests

sys.path.append(str(Path(__file__).parent.parent))

from secufix.config import ScanConfig
from secufix.models import Dependency, severity_from_score
from secufix.oracle import VulnerabilityOracle, build_purl


def make_response(status, payload=None, bad_json=False):
    response = mock.Mock()
    response.status_code = status
    if bad_json:
        response.json.side_effect = ValueError("Expecting value")
    else:
        response.json.return_value = payload
    return response


REPORT = [{
    "coordinates": "pkg:npm/lodash@4.17.0",
    "vulnerabilities": [
        {"title": "Prototype Pollution", "description": "bad", "cvssScore": 7.4,
         "cve": "CVE-2019-10744", "reference": "https://ossindex.sonatype.org/x"},
        {"title": "ReDoS", "description": "slow", "cvssScore": 5.3},
        {"title": "Minor", "description": "meh", "cvssScore": 3.1},
    ],
}]


class TestSeverityBuckets(unittest.TestCase):
    def test_boundaries(self):
        self.assertEqual(severity_from_score(7.0), "high")
        self.assertEqual(severity_from_score(4.0), "medium")
        self.assertEqual(severity_from_score(3.9), "low")
        self.assertEqual(severity_from_score(0), "low")

    def test_missing_or_bad_score_is_unknown(self):
        self.assertEqual(severity_from_score(None), "unknown")
        self.assertEqual(severity_from_score("n/a"), "unknown")
        self.assertEqual(severity_from_score(float("nan")), "unknown")


class TestVulnerabilityOracle(unittest.TestCase):
    def setUp(self):
        self.session = mock.Mock()
        self.session.headers = {}
        self.sleep = mock.Mock()
        self.oracle = VulnerabilityOracle(ScanConfig(), session=self.session, sleep=self.sleep)

    def test_purl_format(self):
        self.assertEqual(build_purl("lodash", "4.17.0", "npm"), "pkg:npm/lodash@4.17.0")
        self.assertEqual(build_purl("org.x:core", "1.0", "maven"), "pkg:maven/org.x:core@1.0")

    def test_request_body_and_findings(self):
        self.session.post.return_value = make_response(200, REPORT)
        findings = self.oracle.lookup("lodash", "4.17.0", "npm")

        _, kwargs = self.session.post.call_args
        self.assertEqual(kwargs["json"], {"coordinates": ["pkg:npm/lodash@4.17.0"]})
        self.assertEqual(kwargs["timeout"], 15.0)
        self.assertEqual([f.severity for f in findings], ["high", "medium", "low"])
        self.assertEqual(findings[0].cve, "CVE-2019-10744")
        self.assertEqual(findings[0].package, "lodash")

    def test_clean_package_has_no_findings(self):
        self.session.post.return_value = make_response(200, [{"coordinates": "x", "vulnerabilities": []}])
        self.assertEqual(self.oracle.lookup("lodash", "4.17.21", "npm"), [])

    def test_rate_limit_is_attempted_four_times(self):
        """Initial call plus three retries, then an unknown-severity placeholder."""
        self.session.post.return_value = make_response(429)
        findings = self.oracle.lookup("lodash", "4.17.0", "npm")

        self.assertEqual(self.session.post.call_count, 4)
        self.assertEqual([c.args[0] for c in self.sleep.call_args_list], [2.0, 4.0, 6.0])
        self.assertEqual(len(findings), 1)
        self.assertEqual(findings[0].severity, "unknown")
        self.assertEqual(findings[0].title, "Scan Error")
        self.assertIn("429", findings[0].error)

    def test_server_error_then_success(self):
        self.session.post.side_effect = [make_response(503), make_response(200, REPORT)]
        findings = self.oracle.lookup("lodash", "4.17.0", "npm")
        self.assertEqual(len(findings), 3)
        self.assertEqual(self.sleep.call_count, 1)

    def test_network_errors_are_retried(self):
        self.session.post.side_effect = requests.exceptions.ConnectionError("refused")
        findings = self.oracle.lookup("lodash", "4.17.0", "npm")
        self.assertEqual(self.session.post.call_count, 4)
        self.assertEqual(findings[0].title, "Scan Error")

    def test_client_errors_are_not_retried(self):
        self.session.post.return_value = make_response(400)
        findings = self.oracle.lookup("lodash", "4.17.0", "npm")
        self.assertEqual(self.session.post.call_count, 1)
        self.assertEqual(findings[0].severity, "unknown")

    def test_unexpected_shapes_become_scan_errors(self):
        for payload in ({"error": "nope"}, [], None, [{"vulnerabilities": [None]}],
                        [{"vulnerabilities": "none"}], [{"vulnerabilities": [REPORT[0]["vulnerabilities"][0], 42]}]):
            self.session.post.return_value = make_response(200, payload)
            findings = self.oracle.lookup("lodash", "4.17.0", "npm")
            self.assertEqual(len(findings), 1)
            self.assertEqual(findings[0].title, "Scan Error")
            self.assertIn("Unexpected response format", findings[0].description)

    def test_invalid_json_becomes_scan_error(self):
        self.session.post.return_value = make_response(200, bad_json=True)
        findings = self.oracle.lookup("lodash", "4.17.0", "npm")
        self.assertEqual(findings[0].severity, "unknown")

    def test_bad_entry_for_one_dependency_keeps_the_others(self):
        self.session.post.side_effect = [make_response(200, REPORT),
                                         make_response(200, [{"vulnerabilities": [None]}])]
        deps = [
            Dependency("lodash", "^4.17.0", "4.17.0", "npm"),
            Dependency("left-pad", "1.0.0", "1.0.0", "npm"),
        ]
        findings = self.oracle.lookup_all(deps)
        self.assertEqual([(f.package, f.title) for f in findings], [
            ("lodash", "Prototype Pollution"), ("lodash", "ReDoS"), ("lodash", "Minor"),
            ("left-pad", "Scan Error"),
        ])

    def test_lookup_all_skips_unpinned_and_waits_between_calls(self):
        self.session.post.return_value = make_response(200, [{"vulnerabilities": []}])
        deps = [
            Dependency("Flask", "==2.2.3", "2.2.3", "pypi"),
            Dependency("numpy", "", "latest", "pypi"),
            Dependency("requests", "==2.0.0", "2.0.0", "pypi"),
        ]
        self.oracle.lookup_all(deps)
        self.assertEqual(self.session.post.call_count, 2)
        self.sleep.assert_called_once_with(0.5)


if __name__ == '__main__':
    unittest.main()
