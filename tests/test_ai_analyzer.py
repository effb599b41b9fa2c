import sys
import json
import unittest
from pathlib import Path
from types import SimpleNamespace

sys.path.append(str(Path(__file__).parent.parent))

from secufix.ai_analyzer import review_manifest, get_malicious_packages, strip_code_fences
from secufix.config import ScanConfig

REVIEW = {
    "fileName": "package.json",
    "summary": "One compromised package.",
    "vulnerabilities": {
        "high": [
            {"packageName": "event-stream", "version": "3.3.6", "description": "Shipped a backdoor",
             "recommendation": "Remove it", "isMalicious": True},
            {"packageName": "lodash", "version": "4.17.0", "description": "Prototype pollution",
             "recommendation": "Upgrade", "isMalicious": False},
        ],
        "medium": [],
        "low": [],
    },
    "recommendations": ["Pin versions"],
}


def fake_client(text):
    """Mimics client.chat.completions.create(...) returning a single choice."""
    response = SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=text))])
    create = lambda **kwargs: response
    return SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))


class TestAiReview(unittest.TestCase):
    def setUp(self):
        self.config = ScanConfig(ai_api_key="test-key")

    def test_fenced_json_is_accepted(self):
        text = "```json\n" + json.dumps(REVIEW) + "\n```"
        self.assertEqual(json.loads(strip_code_fences(text)), REVIEW)
        review = review_manifest("{}", "package.json", self.config, client=fake_client(text))
        self.assertEqual(review["summary"], "One compromised package.")
        self.assertEqual(len(review["vulnerabilities"]["high"]), 2)

    def test_invalid_json_is_reported_not_raised(self):
        review = review_manifest("{}", "package.json", self.config, client=fake_client("Sure! Here you go"))
        self.assertEqual(review["error"], "AI reviewer didn't return valid JSON.")

    def test_missing_api_key_skips_review(self):
        review = review_manifest("{}", "package.json", ScanConfig())
        self.assertIn("API key not available", review["error"])

    def test_empty_content(self):
        self.assertIn("error", review_manifest("", "package.json", self.config, client=fake_client("{}")))

    def test_malware_filter(self):
        client = fake_client(json.dumps(REVIEW))
        review = review_manifest("{}", "package.json", self.config, client=client, malware_only=True)
        self.assertEqual([e["packageName"] for e in review["vulnerabilities"]["high"]], ["event-stream"])
        malicious = get_malicious_packages("{}", "package.json", self.config, client=client)
        self.assertEqual(malicious["maliciousPackages"], ["event-stream"])
        self.assertEqual(malicious["recommendations"], ["event-stream@3.3.6: Remove it"])

    def test_malicious_packages_from_an_existing_review(self):
        full = review_manifest("{}", "package.json", self.config, client=fake_client(json.dumps(REVIEW)))
        malicious = get_malicious_packages("{}", "package.json", self.config, review=full)
        self.assertEqual(malicious["maliciousPackages"], ["event-stream"])
        failed = get_malicious_packages("{}", "package.json", self.config, review={"error": "boom"})
        self.assertEqual(failed["error"], "boom")


if __name__ == '__main__':
    unittest.main()
