import sys
import base64
import tempfile
import unittest
from pathlib import Path
from unittest import mock

import requests

sys.path.append(str(Path(__file__).parent.parent))

from secufix import reporting
from secufix.aggregator import aggregate
from secufix.errors import InvalidRepositoryError, FetchError
from secufix.fetcher import GitHubFetcher, parse_repo_url, read_local_manifests
from secufix.models import FileScanResult
from secufix.publisher import apply_updates, create_backup


def json_response(payload):
    response = mock.Mock()
    response.raise_for_status.return_value = None
    response.json.return_value = payload
    return response


class TestRepoUrl(unittest.TestCase):
    def test_owner_and_repo(self):
        self.assertEqual(parse_repo_url("https://github.com/acme/shop"), ("acme", "shop"))
        self.assertEqual(parse_repo_url("git@github.com:acme/shop.git"), ("acme", "shop"))

    def test_rejects_other_hosts_and_empty(self):
        for url in ("", "https://bitbucket.org/acme/shop", None):
            with self.assertRaises(InvalidRepositoryError):
                parse_repo_url(url)


class TestGitHubFetcher(unittest.TestCase):
    def setUp(self):
        self.session = mock.Mock()
        self.session.headers = {}

    def test_fetches_only_recognized_root_files(self):
        listing = [
            {"name": "README.md", "path": "README.md", "type": "file"},
            {"name": "package.json", "path": "package.json", "type": "file"},
            {"name": "build.gradle", "path": "build.gradle", "type": "file"},
            {"name": "src", "path": "src", "type": "dir"},
        ]
        encoded = base64.b64encode(b'{"dependencies": {}}').decode('ascii')
        self.session.get.side_effect = [
            json_response(listing),
            json_response({"content": encoded}),
            json_response({"content": base64.b64encode(b"apply plugin").decode('ascii')}),
        ]
        fetcher = GitHubFetcher(token="t0ken", session=self.session)
        manifests = fetcher.fetch_manifests("acme", "shop")

        self.assertEqual([m.name for m in manifests], ["package.json", "build.gradle"])
        self.assertEqual(manifests[0].content, '{"dependencies": {}}')
        self.assertEqual(self.session.headers["Authorization"], "token t0ken")

    def test_unreachable_repository_raises(self):
        self.session.get.side_effect = requests.exceptions.ConnectionError("down")
        with self.assertRaises(FetchError):
            GitHubFetcher(session=self.session).fetch_manifests("acme", "shop")

    def test_no_manifests(self):
        self.session.get.return_value = json_response([{"name": "README.md", "type": "file"}])
        self.assertEqual(GitHubFetcher(session=self.session).fetch_manifests("acme", "shop"), [])


class TestLocalFilesAndPublishing(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.workdir = Path(self.tmp.name)

    def tearDown(self):
        self.tmp.cleanup()

    def test_reads_recognized_manifests_from_directory(self):
        (self.workdir / "requirements.txt").write_text("Flask==2.2.3\n", encoding='utf-8')
        (self.workdir / "notes.txt").write_text("hello", encoding='utf-8')
        manifests = read_local_manifests(self.workdir)
        self.assertEqual([m.name for m in manifests], ["requirements.txt"])
        with self.assertRaises(FetchError):
            read_local_manifests(self.workdir / "nope")

    def test_backups_are_versioned(self):
        target = self.workdir / "package.json"
        target.write_text("{}", encoding='utf-8')
        self.assertEqual(create_backup(target).name, "package.json.bak")
        self.assertEqual(create_backup(target).name, "package.json.bak.1")

    def test_apply_updates_writes_only_changed_files(self):
        changed = self.workdir / "requirements.txt"
        changed.write_text("requests==2.19.0\n", encoding='utf-8')
        report = aggregate([
            FileScanResult(file_name="requirements.txt", updated_content="requests==2.31.0\n", path=str(changed)),
            FileScanResult(file_name="package.json"),
        ])
        written = apply_updates(report, backup=False)
        self.assertEqual(written, [changed])
        self.assertEqual(changed.read_text(encoding='utf-8'), "requests==2.31.0\n")
        self.assertFalse((self.workdir / "requirements.txt.bak").exists())


class TestReporting(unittest.TestCase):
    def test_warning_report_renders(self):
        report = aggregate([])
        self.assertIn("No dependency files found.", reporting.render_text(report))
        self.assertIn('"status": "warning"', reporting.render_json(report))
        self.assertIn("<html", reporting.render_html(report))


if __name__ == '__main__':
    unittest.main()
