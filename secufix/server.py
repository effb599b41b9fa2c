# secufix/server.py
import logging

from flask import Flask, request, jsonify

from .config import ScanConfig
from .engine import ScanEngine
from .errors import InvalidRepositoryError, FetchError

logger = logging.getLogger(__name__)


def create_app(config: ScanConfig, engine: ScanEngine | None = None) -> Flask:
    """HTTP surface for repository scans. The engine is built per app, never shared globally."""
    app = Flask(__name__)
    scan_engine = engine or ScanEngine(config)

    @app.route("/scan", methods=["POST"])
    def scan():
        payload = request.get_json(silent=True) or {}
        repo_url = payload.get("repoUrl")
        if not repo_url:
            return jsonify({"error": "GitHub URL is required"}), 400

        try:
            report = scan_engine.scan_repository(repo_url)
        except InvalidRepositoryError as e:
            return jsonify({"error": "Invalid repository", "details": str(e)}), 400
        except FetchError as e:
            logger.error(f"Error processing repository {repo_url}: {e}")
            return jsonify({"error": "Failed to process repo", "details": str(e)}), 500
        except Exception as e:
            logger.error(f"Error processing repository {repo_url}: {e}", exc_info=True)
            return jsonify({"error": "Failed to process repo", "details": str(e)}), 500

        if report.status == "warning":
            message = "No dependency files found in the repository"
        else:
            message = "Repository scanning complete"
        return jsonify({"message": message, "summary": {"status": report.status}, "result": report.to_dict()}), report.http_status

    @app.route("/health", methods=["GET"])
    def health():
        return jsonify({"status": "healthy"})

    return app
