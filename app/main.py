from __future__ import annotations

import threading
from typing import Any, Dict

from flask import Flask, Response, jsonify, request, send_file

from app.payslips import config
from app.payslips.healthcheck import run_health_checks
from app.payslips.readiness import CancelToken
from app.payslips.run import run_payslips
from app.payslips.utils import ensure_dirs, load_json_file, log_line

app = Flask(__name__)

# Initialise storage paths on import so WSGI entrypoints also have the
# expected directories ready.
ensure_dirs()

_RUN_LOCK = threading.Lock()


def _current_run() -> Dict[str, Any]:
    return app.config.setdefault("CURRENT_RUN", {"running": False, "cancel": None})


def _serve_from(root, filename: str) -> Response:
    target = (root / filename).resolve()
    base = root.resolve()
    if not target.is_relative_to(base):
        return Response("Invalid path", status=400)
    if not target.exists() or not target.is_file():
        return Response("File not found", status=404)
    return send_file(target, as_attachment=True, download_name=target.name)


@app.get("/")
def index() -> Response:
    """Return the current run status and where to fetch results."""

    current = _current_run()
    return jsonify(
        {
            "running": current["running"],
            "archive_url": f"/download/{config.ARCHIVE_NAME}",
            "summary_url": "/api/runs/latest",
        }
    )


@app.post("/runs")
def start_run() -> Response:
    """Start a harvest in the background; the browser window opens locally."""

    dry_run = request.form.get("dry_run") == "1"
    archive = request.form.get("archive", "1") != "0"

    with _RUN_LOCK:
        current = _current_run()
        if current["running"]:
            return jsonify({"ok": False, "error": "a run is already in progress"}), 409
        cancel = CancelToken()
        current.update(running=True, cancel=cancel)

    def _run() -> None:
        try:
            summary = run_payslips(dry_run=dry_run, archive=archive, cancel=cancel)
            app.config["LAST_SUMMARY"] = summary
        except Exception as exc:  # noqa: BLE001
            log_line(f"Harvest thread failed: {exc}")
        finally:
            with _RUN_LOCK:
                _current_run().update(running=False, cancel=None)

    threading.Thread(target=_run, daemon=True).start()
    return jsonify({"ok": True, "dry_run": dry_run, "archive": archive}), 202


@app.post("/runs/cancel")
def cancel_run() -> Response:
    current = _current_run()
    cancel = current.get("cancel")
    if not current["running"] or cancel is None:
        return jsonify({"ok": False, "error": "no run in progress"}), 409
    cancel.cancel("cancelled from web UI")
    return jsonify({"ok": True})


@app.get("/api/runs/latest")
def api_runs_latest() -> Response:
    """Return the summary written by the most recent run."""

    summary = load_json_file(config.SUMMARY_FILE)
    if not isinstance(summary, dict):
        return jsonify({"ok": False, "error": "no runs"}), 404
    return jsonify({"ok": True, "run": summary})


@app.get("/api/health")
def api_health() -> Response:
    """Return a JSON health summary for configuration, filesystem and renderer."""

    result = run_health_checks(entrypoint="ui")
    status = 200 if result.ok else 503
    return jsonify({"ok": result.ok, "checks": result.checks}), status


@app.get(f"/download/{config.ARCHIVE_NAME}")
def download_archive() -> Response:
    """Serve the archive produced by the last run."""

    return _serve_from(config.OUTPUT_DIR, config.ARCHIVE_NAME)


@app.get("/files/<path:filename>")
def download_file(filename: str) -> Response:
    """Serve an individual PDF from the output directory."""

    return _serve_from(config.OUTPUT_DIR, filename)


if __name__ == "__main__":
    app.run(host="127.0.0.1", port=8080)
