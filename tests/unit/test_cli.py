"""Tests for the command-line interface."""

import json

from typer.testing import CliRunner

from staycheck._version import __version__
from staycheck.cli.main import _load_requests, app

runner = CliRunner()


class TestLoadRequests:
    """Tests for file payload normalization."""

    def test_bare_document(self):
        defaults = {"sessionId": "cli", "responseType": "property_info"}
        requests = _load_requests({"price": 10}, defaults)
        assert requests == [{"response": {"price": 10}, "context": defaults, "options": None}]

    def test_request_items_override_defaults(self):
        defaults = {"sessionId": "cli", "responseType": "property_info"}
        data = [{"response": {}, "context": {"responseType": "pricing"}, "options": {"skipLayers": ["factual"]}}]
        request = _load_requests(data, defaults)[0]
        assert request["context"] == {"sessionId": "cli", "responseType": "pricing"}
        assert request["options"] == {"skipLayers": ["factual"]}


class TestCommands:
    """Tests for the validate and facts commands."""

    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_validate_missing_file(self, tmp_path):
        result = runner.invoke(app, ["validate", str(tmp_path / "nope.json")])
        assert result.exit_code == 1

    def test_validate_invalid_json(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{not json")
        result = runner.invoke(app, ["validate", str(path)])
        assert result.exit_code == 1

    def test_validate_document(self, tmp_path, clean_property):
        path = tmp_path / "listing.json"
        path.write_text(json.dumps(clean_property))
        report_path = tmp_path / "report.json"

        result = runner.invoke(app, ["validate", str(path), "--output", str(report_path)])
        assert result.exit_code == 0, result.output

        report = json.loads(report_path.read_text())
        assert report["summary"]["total"] == 1
        assert report["results"][0]["result"]["is_valid"] is True

    def test_validate_batch_file(self, tmp_path, clean_property):
        path = tmp_path / "batch.json"
        path.write_text(json.dumps([clean_property, {"response": {"price": -10}}]))
        report_path = tmp_path / "report.json"

        result = runner.invoke(
            app, ["validate", str(path), "--no-auto-correct", "--role", "admin", "--output", str(report_path)]
        )
        assert result.exit_code == 0, result.output
        assert "Property price must be between" in result.output

        report = json.loads(report_path.read_text())
        assert [r["success"] for r in report["results"]] == [True, True]
        assert report["results"][1]["result"]["is_valid"] is False

    def test_facts(self):
        result = runner.invoke(app, ["facts"])
        assert result.exit_code == 0
        assert "9 of 9 entries" in result.output

        result = runner.invoke(app, ["facts", "--category", "pricing"])
        assert "2 of 9 entries" in result.output

    def test_facts_missing_database(self, tmp_path):
        result = runner.invoke(app, ["facts", "--path", str(tmp_path / "facts.yaml")])
        assert result.exit_code == 1
