import json

import pytest
from typer.testing import CliRunner

from appvet.app.cli import EXIT_INVALID, EXIT_REJECTED, app
from tests.appvet.fakes import clean_package, debuggable_package, make_zip


runner = CliRunner()


def ingest_json(package_path, manifest_path, *extra):
    result = runner.invoke(app, ["ingest", str(package_path), "-m", str(manifest_path), "--json", *extra])
    assert result.exit_code == 0, result.output
    return json.loads(result.stdout)


def test_ingest_without_wait_leaves_package_uploaded(cli_config, package_files):
    body = ingest_json(*package_files(clean_package()))

    assert body["name"] == "Notes"
    assert body["status"] == "uploaded"
    assert body["iconUrl"].startswith("https://store.example.com/blobs/icons/")
    assert "verified" not in body


def test_ingest_with_wait_scans_before_returning(cli_config, package_files):
    body = ingest_json(*package_files(clean_package()), "--wait")

    assert body["status"] == "clean"
    assert body["verified"] is True
    assert body["scanResults"]["perEngine"][0]["engine"] == "heuristic"


def test_ingest_human_output(cli_config, package_files):
    package_path, manifest_path = package_files(clean_package())

    result = runner.invoke(app, ["ingest", str(package_path), "-m", str(manifest_path)])

    assert result.exit_code == 0
    assert "Ingested Notes 1.0.0 as" in result.stdout
    assert "Status: uploaded" in result.stdout


def test_scan_then_show(cli_config, package_files):
    package_id = ingest_json(*package_files(debuggable_package()))["packageId"]

    scanned = runner.invoke(app, ["scan", package_id, "--json"])
    shown = runner.invoke(app, ["show", package_id, "--json"])

    assert scanned.exit_code == 0
    verdict = json.loads(scanned.stdout)
    assert verdict["packageId"] == package_id
    assert verdict["status"] == "malicious"
    assert verdict["threats"] == ["Heuristic: Debug mode enabled"]

    assert shown.exit_code == 0
    package = json.loads(shown.stdout)
    assert package["status"] == "malicious"
    assert package["verified"] is False


def test_threats_lists_entries(cli_config, package_files):
    package_id = ingest_json(*package_files(debuggable_package()), "--wait")["packageId"]

    result = runner.invoke(app, ["threats", package_id, "--json"])
    human = runner.invoke(app, ["threats"])

    payload = json.loads(result.stdout)
    assert payload["count"] == 1
    assert payload["threats"][0]["packageId"] == package_id
    assert "Heuristic: Debug mode enabled" in human.stdout


def test_threats_empty(cli_config):
    result = runner.invoke(app, ["threats"])

    assert result.exit_code == 0
    assert "No threats recorded." in result.stdout


def test_duplicate_ingest_is_rejected(cli_config, package_files):
    paths = package_files(clean_package())
    first = ingest_json(*paths)

    result = runner.invoke(app, ["ingest", str(paths[0]), "-m", str(paths[1])])

    assert result.exit_code == EXIT_REJECTED
    assert first["packageId"] in result.output


def test_malicious_upload_is_rejected(cli_config, package_files):
    package_path, manifest_path = package_files(make_zip({"index.html": b"x", "run.sh": b"rm -rf /"}))

    result = runner.invoke(app, ["ingest", str(package_path), "-m", str(manifest_path)])

    assert result.exit_code == EXIT_REJECTED
    assert "run.sh" in result.output


@pytest.mark.parametrize(
    "data, manifest",
    [
        (b"not an archive", {"name": "Notes", "version": "1"}),
        (clean_package(), {"version": "1"}),
    ],
)
def test_invalid_upload_exit_code(cli_config, package_files, data, manifest):
    package_path, manifest_path = package_files(data, manifest)

    result = runner.invoke(app, ["ingest", str(package_path), "-m", str(manifest_path)])

    assert result.exit_code == EXIT_INVALID


def test_missing_package_file(cli_config, tmp_path):
    manifest = tmp_path / "m.json"
    manifest.write_text("{}", encoding="utf-8")

    result = runner.invoke(app, ["ingest", str(tmp_path / "missing.zip"), "-m", str(manifest)])

    assert result.exit_code == EXIT_INVALID


def test_show_unknown_package(cli_config):
    result = runner.invoke(app, ["show", "does-not-exist"])

    assert result.exit_code == EXIT_REJECTED
    assert "Package not found" in result.output
