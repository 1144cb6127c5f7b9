"""Tests for the command-line entry point."""

import json

from threatlens import main as cli


def test_parser_options():
    args = cli.build_parser().parse_args(["https://a.test", "https://b.test", "--no-store", "--timeout", "3"])
    assert args.urls == ["https://a.test", "https://b.test"]
    assert args.no_store
    assert args.timeout == 3.0


def test_cli_scans_and_prints_verdict(tmp_path, monkeypatch, capsys):
    monkeypatch.setenv("DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("CONFIG_DIR", str(tmp_path))
    content = tmp_path / "page.html"
    content.write_text("<p>Fresh bread every morning.</p>")

    exit_code = cli.main(["https://news.abcnews.com.co/", "--content-file", str(content)])
    assert exit_code == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["riskScore"] == 100
    assert payload["threatCategory"] == "Known Malicious Domain"
    assert (tmp_path / "data" / "threatlens.db").exists()


def test_cli_rejects_invalid_url(tmp_path, monkeypatch):
    monkeypatch.setenv("DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("CONFIG_DIR", str(tmp_path))
    assert cli.main(["ftp://example.com", "--no-store"]) == 2


def test_cli_app_metadata(tmp_path, monkeypatch, capsys):
    monkeypatch.setenv("DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("CONFIG_DIR", str(tmp_path))
    app = tmp_path / "app.json"
    app.write_text(json.dumps({"appId": "com.gb.whatsapp", "appName": "GB WhatsApp Plus", "developer": "GBMods"}))

    exit_code = cli.main([
        "https://play.google.com/store/apps/details?id=com.gb.whatsapp", "--app-json", str(app), "--no-store",
    ])
    assert exit_code == 0
    payload = json.loads(capsys.readouterr().out)
    assert "mobile" in payload["analyzers"]
    assert payload["riskScore"] > 0
    assert not (tmp_path / "data" / "threatlens.db").exists()


def test_cli_reports_unreadable_inputs(tmp_path, monkeypatch):
    monkeypatch.setenv("DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("CONFIG_DIR", str(tmp_path))
    url = "https://example.com"

    assert cli.main([url, "--no-store", "--content-file", str(tmp_path / "missing.html")]) == 2

    broken = tmp_path / "broken.json"
    broken.write_text("{not json")
    assert cli.main([url, "--no-store", "--app-json", str(broken)]) == 2

    no_id = tmp_path / "no_id.json"
    no_id.write_text(json.dumps({"appName": "Mystery App"}))
    assert cli.main([url, "--no-store", "--app-json", str(no_id)]) == 2
