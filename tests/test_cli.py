from __future__ import annotations

import json
from pathlib import Path

import pytest
from pytest import approx

from circle_measure.cli import main as cli_main


def test_cli_simulate_scan_writes_record(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    output_json = tmp_path / "scan.json"

    exit_code = cli_main(
        [
            "simulate-scan",
            "--scenario",
            "quiet_lab",
            "--seed",
            "5",
            "--diameter-cm",
            "12",
            "--output-json",
            str(output_json),
        ]
    )

    assert exit_code == 0
    payload = json.loads(output_json.read_text(encoding="utf-8"))
    assert payload["status"] == "completed"
    assert payload["expected_diameter_cm"] == approx(12.0)
    assert payload["record"]["radius_cm"] == approx(12.0, rel=0.02)
    assert len(payload["record"]["diameter_samples"]) == 180
    output = capsys.readouterr().out
    assert "Scan completed" in output
    assert "Expected diameter: 12.00 cm" in output


def test_cli_simulate_scan_returns_1_without_record(tmp_path: Path) -> None:
    output_json = tmp_path / "blind.json"

    exit_code = cli_main(
        ["simulate-scan", "--scenario", "blind", "--output-json", str(output_json)]
    )

    assert exit_code == 1
    payload = json.loads(output_json.read_text(encoding="utf-8"))
    assert payload["status"] == "aborted"
    assert payload["record"] is None


def test_cli_simulate_scan_reads_config_overrides(tmp_path: Path) -> None:
    config_path = tmp_path / "measure.yaml"
    config_path.write_text("measurement:\n  circle_detect_countdown: 4\n", encoding="utf-8")
    output_json = tmp_path / "scan.json"

    exit_code = cli_main(
        [
            "simulate-scan",
            "--config",
            str(config_path),
            "--output-json",
            str(output_json),
        ]
    )

    assert exit_code == 0
    assert json.loads(output_json.read_text(encoding="utf-8"))["frames"] == 6


def test_cli_summarize_record_accepts_scan_output(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    output_json = tmp_path / "scan.json"
    cli_main(["simulate-scan", "--output-json", str(output_json)])
    capsys.readouterr()

    exit_code = cli_main(["summarize-record", str(output_json)])

    assert exit_code == 0
    output = capsys.readouterr().out
    assert "Diameter pairs included: 90/90" in output


def test_cli_summarize_record_flags_inclusion_violation(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    scan_json = tmp_path / "scan.json"
    cli_main(["simulate-scan", "--output-json", str(scan_json)])
    record = json.loads(scan_json.read_text(encoding="utf-8"))["record"]
    record["diameter_samples"][1]["included_in_calculation"] = False
    record_json = tmp_path / "record.json"
    record_json.write_text(json.dumps(record), encoding="utf-8")
    capsys.readouterr()

    exit_code = cli_main(["summarize-record", str(record_json)])

    assert exit_code == 1
    assert "ERROR: diameter pair 0 is only partially included" in capsys.readouterr().out


def test_cli_summarize_record_rejects_malformed_file(tmp_path: Path) -> None:
    record_json = tmp_path / "broken.json"
    record_json.write_text(json.dumps({"radius_cm": 3.0}), encoding="utf-8")

    assert cli_main(["summarize-record", str(record_json)]) == 1


def test_cli_summarize_record_missing_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        cli_main(["summarize-record", str(tmp_path / "absent.json")])


def test_cli_list_scenarios(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli_main(["list-scenarios"]) == 0

    lines = capsys.readouterr().out.splitlines()
    assert [line.split(":")[0] for line in lines] == [
        "blind",
        "cluttered_background",
        "low_texture",
        "quiet_lab",
    ]


def test_cli_rejects_unknown_log_level(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli_main(["--log-level", "chatty", "list-scenarios"])

    assert excinfo.value.code == 2
    assert "unknown log level: chatty" in capsys.readouterr().err
