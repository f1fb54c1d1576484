from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Any

from .logging_setup import configure_logging, parse_log_level
from .models import MeasurementConfig, load_measurement_config
from .records import CircleDetectionRecord, record_from_dict, record_to_dict, validate_record
from .session import ScanSessionConfig, ScanSessionResult, run_synthetic_scan
from .synthetic import BENCH_SCENARIOS, SyntheticSceneConfig, available_scenarios


def _scan_to_dict(result: ScanSessionResult, scene: SyntheticSceneConfig) -> dict[str, Any]:
    record = result.record
    return {
        "status": result.status,
        "frames": result.frames,
        "scenario": scene.scenario,
        "seed": scene.seed,
        "object_diameter_cm": scene.object_diameter_cm,
        "expected_diameter_cm": result.expected_diameter_cm,
        "messages": list(result.messages),
        "transitions": [
            {"frame": item.frame, "from": item.from_state, "to": item.to_state}
            for item in result.transitions
        ],
        "outcome_counts": result.outcome_counts,
        "record": record_to_dict(record) if record is not None else None,
    }


def _print_record_summary(record: CircleDetectionRecord) -> None:
    print(f"Diameter: {record.radius_cm:.2f} cm")
    print(f"Distance: {record.avg_distance_cm:.2f} cm")
    print(f"Raw depth distance: {record.avg_raw_distance_cm:.2f} cm")
    print(
        f"Diameter pairs included: {record.included_diameter_pairs}"
        f"/{len(record.diameter_samples) // 2}"
    )
    print(
        f"Raw depth samples included: {record.included_distance_samples}"
        f"/{len(record.distance_samples)}"
    )


def _log_level(value: str) -> int:
    try:
        return parse_log_level(value)
    except ValueError as error:
        raise argparse.ArgumentTypeError(str(error)) from error


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="circle-measure",
        description="Estimate circle diameter and distance from tracking-subsystem probes.",
    )
    parser.add_argument(
        "--log-level",
        type=_log_level,
        default="WARNING",
        help="Logging level name. Default: WARNING",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    simulate = subparsers.add_parser(
        "simulate-scan",
        help="Run one scan cycle against the synthetic tracking bench.",
    )
    simulate.add_argument("--scenario", choices=available_scenarios(), default="quiet_lab")
    simulate.add_argument("--seed", type=int, default=42)
    simulate.add_argument("--diameter-cm", type=float, default=20.0)
    simulate.add_argument(
        "--distance-m",
        type=float,
        default=None,
        help="Object distance. Default: fill the measurement circle",
    )
    simulate.add_argument("--max-frames", type=int, default=900)
    simulate.add_argument("--config", help="Optional YAML/JSON measurement config overrides")
    simulate.add_argument(
        "--output-json",
        help="Path for output scan JSON. Default: scan_<scenario>_<seed>.json",
    )

    summarize = subparsers.add_parser(
        "summarize-record",
        help="Print a summary of a saved detection record and check its inclusion rules.",
    )
    summarize.add_argument("input_json", help="Record JSON or simulate-scan output JSON")

    subparsers.add_parser("list-scenarios", help="List synthetic bench scenarios.")

    return parser


def _handle_simulate_scan(args: argparse.Namespace) -> int:
    measurement = MeasurementConfig()
    if args.config:
        measurement = load_measurement_config(Path(args.config))

    scene = SyntheticSceneConfig(
        scenario=args.scenario,
        seed=args.seed,
        object_diameter_cm=args.diameter_cm,
        distance_m=args.distance_m,
    )
    result = run_synthetic_scan(
        scene,
        measurement,
        ScanSessionConfig(max_frames=args.max_frames),
    )

    default_name = f"scan_{args.scenario}_{args.seed}.json"
    output_json = Path(args.output_json) if args.output_json else Path(default_name)
    output_json.write_text(
        json.dumps(_scan_to_dict(result, scene), ensure_ascii=False, indent=2, allow_nan=False),
        encoding="utf-8",
    )

    print(f"Scan {result.status}: scenario={scene.scenario}, frames={result.frames}")
    for message in result.messages:
        print(f"MESSAGE: {message}")
    if result.record is None:
        print(f"Scan JSON: {output_json}")
        return 1

    _print_record_summary(result.record)
    if result.expected_diameter_cm is not None:
        print(f"Expected diameter: {result.expected_diameter_cm:.2f} cm")
    print(f"Scan JSON: {output_json}")
    return 0


def _handle_summarize_record(args: argparse.Namespace) -> int:
    input_json = Path(args.input_json)
    if not input_json.exists():
        raise FileNotFoundError(input_json)

    payload = json.loads(input_json.read_text(encoding="utf-8"))
    if isinstance(payload, dict) and "record" in payload:
        payload = payload["record"]
    if not isinstance(payload, dict):
        print(f"Record INVALID: {input_json}")
        print("ERROR: no detection record in file")
        return 1

    try:
        record = record_from_dict(payload)
    except ValueError as error:
        print(f"Record INVALID: {input_json}")
        print(f"ERROR: {error}")
        return 1

    errors = validate_record(record)
    print(f"Record: {input_json}")
    print(f"Session timestamp: {record.session_timestamp}")
    _print_record_summary(record)
    if errors:
        for error in errors:
            print(f"ERROR: {error}")
        return 1
    return 0


def _handle_list_scenarios(args: argparse.Namespace) -> int:
    for name in available_scenarios():
        scenario = BENCH_SCENARIOS[name]
        print(
            f"{name}: hit_noise_m={scenario.hit_noise_m}, "
            f"missing_hit_probability={scenario.missing_hit_probability}, "
            f"low_confidence_probability={scenario.low_confidence_probability}"
        )
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    if args.command == "simulate-scan":
        return _handle_simulate_scan(args)
    if args.command == "summarize-record":
        return _handle_summarize_record(args)
    if args.command == "list-scenarios":
        return _handle_list_scenarios(args)

    parser.error(f"unknown command: {args.command}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
