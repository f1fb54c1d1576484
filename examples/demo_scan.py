from circle_measure.session import run_synthetic_scan
from circle_measure.synthetic import SyntheticSceneConfig


def main() -> None:
    result = run_synthetic_scan(SyntheticSceneConfig(scenario="cluttered_background", seed=7))

    print(f"Scan {result.status} after {result.frames} frames")
    record = result.record
    if record is None:
        for message in result.messages:
            print(message)
        return

    print(f"Diameter: {record.radius_cm:.2f} cm (expected {result.expected_diameter_cm:.2f} cm)")
    print(f"Distance: {record.avg_distance_cm:.2f} cm")
    print(f"Raw depth distance: {record.avg_raw_distance_cm:.2f} cm")
    print(f"Diameter pairs included: {record.included_diameter_pairs}")
    print(f"Raw depth samples included: {record.included_distance_samples}")


if __name__ == "__main__":
    main()
