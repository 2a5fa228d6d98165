#!/usr/bin/env python3
"""
verify_payload.py - Validate exam start payloads or client config files

Examples:
  # Saved start response
  python tools/verify_payload.py --start-data attempt_42.json

  # Config file
  python tools/verify_payload.py --config config.json
"""

import argparse
import json
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))
from examclient.models import ExamConfig, InvalidStartPayload, StartPayload


def verify_config(config_bytes: bytes) -> bool:
    try:
        cfg = ExamConfig.from_dict(json.loads(config_bytes))
    except (json.JSONDecodeError, TypeError, ValueError) as e:
        print(f"[ERROR] Config validation failed: {e}")
        return False

    is_valid, err = cfg.validate()
    if not is_valid:
        print(f"[ERROR] Config invalid: {err}")
        return False
    print("[OK] Config validation passed")
    print(f"  Backend: {cfg.api_base}")
    print(f"  Duration: {cfg.exam_duration_seconds} seconds")
    print(f"  Batching: size {cfg.batch_size}, multiple {cfg.flush_multiple}, inventory cutoff {cfg.inventory_cutoff}")
    print(f"  Proctoring: {'on' if cfg.proctoring_enabled else 'off'} (max violations {cfg.max_violations})")
    return True


def verify_start_data(data_bytes: bytes, verbose: bool) -> bool:
    try:
        payload = StartPayload.from_dict(json.loads(data_bytes))
    except json.JSONDecodeError as e:
        print(f"[ERROR] Invalid JSON: {e}")
        return False
    except InvalidStartPayload as e:
        print(f"[ERROR] Start payload invalid: {e}")
        return False

    positions = [item.position for item in payload.question_inventory]
    print("[OK] Start payload validation passed")
    print(f"  Attempt: {payload.exam_attempt_id}")
    print(f"  Ability: theta={payload.theta} se={payload.se_theta} learning_rate={payload.learning_rate}")
    print(f"  Items: {len(payload.question_inventory)}")
    if positions != sorted(positions):
        print(f"  [!] Item positions are not in ascending order: {positions}")
    if verbose:
        for item in payload.question_inventory:
            print(f"    #{item.position} item {item.id}: {item.question_text[:60]}")
    return True


def main():
    parser = argparse.ArgumentParser(
        description="Validate exam start payloads and client config files.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--start-data", help="Saved exam start response (.json)")
    group.add_argument("--config", help="Client config file (.json)")
    parser.add_argument("--verbose", action="store_true", help="List every item")
    args = parser.parse_args()

    path = Path(args.start_data or args.config)
    try:
        data = path.read_bytes()
    except OSError as e:
        print(f"[ERROR] Cannot read {path}: {e}")
        sys.exit(1)

    ok = verify_start_data(data, args.verbose) if args.start_data else verify_config(data)
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
