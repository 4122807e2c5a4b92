#!/usr/bin/env python3
"""Distributor invariant checks against a persisted state snapshot.

Usage:
    python3 tools/check_invariants.py [data/state.json] [data/events.jsonl]
"""

import json
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
STATE_PATH = ROOT / "data" / "state.json"
EVENTS_PATH = ROOT / "data" / "events.jsonl"
CLAIM_EVENT_KINDS = ("claim_completed", "payout_pending")


def load_json(path: Path) -> dict:
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def check_ledger(config: dict, state: dict, errors: list[str]) -> None:
    """Program-wide and per-cycle accounting must agree."""
    total_pool = int(config["total_pool"])
    min_remaining = int(config["min_remaining"])
    total_claimed = int(state["total_claimed"])
    cycle_totals = {int(c): int(t) for c, t in state["cycle_totals"].items()}

    if total_pool <= min_remaining:
        errors.append("total_pool must exceed min_remaining")
    if total_claimed < 0:
        errors.append(f"total_claimed is negative: {total_claimed}")
    if total_claimed > total_pool:
        errors.append(f"total_claimed {total_claimed} exceeds total_pool {total_pool}")
    if total_pool - total_claimed < min_remaining:
        errors.append("claims have drawn the pool below the protected floor")
    if sum(cycle_totals.values()) != total_claimed:
        errors.append(
            f"sum of cycle totals {sum(cycle_totals.values())} != total_claimed {total_claimed}"
        )
    for cycle, total in cycle_totals.items():
        if total <= 0:
            errors.append(f"cycle {cycle} total must be positive when recorded, got {total}")


def check_claims(state: dict, errors: list[str]) -> None:
    """Every claim flag belongs to a cycle with a root and a total."""
    roots = state["roots"]
    for cycle, claimants in state["claimed"].items():
        if cycle not in roots:
            errors.append(f"cycle {cycle} has claims but no root")
        if cycle not in state["cycle_totals"]:
            errors.append(f"cycle {cycle} has claims but no cycle total")
        if len(set(claimants)) != len(claimants):
            errors.append(f"cycle {cycle} lists a claimant twice")
    for cycle, root in roots.items():
        if int(root, 16) == 0:
            errors.append(f"cycle {cycle} has the empty root")


def check_events(state: dict, events_path: Path, errors: list[str]) -> None:
    """Claim notifications (paid or pending) must match the ledger once per pair."""
    if not events_path.exists():
        return
    seen: set[tuple[int, str]] = set()
    per_cycle: dict[int, int] = {}
    with events_path.open("r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            event = json.loads(line)
            if event["event_kind"] not in CLAIM_EVENT_KINDS:
                continue
            payload = event["payload"]
            key = (payload["cycle"], payload["recipient"])
            if key in seen:
                errors.append(f"duplicate claim notification for cycle {key[0]} {key[1]}")
            seen.add(key)
            per_cycle[key[0]] = per_cycle.get(key[0], 0) + int(payload["amount"])
    recorded = {int(c): int(t) for c, t in state["cycle_totals"].items()}
    if per_cycle != recorded:
        errors.append(f"claim notifications {per_cycle} disagree with cycle totals {recorded}")


def check(state_path: Path = STATE_PATH, events_path: Path = EVENTS_PATH) -> int:
    document = load_json(state_path)
    config = document["config"]
    state = document["state"]
    errors: list[str] = []

    check_ledger(config, state, errors)
    check_claims(state, errors)
    check_events(state, events_path, errors)

    if errors:
        print("Invariant check FAILED:")
        for err in errors:
            print(f"  - {err}")
        return 1

    print("All distributor invariants pass.")
    return 0


if __name__ == "__main__":
    args = [Path(a) for a in sys.argv[1:]]
    raise SystemExit(check(*args))
