#!/usr/bin/env python3
"""Dry-run runner: prints what a purge run would touch without changing anything.

Usage:
  python3 tools/dry_run.py
  FAST=1 TARGET_CRDS=nodes.longhorn.io python3 tools/dry_run.py

  # Save the plan as YAML too:
  OUT=/tmp/purge-plan.yaml python3 tools/dry_run.py

Notes:
- Uses the same config loading as app.py (in-cluster, then kubeconfig).
- Does not delete/patch any objects.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

import yaml

# Ensure project root is on sys.path when running as a script
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from config import load_settings  # noqa: E402
from k8s import ClusterClient, load_kube  # noqa: E402
from plan import plan_removal, print_plan  # noqa: E402


def main() -> int:
    settings = load_settings()
    out_path = os.environ.get("OUT")  # optional

    try:
        print(f"[plan] using {load_kube()} config")
    except Exception as e:
        print(f"[plan] cannot load Kubernetes config: {e}")
        return 1

    plan = plan_removal(ClusterClient(), settings)
    print_plan(plan)

    if out_path:
        with open(out_path, "w") as f:
            yaml.safe_dump(dict(plan), f, sort_keys=False)
        print(f"[plan] wrote plan YAML to {out_path}")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
