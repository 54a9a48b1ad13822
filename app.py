# app.py
from __future__ import annotations

import time
from typing import Dict

from config import load_settings
from crds import process_crd
from gate import validate_preconditions
from k8s import API_ERRORS, ClusterClient, describe, load_kube
from mode import compute_mode
from verify import report_remaining
from webhooks import remove_webhooks


def run(cluster, settings, sleep=time.sleep) -> Dict[str, str]:
    """Webhooks, then every target CRD in order, then verification.

    Per-resource failures are logged inside each step; returns name -> outcome.
    """
    mode = compute_mode(settings)
    print("[purge] skipping CRD backups (disabled)")
    print(f"[purge] starting removal workflow (mode={mode})...")

    remove_webhooks(cluster, settings)

    outcomes: Dict[str, str] = {}
    for name in settings.targets:
        try:
            outcomes[name] = process_crd(cluster, name, mode, settings, sleep=sleep)
        except API_ERRORS as e:
            print(f"[purge] giving up on {name}: {describe(e)}")
            outcomes[name] = "error"

    report_remaining(cluster, settings.verify_domain)

    print("\n[purge] summary:")
    for name, outcome in outcomes.items():
        print(f"  {name}: {outcome}")
    print("[purge] done (no backups were created)")
    return outcomes


# ─────────────────────────────────────────────
# Main
# ─────────────────────────────────────────────
def main() -> int:
    settings = load_settings()

    gate = validate_preconditions(settings, load_kube)
    for w in gate.warnings:
        print(f"[gate] warning: {w}")
    if not gate.ok:
        print("[gate] preconditions FAILED; nothing was changed")
        for e in gate.errors:
            print(f"[gate] error: {e}")
        return 1

    try:
        run(ClusterClient(), settings)
    except KeyboardInterrupt:
        print("[purge] interrupted")
        return 130
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
