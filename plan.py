# plan.py
from __future__ import annotations

from typing import List

from k8s import API_ERRORS, describe, finalizers_of, resource_ref_from_crd
from mode import compute_mode
from webhooks import discover


class RemovalPlan(dict):
    """A small, json-serializable planning object."""

    # kept as dict subclass for easy printing/YAML dumping


def _crd_entry(cluster, name: str, mode: str) -> dict:
    entry: dict = {"name": name, "present": False}
    try:
        crd = cluster.get_crd(name)
    except API_ERRORS as e:
        entry["error"] = describe(e)
        return entry
    if crd is None:
        return entry

    meta = crd.get("metadata", {}) or {}
    entry["present"] = True
    entry["finalizers"] = finalizers_of(crd)
    entry["terminating"] = bool(meta.get("deletionTimestamp"))

    ref = resource_ref_from_crd(crd)
    if ref is None:
        entry["resource"] = None
        return entry
    entry["resource"] = f"{ref.full}/{ref.version}"

    if mode != "FULL":
        entry["instances"] = None
        return entry
    try:
        entry["instances"] = len(cluster.list_instances(ref))
    except API_ERRORS as e:
        entry["instances"] = None
        entry["error"] = describe(e)
    return entry


def plan_removal(cluster, settings) -> RemovalPlan:
    """Compute what a purge run *would* touch, without deleting or patching anything."""
    mode = compute_mode(settings)
    webhooks = discover(cluster, settings)
    crds: List[dict] = [_crd_entry(cluster, name, mode) for name in settings.targets]

    return RemovalPlan(
        mode=mode,
        counts={
            "webhooks": sum(len(v) for v in webhooks.values()),
            "crds": sum(1 for c in crds if c["present"]),
        },
        webhooks=webhooks,
        crds=crds,
    )


def print_plan(plan: RemovalPlan) -> None:
    counts = plan.get("counts", {})
    print(f"[plan] mode={plan.get('mode')} webhooks={counts.get('webhooks', 0)} crds={counts.get('crds', 0)}")
    for kind, names in (plan.get("webhooks", {}) or {}).items():
        if not names:
            continue
        print(f"[plan] delete {kind} webhook configurations:")
        for name in names:
            print(f"  - {name}")
    for c in plan.get("crds", []) or []:
        if not c.get("present"):
            print(f"[plan] {c['name']}: absent" + (f" ({c['error']})" if c.get("error") else ""))
            continue
        inst = c.get("instances")
        inst_s = "skipped" if inst is None else str(inst)
        fins = ",".join(c.get("finalizers") or []) or "-"
        state = " terminating" if c.get("terminating") else ""
        print(f"[plan] {c['name']}:{state} resource={c.get('resource')} instances={inst_s} finalizers=[{fins}]")
