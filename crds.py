# crds.py
from __future__ import annotations

import json
import time
from typing import Callable, Literal

from instances import purge_instances
from k8s import API_ERRORS, describe, drop_finalizers, resource_ref_from_crd

Outcome = Literal["absent", "deleted", "finalized", "stuck", "error"]


def _gone(cluster, name: str, timeout: float, poll: float, sleep: Callable[[float], None]) -> bool:
    attempts = max(1, int(timeout / poll)) if poll > 0 else 1
    for _ in range(attempts):
        if cluster.get_crd(name) is None:
            return True
        sleep(poll)
    return cluster.get_crd(name) is None


def delete_and_wait(cluster, name: str, settings, sleep=time.sleep) -> bool:
    """Standard CRD delete with a bounded wait for it to disappear."""
    try:
        cluster.delete_crd(name)
        return _gone(cluster, name, settings.crd_delete_timeout, settings.poll_seconds, sleep)
    except API_ERRORS as e:
        print(f"[crd] delete {name} failed: {describe(e)}")
        return False


def manual_hint(name: str) -> str:
    patch = json.dumps({"metadata": {"finalizers": []}})
    return f"kubectl patch crd {name} -p '{patch}' --type=merge"


def force_finalize(cluster, name: str) -> None:
    """Drop metadata.finalizers and PUT the CRD to its /finalize subresource."""
    try:
        crd = cluster.get_crd(name)
    except API_ERRORS as e:
        print(f"[crd] could not fetch {name}: {describe(e)}")
        return
    if crd is None:
        return
    try:
        cluster.finalize_crd(name, drop_finalizers(crd))
    except API_ERRORS as e:
        print(f"[crd] finalize endpoint call failed (may already be finalizing): {describe(e)}")


def process_crd(cluster, name: str, mode: str, settings, sleep=time.sleep) -> Outcome:
    print(f"\n[crd] ==== processing {name} ====")
    try:
        crd = cluster.get_crd(name)
    except API_ERRORS as e:
        # treat as present; the delete path below reports what is wrong
        print(f"[crd] could not read {name}: {describe(e)}")
        crd = {}
    if crd is None:
        print(f"[crd] {name} already gone, skipping")
        return "absent"

    ref = resource_ref_from_crd(crd)
    if ref is None:
        print(f"[crd] could not derive plural/group for {name} (unexpected schema), continuing")
    else:
        purge_instances(cluster, ref, mode, settings, sleep=sleep)

    print(f"[crd] attempting standard deletion of {name}...")
    if delete_and_wait(cluster, name, settings, sleep=sleep):
        print(f"[crd] {name} deleted via standard method")
        return "deleted"

    print(f"[crd] {name} appears stuck, removing finalizers...")
    force_finalize(cluster, name)

    print(f"[crd] retrying deletion of {name}...")
    if delete_and_wait(cluster, name, settings, sleep=sleep):
        print(f"[crd] finalizers removed and {name} deleted")
        return "finalized"

    print(f"[crd] still unable to delete {name}; manual intervention required")
    print(f"[crd] try: {manual_hint(name)}")
    return "stuck"
