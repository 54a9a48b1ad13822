# instances.py
from __future__ import annotations

import time
from typing import Callable, List

from k8s import API_ERRORS, ResourceRef, describe, is_webhook_failure, namespaces_of, object_key, strip_finalizers


def _label(obj: dict) -> str:
    ns, name = object_key(obj)
    return f"{ns}/{name}" if ns else name


def list_instances(cluster, ref: ResourceRef) -> List[dict]:
    try:
        return cluster.list_instances(ref)
    except API_ERRORS as e:
        print(f"[instances] could not list {ref.full}: {describe(e)}")
        return []


def wait_until_gone(cluster, ref: ResourceRef, timeout: float, poll: float, sleep: Callable[[float], None]) -> bool:
    """Poll the instance list until empty; False when timeout elapses first."""
    attempts = max(1, int(timeout / poll)) if poll > 0 else 1
    for _ in range(attempts):
        if not cluster.list_instances(ref):
            return True
        sleep(poll)
    return not cluster.list_instances(ref)


def bulk_delete(
    cluster,
    ref: ResourceRef,
    instances: List[dict],
    wait: bool,
    timeout: float = 30,
    poll: float = 1,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """Collection delete in every namespace holding instances (raises on API errors).

    With wait=True this blocks until the instances are gone and raises
    TimeoutError if they are still around after `timeout` seconds.
    """
    scopes = namespaces_of(instances) if ref.namespaced else [""]
    for ns in scopes:
        cluster.delete_instance_collection(ref, ns)
    if wait and not wait_until_gone(cluster, ref, timeout, poll, sleep):
        raise TimeoutError(f"timed out waiting for {ref.full} instances to be deleted")


def delete_all(cluster, ref: ResourceRef, instances: List[dict], settings, sleep=time.sleep) -> None:
    """Graceful delete, tolerating admission webhook failures."""
    print("[instances] deleting all instances (graceful, tolerating webhook failures)...")
    try:
        bulk_delete(
            cluster,
            ref,
            instances,
            wait=True,
            timeout=settings.instance_delete_timeout,
            poll=settings.poll_seconds,
            sleep=sleep,
        )
        return
    except (*API_ERRORS, TimeoutError) as e:
        if not is_webhook_failure(e):
            print(f"[instances] non-webhook deletion error ({describe(e)}), continuing to forced finalizer removal")
            return

    print("[instances] admission webhook error encountered; retrying without waiting")
    try:
        bulk_delete(cluster, ref, instances, wait=False)
    except API_ERRORS as e:
        print(f"[instances] retry failed: {describe(e)}")


def force_remove(cluster, ref: ResourceRef, obj: dict) -> None:
    """Strip finalizers (merge patch + finalize subresource) then delete without waiting."""
    ns, name = object_key(obj)
    try:
        current = cluster.get_instance(ref, ns, name)
    except API_ERRORS as e:
        print(f"[instances] could not fetch {ref.full} {_label(obj)}: {describe(e)}")
        return
    if current is None:
        return

    clean = strip_finalizers(current)
    steps = (
        ("patch", lambda: cluster.patch_instance(ref, ns, name, {"metadata": {"finalizers": []}})),
        ("finalize", lambda: cluster.finalize_instance(ref, ns, name, clean)),
        ("delete", lambda: cluster.delete_instance(ref, ns, name)),
    )
    for what, call in steps:
        try:
            call()
        except API_ERRORS as e:
            print(f"[instances] {what} {_label(obj)} failed (ignored): {describe(e)}")


def purge_instances(cluster, ref: ResourceRef, mode: str, settings, sleep=time.sleep) -> int:
    """Delete every instance of ref; returns how many were found up front."""
    if mode == "NO_INSTANCES":
        print(f"[instances] NO_INSTANCES mode: bypassing instance handling for {ref.full}")
        return 0
    if mode == "FAST":
        print(f"[instances] FAST mode: skipping instance enumeration & deletion for {ref.full}")
        return 0

    print(f"[instances] listing instances of {ref.full} (all namespaces)...")
    instances = list_instances(cluster, ref)
    if not instances:
        print("[instances] no instances found")
        return 0

    for obj in instances:
        print(f"  - {_label(obj)}")

    delete_all(cluster, ref, instances, settings, sleep=sleep)

    print("[instances] waiting briefly for instance deletions...")
    sleep(settings.settle_seconds)

    print("[instances] scanning for remaining instances to force-remove finalizers...")
    remaining = list_instances(cluster, ref)
    if not remaining:
        print("[instances] no remaining instances detected after graceful delete")
        return len(instances)

    for obj in remaining:
        print(f"  * forcing: {_label(obj)}")
        force_remove(cluster, ref, obj)
    return len(instances)
