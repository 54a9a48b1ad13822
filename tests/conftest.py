from __future__ import annotations

import copy

import pytest
from kubernetes.client.rest import ApiException

from config import Settings

MUTATING_CALLS = {
    "delete_webhook_configuration",
    "delete_crd",
    "finalize_crd",
    "delete_instance_collection",
    "patch_instance",
    "finalize_instance",
    "delete_instance",
}


def api_error(status: int, reason: str, body: str = "") -> ApiException:
    e = ApiException(status=status, reason=reason)
    e.body = body
    return e


def crd(name: str, finalizers=None, scope: str = "Namespaced", versions=None, plural=None, group=None) -> dict:
    default_plural, _, default_group = name.partition(".")
    spec = {
        "group": default_group if group is None else group,
        "names": {"plural": default_plural if plural is None else plural},
        "scope": scope,
        "versions": versions if versions is not None else [{"name": "v1beta2", "served": True, "storage": True}],
    }
    meta = {"name": name}
    if finalizers is not None:
        meta["finalizers"] = list(finalizers)
    return {"apiVersion": "apiextensions.k8s.io/v1", "kind": "CustomResourceDefinition", "metadata": meta, "spec": spec}


def instance(ns: str, name: str, finalizers=None) -> dict:
    meta = {"namespace": ns, "name": name}
    if finalizers is not None:
        meta["finalizers"] = list(finalizers)
    return {"metadata": meta}


def webhook_cfg(name: str, hooks=()) -> dict:
    """hooks: iterable of (webhook_name, service_name)."""
    return {
        "metadata": {"name": name},
        "webhooks": [
            {"name": w, "clientConfig": {"service": {"name": svc, "namespace": "longhorn-system"}}}
            for (w, svc) in hooks
        ],
    }


class FakeCluster:
    """In-memory stand-in for k8s.ClusterClient.

    Deletion honours finalizers: objects with finalizers get a
    deletionTimestamp and stay until the finalizers are cleared.
    """

    def __init__(self, crds=(), instances=None, validating=(), mutating=()):
        self.crds = {c["metadata"]["name"]: copy.deepcopy(c) for c in crds}
        self.instances = {k: copy.deepcopy(v) for k, v in (instances or {}).items()}
        self.webhooks = {"validating": list(validating), "mutating": list(mutating)}
        self.calls: list[tuple] = []
        self.bulk_delete_errors: list[ApiException] = []
        self.stubborn: set[str] = set()
        self.list_webhook_error = None
        # method name -> queue of outcomes for successive calls (None = behave, exception = raise)
        self.failures: dict[str, list] = {}

    # bookkeeping
    def _record(self, *call) -> None:
        self.calls.append(call)
        queue = self.failures.get(call[0])
        if queue:
            exc = queue.pop(0)
            if exc is not None:
                raise exc

    def called(self, method: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == method]

    @property
    def mutations(self) -> list[tuple]:
        return [c for c in self.calls if c[0] in MUTATING_CALLS]

    # webhooks
    def list_webhook_configurations(self, kind):
        self._record("list_webhook_configurations", kind)
        if self.list_webhook_error is not None:
            raise self.list_webhook_error
        return copy.deepcopy(self.webhooks[kind])

    def delete_webhook_configuration(self, kind, name):
        self._record("delete_webhook_configuration", kind, name)
        self.webhooks[kind] = [w for w in self.webhooks[kind] if w["metadata"]["name"] != name]

    # CRDs
    def get_crd(self, name):
        self._record("get_crd", name)
        obj = self.crds.get(name)
        return copy.deepcopy(obj) if obj is not None else None

    def list_crd_names(self):
        self._record("list_crd_names")
        return list(self.crds)

    def _reap_crd(self, name):
        meta = self.crds[name]["metadata"]
        if meta.get("deletionTimestamp") and not meta.get("finalizers") and name not in self.stubborn:
            spec = self.crds.pop(name)["spec"]
            self.instances.pop(f"{spec['names']['plural']}.{spec['group']}", None)

    def delete_crd(self, name):
        self._record("delete_crd", name)
        if name not in self.crds:
            return
        self.crds[name]["metadata"]["deletionTimestamp"] = "2026-10-19T00:00:00Z"
        self._reap_crd(name)

    def finalize_crd(self, name, body):
        self._record("finalize_crd", name, body)
        if name not in self.crds:
            raise api_error(404, "Not Found")
        if name in self.stubborn:
            return
        self.crds[name]["metadata"]["finalizers"] = list((body.get("metadata", {}) or {}).get("finalizers") or [])
        self._reap_crd(name)

    # instances
    def _items(self, ref):
        return self.instances.setdefault(ref.full, [])

    def _find(self, ref, ns, name):
        for obj in self._items(ref):
            if obj["metadata"].get("namespace", "") == ns and obj["metadata"]["name"] == name:
                return obj
        return None

    def _delete(self, ref, obj):
        meta = obj["metadata"]
        if meta.get("finalizers"):
            meta["deletionTimestamp"] = "2026-10-19T00:00:00Z"
        else:
            self._items(ref).remove(obj)

    def _set_finalizers(self, ref, obj, finalizers):
        obj["metadata"]["finalizers"] = list(finalizers or [])
        if obj["metadata"].get("deletionTimestamp") and not obj["metadata"]["finalizers"]:
            self._items(ref).remove(obj)

    def list_instances(self, ref):
        self._record("list_instances", ref.full)
        return copy.deepcopy(self._items(ref))

    def get_instance(self, ref, namespace, name):
        self._record("get_instance", ref.full, namespace, name)
        obj = self._find(ref, namespace, name)
        return copy.deepcopy(obj) if obj is not None else None

    def delete_instance_collection(self, ref, namespace):
        self._record("delete_instance_collection", ref.full, namespace)
        if self.bulk_delete_errors:
            raise self.bulk_delete_errors.pop(0)
        for obj in list(self._items(ref)):
            if not ref.namespaced or obj["metadata"].get("namespace", "") == namespace:
                self._delete(ref, obj)

    def patch_instance(self, ref, namespace, name, body):
        self._record("patch_instance", ref.full, namespace, name, body)
        obj = self._find(ref, namespace, name)
        if obj is None:
            raise api_error(404, "Not Found")
        self._set_finalizers(ref, obj, body["metadata"]["finalizers"])

    def finalize_instance(self, ref, namespace, name, body):
        self._record("finalize_instance", ref.full, namespace, name, body)
        obj = self._find(ref, namespace, name)
        if obj is None:
            raise api_error(404, "Not Found")
        self._set_finalizers(ref, obj, body["metadata"].get("finalizers"))

    def delete_instance(self, ref, namespace, name):
        self._record("delete_instance", ref.full, namespace, name)
        obj = self._find(ref, namespace, name)
        if obj is not None:
            self._delete(ref, obj)


@pytest.fixture
def settings() -> Settings:
    return Settings()


class SleepRecorder(list):
    """Drop-in for time.sleep that only records the requested delays."""

    def __call__(self, seconds: float) -> None:
        self.append(seconds)


@pytest.fixture
def no_sleep() -> SleepRecorder:
    return SleepRecorder()
