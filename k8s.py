# k8s.py
from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Iterable, List, Optional

from kubernetes import client, config
from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

WEBHOOK_FAILURE_MARKER = "failed calling webhook"
CRD_FINALIZE_PATH = "/apis/apiextensions.k8s.io/v1/customresourcedefinitions/{name}/finalize"

WEBHOOK_KINDS = ("validating", "mutating")

# API refusals plus transport failures (connection refused, retries exhausted, read timeouts)
API_ERRORS = (ApiException, HTTPError)


def load_kube() -> str:
    """Configure the client: in-cluster first, then local kubeconfig."""
    try:
        config.load_incluster_config()
        return "in-cluster"
    except config.ConfigException:
        config.load_kube_config()
        return "kubeconfig"


def is_not_found(exc: BaseException) -> bool:
    return isinstance(exc, ApiException) and exc.status == 404


def is_webhook_failure(exc: BaseException) -> bool:
    """True if the API server refused the request because an admission webhook call failed."""
    if not isinstance(exc, ApiException):
        return WEBHOOK_FAILURE_MARKER in str(exc)
    text = f"{exc.reason or ''} {exc.body or ''}"
    return WEBHOOK_FAILURE_MARKER in text


def describe(exc: BaseException) -> str:
    if isinstance(exc, ApiException):
        body = (exc.body or "").strip() if isinstance(exc.body, str) else ""
        return f"{exc.status} {exc.reason}" + (f": {body}" if body else "")
    return str(exc)


# ─────────────────────────────────────────────
# Object helpers
# ─────────────────────────────────────────────
@dataclass(frozen=True)
class ResourceRef:
    group: str
    version: str
    plural: str
    namespaced: bool = True

    @property
    def full(self) -> str:
        return f"{self.plural}.{self.group}"

    def path(self, namespace: Optional[str], name: str) -> str:
        if self.namespaced and namespace:
            return f"/apis/{self.group}/{self.version}/namespaces/{namespace}/{self.plural}/{name}"
        return f"/apis/{self.group}/{self.version}/{self.plural}/{name}"


def resource_ref_from_crd(crd: dict) -> Optional[ResourceRef]:
    """Derive plural.group (plus storage version and scope) from a CRD manifest."""
    spec = crd.get("spec", {}) or {}
    plural = (spec.get("names", {}) or {}).get("plural") or ""
    group = spec.get("group") or ""
    if not plural or not group:
        return None

    versions = spec.get("versions", []) or []
    version = ""
    for v in versions:
        if v.get("storage"):
            version = v.get("name", "")
            break
    if not version:
        served = [v.get("name", "") for v in versions if v.get("served", True)]
        version = next((n for n in served if n), "v1")

    return ResourceRef(
        group=group,
        version=version,
        plural=plural,
        namespaced=spec.get("scope", "Namespaced") != "Cluster",
    )


def object_key(obj: dict) -> tuple[str, str]:
    meta = obj.get("metadata", {}) or {}
    return meta.get("namespace", "") or "", meta.get("name", "")


def finalizers_of(obj: dict) -> List[str]:
    return list((obj.get("metadata", {}) or {}).get("finalizers") or [])


def strip_finalizers(obj: dict) -> dict:
    """Copy of obj with metadata.finalizers set to an empty list."""
    out = copy.deepcopy(obj)
    out.setdefault("metadata", {})["finalizers"] = []
    return out


def drop_finalizers(obj: dict) -> dict:
    """Copy of obj with metadata.finalizers removed entirely."""
    out = copy.deepcopy(obj)
    (out.get("metadata", {}) or {}).pop("finalizers", None)
    return out


# ─────────────────────────────────────────────
# API wrapper
# ─────────────────────────────────────────────
class ClusterClient:
    """The handful of API calls the purge workflow needs.

    Reads return plain camelCase dicts (None when not found). Deletes treat
    404 as success. Everything else raises (ApiException, or a urllib3
    HTTPError on transport failure) for the caller to log.
    """

    def __init__(self, api_client: Optional[client.ApiClient] = None):
        self.api_client = api_client or client.ApiClient()
        self.extensions = client.ApiextensionsV1Api(self.api_client)
        self.admission = client.AdmissionregistrationV1Api(self.api_client)
        self.custom = client.CustomObjectsApi(self.api_client)

    def _to_dict(self, obj) -> dict:
        return self.api_client.sanitize_for_serialization(obj)

    def _put_raw(self, path: str, body: dict) -> None:
        self.api_client.call_api(
            path,
            "PUT",
            header_params={"Accept": "application/json", "Content-Type": "application/json"},
            body=body,
            auth_settings=["BearerToken"],
            response_type="object",
            _return_http_data_only=True,
        )

    # webhook configurations
    def list_webhook_configurations(self, kind: str) -> list[dict]:
        if kind == "validating":
            res = self.admission.list_validating_webhook_configuration()
        elif kind == "mutating":
            res = self.admission.list_mutating_webhook_configuration()
        else:
            raise ValueError(f"unknown webhook kind {kind!r}")
        return [self._to_dict(item) for item in res.items or []]

    def delete_webhook_configuration(self, kind: str, name: str) -> None:
        try:
            if kind == "validating":
                self.admission.delete_validating_webhook_configuration(name)
            elif kind == "mutating":
                self.admission.delete_mutating_webhook_configuration(name)
            else:
                raise ValueError(f"unknown webhook kind {kind!r}")
        except ApiException as e:
            if not is_not_found(e):
                raise

    # CRDs
    def get_crd(self, name: str) -> Optional[dict]:
        try:
            return self._to_dict(self.extensions.read_custom_resource_definition(name))
        except ApiException as e:
            if is_not_found(e):
                return None
            raise

    def list_crd_names(self) -> list[str]:
        res = self.extensions.list_custom_resource_definition()
        return [item.metadata.name for item in res.items or []]

    def delete_crd(self, name: str) -> None:
        try:
            self.extensions.delete_custom_resource_definition(name)
        except ApiException as e:
            if not is_not_found(e):
                raise

    def finalize_crd(self, name: str, body: dict) -> None:
        self._put_raw(CRD_FINALIZE_PATH.format(name=name), body)

    # custom resource instances
    def list_instances(self, ref: ResourceRef) -> list[dict]:
        res = self.custom.list_cluster_custom_object(
            group=ref.group,
            version=ref.version,
            plural=ref.plural,
        )
        return res.get("items", []) or []

    def get_instance(self, ref: ResourceRef, namespace: str, name: str) -> Optional[dict]:
        try:
            if ref.namespaced:
                return self.custom.get_namespaced_custom_object(
                    group=ref.group,
                    version=ref.version,
                    namespace=namespace,
                    plural=ref.plural,
                    name=name,
                )
            return self.custom.get_cluster_custom_object(
                group=ref.group,
                version=ref.version,
                plural=ref.plural,
                name=name,
            )
        except ApiException as e:
            if is_not_found(e):
                return None
            raise

    def delete_instance_collection(self, ref: ResourceRef, namespace: str) -> None:
        if ref.namespaced:
            self.custom.delete_collection_namespaced_custom_object(
                group=ref.group,
                version=ref.version,
                namespace=namespace,
                plural=ref.plural,
            )
        else:
            self.custom.delete_collection_cluster_custom_object(
                group=ref.group,
                version=ref.version,
                plural=ref.plural,
            )

    def patch_instance(self, ref: ResourceRef, namespace: str, name: str, body: dict) -> None:
        # dict bodies go out as application/merge-patch+json
        if ref.namespaced:
            self.custom.patch_namespaced_custom_object(
                group=ref.group,
                version=ref.version,
                namespace=namespace,
                plural=ref.plural,
                name=name,
                body=body,
            )
        else:
            self.custom.patch_cluster_custom_object(
                group=ref.group,
                version=ref.version,
                plural=ref.plural,
                name=name,
                body=body,
            )

    def finalize_instance(self, ref: ResourceRef, namespace: str, name: str, body: dict) -> None:
        self._put_raw(ref.path(namespace, name) + "/finalize", body)

    def delete_instance(self, ref: ResourceRef, namespace: str, name: str) -> None:
        try:
            if ref.namespaced:
                self.custom.delete_namespaced_custom_object(
                    group=ref.group,
                    version=ref.version,
                    namespace=namespace,
                    plural=ref.plural,
                    name=name,
                )
            else:
                self.custom.delete_cluster_custom_object(
                    group=ref.group,
                    version=ref.version,
                    plural=ref.plural,
                    name=name,
                )
        except ApiException as e:
            if not is_not_found(e):
                raise


def namespaces_of(objs: Iterable[dict]) -> list[str]:
    return sorted({object_key(o)[0] for o in objs})
