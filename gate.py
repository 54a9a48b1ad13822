# gate.py
from __future__ import annotations

import shutil
from dataclasses import dataclass
from typing import Callable, List, Optional


@dataclass
class GateResult:
    ok: bool
    errors: List[str]
    warnings: List[str]


def validate_preconditions(
    settings,
    load_kube: Callable[[], str],
    which: Callable[[str], Optional[str]] = shutil.which,
) -> GateResult:
    """Refuse to start unless we can talk to a cluster.

    Errors (fatal, nothing has been sent to the cluster yet):
    - no usable in-cluster config or kubeconfig
    Warnings:
    - empty target list (the run only clears webhooks and verifies)
    - kubectl missing (only needed for the manual remediation hints we print)
    - FAST and NO_INSTANCES both set (NO_INSTANCES wins)
    """

    errors: List[str] = []
    warnings: List[str] = []

    if not settings.targets:
        warnings.append("No target CRDs configured (TARGET_CRDS is empty); no CRD will be processed.")

    try:
        source = load_kube()
        print(f"[gate] using {source} config")
    except Exception as e:
        errors.append(f"Kubernetes client configuration unavailable: {e}")

    if which("kubectl") is None:
        warnings.append("kubectl not found on PATH; manual remediation hints will not be runnable here.")

    if settings.fast and settings.no_instances:
        warnings.append("FAST=1 and NO_INSTANCES=1 both set; NO_INSTANCES takes precedence.")

    return GateResult(ok=len(errors) == 0, errors=errors, warnings=warnings)
