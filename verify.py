# verify.py
from __future__ import annotations

from typing import List

from k8s import API_ERRORS, describe


def remaining_crds(cluster, domain: str) -> List[str]:
    suffix = "." + domain.strip(".")
    return sorted(n for n in cluster.list_crd_names() if n.endswith(suffix))


def report_remaining(cluster, domain: str) -> List[str]:
    """Print CRDs still registered under the target domain."""
    print("\n[verify] remaining %s CRDs (should be empty or only ones you didn't target):" % domain)
    try:
        names = remaining_crds(cluster, domain)
    except API_ERRORS as e:
        print(f"[verify] could not list CRDs: {describe(e)}")
        return []
    if not names:
        print(f"[verify] (no {domain} CRDs found)")
    for n in names:
        print(f"  - {n}")
    return names
