# webhooks.py
from __future__ import annotations

import re
from typing import Dict, List

from config import WebhookMatchers
from k8s import API_ERRORS, WEBHOOK_KINDS, describe


def _webhooks(cfg: dict) -> list[dict]:
    return cfg.get("webhooks", []) or []


def match_by_name(configs: List[dict], pattern: str) -> set[str]:
    if not pattern:
        return set()
    rx = re.compile(pattern)
    out = set()
    for cfg in configs:
        name = (cfg.get("metadata", {}) or {}).get("name", "")
        if name and rx.search(name):
            out.add(name)
    return out


def match_by_webhook_name(configs: List[dict], webhook_names) -> set[str]:
    wanted = set(webhook_names or ())
    out = set()
    for cfg in configs:
        if any(w.get("name") in wanted for w in _webhooks(cfg)):
            out.add(cfg["metadata"]["name"])
    return out


def match_by_service(configs: List[dict], service_names) -> set[str]:
    wanted = set(service_names or ())
    out = set()
    for cfg in configs:
        for w in _webhooks(cfg):
            svc = ((w.get("clientConfig", {}) or {}).get("service", {}) or {}).get("name")
            if svc in wanted:
                out.add(cfg["metadata"]["name"])
                break
    return out


def select_configurations(configs: List[dict], matchers: WebhookMatchers) -> List[str]:
    """Deduplicated, sorted union of the three independent matchers."""
    hits = match_by_name(configs, matchers.name_pattern)
    hits |= match_by_webhook_name(configs, matchers.webhook_names)
    hits |= match_by_service(configs, matchers.service_names)
    return sorted(hits)


def discover(cluster, settings) -> Dict[str, List[str]]:
    """Matched configuration names per kind ("validating"/"mutating").

    A kind whose listing fails contributes nothing.
    """
    matchers = {
        "validating": settings.validating_matchers,
        "mutating": settings.mutating_matchers,
    }
    found: Dict[str, List[str]] = {}
    for kind in WEBHOOK_KINDS:
        try:
            configs = cluster.list_webhook_configurations(kind)
        except API_ERRORS as e:
            print(f"[webhooks] could not list {kind} webhook configurations: {describe(e)}")
            configs = []
        found[kind] = select_configurations(configs, matchers[kind])
    return found


def remove_webhooks(cluster, settings) -> Dict[str, List[str]]:
    """Delete every matched webhook configuration; failures are logged, never raised."""
    print("[webhooks] removing Longhorn webhook configurations (deep discovery)...")
    found = discover(cluster, settings)

    if not any(found.values()):
        print("[webhooks] no Longhorn-related webhook configurations discovered")
        return found

    for kind in WEBHOOK_KINDS:
        for name in found[kind]:
            print(f"  - {kind}: {name}")

    for kind in WEBHOOK_KINDS:
        for name in found[kind]:
            try:
                cluster.delete_webhook_configuration(kind, name)
                print(f"[webhooks] deleted {kind}webhookconfiguration {name}")
            except API_ERRORS as e:
                print(f"[webhooks] failed to delete {kind}webhookconfiguration {name}: {describe(e)}")

    print("[webhooks] webhook configuration cleanup done")
    return found
