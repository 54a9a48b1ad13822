# config.py
from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from typing import Mapping, Optional, Tuple

DEFAULT_TARGETS: Tuple[str, ...] = (
    "backuptargets.longhorn.io",
    "engineimages.longhorn.io",
    "nodes.longhorn.io",
)


@dataclass(frozen=True)
class WebhookMatchers:
    """Heuristics used to find Longhorn's admission webhooks.

    A configuration is selected when ANY of these hits:
      - its metadata.name matches name_pattern (regex search)
      - one of its webhooks[].name is in webhook_names
      - one of its webhooks[].clientConfig.service.name is in service_names
    """

    name_pattern: str = "longhorn"
    webhook_names: Tuple[str, ...] = ()
    service_names: Tuple[str, ...] = ("longhorn-admission-webhook",)


@dataclass
class Settings:
    targets: Tuple[str, ...] = DEFAULT_TARGETS
    fast: bool = False
    no_instances: bool = False
    settle_seconds: float = 3
    crd_delete_timeout: float = 30
    instance_delete_timeout: float = 30
    poll_seconds: float = 1
    verify_domain: str = "longhorn.io"
    validating_matchers: WebhookMatchers = field(
        default_factory=lambda: WebhookMatchers(webhook_names=("validator.longhorn.io",))
    )
    mutating_matchers: WebhookMatchers = field(default_factory=WebhookMatchers)


def _flag(env: Mapping[str, str], key: str) -> bool:
    return env.get(key, "0") == "1"


def _seconds(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        val = float(raw)
    except ValueError:
        print(f"[purge] ignoring invalid {key}={raw!r}, using {default}")
        return default
    return val if val >= 0 else default


def _names(env: Mapping[str, str], key: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    if key not in env:
        return default
    return tuple(n.strip() for n in env[key].split(",") if n.strip())


def _pattern(env: Mapping[str, str], key: str, default: str) -> str:
    raw = env.get(key, default)
    try:
        re.compile(raw)
    except re.error as e:
        print(f"[purge] ignoring invalid {key}={raw!r} ({e}), using {default!r}")
        return default
    return raw


def common_domain(targets: Tuple[str, ...], default: str = "longhorn.io") -> str:
    """Longest dotted suffix shared by the API groups of the target CRD names."""
    groups = [t.partition(".")[2] for t in targets if "." in t]
    if not groups:
        return default
    labels = [g.split(".")[::-1] for g in groups]
    shared: list[str] = []
    for parts in zip(*labels):
        if len(set(parts)) != 1:
            break
        shared.append(parts[0])
    # a lone TLD ("io") is too broad to be useful
    if len(shared) < 2:
        return groups[0]
    return ".".join(reversed(shared))


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """Build Settings from environment variables (os.environ by default)."""
    env = os.environ if env is None else env

    name_pattern = _pattern(env, "WEBHOOK_NAME_PATTERN", "longhorn")
    targets = _names(env, "TARGET_CRDS", DEFAULT_TARGETS)
    service_names = _names(env, "WEBHOOK_SERVICE_NAMES", ("longhorn-admission-webhook",))

    return Settings(
        targets=targets,
        fast=_flag(env, "FAST"),
        no_instances=_flag(env, "NO_INSTANCES"),
        settle_seconds=_seconds(env, "SETTLE_SECONDS", 3),
        crd_delete_timeout=_seconds(env, "CRD_DELETE_TIMEOUT", 30),
        instance_delete_timeout=_seconds(env, "INSTANCE_DELETE_TIMEOUT", 30),
        poll_seconds=_seconds(env, "POLL_SECONDS", 1),
        verify_domain=env.get("VERIFY_DOMAIN", "").strip(".") or common_domain(targets),
        validating_matchers=WebhookMatchers(
            name_pattern=name_pattern,
            webhook_names=_names(env, "VALIDATING_WEBHOOK_NAMES", ("validator.longhorn.io",)),
            service_names=service_names,
        ),
        mutating_matchers=WebhookMatchers(
            name_pattern=name_pattern,
            webhook_names=_names(env, "MUTATING_WEBHOOK_NAMES", ()),
            service_names=service_names,
        ),
    )
