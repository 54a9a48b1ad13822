# mode.py
from __future__ import annotations

from typing import Literal

Mode = Literal["FULL", "FAST", "NO_INSTANCES"]


def compute_mode(settings) -> Mode:
    """
    Decide how custom resource instances are handled.
    Priority:
      1) NO_INSTANCES=1 -> bypass instance handling entirely
      2) FAST=1         -> skip instance enumeration & deletion
      3) Default to FULL
    """
    if settings.no_instances:
        return "NO_INSTANCES"
    if settings.fast:
        return "FAST"
    return "FULL"
