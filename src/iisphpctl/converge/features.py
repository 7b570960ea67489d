"""Ensure OS optional features are enabled."""
from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from ..errors import FeatureEnableFailed
from ..providers.features import FeatureError
from .interfaces import FeatureService

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class FeatureReport:
    """Aggregate outcome of :func:`ensure_features`."""

    reboot_required: bool = False
    enabled: list[str] = field(default_factory=list)
    already_enabled: list[str] = field(default_factory=list)


def ensure_features(service: FeatureService, names: Iterable[str]) -> FeatureReport:
    """Enable every feature in *names* that is not enabled yet.

    The reboot flag is the logical OR of every feature's pending-reboot state,
    including features that were already enabled but still await a restart.
    """
    report = FeatureReport()
    seen: set[str] = set()
    for name in names:
        if name in seen:
            continue
        seen.add(name)
        try:
            state = service.get_state(name)
            if state.enabled:
                report.already_enabled.append(name)
                report.reboot_required = report.reboot_required or state.pending_reboot
                continue
            LOGGER.info("Enabling optional feature %s", name)
            result = service.enable(name)
        except FeatureError as exc:
            raise FeatureEnableFailed("features", name, str(exc)) from exc
        report.enabled.append(name)
        report.reboot_required = report.reboot_required or result.reboot_needed
    return report


__all__ = ["FeatureReport", "ensure_features"]
