"""Seed generation: phase-driven saga that captures a seed image of the node."""

from __future__ import annotations

from .bootstrap import SeedGenRestorer, restore_secret, restore_seedgen
from .cleanup import ClusterCleaner
from .hub import HubRegistrar
from .imager import ImagerLauncher
from .pull_secret import PullSecretManager
from .reconciler import RECONCILE_GUARD, SeedGenReconciler
from .saga import SeedGenSaga
from .status import (
    ReconcileResult,
    StatusWriter,
    do_not_requeue,
    requeue_after,
    requeue_immediately,
)
from .validation import SystemValidator
from .workspace import Workspace

__all__ = [
    "ClusterCleaner",
    "HubRegistrar",
    "ImagerLauncher",
    "PullSecretManager",
    "RECONCILE_GUARD",
    "ReconcileResult",
    "SeedGenReconciler",
    "SeedGenRestorer",
    "SeedGenSaga",
    "StatusWriter",
    "SystemValidator",
    "Workspace",
    "do_not_requeue",
    "requeue_after",
    "requeue_immediately",
    "restore_secret",
    "restore_seedgen",
]
