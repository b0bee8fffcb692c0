"""Snapshot, rotation and restore for the home server stack."""

from .lock import BackupLock
from .manager import BackupManager
from .models import BackupReport, RestoreResult, RotationResult, Snapshot, StepResult, StepStatus, Tier
from .recovery import RecoveryManager
from .storage import BackupStorage

__all__ = [
    "BackupLock",
    "BackupManager",
    "BackupReport",
    "BackupStorage",
    "RecoveryManager",
    "RestoreResult",
    "RotationResult",
    "Snapshot",
    "StepResult",
    "StepStatus",
    "Tier",
]
