"""Snapshot storage and tiered retention for home server backups."""

import json
import logging
import os
import shutil
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from homeserver.config.settings import RetentionPolicy
from homeserver.utils.files import FileManager, human_size

from .models import (
    MONTHLY_MARKER,
    TIER_RECORD,
    WEEKLY_MARKER,
    RotationResult,
    Snapshot,
    Tier,
    classify_date,
)

logger = logging.getLogger(__name__)

SNAPSHOT_PREFIX = "20"


class BackupStorage:
    """
    Manages the snapshot directories under ``<storage root>/backups``.

    A snapshot's tier is recorded once in a ``.tier.json`` sidecar and never
    recomputed afterwards. The legacy ``.weekly`` / ``.monthly`` marker files
    are read for snapshots created by older tooling and written alongside the
    sidecar so both layouts stay readable.
    """

    def __init__(self, backups_root: str, verbose: bool = False):
        """
        Initialize backup storage.

        Args:
            backups_root: Directory holding the snapshot directories
            verbose: Enable verbose output
        """
        self.backups_root = backups_root
        self.verbose = verbose
        self.file_manager = FileManager(verbose=verbose)

    def list_snapshots(self) -> List[Snapshot]:
        """
        Enumerate snapshot directories, newest first.

        Returns:
            List[Snapshot]: Snapshots with their recorded tier
        """
        if not os.path.isdir(self.backups_root):
            return []

        snapshots = []
        for name in os.listdir(self.backups_root):
            path = os.path.join(self.backups_root, name)
            if not name.startswith(SNAPSHOT_PREFIX) or not os.path.isdir(path) or os.path.islink(path):
                continue

            tier, damaged = self.read_tier(path)
            snapshots.append(
                Snapshot(path=path, tier=tier or Tier.DAILY, recorded=tier is not None or damaged, damaged=damaged)
            )

        snapshots.sort(key=lambda snapshot: snapshot.name, reverse=True)
        return snapshots

    def read_tier(self, path: str) -> Tuple[Optional[Tier], bool]:
        """
        Read the recorded tier of a snapshot directory.

        A tier record that exists but cannot be parsed still counts as a
        record, so the snapshot's tier is never recomputed from its name.

        Args:
            path: Snapshot directory

        Returns:
            Tuple[Optional[Tier], bool]: Recorded tier (None when nothing was
            recorded) and whether an unreadable tier record was found
        """
        damaged = False
        record_path = os.path.join(path, TIER_RECORD)
        if os.path.isfile(record_path):
            try:
                with open(record_path, encoding="utf-8") as f:
                    return Tier(json.load(f)["tier"]), False
            except (OSError, ValueError, KeyError, TypeError) as e:
                logger.warning("Unreadable tier record in %s: %s", path, e)
                damaged = True

        weekly = os.path.exists(os.path.join(path, WEEKLY_MARKER))
        monthly = os.path.exists(os.path.join(path, MONTHLY_MARKER))
        if weekly or monthly:
            return Tier.from_flags(weekly=weekly, monthly=monthly), damaged

        return None, damaged

    def record_tier(self, snapshot: Snapshot, tier: Tier) -> None:
        """
        Persist the tier of a snapshot.

        Args:
            snapshot: Snapshot to mark
            tier: Tier to record (DAILY is never recorded)
        """
        record = {"tier": tier.value, "assigned_at": datetime.now().isoformat(timespec="seconds")}
        record_path = snapshot.artifact(TIER_RECORD)
        tmp_path = record_path + ".tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(record, f)
        os.replace(tmp_path, record_path)

        if tier.is_weekly:
            open(snapshot.artifact(WEEKLY_MARKER), "a").close()
        if tier.is_monthly:
            open(snapshot.artifact(MONTHLY_MARKER), "a").close()

        snapshot.tier = tier
        snapshot.recorded = True

    def mark_snapshots(self, result: Optional[RotationResult] = None) -> RotationResult:
        """
        Classify every snapshot that has no recorded tier yet.

        Snapshots already carrying a record are left untouched. Names whose
        date cannot be parsed are reported as anomalies and stay unmarked.

        Args:
            result: Optional result to accumulate into

        Returns:
            RotationResult: marked snapshots and anomalies
        """
        result = result or RotationResult()

        for snapshot in self.list_snapshots():
            if snapshot.recorded:
                if snapshot.damaged:
                    result.anomalies.append(snapshot.name)
                continue

            snapshot_date = snapshot.snapshot_date
            if snapshot_date is None:
                logger.warning("Cannot derive a date from backup name '%s', treating it as daily", snapshot.name)
                result.anomalies.append(snapshot.name)
                continue

            tier = classify_date(snapshot_date)
            if tier == Tier.DAILY:
                continue

            try:
                self.record_tier(snapshot, tier)
            except OSError as e:
                logger.error("Failed to mark %s as %s: %s", snapshot.name, tier.value, e)
                continue

            logger.debug("Marked %s as %s", snapshot.name, tier.value)
            result.marked.append(snapshot.name)

        return result

    def rotate(self, policy: RetentionPolicy) -> RotationResult:
        """
        Mark new snapshots and prune each retention partition.

        Args:
            policy: Retention counts per partition

        Returns:
            RotationResult: What was marked, deleted and kept
        """
        result = RotationResult()

        logger.info("Total backups: %d", len(self.list_snapshots()))
        self.mark_snapshots(result)

        daily = [s for s in self.list_snapshots() if not s.tier.is_weekly and not s.tier.is_monthly]
        for snapshot in daily[policy.daily:]:
            self._delete(snapshot, "daily", result)

        weekly = [s for s in self.list_snapshots() if s.tier.is_weekly]
        for snapshot in weekly[policy.weekly:]:
            if snapshot.tier.is_monthly:
                continue
            self._delete(snapshot, "weekly", result)

        monthly = [s for s in self.list_snapshots() if s.tier.is_monthly]
        for snapshot in monthly[policy.monthly:]:
            self._delete(snapshot, "monthly", result)

        result.kept = [snapshot.name for snapshot in self.list_snapshots()]
        return result

    def _delete(self, snapshot: Snapshot, tier_label: str, result: RotationResult) -> None:
        """Remove one snapshot, recording a failure instead of raising."""
        logger.info("Removing old %s backup: %s", tier_label, snapshot.name)
        try:
            shutil.rmtree(snapshot.path)
        except OSError as e:
            logger.error("Failed to remove %s: %s", snapshot.name, e)
            result.failed.append(snapshot.name)
            return
        result.deleted.append(snapshot.name)

    def list_backups(self) -> List[Dict[str, Any]]:
        """
        Describe every snapshot for display, newest first.

        Returns:
            List[Dict[str, Any]]: name, type label, human size and path
        """
        backups = []
        for snapshot in self.list_snapshots():
            backups.append(
                {
                    "name": snapshot.name,
                    "type": snapshot.tier.label,
                    "size": human_size(self.file_manager.path_size(snapshot.path)),
                    "path": snapshot.path,
                }
            )
        return backups
