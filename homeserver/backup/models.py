"""Data types shared by the snapshot producer, rotator and restore executor."""

import os
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import List, Optional

from homeserver.config.settings import SNAPSHOT_TIMESTAMP_FORMAT

DATABASE_DUMP = "immich_db.sql.gz"
UPLOAD_ARCHIVE = "immich_upload.tar.gz"
VOLUME_ARCHIVE = "portainer_data.tar.gz"
CONFIG_COPY = "config.json"
COMPOSE_COPY = "docker-compose.yml"
SECRETS_ARCHIVE = "secrets.tar.gz.enc"
TUNNEL_COPY = "cloudflared"
MANIFEST = "manifest.txt"

TIER_RECORD = ".tier.json"
WEEKLY_MARKER = ".weekly"
MONTHLY_MARKER = ".monthly"


class Tier(Enum):
    """Retention tier of a snapshot."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    WEEKLY_AND_MONTHLY = "weekly_and_monthly"

    @property
    def is_weekly(self) -> bool:
        return self in (Tier.WEEKLY, Tier.WEEKLY_AND_MONTHLY)

    @property
    def is_monthly(self) -> bool:
        return self in (Tier.MONTHLY, Tier.WEEKLY_AND_MONTHLY)

    @property
    def label(self) -> str:
        """Label shown by ``list``; monthly wins over weekly."""
        if self.is_monthly:
            return "Monthly"
        if self.is_weekly:
            return "Weekly"
        return "Daily"

    @classmethod
    def from_flags(cls, weekly: bool, monthly: bool) -> "Tier":
        if weekly and monthly:
            return cls.WEEKLY_AND_MONTHLY
        if monthly:
            return cls.MONTHLY
        if weekly:
            return cls.WEEKLY
        return cls.DAILY


def classify_date(day: date) -> Tier:
    """Sunday snapshots are weekly, first-of-month snapshots are monthly."""
    return Tier.from_flags(weekly=day.isoweekday() == 7, monthly=day.day == 1)


def snapshot_name(moment: datetime) -> str:
    return moment.strftime(SNAPSHOT_TIMESTAMP_FORMAT)


def parse_snapshot_date(name: str) -> Optional[date]:
    """Return the calendar date encoded in a snapshot name, or None if it does not parse."""
    try:
        return datetime.strptime(name.split("_", 1)[0], "%Y%m%d").date()
    except ValueError:
        return None


@dataclass
class Snapshot:
    """One timestamped backup directory."""

    path: str
    tier: Tier = Tier.DAILY
    recorded: bool = False
    damaged: bool = False

    @property
    def name(self) -> str:
        return os.path.basename(self.path.rstrip(os.sep))

    @property
    def snapshot_date(self) -> Optional[date]:
        return parse_snapshot_date(self.name)

    def artifact(self, filename: str) -> str:
        return os.path.join(self.path, filename)

    def has(self, filename: str) -> bool:
        return os.path.exists(self.artifact(filename))


class StepStatus(Enum):
    """Outcome of one backup step."""

    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class StepResult:
    """Typed outcome of one snapshot producer step."""

    step: str
    status: StepStatus
    message: str = ""
    artifacts: List[str] = field(default_factory=list)

    @classmethod
    def success(cls, step: str, message: str = "", artifacts: Optional[List[str]] = None) -> "StepResult":
        return cls(step, StepStatus.SUCCESS, message, artifacts or [])

    @classmethod
    def skipped(cls, step: str, message: str) -> "StepResult":
        return cls(step, StepStatus.SKIPPED, message)

    @classmethod
    def failed(cls, step: str, message: str) -> "StepResult":
        return cls(step, StepStatus.FAILED, message)

    @property
    def ok(self) -> bool:
        return self.status != StepStatus.FAILED


@dataclass
class RotationResult:
    """What a rotation pass marked, kept and deleted."""

    marked: List[str] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    kept: List[str] = field(default_factory=list)
    anomalies: List[str] = field(default_factory=list)


@dataclass
class BackupReport:
    """Result of a full backup run."""

    snapshot: Snapshot
    steps: List[StepResult] = field(default_factory=list)
    total_size: str = ""
    rotation: Optional[RotationResult] = None

    @property
    def failed_steps(self) -> List[StepResult]:
        return [step for step in self.steps if step.status == StepStatus.FAILED]


@dataclass
class RestoreResult:
    """Result of a restore run."""

    snapshot_path: str
    cancelled: bool = False
    restored: List[str] = field(default_factory=list)
