"""
Lifecycle models — the state machine and per-run report.

A single invocation walks::

    Pending → Fetched → DependenciesResolved → Built → Installed → Verified
                                                                 ↘ Failed(stage)

Terminal states are ``verified`` and ``failed``. A fresh invocation
always starts at ``pending``; nothing carries over between runs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class LifecycleState(str, Enum):
    PENDING = "pending"
    FETCHED = "fetched"
    DEPENDENCIES_RESOLVED = "dependencies_resolved"
    BUILT = "built"
    INSTALLED = "installed"
    VERIFIED = "verified"
    FAILED = "failed"


class Stage(str, Enum):
    """Lifecycle stages, in execution order."""

    FETCH = "fetch"
    RESOLVE = "resolve"
    BUILD = "build"
    INSTALL = "install"
    VERIFY = "verify"


# State reached when each stage's postcondition holds
STAGE_COMPLETES: dict[Stage, LifecycleState] = {
    Stage.FETCH: LifecycleState.FETCHED,
    Stage.RESOLVE: LifecycleState.DEPENDENCIES_RESOLVED,
    Stage.BUILD: LifecycleState.BUILT,
    Stage.INSTALL: LifecycleState.INSTALLED,
    Stage.VERIFY: LifecycleState.VERIFIED,
}


@dataclass
class StageRecord:
    """Outcome of one lifecycle stage."""

    stage: Stage
    status: str = "ok"              # ok, failed
    duration_ms: int = 0
    detail: str = ""
    error: dict[str, Any] | None = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    def to_dict(self) -> dict:
        data: dict[str, Any] = {
            "stage": self.stage.value,
            "status": self.status,
            "duration_ms": self.duration_ms,
        }
        if self.detail:
            data["detail"] = self.detail
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class ProbeResult:
    """Observed output of one verification probe."""

    run: str
    expect: str
    output: str = ""
    returncode: int | None = None
    passed: bool = False

    def to_dict(self) -> dict:
        return {
            "run": self.run,
            "expect": self.expect,
            "returncode": self.returncode,
            "passed": self.passed,
        }


@dataclass
class LifecycleReport:
    """Result of running one recipe through the lifecycle."""

    recipe: str = ""
    version: str = ""
    prefix: str = ""
    state: LifecycleState = LifecycleState.PENDING
    failed_stage: Stage | None = None
    stages: list[StageRecord] = field(default_factory=list)
    probes: list[ProbeResult] = field(default_factory=list)
    installed_files: list[str] = field(default_factory=list)
    started_at: str = field(default_factory=_now_iso)
    ended_at: str = ""

    @property
    def ok(self) -> bool:
        return self.state == LifecycleState.VERIFIED

    @property
    def error(self) -> dict[str, Any] | None:
        for record in self.stages:
            if record.error:
                return record.error
        return None

    @property
    def installed_unverified(self) -> bool:
        """Files were published but the probes did not confirm them."""
        return self.failed_stage == Stage.VERIFY

    def advance(self, record: StageRecord) -> None:
        """Record a stage outcome and move the state machine."""
        self.stages.append(record)
        if record.ok:
            self.state = STAGE_COMPLETES[record.stage]
        else:
            self.state = LifecycleState.FAILED
            self.failed_stage = record.stage

    def finish(self) -> None:
        self.ended_at = _now_iso()

    def to_dict(self) -> dict:
        data: dict[str, Any] = {
            "recipe": self.recipe,
            "version": self.version,
            "prefix": self.prefix,
            "state": self.state.value,
            "ok": self.ok,
            "failed_stage": self.failed_stage.value if self.failed_stage else None,
            "installed_unverified": self.installed_unverified,
            "started_at": self.started_at,
            "ended_at": self.ended_at,
            "stages": [s.to_dict() for s in self.stages],
            "probes": [p.to_dict() for p in self.probes],
            "installed_files": self.installed_files,
        }
        if self.error:
            data["error"] = self.error
        return data
