"""
Shared data models: hops, chains, verdicts and the per-hostname audit record.
Hop is frozen; a chain only ever grows by appending new hops.
"""

from __future__ import annotations

from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

MAX_HOPS = 25


class Result(str, Enum):
    SECURE = "SECURE"
    INSECURE_REDIRECT = "INSECURE_REDIRECT"
    INSECURE = "INSECURE"
    ERROR = "ERROR"


class UpgradePolicy(IntEnum):
    NONE = 0
    OPTIONAL = 1
    FORCE = 2


class Hop(BaseModel):
    model_config = ConfigDict(frozen=True)

    hostname: str
    terminal: bool = False
    status_code: int = 0
    next: Optional[str] = None
    insecure: bool = False
    error: Optional[str] = None
    upgraded: bool = False

    def to_doc(self, include_upgraded: bool = True) -> Dict[str, Any]:
        doc: Dict[str, Any] = {
            "hostname": self.hostname,
            "terminal": self.terminal,
            "status_code": self.status_code,
        }
        if self.next:
            doc["next"] = self.next
        doc["insecure"] = self.insecure
        if self.error:
            doc["error"] = self.error
        if include_upgraded:
            doc["upgraded"] = self.upgraded
        return doc


class PolicyRun(BaseModel):
    result: Result
    steps: List[Hop] = Field(default_factory=list)


class AuditRecord(BaseModel):
    """
    Outcome of every policy run for one hostname, keyed by output field
    (http_result, https_result, http_upgrades, http_force_upgrades).
    """

    hostname: str
    runs: Dict[str, PolicyRun] = Field(default_factory=dict)
    track_upgrades: bool = True

    def to_doc(self) -> Dict[str, Any]:
        doc: Dict[str, Any] = {"hostname": self.hostname}
        for key, run in self.runs.items():
            doc[key] = run.result.value
            steps_key = key[: -len("_result")] if key.endswith("_result") else key
            doc[f"{steps_key}_steps"] = [h.to_doc(include_upgraded=self.track_upgrades) for h in run.steps]
        return doc
