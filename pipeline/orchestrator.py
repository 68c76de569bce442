"""
Single-process orchestrator: reads hostnames, navigates each one under every
policy of the configured variant, strictly one fetch at a time, and emits one
JSON record per hostname.
"""

import csv
import json
import logging
from typing import Iterator, List, NamedTuple, Optional, TextIO, Tuple

from core.config import FetchConfig, Settings, settings
from core.errors import IngestionError
from core.models import AuditRecord, PolicyRun, UpgradePolicy
from pipeline.navigator import navigate
from probers.http_probe import HopFetcher, Transport

log = logging.getLogger(__name__)


class AuditRun(NamedTuple):
    key: str
    scheme: str
    upgrade: UpgradePolicy


BASIC_RUNS: List[AuditRun] = [
    AuditRun("http_result", "http", UpgradePolicy.NONE),
    AuditRun("https_result", "https", UpgradePolicy.NONE),
]

FULL_RUNS: List[AuditRun] = BASIC_RUNS + [
    AuditRun("http_upgrades", "http", UpgradePolicy.OPTIONAL),
    AuditRun("http_force_upgrades", "http", UpgradePolicy.FORCE),
]


def runs_for_variant(variant: str) -> List[AuditRun]:
    return FULL_RUNS if variant == "full" else BASIC_RUNS


def read_hostnames(stream: TextIO) -> Iterator[Tuple[int, str]]:
    """
    Yield (row_number, hostname) from CSV rows; only the first field is used.
    Every row must have as many fields as the first one. Any bad row raises
    IngestionError: the run stops, nothing is skipped.
    """
    reader = csv.reader(stream, strict=True)
    fields_per_record = None
    row = 0
    while True:
        row += 1
        try:
            record = next(reader)
        except StopIteration:
            return
        except csv.Error as exc:
            raise IngestionError(row, f"error reading input csv: {exc}") from exc
        if not record:
            raise IngestionError(row, "empty record")
        if fields_per_record is None:
            fields_per_record = len(record)
        elif len(record) != fields_per_record:
            raise IngestionError(row, f"wrong number of fields: got {len(record)}, want {fields_per_record}")
        hostname = record[0].strip()
        if not hostname:
            raise IngestionError(row, "empty hostname")
        yield row, hostname


class Auditor:
    def __init__(
        self,
        cfg: Optional[Settings] = None,
        transport: Optional[Transport] = None,
        variant: Optional[str] = None,
    ) -> None:
        self.settings = cfg or settings
        self.variant = variant or self.settings.variant
        self.runs = runs_for_variant(self.variant)
        self.fetcher = HopFetcher(FetchConfig.from_settings(self.settings), transport)

    def audit(self, hostname: str) -> AuditRecord:
        record = AuditRecord(hostname=hostname, track_upgrades=self.variant == "full")
        for run in self.runs:
            chain, result, error = navigate(
                hostname, run.scheme, run.upgrade, self.fetcher, max_hops=self.settings.max_hops
            )
            if error is not None:
                # only the ERROR verdict is reported; the detail stays in the hop log
                log.debug("navigation error | host=%s | run=%s | err=%s", hostname, run.key, error)
            record.runs[run.key] = PolicyRun(result=result, steps=chain)
        log.info(
            "audited %s | %s",
            hostname,
            " ".join(f"{k}={r.result.value}" for k, r in record.runs.items()),
        )
        return record

    def run(self, in_stream: TextIO, out_stream: TextIO) -> int:
        written = 0
        for row, hostname in read_hostnames(in_stream):
            record = self.audit(hostname)
            try:
                out_stream.write(json.dumps(record.to_doc()) + "\n")
            except OSError as exc:
                raise OSError(f"error writing output for row {row}: {exc}") from exc
            written += 1
        return written
