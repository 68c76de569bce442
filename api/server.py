"""
FastAPI front for single-hostname audits. Each request runs the configured
policy set sequentially and returns the same record the CLI writes.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from core.config import settings
from pipeline.orchestrator import Auditor

log = logging.getLogger(__name__)

app = FastAPI(title="Redirect Audit API", version="1.0")
auditor = Auditor()


class HostnamePayload(BaseModel):
    hostname: str


@app.post("/api/audit")
def api_audit(payload: HostnamePayload):
    hostname = payload.hostname.strip()
    if not hostname or "/" in hostname:
        raise HTTPException(status_code=400, detail="hostname must be a bare host[:port]")
    try:
        return auditor.audit(hostname).to_doc()
    except Exception as exc:  # noqa: BLE001
        log.exception("audit failed")
        raise HTTPException(status_code=500, detail="audit failed") from exc


@app.get("/api/health")
def api_health():
    return {"status": "ok", "variant": auditor.variant, "max_hops": settings.max_hops}
