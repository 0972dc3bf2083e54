import asyncio
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from hostprobe.api.dependencies import get_accessor_factory, get_catalog, get_settings
from hostprobe.api.security import verify_api_key
from hostprobe.config import Settings
from hostprobe.core.catalog import CommandCatalog
from hostprobe.core.dispatcher import Dispatcher
from hostprobe.core.errors import InvalidTargetError, SelectionError
from hostprobe.core.registry import AccessorFactory
from hostprobe.core.target import parse_targets
from hostprobe.output.sinks import BufferSink

logger = logging.getLogger(__name__)

# --- Pydantic Models ---

class ScanRequest(BaseModel):
    commands: List[str]
    targets: List[str] = []

class DiagnosticModel(BaseModel):
    kind: str
    message: str
    command: Optional[str] = None
    target: Optional[str] = None

class TargetSummary(BaseModel):
    target: str
    executed: List[str]
    record_counts: Dict[str, int]
    duration_seconds: float

class ScanResponse(BaseModel):
    records: List[Dict[str, Any]]
    diagnostics: List[DiagnosticModel]
    targets: List[TargetSummary]
    cancelled: bool = False

# --- API Router ---

router = APIRouter(
    prefix="/scan",
    tags=["Scan"],
    dependencies=[Depends(verify_api_key)],
)


@router.post("", response_model=ScanResponse, summary="Run commands against one or more targets")
async def run_scan(request: ScanRequest,
                   catalog: CommandCatalog = Depends(get_catalog),
                   settings: Settings = Depends(get_settings),
                   accessor_factory: AccessorFactory = Depends(get_accessor_factory)):
    """
    Runs the selected commands and returns every record in structured form.

    - **commands**: command names, group names or "all"; "Name=arg1,arg2" passes arguments
    - **targets**: remote host names; empty means the machine running the service

    Probe and formatter failures are reported in `diagnostics` and never fail
    the request. A selection that matches nothing is a 400.
    """
    try:
        targets = parse_targets(request.targets)
    except InvalidTargetError as e:
        raise HTTPException(status_code=400, detail=str(e))

    buffer = BufferSink()
    dispatcher = Dispatcher(
        catalog,
        buffer,
        accessor_factory=accessor_factory,
        output_format="json",
        probe_timeout=settings.probe_timeout,
        max_workers=settings.max_workers,
    )

    try:
        report = await asyncio.to_thread(dispatcher.run, request.commands, targets)
    except SelectionError as e:
        unknown = [d.message for d in buffer.diagnostics]
        raise HTTPException(status_code=400, detail={"error": str(e), "diagnostics": unknown})

    logger.info(f"API scan finished: {report.total_records} record(s) from {len(report.targets)} target(s)")
    return ScanResponse(
        records=buffer.records,
        diagnostics=[DiagnosticModel(**d.to_dict()) for d in report.all_diagnostics],
        targets=[
            TargetSummary(
                target=t.target,
                executed=t.executed,
                record_counts=t.record_counts,
                duration_seconds=t.duration_seconds,
            )
            for t in report.targets
        ],
        cancelled=report.cancelled,
    )
