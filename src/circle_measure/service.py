from __future__ import annotations

import threading
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel, Field

from .models import MeasurementConfig
from .records import record_to_dict
from .session import ScanSessionConfig, ScanSessionResult, run_synthetic_scan
from .synthetic import SyntheticSceneConfig, available_scenarios


class ScanRequest(BaseModel):
    scenario: str = Field(default="quiet_lab", min_length=1)
    seed: int = 42
    diameter_cm: float = Field(default=20.0, gt=0)
    distance_m: float | None = Field(default=None, gt=0)
    max_frames: int = Field(default=900, ge=1, le=10_000)


class ScanTransitionItem(BaseModel):
    frame: int
    from_state: str
    to_state: str


class ScanResponse(BaseModel):
    id: int
    created_at: datetime
    status: str
    scenario: str
    seed: int
    frames: int
    radius_cm: float | None = None
    avg_distance_cm: float | None = None
    avg_raw_distance_cm: float | None = None
    expected_diameter_cm: float | None = None
    messages: list[str]
    transitions: list[ScanTransitionItem]


class ScanDetail(ScanResponse):
    record: dict[str, Any] | None = None


class ScanListItem(BaseModel):
    id: int
    created_at: datetime
    status: str
    scenario: str
    radius_cm: float | None = None


class ScanStore:
    """In-memory scan results, keyed by an increasing integer id."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._scans: dict[int, ScanDetail] = {}
        self._next_id = 1

    def add(self, request: ScanRequest, result: ScanSessionResult) -> ScanDetail:
        record = result.record
        with self._lock:
            scan_id = self._next_id
            self._next_id += 1
            detail = ScanDetail(
                id=scan_id,
                created_at=datetime.now(UTC),
                status=result.status,
                scenario=request.scenario,
                seed=request.seed,
                frames=result.frames,
                radius_cm=record.radius_cm if record is not None else None,
                avg_distance_cm=record.avg_distance_cm if record is not None else None,
                avg_raw_distance_cm=record.avg_raw_distance_cm if record is not None else None,
                expected_diameter_cm=result.expected_diameter_cm,
                messages=list(result.messages),
                transitions=[
                    ScanTransitionItem(
                        frame=item.frame, from_state=item.from_state, to_state=item.to_state
                    )
                    for item in result.transitions
                ],
                record=record_to_dict(record) if record is not None else None,
            )
            self._scans[scan_id] = detail
        return detail

    def get(self, scan_id: int) -> ScanDetail | None:
        with self._lock:
            return self._scans.get(scan_id)

    def page(self, limit: int, offset: int) -> list[ScanDetail]:
        with self._lock:
            ordered = sorted(self._scans.values(), key=lambda item: item.id, reverse=True)
        return ordered[offset : offset + limit]


def create_measurement_app(measurement: MeasurementConfig | None = None) -> FastAPI:
    app = FastAPI(
        title="Circle Measure API",
        version="0.1.0",
        description="Runs synthetic circle scans and exposes their detection records.",
    )
    app.state.measurement = measurement or MeasurementConfig()
    app.state.store = ScanStore()

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/api/v1/scans", response_model=ScanResponse, status_code=201)
    def create_scan(payload: ScanRequest) -> ScanResponse:
        if payload.scenario not in available_scenarios():
            raise HTTPException(
                status_code=422,
                detail=f"unsupported scenario: {payload.scenario}",
            )
        scene = SyntheticSceneConfig(
            scenario=payload.scenario,
            seed=payload.seed,
            object_diameter_cm=payload.diameter_cm,
            distance_m=payload.distance_m,
        )
        result = run_synthetic_scan(
            scene,
            app.state.measurement,
            ScanSessionConfig(max_frames=payload.max_frames),
        )
        detail = app.state.store.add(payload, result)
        return ScanResponse(**detail.model_dump(exclude={"record"}))

    @app.get("/api/v1/scans", response_model=list[ScanListItem])
    def list_scans(
        limit: int = Query(default=100, ge=1, le=1000),
        offset: int = Query(default=0, ge=0),
    ) -> list[ScanListItem]:
        return [
            ScanListItem(
                id=item.id,
                created_at=item.created_at,
                status=item.status,
                scenario=item.scenario,
                radius_cm=item.radius_cm,
            )
            for item in app.state.store.page(limit, offset)
        ]

    @app.get("/api/v1/scans/{scan_id}", response_model=ScanDetail)
    def get_scan(scan_id: int) -> ScanDetail:
        detail = app.state.store.get(scan_id)
        if detail is None:
            raise HTTPException(status_code=404, detail="scan not found")
        return detail

    return app
