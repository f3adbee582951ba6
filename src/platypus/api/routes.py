# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""FastAPI router: thin marshaling over the fleet controller."""

from __future__ import annotations

from datetime import timedelta

from platypus import __version__
from platypus.providers import check_dependency

check_dependency("fastapi", "pip install -e '.[api]'")

from fastapi import APIRouter, Depends, Header, HTTPException, Request, Response  # noqa: E402
from prometheus_client import CONTENT_TYPE_LATEST  # noqa: E402

from platypus.api.models import (  # noqa: E402
    EcoScoreRequest,
    EcoScoreResponse,
    HealthResponse,
    MetricAccepted,
    MetricRequest,
    MetricsResponse,
    ServerDetail,
)
from platypus.data.models import (  # noqa: E402
    MigrationPlan,
    Prediction,
    Sample,
    Server,
    ServiceEcoProfile,
    utcnow,
)
from platypus.errors import (  # noqa: E402
    BufferFullError,
    CollaboratorError,
    InsufficientDataError,
    NotFoundError,
)
from platypus.service import ControllerStatus, FleetController  # noqa: E402


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

def get_controller(request: Request) -> FleetController:
    """The controller the application was created with."""
    return request.app.state.controller


def require_api_key(
    request: Request,
    x_api_key: str | None = Header(default=None),
) -> str:
    """Reject requests without an acceptable ``X-API-Key`` header.

    When no keys are configured any non-empty key is accepted.
    """
    if not x_api_key:
        raise HTTPException(status_code=401, detail="No API key provided")
    allowed: list[str] = request.app.state.api_keys
    if allowed and x_api_key not in allowed:
        raise HTTPException(status_code=401, detail="Invalid API key")
    return x_api_key


router = APIRouter(prefix="/api/v1", tags=["platypus"])
protected = APIRouter(prefix="/api/v1", tags=["platypus"], dependencies=[Depends(require_api_key)])


# ---------------------------------------------------------------------------
# Open endpoints
# ---------------------------------------------------------------------------

@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse(version=__version__)


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------

@protected.get("/metrics", response_model=MetricsResponse)
async def get_metrics(
    server_id: str,
    controller: FleetController = Depends(get_controller),
) -> MetricsResponse:
    try:
        samples = await controller.store.query(server_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=exc.message) from exc
    return MetricsResponse(server_id=server_id, samples=samples)


@protected.post("/metrics", response_model=MetricAccepted, status_code=201)
async def post_metrics(
    body: MetricRequest,
    controller: FleetController = Depends(get_controller),
) -> MetricAccepted:
    sample = Sample(
        server_id=body.server_id,
        timestamp=body.timestamp or utcnow(),
        cpu_usage=body.cpu_usage,
        memory_usage=body.memory_usage,
        power_usage=body.power_usage,
        carbon_footprint=body.carbon_footprint,
    )
    try:
        controller.store.ingest(body.server_id, sample, region=body.region)
    except BufferFullError as exc:
        raise HTTPException(status_code=503, detail=exc.message) from exc
    return MetricAccepted(server_id=body.server_id, pending_batches=controller.store.pending())


@protected.get("/prometheus")
async def prometheus(controller: FleetController = Depends(get_controller)) -> Response:
    return Response(content=controller.store.export_prometheus(), media_type=CONTENT_TYPE_LATEST)


# ---------------------------------------------------------------------------
# Fleet
# ---------------------------------------------------------------------------

@protected.get("/servers", response_model=list[Server])
async def list_servers(controller: FleetController = Depends(get_controller)) -> list[Server]:
    try:
        return await controller.provider.list_servers()
    except CollaboratorError as exc:
        raise HTTPException(status_code=502, detail=exc.message) from exc


@protected.get("/servers/{server_id}", response_model=ServerDetail)
async def get_server(
    server_id: str,
    controller: FleetController = Depends(get_controller),
) -> ServerDetail:
    try:
        servers = await controller.provider.list_servers()
    except CollaboratorError as exc:
        raise HTTPException(status_code=502, detail=exc.message) from exc
    server = next((s for s in servers if s.id == server_id), None)
    if server is None:
        raise HTTPException(status_code=404, detail=f"unknown server: {server_id}")
    try:
        snapshot = await controller.engine.analyze(server_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=exc.message) from exc
    except InsufficientDataError as exc:
        raise HTTPException(status_code=422, detail=exc.message) from exc
    return ServerDetail(server=server, snapshot=snapshot)


@protected.post("/eco-score", response_model=EcoScoreResponse)
async def eco_score(
    body: EcoScoreRequest,
    controller: FleetController = Depends(get_controller),
) -> EcoScoreResponse:
    score = await controller.engine.eco_score(body.server_id)
    return EcoScoreResponse(server_id=body.server_id, eco_score=score, timestamp=utcnow())


@protected.get("/plans", response_model=list[MigrationPlan])
async def plans(controller: FleetController = Depends(get_controller)) -> list[MigrationPlan]:
    return await controller.planner.active_plans()


@protected.get("/forecast/{server_id}", response_model=list[Prediction])
async def forecast(
    server_id: str,
    hours: int | None = None,
    controller: FleetController = Depends(get_controller),
) -> list[Prediction]:
    horizon = timedelta(hours=hours) if hours else None
    try:
        return await controller.forecaster.predict(server_id, horizon)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=exc.message) from exc
    except InsufficientDataError as exc:
        raise HTTPException(status_code=422, detail=exc.message) from exc


# ---------------------------------------------------------------------------
# Eco tags
# ---------------------------------------------------------------------------

@protected.get("/eco-tags", response_model=list[ServiceEcoProfile])
async def eco_tags(controller: FleetController = Depends(get_controller)) -> list[ServiceEcoProfile]:
    return await controller.classifier.all_profiles()


@protected.get("/eco-tags/{service_name}", response_model=ServiceEcoProfile)
async def eco_tag_profile(
    service_name: str,
    controller: FleetController = Depends(get_controller),
) -> ServiceEcoProfile:
    try:
        return await controller.classifier.get_profile(service_name)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=exc.message) from exc


@protected.get("/status", response_model=ControllerStatus)
async def status(controller: FleetController = Depends(get_controller)) -> ControllerStatus:
    return await controller.status()
