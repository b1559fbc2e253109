"""Monitoring job management backed by the gateway's cron methods."""

from __future__ import annotations

from typing import Any
from uuid import UUID

from fastapi import APIRouter, HTTPException, status

from trendclaw.api.deps import ProvisionerDep, SessionFactoryDep
from trendclaw.api.schemas import ProvisionResponse, RemoveJobResponse, RunJobResponse
from trendclaw.gateway.errors import GatewayNotConnectedError
from trendclaw.models import Client, Niche

router = APIRouter(prefix="/monitoring", tags=["monitoring"])


@router.get("/jobs")
async def list_jobs(provisioner: ProvisionerDep) -> Any:
    return await provisioner.list_jobs()


@router.get("/status")
async def job_status(provisioner: ProvisionerDep) -> Any:
    return await provisioner.job_status()


@router.get("/jobs/{cron_job_id}/runs")
async def job_runs(cron_job_id: str, provisioner: ProvisionerDep) -> Any:
    return await provisioner.job_runs(cron_job_id)


@router.post("/jobs/{cron_job_id}/run", response_model=RunJobResponse)
async def run_job(cron_job_id: str, provisioner: ProvisionerDep) -> RunJobResponse:
    result = await provisioner.force_run(cron_job_id)
    return RunJobResponse(cron_job_id=cron_job_id, result=result)


@router.delete("/jobs/{cron_job_id}", response_model=RemoveJobResponse)
async def remove_job(cron_job_id: str, provisioner: ProvisionerDep) -> RemoveJobResponse:
    removed = await provisioner.deprovision(cron_job_id)
    if not removed:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown job")
    return RemoveJobResponse(cron_job_id=cron_job_id, removed=removed)


async def _provision(
    model: type[Client] | type[Niche],
    entity_id: UUID,
    provisioner: ProvisionerDep,
    session_factory: SessionFactoryDep,
) -> ProvisionResponse:
    with session_factory() as session:
        entity = session.get(model, entity_id)
        if entity is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{model.__name__} not found")
        if entity.cron_job_id:
            return ProvisionResponse(cron_job_id=entity.cron_job_id, created=False)
        if not provisioner.gateway.is_connected():
            raise GatewayNotConnectedError()

        cron_job_id = await provisioner.provision(entity.tenant_id, entity)

    if cron_job_id is None:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Gateway did not return a job id")
    return ProvisionResponse(cron_job_id=cron_job_id, created=True)


@router.post("/clients/{client_id}", response_model=ProvisionResponse)
async def provision_client(
    client_id: UUID, provisioner: ProvisionerDep, session_factory: SessionFactoryDep
) -> ProvisionResponse:
    return await _provision(Client, client_id, provisioner, session_factory)


@router.post("/niches/{niche_id}", response_model=ProvisionResponse)
async def provision_niche(
    niche_id: UUID, provisioner: ProvisionerDep, session_factory: SessionFactoryDep
) -> ProvisionResponse:
    return await _provision(Niche, niche_id, provisioner, session_factory)
