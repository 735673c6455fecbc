"""Master API endpoints - slave protocol and service management."""
import json
import logging
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Header, HTTPException, Request

from ..exceptions import DuplicateServiceError, ServiceNotFoundError
from ..schemas import HeartbeatBody, HeartbeatResponse, ReportPayload, ServiceCreate, ServiceStatus, SlaveStatus
from ..services.master import MasterNode
from ..utils.auth import require_api_key

logger = logging.getLogger(__name__)
router = APIRouter(dependencies=[Depends(require_api_key)])

_UNROUTABLE_HOSTS = {"0.0.0.0", "::", ""}


def get_master(request: Request) -> MasterNode:
    return request.app.state.node


def _parse_services_header(value: Optional[str]) -> List[str]:
    """X-Slave-Services carries a JSON array of service ids."""
    if not value:
        return []
    try:
        services = json.loads(value)
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail="X-Slave-Services must be a JSON array")
    if not isinstance(services, list) or not all(isinstance(s, str) for s in services):
        raise HTTPException(status_code=400, detail="X-Slave-Services must be a JSON array of strings")
    return services


@router.post("/heartbeat", response_model=HeartbeatResponse, tags=["slaves"])
async def heartbeat(
    request: Request,
    body: Optional[HeartbeatBody] = Body(None),
    x_slave_id: Optional[str] = Header(None),
    x_slave_name: Optional[str] = Header(None),
    x_slave_services: Optional[str] = Header(None),
    x_slave_host: Optional[str] = Header(None),
    x_slave_port: Optional[int] = Header(None),
    master: MasterNode = Depends(get_master),
):
    """Slave liveness signal; also reconciles the slave's assigned services."""
    if not x_slave_id:
        raise HTTPException(status_code=400, detail="X-Slave-Id header is required")

    services = _parse_services_header(x_slave_services)

    # Slaves bound to a wildcard address are reached at their source address
    host = x_slave_host
    if (host or "") in _UNROUTABLE_HOSTS and request.client:
        host = request.client.host

    return await master.handle_heartbeat(
        x_slave_id,
        services,
        name=x_slave_name,
        host=host,
        port=x_slave_port,
        stats=body.stats if body else None,
    )


@router.post("/report", tags=["slaves"])
async def report(payload: ReportPayload, master: MasterNode = Depends(get_master)):
    """Slave reports one check result."""
    status = await master.handle_report(payload)
    if status is None:
        return {"status": "ignored", "serviceId": payload.service_id}
    return {"status": "ok", "serviceId": payload.service_id}


@router.get("/services", response_model=List[ServiceStatus], tags=["services"])
async def list_services(master: MasterNode = Depends(get_master)):
    """List all services with their uptime state."""
    return master.list_services()


@router.get("/services/{service_id}", response_model=ServiceStatus, tags=["services"])
async def get_service(service_id: str, master: MasterNode = Depends(get_master)):
    """Get one service with its uptime state."""
    try:
        return master.get_service(service_id)
    except ServiceNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/services", response_model=ServiceStatus, status_code=201, tags=["services"])
async def create_service(data: ServiceCreate, master: MasterNode = Depends(get_master)):
    """Create a service and assign it to a slave."""
    try:
        return await master.create_service(data)
    except DuplicateServiceError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.delete("/services/{service_id}", status_code=204, tags=["services"])
async def delete_service(service_id: str, master: MasterNode = Depends(get_master)):
    """Delete a service and stop its checks everywhere."""
    try:
        await master.remove_service(service_id)
    except ServiceNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/slaves", response_model=List[SlaveStatus], tags=["slaves"])
async def list_slaves(master: MasterNode = Depends(get_master)):
    """List known slaves; isActive reflects the heartbeat timeout."""
    return master.list_slaves()
