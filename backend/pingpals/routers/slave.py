"""Slave API endpoints - service assignment from the master."""
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request

from ..exceptions import ServiceNotFoundError
from ..schemas import ServiceConfig
from ..services.slave import SlaveNode
from ..utils.auth import require_api_key

logger = logging.getLogger(__name__)
router = APIRouter(tags=["services"], dependencies=[Depends(require_api_key)])


def get_slave(request: Request) -> SlaveNode:
    return request.app.state.node


@router.post("/service")
async def add_service(config: ServiceConfig, node: SlaveNode = Depends(get_slave)):
    """Start monitoring a service; the first check runs immediately."""
    error = config.missing_target_error()
    if error:
        raise HTTPException(status_code=400, detail=error)

    node.add_service(config)
    return {"status": "ok", "message": f"Service {config.name} added and monitoring started"}


@router.delete("/service/{service_id}")
async def remove_service(service_id: str, node: SlaveNode = Depends(get_slave)):
    """Stop monitoring a service."""
    try:
        node.remove_service(service_id)
    except ServiceNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"status": "ok", "message": f"Service {service_id} removed"}


@router.get("/services", response_model=List[ServiceConfig])
async def list_services(node: SlaveNode = Depends(get_slave)):
    """List the services this slave is checking."""
    return node.list_services()
