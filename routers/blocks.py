"""
Block API Router
"""
from fastapi import APIRouter, Depends

from schemas.block import BlockCreate, BlockUpdate
from services.plot_service import PlotService
from routers.deps import get_plot_service

router = APIRouter(prefix="/api", tags=["blocks"])


@router.get("/projects/{project_id}/blocks")
async def list_blocks(project_id: str, service: PlotService = Depends(get_plot_service)):
    blocks = await service.list_blocks(project_id)
    return {"success": True, "data": blocks}


@router.post("/projects/{project_id}/blocks", status_code=201)
async def create_block(
    project_id: str,
    payload: BlockCreate,
    service: PlotService = Depends(get_plot_service),
):
    block = await service.create_block(project_id, payload)
    return {"success": True, "message": "Block created successfully", "data": block}


@router.put("/blocks/{block_id}")
async def update_block(
    block_id: str,
    payload: BlockUpdate,
    service: PlotService = Depends(get_plot_service),
):
    block = await service.update_block(block_id, payload)
    return {"success": True, "message": "Block updated successfully", "data": block}


@router.delete("/blocks/{block_id}")
async def delete_block(block_id: str, service: PlotService = Depends(get_plot_service)):
    result = await service.delete_block(block_id)
    return {"success": True, "message": "Block deleted successfully", "data": result}
