"""
Plot API Router
Plot listing, single / bulk creation, edits, status changes and stats
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends
from pydantic import BaseModel

from config.settings import DEFAULT_PAGE_LIMIT
from schemas.numbering import BulkNumberingSpec
from schemas.plot import BulkPlotUpdate
from services.plot_service import PlotService
from routers.deps import get_plot_service

router = APIRouter(prefix="/api", tags=["plots"])


class StatusChange(BaseModel):
    status: str
    booked_by: Optional[str] = None


class BulkUpdateRequest(BaseModel):
    plots: List[BulkPlotUpdate]


@router.get("/projects/{project_id}/plots")
async def list_plots(
    project_id: str,
    status: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    page: int = 1,
    limit: int = DEFAULT_PAGE_LIMIT,
    service: PlotService = Depends(get_plot_service),
):
    """List a project's plots, optionally filtered by status and price range"""
    filters = {
        "status": status,
        "min_price": min_price,
        "max_price": max_price,
        "page": page,
        "limit": limit,
    }
    result = await service.list_plots(project_id, {k: v for k, v in filters.items() if v is not None})
    return {"success": True, "data": result}


@router.get("/projects/{project_id}/plots/stats")
async def get_plot_stats(project_id: str, service: PlotService = Depends(get_plot_service)):
    """Per-status plot counts for a project"""
    stats = await service.get_project_stats(project_id)
    return {"success": True, "data": stats}


@router.post("/projects/{project_id}/plots", status_code=201)
async def create_plot(
    project_id: str,
    payload: Dict[str, Any] = Body(...),
    service: PlotService = Depends(get_plot_service),
):
    """Create one plot; price defaults to area x price_per_unit"""
    plot = await service.create_plot(project_id, payload)
    return {"success": True, "message": "Plot created successfully", "data": plot}


@router.post("/projects/{project_id}/plots/bulk", status_code=201)
async def bulk_create_plots(
    project_id: str,
    spec: BulkNumberingSpec,
    service: PlotService = Depends(get_plot_service),
):
    """Create a numbered range of plots (prefix + zero-padded number + suffix)"""
    result = await service.bulk_create_range(project_id, spec)
    return {"success": True, "message": f"{result.count} plots created successfully", "data": result}


@router.put("/projects/{project_id}/plots/bulk-update")
async def bulk_update_plots(
    project_id: str,
    payload: BulkUpdateRequest,
    service: PlotService = Depends(get_plot_service),
):
    result = await service.bulk_update_plots(project_id, payload.plots)
    return {"success": True, "message": f"{result.modified} plots updated successfully", "data": result}


@router.get("/plots/{plot_id}")
async def get_plot(plot_id: str, service: PlotService = Depends(get_plot_service)):
    plot = await service.get_plot(plot_id)
    return {"success": True, "data": plot}


@router.put("/plots/{plot_id}")
async def update_plot(
    plot_id: str,
    payload: Dict[str, Any] = Body(...),
    service: PlotService = Depends(get_plot_service),
):
    plot = await service.update_plot(plot_id, payload)
    return {"success": True, "message": "Plot updated successfully", "data": plot}


@router.patch("/plots/{plot_id}/status")
async def update_plot_status(
    plot_id: str,
    payload: StatusChange,
    service: PlotService = Depends(get_plot_service),
):
    """Move a plot through its sale lifecycle"""
    plot = await service.update_plot_status(plot_id, payload.status, booked_by=payload.booked_by)
    return {"success": True, "message": "Plot status updated successfully", "data": plot}


@router.delete("/plots/{plot_id}")
async def delete_plot(plot_id: str, service: PlotService = Depends(get_plot_service)):
    result = await service.delete_plot(plot_id)
    return {"success": True, "message": "Plot deleted successfully", "data": result}
