"""
Shared FastAPI dependencies
"""
from fastapi import Depends, Request
from supabase import AsyncClient

from config.supabase import get_supabase
from services.canvas_reconciler import CanvasSessionRegistry
from services.plot_service import PlotService
from services.plot_store import PlotStore, SupabasePlotStore


async def get_plot_store(client: AsyncClient = Depends(get_supabase)) -> PlotStore:
    return SupabasePlotStore(client)


async def get_plot_service(store: PlotStore = Depends(get_plot_store)) -> PlotService:
    return PlotService(store)


def get_canvas_registry(request: Request) -> CanvasSessionRegistry:
    return request.app.state.canvas_sessions
