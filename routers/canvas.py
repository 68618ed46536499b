"""
Canvas API Router
One editing session per open layout editor; every action answers with
its outcome plus the session's current snapshot.
"""
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from schemas.canvas import ActionResult
from services.canvas_reconciler import CanvasSession, CanvasSessionRegistry
from services.plot_store import PlotStore
from routers.deps import get_canvas_registry, get_plot_store

router = APIRouter(prefix="/api", tags=["canvas"])


class SelectionRequest(BaseModel):
    ids: List[str] = Field(default_factory=list)


class FieldEditRequest(BaseModel):
    key: str = Field(..., description="Plot field to set on every selected node", examples=["price"])
    value: Any = None


class MoveRequest(BaseModel):
    x: float
    y: float


class ResizeRequest(BaseModel):
    width: float
    height: float
    x: Optional[float] = None
    y: Optional[float] = None


class DeleteRequest(BaseModel):
    confirmed: bool = False


def _respond(session: CanvasSession, result: ActionResult) -> dict:
    return {
        "success": result.success,
        "message": result.message,
        "data": result,
        "snapshot": session.snapshot(),
    }


@router.post("/projects/{project_id}/canvas", status_code=201)
async def open_canvas(
    project_id: str,
    store: PlotStore = Depends(get_plot_store),
    registry: CanvasSessionRegistry = Depends(get_canvas_registry),
):
    """Open an editing session seeded with the project's plots"""
    session = await CanvasSession.open(project_id, store)
    session_id = registry.add(session)
    return {"success": True, "session_id": session_id, "snapshot": session.snapshot()}


@router.get("/canvas/{session_id}")
async def get_canvas(session_id: str, registry: CanvasSessionRegistry = Depends(get_canvas_registry)):
    session = registry.get(session_id)
    return {"success": True, "session_id": session_id, "snapshot": session.snapshot()}


@router.put("/canvas/{session_id}/selection")
async def set_selection(
    session_id: str,
    payload: SelectionRequest,
    registry: CanvasSessionRegistry = Depends(get_canvas_registry),
):
    session = registry.get(session_id)
    return _respond(session, session.select(payload.ids))


@router.post("/canvas/{session_id}/drafts")
async def add_draft(session_id: str, registry: CanvasSessionRegistry = Depends(get_canvas_registry)):
    session = registry.get(session_id)
    return _respond(session, session.add_draft())


@router.post("/canvas/{session_id}/duplicate")
async def duplicate_selected(session_id: str, registry: CanvasSessionRegistry = Depends(get_canvas_registry)):
    session = registry.get(session_id)
    return _respond(session, session.duplicate_selected())


@router.post("/canvas/{session_id}/delete")
async def delete_selected(
    session_id: str,
    payload: DeleteRequest,
    registry: CanvasSessionRegistry = Depends(get_canvas_registry),
):
    """Delete the selection; the client must confirm first"""
    session = registry.get(session_id)
    if not payload.confirmed:
        raise HTTPException(status_code=409, detail="Deletion must be confirmed")
    return _respond(session, await session.delete_selected())


@router.patch("/canvas/{session_id}/fields")
async def update_field(
    session_id: str,
    payload: FieldEditRequest,
    registry: CanvasSessionRegistry = Depends(get_canvas_registry),
):
    session = registry.get(session_id)
    return _respond(session, session.update_field(payload.key, payload.value))


@router.post("/canvas/{session_id}/nodes/{node_id}/move")
async def move_node(
    session_id: str,
    node_id: str,
    payload: MoveRequest,
    registry: CanvasSessionRegistry = Depends(get_canvas_registry),
):
    session = registry.get(session_id)
    return _respond(session, session.move_node(node_id, payload.x, payload.y))


@router.post("/canvas/{session_id}/nodes/{node_id}/resize")
async def resize_node(
    session_id: str,
    node_id: str,
    payload: ResizeRequest,
    registry: CanvasSessionRegistry = Depends(get_canvas_registry),
):
    session = registry.get(session_id)
    result = session.resize_node(node_id, payload.width, payload.height, x=payload.x, y=payload.y)
    return _respond(session, result)


@router.post("/canvas/{session_id}/save")
async def save_canvas(session_id: str, registry: CanvasSessionRegistry = Depends(get_canvas_registry)):
    """Persist drafts and moved plots in one round"""
    session = registry.get(session_id)
    return _respond(session, await session.save())


@router.post("/canvas/{session_id}/discard")
async def discard_drafts(session_id: str, registry: CanvasSessionRegistry = Depends(get_canvas_registry)):
    session = registry.get(session_id)
    return _respond(session, session.discard_drafts())


@router.post("/canvas/{session_id}/refresh")
async def refresh_canvas(session_id: str, registry: CanvasSessionRegistry = Depends(get_canvas_registry)):
    session = registry.get(session_id)
    await session.refresh()
    return {"success": True, "session_id": session_id, "snapshot": session.snapshot()}


@router.delete("/canvas/{session_id}")
async def close_canvas(session_id: str, registry: CanvasSessionRegistry = Depends(get_canvas_registry)):
    if not registry.close(session_id):
        raise HTTPException(status_code=404, detail=f"Canvas session {session_id} not found")
    return {"success": True, "message": "Canvas session closed"}
