"""
Plot Inventory API (FastAPI)
Real-estate project plots: listing, bulk numbering, sale status and the
layout canvas editor.
"""
from datetime import datetime

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config.settings import CORS_ORIGINS
from routers import blocks, canvas, plots
from services.canvas_reconciler import CanvasSessionRegistry
from services.errors import NotFoundError, TransportError, ValidationError
from services.logger import logger

# Initialize FastAPI
app = FastAPI(
    title="Plot Inventory API",
    description="Plot inventory and layout canvas for real-estate projects",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.state.canvas_sessions = CanvasSessionRegistry()

# Register routers
app.include_router(plots.router)
app.include_router(blocks.router)
app.include_router(canvas.router)


# ==================== Error handlers ====================

@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(
        status_code=422,
        content={"success": False, "message": exc.message, "field_errors": exc.field_errors},
    )


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    """Request body / query errors use the same field_errors shape as service validation"""
    field_errors = {}
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        field_errors.setdefault(".".join(loc) or "__root__", err.get("msg", "Invalid value"))
    return JSONResponse(
        status_code=422,
        content={"success": False, "message": "Invalid request", "field_errors": field_errors},
    )


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"success": False, "message": exc.message})


@app.exception_handler(TransportError)
async def transport_error_handler(request: Request, exc: TransportError):
    logger.error(f"{request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=502, content={"success": False, "message": exc.message})


@app.get("/")
async def root():
    return {
        "message": "Plot Inventory API is running",
        "timestamp": datetime.now().isoformat()
    }


@app.get("/api/health")
async def health_check():
    """System Health Check"""
    return {"status": "healthy", "service": "plot-inventory", "canvas_sessions": len(app.state.canvas_sessions)}
