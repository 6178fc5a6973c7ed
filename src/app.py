"""Orderflow FastAPI application.

Every HTTP request runs inside the orderflow domain context. The lifespan
builds the lifecycle engine (and with it the process-local cache tier and
realtime subscription registry) at startup and tears it down at shutdown.

Usage:
    uvicorn app:app --app-dir src --host 0.0.0.0 --port 8000 --reload
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from orderflow.domain import orderflow
from orderflow.utils.logging import configure_logging

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# PROTEAN_ENV selects the domain.toml overlay ("production" → PostgreSQL).
configure_logging()
orderflow.init()

from orderflow.api.dependencies import reset_engine, set_engine  # noqa: E402
from orderflow.api.realtime import realtime_router  # noqa: E402
from orderflow.api.routes import order_router, tab_router  # noqa: E402
from orderflow.lifecycle.engine import build_engine  # noqa: E402


@asynccontextmanager
async def lifespan(app: FastAPI):
    with orderflow.domain_context():
        set_engine(build_engine())
    yield
    reset_engine()


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Orderflow API",
    description="Order lifecycle: creation, status workflow, realtime updates",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the orderflow domain context for each request."""
    with orderflow.domain_context():
        return await call_next(request)


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
app.include_router(order_router)
app.include_router(tab_router)
app.include_router(realtime_router)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return JSONResponse(content={"status": "ok", "domain": orderflow.name})
