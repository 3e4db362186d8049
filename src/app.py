"""Delivery fulfillment FastAPI application.

Thin HTTP adapter over the FulfillmentOrchestrator. Persistence is chosen by
DATABASE_URL (unset means the in-memory provider). Every request runs inside
the fulfillment domain context.

Usage:
    uvicorn app:app --app-dir src --host 0.0.0.0 --port 8000 --reload
"""

import os
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from fulfillment.api import delivery_router, driver_router, order_router
from fulfillment.bootstrap import get_orchestrator
from fulfillment.domain import fulfillment, init_domain
from shared.utils.logging import add_context, clear_context, configure_logging

configure_logging()

# Initialized at module level so uvicorn workers share the domain
init_domain(os.environ.get("DATABASE_URL"))

# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Delivery Fulfillment API",
    description="Order fulfillment orchestration: dispatch, delivery lifecycle, driver tracking",
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
    """Push the fulfillment domain context for each request."""
    with fulfillment.domain_context():
        response = await call_next(request)
    return response


@app.middleware("http")
async def logging_context_middleware(request: Request, call_next):
    """Bind a request id and path to every log line emitted while handling the request."""
    clear_context()
    add_context(request_id=request.headers.get("x-request-id", str(uuid4())), path=request.url.path)
    try:
        return await call_next(request)
    finally:
        clear_context()


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
app.include_router(delivery_router)
app.include_router(order_router)
app.include_router(driver_router)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    orchestrator = get_orchestrator()
    return JSONResponse(
        content={
            "status": "ok",
            "config": orchestrator.config.model_dump(),
            "inconsistencies": len(orchestrator.recorder.records),
        }
    )
