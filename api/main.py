"""
api.main
========

FastAPI application: statutory date calculations, workflow stages and
periods, dashboard counts.

Run with ``uvicorn api.main:app``.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from kalends.exceptions import (
    IllegalTransitionError,
    KalendsError,
    StaleWorkflowError,
    UnknownClientError,
)
from kalends.settings import API_DEBUG

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Kalends API",
    version="0.1.0",
    description="HTTP layer over the kalends statutory deadline and workflow engine.",
    debug=API_DEBUG,
)

# --- CORS ----------------------------------------------------------
# Dev front-end origins only.
origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "Accept"],
)


# --- Error mapping -------------------------------------------------
@app.exception_handler(IllegalTransitionError)
async def illegal_transition(request: Request, exc: IllegalTransitionError):
    body = {"detail": str(exc)}
    if exc.result is not None:
        body["validation"] = exc.result.to_dict()
    return JSONResponse(status_code=400, content=body)


@app.exception_handler(StaleWorkflowError)
async def stale_workflow(request: Request, exc: StaleWorkflowError):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(UnknownClientError)
async def unknown_client(request: Request, exc: UnknownClientError):
    return JSONResponse(status_code=404, content={"detail": f"Unknown client: {exc.args[0]}"})


@app.exception_handler(KalendsError)
async def invalid_input(request: Request, exc: KalendsError):
    logger.info("rejected request %s: %s", request.url.path, exc)
    return JSONResponse(status_code=422, content={"detail": str(exc)})


# --- Include Routers -----------------------------------------------
from .statutory import router as statutory_router  # noqa: E402
from .workflows import router as workflows_router  # noqa: E402
from .dashboard import router as dashboard_router  # noqa: E402

app.include_router(statutory_router)
app.include_router(workflows_router)
app.include_router(dashboard_router)


# ---------- health-check ----------
@app.get("/")
def root():
    return {"status": "ok", "msg": "Kalends API is alive"}
