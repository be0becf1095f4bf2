"""FanHub — building ventilation fan provisioning and control server.

Exposes:
  /auth, /role, /floor, /fanmodel, /fan   — REST routers (see :mod:`fanhub.api`)
  WS   /ws                                — live fan control channel
  GET  /health                            — liveness check

Start with::

    python -m fanhub.server
    # or
    uvicorn fanhub.server:app --host 0.0.0.0 --port 5000
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from fanhub import __version__
from fanhub.api import auth, fan_models, fans, floors, roles
from fanhub.auth import seed_admin
from fanhub.control.broadcast import hub
from fanhub.control.websocket import control_ws_handler
from fanhub.db import get_db, init_db
from fanhub.errors import FanHubError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    seed_admin(get_db())
    logger.info("FanHub %s ready", __version__)
    yield


# ──────────────────────────────────────────────────────────────────
# FastAPI app
# ──────────────────────────────────────────────────────────────────

app = FastAPI(title="FanHub", version=__version__, lifespan=lifespan)

app.include_router(auth.router)
app.include_router(roles.router)
app.include_router(floors.router)
app.include_router(fan_models.router)
app.include_router(fans.router)
app.add_api_websocket_route("/ws", control_ws_handler)


@app.exception_handler(FanHubError)
async def fanhub_error_handler(request: Request, exc: FanHubError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("%s %s rejected (%d): %s", request.method, request.url.path, exc.status_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_dict()})


@app.get("/")
async def welcome():
    return {"message": "Welcome to the FanHub API"}


@app.get("/health")
async def health():
    return {"status": "ok", "version": __version__, "observers": len(hub)}


# ──────────────────────────────────────────────────────────────────
# Entry point
# ──────────────────────────────────────────────────────────────────

def main():
    import uvicorn
    host = os.environ.get("FANHUB_HOST", "0.0.0.0")
    port = int(os.environ.get("FANHUB_PORT", "5000"))
    logging.basicConfig(level=logging.INFO)
    logger.info("Starting FanHub server on %s:%d", host, port)
    uvicorn.run("fanhub.server:app", host=host, port=port, reload=False)


if __name__ == "__main__":
    main()
