"""
HTTP façade over the session manager.

Four JSON endpoints under `/api`: QR pairing, send, status and logout.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Annotated, Any

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .config import GatewayConfig
from .exceptions import NotConnectedError
from .qr import render_qr_data_url
from .session import SessionManager

logger = logging.getLogger(__name__)


class SendRequest(BaseModel):
    phone: str
    message: str


def get_session(request: Request) -> SessionManager:
    return request.app.state.session


SessionDep = Annotated[SessionManager, Depends(get_session)]


router = APIRouter(prefix="/api")


@router.get("/qr")
async def get_qr(session: SessionDep) -> dict[str, Any]:
    if session.qr:
        return {"success": True, "qr": render_qr_data_url(session.qr)}

    if session.connected:
        return {"success": False, "message": "Already connected", "connected": True}

    return {"success": False, "message": "QR not ready yet"}


@router.post("/send", response_model=None)
async def send(body: SendRequest, session: SessionDep) -> dict[str, Any] | JSONResponse:
    try:
        await session.send_message(body.phone, body.message)
    except NotConnectedError as e:
        return JSONResponse(status_code=400, content={"success": False, "error": str(e)})
    except Exception as e:
        logger.exception("Sending to %s failed", body.phone)
        return JSONResponse(status_code=500, content={"success": False, "error": str(e)})

    return {"success": True, "message": "Message sent successfully"}


@router.get("/status")
async def status(session: SessionDep) -> dict[str, Any]:
    me = session.me if session.connected else None
    if me is None:
        return {"connected": False}

    out: dict[str, Any] = {"connected": True, "phoneNumber": me.id}
    if me.name:
        out["name"] = me.name
    return out


@router.post("/logout", response_model=None)
async def logout(session: SessionDep) -> dict[str, Any] | JSONResponse:
    try:
        await session.logout()
    except Exception as e:
        logger.exception("Logout failed")
        return JSONResponse(status_code=500, content={"success": False, "error": str(e)})

    return {"success": True, "message": "Logged out successfully"}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    session: SessionManager = app.state.session
    # Requests are served while the first connection is still being set up.
    session.start()
    try:
        yield
    finally:
        await session.close()


def create_app(
    config: GatewayConfig | None = None, *, session: SessionManager | None = None
) -> FastAPI:
    config = config or GatewayConfig()

    app = FastAPI(title="wagateway", lifespan=lifespan)
    app.state.config = config
    app.state.session = session or SessionManager(config)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router)
    return app
