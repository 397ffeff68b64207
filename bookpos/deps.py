import ipaddress
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request

from .services import PosServices

SESSION_HEADER = "X-POS-Session"


def get_services(request: Request) -> PosServices:
    return request.app.state.services


def is_loopback(ip: Optional[str]) -> bool:
    try:
        return ipaddress.ip_address((ip or "").strip()).is_loopback
    except ValueError:
        return (ip or "").strip().lower() == "localhost"


def client_ip(request: Request) -> str:
    return request.client.host if request.client else ""


def require_admin(
    request: Request,
    x_pos_session: Optional[str] = Header(None, alias=SESSION_HEADER),
    services: PosServices = Depends(get_services),
):
    # Admin unlock is opt-in; until then the agent trusts whoever can reach it.
    cfg = services.config
    if not cfg.get("require_admin_pin"):
        return True
    if not (cfg.get("admin_pin_hash") or "").strip():
        raise HTTPException(
            status_code=503,
            detail="pos_auth_required: set an admin PIN via POST /api/admin/pin/set, then unlock with POST /api/auth/pin",
        )
    if not services.store.validate_session(x_pos_session or ""):
        raise HTTPException(status_code=401, detail="pos_auth_required")
    return True
