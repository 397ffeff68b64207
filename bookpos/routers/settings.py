from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from pydantic import BaseModel, Field

from ..config import public_config, save_config
from ..deps import SESSION_HEADER, client_ip, get_services, is_loopback, require_admin
from ..logs import json_log
from ..security import hash_pin, verify_pin
from ..services import PosServices

router = APIRouter(prefix="/api", tags=["settings"])


class StoreSettings(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    auto_print: Optional[bool] = None
    sound_enabled: Optional[bool] = None
    notifications: Optional[bool] = None


class SettingsUpdate(BaseModel):
    api_base_url: Optional[str] = None
    api_token: Optional[str] = None
    http_timeout_s: Optional[float] = Field(None, gt=0, le=120)
    catalog_max_age_s: Optional[float] = Field(None, ge=0)
    require_admin_pin: Optional[bool] = None
    admin_session_hours: Optional[int] = Field(None, ge=1, le=24 * 14)
    store: Optional[StoreSettings] = None


class PinIn(BaseModel):
    pin: str


@router.get("/settings")
def get_settings(services: PosServices = Depends(get_services)):
    return {"settings": public_config(services.config)}


@router.patch("/settings", dependencies=[Depends(require_admin)])
def update_settings(data: SettingsUpdate, services: PosServices = Depends(get_services)):
    patch = data.model_dump(exclude_unset=True)
    if not patch:
        return {"settings": public_config(services.config)}
    cfg = services.config
    store_patch = patch.pop("store", None)
    for k, v in patch.items():
        if v is not None:
            cfg[k] = v
    if store_patch:
        # Shallow merge: unspecified store fields keep their values.
        cfg["store"] = {**(cfg.get("store") or {}), **{k: v for k, v in store_patch.items() if v is not None}}
    save_config(cfg, services.config_path)

    remote = services.remote
    remote.base_url = (cfg.get("api_base_url") or "").rstrip("/")
    remote.token = (cfg.get("api_token") or "").strip()
    remote.timeout_s = float(cfg.get("http_timeout_s") or 10)
    services.products.max_age_s = float(cfg.get("catalog_max_age_s") or 0)
    json_log("info", "settings.updated", keys=sorted(list(patch.keys()) + (["store"] if store_patch else [])))
    return {"settings": public_config(cfg)}


@router.post("/auth/pin")
def unlock(data: PinIn, services: PosServices = Depends(get_services)):
    cfg = services.config
    if not (cfg.get("admin_pin_hash") or "").strip():
        raise HTTPException(status_code=400, detail="admin_pin_not_set")
    if not verify_pin(data.pin, cfg.get("admin_pin_hash") or ""):
        json_log("warning", "auth.pin.invalid")
        raise HTTPException(status_code=401, detail="invalid_pin")
    sess = services.store.create_session(int(cfg.get("admin_session_hours") or 12))
    return {"ok": True, "token": sess["token"], "expires_at": sess["expires_at"]}


@router.post("/admin/pin/set")
def set_pin(
    data: PinIn,
    request: Request,
    x_pos_session: Optional[str] = Header(None, alias=SESSION_HEADER),
    services: PosServices = Depends(get_services),
):
    cfg = services.config
    if (cfg.get("admin_pin_hash") or "").strip():
        # Changing an existing PIN needs an unlocked session.
        if not services.store.validate_session(x_pos_session or ""):
            raise HTTPException(status_code=401, detail="pos_auth_required")
    elif not is_loopback(client_ip(request)):
        raise HTTPException(status_code=403, detail="initial PIN can only be set from localhost")
    cfg["admin_pin_hash"] = hash_pin(data.pin)
    save_config(cfg, services.config_path)
    json_log("info", "auth.pin.set")
    return {"ok": True}
