from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
import logging

from paywallet.database import get_db
from paywallet.models.user_models import User
from paywallet.schemas.gateway_schemas import GatewayUpdate
from paywallet.services import gateway_registry
from paywallet.services.auth import verify_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/gateway", tags=["gateway"])


@router.get("/")
def list_gateways(
    admin_user: User = Depends(verify_admin),
    db: Session = Depends(get_db),
):
    """Toutes les passerelles (secrets masqués) et la passerelle active"""
    return {"success": True, **gateway_registry.list_gateways(db)}


@router.put("/{gateway}")
def update_gateway(
    gateway: str,
    payload: GatewayUpdate,
    admin_user: User = Depends(verify_admin),
    db: Session = Depends(get_db),
):
    row = gateway_registry.update_gateway(
        db, gateway, payload.model_dump(exclude_none=True), admin_id=admin_user.id,
    )
    logger.info(f"⚙️ Passerelle {gateway} mise à jour par admin={admin_user.id}")
    return {
        "success": True,
        "message": "Gateway settings updated successfully",
        "gateway": gateway_registry.serialize_gateway(row),
    }


@router.post("/set-active/{gateway}")
def set_active_gateway(
    gateway: str,
    admin_user: User = Depends(verify_admin),
    db: Session = Depends(get_db),
):
    row = gateway_registry.set_active(db, gateway, admin_id=admin_user.id)
    return {
        "success": True,
        "message": f"{row.label} is now the active payment gateway",
        "activeGateway": gateway_registry.active_summary(row),
    }


@router.get("/active")
def get_active_gateway(db: Session = Depends(get_db)):
    """Passerelle active visible par le checkout public (sans secret)"""
    return {"success": True, **gateway_registry.get_public_active_gateway(db)}
