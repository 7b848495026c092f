"""
REGISTRE DES PASSERELLES - configuration par fournisseur et passerelle active

La passerelle active est relue en base à chaque requête (jamais de cache
processus). Une ligne marquée active mais incomplète est simplement ignorée
par les accesseurs, sans écriture pendant la lecture.
"""
from dataclasses import dataclass
from typing import Dict, List, Optional
import logging

from sqlalchemy import case
from sqlalchemy.orm import Session

from paywallet.config import settings
from paywallet.exceptions import ConfigurationError, NotFoundError, PaymentError
from paywallet.models.gateway_models import GatewaySettings
from paywallet.utils.security import MASKED_SECRET, is_masked, mask_secret, sanitize_dict

logger = logging.getLogger(__name__)

SUPPORTED_GATEWAYS = [
    {
        "id": "razorpay",
        "label": "Razorpay",
        "description": "Cartes, UPI, netbanking et wallets via Razorpay Checkout.",
        "docsUrl": "https://razorpay.com/docs/api/",
        "setupNote": "Dashboard Razorpay > Account & Settings > API Keys.",
        "keyIdLabel": "Key ID",
        "keySecretLabel": "Key Secret",
        "checkoutMode": "native",
        "isIntegrated": True,
    },
    {
        "id": "payu",
        "label": "PayU",
        "description": "Redirection vers la page de paiement hébergée PayU.",
        "docsUrl": "https://docs.payu.in/",
        "setupNote": "Dashboard PayU > Developers > Key et Salt.",
        "keyIdLabel": "Merchant Key",
        "keySecretLabel": "Merchant Salt",
        "checkoutMode": "redirect",
        "isIntegrated": True,
    },
    {
        "id": "cashfree",
        "label": "Cashfree",
        "description": "Cashfree Payments, session de paiement et vérification par API.",
        "docsUrl": "https://docs.cashfree.com/reference/pg-new-apis-endpoint",
        "setupNote": "Dashboard Cashfree > Developers > API Keys.",
        "keyIdLabel": "App ID",
        "keySecretLabel": "Secret Key",
        "checkoutMode": "redirect",
        "isIntegrated": True,
    },
]

SUPPORTED_GATEWAY_IDS = [gateway["id"] for gateway in SUPPORTED_GATEWAYS]


def get_gateway_meta(gateway: str) -> Optional[Dict]:
    for meta in SUPPORTED_GATEWAYS:
        if meta["id"] == gateway:
            return meta
    return None


@dataclass(frozen=True)
class GatewayConfig:
    """Configuration d'une passerelle résolue pour une requête."""
    gateway: str
    label: str
    key_id: str
    key_secret: str
    is_test_mode: bool = True
    checkout_mode: str = "redirect"
    checkout_url: str = ""
    docs_url: str = ""
    source: str = "db"

    @classmethod
    def from_row(cls, row: GatewaySettings) -> "GatewayConfig":
        return cls(
            gateway=row.gateway,
            label=row.label,
            key_id=row.key_id,
            key_secret=row.key_secret,
            is_test_mode=bool(row.is_test_mode),
            checkout_mode=row.checkout_mode or "redirect",
            checkout_url=row.checkout_url or "",
            docs_url=row.docs_url or "",
            source="db",
        )

    def __repr__(self):
        return f"<GatewayConfig {self.gateway} key={mask_secret(self.key_id)} source={self.source}>"


def _apply_meta(row: GatewaySettings, meta: Dict):
    row.label = meta["label"]
    row.description = meta["description"]
    row.docs_url = meta["docsUrl"]
    row.setup_note = meta["setupNote"]
    row.key_id_label = meta["keyIdLabel"]
    row.key_secret_label = meta["keySecretLabel"]
    row.checkout_mode = meta["checkoutMode"]
    row.is_integrated = bool(meta["isIntegrated"])


def seed_default_gateways(db: Session) -> List[GatewaySettings]:
    """Créer une ligne par passerelle supportée, rafraîchir les métadonnées."""
    rows = []
    for meta in SUPPORTED_GATEWAYS:
        row = db.query(GatewaySettings).filter(GatewaySettings.gateway == meta["id"]).first()
        if not row:
            row = GatewaySettings(
                gateway=meta["id"],
                key_id="",
                key_secret="",
                is_enabled=False,
                is_test_mode=True,
                is_active=False,
                checkout_url="",
            )
            db.add(row)
            logger.info(f"🌱 Passerelle {meta['id']} initialisée")
        _apply_meta(row, meta)
        rows.append(row)
    db.commit()
    return rows


def is_ready_for_payments(row: Optional[GatewaySettings]) -> bool:
    if not row or not row.is_enabled:
        return False
    return row.has_credentials


def get_active_gateway_settings(db: Session) -> GatewayConfig:
    """
    Retourne la passerelle active et activée.
    Lève ConfigurationError si aucune ou si ses identifiants sont vides.
    """
    active = (
        db.query(GatewaySettings)
        .filter(GatewaySettings.is_active.is_(True), GatewaySettings.is_enabled.is_(True))
        .first()
    )
    if not active:
        raise ConfigurationError(
            "No active payment gateway configured. Please configure one in admin settings."
        )
    if not active.has_credentials:
        raise ConfigurationError(f"{active.label} gateway credentials are not configured.")
    return GatewayConfig.from_row(active)


def razorpay_env_config() -> Optional[GatewayConfig]:
    """Identifiants Razorpay hérités des variables d'environnement."""
    credentials = settings.RAZORPAY_ENV_CREDENTIALS
    if not credentials:
        return None
    key_id, key_secret = credentials
    return GatewayConfig(
        gateway="razorpay",
        label="Razorpay",
        key_id=key_id,
        key_secret=key_secret,
        is_test_mode=False,
        checkout_mode="native",
        docs_url="https://razorpay.com/docs/api/",
        source="env",
    )


def resolve_gateway_for_verification(db: Session, hint: Optional[str] = None) -> GatewayConfig:
    """
    Passerelle dont le secret sert à vérifier une signature:
    passerelle indiquée par le client si activée, sinon active, sinon .env.
    """
    if hint:
        hinted = (
            db.query(GatewaySettings)
            .filter(GatewaySettings.gateway == hint, GatewaySettings.is_enabled.is_(True))
            .first()
        )
        if hinted and (hinted.key_secret or "").strip():
            return GatewayConfig.from_row(hinted)

    try:
        return get_active_gateway_settings(db)
    except ConfigurationError as e:
        fallback = razorpay_env_config()
        if fallback:
            logger.warning(f"⚠️ Vérification avec les identifiants Razorpay .env: {e.message}")
            return fallback
        raise


def _get_row(db: Session, gateway: str) -> GatewaySettings:
    if gateway not in SUPPORTED_GATEWAY_IDS:
        raise PaymentError("Invalid gateway")
    row = db.query(GatewaySettings).filter(GatewaySettings.gateway == gateway).first()
    if not row:
        raise NotFoundError("Gateway not found")
    return row


def active_summary(row: Optional[GatewaySettings]) -> Optional[Dict]:
    if not row:
        return None
    return {
        "gateway": row.gateway,
        "label": row.label,
        "mode": "Test Mode" if row.is_test_mode else "Live Mode",
        "updatedAt": row.updated_at.isoformat() if row.updated_at else None,
    }


def serialize_gateway(row: GatewaySettings, active_override: Optional[bool] = None) -> Dict:
    """Représentation admin, secret masqué."""
    return {
        "id": row.id,
        "gateway": row.gateway,
        "label": row.label,
        "description": row.description,
        "keyId": row.key_id,
        "keySecret": MASKED_SECRET if row.key_secret else "",
        "keyIdLabel": row.key_id_label,
        "keySecretLabel": row.key_secret_label,
        "docsUrl": row.docs_url,
        "setupNote": row.setup_note,
        "checkoutMode": row.checkout_mode,
        "isIntegrated": bool(row.is_integrated),
        "checkoutUrl": row.checkout_url,
        "isEnabled": bool(row.is_enabled),
        "isTestMode": bool(row.is_test_mode),
        "isActive": bool(row.is_active) if active_override is None else active_override,
        "updatedAt": row.updated_at.isoformat() if row.updated_at else None,
    }


def set_active(db: Session, gateway: str, admin_id: Optional[int] = None) -> GatewaySettings:
    row = _get_row(db, gateway)

    if not row.is_enabled:
        raise PaymentError("Enable the gateway first before setting it active")
    if not row.has_credentials:
        raise PaymentError("Configure gateway credentials first")

    # Une seule requête: la cible passe à True, toutes les autres à False
    db.query(GatewaySettings).update(
        {GatewaySettings.is_active: case((GatewaySettings.gateway == gateway, True), else_=False)},
        synchronize_session=False,
    )
    row.updated_by = admin_id
    db.commit()
    db.refresh(row)
    logger.info(f"✅ Passerelle active: {row.gateway}")
    return row


def update_gateway(db: Session, gateway: str, changes: Dict, admin_id: Optional[int] = None) -> GatewaySettings:
    """
    changes: key_id, key_secret, is_enabled, is_test_mode, checkout_url
    (clés absentes ou None = inchangé).
    """
    row = _get_row(db, gateway)
    logger.info(f"⚙️ Mise à jour {gateway}: {sanitize_dict(changes)}")

    if changes.get("key_id") is not None:
        row.key_id = changes["key_id"].strip()
    # Le secret n'est remplacé que par une vraie valeur, jamais par le masque
    key_secret = changes.get("key_secret")
    if key_secret and not is_masked(key_secret) and not key_secret.startswith("••"):
        row.key_secret = key_secret.strip()
    if changes.get("is_enabled") is not None:
        row.is_enabled = bool(changes["is_enabled"])
    if changes.get("is_test_mode") is not None:
        row.is_test_mode = bool(changes["is_test_mode"])
    if changes.get("checkout_url") is not None:
        row.checkout_url = str(changes["checkout_url"] or "").strip()

    meta = get_gateway_meta(gateway)
    if meta:
        _apply_meta(row, meta)
    row.updated_by = admin_id
    db.flush()

    if is_ready_for_payments(row):
        other_active = (
            db.query(GatewaySettings)
            .filter(GatewaySettings.is_active.is_(True), GatewaySettings.id != row.id)
            .first()
        )
        if not other_active and not row.is_active:
            row.is_active = True
            logger.info(f"✅ Passerelle {gateway} activée automatiquement")

    if not row.is_enabled and row.is_active:
        row.is_active = False
        logger.info(f"⏸️ Passerelle {gateway} désactivée")

    db.commit()
    db.refresh(row)
    return row


def list_gateways(db: Session) -> Dict:
    rows = db.query(GatewaySettings).order_by(GatewaySettings.gateway).all()
    serialized = []
    active_row = None
    for row in rows:
        effective_active = bool(row.is_active) and is_ready_for_payments(row)
        if row.is_active and not effective_active:
            logger.warning(f"⚠️ {row.gateway} marquée active mais incomplète, ignorée")
        if effective_active and active_row is None:
            active_row = row
        serialized.append(serialize_gateway(row, active_override=effective_active))
    return {"gateways": serialized, "activeGateway": active_summary(active_row)}


def get_public_active_gateway(db: Session) -> Dict:
    active = db.query(GatewaySettings).filter(GatewaySettings.is_active.is_(True)).first()
    if not active:
        raise NotFoundError("No active gateway configured")
    if not is_ready_for_payments(active):
        raise NotFoundError(
            f"{active.label} is marked active but not fully configured. "
            "Configure required settings and set it active again."
        )
    return {
        "gateway": active.gateway,
        "label": active.label,
        "keyId": active.key_id,
        "isTestMode": bool(active.is_test_mode),
        "isIntegrated": bool(active.is_integrated),
    }
