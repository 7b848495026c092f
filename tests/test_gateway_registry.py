import pytest

from paywallet.config import settings
from paywallet.exceptions import ConfigurationError, PaymentError
from paywallet.models.gateway_models import GatewaySettings
from paywallet.services import gateway_registry
from paywallet.utils.security import MASKED_SECRET, sanitize_dict


def _row(db, gateway):
    return db.query(GatewaySettings).filter(GatewaySettings.gateway == gateway).one()


def test_seed_creates_one_inactive_row_per_gateway(db):
    rows = db.query(GatewaySettings).order_by(GatewaySettings.gateway).all()
    assert [row.gateway for row in rows] == ["cashfree", "payu", "razorpay"]
    assert not any(row.is_active or row.is_enabled for row in rows)

    # Relancer le seed ne duplique rien
    gateway_registry.seed_default_gateways(db)
    assert db.query(GatewaySettings).count() == 3


def test_no_active_gateway_raises_configuration_error(db):
    with pytest.raises(ConfigurationError) as exc_info:
        gateway_registry.get_active_gateway_settings(db)
    assert "No active payment gateway configured" in exc_info.value.message


def test_first_ready_gateway_is_activated_automatically(db):
    row = gateway_registry.update_gateway(db, "payu", {
        "key_id": "payu_key", "key_secret": "payu_salt", "is_enabled": True,
    })
    assert row.is_active is True

    config = gateway_registry.get_active_gateway_settings(db)
    assert config.gateway == "payu"
    assert config.key_secret == "payu_salt"


def test_second_ready_gateway_does_not_steal_active_flag(db, configure_gateway):
    configure_gateway("razorpay", "rzp_key", "rzp_secret")
    row = gateway_registry.update_gateway(db, "cashfree", {
        "key_id": "cf_app", "key_secret": "cf_secret", "is_enabled": True,
    })
    assert row.is_active is False
    assert gateway_registry.get_active_gateway_settings(db).gateway == "razorpay"


def test_masked_secret_is_never_stored(db, configure_gateway):
    configure_gateway("razorpay", "rzp_key", "real_secret")
    gateway_registry.update_gateway(db, "razorpay", {"key_secret": MASKED_SECRET, "is_test_mode": False})

    row = _row(db, "razorpay")
    assert row.key_secret == "real_secret"
    assert row.is_test_mode is False


def test_disabling_active_gateway_clears_active_flag(db, configure_gateway):
    configure_gateway("razorpay", "rzp_key", "rzp_secret")
    row = gateway_registry.update_gateway(db, "razorpay", {"is_enabled": False})
    assert row.is_active is False


def test_set_active_is_exclusive(db, configure_gateway):
    configure_gateway("razorpay", "rzp_key", "rzp_secret")
    configure_gateway("payu", "payu_key", "payu_salt", active=False)

    gateway_registry.set_active(db, "payu")
    db.expire_all()

    active = db.query(GatewaySettings).filter(GatewaySettings.is_active.is_(True)).all()
    assert [row.gateway for row in active] == ["payu"]


def test_set_active_requires_enabled_gateway_with_credentials(db, configure_gateway):
    with pytest.raises(PaymentError, match="Enable the gateway first"):
        gateway_registry.set_active(db, "cashfree")

    configure_gateway("cashfree", "", "", active=False)
    with pytest.raises(PaymentError, match="Configure gateway credentials first"):
        gateway_registry.set_active(db, "cashfree")


def test_unknown_gateway_is_rejected(db):
    with pytest.raises(PaymentError, match="Invalid gateway"):
        gateway_registry.set_active(db, "stripe")


def test_incomplete_active_row_is_ignored_without_write(db):
    row = _row(db, "razorpay")
    row.is_active = True
    row.is_enabled = True
    row.key_id = "rzp_key"
    row.key_secret = ""
    db.commit()

    listing = gateway_registry.list_gateways(db)
    razorpay = next(g for g in listing["gateways"] if g["gateway"] == "razorpay")
    assert razorpay["isActive"] is False
    assert listing["activeGateway"] is None

    db.expire_all()
    assert _row(db, "razorpay").is_active is True

    with pytest.raises(ConfigurationError):
        gateway_registry.get_active_gateway_settings(db)


def test_listing_masks_secrets(db, configure_gateway):
    configure_gateway("razorpay", "rzp_key", "rzp_secret")
    listing = gateway_registry.list_gateways(db)
    razorpay = next(g for g in listing["gateways"] if g["gateway"] == "razorpay")
    assert razorpay["keySecret"] == MASKED_SECRET
    assert listing["activeGateway"]["gateway"] == "razorpay"
    assert listing["activeGateway"]["mode"] == "Test Mode"


def test_verification_prefers_enabled_hinted_gateway(db, configure_gateway):
    configure_gateway("razorpay", "rzp_key", "rzp_secret")
    configure_gateway("cashfree", "cf_app", "cf_secret", active=False)

    assert gateway_registry.resolve_gateway_for_verification(db, "cashfree").key_secret == "cf_secret"
    assert gateway_registry.resolve_gateway_for_verification(db, "payu").key_secret == "rzp_secret"
    assert gateway_registry.resolve_gateway_for_verification(db).gateway == "razorpay"


def test_verification_falls_back_to_environment_credentials(db, monkeypatch):
    monkeypatch.setattr(settings, "RAZORPAY_KEY_ID", "rzp_env_key")
    monkeypatch.setattr(settings, "RAZORPAY_KEY_SECRET", "rzp_env_secret")

    config = gateway_registry.resolve_gateway_for_verification(db)
    assert config.source == "env"
    assert config.key_secret == "rzp_env_secret"


def test_public_active_gateway_hides_secret(db, configure_gateway):
    configure_gateway("razorpay", "rzp_key", "rzp_secret")
    public = gateway_registry.get_public_active_gateway(db)
    assert public == {
        "gateway": "razorpay",
        "label": "Razorpay",
        "keyId": "rzp_key",
        "isTestMode": True,
        "isIntegrated": True,
    }


def test_sanitize_dict_masks_credentials():
    cleaned = sanitize_dict({"key_id": "rzp_test_key", "key_secret": "abcdefghijkl", "is_enabled": True})
    assert cleaned["key_id"] == "rzp_test_key"
    assert cleaned["key_secret"] == "abcd****ijkl"
    assert cleaned["is_enabled"] is True
