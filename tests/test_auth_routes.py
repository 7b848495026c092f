from paywallet.models.user_models import ApiToken


REGISTRATION = {
    "full_name": "Ravi Kumar",
    "email": "ravi@example.com",
    "phone": "9123456789",
    "password": "hunter22",
}


# ==================== COMPTES ====================

def test_register_login_and_me(client):
    registered = client.post("/api/auth/register", json=REGISTRATION)
    assert registered.status_code == 200
    assert registered.json()["email"] == "ravi@example.com"
    assert registered.json()["balance"] == 0.0
    assert "password_hash" not in registered.json()

    login = client.post("/api/auth/login", json={"email": "ravi@example.com", "password": "hunter22"})
    assert login.status_code == 200
    token = login.json()["access_token"]
    assert login.json()["token_type"] == "bearer"

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.json()["full_name"] == "Ravi Kumar"


def test_register_duplicate_email(client):
    client.post("/api/auth/register", json=REGISTRATION)
    duplicate = client.post("/api/auth/register", json=REGISTRATION)
    assert duplicate.status_code == 400
    assert duplicate.json()["detail"] == "User with this email already exists"


def test_login_with_wrong_password(client, user):
    response = client.post("/api/auth/login", json={"email": user.email, "password": "wrong"})
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid email or password"


def test_me_requires_token(client):
    assert client.get("/api/auth/me").status_code in (401, 403)
    bad = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert bad.status_code == 401


# ==================== CLÉS API ====================

def test_api_token_lifecycle(client, db, user_headers):
    created = client.post("/api/auth/api-tokens", json={"name": "Boutique", "mode": "live"}, headers=user_headers)
    assert created.status_code == 200
    token = created.json()
    assert token["key_id"].startswith("sat_live_")
    assert len(token["secret_key"]) == 64

    listed = client.get("/api/auth/api-tokens", headers=user_headers).json()
    assert [t["key_id"] for t in listed] == [token["key_id"]]
    assert "secret_key" not in listed[0]

    revoked = client.delete(f"/api/auth/api-tokens/{token['id']}", headers=user_headers)
    assert revoked.json()["message"] == "API token revoked"
    db.expire_all()
    assert db.get(ApiToken, token["id"]).status == "revoked"

    # Une clé révoquée ne passe plus l'authentification marchand
    response = client.get("/api/v1/balance", auth=(token["key_id"], token["secret_key"]))
    assert response.status_code == 401


def test_api_token_invalid_mode(client, user_headers):
    response = client.post("/api/auth/api-tokens", json={"name": "X", "mode": "prod"}, headers=user_headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid mode. Must be 'test' or 'live'"


def test_cannot_revoke_someone_elses_token(client, api_token, make_user, auth_headers):
    stranger = auth_headers(make_user(email="stranger@example.com"))
    response = client.delete(f"/api/auth/api-tokens/{api_token.id}", headers=stranger)
    assert response.status_code == 404
    assert response.json()["detail"] == "API token not found"


# ==================== PASSERELLES (ADMIN) ====================

def test_gateway_admin_requires_admin_role(client, user_headers):
    response = client.get("/api/gateway/", headers=user_headers)
    assert response.status_code == 403
    assert response.json()["detail"] == "Admin access required"


def test_no_active_gateway_is_public_404(client):
    response = client.get("/api/gateway/active")
    assert response.status_code == 404
    assert response.json()["detail"] == "No active gateway configured"


def test_configure_and_switch_gateways(client, admin_headers):
    razorpay = client.put("/api/gateway/razorpay", json={
        "keyId": "rzp_test_key", "keySecret": "rzp_secret", "isEnabled": True,
    }, headers=admin_headers)
    assert razorpay.status_code == 200
    assert razorpay.json()["gateway"]["keySecret"] != "rzp_secret"
    # Première passerelle prête: activée automatiquement
    assert razorpay.json()["gateway"]["isActive"] is True

    public = client.get("/api/gateway/active").json()
    assert public["gateway"] == "razorpay"
    assert public["keyId"] == "rzp_test_key"
    assert "keySecret" not in public

    client.put("/api/gateway/payu", json={"keyId": "payu_key", "keySecret": "payu_salt", "isEnabled": True},
               headers=admin_headers)
    assert client.get("/api/gateway/active").json()["gateway"] == "razorpay"

    switched = client.post("/api/gateway/set-active/payu", headers=admin_headers)
    assert switched.json()["message"] == "PayU is now the active payment gateway"

    listing = client.get("/api/gateway/", headers=admin_headers).json()
    assert listing["activeGateway"]["gateway"] == "payu"
    assert [g["gateway"] for g in listing["gateways"] if g["isActive"]] == ["payu"]


def test_set_active_requires_credentials(client, admin_headers):
    client.put("/api/gateway/cashfree", json={"isEnabled": True}, headers=admin_headers)
    response = client.post("/api/gateway/set-active/cashfree", headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Configure gateway credentials first"
