from fastapi.testclient import TestClient

from app.main import app

# Lifespan (table creation) only runs inside ``with TestClient(...)``; these
# requests never reach the database.
client = TestClient(app)

MERCHANT = {"X-Organization-Id": "1"}


def test_health():
    assert client.get("/health").json() == {"status": "healthy"}


def test_action_style_routes_are_registered():
    paths = {route.path for route in app.routes}
    assert "/documents:merge" in paths
    assert "/documents/{document_id}:extract" in paths
    assert "/products/{product_id}:publish" in paths
    assert "/products/{product_id}/permissions:bulk" in paths
    assert "/tokens/{token_id}:revoke" in paths
    assert "/public/tokens:refresh" in paths
    assert "/rfqs/{rfq_id}" in paths


def test_presets_are_served():
    payload = client.get("/tokens/presets").json()
    assert [row["id"] for row in payload["levels"]] == ["public", "after_click", "after_rfq"]


def test_merchant_routes_require_organization():
    assert client.get("/products").status_code == 401


def test_preview_rejects_invalid_view_mode():
    response = client.get("/products/1/preview", params={"view_mode": "everyone"}, headers=MERCHANT)
    assert response.status_code == 422
    assert response.json()["detail"]["invalid_level"] == "everyone"


def test_track_access_rejects_unknown_method():
    response = client.post(
        "/public/track-access",
        json={"product_id": 1, "session_id": "s1", "access_method": "carrier_pigeon"},
    )
    assert response.status_code == 400


def test_rfq_validation():
    response = client.post(
        "/public/rfq",
        json={
            "product_id": 1,
            "name": "Ana",
            "email": "not-an-email",
            "company": "Buyer Co",
            "message": "short",
        },
    )
    assert response.status_code == 422


def test_rfq_inbox_rejects_unknown_status():
    response = client.get("/rfqs", params={"status": "won"}, headers=MERCHANT)
    assert response.status_code == 400


def test_patch_rejects_unknown_rfq_status():
    response = client.patch("/rfqs/1", json={"status": "archived"}, headers=MERCHANT)
    assert response.status_code == 400
