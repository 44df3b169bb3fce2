import io
import os

import pytest
from fastapi.testclient import TestClient
from reportlab.pdfgen import canvas

import config
from database import get_db
from main import app
from modules.auth.services.auth_service import AuthService
from modules.contracts.models import UserRole

from conftest import DRAWN_SIGNATURE, SIGNATURE_SECRET, TYPED_SIGNATURE, TestingSessionLocal, create_user


@pytest.fixture
def client(tmp_path, monkeypatch):
    monkeypatch.setattr(config, "UPLOAD_DIR", str(tmp_path / "uploads"))
    monkeypatch.setattr(config, "SIGNATURE_SECRET_KEY", SIGNATURE_SECRET)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def example_pdf():
    buffer = io.BytesIO()
    c = canvas.Canvas(buffer)
    c.drawString(100, 750, "Performance agreement: Friday night, 90 minute set.")
    c.save()
    buffer.seek(0)
    return buffer.read()


def auth_headers(user):
    token = AuthService.token_for(user)
    return {"Authorization": f"Bearer {token}"}


def create_contract(client, creator, artist, venue, **overrides):
    body = {
        "booking_id": 42,
        "artist_id": artist.id,
        "venue_id": venue.id,
        "title": "Friday night performance",
        "content": "The artist performs a 90 minute set.",
    }
    body.update(overrides)
    resp = client.post("/contracts", json=body, headers=auth_headers(creator))
    assert resp.status_code == 201, resp.text
    return resp.json()


def sign(client, contract_id, user, data=TYPED_SIGNATURE, method="typed", **extra):
    body = {"signature_data": data, "signature_method": method, **extra}
    return client.post(f"/contracts/{contract_id}/sign", json=body, headers=auth_headers(user))


def test_login_and_me(client, session):
    create_user(session, UserRole.ARTIST, "Jane Artist", "jane@artists.test",
                password_hash=AuthService.get_password_hash("artist123"))

    resp = client.post("/auth/login", json={"email": "jane@artists.test", "password": "wrong"})
    assert resp.status_code == 401

    resp = client.post("/auth/login", json={"email": "jane@artists.test", "password": "artist123"})
    assert resp.status_code == 200, resp.text
    token = resp.json()["access_token"]
    assert resp.json()["user_role"] == "artist"

    me = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["email"] == "jane@artists.test"


def test_requests_without_token_are_rejected(client):
    resp = client.get("/contracts")
    assert resp.status_code in {401, 403}


def test_only_admin_registers_users(client, artist, admin):
    body = {"name": "New Venue", "email": "new@venue.test", "password": "venue123", "role": "venue"}

    assert client.post("/auth/register", json=body, headers=auth_headers(artist)).status_code == 403
    resp = client.post("/auth/register", json=body, headers=auth_headers(admin))
    assert resp.status_code == 201, resp.text
    assert resp.json()["role"] == "venue"

    assert client.post("/auth/register", json=body, headers=auth_headers(admin)).status_code == 409


def test_deactivated_account_loses_access(client, artist, admin):
    headers = auth_headers(artist)
    assert client.get("/auth/me", headers=headers).status_code == 200

    resp = client.delete(f"/auth/users/{artist.id}", headers=auth_headers(admin))
    assert resp.status_code == 200
    assert resp.json()["is_active"] is False

    assert client.get("/auth/me", headers=headers).status_code == 401
    assert client.delete(f"/auth/users/{admin.id}", headers=auth_headers(admin)).status_code == 400


def test_token_is_refused_after_role_change(client, artist, admin):
    headers = auth_headers(artist)

    resp = client.put(f"/auth/users/{artist.id}", json={"role": "venue"}, headers=auth_headers(admin))
    assert resp.status_code == 200
    assert resp.json()["role"] == "venue"

    assert client.get("/contracts", headers=headers).status_code == 401


def test_full_signing_flow(client, artist, venue):
    contract = create_contract(client, artist, artist, venue)
    assert contract["status"] == "pending_signatures"

    resp = sign(client, contract["id"], artist)
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["contract_status"] == "pending_signatures"
    assert body["signature"]["signer_role"] == "artist"
    assert body["signature"]["certificate_number"].startswith("SIG-")

    resp = sign(client, contract["id"], venue, data=DRAWN_SIGNATURE, method="canvas")
    assert resp.status_code == 200, resp.text
    assert resp.json()["contract_status"] == "signed"

    resp = sign(client, contract["id"], artist)
    assert resp.status_code == 409

    detail = client.get(f"/contracts/{contract['id']}", headers=auth_headers(venue)).json()
    assert detail["status"] == "signed"
    assert detail["artist_signed_at"] is not None
    assert detail["venue_signed_at"] is not None


def test_error_status_codes(client, artist, venue, outsider, admin):
    contract = create_contract(client, artist, artist, venue)
    cid = contract["id"]

    assert sign(client, 9999, artist).status_code == 404
    assert sign(client, cid, outsider).status_code == 403
    assert sign(client, cid, admin).status_code == 400
    assert sign(client, cid, artist, data="not an image", method="canvas").status_code == 400
    assert sign(client, cid, artist, method="smoke-signal").status_code == 422

    resp = client.post(f"/contracts/{cid}/cancel", json={"reason": "called off"}, headers=auth_headers(venue))
    assert resp.status_code == 200
    assert resp.json()["status"] == "cancelled"

    resp = client.post(f"/contracts/{cid}/cancel", json={}, headers=auth_headers(venue))
    assert resp.status_code == 409


def test_admin_signs_on_behalf_of_a_party(client, artist, venue, admin):
    contract = create_contract(client, admin, artist, venue)

    resp = sign(client, contract["id"], admin, on_behalf_of="artist")
    assert resp.status_code == 200, resp.text
    assert resp.json()["signature"]["signer_role"] == "artist"
    assert resp.json()["signature"]["signer_id"] == admin.id


def test_available_actions_endpoint(client, artist, venue, outsider):
    contract = create_contract(client, venue, artist, venue)

    resp = client.get(f"/contracts/{contract['id']}/actions", headers=auth_headers(artist))
    assert resp.status_code == 200
    body = resp.json()
    assert body["available_actions"] == ["sign", "reject", "cancel"]
    assert body["signable_parties"] == ["artist"]
    assert body["can_sign"] and body["can_cancel"] and not body["can_approve"]

    resp = client.get(f"/contracts/{contract['id']}/actions", headers=auth_headers(outsider))
    assert resp.status_code == 403


def test_list_contracts_is_scoped_to_parties(client, artist, venue, outsider, admin):
    create_contract(client, artist, artist, venue, booking_id=1)
    create_contract(client, venue, artist, venue, booking_id=2)

    assert len(client.get("/contracts", headers=auth_headers(artist)).json()) == 2
    assert client.get("/contracts", headers=auth_headers(outsider)).json() == []
    assert len(client.get("/contracts", headers=auth_headers(admin)).json()) == 2


def test_create_contract_validation(client, artist, venue, outsider):
    body = {"booking_id": 1, "artist_id": artist.id, "venue_id": venue.id, "title": "T", "content": "C"}

    assert client.post("/contracts", json=body, headers=auth_headers(outsider)).status_code == 403
    assert client.post("/contracts", json={**body, "status": "signed"}, headers=auth_headers(artist)).status_code == 400
    assert client.post("/contracts", json={**body, "venue_id": artist.id}, headers=auth_headers(artist)).status_code == 400


def test_update_blocked_after_first_signature(client, artist, venue):
    contract = create_contract(client, artist, artist, venue)
    url = f"/contracts/{contract['id']}"

    resp = client.put(url, json={"title": "Saturday night performance"}, headers=auth_headers(venue))
    assert resp.status_code == 200
    assert resp.json()["title"] == "Saturday night performance"

    sign(client, contract["id"], artist)
    resp = client.put(url, json={"content": "Shorter set."}, headers=auth_headers(venue))
    assert resp.status_code == 409


def test_send_approve_execute_and_history(client, artist, venue, admin):
    contract = create_contract(client, artist, artist, venue, status="draft")
    cid = contract["id"]

    resp = client.post(f"/contracts/{cid}/send", headers=auth_headers(artist))
    assert resp.json()["status"] == "sent"
    sign(client, cid, artist)
    sign(client, cid, venue)

    assert client.post(f"/contracts/{cid}/execute", headers=auth_headers(artist)).status_code == 403
    resp = client.post(f"/contracts/{cid}/approve", json={"notes": "ok"}, headers=auth_headers(admin))
    assert resp.status_code == 200
    assert resp.json()["approval_notes"] == "ok"
    resp = client.post(f"/contracts/{cid}/execute", headers=auth_headers(admin))
    assert resp.json()["status"] == "executed"

    history = client.get(f"/contracts/{cid}/history", headers=auth_headers(venue)).json()
    assert [e["action"] for e in history] == ["created", "sent", "signed", "signed", "approved", "executed"]
    assert history[2]["ip_address"] == "testclient"


def test_reject_requires_reason(client, artist, venue):
    contract = create_contract(client, artist, artist, venue)
    url = f"/contracts/{contract['id']}/reject"

    assert client.post(url, json={"reason": ""}, headers=auth_headers(venue)).status_code == 422
    resp = client.post(url, json={"reason": "fee too high"}, headers=auth_headers(venue))
    assert resp.json()["status"] == "cancelled"
    assert resp.json()["cancellation_reason"] == "fee too high"


def test_certificate_and_verification(client, artist, venue, outsider):
    contract = create_contract(client, artist, artist, venue)
    signature_id = sign(client, contract["id"], artist).json()["signature"]["id"]

    resp = client.get(f"/signatures/{signature_id}/certificate", headers=auth_headers(venue))
    assert resp.status_code == 200, resp.text
    certificate = resp.json()
    assert certificate["signer_email"] == artist.email
    assert certificate["expiring_soon"] is False

    url = f"/signatures/{signature_id}/verify"
    resp = client.post(url, json={"signature_data": TYPED_SIGNATURE}, headers=auth_headers(venue))
    assert resp.json()["is_valid"] is True
    assert resp.json()["outcome"] == "valid"

    resp = client.post(url, json={"signature_data": "Forged Name"}, headers=auth_headers(venue))
    assert resp.status_code == 200
    assert resp.json()["is_valid"] is False
    assert resp.json()["tamper_detected"] is True

    resp = client.post(url, json={"signature_data": TYPED_SIGNATURE}, headers=auth_headers(outsider))
    assert resp.status_code == 403

    resp = client.post(
        f"/signatures/{signature_id}/certificate/render",
        json={"signature_data": TYPED_SIGNATURE},
        headers=auth_headers(artist),
    )
    assert "Status: VERIFIED" in resp.text


def test_batch_verification_endpoint(client, artist, venue):
    contract = create_contract(client, artist, artist, venue)
    artist_sig = sign(client, contract["id"], artist).json()["signature"]["id"]
    venue_sig = sign(client, contract["id"], venue, data=DRAWN_SIGNATURE, method="canvas").json()["signature"]["id"]

    resp = client.post(
        f"/contracts/{contract['id']}/signatures/verify",
        json={"payloads": {str(artist_sig): TYPED_SIGNATURE}},
        headers=auth_headers(venue),
    )
    assert resp.status_code == 200, resp.text
    results = resp.json()["results"]
    assert results[str(artist_sig)]["is_valid"] is True
    assert results[str(venue_sig)]["reason"] == "payload not provided"

    signatures = client.get(f"/contracts/{contract['id']}/signatures", headers=auth_headers(artist)).json()
    assert {s["id"]: s["verification_count"] for s in signatures} == {artist_sig: 1, venue_sig: 0}


def test_document_upload_and_tamper_detection(client, artist, venue, example_pdf):
    contract = create_contract(client, artist, artist, venue)
    url = f"/contracts/{contract['id']}/document"

    files = {"file": ("contract.docx", b"not a pdf", "application/msword")}
    assert client.post(url, files=files, headers=auth_headers(artist)).status_code == 400

    files = {"file": ("contract.pdf", b"%PDF-broken", "application/pdf")}
    assert client.post(url, files=files, headers=auth_headers(artist)).status_code == 400

    files = {"file": ("contract.pdf", example_pdf, "application/pdf")}
    resp = client.post(url, files=files, headers=auth_headers(artist))
    assert resp.status_code == 200, resp.text
    assert len(resp.json()["document_sha256"]) == 64

    resp = client.get(url, headers=auth_headers(venue))
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "application/pdf"
    assert resp.content == example_pdf

    stored = os.listdir(config.UPLOAD_DIR)
    assert len(stored) == 1
    with open(os.path.join(config.UPLOAD_DIR, stored[0]), "ab") as f:
        f.write(b"% appended after signing")

    resp = client.get(url, headers=auth_headers(venue))
    assert resp.status_code == 409
    assert "integrity" in resp.text.lower()


def test_notifications_endpoints(client, artist, venue):
    contract = create_contract(client, artist, artist, venue)
    sign(client, contract["id"], artist)
    sign(client, contract["id"], venue)

    resp = client.get(f"/notifications/users/{artist.id}", headers=auth_headers(artist))
    assert resp.status_code == 200
    notifications = resp.json()
    assert [n["kind"] for n in notifications] == ["contract_signed"]
    assert notifications[0]["contract_id"] == contract["id"]

    assert client.get(f"/notifications/users/{artist.id}", headers=auth_headers(venue)).status_code == 403
    assert client.patch(f"/notifications/{notifications[0]['id']}/read", headers=auth_headers(venue)).status_code == 404

    resp = client.patch(f"/notifications/{notifications[0]['id']}/read", headers=auth_headers(artist))
    assert resp.status_code == 200
    assert resp.json()["read"] is True


def test_admin_sees_which_sides_remain_unsigned(client, artist, venue, admin):
    contract = create_contract(client, artist, artist, venue)
    sign(client, contract["id"], venue)

    body = client.get(f"/contracts/{contract['id']}/actions", headers=auth_headers(admin)).json()
    assert body["available_actions"] == ["sign", "reject", "cancel"]
    assert body["signable_parties"] == ["artist"]

    resp = sign(client, contract["id"], admin, on_behalf_of=body["signable_parties"][0])
    assert resp.status_code == 200, resp.text
    assert resp.json()["contract_status"] == "signed"


@pytest.mark.parametrize("path, body", [
    ("send", None),
    ("sign", {"signature_data": TYPED_SIGNATURE, "signature_method": "typed"}),
    ("reject", {"reason": "no"}),
    ("cancel", {}),
    ("approve", {}),
    ("execute", None),
])
def test_role_without_permission_is_refused_before_the_contract_is_loaded(client, session, artist, venue, path, body):
    member = create_user(session, UserRole.USER, "Fan", "fan@ologywood.test")
    contract = create_contract(client, artist, artist, venue)

    resp = client.post(f"/contracts/{contract['id']}/{path}", json=body, headers=auth_headers(member))
    assert resp.status_code == 403
    assert "cannot perform" in resp.json()["detail"]

    resp = client.post(f"/contracts/9999/{path}", json=body, headers=auth_headers(member))
    assert resp.status_code == 403


def test_party_cannot_approve_or_execute(client, artist, venue):
    contract = create_contract(client, artist, artist, venue)

    resp = client.post(f"/contracts/{contract['id']}/approve", json={}, headers=auth_headers(venue))
    assert resp.status_code == 403
    assert "cannot perform 'approve'" in resp.json()["detail"]
    resp = client.post(f"/contracts/{contract['id']}/execute", headers=auth_headers(venue))
    assert "cannot perform 'execute'" in resp.json()["detail"]
