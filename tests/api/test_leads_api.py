from __future__ import annotations

import pytest

from tests.utils import make_officer

SIGNAL = {
    "source": "news.example.com",
    "source_url": "https://news.example.com/acme",
    "source_type": "news",
    "extracted_text": "Acme Steel commissions a furnace oil boiler",
    "timestamp": "2025-01-15T12:00:00Z",
}

ADMIN_HEADERS = {"X-User-Id": "admin-1", "X-User-Role": "admin"}


def _officer_headers(officer_id: str) -> dict[str, str]:
    return {"X-User-Id": officer_id, "X-User-Role": "sales_officer"}


@pytest.fixture
def officer(api_overrides):
    return api_overrides.officers.create(make_officer(territory="West"))


def _create(client, name: str = "Acme Steel", **extra):
    payload = {"company_name": name, "signals": [SIGNAL], **extra}
    response = client.post("/api/leads", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


def test_create_lead_assigns_and_notifies(client, officer, channels):
    created = _create(client, territory="West")

    assert created["assigned_to"] == officer.id
    assert created["status"] == "new"
    assert created["product_recommendations"][0]["product"] == "FO"
    assert created["metadata"]["notification_sent"] is True
    assert channels["email"].sent == [(officer.email, created["id"])]


def test_duplicate_company_returns_409(client, api_overrides):
    _create(client)
    response = client.post("/api/leads", json={"company_name": "Acme Steel"})
    assert response.status_code == 409


def test_blank_company_is_rejected(client, api_overrides):
    assert client.post("/api/leads", json={"company_name": ""}).status_code == 422


def test_list_leads_paginates(client, api_overrides):
    for name in ("Acme Steel", "Bharat Roads", "Coastal Shipping"):
        _create(client, name)

    response = client.get("/api/leads", params={"sort": "company_name", "limit": 2, "page": 2})

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 3
    assert body["total_pages"] == 2
    assert [lead["company_name"] for lead in body["leads"]] == ["Coastal Shipping"]


def test_list_rejects_unknown_sort_and_oversized_page(client, api_overrides):
    assert client.get("/api/leads", params={"sort": "-nonsense"}).status_code == 422
    assert client.get("/api/leads", params={"limit": 500}).status_code == 422


def test_list_filters_by_status(client, api_overrides):
    lead = _create(client)
    _create(client, "Bharat Roads")
    client.put(f"/api/leads/{lead['id']}", json={"status": "qualified"}, headers=ADMIN_HEADERS)

    body = client.get("/api/leads", params={"status": "qualified"}).json()
    assert [item["id"] for item in body["leads"]] == [lead["id"]]


def test_sales_officer_is_scoped_to_own_leads(client, officer):
    own = _create(client, territory="West")
    other = _create(client, "Bharat Roads")
    headers = _officer_headers(officer.id)

    body = client.get("/api/leads", headers=headers).json()
    assert [lead["id"] for lead in body["leads"]] == [own["id"]]
    assert client.get(f"/api/leads/{own['id']}", headers=headers).status_code == 200
    assert client.get(f"/api/leads/{other['id']}", headers=headers).status_code == 403


def test_identity_headers_are_validated(client, api_overrides):
    assert client.get("/api/leads", headers={"X-User-Role": "wizard"}).status_code == 400
    assert client.get("/api/leads", headers={"X-User-Role": "sales_officer"}).status_code == 400


def test_missing_lead_returns_404(client, api_overrides):
    assert client.get("/api/leads/does-not-exist").status_code == 404


def test_update_and_reassign(client, api_overrides, officer, channels):
    lead = _create(client)

    response = client.put(
        f"/api/leads/{lead['id']}",
        json={"assigned_to": officer.id, "next_action": {"action": "Site visit"}},
        headers=ADMIN_HEADERS,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["assigned_to"] == officer.id
    assert body["next_action"]["action"] == "Site visit"
    assert channels["email"].sent == [(officer.email, lead["id"])]

    forbidden = client.put(
        f"/api/leads/{lead['id']}",
        json={"assigned_to": None},
        headers=_officer_headers(officer.id),
    )
    assert forbidden.status_code == 403


def test_feedback_and_contact(client, api_overrides):
    won = _create(client)
    other = _create(client, "Bharat Roads")

    feedback = client.post(f"/api/leads/{won['id']}/feedback", json={"converted": True})
    assert feedback.status_code == 200
    assert feedback.json()["status"] == "won"
    assert feedback.json()["feedback"]["converted"] is True

    contact = client.post(
        f"/api/leads/{other['id']}/contact", json={"method": "call", "outcome": "connected"}
    )
    assert contact.status_code == 200
    assert contact.json()["status"] == "contacted"
    assert len(contact.json()["contact_attempts"]) == 1


def test_add_signal_rescores(client, api_overrides):
    lead = _create(client)
    tender = {**SIGNAL, "source_type": "tender", "extracted_text": "Tender for LSHS supply"}

    response = client.post(f"/api/leads/{lead['id']}/signals", json=tender)

    assert response.status_code == 200
    body = response.json()
    assert len(body["signals"]) == 2
    assert body["lead_score"]["intent_strength"] == 30


def test_delete_requires_admin(client, officer):
    lead = _create(client, territory="West")

    assert client.delete(f"/api/leads/{lead['id']}", headers=_officer_headers(officer.id)).status_code == 403
    assert client.delete(f"/api/leads/{lead['id']}", headers=ADMIN_HEADERS).status_code == 204
    assert client.get(f"/api/leads/{lead['id']}").status_code == 404


def test_numeric_turnover_is_accepted_on_create_and_update(client, api_overrides):
    created = _create(client, company_details={"turnover": 1500})
    assert created["company_details"]["turnover"] == "1500"
    assert created["lead_score"]["company_size"] == 25

    other = _create(client, "Bharat Roads")
    response = client.put(
        f"/api/leads/{other['id']}", json={"company_details": {"turnover": 250}}, headers=ADMIN_HEADERS
    )
    assert response.status_code == 200
    assert response.json()["lead_score"]["company_size"] == 20
