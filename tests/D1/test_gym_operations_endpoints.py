# tests/D1/test_gym_operations_endpoints.py
from datetime import datetime, timedelta

import pytest

from gymdesk.auth.permissions import TRAINER
from gymdesk.members.models import Member

MONTHLY = {"name": "Monthly", "duration": {"value": 1, "unit": "months"}, "price": 29.99}


def _parse(ts):
    return datetime.fromisoformat(ts.replace("Z", ""))


@pytest.fixture
def plan(client, owner_headers):
    r = client.post("/plans", headers=owner_headers, json=MONTHLY)
    assert r.status_code == 201
    return r.json()["data"]["plan"]


@pytest.fixture
def member(client, owner_headers, plan):
    r = client.post("/members", headers=owner_headers,
                    json={"name": "Ada Lovelace", "phone": "555-1234", "email": "Ada@Example.com",
                          "membershipPlan": plan["id"]})
    assert r.status_code == 201
    return r.json()["data"]["member"]


# ---------- plans ----------

def test_plan_created_with_duration_in_days(plan):
    assert plan["durationInDays"] == 30
    assert plan["price"] == 29.99
    assert plan["isActive"] is True


def test_plan_name_unique_among_active_plans(client, owner_headers, plan):
    r = client.post("/plans", headers=owner_headers, json={**MONTHLY, "name": "monthly"})
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "duplicate_plan_name"

    # a retired plan frees its name
    assert client.delete(f"/plans/{plan['id']}", headers=owner_headers).status_code == 200
    assert client.post("/plans", headers=owner_headers, json=MONTHLY).status_code == 201


def test_plan_rename_rechecks_uniqueness(client, owner_headers, plan):
    other = client.post("/plans", headers=owner_headers,
                        json={"name": "Yearly", "duration": {"value": 1, "unit": "years"}, "price": 199}).json()
    r = client.put(f"/plans/{other['data']['plan']['id']}", headers=owner_headers, json={"name": "Monthly"})
    assert r.status_code == 409


def test_reactivating_plan_rechecks_name(client, owner_headers, plan):
    assert client.delete(f"/plans/{plan['id']}", headers=owner_headers).status_code == 200
    assert client.post("/plans", headers=owner_headers, json=MONTHLY).status_code == 201

    r = client.put(f"/plans/{plan['id']}", headers=owner_headers, json={"isActive": True})
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "duplicate_plan_name"
    names = [p["name"] for p in client.get("/plans", headers=owner_headers).json()["data"]["plans"] if p["isActive"]]
    assert names == ["Monthly"]

    renamed = client.put(f"/plans/{plan['id']}", headers=owner_headers,
                         json={"isActive": True, "name": "Monthly Classic"})
    assert renamed.status_code == 200
    assert renamed.json()["data"]["plan"]["isActive"] is True


def test_plans_listed_by_price(client, owner_headers, plan, staff_headers):
    client.post("/plans", headers=owner_headers,
                json={"name": "Day Pass", "duration": {"value": 1, "unit": "days"}, "price": 5})
    r = client.get("/plans", headers=staff_headers)
    assert [p["name"] for p in r.json()["data"]["plans"]] == ["Day Pass", "Monthly"]


def test_invalid_duration_unit_is_422(client, owner_headers):
    r = client.post("/plans", headers=owner_headers,
                    json={"name": "Weekly", "duration": {"value": 1, "unit": "weeks"}, "price": 9})
    assert r.status_code == 422


# ---------- members ----------

def test_scenario_a_member_expiry_is_thirty_days(member):
    start = _parse(member["membership"]["startDate"])
    end = _parse(member["membership"]["endDate"])
    assert end - start == timedelta(days=30)
    assert member["expiryDate"] == member["membership"]["endDate"]
    assert member["memberId"].startswith("MEM")
    assert member["qrCode"].startswith("data:image/png;base64,")
    assert member["personalInfo"]["email"] == "ada@example.com"


def test_member_creation_rejects_plan_of_other_gym(client, owner_headers, seed, gym_b):
    other_headers = seed.headers(gym_b[1])
    foreign_plan = client.post("/plans", headers=other_headers, json=MONTHLY).json()["data"]["plan"]
    r = client.post("/members", headers=owner_headers,
                    json={"name": "X", "phone": "1", "membershipPlan": foreign_plan["id"]})
    assert r.status_code == 404


def test_member_list_search_and_pagination(client, owner_headers, plan, member):
    client.post("/members", headers=owner_headers,
                json={"name": "Grace Hopper", "phone": "555-9999", "membershipPlan": plan["id"]})

    r = client.get("/members", headers=owner_headers, params={"search": "grace"})
    data = r.json()["data"]
    assert [m["personalInfo"]["name"] for m in data["members"]] == ["Grace Hopper"]

    r = client.get("/members", headers=owner_headers, params={"limit": 1, "sortBy": "name", "sortOrder": "asc"})
    data = r.json()["data"]
    assert data["members"][0]["personalInfo"]["name"] == "Ada Lovelace"
    assert data["pagination"]["totalItems"] == 2
    assert data["pagination"]["totalPages"] == 2
    assert data["pagination"]["hasNextPage"] is True
    assert data["pagination"]["hasPrevPage"] is False


def test_member_lookup_by_member_id(client, staff_headers, member):
    r = client.get(f"/members/member-id/{member['memberId']}", headers=staff_headers)
    assert r.status_code == 200
    assert r.json()["data"]["member"]["id"] == member["id"]


def test_trainer_reads_but_cannot_write(client, seed, gym_a, member):
    headers = seed.headers(seed.user(gym_a[0], TRAINER))
    assert client.get(f"/members/{member['id']}", headers=headers).status_code == 200
    r = client.put(f"/members/{member['id']}", headers=headers, json={"name": "Nope"})
    assert r.status_code == 403
    assert r.json()["error"]["code"] == "insufficient_role"


def test_plan_change_keeps_start_date(client, owner_headers, member, db):
    stored = db.query(Member).filter(Member.member_id == member["memberId"]).one()
    stored.membership_start_date = datetime(2020, 1, 1)
    db.commit()

    yearly = client.post("/plans", headers=owner_headers,
                         json={"name": "Yearly", "duration": {"value": 1, "unit": "years"}, "price": 199}).json()
    r = client.put(f"/members/{member['id']}", headers=owner_headers,
                   json={"membershipPlan": yearly["data"]["plan"]["id"]})
    updated = r.json()["data"]["member"]
    start = _parse(updated["membership"]["startDate"])
    assert start == datetime(2020, 1, 1)
    assert _parse(updated["membership"]["endDate"]) == start + timedelta(days=365)
    assert updated["expiryDate"] == updated["membership"]["endDate"]


def test_member_soft_delete(client, owner_headers, member, db):
    assert client.delete(f"/members/{member['id']}", headers=owner_headers).status_code == 200
    listed = client.get("/members", headers=owner_headers).json()["data"]["members"]
    assert listed == []
    # the row is kept
    assert db.query(Member).count() == 1


def test_qr_code_is_permanent(client, owner_headers, member):
    r = client.post(f"/members/{member['id']}/regenerate-qr", headers=owner_headers)
    assert r.status_code == 403
    assert r.json()["error"]["code"] == "qr_permanent"
    again = client.get(f"/members/{member['id']}", headers=owner_headers).json()["data"]["member"]
    assert again["qrData"] == member["qrData"]


def test_renew_extends_from_current_expiry(client, owner_headers, member):
    before = _parse(member["expiryDate"])
    r = client.post(f"/members/{member['id']}/renew", headers=owner_headers)
    assert r.status_code == 200
    after = _parse(r.json()["data"]["member"]["expiryDate"])
    assert after - before == timedelta(days=30)


def test_renew_recovers_expired_member(client, owner_headers, member, db):
    row = db.query(Member).filter(Member.member_id == member["memberId"]).one()
    past = datetime.utcnow() - timedelta(days=3)
    row.membership_end_date = past
    row.expiry_date = past
    row.membership_status = "expired"
    db.commit()

    r = client.post(f"/members/{member['id']}/renew", headers=owner_headers, json={})
    renewed = r.json()["data"]["member"]
    assert renewed["membership"]["status"] == "active"
    assert _parse(renewed["expiryDate"]) > datetime.utcnow() + timedelta(days=29)


def test_member_stats(client, owner_headers, member):
    r = client.get("/members/stats", headers=owner_headers)
    stats = r.json()["data"]["stats"]
    assert stats["total"] == 1
    assert stats["active"] == 1
    assert stats["expired"] == 0
    assert stats["pendingPayments"] == 0

    client.put(f"/members/{member['id']}", headers=owner_headers, json={"feeStatus": "overdue"})
    assert client.get("/members/stats", headers=owner_headers).json()["data"]["stats"]["pendingPayments"] == 1


# ---------- tenant isolation ----------

def test_other_gym_gets_not_found_for_guessed_ids(client, seed, gym_b, member, plan):
    other = seed.headers(gym_b[1])
    for method, url in [
        ("get", f"/members/{member['id']}"),
        ("put", f"/members/{member['id']}"),
        ("delete", f"/members/{member['id']}"),
        ("post", f"/members/{member['id']}/renew"),
        ("get", f"/members/member-id/{member['memberId']}"),
        ("get", f"/plans/{plan['id']}"),
        ("get", f"/attendance/member/{member['id']}"),
    ]:
        kwargs = {"json": {}} if method in ("put", "post") else {}
        r = getattr(client, method)(url, headers=other, **kwargs)
        assert r.status_code == 404, url
        assert r.json()["error"]["code"] == "not_found"


def test_supplied_foreign_gym_id_is_cross_tenant(client, owner_headers, gym_b):
    r = client.get("/members", headers=owner_headers, params={"gymId": gym_b[0].gym_id})
    assert r.status_code == 403
    assert r.json()["error"]["code"] == "cross_tenant_access"


def test_matching_gym_id_is_accepted(client, owner_headers, gym_a):
    r = client.get("/members", headers=owner_headers, params={"gymId": gym_a[0].gym_id})
    assert r.status_code == 200


def test_superadmin_has_no_tenant_routes(client, superadmin, seed):
    r = client.get("/members", headers=seed.headers(superadmin))
    assert r.status_code == 403
    assert r.json()["error"]["code"] == "no_tenant_context"


# ---------- attendance ----------

def test_scan_grant_then_duplicate(client, staff_headers, member):
    first = client.post("/attendance/scan", headers=staff_headers, json={"qrData": member["qrData"]})
    assert first.status_code == 200
    assert first.json()["data"]["accessGranted"] is True

    second = client.post("/attendance/scan", headers=staff_headers, json={"qrData": member["qrData"]})
    body = second.json()["data"]
    assert body["skippedDuplicate"] is True
    assert body["attendance"]["id"] == first.json()["data"]["attendance"]["id"]

    listed = client.get("/attendance", headers=staff_headers).json()["data"]
    assert listed["pagination"]["totalItems"] == 1


def test_scenario_b_fee_overdue_scan(client, owner_headers, staff_headers, member):
    client.put(f"/members/{member['id']}", headers=owner_headers, json={"feeStatus": "overdue"})
    r = client.post("/attendance/scan", headers=staff_headers, json={"qrData": member["qrData"]})
    body = r.json()["data"]
    assert body["accessGranted"] is False
    assert body["denialReason"] == "Fee payment is overdue"

    alerts = client.get("/alerts", headers=owner_headers).json()["data"]["alerts"]
    assert len(alerts) == 1
    assert alerts[0]["type"] == "access_denied"
    assert sorted(alerts[0]["targetRoles"]) == ["gymowner", "staff"]

    denied = client.get("/attendance", headers=owner_headers, params={"accessGranted": False}).json()["data"]
    assert denied["pagination"]["totalItems"] == 1


def test_scan_rejects_foreign_and_malformed_payloads(client, seed, gym_b, member, staff_headers):
    other = seed.headers(gym_b[1])
    foreign = client.post("/attendance/scan", headers=other, json={"qrData": member["qrData"]})
    assert foreign.status_code == 403
    assert foreign.json()["error"]["code"] == "foreign_credential"

    bad = client.post("/attendance/scan", headers=staff_headers, json={"qrData": "{\"memberId\": \"MEM1\"}"})
    assert bad.status_code == 422
    assert bad.json()["error"]["code"] == "malformed_credential"


def test_scan_unknown_member(client, staff_headers, gym_a):
    payload = '{"gymId": "%s", "memberId": "MEMNOBODY"}' % gym_a[0].gym_id
    r = client.post("/attendance/scan", headers=staff_headers, json={"qrData": payload})
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "unknown_member"


def test_trainer_cannot_scan(client, seed, gym_a, member):
    headers = seed.headers(seed.user(gym_a[0], TRAINER))
    r = client.post("/attendance/scan", headers=headers, json={"qrData": member["qrData"]})
    assert r.status_code == 403


def test_member_history_and_today_stats(client, staff_headers, owner_headers, member):
    client.post("/attendance/scan", headers=staff_headers, json={"qrData": member["qrData"]})
    history = client.get(f"/attendance/member/{member['id']}", headers=staff_headers).json()["data"]
    assert len(history["attendance"]) == 1
    assert history["member"]["memberId"] == member["memberId"]

    stats = client.get("/attendance/stats/today", headers=owner_headers).json()["data"]["stats"]
    assert stats["totalCheckIns"] == 1
    assert stats["deniedAccess"] == 0
    assert stats["currentlyInGym"] == 1


# ---------- alerts ----------

@pytest.fixture
def denied_alert(client, owner_headers, staff_headers, member):
    client.put(f"/members/{member['id']}", headers=owner_headers, json={"isActive": False})
    client.post("/attendance/scan", headers=staff_headers, json={"qrData": member["qrData"]})
    return client.get("/alerts", headers=owner_headers).json()["data"]["alerts"][0]


def test_alert_read_flow(client, owner_headers, staff_headers, denied_alert):
    assert client.get("/alerts/unread-count", headers=staff_headers).json()["data"]["count"] == 1

    r = client.patch(f"/alerts/{denied_alert['id']}/read", headers=owner_headers)
    assert r.json()["data"]["alert"]["isRead"] is True
    # reading twice records the reader once
    r = client.patch(f"/alerts/{denied_alert['id']}/read", headers=owner_headers)
    assert len(r.json()["data"]["alert"]["readBy"]) == 1

    assert client.get("/alerts/unread-count", headers=owner_headers).json()["data"]["count"] == 0
    unread = client.get("/alerts", headers=owner_headers, params={"isRead": False}).json()["data"]
    assert unread["alerts"] == []


def test_mark_all_read_and_delete(client, owner_headers, denied_alert):
    r = client.patch("/alerts/read-all", headers=owner_headers)
    assert r.json()["data"]["updated"] == 1
    assert client.delete(f"/alerts/{denied_alert['id']}", headers=owner_headers).status_code == 200
    assert client.delete(f"/alerts/{denied_alert['id']}", headers=owner_headers).status_code == 404


def test_trainer_has_no_alert_inbox(client, seed, gym_a):
    headers = seed.headers(seed.user(gym_a[0], TRAINER))
    assert client.get("/alerts", headers=headers).status_code == 403


def test_alerts_are_tenant_scoped(client, seed, gym_b, denied_alert):
    other = seed.headers(gym_b[1])
    assert client.get("/alerts", headers=other).json()["data"]["alerts"] == []
    assert client.patch(f"/alerts/{denied_alert['id']}/read", headers=other).status_code == 404
