"""
test_sos.py — SOS trigger, fan-out counters, cancel and resolve.

The dispatcher is the real NotificationDispatcher wired to recording
providers (see conftest), so the counters reflect actual send outcomes.
"""

from bson import ObjectId

from conftest import RecordingSMSProvider, make_user
from rapid_response.services.notifier import NotificationDispatcher, NotifierConfig

SOS_PAYLOAD = {"location": {"lat": 51.5007, "lng": -0.1246, "address": "Westminster Bridge"}}


async def _add_contact(fake_db, user_id, **fields):
    doc = {
        "user_id": user_id,
        "name": "Jordan Contact",
        "phone": "+15550002222",
        "email": "jordan@example.com",
        "relationship": "friend",
        "is_primary": False,
        "notify_on_sos": True,
        **fields,
    }
    result = await fake_db["emergency_contacts"].insert_one(doc)
    return str(result.inserted_id)


async def _trigger(api_client, headers, payload=None):
    return await api_client.post("/api/sos/trigger", json=payload or SOS_PAYLOAD, headers=headers)


class TestTrigger:
    async def test_requires_auth(self, api_client):
        r = await _trigger(api_client, {})
        assert r.status_code == 401

    async def test_without_contacts_still_creates_alert(self, api_client, fake_db, citizen):
        r = await _trigger(api_client, citizen[1])

        assert r.status_code == 201
        data = r.json()
        assert data["message"] == "SOS Alert triggered successfully"
        assert data["sosAlert"]["status"] == "active"
        assert data["sosAlert"]["alertType"] == "emergency"
        assert data["contactsNotified"] == 0
        assert data["notifications"] == {"emailsSent": 0, "smsSent": 0, "adminsNotified": 0}
        assert len(fake_db["sos_alerts"].all()) == 1

    async def test_notifies_opted_in_contacts_only(self, api_client, fake_db, sms_provider, email_provider, citizen):
        user_id, headers = citizen
        notified = await _add_contact(fake_db, user_id)
        await _add_contact(fake_db, user_id, name="Quiet Contact", phone="+15550009999", notify_on_sos=False)

        data = (await _trigger(api_client, headers)).json()

        assert data["contactsNotified"] == 1
        assert data["notifications"]["smsSent"] == 1
        assert data["notifications"]["emailsSent"] == 1
        assert [c["contactId"] for c in data["sosAlert"]["notifiedContacts"]] == [notified]
        assert [m["to"] for m in sms_provider.sent] == ["+15550002222"]
        assert sms_provider.sent[0]["body"] == "SOS! Casey Citizen needs help at 51.5007,-0.1246"
        assert email_provider.sent[0]["subject"] == "EMERGENCY: Casey Citizen needs help!"
        assert "Westminster Bridge" in email_provider.sent[0]["html"]

    async def test_email_unconfigured_sms_ok(self, api_client, fake_db, citizen):
        """Email channel off, SMS on: counters reflect that and every admin gets an inbox entry."""
        from rapid_response.main import app
        from rapid_response.services.notifier import get_dispatcher

        user_id, headers = citizen
        await _add_contact(fake_db, user_id, phone="+15550003333", email="a@example.com")
        admin_ids = [(await make_user(fake_db, f"admin{i}@example.com", role="admin"))[0] for i in range(2)]

        sms = RecordingSMSProvider()
        app.dependency_overrides[get_dispatcher] = lambda: NotificationDispatcher(
            NotifierConfig(), email_provider=None, sms_provider=sms
        )

        data = (await _trigger(api_client, headers)).json()

        assert data["notifications"] == {"emailsSent": 0, "smsSent": 1, "adminsNotified": 2}
        inbox = fake_db["notifications"].all()
        assert sorted(n["user_id"] for n in inbox) == sorted(admin_ids)
        assert all(n["type"] == "sos" and n["priority"] == "critical" for n in inbox)
        assert inbox[0]["related_sos"] == data["sosAlert"]["id"]
        assert "Westminster Bridge" in inbox[0]["message"]

    async def test_every_admin_role_user_is_notified(self, api_client, fake_db, citizen):
        await make_user(fake_db, "active@example.com", role="admin")
        await make_user(fake_db, "retired@example.com", role="admin", is_active=False)
        legacy = await fake_db["users"].insert_one(
            {"name": "Legacy Admin", "email": "legacy@example.com", "role": "admin"}
        )

        data = (await _trigger(api_client, citizen[1])).json()

        assert data["notifications"]["adminsNotified"] == 3
        recipients = {n["user_id"] for n in fake_db["notifications"].all()}
        assert str(legacy.inserted_id) in recipients
        assert len(recipients) == 3

    async def test_provider_failures_do_not_fail_the_trigger(self, api_client, fake_db, sms_provider, email_provider, citizen):
        user_id, headers = citizen
        sms_provider.fail = True
        email_provider.fail = True
        await _add_contact(fake_db, user_id)
        await _add_contact(fake_db, user_id, phone="+15550004444", email="b@example.com")

        r = await _trigger(api_client, headers)

        assert r.status_code == 201
        assert r.json()["contactsNotified"] == 2
        assert r.json()["notifications"]["smsSent"] == 0
        assert r.json()["notifications"]["emailsSent"] == 0

    async def test_contact_without_email_gets_sms_only(self, api_client, fake_db, sms_provider, email_provider, citizen):
        await _add_contact(fake_db, citizen[0], email=None)

        data = (await _trigger(api_client, citizen[1])).json()

        assert data["notifications"]["smsSent"] == 1
        assert data["notifications"]["emailsSent"] == 0
        assert email_provider.sent == []

    async def test_location_without_address(self, api_client, citizen):
        payload = {"location": {"lat": 10.0, "lng": 20.0}, "alertType": "medical", "message": "Chest pain"}
        r = await _trigger(api_client, citizen[1], payload)
        assert r.status_code == 201
        alert = r.json()["sosAlert"]
        assert alert["location"]["address"] is None
        assert alert["alertType"] == "medical"
        assert alert["message"] == "Chest pain"

    async def test_invalid_alert_type_422(self, api_client, citizen):
        payload = {**SOS_PAYLOAD, "alertType": "zombie"}
        assert (await _trigger(api_client, citizen[1], payload)).status_code == 422


class TestMyAlerts:
    async def test_lists_only_own_alerts(self, api_client, fake_db, citizen):
        _, other = await make_user(fake_db, "other@example.com")
        await _trigger(api_client, citizen[1])
        await _trigger(api_client, other)

        r = await api_client.get("/api/sos/my-alerts", headers=citizen[1])
        alerts = r.json()["alerts"]
        assert len(alerts) == 1
        assert alerts[0]["userId"] == citizen[0]


class TestAdminList:
    async def test_requires_admin(self, api_client, citizen):
        assert (await api_client.get("/api/sos/all", headers=citizen[1])).status_code == 403

    async def test_active_alerts_embed_owner(self, api_client, citizen, admin):
        first = (await _trigger(api_client, citizen[1])).json()["sosAlert"]
        second = (await _trigger(api_client, citizen[1])).json()["sosAlert"]
        await api_client.put(f"/api/sos/{first['id']}/cancel", headers=citizen[1])

        alerts = (await api_client.get("/api/sos/all", headers=admin[1])).json()["alerts"]

        assert [a["id"] for a in alerts] == [second["id"]]
        assert alerts[0]["user"]["email"] == "citizen@example.com"
        assert alerts[0]["user"]["phone"] == "+15550001111"


class TestCancel:
    async def test_owner_cancels_active_alert(self, api_client, citizen):
        alert = (await _trigger(api_client, citizen[1])).json()["sosAlert"]

        r = await api_client.put(f"/api/sos/{alert['id']}/cancel", headers=citizen[1])

        assert r.status_code == 200
        assert r.json()["alert"]["status"] == "cancelled"
        assert r.json()["alert"]["resolvedAt"] is not None

    async def test_cannot_cancel_someone_elses_alert(self, api_client, fake_db, citizen):
        alert = (await _trigger(api_client, citizen[1])).json()["sosAlert"]
        _, other = await make_user(fake_db, "other@example.com")

        r = await api_client.put(f"/api/sos/{alert['id']}/cancel", headers=other)

        assert r.status_code == 404
        assert r.json()["detail"] == "Active SOS alert not found"

    async def test_terminal_alert_cannot_be_cancelled(self, api_client, citizen, admin):
        alert = (await _trigger(api_client, citizen[1])).json()["sosAlert"]
        url = f"/api/sos/{alert['id']}/cancel"

        assert (await api_client.put(url, headers=citizen[1])).status_code == 200
        assert (await api_client.put(url, headers=citizen[1])).status_code == 404

        resolved = (await _trigger(api_client, citizen[1])).json()["sosAlert"]
        await api_client.put(f"/api/sos/{resolved['id']}/resolve", headers=admin[1])
        r = await api_client.put(f"/api/sos/{resolved['id']}/cancel", headers=citizen[1])
        assert r.status_code == 404

    async def test_malformed_id_422(self, api_client, citizen):
        r = await api_client.put("/api/sos/nope/cancel", headers=citizen[1])
        assert r.status_code == 422


class TestResolve:
    async def test_admin_resolves_and_owner_is_notified(self, api_client, fake_db, citizen, admin):
        alert = (await _trigger(api_client, citizen[1])).json()["sosAlert"]

        r = await api_client.put(f"/api/sos/{alert['id']}/resolve", headers=admin[1])

        assert r.status_code == 200
        assert r.json()["message"] == "SOS alert resolved"
        assert r.json()["alert"]["status"] == "resolved"
        assert r.json()["alert"]["resolvedBy"] == admin[0]

        inbox = [n for n in fake_db["notifications"].all() if n["user_id"] == citizen[0]]
        assert len(inbox) == 1
        assert inbox[0]["title"] == "SOS Alert Resolved"
        assert inbox[0]["priority"] == "high"

    async def test_resolving_a_cancelled_alert_is_a_no_op(self, api_client, fake_db, citizen, admin):
        alert = (await _trigger(api_client, citizen[1])).json()["sosAlert"]
        await api_client.put(f"/api/sos/{alert['id']}/cancel", headers=citizen[1])

        r = await api_client.put(f"/api/sos/{alert['id']}/resolve", headers=admin[1])

        assert r.status_code == 200
        assert r.json()["message"] == "SOS alert already cancelled"
        assert r.json()["alert"]["status"] == "cancelled"
        assert [n for n in fake_db["notifications"].all() if n["user_id"] == citizen[0]] == []

    async def test_requires_admin(self, api_client, citizen):
        alert = (await _trigger(api_client, citizen[1])).json()["sosAlert"]
        r = await api_client.put(f"/api/sos/{alert['id']}/resolve", headers=citizen[1])
        assert r.status_code == 403

    async def test_unknown_alert_404(self, api_client, admin):
        r = await api_client.put(f"/api/sos/{ObjectId()}/resolve", headers=admin[1])
        assert r.status_code == 404


class TestRateLimit:
    async def test_trigger_is_rate_limited(self, api_client, citizen):
        from unittest.mock import patch

        from rapid_response.core.rate_limit import limiter

        # Pretend the bucket is full rather than sending real requests.
        with patch.object(limiter._limiter, "hit", return_value=False):
            r = await _trigger(api_client, citizen[1])

        assert r.status_code == 429
