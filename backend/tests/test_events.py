"""API tests for event endpoints.

Covers:
- Draft create / get / list / update
- Workflow transitions over HTTP: submit, publish, reject, resubmit, delete, restore
- Error mapping: 400 invalid transition / validation, 403, 404, 409 with current state
- Delegated calendar token forwarded to the calendar client
- Audit trail endpoint
"""


def _post(client, path, actor, json=None, headers=None):
    return client.post(path, params={"actor_user_id": actor["user_id"]}, json=json or {}, headers=headers)


def _setup(make_user):
    requester = make_user(name="Requester", role="requester", email="requester@example.org")
    approver = make_user(name="Approver", role="approver", email="approver@example.org")
    admin = make_user(name="Admin", role="admin", email="admin@example.org")
    return requester, approver, admin


class TestEventCreate:

    def test_create_draft(self, make_user, make_event):
        requester, _, _ = _setup(make_user)
        event = make_event(requester)
        assert event["status"] == "draft"
        assert event["version"] == 1
        assert event["created_by"] == requester["user_id"]
        assert event["requester_email"] == "requester@example.org"
        assert [h["status"] for h in event["status_history"]] == ["draft"]
        assert event["calendar_data"]["event_title"] == "Board Meeting"

    def test_create_rejects_unknown_field(self, client, make_user):
        requester, _, _ = _setup(make_user)
        resp = _post(client, "/api/events/", requester, {"details": {"event_title": "X", "colour": "red"}})
        assert resp.status_code == 422

    def test_unknown_actor(self, client):
        resp = client.post("/api/events/", params={"actor_user_id": "nobody"}, json={"details": {}})
        assert resp.status_code == 404

    def test_get_and_list(self, client, make_user, make_event):
        requester, _, _ = _setup(make_user)
        event = make_event(requester)
        assert client.get(f"/api/events/{event['event_id']}").json()["event_id"] == event["event_id"]
        assert client.get("/api/events/does-not-exist").status_code == 404

        listed = client.get("/api/events/", params={"status": "draft"}).json()
        assert [e["event_id"] for e in listed] == [event["event_id"]]
        assert client.get("/api/events/", params={"status": "bogus"}).status_code == 400


class TestWorkflow:

    def test_submit_publish(self, client, make_user, make_event, calendar):
        requester, approver, _ = _setup(make_user)
        event = make_event(requester)
        eid = event["event_id"]

        resp = _post(client, f"/api/events/{eid}/submit", requester, {"version": 1})
        assert resp.status_code == 200, resp.text
        assert resp.json()["event"]["status"] == "pending"
        assert resp.json()["event"]["version"] == 2

        resp = _post(client, f"/api/events/{eid}/publish", approver, {"version": 2})
        assert resp.status_code == 200, resp.text
        body = resp.json()
        assert body["success"] is True
        assert body["graph_synced"] is True
        assert body["event"]["status"] == "published"
        assert body["event"]["external_sync"]["external_id"] == "graph-1"
        assert calendar.actions() == ["create"]

    def test_stale_reject_after_publish_returns_409(self, client, make_user, make_event):
        requester, approver, _ = _setup(make_user)
        eid = make_event(requester)["event_id"]
        _post(client, f"/api/events/{eid}/submit", requester, {"version": 1})
        _post(client, f"/api/events/{eid}/publish", approver, {"version": 2})

        resp = _post(client, f"/api/events/{eid}/reject", approver, {"version": 2, "reason": "No"})
        assert resp.status_code == 409
        body = resp.json()
        assert body["code"] == "VERSION_CONFLICT"
        assert body["details"]["current_status"] == "published"
        assert body["details"]["current_version"] == 4
        assert body["details"]["snapshot"]["event_title"] == "Board Meeting"

    def test_publish_by_requester_forbidden(self, client, make_user, make_event):
        requester, _, _ = _setup(make_user)
        eid = make_event(requester)["event_id"]
        _post(client, f"/api/events/{eid}/submit", requester, {"version": 1})
        resp = _post(client, f"/api/events/{eid}/publish", requester, {"version": 2})
        assert resp.status_code == 403
        assert resp.json()["code"] == "PERMISSION_DENIED"

    def test_publish_draft_is_invalid_transition(self, client, make_user, make_event):
        requester, approver, _ = _setup(make_user)
        eid = make_event(requester)["event_id"]
        resp = _post(client, f"/api/events/{eid}/publish", approver, {"version": 1})
        assert resp.status_code == 400
        assert resp.json()["code"] == "INVALID_TRANSITION"

    def test_reject_and_resubmit(self, client, make_user, make_event):
        requester, approver, _ = _setup(make_user)
        eid = make_event(requester)["event_id"]
        _post(client, f"/api/events/{eid}/submit", requester, {"version": 1})

        resp = _post(client, f"/api/events/{eid}/reject", approver, {"version": 2, "reason": ""})
        assert resp.status_code == 400
        assert resp.json()["code"] == "VALIDATION_ERROR"

        resp = _post(client, f"/api/events/{eid}/reject", approver, {"version": 2, "reason": "Room taken"})
        assert resp.json()["event"]["rejection_reason"] == "Room taken"

        resp = _post(client, f"/api/events/{eid}/resubmit", requester, {
            "version": 3, "changes": {"location_display_names": ["Room 202"]},
        })
        assert resp.status_code == 200, resp.text
        assert resp.json()["event"]["status"] == "pending"

    def test_delete_twice_and_restore(self, client, make_user, make_event):
        requester, _, admin = _setup(make_user)
        eid = make_event(requester)["event_id"]
        _post(client, f"/api/events/{eid}/submit", requester, {"version": 1})

        first = _post(client, f"/api/events/{eid}/delete", requester, {"version": 2})
        assert first.status_code == 200
        assert first.json()["event"]["is_deleted"] is True
        second = _post(client, f"/api/events/{eid}/delete", requester, {"version": 2})
        assert second.status_code == 200
        assert second.json()["message"] == "Event already deleted"
        assert second.json()["event"]["version"] == 3

        assert client.get("/api/events/").json() == []
        assert len(client.get("/api/events/", params={"include_deleted": True}).json()) == 1

        resp = _post(client, f"/api/events/{eid}/restore", admin, {"version": 3})
        assert resp.status_code == 200
        assert resp.json()["event"]["status"] == "pending"
        assert resp.json()["message"] == "Event restored to pending"

    def test_update_draft(self, client, make_user, make_event):
        requester, _, _ = _setup(make_user)
        eid = make_event(requester)["event_id"]
        resp = client.put(
            f"/api/events/{eid}", params={"actor_user_id": requester["user_id"]},
            json={"changes": {"event_title": "Offsite"}, "version": 1},
        )
        assert resp.status_code == 200, resp.text
        body = resp.json()
        assert body["event"]["calendar_data"]["event_title"] == "Offsite"
        assert body["changes"] == [
            {"field": "event_title", "display_name": "Event Title", "from": "Board Meeting", "to": "Offsite"}
        ]

    def test_delegated_token_forwarded(self, client, make_user, make_event, calendar):
        requester, approver, _ = _setup(make_user)
        eid = make_event(requester, calendar_owner=None)["event_id"]
        _post(client, f"/api/events/{eid}/submit", requester, {"version": 1})

        resp = _post(
            client, f"/api/events/{eid}/publish", approver, {"version": 2},
            headers={"X-Calendar-Token": "delegated-abc"},
        )
        assert resp.json()["graph_synced"] is True
        assert calendar.calls[0][1] is None
        assert calendar.calls[0][5] == "delegated-abc"


class TestAuditEndpoint:

    def test_audit_trail(self, client, make_user, make_event):
        requester, approver, _ = _setup(make_user)
        eid = make_event(requester)["event_id"]
        _post(client, f"/api/events/{eid}/submit", requester, {"version": 1})

        resp = client.get(f"/api/events/{eid}/audit", params={"actor_user_id": approver["user_id"]})
        assert resp.status_code == 200
        assert sorted(e["action"] for e in resp.json()) == ["create", "submit"]

    def test_audit_forbidden_for_stranger(self, client, make_user, make_event):
        requester, _, _ = _setup(make_user)
        stranger = make_user(name="Stranger", email="stranger@example.org")
        eid = make_event(requester)["event_id"]
        resp = client.get(f"/api/events/{eid}/audit", params={"actor_user_id": stranger["user_id"]})
        assert resp.status_code == 403
