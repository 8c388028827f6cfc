def test_health_endpoints(client):
    live = client.get("/api/health/live")
    assert live.status_code == 200
    assert live.json()["status"] == "ok"

    ready = client.get("/api/health/ready")
    assert ready.status_code in {200, 503}
    payload = ready.json()
    assert "database" in payload
    assert payload["undo"]["ok"] is True


def test_ready_reports_pending_undo_operations(client, seeded):
    client.post(
        "/api/timetable/commit",
        json={
            "entries": [
                {
                    "batch_id": seeded["b1"],
                    "subject_id": seeded["math"],
                    "faculty_id": seeded["f1"],
                    "time_slot_id": seeded["s1"],
                    "day_of_week": "MONDAY",
                }
            ]
        },
    )

    assert client.get("/api/health/ready").json()["undo"]["pending"] == 1
