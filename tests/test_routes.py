import pytest

SLOT = {"doctorId": 1, "startTime": "2024-01-15T09:00:00", "endTime": "2024-01-15T09:30:00"}


@pytest.fixture
def slot_payload(schedule):
    return {**SLOT, "scheduleId": schedule.id}


@pytest.fixture
def created_slot(client, slot_payload):
    response = client.post("/appointments", json=slot_payload)
    assert response.status_code == 201
    return response.json()


class TestHealth:
    def test_root_and_health(self, client):
        assert client.get("/").status_code == 200
        assert client.get("/health").json() == {"status": "healthy"}


class TestAppointmentRoutes:
    def test_create_open_slot(self, created_slot):
        assert created_slot["status"] == "Available"
        assert created_slot["patientId"] is None

    def test_overlap_is_409(self, client, created_slot, slot_payload):
        response = client.post(
            "/appointments",
            json={**slot_payload, "startTime": "2024-01-15T09:15:00", "endTime": "2024-01-15T09:45:00"},
        )

        assert response.status_code == 409
        assert response.json()["detail"] == f"overlaps appointment #{created_slot['id']}"

    def test_invalid_state_is_422(self, client, slot_payload):
        response = client.post(
            "/appointments",
            json={**slot_payload, "startTime": "2024-01-15T07:00:00", "endTime": "2024-01-15T07:30:00"},
        )

        assert response.status_code == 422
        assert response.json()["detail"] == "start before schedule start"

    def test_unknown_doctor_is_404(self, client, slot_payload):
        response = client.post("/appointments", json={**slot_payload, "doctorId": 99})
        assert response.status_code == 404

    def test_malformed_body_is_422(self, client, schedule):
        response = client.post("/appointments", json={"doctorId": 1})
        assert response.status_code == 422

    def test_notes_are_escaped(self, client, slot_payload):
        response = client.post("/appointments", json={**slot_payload, "notes": "<b>hi</b>"})
        assert response.json()["notes"] == "&lt;b&gt;hi&lt;/b&gt;"

    def test_book_then_double_book(self, client, created_slot, patient, second_patient, dispatcher):
        url = f"/appointments/{created_slot['id']}/book"

        first = client.put(url, json={"patientId": patient.id})
        second = client.put(url, json={"patientId": second_patient.id})

        assert first.status_code == 200
        assert first.json()["status"] == "Scheduled"
        assert second.status_code == 409
        assert second.json()["detail"] == "already booked"
        assert len(dispatcher.of_type("BookingCreated")) == 1

    def test_book_by_body_requires_appointment_id(self, client, patient):
        response = client.post("/appointments/book", json={"patientId": patient.id})
        assert response.status_code == 400

    def test_cancel_by_body_and_by_id(self, client, created_slot, slot_payload):
        cancelled = client.post("/appointments/cancel", json={"appointmentId": created_slot["id"]})
        again = client.delete(f"/appointments/{created_slot['id']}")

        assert cancelled.json()["status"] == "Cancelled"
        assert again.status_code == 422

    def test_bulk(self, client, schedule):
        items = [
            {"scheduleId": schedule.id, "startTime": "2024-01-15T09:00:00", "endTime": "2024-01-15T09:30:00"},
            {"scheduleId": schedule.id, "startTime": "2024-01-15T09:30:00", "endTime": "2024-01-15T10:00:00"},
            {"scheduleId": schedule.id, "startTime": "2024-01-15T09:15:00", "endTime": "2024-01-15T09:45:00"},
        ]

        response = client.post("/appointments/bulk", json={"doctorId": 1, "items": items})

        body = response.json()
        assert response.status_code == 201
        assert (body["successCount"], body["failedCount"]) == (2, 1)
        assert body["errors"] == ["Item 2: overlaps batch item #0"]

    def test_bulk_reports_malformed_item_instead_of_rejecting_batch(self, client, schedule):
        items = [
            {"scheduleId": schedule.id, "startTime": "2024-01-15T09:00:00Z", "endTime": "2024-01-15T09:30:00Z"},
            {"scheduleId": schedule.id, "startTime": "not-a-date", "endTime": "2024-01-15T10:30:00"},
        ]

        response = client.post("/appointments/bulk", json={"doctorId": 1, "items": items})

        body = response.json()
        assert response.status_code == 201
        assert body["successCount"] == 1
        assert body["created"][0]["startTime"] == "2024-01-15T09:00:00"
        assert body["failures"][0]["index"] == 1
        assert body["failures"][0]["reason"].startswith("invalid startTime:")

    def test_queries(self, client, created_slot, patient):
        client.put(f"/appointments/{created_slot['id']}/book", json={"patientId": patient.id})

        by_doctor = client.get("/appointments/by-doctor", params={"doctorId": 1}).json()
        by_patient = client.get("/appointments/by-patient", params={"patientId": patient.id}).json()
        available = client.get("/appointments/available-slots", params={"doctorId": 1}).json()

        assert [a["id"] for a in by_doctor] == [created_slot["id"]]
        assert [a["id"] for a in by_patient] == [created_slot["id"]]
        assert available == []

    def test_get_and_delete(self, client, created_slot):
        slot_id = created_slot["id"]

        assert client.get(f"/appointments/{slot_id}").json()["id"] == slot_id
        assert client.delete(f"/appointments/{slot_id}/permanent").status_code == 200
        assert client.get(f"/appointments/{slot_id}").status_code == 404

    def test_update(self, client, created_slot):
        response = client.put(
            f"/appointments/{created_slot['id']}", json={"endTime": "2024-01-15T09:20:00"}
        )
        assert response.json()["endTime"] == "2024-01-15T09:20:00"


class TestScheduleRoutes:
    def test_schedule_lifecycle(self, client, doctor):
        created = client.post(
            "/schedules",
            json={"doctorId": 1, "workDate": "2024-02-01", "startTime": "08:00:00", "endTime": "12:00:00"},
        )
        schedule_id = created.json()["id"]

        patched = client.patch(f"/schedules/{schedule_id}", json={"endTime": "13:00:00"})
        listed = client.get("/schedules/by-doctor", params={"doctorId": 1})
        deleted = client.delete(f"/schedules/{schedule_id}")

        assert created.status_code == 201
        assert patched.json()["endTime"] == "13:00:00"
        assert listed.json()[0]["appointmentCount"] == 0
        assert deleted.status_code == 200
        assert client.get(f"/schedules/{schedule_id}").status_code == 404

    def test_overlapping_schedule_is_409(self, client, schedule):
        response = client.post(
            "/schedules",
            json={"doctorId": 1, "workDate": "2024-01-15", "startTime": "16:00:00", "endTime": "18:00:00"},
        )
        assert response.status_code == 409

    def test_schedule_appointments(self, client, created_slot, schedule):
        response = client.get(f"/schedules/{schedule.id}/appointments")
        assert [a["id"] for a in response.json()] == [created_slot["id"]]

    def test_invalid_status_is_422(self, client, schedule):
        response = client.patch(f"/schedules/{schedule.id}", json={"status": "Exploded"})
        assert response.status_code == 422
