"""
Tests for Schedules API
========================

Tests schedule creation, listing, updates and deactivation.
"""

import pytest
from datetime import date, timedelta
from fastapi import status
from fastapi.testclient import TestClient


API = "/api/v1/schedules"


# ==================== FIXTURES ====================

@pytest.fixture
def schedule_payload():
    """Payload for a twice-daily schedule starting today"""
    return {
        "patient_id": "patient-1",
        "medication_name": "Metformin",
        "dosage": "500mg",
        "frequency": "TWICE_DAILY",
        "times": ["20:00", "08:00"],
        "start_date": date.today().isoformat(),
        "doctor_id": "doctor-7",
        "instructions": "Take with meals"
    }


@pytest.fixture
def created_schedule(client: TestClient, schedule_payload):
    response = client.post(f"{API}/", json=schedule_payload)
    assert response.status_code == status.HTTP_201_CREATED
    return response.json()


# ==================== CREATE TESTS ====================

class TestCreateSchedule:
    """Tests for schedule creation endpoint"""

    @pytest.mark.api
    def test_create_schedule(self, client: TestClient, schedule_payload):
        response = client.post(f"{API}/", json=schedule_payload)

        assert response.status_code == status.HTTP_201_CREATED
        data = response.json()
        assert data["id"] > 0
        assert data["times"] == ["08:00", "20:00"]
        assert data["frequency"] == "TWICE_DAILY"
        assert data["active"] is True

    @pytest.mark.api
    def test_create_with_duration(self, client: TestClient, schedule_payload):
        schedule_payload["duration_days"] = 10
        response = client.post(f"{API}/", json=schedule_payload)

        assert response.status_code == status.HTTP_201_CREATED
        expected_end = date.today() + timedelta(days=9)
        assert response.json()["end_date"] == expected_end.isoformat()

    @pytest.mark.api
    def test_unknown_frequency_rejected(self, client: TestClient, schedule_payload):
        schedule_payload["frequency"] = "HOURLY"
        response = client.post(f"{API}/", json=schedule_payload)
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    @pytest.mark.api
    def test_bad_time_rejected_with_envelope(self, client: TestClient, schedule_payload):
        schedule_payload["times"] = ["noon"]
        response = client.post(f"{API}/", json=schedule_payload)

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        data = response.json()
        assert data["error"] is True
        assert data["code"] == "VALIDATION_ERROR"
        assert data["details"]["field"] == "times"


# ==================== QUERY TESTS ====================

class TestGetSchedules:
    """Tests for schedule retrieval endpoints"""

    @pytest.mark.api
    def test_get_schedule(self, client: TestClient, created_schedule):
        response = client.get(f"{API}/{created_schedule['id']}")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["medication_name"] == "Metformin"

    @pytest.mark.api
    def test_get_schedule_not_found(self, client: TestClient):
        response = client.get(f"{API}/99999")

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["error"] is True

    @pytest.mark.api
    def test_patient_schedules(self, client: TestClient, created_schedule):
        response = client.get(f"{API}/patient/patient-1")

        assert response.status_code == status.HTTP_200_OK
        assert [s["id"] for s in response.json()] == [created_schedule["id"]]

    @pytest.mark.api
    def test_doctor_schedules(self, client: TestClient, created_schedule):
        response = client.get(f"{API}/doctor/doctor-7")

        assert response.status_code == status.HTTP_200_OK
        assert len(response.json()) == 1
        assert client.get(f"{API}/doctor/doctor-unknown").json() == []


# ==================== UPDATE TESTS ====================

class TestUpdateSchedule:
    """Tests for schedule update and deactivation endpoints"""

    @pytest.mark.api
    def test_update_times(self, client: TestClient, created_schedule):
        response = client.put(
            f"{API}/{created_schedule['id']}",
            json={"times": ["09:00", "21:00"], "instructions": "After food"}
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["times"] == ["09:00", "21:00"]
        assert response.json()["instructions"] == "After food"

    @pytest.mark.api
    def test_update_unknown_schedule(self, client: TestClient):
        response = client.put(f"{API}/99999", json={"instructions": "x"})

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["code"] == "NOT_FOUND"

    @pytest.mark.api
    def test_deactivate(self, client: TestClient, created_schedule):
        response = client.delete(f"{API}/{created_schedule['id']}")
        assert response.status_code == status.HTTP_204_NO_CONTENT

        assert client.get(f"{API}/patient/patient-1").json() == []
        inactive = client.get(f"{API}/patient/patient-1", params={"active_only": False}).json()
        assert inactive[0]["active"] is False

    @pytest.mark.api
    def test_deactivate_unknown(self, client: TestClient):
        response = client.delete(f"{API}/99999")
        assert response.status_code == status.HTTP_404_NOT_FOUND
