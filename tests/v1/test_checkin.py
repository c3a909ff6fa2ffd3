"""Tests for the daily check-in endpoints."""

from fastapi import status
from fastapi.testclient import TestClient

from tests.conftest import FID, proof_fields
from twist_api.core.settings import settings

CHECKIN_URL = "/api/v1/checkin"


def test_status_for_new_identity(client: TestClient, origin_headers: dict[str, str]) -> None:
    r = client.get(CHECKIN_URL, params={"fid": FID}, headers=origin_headers)
    assert r.status_code == status.HTTP_200_OK
    data = r.json()
    assert data["canCheckIn"] is True
    assert data["checkInStreak"] == 0
    assert data["totalCheckIns"] == 0
    assert data["lastCheckIn"] is None
    assert data["nextReward"] == {"spins": 1, "bonus": False}


def test_check_in_once_per_day(client: TestClient, origin_headers: dict[str, str]) -> None:
    r = client.post(CHECKIN_URL, json={"fid": FID, **proof_fields()}, headers=origin_headers)
    assert r.status_code == status.HTTP_200_OK
    assert r.json() == {
        "success": True,
        "checkInStreak": 1,
        "totalCheckIns": 1,
        "reward": {"spins": 1, "bonus": False},
        "newSpinsLeft": settings.spins_per_day + 1,
    }

    r = client.get(CHECKIN_URL, params={"fid": FID}, headers=origin_headers)
    data = r.json()
    assert data["canCheckIn"] is False
    assert data["nextCheckInTime"] == data["lastCheckIn"] + 86_400_000

    r = client.post(CHECKIN_URL, json={"fid": FID, **proof_fields()}, headers=origin_headers)
    assert r.status_code == status.HTTP_400_BAD_REQUEST
    assert r.json() == {"error": "Already checked in today"}


def test_check_in_requires_origin(client: TestClient) -> None:
    r = client.post(
        CHECKIN_URL,
        json={"fid": FID, **proof_fields()},
        headers={"Origin": "https://evil.example"},
    )
    assert r.status_code == status.HTTP_403_FORBIDDEN
    assert r.json() == {"error": "Unauthorized"}


def test_check_in_requires_proof(client: TestClient, origin_headers: dict[str, str]) -> None:
    r = client.post(CHECKIN_URL, json={"fid": FID}, headers=origin_headers)
    assert r.status_code == status.HTTP_400_BAD_REQUEST


def test_status_requires_fid(client: TestClient, origin_headers: dict[str, str]) -> None:
    r = client.get(CHECKIN_URL, headers=origin_headers)
    assert r.status_code == status.HTTP_400_BAD_REQUEST
    assert r.json() == {"error": "Bad request"}
