"""Tests for the social-graph endpoints."""

from fastapi import status
from fastapi.testclient import TestClient

from tests.conftest import FID, OTHER_FID, FakeIdentityProvider
from twist_api.core.settings import settings


def test_following_defaults_to_project_account(
    client: TestClient, identity_provider: FakeIdentityProvider
) -> None:
    r = client.get("/api/v1/social/following", params={"fid": FID})
    assert r.status_code == status.HTTP_200_OK
    assert r.json() == {"isFollowing": False}

    identity_provider.following.add((FID, settings.follow_target_fid))
    r = client.get("/api/v1/social/following", params={"fid": FID})
    assert r.json() == {"isFollowing": True}


def test_following_explicit_target(
    client: TestClient, identity_provider: FakeIdentityProvider
) -> None:
    identity_provider.following.add((FID, OTHER_FID))
    r = client.get("/api/v1/social/following", params={"fid": FID, "targetFid": OTHER_FID})
    assert r.json() == {"isFollowing": True}


def test_provider_failure_is_opaque(
    client: TestClient, identity_provider: FakeIdentityProvider
) -> None:
    identity_provider.fail = True
    r = client.get("/api/v1/social/following", params={"fid": FID})
    assert r.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert r.json() == {"error": "Server error"}


def test_best_friends(client: TestClient) -> None:
    r = client.get("/api/v1/social/best-friends", params={"fid": FID})
    assert r.status_code == status.HTTP_200_OK
    assert r.json()["users"][0]["fid"] == OTHER_FID


def test_best_friends_requires_fid(client: TestClient) -> None:
    r = client.get("/api/v1/social/best-friends")
    assert r.status_code == status.HTTP_400_BAD_REQUEST
