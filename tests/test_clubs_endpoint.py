from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from superfan_api.core.settings import settings
from superfan_api.models.user import UserRoleEnum


def _client(app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
async def test_operator_configures_club_and_catalog(app_with_db, make_user, auth_headers) -> None:
    app, _ = app_with_db
    operator = await make_user(role=UserRoleEnum.OPERATOR)
    fan = await make_user()

    async with _client(app) as client:
        denied = await client.post("/api/v1/clubs", json={"name": "Nope"}, headers=auth_headers(fan))
        created = await client.post("/api/v1/clubs", json={"name": "Night Owls"}, headers=auth_headers(operator))
        club_id = created.json()["id"]

        economics = await client.patch(
            f"/api/v1/clubs/{club_id}/economics",
            json={"promo_active": True, "promo_description": "Tour week", "promo_discount_pts": 50},
            headers=auth_headers(operator),
        )
        out_of_range = await client.put(
            f"/api/v1/clubs/{club_id}/multipliers",
            json={"multipliers": [{"status": "superfan", "earn_boost": "4.0"}]},
            headers=auth_headers(operator),
        )
        reward = await client.post(
            f"/api/v1/clubs/{club_id}/rewards",
            json={"kind": "ACCESS", "title": "Backstage pass", "points_price": 600},
            headers=auth_headers(operator),
        )
        catalog = await client.get(f"/api/v1/clubs/{club_id}/rewards", headers=auth_headers(fan))

    assert denied.status_code == 403
    assert created.status_code == 201
    assert created.json()["owner_id"] == str(operator.id)
    assert economics.status_code == 200
    assert economics.json()["promo_active"] is True
    assert out_of_range.status_code == 422
    assert reward.status_code == 201
    assert [item["effective_price"] for item in catalog.json()] == [550]


@pytest.mark.asyncio
async def test_settlement_report_is_manager_only(app_with_db, make_user, make_club, auth_headers) -> None:
    app, _ = app_with_db
    owner = await make_user(role=UserRoleEnum.OPERATOR)
    fan = await make_user()
    club = await make_club(owner)

    async with _client(app) as client:
        forbidden = await client.get(f"/api/v1/clubs/{club.id}/settlement", headers=auth_headers(fan))
        report = await client.get(f"/api/v1/clubs/{club.id}/settlement", headers=auth_headers(owner))
        weeks = await client.get(f"/api/v1/clubs/{club.id}/settlement/weeks", headers=auth_headers(owner))

    assert forbidden.status_code == 403
    assert report.status_code == 200
    assert report.json()["outstanding_points"] == 0
    assert report.json()["coverage_ratio"] == 1.0
    assert weeks.json() == []


@pytest.mark.asyncio
async def test_identity_resolution_and_profile(app_with_db, monkeypatch) -> None:
    app, _ = app_with_db
    monkeypatch.setattr(settings, "internal_api_key", "internal-key")

    async with _client(app) as client:
        rejected = await client.post(
            "/api/v1/users/resolve", json={"provider": "wallet", "external_id": "0xfeed"}
        )
        resolved = await client.post(
            "/api/v1/users/resolve",
            json={"provider": "wallet", "external_id": "0xfeed", "email": "fan@example.com"},
            headers={"X-API-Key": "internal-key"},
        )
        user_id = resolved.json()["user"]["id"]
        me = await client.get("/api/v1/users/me", headers={"X-Session-User": user_id})

    assert rejected.status_code == 401
    assert resolved.status_code == 200
    assert resolved.json()["created"] is True
    assert me.json()["email"] == "fan@example.com"


@pytest.mark.asyncio
async def test_observability_requires_admin(app_with_db, make_user, auth_headers) -> None:
    app, _ = app_with_db
    fan = await make_user()
    admin = await make_user(role=UserRoleEnum.ADMIN)

    async with _client(app) as client:
        forbidden = await client.get("/api/v1/observability/payments", headers=auth_headers(fan))
        snapshot = await client.get("/api/v1/observability/read-models", headers=auth_headers(admin))

    assert forbidden.status_code == 403
    assert snapshot.status_code == 200
