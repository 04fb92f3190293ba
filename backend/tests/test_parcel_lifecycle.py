"""
Integration tests for the parcel lifecycle.

Covers creation, visibility, status updates, deletion rules and listing.
"""

import pytest


async def create_parcel(client, headers, payload):
    response = await client.post("/v1/parcels", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


@pytest.fixture
async def parcel(client, users, headers_for, make_parcel_payload):
    return await create_parcel(
        client, headers_for(users["sender"]), make_parcel_payload(users["receiver"].id)
    )


@pytest.mark.asyncio
async def test_create_parcel_assigns_tracking_number_and_pending_event(client, users, headers_for, parcel):
    assert parcel["tracking_number"].startswith("TRK")
    assert len(parcel["tracking_number"]) == 12
    assert parcel["status"] == "PENDING"
    assert parcel["sender_id"] == users["sender"].id
    assert parcel["receiver_id"] == users["receiver"].id
    assert parcel["pickup_date"] is None
    assert parcel["delivery_date"] is None

    response = await client.get(
        f"/v1/parcels/{parcel['id']}/tracking", headers=headers_for(users["sender"])
    )
    assert response.status_code == 200
    events = response.json()["events"]
    assert len(events) == 1
    assert events[0]["status"] == "PENDING"
    assert events[0]["description"] == "Parcel created and awaiting pickup"
    assert events[0]["location"] == parcel["pickup_address"]


@pytest.mark.asyncio
async def test_tracking_numbers_are_unique(client, users, headers_for, make_parcel_payload):
    headers = headers_for(users["sender"])
    numbers = set()
    for _ in range(5):
        created = await create_parcel(client, headers, make_parcel_payload(users["receiver"].id))
        numbers.add(created["tracking_number"])
    assert len(numbers) == 5


@pytest.mark.asyncio
async def test_create_parcel_unknown_receiver(client, users, headers_for, make_parcel_payload):
    response = await client.post(
        "/v1/parcels",
        json=make_parcel_payload(99999),
        headers=headers_for(users["sender"])
    )
    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_BAD_REQUEST_001"


@pytest.mark.asyncio
async def test_create_parcel_rejects_non_positive_weight(client, users, headers_for, make_parcel_payload):
    response = await client.post(
        "/v1/parcels",
        json=make_parcel_payload(users["receiver"].id, weight=0),
        headers=headers_for(users["sender"])
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_requests_without_valid_token_are_rejected(client):
    response = await client.get("/v1/parcels")
    assert response.status_code in (401, 403)

    response = await client.get("/v1/parcels", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401
    assert response.headers.get("WWW-Authenticate") == "Bearer"


@pytest.mark.asyncio
async def test_parcel_visibility(client, users, headers_for, parcel):
    url = f"/v1/parcels/{parcel['id']}"

    for key in ("sender", "receiver", "admin", "driver"):
        response = await client.get(url, headers=headers_for(users[key]))
        assert response.status_code == 200, key

    response = await client.get(url, headers=headers_for(users["outsider"]))
    assert response.status_code == 403

    response = await client.get(
        f"/v1/parcels/tracking/{parcel['tracking_number']}", headers=headers_for(users["outsider"])
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_lookup_by_tracking_number(client, users, headers_for, parcel):
    response = await client.get(
        f"/v1/parcels/tracking/{parcel['tracking_number']}", headers=headers_for(users["receiver"])
    )
    assert response.status_code == 200
    data = response.json()
    assert data["id"] == parcel["id"]
    assert len(data["tracking_events"]) == 1
    assert data["delivery"] is None

    response = await client.get("/v1/parcels/tracking/TRKMISSING00", headers=headers_for(users["admin"]))
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_get_missing_parcel(client, users, headers_for):
    response = await client.get("/v1/parcels/424242", headers=headers_for(users["admin"]))
    assert response.status_code == 404
    assert response.json()["error_code"] == "ERR_NOT_FOUND_001"


@pytest.mark.asyncio
async def test_list_parcels_is_scoped_for_customers(client, users, headers_for, make_parcel_payload, parcel):
    # A second parcel the receiver sends to the outsider
    await create_parcel(
        client, headers_for(users["receiver"]), make_parcel_payload(users["outsider"].id)
    )

    response = await client.get("/v1/parcels", headers=headers_for(users["sender"]))
    assert response.json()["total"] == 1

    response = await client.get("/v1/parcels", headers=headers_for(users["receiver"]))
    assert response.json()["total"] == 2

    response = await client.get("/v1/parcels", headers=headers_for(users["outsider"]))
    assert response.json()["total"] == 1

    response = await client.get("/v1/parcels", headers=headers_for(users["admin"]))
    data = response.json()
    assert data["total"] == 2
    assert data["page"] == 1
    assert data["page_size"] == 10


@pytest.mark.asyncio
async def test_list_parcels_filters_and_pages(client, users, headers_for, make_parcel_payload):
    sender_headers = headers_for(users["sender"])
    created = [
        await create_parcel(client, sender_headers, make_parcel_payload(users["receiver"].id))
        for _ in range(3)
    ]

    await client.patch(
        f"/v1/parcels/{created[0]['id']}/status",
        json={"status": "PICKED_UP", "description": "Collected"},
        headers=headers_for(users["driver"])
    )

    response = await client.get("/v1/parcels?status=PICKED_UP", headers=sender_headers)
    data = response.json()
    assert data["total"] == 1
    assert data["parcels"][0]["id"] == created[0]["id"]

    response = await client.get("/v1/parcels?page=2&page_size=2", headers=sender_headers)
    data = response.json()
    assert data["total"] == 3
    assert len(data["parcels"]) == 1


@pytest.mark.asyncio
async def test_update_status_requires_admin_or_driver(client, users, headers_for, parcel):
    response = await client.patch(
        f"/v1/parcels/{parcel['id']}/status",
        json={"status": "PICKED_UP", "description": "Collected"},
        headers=headers_for(users["sender"])
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_update_status_stamps_dates_and_appends_events(client, users, headers_for, parcel):
    url = f"/v1/parcels/{parcel['id']}/status"

    response = await client.patch(
        url,
        json={
            "status": "PICKED_UP",
            "description": "Collected from sender",
            "location": "Warehouse 7",
            "latitude": 40.7128,
            "longitude": -74.0060,
        },
        headers=headers_for(users["driver"])
    )
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "PICKED_UP"
    assert data["pickup_date"] is not None
    assert data["delivery_date"] is None

    response = await client.patch(
        url,
        json={"status": "DELIVERED", "description": "Handed to receiver"},
        headers=headers_for(users["admin"])
    )
    assert response.status_code == 200
    assert response.json()["delivery_date"] is not None

    response = await client.get(f"/v1/parcels/{parcel['id']}/tracking", headers=headers_for(users["admin"]))
    data = response.json()
    assert data["status"] == "DELIVERED"
    assert [e["status"] for e in data["events"]] == ["DELIVERED", "PICKED_UP", "PENDING"]
    assert data["events"][1]["location"] == "Warehouse 7"
    assert data["events"][1]["latitude"] == pytest.approx(40.7128)


@pytest.mark.asyncio
async def test_update_status_rejects_unknown_status(client, users, headers_for, parcel):
    response = await client.patch(
        f"/v1/parcels/{parcel['id']}/status",
        json={"status": "LOST_IN_SPACE", "description": "?"},
        headers=headers_for(users["admin"])
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_delete_parcel_only_by_sender(client, users, headers_for, parcel):
    url = f"/v1/parcels/{parcel['id']}"

    for key in ("receiver", "admin", "driver"):
        response = await client.delete(url, headers=headers_for(users[key]))
        assert response.status_code == 403, key

    response = await client.delete(url, headers=headers_for(users["sender"]))
    assert response.status_code == 200
    assert response.json()["deleted"] is True

    response = await client.get(url, headers=headers_for(users["admin"]))
    assert response.status_code == 404

    response = await client.get(f"{url}/tracking", headers=headers_for(users["admin"]))
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_delete_parcel_requires_pending(client, users, headers_for, parcel):
    await client.patch(
        f"/v1/parcels/{parcel['id']}/status",
        json={"status": "PICKED_UP", "description": "Collected"},
        headers=headers_for(users["driver"])
    )

    response = await client.delete(f"/v1/parcels/{parcel['id']}", headers=headers_for(users["sender"]))
    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_CONFLICT_001"


@pytest.mark.asyncio
async def test_delete_parcel_with_delivery_is_conflict(client, users, headers_for, parcel):
    response = await client.post(
        "/v1/deliveries", json={"parcel_id": parcel["id"]}, headers=headers_for(users["admin"])
    )
    assert response.status_code == 201

    response = await client.delete(f"/v1/parcels/{parcel['id']}", headers=headers_for(users["sender"]))
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_delete_missing_parcel(client, users, headers_for):
    response = await client.delete("/v1/parcels/31337", headers=headers_for(users["sender"]))
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_update_status_on_missing_parcel(client, users, headers_for):
    response = await client.patch(
        "/v1/parcels/424242/status",
        json={"status": "PICKED_UP", "description": "Collected"},
        headers=headers_for(users["admin"])
    )
    assert response.status_code == 404
    assert response.json()["error_code"] == "ERR_NOT_FOUND_001"

    response = await client.get("/v1/parcels/424242/tracking", headers=headers_for(users["admin"]))
    assert response.status_code == 404
