import uuid

import pytest
from sqlalchemy import select

from db import async_session_maker
from models import GeneratedImage, Role, Store

GARMENT_PHOTO = "https://cdn.example.com/garments/vestido.jpg"


@pytest.fixture
async def store_owner(make_account):
    return await make_account(role=Role.STORE, name="Ana Costa")


@pytest.fixture
async def store(store_owner):
    async with async_session_maker() as s:
        row = Store(user_id=store_owner.id, name="Boutique Aurora")
        s.add(row)
        await s.commit()
        return row


async def test_created_product_is_listed_with_exact_fields(client, auth, store_owner, store):
    response = await client.post(
        "/api/products",
        json={
            "storeId": str(store.id),
            "name": "Vestido Floral",
            "category": "Vestido",
            "size": "M",
            "imageUrl": GARMENT_PHOTO,
        },
        headers=auth(store_owner),
    )
    assert response.status_code == 201
    created = response.json()
    uuid.UUID(created["id"])

    listed = (await client.get("/api/products")).json()

    matches = [p for p in listed if p["id"] == created["id"]]
    assert len(matches) == 1
    assert matches[0]["name"] == "Vestido Floral"
    assert matches[0]["category"] == "Vestido"
    assert matches[0]["size"] == "M"
    assert matches[0]["store"]["name"] == "Boutique Aurora"


async def test_product_fields_are_sanitized(client, auth, store_owner, store):
    response = await client.post(
        "/api/products",
        json={
            "storeId": str(store.id),
            "name": "  Saia Midi  ",
            "color": "x" * 80,
            "description": "   ",
            "imageUrl": GARMENT_PHOTO,
        },
        headers=auth(store_owner),
    )

    assert response.status_code == 201
    body = response.json()
    assert body["name"] == "Saia Midi"
    assert body["color"] == "x" * 50
    assert body["description"] is None


async def test_product_requires_http_image(client, auth, store_owner, store):
    response = await client.post(
        "/api/products",
        json={"storeId": str(store.id), "name": "Blusa", "imageUrl": "javascript:alert(1)"},
        headers=auth(store_owner),
    )

    assert response.status_code == 400


async def test_malformed_product_id_is_invalid_input(client):
    response = await client.get("/api/products/not-a-uuid")

    assert response.status_code == 400


async def test_product_for_unknown_store(client, auth, store_owner):
    response = await client.post(
        "/api/products",
        json={"storeId": str(uuid.uuid4()), "name": "Blusa", "imageUrl": GARMENT_PHOTO},
        headers=auth(store_owner),
    )

    assert response.status_code == 404
    assert response.json()["error"] == "Store not found."


async def test_clients_cannot_create_products(client, auth, make_account, store):
    shopper = await make_account(role=Role.CLIENT)

    response = await client.post(
        "/api/products",
        json={"storeId": str(store.id), "name": "Blusa", "imageUrl": GARMENT_PHOTO},
        headers=auth(shopper),
    )

    assert response.status_code == 403


async def test_store_cannot_manage_another_stores_products(client, auth, make_account, store_owner, store):
    created = await client.post(
        "/api/products",
        json={"storeId": str(store.id), "name": "Blusa", "imageUrl": GARMENT_PHOTO},
        headers=auth(store_owner),
    )
    rival = await make_account(role=Role.STORE)

    response = await client.patch(
        f"/api/products/{created.json()['id']}", json={"name": "Hacked"}, headers=auth(rival)
    )

    assert response.status_code == 403


async def test_partial_update_touches_only_sent_fields(client, auth, store_owner, store):
    created = (await client.post(
        "/api/products",
        json={"storeId": str(store.id), "name": "Blusa", "size": "P", "imageUrl": GARMENT_PHOTO},
        headers=auth(store_owner),
    )).json()

    response = await client.patch(
        f"/api/products/{created['id']}", json={"color": "Azul"}, headers=auth(store_owner)
    )

    assert response.status_code == 200
    body = response.json()
    assert body["color"] == "Azul"
    assert body["size"] == "P"
    assert body["name"] == "Blusa"


async def test_delete_product_with_artifacts_nulls_references(client, auth, store_owner, store, make_account):
    created = (await client.post(
        "/api/products",
        json={"storeId": str(store.id), "name": "Blusa", "imageUrl": GARMENT_PHOTO},
        headers=auth(store_owner),
    )).json()
    shopper = await make_account()
    async with async_session_maker() as s:
        s.add(GeneratedImage(
            user_id=shopper.id,
            product_id=uuid.UUID(created["id"]),
            original_image_url="https://cdn.example.com/people/maria.jpg",
            generated_image_url="https://res.cloudinary.com/demo/image/upload/generated/1.png",
            prompt_used="template",
        ))
        await s.commit()

    response = await client.delete(f"/api/products/{created['id']}", headers=auth(store_owner))

    assert response.status_code == 200
    assert response.json() == {"success": True}
    assert (await client.get(f"/api/products/{created['id']}")).status_code == 404
    async with async_session_maker() as s:
        artifact = (await s.execute(select(GeneratedImage))).scalar_one()
    assert artifact.product_id is None

    images = (await client.get(f"/api/generated-images/{shopper.id}", headers=auth(shopper))).json()
    assert len(images) == 1
    assert images[0]["product"] is None
