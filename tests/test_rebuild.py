import pytest

from inventory_service.app.models.items import Item


@pytest.fixture
def flour_history(client, create_item, create_purchase, create_sale):
    flour = create_item(sku="A1", name="Flour", trackingType="weight", weightUnit="lb", price=2)
    line = {"item": flour["id"], "purchasedBy": "weight", "weight": 50, "weightUnit": "lb",
            "costPerUnit": 1.2, "totalCost": 60}
    assert create_purchase([line]).status_code == 201
    assert create_sale([{"item": flour["id"], "soldBy": "weight", "weight": 20}]).status_code == 201
    assert create_sale([{"item": flour["id"], "soldBy": "weight", "weight": 40}]).status_code == 400
    return flour


def corrupt(db, item_id, **values):
    item = db.get(Item, item_id)
    for key, value in values.items():
        setattr(item, key, value)
    db.commit()


def test_single_item_rebuild_restores_stock_and_cost(client, db, flour_history, get_item):
    corrupt(db, flour_history["id"], weight=999, cost=42)

    res = client.post(f"/items/utility/rebuild-inventory/{flour_history['id']}")
    assert res.status_code == 200, res.text
    assert res.json()["updated"] is True

    item = get_item(flour_history["id"])
    assert item["weight"] == 30
    assert item["cost"] == 1.2


def test_rebuild_is_idempotent(client, db, flour_history, create_item, get_item):
    other = create_item(name="Untouched", price=5)
    corrupt(db, flour_history["id"], weight=1, cost=9)

    first = client.post("/items/utility/rebuild-inventory").json()
    assert first["processed"] == 2
    assert first["updated"] == 1
    state = get_item(flour_history["id"])

    second = client.post("/items/utility/rebuild-inventory", params={"batchSize": 1}).json()
    assert second["updated"] == 0 and second["errors"] == 0
    assert get_item(flour_history["id"]) == state
    assert get_item(other["id"])["price"] == 5


def test_rebuild_ignores_non_live_transactions(client, db, create_item, create_purchase, create_sale, get_item):
    item = create_item(name="Beans")
    create_purchase([{"item": item["id"], "quantity": 10, "costPerUnit": 1}])
    create_purchase([{"item": item["id"], "quantity": 99, "costPerUnit": 7}], status="pending")
    create_sale([{"item": item["id"], "quantity": 50}], status="pending")

    corrupt(db, item["id"], quantity=0)
    client.post(f"/items/utility/rebuild-inventory/{item['id']}")
    after = get_item(item["id"])
    assert after["quantity"] == 10
    assert after["cost"] == 1


def test_rebuild_uses_latest_purchase_cost(client, db, create_item, create_purchase, get_item):
    item = create_item(name="Sugar", price=4)
    create_purchase([{"item": item["id"], "quantity": 5, "costPerUnit": 3}], purchaseDate="2024-02-01T00:00:00")
    create_purchase([{"item": item["id"], "quantity": 5, "costPerUnit": 2}], purchaseDate="2024-01-01T00:00:00")

    corrupt(db, item["id"], cost=0)
    res = client.post(f"/items/utility/rebuild-inventory/{item['id']}").json()
    assert res["changes"]["cost"] == {"from": 0, "to": 3}
    assert get_item(item["id"])["cost"] == 3


def test_rebuild_leaves_price_alone_when_sync_disabled(client, db, settings, create_item, create_purchase,
                                                        get_item):
    settings.REBUILD_SYNC_PRICE = False
    item = create_item(name="Salt", price=9)
    create_purchase([{"item": item["id"], "quantity": 5, "costPerUnit": 2}])

    corrupt(db, item["id"], cost=0)
    client.post(f"/items/utility/rebuild-inventory/{item['id']}")
    after = get_item(item["id"])
    assert after["cost"] == 2
    assert after["price"] == 9


def test_rebuild_unknown_item_is_not_found(client):
    assert client.post("/items/utility/rebuild-inventory/missing").status_code == 404


def test_rebuild_counts_only_fully_received_purchases(client, create_item, create_purchase, get_item):
    item = create_item(name="Oats", price=4)
    create_purchase([{"item": item["id"], "quantity": 10, "costPerUnit": 3}], status="partially_received")
    assert get_item(item["id"])["quantity"] == 10

    res = client.post(f"/items/utility/rebuild-inventory/{item['id']}").json()
    assert res["changes"]["quantity"] == {"from": 10, "to": 0}
    assert "cost" not in res["changes"]
    assert get_item(item["id"])["quantity"] == 0
