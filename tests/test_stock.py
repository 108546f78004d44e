import pytest


@pytest.fixture
def flour(create_item):
    return create_item(sku="A1", name="Flour", trackingType="weight", weightUnit="lb", price=2)


def weight_line(item_id, weight, **extra):
    line = {"item": item_id, "purchasedBy": "weight", "weight": weight, "weightUnit": "lb"}
    line.update(extra)
    return line


def sold_weight(item_id, weight):
    return {"item": item_id, "soldBy": "weight", "weight": weight, "weightUnit": "lb"}


def test_received_purchase_adds_stock_and_lands_cost(flour, create_purchase, get_item):
    res = create_purchase([weight_line(flour["id"], 50, costPerUnit=1.2, totalCost=60)])
    assert res.status_code == 201, res.text
    assert res.json()["total"] == 60

    item = get_item(flour["id"])
    assert item["weight"] == 50
    assert item["cost"] == 1.2


def test_sale_consumes_stock_and_oversell_is_rejected(flour, create_purchase, create_sale, get_item):
    create_purchase([weight_line(flour["id"], 50, costPerUnit=1.2, totalCost=60)])

    res = create_sale([sold_weight(flour["id"], 20)])
    assert res.status_code == 201, res.text
    assert get_item(flour["id"])["weight"] == 30

    res = create_sale([sold_weight(flour["id"], 40)])
    assert res.status_code == 400
    assert "Insufficient stock" in res.json()["message"]
    assert get_item(flour["id"])["weight"] == 30


def test_failed_sale_leaves_no_sale_behind(client, flour, create_sale):
    res = create_sale([sold_weight(flour["id"], 5)])
    assert res.status_code == 400
    assert client.get("/sales").json()["total"] == 0


def test_pending_purchase_does_not_touch_stock_until_received(client, flour, create_purchase, get_item):
    res = create_purchase([weight_line(flour["id"], 10, costPerUnit=2)], status="pending")
    purchase_id = res.json()["id"]
    assert get_item(flour["id"])["weight"] == 0

    res = client.patch(f"/purchases/{purchase_id}", json={"status": "received"})
    assert res.status_code == 200, res.text
    assert get_item(flour["id"])["weight"] == 10

    res = client.patch(f"/purchases/{purchase_id}", json={"status": "cancelled"})
    assert res.status_code == 200
    assert get_item(flour["id"])["weight"] == 0


def test_editing_received_purchase_applies_only_the_difference(client, flour, create_purchase, get_item):
    purchase_id = create_purchase([weight_line(flour["id"], 10, costPerUnit=2)]).json()["id"]

    res = client.patch(f"/purchases/{purchase_id}", json={"items": [weight_line(flour["id"], 25, costPerUnit=3)]})
    assert res.status_code == 200, res.text
    item = get_item(flour["id"])
    assert item["weight"] == 25
    assert item["cost"] == 3


def test_sequential_received_purchases_sum_minus_completed_sales(flour, create_purchase, create_sale, get_item):
    for amount in (12.5, 7.25, 30):
        assert create_purchase([weight_line(flour["id"], amount, costPerUnit=1)]).status_code == 201
    create_sale([sold_weight(flour["id"], 9.75)])
    create_sale([sold_weight(flour["id"], 100)], status="pending")

    assert get_item(flour["id"])["weight"] == pytest.approx(12.5 + 7.25 + 30 - 9.75)


def test_deleting_received_purchase_restores_previous_stock(client, flour, create_purchase, get_item):
    create_purchase([weight_line(flour["id"], 8, costPerUnit=1)])
    before = get_item(flour["id"])["weight"]

    purchase_id = create_purchase([weight_line(flour["id"], 4.5, costPerUnit=1)]).json()["id"]
    assert client.delete(f"/purchases/{purchase_id}").status_code == 204
    assert get_item(flour["id"])["weight"] == before


def test_deleting_consumed_purchase_fails_without_going_negative(client, flour, create_purchase, create_sale,
                                                                 get_item):
    purchase_id = create_purchase([weight_line(flour["id"], 10, costPerUnit=1)]).json()["id"]
    create_sale([sold_weight(flour["id"], 6)])

    res = client.delete(f"/purchases/{purchase_id}")
    assert res.status_code == 400
    assert get_item(flour["id"])["weight"] == 4
    assert client.get(f"/purchases/{purchase_id}").status_code == 200


def test_deleting_or_cancelling_sale_returns_stock(client, flour, create_purchase, create_sale, get_item):
    create_purchase([weight_line(flour["id"], 10, costPerUnit=1)])
    first = create_sale([sold_weight(flour["id"], 3)]).json()
    second = create_sale([sold_weight(flour["id"], 2)]).json()
    assert get_item(flour["id"])["weight"] == 5

    assert client.patch(f"/sales/{first['id']}", json={"status": "cancelled"}).status_code == 200
    assert get_item(flour["id"])["weight"] == 8
    assert client.delete(f"/sales/{second['id']}").status_code == 204
    assert get_item(flour["id"])["weight"] == 10


def test_mismatched_measurement_is_rejected(flour, create_purchase, get_item):
    res = create_purchase([{"item": flour["id"], "purchasedBy": "quantity", "quantity": 3, "costPerUnit": 1}])
    assert res.status_code == 400
    assert res.json()["field"] == "purchasedBy"
    assert get_item(flour["id"])["weight"] == 0


def test_line_without_value_for_its_dimension_is_rejected(flour, create_purchase):
    res = create_purchase([{"item": flour["id"], "purchasedBy": "weight", "quantity": 3}])
    assert res.status_code == 400


def test_unknown_item_is_not_found(create_purchase):
    res = create_purchase([{"item": "missing", "quantity": 1}])
    assert res.status_code == 404


def test_pack_purchase_multiplies_stock_and_divides_cost(create_item, create_purchase, get_item):
    material = create_item(name="Screws", itemType="material", packInfo={"isPack": True, "unitsPerPack": 12})

    res = create_purchase([{"item": material["id"], "purchasedBy": "quantity", "quantity": 5, "costPerUnit": 24}])
    assert res.status_code == 201, res.text
    assert res.json()["items"][0]["packageInfo"]["quantityPerPackage"] == 12

    item = get_item(material["id"])
    assert item["quantity"] == 60
    assert item["cost"] == 2
    assert item["packInfo"]["costPerUnit"] == 2


def test_pack_factor_is_ignored_for_products(create_item, create_purchase, get_item):
    product = create_item(name="Boxed kit", itemType="product", packInfo={"isPack": True, "unitsPerPack": 12})
    create_purchase([{"item": product["id"], "quantity": 5, "costPerUnit": 24}])

    item = get_item(product["id"])
    assert item["quantity"] == 5
    assert item["cost"] == 24


def test_cost_derived_from_total_when_unit_cost_missing(create_item, create_purchase, get_item):
    item = create_item(name="Rope", trackingType="length", lengthUnit="ft")
    res = create_purchase([{"item": item["id"], "purchasedBy": "length", "length": 40, "totalCost": 100}])
    assert res.status_code == 201, res.text
    assert res.json()["items"][0]["lengthUnit"] == "ft"
    assert get_item(item["id"])["cost"] == 2.5


def test_item_purchase_and_sale_history(client, flour, create_purchase, create_sale):
    create_purchase([weight_line(flour["id"], 10, costPerUnit=1)], purchaseDate="2024-01-01T00:00:00")
    create_purchase([weight_line(flour["id"], 10, costPerUnit=1), weight_line(flour["id"], 2, costPerUnit=1)],
                    purchaseDate="2024-02-01T00:00:00")
    create_sale([sold_weight(flour["id"], 1)])

    purchases = client.get(f"/items/{flour['id']}/purchases").json()
    assert [p["purchaseDate"][:7] for p in purchases] == ["2024-02", "2024-01"]
    assert len(client.get(f"/items/{flour['id']}/sales").json()) == 1
    assert client.get("/items/missing/purchases").status_code == 404
