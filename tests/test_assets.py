from datetime import datetime, timedelta, timezone

import pytest


@pytest.fixture
def create_asset(client):
    def _create(**overrides):
        payload = {"name": "Forklift", "initialCost": 1000}
        payload.update(overrides)
        res = client.post("/assets", json=payload)
        assert res.status_code == 201, res.text
        return res.json()
    return _create


def asset_line(item_id, **extra):
    line = {"item": item_id, "quantity": 1, "costPerUnit": 800, "isAsset": True,
            "assetInfo": {"name": "Laser cutter", "category": "Machinery", "location": "Bay 2"}}
    line.update(extra)
    return line


def test_received_purchase_projects_assets_once(client, create_item, create_purchase):
    item = create_item(name="Cutter", itemType="material")
    purchase = create_purchase([asset_line(item["id"]), {"item": item["id"], "quantity": 2, "costPerUnit": 5}],
                               status="pending").json()
    assert client.get("/assets").json()["total"] == 0

    client.patch(f"/purchases/{purchase['id']}", json={"status": "received"})
    assets = client.get("/assets").json()["assets"]
    assert len(assets) == 1
    asset = assets[0]
    assert (asset["name"], asset["category"], asset["location"]) == ("Laser cutter", "Machinery", "Bay 2")
    assert asset["purchaseId"] == purchase["id"] and asset["itemId"] == item["id"]
    assert asset["initialCost"] == 800 and asset["currentValue"] == 800

    client.patch(f"/purchases/{purchase['id']}", json={"status": "partially_received"})
    client.patch(f"/purchases/{purchase['id']}", json={"status": "received"})
    assert client.get("/assets").json()["total"] == 1


def test_deleting_purchase_keeps_projected_assets(client, create_item, create_purchase):
    item = create_item(name="Press", itemType="material")
    purchase = create_purchase([asset_line(item["id"])]).json()
    assert client.delete(f"/purchases/{purchase['id']}").status_code == 204

    assets = client.get("/assets").json()["assets"]
    assert len(assets) == 1 and assets[0]["purchaseId"] == purchase["id"]


def test_asset_crud_and_tag_uniqueness(client, create_asset):
    asset = create_asset(assetTag="FL-1", category="Vehicles")
    assert asset["currentValue"] == 1000 and asset["status"] == "active"

    res = client.post("/assets", json={"name": "Other", "assetTag": "FL-1"})
    assert res.status_code == 409

    res = client.patch(f"/assets/{asset['id']}", json={"location": "Dock", "status": "maintenance"})
    assert res.status_code == 200, res.text
    assert res.json()["location"] == "Dock"

    assert client.get("/assets", params={"status": "maintenance"}).json()["total"] == 1
    assert client.get("/assets", params={"search": "fork"}).json()["total"] == 1
    assert client.delete(f"/assets/{asset['id']}").status_code == 204
    assert client.get(f"/assets/{asset['id']}").status_code == 404


def test_retire_asset_only_once(client, create_asset):
    asset = create_asset()
    res = client.post(f"/assets/{asset['id']}/retire")
    assert res.status_code == 200 and res.json()["status"] == "retired"
    assert client.post(f"/assets/{asset['id']}/retire").status_code == 400


def test_maintenance_schedules_next_date(client, create_asset):
    asset = create_asset()
    res = client.post(f"/assets/{asset['id']}/maintenance", json={
        "date": "2024-01-31T00:00:00", "description": "Oil change", "cost": 45.5, "frequency": "monthly"})
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["maintenanceSchedule"]["nextMaintenance"] == "2024-02-29T00:00:00"
    assert body["maintenanceHistory"][0]["description"] == "Oil change"

    due = client.get(f"/assets/{asset['id']}/maintenance-due").json()
    assert due["isMaintenanceDue"] is True
    assert due["frequency"] == "monthly"


def test_maintenance_not_due_when_upcoming_or_unscheduled(client, create_asset):
    future = (datetime.now(timezone.utc) + timedelta(days=30)).isoformat()
    scheduled = create_asset(maintenanceSchedule={"frequency": "yearly", "nextMaintenance": future})
    plain = create_asset(name="Ladder")

    assert client.get(f"/assets/{scheduled['id']}/maintenance-due").json()["isMaintenanceDue"] is False
    assert client.get(f"/assets/{plain['id']}/maintenance-due").json()["isMaintenanceDue"] is False


def test_straight_line_depreciation(client, create_asset):
    asset = create_asset(purchaseDate="2020-01-01T00:00:00")
    res = client.patch(f"/assets/{asset['id']}/depreciation",
                       json={"years": 4, "salvageValue": 200, "asOf": "2021-12-31T12:00:00"})
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["currentValue"] == pytest.approx(600, abs=0.01)
    assert body["depreciationRate"] == 25
    assert client.get(f"/assets/{asset['id']}").json()["currentValue"] == body["currentValue"]

    res = client.patch(f"/assets/{asset['id']}/depreciation", json={"years": 4, "salvageValue": 5000})
    assert res.status_code == 400


def test_category_report(client, create_asset):
    create_asset(category="Vehicles", initialCost=100)
    create_asset(category="Vehicles", initialCost=50)
    create_asset(name="Mystery", initialCost=5)

    report = client.get("/assets/reports/by-category").json()
    assert report["categories"] == [
        {"category": "Uncategorized", "count": 1, "totalValue": 5},
        {"category": "Vehicles", "count": 2, "totalValue": 150},
    ]
    assert report["totalAssets"] == 3 and report["totalValue"] == 155
