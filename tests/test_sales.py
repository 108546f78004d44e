import pytest


@pytest.fixture
def stocked(create_item, create_purchase):
    item = create_item(name="Mug", price=8)
    res = create_purchase([{"item": item["id"], "quantity": 100, "costPerUnit": 3}])
    assert res.status_code == 201, res.text
    return item


def test_sale_defaults_name_price_and_invoice(stocked, create_sale):
    res = create_sale([{"item": stocked["id"], "quantity": 2}], shippingCost=4, taxRate=10)
    assert res.status_code == 201, res.text
    sale = res.json()

    line = sale["items"][0]
    assert line["name"] == "Mug" and line["priceAtSale"] == 8 and line["totalPrice"] == 16
    assert sale["invoiceNumber"] == "000001"
    assert (sale["subtotal"], sale["taxAmount"], sale["total"]) == (16, 1.6, 21.6)
    assert sale["paymentStatus"] == {"amountPaid": 0, "status": "unpaid"}


def test_invoice_numbers_increase_and_must_be_unique(client, stocked, create_sale):
    create_sale([{"item": stocked["id"], "quantity": 1}], invoiceNumber="000010")
    assert client.get("/sales/utility/next-invoice").json() == {"invoiceNumber": "000011"}

    second = create_sale([{"item": stocked["id"], "quantity": 1}]).json()
    assert second["invoiceNumber"] == "000011"

    res = create_sale([{"item": stocked["id"], "quantity": 1}], invoiceNumber="000010")
    assert res.status_code == 409
    assert res.json()["field"] == "invoiceNumber"


def test_line_discount_percentage(stocked, create_sale):
    res = create_sale([{"item": stocked["id"], "quantity": 5, "priceAtSale": 10, "discountPercentage": 20}])
    line = res.json()["items"][0]
    assert line["discountAmount"] == 10
    assert line["totalPrice"] == 40


def test_payments_accumulate_into_status(client, stocked, create_sale):
    sale = create_sale([{"item": stocked["id"], "quantity": 5}],
                       paymentStatus={"amountPaid": 10}).json()
    assert sale["paymentStatus"] == {"amountPaid": 10, "status": "partial"}
    assert len(sale["payments"]) == 1

    res = client.post(f"/sales/{sale['id']}/payments", json={"amount": 30, "method": "credit", "reference": "R-1"})
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["paymentStatus"] == {"amountPaid": 40, "status": "paid"}
    assert body["payments"][-1]["method"] == "credit"
    assert body["payments"][-1]["reference"] == "R-1"


def test_payment_rejected_on_cancelled_sale(client, stocked, create_sale):
    sale = create_sale([{"item": stocked["id"], "quantity": 1}], status="cancelled").json()
    res = client.post(f"/sales/{sale['id']}/payments", json={"amount": 5})
    assert res.status_code == 400
    assert client.post(f"/sales/{sale['id']}/payments", json={"amount": 0}).status_code == 400


def test_editing_sale_lines_recomputes_totals_and_stock(client, stocked, create_sale, get_item):
    sale = create_sale([{"item": stocked["id"], "quantity": 10}]).json()
    assert get_item(stocked["id"])["quantity"] == 90

    res = client.patch(f"/sales/{sale['id']}", json={"items": [{"item": stocked["id"], "quantity": 4}]})
    assert res.status_code == 200, res.text
    assert res.json()["total"] == 32
    assert get_item(stocked["id"])["quantity"] == 96


def test_list_sales_filters_by_status_and_date(client, stocked, create_sale):
    create_sale([{"item": stocked["id"], "quantity": 1}], saleDate="2024-03-01T12:00:00")
    create_sale([{"item": stocked["id"], "quantity": 1}], saleDate="2024-03-05T12:00:00", status="pending")

    assert client.get("/sales").json()["total"] == 2
    assert client.get("/sales", params={"status": "pending"}).json()["total"] == 1
    body = client.get("/sales", params={"startDate": "2024-03-01", "endDate": "2024-03-01"}).json()
    assert body["total"] == 1
    assert client.get("/sales", params={"startDate": "garbage"}).status_code == 400


def test_sale_report_and_trends(client, stocked, create_sale):
    create_sale([{"item": stocked["id"], "quantity": 1}], saleDate="2024-04-01T09:00:00")
    create_sale([{"item": stocked["id"], "quantity": 2}], saleDate="2024-04-01T15:00:00")
    create_sale([{"item": stocked["id"], "quantity": 1}], saleDate="2024-04-03T09:00:00", status="pending")

    report = client.get("/sales/reports/by-date",
                        params={"startDate": "2024-04-01", "endDate": "2024-04-30"}).json()
    assert report["totalSales"] == 3
    assert report["totalRevenue"] == 32
    assert report["averageOrderValue"] == pytest.approx(10.67)

    trends = client.get("/sales/trends", params={"startDate": "2024-04-01", "endDate": "2024-04-30"}).json()
    row, = trends["trends"]
    assert (row["date"], row["count"], row["totalRevenue"]) == ("2024-04-01", 2, 24)
    assert row["measurementBreakdown"]["quantity"] == {"count": 2, "total": 24}
    assert row["measurementBreakdown"]["weight"] == {"count": 0, "total": 0}

    assert client.get("/sales/trends", params={"startDate": "2024-04-01"}).status_code == 400
    res = client.get("/sales/trends", params={"startDate": "2024-05-01", "endDate": "2024-04-01"})
    assert res.status_code == 400


def test_purchase_report_and_trends(client, create_item, create_purchase):
    item = create_item(name="Paper")
    create_purchase([{"item": item["id"], "quantity": 10, "costPerUnit": 2}], purchaseDate="2024-06-02T10:00:00")
    create_purchase([{"item": item["id"], "quantity": 5, "costPerUnit": 2}], purchaseDate="2024-06-09T10:00:00",
                    status="pending")

    report = client.get("/purchases/reports/by-date",
                        params={"startDate": "2024-06-01", "endDate": "2024-06-30", "status": "received"}).json()
    assert report["totalPurchases"] == 1
    assert report["totalCost"] == 20

    trends = client.get("/purchases/trends", params={"startDate": "2024-06-01", "endDate": "2024-06-30"}).json()
    assert [(t["date"], t["count"], t["totalCost"]) for t in trends["trends"]] == [
        ("2024-06-02", 1, 20), ("2024-06-09", 1, 10)]


def test_purchase_totals_and_listing(client, create_item, create_purchase):
    item = create_item(name="Ink")
    res = create_purchase([{"item": item["id"], "quantity": 4, "costPerUnit": 5, "discountAmount": 2}],
                          status="pending", discountAmount=3, taxRate=5, shippingCost=7,
                          invoiceNumber="SUP-77", supplier={"name": "Acme"})
    assert res.status_code == 201, res.text
    purchase = res.json()
    assert purchase["items"][0]["totalCost"] == 18
    assert (purchase["subtotal"], purchase["taxAmount"], purchase["total"]) == (18, 0.9, 22.9)
    assert purchase["supplier"]["name"] == "Acme"

    assert client.get("/purchases", params={"search": "SUP"}).json()["total"] == 1
    assert client.get("/purchases", params={"status": "received"}).json()["total"] == 0
    assert client.get("/purchases/missing").status_code == 404


def test_trends_break_lines_down_by_measurement(client, create_item, create_purchase, create_sale):
    cups = create_item(name="Cups")
    rice = create_item(name="Rice", trackingType="weight", weightUnit="kg", price=5)
    res = create_purchase([
        {"item": cups["id"], "quantity": 3, "costPerUnit": 2},
        {"item": rice["id"], "purchasedBy": "weight", "weight": 10, "costPerUnit": 1.5},
    ], purchaseDate="2024-01-02T08:00:00")
    assert res.status_code == 201, res.text

    trends = client.get("/purchases/trends", params={"startDate": "2024-01-01", "endDate": "2024-01-31"}).json()
    breakdown = trends["trends"][0]["measurementBreakdown"]
    assert breakdown["quantity"] == {"count": 1, "total": 6}
    assert breakdown["weight"] == {"count": 1, "total": 15}
    assert set(breakdown) == {"quantity", "weight", "length", "area", "volume"}

    res = create_sale([{"item": rice["id"], "soldBy": "weight", "weight": 4, "discountPercentage": 10}],
                      saleDate="2024-01-03T08:00:00")
    assert res.status_code == 201, res.text
    assert res.json()["total"] == 18

    trends = client.get("/sales/trends", params={"startDate": "2024-01-01", "endDate": "2024-01-31"}).json()
    row = trends["trends"][0]
    assert row["totalRevenue"] == 18
    # breakdown totals are gross line values
    assert row["measurementBreakdown"]["weight"] == {"count": 1, "total": 20}
    assert row["measurementBreakdown"]["quantity"] == {"count": 0, "total": 0}


def test_pending_sale_is_rechecked_when_completed(client, create_item, create_purchase, create_sale, get_item):
    flour = create_item(name="Flour", trackingType="weight", weightUnit="kg", price=2)
    create_purchase([{"item": flour["id"], "purchasedBy": "weight", "weight": 10, "costPerUnit": 1}])
    sale = create_sale([{"item": flour["id"], "soldBy": "weight", "weight": 3}], status="pending").json()
    assert sale["items"][0]["weightUnit"] == "kg"

    assert client.patch(f"/items/{flour['id']}", json={"trackingType": "quantity"}).status_code == 200
    res = client.patch(f"/sales/{sale['id']}", json={"status": "completed"})
    assert res.status_code == 400
    assert res.json()["field"] == "soldBy"
    assert client.get(f"/sales/{sale['id']}").json()["status"] == "pending"

    client.patch(f"/items/{flour['id']}", json={"trackingType": "weight"})
    res = client.patch(f"/sales/{sale['id']}", json={"status": "completed"})
    assert res.status_code == 200, res.text
    assert res.json()["items"][0]["weightUnit"] == "kg"
    assert get_item(flour["id"])["weight"] == 7
