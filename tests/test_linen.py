import pytest

from cleanops.models import ActivityLog, Address, Customer
from cleanops.models_linen import LinenOrder, LinenOrderItem, LinenProduct


@pytest.fixture
def products(db):
    duvet = LinenProduct(name="Double duvet set", type="bedding", price=18.5)
    towels = LinenProduct(name="Towel bundle", type="towels", price=7.25)
    retired = LinenProduct(name="Old kit", type="kits", price=5.0, is_active=False)
    db.add_all([duvet, towels, retired])
    db.commit()
    return {"duvet": duvet, "towels": towels, "retired": retired}


def order_form(products, **overrides):
    form = {
        "firstName": "Sam",
        "lastName": "Host",
        "email": "sam@example.com",
        "phone": "07700 900777",
        "address": "Flat 2, 9 River Street",
        "postcode": "e1 6an",
        "items": [
            {"productId": products["duvet"].id, "quantity": 2},
            {"productId": products["towels"].id, "quantity": 1},
        ],
    }
    form.update(overrides)
    return form


class TestProducts:
    def test_public_catalogue_hides_inactive(self, client, products):
        response = client.get("/linen/products")

        assert response.status_code == 200
        assert [p["name"] for p in response.json()] == ["Double duvet set", "Towel bundle"]

    def test_only_admin_manages_products(self, client, customer_headers):
        response = client.post("/linen/products", headers=customer_headers, json={"name": "Kit", "price": 10})
        assert response.status_code == 403

    def test_ordered_product_is_deactivated_not_deleted(self, client, db, admin_headers, products):
        client.post("/linen/orders", json=order_form(products))

        response = client.delete(f"/linen/products/{products['duvet'].id}", headers=admin_headers)

        assert response.json()["message"] == "Product has orders and was deactivated"
        db.refresh(products["duvet"])
        assert products["duvet"].is_active is False

    def test_unordered_product_is_deleted(self, client, db, admin_headers, products):
        product_id = products["towels"].id
        client.delete(f"/linen/products/{product_id}", headers=admin_headers)
        assert db.query(LinenProduct).filter(LinenProduct.id == product_id).first() is None


class TestOrders:
    def test_public_order_creates_customer_and_prices_items(self, client, db, products):
        response = client.post("/linen/orders", json=order_form(products))

        assert response.status_code == 200
        body = response.json()
        assert body["total_cost"] == 44.25
        assert body["status"] == "pending"
        assert body["payment_status"] == "pending"
        assert sorted(i["unit_price"] for i in body["items"]) == [7.25, 18.5]

        customer = db.query(Customer).filter(Customer.email == "sam@example.com").one()
        assert customer.source == "linen"
        address = db.query(Address).filter(Address.customer_id == customer.id).one()
        assert address.postcode == "E1 6AN"
        assert db.query(ActivityLog).filter(ActivityLog.action_type == "linen_order_created").count() == 1

    def test_repeat_order_reuses_customer_and_address(self, client, db, products):
        client.post("/linen/orders", json=order_form(products))
        client.post("/linen/orders", json=order_form(products, email="SAM@example.com"))

        assert db.query(Customer).count() == 1
        assert db.query(Address).count() == 1
        assert db.query(LinenOrder).count() == 2

    def test_inactive_product_rejected(self, client, db, products):
        response = client.post(
            "/linen/orders", json=order_form(products, items=[{"productId": products["retired"].id, "quantity": 1}])
        )

        assert response.status_code == 400
        assert db.query(LinenOrder).count() == 0

    def test_empty_order_rejected(self, client, products):
        response = client.post("/linen/orders", json=order_form(products, items=[]))
        assert response.status_code == 422

    def test_customer_sees_own_orders(self, client, db, customer_headers, customer, products):
        client.post("/linen/orders", json=order_form(products, email="jane@example.com"))
        client.post("/linen/orders", json=order_form(products))

        response = client.get("/linen/my-orders", headers=customer_headers)

        assert [o["customer_id"] for o in response.json()] == [customer.id]

    def test_status_update(self, client, db, admin_headers, products):
        order_id = client.post("/linen/orders", json=order_form(products)).json()["id"]

        response = client.patch(
            f"/linen/orders/{order_id}",
            headers=admin_headers,
            json={"status": "delivered", "paymentStatus": "paid", "deliveryDate": "2030-03-06"},
        )

        assert response.status_code == 200
        assert response.json()["status"] == "delivered"
        assert response.json()["delivery_date"] == "2030-03-06"

    def test_unknown_status_rejected(self, client, admin_headers, products):
        order_id = client.post("/linen/orders", json=order_form(products)).json()["id"]
        response = client.patch(f"/linen/orders/{order_id}", headers=admin_headers, json={"status": "lost"})
        assert response.status_code == 422

    def test_items_removed_with_customer(self, client, db, admin_headers, products):
        customer_id = client.post("/linen/orders", json=order_form(products)).json()["customer_id"]

        client.delete(f"/customers/{customer_id}", headers=admin_headers)

        assert db.query(LinenOrderItem).count() == 0
