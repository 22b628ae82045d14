# Overview: Pytest coverage for the HTTP layer (status codes and JSON bodies).

from datetime import timedelta

from lamagest.services import movement_service
from lamagest.time_utils import utcnow


def _create_product(client, name="Flour", price_cents=1000, quantity=5):
    resp = client.post("/api/products", json={"name": name, "price_cents": price_cents, "quantity": quantity})
    assert resp.status_code == 201
    return resp.get_json()["data"]


def _create_client(client):
    resp = client.post("/api/clients", json={"name": "Sara"})
    assert resp.status_code == 201
    return resp.get_json()["data"]


class TestSystemRoutes:
    def test_health(self, client, db_session):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.get_json()["checks"]["database"]["status"] == "healthy"

    def test_unknown_route_is_json(self, client, db_session):
        resp = client.get("/api/nope")
        assert resp.status_code == 404
        assert resp.get_json()["success"] is False


class TestProductRoutes:
    def test_create_get_list(self, client, db_session):
        product = _create_product(client)
        assert product["id"] == "prod-001"

        resp = client.get(f"/api/products/{product['id']}")
        assert resp.get_json()["data"]["quantity"] == 5

        listing = client.get("/api/products").get_json()
        assert listing["count"] == 1

    def test_duplicate_is_409(self, client, db_session):
        _create_product(client)
        resp = client.post("/api/products", json={"name": "Flour", "price_cents": 100})
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "DUPLICATE"

    def test_validation_is_400(self, client, db_session):
        resp = client.post("/api/products", json={"name": "Flour", "price_cents": 0})
        body = resp.get_json()
        assert resp.status_code == 400
        assert body == {
            "success": False,
            "message": "Valid product price is required",
            "code": "VALIDATION_ERROR",
            "errors": ["Valid product price is required"],
        }

    def test_bulk_quantities(self, client, db_session):
        product = _create_product(client, quantity=1)
        resp = client.post("/api/products/add-quantities", json={"products": [
            {"product_id": product["id"], "quantity": 4},
            {"product_id": "prod-404", "quantity": 1},
        ]})
        body = resp.get_json()
        assert resp.status_code == 200
        assert body["success_count"] == 1
        assert body["failure_count"] == 1
        assert body["data"][0]["new_quantity"] == 5


class TestMovementRoutes:
    def test_create_and_reject(self, client, db_session):
        product = _create_product(client, quantity=10)
        resp = client.post("/api/movements", json={
            "type": "stock_in",
            "supplier": "Atlas",
            "stock_manager": "Karim",
            "products": [{"product_id": product["id"], "quantity": 5}],
        })
        assert resp.status_code == 201
        assert resp.get_json()["data"]["products"][0]["new_stock"] == 15

        resp = client.post("/api/movements", json={
            "type": "distribution",
            "department": "Kitchen",
            "stock_manager": "Karim",
            "products": [{"product_id": product["id"], "quantity": 20}],
        })
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "INSUFFICIENT_STOCK"

    def test_unknown_movement_is_404(self, client, db_session):
        resp = client.get("/api/movements/MOV999999")
        assert resp.status_code == 404
        assert resp.get_json()["code"] == "MOVEMENT_NOT_FOUND"

    def test_old_movement_delete_is_400(self, client, db_session):
        product = _create_product(client, quantity=10)
        movement = movement_service.create_movement(
            {
                "type": "stock_in",
                "supplier": "Atlas",
                "stock_manager": "Karim",
                "products": [{"product_id": product["id"], "quantity": 1}],
            },
            now=utcnow() - timedelta(hours=30),
        )

        can_delete = client.get(f"/api/movements/{movement.id}/can-delete").get_json()["data"]
        assert can_delete["can_delete"] is False

        resp = client.delete(f"/api/movements/{movement.id}")
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "MOVEMENT_TOO_OLD"

    def test_list_has_pagination(self, client, db_session):
        resp = client.get("/api/movements?limit=10")
        body = resp.get_json()
        assert body["data"] == []
        assert body["pagination"]["total"] == 0


class TestInvoiceRoutes:
    def test_confirmed_flow(self, client, db_session):
        product = _create_product(client, quantity=5)
        customer = _create_client(client)

        resp = client.post("/api/invoices/confirmed", json={
            "client_id": customer["id"],
            "products": [{"product_id": product["id"], "quantity": 3}],
        })
        assert resp.status_code == 201
        invoice = resp.get_json()["data"]
        assert (invoice["id"], invoice["status"], invoice["total_cents"]) == ("INV-001", "not paid", 3000)

        resp = client.patch(f"/api/invoices/{invoice['id']}/status", json={"status": "paid"})
        assert resp.get_json()["data"]["rest_cents"] == 0

        resp = client.post(f"/api/invoices/{invoice['id']}/confirm")
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "INVALID_TRANSITION"

        resp = client.delete(f"/api/invoices/{invoice['id']}")
        assert resp.status_code == 200
        assert client.get(f"/api/products/{product['id']}").get_json()["data"]["quantity"] == 5

    def test_search(self, client, db_session):
        product = _create_product(client, quantity=5)
        customer = _create_client(client)
        client.post("/api/invoices", json={
            "client_id": customer["id"],
            "client_name": customer["name"],
            "products": [{"product_id": product["id"], "name": "Flour", "quantity": 1, "unit_price_cents": 1000}],
        })
        body = client.get("/api/invoices?q=sara").get_json()
        assert body["count"] == 1


class TestDepartmentRoutes:
    def test_crud(self, client, db_session):
        resp = client.post("/api/departments", json={"name": "Bar", "icon": "glass", "color": "#123"})
        assert resp.status_code == 201
        dep_id = resp.get_json()["data"]["id"]

        resp = client.delete(f"/api/departments/{dep_id}")
        assert resp.get_json()["data"]["is_active"] is False
        assert client.get("/api/departments").get_json()["count"] == 0
        assert client.get("/api/departments?include_inactive=true").get_json()["count"] == 1

    def test_search_bulk_and_hard_delete(self, client, db_session):
        ids = []
        for name, color in (("Bar", "#123"), ("Barn", "#456"), ("Kitchen", "#789")):
            resp = client.post("/api/departments", json={"name": name, "icon": "box", "color": color})
            ids.append(resp.get_json()["data"]["id"])

        body = client.get("/api/departments/search/bar").get_json()
        assert [d["name"] for d in body["data"]] == ["Bar", "Barn"]

        resp = client.patch("/api/departments/bulk", json={"department_ids": ids[:2], "update_data": {"icon": "star"}})
        assert resp.status_code == 200
        assert resp.get_json()["message"] == "2 departments updated successfully"

        resp = client.patch("/api/departments/bulk", json={"department_ids": [], "update_data": {"icon": "star"}})
        assert resp.status_code == 400

        resp = client.delete(f"/api/departments/{ids[2]}/hard")
        assert resp.status_code == 200
        assert client.delete(f"/api/departments/{ids[2]}/hard").status_code == 404


class TestCategoryRoutes:
    def test_crud(self, client, db_session):
        resp = client.post("/api/categories", json={"name": "Spices"})
        assert resp.status_code == 201
        category = resp.get_json()["data"]
        assert category["type"] == "custom"

        assert client.post("/api/categories", json={"name": "Spices"}).status_code == 409
        assert client.post("/api/categories", json={}).status_code == 400

        resp = client.put(f"/api/categories/{category['id']}", json={"name": "Herbs"})
        assert resp.get_json()["data"]["name"] == "Herbs"

        assert client.delete(f"/api/categories/{category['id']}").status_code == 200
        assert client.get("/api/categories").get_json()["data"] == []
        assert client.delete(f"/api/categories/{category['id']}").status_code == 404
