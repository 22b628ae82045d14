# Overview: Pytest coverage for products, clients, departments and categories.

import pytest

from lamagest.extensions import db
from lamagest.models import Product
from lamagest.services import category_service, client_service, department_service, movement_service, product_service
from lamagest.validation import ConflictError, NotFoundError, ValidationError


class TestProducts:
    def test_create_assigns_sequential_ids(self, db_session):
        first = product_service.create_product({"name": "Tea", "price_cents": 300, "quantity": 4})
        second = product_service.create_product({"name": "Coffee", "price_cents": 450})

        assert (first.id, second.id) == ("prod-001", "prod-002")
        assert first.quantity == 4
        assert second.quantity == 0
        assert second.unit == "units"

    def test_name_is_trimmed_and_unique(self, db_session):
        product_service.create_product({"name": "  Tea ", "price_cents": 300})
        with pytest.raises(ConflictError) as exc:
            product_service.create_product({"name": "tea", "price_cents": 300})
        assert exc.value.code == "DUPLICATE"

    @pytest.mark.parametrize("price", [0, -5])
    def test_price_must_be_positive(self, db_session, price):
        with pytest.raises(ValidationError) as exc:
            product_service.create_product({"name": "Tea", "price_cents": price})
        assert exc.value.message == "Valid product price is required"

    def test_negative_initial_quantity(self, db_session):
        with pytest.raises(ValidationError):
            product_service.create_product({"name": "Tea", "price_cents": 100, "quantity": -1})

    def test_unknown_fields_rejected(self, db_session):
        with pytest.raises(ValidationError):
            product_service.create_product({"name": "Tea", "price_cents": 100, "q": 3})

    def test_update_refuses_quantity(self, product_factory):
        p = product_factory(quantity=3)
        with pytest.raises(ValidationError):
            product_service.update_product(p.id, {"quantity": 50})
        assert db.session.get(Product, p.id).quantity == 3

    def test_update_catalog_fields(self, product_factory):
        p = product_factory("Tea", price_cents=300)
        updated = product_service.update_product(p.id, {"price_cents": 350, "unit": "box"})
        assert (updated.price_cents, updated.unit) == (350, "box")

    def test_delete(self, product_factory):
        p = product_factory()
        assert product_service.delete_product(p.id) == p.id
        with pytest.raises(NotFoundError):
            product_service.get_product(p.id)

    def test_add_and_remove_quantities(self, product_factory):
        p = product_factory(quantity=2)
        added = product_service.add_quantities([{"product_id": p.id, "quantity": 5}])
        assert added[0].new_quantity == 7

        removed = product_service.remove_quantities([
            {"product_id": p.id, "quantity": 10},
            {"product_id": p.id, "quantity": 4},
        ])
        assert removed[0].success is False
        assert removed[1].new_quantity == 3

    def test_quantity_input_is_validated(self, db_session):
        with pytest.raises(ValidationError):
            product_service.add_quantities([])
        with pytest.raises(ValidationError) as exc:
            product_service.add_quantities([{"product_id": "prod-001", "quantity": -1}, {"quantity": 1}])
        assert len(exc.value.errors) == 2


class TestClients:
    def test_crud(self, db_session):
        created = client_service.create_client({"name": "Sara", "phone": "0660"})
        assert created.id == "cli-001"

        updated = client_service.update_client(created.id, {"location": "Alger"})
        assert updated.location == "Alger"
        assert [c.id for c in client_service.list_clients()] == ["cli-001"]

        client_service.delete_client(created.id)
        with pytest.raises(NotFoundError) as exc:
            client_service.get_client(created.id)
        assert exc.value.code == "CLIENT_NOT_FOUND"

    def test_name_required(self, db_session):
        with pytest.raises(ValidationError):
            client_service.create_client({"phone": "0660"})
        with pytest.raises(ValidationError):
            client_service.create_client({"name": "   "})


class TestDepartments:
    def _create(self, **overrides):
        payload = {"name": "Kitchen", "description": "Main kitchen", "icon": "utensils", "color": "#FF8800"}
        payload.update(overrides)
        return department_service.create_department(payload)

    def test_create_and_list(self, db_session):
        d = self._create()
        assert d.is_active is True
        assert [x.name for x in department_service.list_departments()] == ["Kitchen"]

    @pytest.mark.parametrize("color", ["red", "#12345", "FF8800", "#GGG"])
    def test_color_format(self, db_session, color):
        with pytest.raises(ValidationError):
            self._create(color=color)

    def test_short_color_accepted(self, db_session):
        assert self._create(color="#abc").color == "#abc"

    def test_length_limits(self, db_session):
        with pytest.raises(ValidationError):
            self._create(name="x" * 51)
        with pytest.raises(ValidationError):
            self._create(description="x" * 201)

    def test_icon_required(self, db_session):
        with pytest.raises(ValidationError):
            department_service.create_department({"name": "Bar", "color": "#000"})

    def test_duplicate_name(self, db_session):
        self._create()
        with pytest.raises(ConflictError):
            self._create(name="kitchen")

    def test_deactivate_hides_from_default_list(self, db_session):
        d = self._create()
        department_service.deactivate_department(d.id)

        assert department_service.list_departments() == []
        assert [x.id for x in department_service.list_departments(include_inactive=True)] == [d.id]

    def test_update(self, db_session):
        d = self._create()
        updated = department_service.update_department(d.id, {"color": "#000000", "name": "Cuisine"})
        assert (updated.name, updated.color) == ("Cuisine", "#000000")

    def test_search_is_case_insensitive_and_active_only(self, db_session):
        self._create(name="Main Kitchen", color="#111")
        self._create(name="Kitchen Annex", color="#222")
        closed = self._create(name="Old kitchen", color="#333")
        self._create(name="Bar", color="#444")
        department_service.deactivate_department(closed.id)

        found = department_service.search_departments("KITCHEN")
        assert [d.name for d in found] == ["Kitchen Annex", "Main Kitchen"]

    def test_bulk_update_filters_fields_and_applies_to_all(self, db_session):
        a = self._create(name="Kitchen")
        b = self._create(name="Bar")

        updated = department_service.bulk_update_departments(
            [a.id, b.id], {"color": "#000", "is_active": False, "id": 99}
        )

        assert {d.id for d in updated} == {a.id, b.id}
        assert department_service.list_departments() == []
        assert {d.color for d in department_service.list_departments(include_inactive=True)} == {"#000"}

    @pytest.mark.parametrize("ids,data", [([], {"color": "#000"}), (None, {"color": "#000"}), ([1], {"id": 3})])
    def test_bulk_update_rejects_empty_input(self, db_session, ids, data):
        with pytest.raises(ValidationError):
            department_service.bulk_update_departments(ids, data)

    def test_bulk_update_is_all_or_nothing(self, db_session):
        a = self._create()
        with pytest.raises(NotFoundError):
            department_service.bulk_update_departments([a.id, 404], {"color": "#000"})
        assert department_service.get_department(a.id).color == "#FF8800"

    def test_hard_delete_unused(self, db_session):
        d = self._create()
        department_service.hard_delete_department(d.id)
        assert department_service.list_departments(include_inactive=True) == []

    def test_hard_delete_refused_while_movements_use_it(self, db_session, product_factory):
        d = self._create()
        p = product_factory(quantity=5)
        movement_service.create_movement({
            "type": "distribution",
            "department": d.name,
            "stock_manager": "Karim",
            "products": [{"product_id": p.id, "quantity": 1}],
        })

        with pytest.raises(ValidationError) as exc:
            department_service.hard_delete_department(d.id)
        assert "stock movements" in exc.value.message
        assert department_service.get_department(d.id).name == "Kitchen"

    def test_hard_delete_missing(self, db_session):
        with pytest.raises(NotFoundError):
            department_service.hard_delete_department(404)


class TestCategories:
    def test_create_defaults_type_and_lists_by_name(self, db_session):
        category_service.create_category({"name": "Spices"})
        category_service.create_category({"name": "Dairy", "type": "system"})

        listed = category_service.list_categories()
        assert [(c.name, c.type) for c in listed] == [("Dairy", "system"), ("Spices", "custom")]

    def test_name_required(self, db_session):
        with pytest.raises(ValidationError):
            category_service.create_category({"type": "custom"})

    def test_duplicate_name(self, db_session):
        category_service.create_category({"name": "Spices"})
        with pytest.raises(ConflictError) as exc:
            category_service.create_category({"name": "spices"})
        assert exc.value.code == "DUPLICATE"

    def test_rename_checks_other_categories(self, db_session):
        spices = category_service.create_category({"name": "Spices"})
        dairy = category_service.create_category({"name": "Dairy"})

        assert category_service.update_category(spices.id, {"name": "Spices"}).name == "Spices"
        with pytest.raises(ConflictError):
            category_service.update_category(dairy.id, {"name": "Spices"})

    def test_delete_and_missing(self, db_session):
        c = category_service.create_category({"name": "Spices"})
        assert category_service.delete_category(c.id) == c.id
        with pytest.raises(NotFoundError) as exc:
            category_service.delete_category(c.id)
        assert exc.value.code == "CATEGORY_NOT_FOUND"
