# Overview: Pytest coverage for invoices and their stock effects.

from datetime import date, timedelta

import pytest

from lamagest.extensions import db
from lamagest.models import Invoice, Product
from lamagest.services import invoice_service, product_service
from lamagest.services.lifecycle_service import InvoiceStateError
from lamagest.validation import InsufficientStockError, NotFoundError, ValidationError


def _qty(product_id):
    return db.session.get(Product, product_id).quantity


def confirmed(client, *lines, **extra):
    data = {
        "client_id": client.id,
        "products": [{"product_id": pid, "quantity": q} for pid, q in lines],
    }
    data.update(extra)
    return invoice_service.create_confirmed_invoice(data)


def pending(client, *lines, **extra):
    data = {
        "client_id": client.id,
        "client_name": client.name,
        "products": [
            {"product_id": p.id, "name": p.name, "quantity": q, "unit_price_cents": p.price_cents}
            for p, q in lines
        ],
    }
    data.update(extra)
    return invoice_service.create_invoice(data)


class TestConfirmedInvoices:
    def test_create_debits_stock_and_computes_totals(self, product_factory, client_record):
        p = product_factory(price_cents=1000, quantity=5)
        invoice = confirmed(client_record, (p.id, 3))

        assert invoice.id == "INV-001"
        assert _qty(p.id) == 2
        assert invoice.total_cents == 3000
        assert invoice.total_after_discount_cents == 3000
        assert invoice.rest_cents == 3000
        assert invoice.status == "not paid"
        assert invoice.paid is False
        assert invoice.client_name == client_record.name

    def test_fully_covered_invoice_is_paid(self, product_factory, client_record):
        p = product_factory(price_cents=1000, quantity=5)
        invoice = confirmed(client_record, (p.id, 2), remise_cents=500, advance_cents=1500)

        assert invoice.total_after_discount_cents == 1500
        assert invoice.rest_cents == 0
        assert invoice.status == "paid"
        assert invoice.paid is True

    def test_rest_never_negative(self, product_factory, client_record):
        p = product_factory(price_cents=1000, quantity=5)
        invoice = confirmed(client_record, (p.id, 1), advance_cents=5000)
        assert invoice.rest_cents == 0

    def test_all_line_errors_collected(self, product_factory, client_record):
        short = product_factory("Short", quantity=1)
        expired = product_factory("Old milk", quantity=10, expiry_date=(date.today() - timedelta(days=2)).isoformat())

        with pytest.raises(InsufficientStockError) as exc:
            confirmed(client_record, (short.id, 2), (expired.id, 1), ("prod-404", 1))

        errors = exc.value.errors
        assert any(e.startswith("Insufficient stock for Short") for e in errors)
        assert "Product Old milk has expired" in errors
        assert any("prod-404 not found" in e for e in errors)
        assert (_qty(short.id), _qty(expired.id)) == (1, 10)
        assert db.session.query(Invoice).count() == 0

    def test_expired_only_is_validation_error(self, product_factory, client_record):
        expired = product_factory("Old milk", quantity=10, expiry_date=(date.today() - timedelta(days=2)).isoformat())
        with pytest.raises(ValidationError):
            confirmed(client_record, (expired.id, 1))

    def test_unknown_client(self, product_factory):
        p = product_factory(quantity=5)
        with pytest.raises(NotFoundError) as exc:
            invoice_service.create_confirmed_invoice({"client_id": "cli-404", "products": [{"product_id": p.id, "quantity": 1}]})
        assert exc.value.code == "CLIENT_NOT_FOUND"


class TestUpdateInvoice:
    def test_edit_applies_only_the_difference(self, product_factory, client_record):
        p = product_factory(price_cents=1000, quantity=5)
        invoice = confirmed(client_record, (p.id, 3))

        updated = invoice_service.update_invoice(invoice.id, {"products": [{"product_id": p.id, "quantity": 1}]})

        assert _qty(p.id) == 4
        assert updated.total_cents == 1000
        assert updated.rest_cents == 1000
        assert updated.status == "not paid"

    def test_increase_needs_stock_for_the_difference(self, product_factory, client_record):
        p = product_factory(price_cents=1000, quantity=5)
        invoice = confirmed(client_record, (p.id, 3))

        invoice_service.update_invoice(invoice.id, {"products": [{"product_id": p.id, "quantity": 5}]})
        assert _qty(p.id) == 0

        with pytest.raises(InsufficientStockError):
            invoice_service.update_invoice(invoice.id, {"products": [{"product_id": p.id, "quantity": 6}]})
        assert _qty(p.id) == 0
        assert invoice_service.get_invoice(invoice.id).lines[0].quantity == 5

    def test_lines_resolved_by_name_and_removed_lines_restored(self, product_factory, client_record):
        a = product_factory("Rice", price_cents=500, quantity=10)
        b = product_factory("Oil", price_cents=800, quantity=10)
        invoice = confirmed(client_record, (a.id, 2), (b.id, 4))

        updated = invoice_service.update_invoice(invoice.id, {"products": [{"name": "Rice", "quantity": 3}]})

        assert (_qty(a.id), _qty(b.id)) == (7, 10)
        assert [(l.product_id, l.quantity) for l in updated.lines] == [(a.id, 3)]
        assert updated.total_cents == 1500

    def test_line_moved_to_another_product_with_the_same_name(self, product_factory, client_record):
        alpha = product_factory("Alpha", price_cents=500, quantity=10)
        beta = product_factory("Beta", price_cents=500, quantity=10)
        invoice = confirmed(client_record, (alpha.id, 2))
        assert _qty(alpha.id) == 8

        updated = invoice_service.update_invoice(
            invoice.id, {"products": [{"product_id": beta.id, "name": "Alpha", "quantity": 2}]}
        )

        assert (_qty(alpha.id), _qty(beta.id)) == (10, 8)
        assert [(l.product_id, l.quantity) for l in updated.lines] == [(beta.id, 2)]

    def test_explicit_price_and_stored_financials(self, product_factory, client_record):
        p = product_factory(price_cents=1000, quantity=5)
        invoice = confirmed(client_record, (p.id, 2), advance_cents=500)

        updated = invoice_service.update_invoice(
            invoice.id, {"products": [{"product_id": p.id, "quantity": 2, "unit_price_cents": 900}]}
        )
        assert updated.total_cents == 1800
        assert updated.rest_cents == 1300

        paid = invoice_service.update_invoice(invoice.id, {"advance_cents": 1800})
        assert paid.status == "paid"
        assert paid.paid is True

    def test_ids_are_normalized(self, product_factory, client_record):
        p = product_factory(quantity=5)
        invoice = confirmed(client_record, (p.id, 1))
        updated = invoice_service.update_invoice(f"  {invoice.id.lower()} ", {"remise_cents": 100})
        assert updated.id == invoice.id

    def test_pending_edit_leaves_stock_and_status(self, product_factory, client_record):
        p = product_factory(quantity=5)
        invoice = pending(client_record, (p, 1))
        updated = invoice_service.update_invoice(invoice.id, {"products": [{"product_id": p.id, "quantity": 4}]})
        assert _qty(p.id) == 5
        assert updated.status == "pending"

    def test_errors_abort_whole_update(self, product_factory, client_record):
        p = product_factory(price_cents=1000, quantity=5)
        invoice = confirmed(client_record, (p.id, 2))
        with pytest.raises(ValidationError) as exc:
            invoice_service.update_invoice(invoice.id, {"products": [
                {"product_id": p.id, "quantity": 1},
                {"product_id": "prod-404", "quantity": 1},
            ]})
        assert exc.value.errors == ["Product 2: product not found"]
        assert _qty(p.id) == 3


class TestPendingAndConfirm:
    def test_pending_creation_does_not_touch_stock(self, product_factory, client_record):
        p = product_factory(price_cents=1000, quantity=5)
        invoice = pending(client_record, (p, 3))
        assert invoice.status == "pending"
        assert invoice.total_cents == 3000
        assert _qty(p.id) == 5

    def test_pending_validation_collects_errors(self, db_session):
        with pytest.raises(ValidationError) as exc:
            invoice_service.create_invoice({"products": [{"quantity": -1}]})
        errors = exc.value.errors
        assert "Client ID is required" in errors
        assert "Client name is required" in errors
        assert "Product 1: product_id is required" in errors
        assert "Product 1: valid quantity is required" in errors
        assert "Product 1: valid unit_price_cents is required" in errors

    def test_confirm_debits_and_is_one_way(self, product_factory, client_record):
        p = product_factory(quantity=5)
        invoice = pending(client_record, (p, 3))

        result = invoice_service.confirm_invoice(invoice.id)
        assert result.status == "confirmed"
        assert result.confirmed_at is not None
        assert _qty(p.id) == 2

        with pytest.raises(InvoiceStateError):
            invoice_service.confirm_invoice(invoice.id)
        assert _qty(p.id) == 2

    def test_confirm_rechecks_stock(self, product_factory, client_record):
        p = product_factory(quantity=5)
        invoice = pending(client_record, (p, 3))
        product_service.remove_quantities([{"product_id": p.id, "quantity": 4}])

        with pytest.raises(InsufficientStockError):
            invoice_service.confirm_invoice(invoice.id)
        assert invoice_service.get_invoice(invoice.id).status == "pending"
        assert _qty(p.id) == 1


class TestDeleteInvoice:
    def test_pending_delete_restores_nothing(self, product_factory, client_record):
        p = product_factory(quantity=5)
        invoice = pending(client_record, (p, 3))
        invoice_service.delete_invoice(invoice.id)
        assert _qty(p.id) == 5
        assert db.session.get(Invoice, invoice.id) is None

    def test_confirmed_delete_restores_stock(self, product_factory, client_record):
        p = product_factory(quantity=5)
        invoice = confirmed(client_record, (p.id, 3))
        summary = invoice_service.delete_invoice(invoice.id)
        assert _qty(p.id) == 5
        assert summary["stock_restored"][0]["new_quantity"] == 5

    def test_missing_products_are_skipped(self, product_factory, client_record):
        a = product_factory("A", quantity=5)
        b = product_factory("B", quantity=5)
        invoice = confirmed(client_record, (a.id, 1), (b.id, 1))
        product_service.delete_product(b.id)

        summary = invoice_service.delete_invoice(invoice.id)
        assert summary["skipped_products"] == [b.id]
        assert _qty(a.id) == 5


class TestPaymentStatusAndQueries:
    def test_paid_forces_rest_to_zero_and_back(self, product_factory, client_record):
        p = product_factory(price_cents=1000, quantity=5)
        invoice = confirmed(client_record, (p.id, 2))

        paid = invoice_service.set_payment_status(invoice.id, "paid")
        assert (paid.status, paid.rest_cents, paid.paid) == ("paid", 0, True)

        unpaid = invoice_service.set_payment_status(invoice.id, "not paid")
        assert (unpaid.status, unpaid.rest_cents, unpaid.paid) == ("not paid", 2000, False)

    def test_not_paid_is_a_manual_override_when_nothing_is_due(self, product_factory, client_record):
        p = product_factory(price_cents=1000, quantity=5)
        invoice = confirmed(client_record, (p.id, 1), advance_cents=1000)
        assert invoice.status == "paid"

        unpaid = invoice_service.set_payment_status(invoice.id, "not paid")
        assert (unpaid.status, unpaid.rest_cents, unpaid.paid) == ("not paid", 0, False)

    def test_pending_invoice_cannot_be_marked_paid(self, product_factory, client_record):
        p = product_factory(quantity=5)
        invoice = pending(client_record, (p, 1))
        with pytest.raises(InvoiceStateError):
            invoice_service.set_payment_status(invoice.id, "paid")

    def test_only_payment_statuses_accepted(self, product_factory, client_record):
        with pytest.raises(ValidationError):
            invoice_service.set_payment_status("INV-001", "pending")

    def test_list_and_search(self, product_factory, client_record):
        p = product_factory(quantity=10)
        first = pending(client_record, (p, 1))
        second = confirmed(client_record, (p.id, 1))

        assert [i.id for i in invoice_service.list_invoices(status="pending")] == [first.id]
        assert {i.id for i in invoice_service.list_invoices(client_id=client_record.id)} == {first.id, second.id}
        assert {i.id for i in invoice_service.search_invoices("benali")} == {first.id, second.id}
        assert [i.id for i in invoice_service.search_invoices("inv-002")] == [second.id]

    def test_unknown_invoice(self, db_session):
        with pytest.raises(NotFoundError) as exc:
            invoice_service.get_invoice("INV-999")
        assert exc.value.code == "INVOICE_NOT_FOUND"
