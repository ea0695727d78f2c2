"""
Integration tests for the order API endpoints.

The routers run against the real FastAPI application with the service
factories and the authenticated principal overridden, so requests go
through validation, the error handlers and the response envelope without
touching a database or SES.
"""

import uuid
from collections.abc import Generator
from decimal import Decimal

import pytest
from fastapi import status
from fastapi.testclient import TestClient

from storefront.api.deps import (
    Principal,
    get_checkout_service,
    get_current_principal,
    get_order_query_service,
)
from storefront.database.connection import get_db
from storefront.database.models.coupon import DiscountKind
from storefront.database.models.user import UserRole
from storefront.main import app
from storefront.services.orders.enums import OrderStatus
from storefront.services.orders.queries import OrderQueryService

API = "/api/v1/orders"


# ============================================================================
# Test Fixtures
# ============================================================================


async def _no_db():
    yield None


@pytest.fixture
def customer(customers):
    return customers.add_user()


@pytest.fixture
def principal_holder(customer) -> dict:
    """Mutable holder so a test can switch the authenticated caller."""
    return {"principal": Principal(user_id=customer.user_id, role=UserRole.CUSTOMER)}


@pytest.fixture
def client(
    checkout_service, order_repo, principal_holder
) -> Generator[TestClient, None, None]:
    queries = OrderQueryService(order_repo)
    app.dependency_overrides[get_db] = _no_db
    app.dependency_overrides[get_checkout_service] = lambda: checkout_service
    app.dependency_overrides[get_order_query_service] = lambda: queries
    app.dependency_overrides[get_current_principal] = lambda: principal_holder["principal"]
    # Not entered as a context manager: the lifespan would start SES delivery.
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def anonymous_client(checkout_service, order_repo) -> Generator[TestClient, None, None]:
    queries = OrderQueryService(order_repo)
    app.dependency_overrides[get_db] = _no_db
    app.dependency_overrides[get_checkout_service] = lambda: checkout_service
    app.dependency_overrides[get_order_query_service] = lambda: queries
    yield TestClient(app)
    app.dependency_overrides.clear()


def _guest_payload(product_id, quantity=2, **overrides) -> dict:
    payload = {
        "guest": {"name": "Jane Doe", "email": "Jane@Example.com", "phone": "+1 (555) 123-4567"},
        "shipping_address": {
            "kind": "home",
            "name": "Jane Doe",
            "phone": "555-123-4567",
            "address": "221 Baker Street",
            "city": "Springfield",
            "state": "IL",
            "postal_code": "62701",
            "country": "USA",
        },
        "items": [{"product_id": str(product_id), "quantity": quantity}],
    }
    payload.update(overrides)
    return payload


# ============================================================================
# Guest Checkout Endpoint Tests
# ============================================================================


class TestGuestCheckoutEndpoint:
    """Test POST /orders/guest-cod."""

    def test_guest_checkout_created(self, anonymous_client, catalog):
        product = catalog.add("20.00")

        response = anonymous_client.post(f"{API}/guest-cod", json=_guest_payload(product.id))

        assert response.status_code == status.HTTP_201_CREATED
        body = response.json()
        assert body["success"] is True
        assert body["data"]["status"] == "pending"
        assert Decimal(body["data"]["grand_total"]) == Decimal("45.00")
        assert body["data"]["currency"] == "USD"
        assert body["data"]["order_number"]

    def test_line_item_variant_recorded(self, anonymous_client, catalog, order_repo):
        product = catalog.add("20.00")
        payload = _guest_payload(product.id)
        payload["items"][0]["variant"] = "Large / Blue"

        response = anonymous_client.post(f"{API}/guest-cod", json=payload)

        assert response.status_code == status.HTTP_201_CREATED
        order = order_repo.orders[uuid.UUID(response.json()["data"]["order_id"])]
        assert order.items[0].variant == "Large / Blue"

    def test_guest_checkout_with_coupon(self, anonymous_client, catalog, coupon_repo):
        product = catalog.add("20.00")
        coupon_repo.add("TENOFF", DiscountKind.FLAT, "10")

        response = anonymous_client.post(
            f"{API}/guest-cod", json=_guest_payload(product.id, coupon_code="tenoff")
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert Decimal(response.json()["data"]["grand_total"]) == Decimal("35.00")

    def test_out_of_stock_is_bad_request(self, anonymous_client, catalog, order_repo):
        product = catalog.add("20.00", stock=0)

        response = anonymous_client.post(f"{API}/guest-cod", json=_guest_payload(product.id, 1))

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        body = response.json()
        assert body["success"] is False
        assert "Insufficient stock" in body["message"]
        assert body["details"]["available"] == 0
        assert order_repo.orders == {}

    def test_unknown_coupon_is_bad_request(self, anonymous_client, catalog):
        product = catalog.add("20.00")

        response = anonymous_client.post(
            f"{API}/guest-cod", json=_guest_payload(product.id, coupon_code="NOPE")
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["message"] == "Coupon not found"

    def test_empty_items_fail_validation(self, anonymous_client):
        payload = _guest_payload(uuid.uuid4())
        payload["items"] = []

        response = anonymous_client.post(f"{API}/guest-cod", json=payload)

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        body = response.json()
        assert body["success"] is False
        assert any(error["field"].endswith("items") for error in body["details"])

    def test_short_phone_fails_validation(self, anonymous_client):
        payload = _guest_payload(uuid.uuid4())
        payload["guest"]["phone"] = "12345"

        response = anonymous_client.post(f"{API}/guest-cod", json=payload)

        assert response.status_code == status.HTTP_400_BAD_REQUEST


# ============================================================================
# Authenticated Endpoint Tests
# ============================================================================


class TestUserCheckoutEndpoint:
    """Test POST /orders."""

    def test_user_checkout(self, client, catalog, customers, customer):
        address = customers.add_address(customer.user_id)
        product = catalog.add("25.00")

        response = client.post(
            API,
            json={
                "address_id": str(address.id),
                "items": [{"product_id": str(product.id), "quantity": 2}],
                "payment_provider": "stripe",
            },
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert Decimal(response.json()["data"]["grand_total"]) == Decimal("50.00")

    def test_unknown_address(self, client, catalog):
        product = catalog.add("25.00")

        response = client.post(
            API,
            json={
                "address_id": str(uuid.uuid4()),
                "items": [{"product_id": str(product.id), "quantity": 1}],
            },
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["message"] == "Shipping address not found"

    def test_requires_authentication(self, anonymous_client):
        response = anonymous_client.post(
            API,
            json={"address_id": str(uuid.uuid4()), "items": [{"product_id": str(uuid.uuid4()), "quantity": 1}]},
        )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json()["success"] is False


def _place_user_order(client, catalog, customers, user_id, price="10.00", quantity=1, name="Widget"):
    address = customers.add_address(user_id)
    product = catalog.add(price, name=name)
    response = client.post(
        API,
        json={
            "address_id": str(address.id),
            "items": [{"product_id": str(product.id), "quantity": quantity}],
        },
    )
    assert response.status_code == status.HTTP_201_CREATED
    return response.json()["data"]


def _become_admin(principal_holder) -> None:
    principal_holder["principal"] = Principal(user_id=uuid.uuid4(), role=UserRole.ADMIN)


class TestOrderReadEndpoints:
    """Test GET /orders, /orders/guest, /orders/{id} and /orders/by-number."""

    def test_list_own_orders_with_pagination(self, client, catalog, customers, customer):
        for _ in range(3):
            _place_user_order(client, catalog, customers, customer.user_id)

        response = client.get(API, params={"page": 1, "limit": 2})

        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert len(body["data"]) == 2
        assert body["pagination"] == {"page": 1, "limit": 2, "total": 3, "pages": 2}

    def test_limit_above_maximum_rejected(self, client):
        response = client.get(API, params={"limit": 101})

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_get_order_by_id(self, client, catalog, customers, customer):
        placed = _place_user_order(
            client, catalog, customers, customer.user_id, quantity=3, name="Teapot"
        )

        response = client.get(f"{API}/{placed['order_id']}")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()["data"]
        assert data["order_number"] == placed["order_number"]
        assert data["items"][0]["name"] == "Teapot"
        assert Decimal(data["items"][0]["line_total"]) == Decimal("30.00")
        assert data["history"][0]["status"] == "pending"
        assert data["payment"]["status"] == "pending"
        assert data["guest"] is None
        assert data["is_guest"] is False

    def test_get_by_number(self, client, catalog, customers, customer):
        placed = _place_user_order(client, catalog, customers, customer.user_id)

        response = client.get(f"{API}/by-number/{placed['order_number']}")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["data"]["id"] == placed["order_id"]

    def test_other_users_order_forbidden(
        self, client, catalog, customers, customer, principal_holder
    ):
        placed = _place_user_order(client, catalog, customers, customer.user_id)
        principal_holder["principal"] = Principal(user_id=uuid.uuid4(), role=UserRole.CUSTOMER)

        response = client.get(f"{API}/{placed['order_id']}")

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.json()["success"] is False

    def test_admin_reads_any_order(self, client, catalog, customers, customer, principal_holder):
        placed = _place_user_order(client, catalog, customers, customer.user_id)
        _become_admin(principal_holder)

        response = client.get(f"{API}/{placed['order_id']}")

        assert response.status_code == status.HTTP_200_OK

    def test_unknown_order_not_found(self, client):
        order_id = uuid.uuid4()

        response = client.get(f"{API}/{order_id}")

        assert response.status_code == status.HTTP_404_NOT_FOUND
        body = response.json()
        assert body["success"] is False
        assert body["message"] == "Order not found"
        assert body["details"] == {"order_id": str(order_id)}

    def test_guest_lookup(self, anonymous_client, catalog):
        product = catalog.add("20.00")
        anonymous_client.post(f"{API}/guest-cod", json=_guest_payload(product.id))

        response = anonymous_client.get(
            f"{API}/guest", params={"email": "jane@example.com", "phone": "0000000000"}
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()["data"]
        assert len(data) == 1
        assert data[0]["guest"]["email"] == "jane@example.com"
        assert data[0]["guest"]["phone"] == "15551234567"
        assert data[0]["is_guest"] is True

    def test_guest_lookup_requires_both_parameters(self, anonymous_client):
        response = anonymous_client.get(f"{API}/guest", params={"email": "jane@example.com"})

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["message"] == "Email and phone are required"


class TestAdminEndpoints:
    """Test PATCH /orders/{id}/status and /orders/{id}/payment."""

    def test_admin_ships_order(self, client, catalog, customers, customer, principal_holder):
        placed = _place_user_order(client, catalog, customers, customer.user_id)
        _become_admin(principal_holder)

        response = client.patch(
            f"{API}/{placed['order_id']}/status",
            json={"status": "shipped", "note": "left warehouse"},
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()["data"]
        assert data["status"] == "shipped"
        assert [entry["status"] for entry in data["history"]] == ["pending", "shipped"]
        assert data["history"][-1]["note"] == "left warehouse"

    def test_customer_cannot_update_status(self, client, catalog, customers, customer, order_repo):
        placed = _place_user_order(client, catalog, customers, customer.user_id)

        response = client.patch(f"{API}/{placed['order_id']}/status", json={"status": "shipped"})

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.json()["message"] == "Insufficient permissions"
        assert order_repo.orders[uuid.UUID(placed["order_id"])].status == OrderStatus.PENDING

    def test_invalid_transition_is_bad_request(
        self, client, catalog, customers, customer, principal_holder
    ):
        placed = _place_user_order(client, catalog, customers, customer.user_id)
        _become_admin(principal_holder)
        client.patch(f"{API}/{placed['order_id']}/status", json={"status": "cancelled"})

        response = client.patch(f"{API}/{placed['order_id']}/status", json={"status": "confirmed"})

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["details"]["current_status"] == "cancelled"

    def test_unknown_status_fails_validation(self, client, principal_holder):
        _become_admin(principal_holder)

        response = client.patch(f"{API}/{uuid.uuid4()}/status", json={"status": "lost"})

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_admin_records_payment(self, client, catalog, customers, customer, principal_holder):
        placed = _place_user_order(client, catalog, customers, customer.user_id)
        _become_admin(principal_holder)

        response = client.patch(
            f"{API}/{placed['order_id']}/payment",
            json={"status": "paid", "transaction_id": "tx_1"},
        )

        assert response.status_code == status.HTTP_200_OK
        payment = response.json()["data"]["payment"]
        assert payment["status"] == "paid"
        assert payment["transaction_id"] == "tx_1"
