"""Shared fixtures for API tests."""

from collections.abc import Callable
from typing import Any

import pytest
from fastapi.testclient import TestClient

from bookmarket.infrastructure.container import reset_container
from bookmarket.main import app


@pytest.fixture(autouse=True)
def fresh_container() -> None:
    """Give every test empty in-memory storage."""
    reset_container()


@pytest.fixture
def client() -> TestClient:
    """Create test client."""
    return TestClient(app)


@pytest.fixture
def book_payload() -> Callable[..., dict[str, Any]]:
    """Build one appraised book for POST /listings."""

    def _make(
        title: str = "Dune",
        condition: str = "good",
        offer_cents: int = 1000,
        listing_cents: int | None = None,
        isbn: str = "9780441013593",
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "book": {
                "isbn": isbn,
                "title": title,
                "author": "Frank Herbert",
                "condition": condition,
            },
            "offer_price": {"amount_cents": offer_cents, "currency": "USD"},
        }
        if listing_cents is not None:
            payload["listing_price"] = {"amount_cents": listing_cents, "currency": "USD"}
        return payload

    return _make


@pytest.fixture
def create_listings(
    client: TestClient,
    book_payload: Callable[..., dict[str, Any]],
) -> Callable[..., list[dict[str, Any]]]:
    """Create listings through the API and return their bodies."""

    def _create(*books: dict[str, Any]) -> list[dict[str, Any]]:
        response = client.post(
            "/listings",
            json={
                "appraisal_id": "appraisal-1",
                "purchase_request_id": "purchase-1",
                "books": list(books) or [book_payload()],
            },
        )
        assert response.status_code == 201
        return response.json()

    return _create


@pytest.fixture
def address_payload() -> dict[str, Any]:
    return {
        "name": "Ada Reader",
        "street1": "1 Library Way",
        "city": "Portland",
        "state": "OR",
        "postal_code": "97201",
    }


@pytest.fixture
def create_order(
    client: TestClient,
    address_payload: dict[str, Any],
) -> Callable[..., dict[str, Any]]:
    """Create a draft order through the API, optionally with items."""

    def _create(*listing_ids: str, tax_cents: int = 0, shipping_cents: int = 0) -> dict[str, Any]:
        response = client.post(
            "/orders",
            json={
                "customer_id": "customer-1",
                "shipping_address": address_payload,
                "tax": {"amount_cents": tax_cents},
                "shipping": {"amount_cents": shipping_cents},
            },
        )
        assert response.status_code == 201
        order = response.json()
        for listing_id in listing_ids:
            response = client.post(f"/orders/{order['id']}/items", json={"listing_id": listing_id})
            assert response.status_code == 200
            order = response.json()
        return order

    return _create
