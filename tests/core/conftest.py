"""Fixtures for core service tests: a mocked PostgresClient and row builders."""

from datetime import timedelta
from unittest.mock import Mock
from uuid import uuid4

import pytest

from clients.postgres_client import PostgresClient
from utils.timezone import now_utc


@pytest.fixture
def db():
    return Mock(spec=PostgresClient)


@pytest.fixture
def user_row():
    def _row(**overrides) -> dict:
        now = now_utc()
        row = {
            "id": uuid4(),
            "name": "Ramesh Patil",
            "phone_number": "+919876543210",
            "location": {"state": "Maharashtra", "district": "Pune", "pincode": "411001"},
            "preferred_language": "mr",
            "user_type": "seller",
            "reputation_score": 0,
            "is_verified": True,
            "created_at": now,
            "updated_at": now,
            "last_active": now,
        }
        row.update(overrides)
        return row

    return _row


@pytest.fixture
def category_row():
    def _row(name: str = "Vegetables", parent_id=None, **overrides) -> dict:
        row = {
            "id": uuid4(),
            "name": name,
            "parent_id": parent_id,
            "created_at": now_utc(),
        }
        row.update(overrides)
        return row

    return _row


@pytest.fixture
def listing_row():
    def _row(**overrides) -> dict:
        now = now_utc()
        row = {
            "id": uuid4(),
            "seller_id": uuid4(),
            "product_name": "Onions",
            "category_id": uuid4(),
            "description": "Nashik red onions",
            "quantity": {"amount": 500, "unit": "kg"},
            "asking_price": {"amount_paise": 2500, "currency": "INR", "unit": "per kg"},
            "location": {"state": "Maharashtra", "district": "Nashik", "pincode": "422001"},
            "images": [],
            "language": "mr",
            "status": "active",
            "created_at": now,
            "updated_at": now,
            "expires_at": now + timedelta(days=30),
        }
        row.update(overrides)
        return row

    return _row
