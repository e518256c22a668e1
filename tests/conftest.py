"""Pytest configuration and fixtures."""

import os
from unittest.mock import AsyncMock

import pytest

# Set test environment variables before importing settings
os.environ.setdefault("BUSINESS_TIMEZONE", "Asia/Seoul")
os.environ.setdefault("BACKOFFICE_API_URL", "http://localhost:8000")
os.environ.pop("BACKOFFICE_USERNAME", None)
os.environ.pop("BACKOFFICE_PASSWORD", None)
os.environ.pop("BRANCHES_FILE", None)

from daily_settlement.config.branches import Branch, BranchDirectory  # noqa: E402
from factories import GANGNAM, HONGDAE  # noqa: E402


@pytest.fixture
def branches() -> BranchDirectory:
    return BranchDirectory(
        [
            Branch(id="gangnam", name=GANGNAM, aliases=("강남",)),
            Branch(id="hongdae", name=HONGDAE),
        ]
    )


@pytest.fixture
def mock_httpx_client():
    """Create a mock httpx AsyncClient."""
    client = AsyncMock()
    client.request = AsyncMock()
    client.post = AsyncMock()
    client.get = AsyncMock()
    client.aclose = AsyncMock()
    return client


@pytest.fixture
def mock_login_response():
    """Mock successful login response."""
    return {
        "user": {"id": "11111111-1111-1111-1111-111111111111", "email": "test@example.com"},
        "tokens": {
            "access_token": "access-token-123",
            "refresh_token": "refresh-token-123",
        },
    }


@pytest.fixture
def order_payload():
    """Order as the back office stores it."""
    return {
        "id": "order-1",
        "branchId": "gangnam",
        "branchName": GANGNAM,
        "orderDate": {"seconds": 1705276800, "nanoseconds": 0},  # 2024-01-15 09:00 KST
        "status": "processing",
        "items": [{"id": "i1", "name": "꽃다발", "quantity": 1, "price": 50000}],
        "summary": {
            "subtotal": 50000,
            "discountAmount": 0,
            "discountRate": 0,
            "deliveryFee": 3000,
            "total": 53000,
        },
        "payment": {
            "method": "card",
            "status": "paid",
            "completedAt": "2024-01-15T10:00:00+09:00",
        },
        "deliveryInfo": {"date": "2024-01-15", "time": "14:00"},
        "pickupInfo": None,
        "actualDeliveryCostCash": 8000,
        "transferInfo": {
            "isTransferred": True,
            "status": "accepted",
            "processBranchName": HONGDAE,
            "originalBranchName": GANGNAM,
            "amountSplit": {"orderBranch": 70, "processBranch": 30},
        },
    }
