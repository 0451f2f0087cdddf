from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from suppliers.models import Supplier
from targets.services import create_target

User = get_user_model()


@pytest.fixture
def user(db):
    return User.objects.create_user(
        username="minji",
        password="testpass123",
        first_name="Minji",
        last_name="Kim",
    )


@pytest.fixture
def api_client(user):
    client = APIClient()
    client.force_authenticate(user=user)
    return client


@pytest.fixture
def anonymous_client():
    return APIClient()


def target_payload(**overrides):
    """Valid target fields: 1 000 kg, current USD 10 vs estimate USD 9 at 1 300."""
    payload = {
        "year": 2025,
        "account_name": "Hanmi Pharm",
        "product_name": "Cefaclor API",
        "quantity_kg": Decimal("1000"),
        "owner_name": "Lee Jisoo",
        "segment": "S",
        "current_currency": "USD",
        "current_unit_price_foreign": Decimal("10"),
        "current_fx_rate": Decimal("1300"),
        "current_tariff_rate": Decimal("5"),
        "current_additional_cost_rate": Decimal("3"),
        "estimate_currency": "USD",
        "estimate_unit_price_foreign": Decimal("9"),
        "estimate_fx_rate": Decimal("1300"),
        "estimate_tariff_rate": Decimal("5"),
        "estimate_additional_cost_rate": Decimal("3"),
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def make_target(db):
    def _make(**overrides):
        return create_target(**target_payload(**overrides))

    return _make


@pytest.fixture
def target(make_target):
    return make_target()


@pytest.fixture
def make_supplier(db):
    """Insert a supplier row directly, without firing the stage rules."""

    def _make(product_name="Cefaclor API", supplier_name="Qilu Antibiotics", **overrides):
        fields = {
            "product_name": product_name,
            "supplier_name": supplier_name,
            "created_by_name": "Park Sora",
            "currency": "USD",
            "unit_price_foreign": Decimal("8.5"),
            "fx_rate": Decimal("1300"),
        }
        fields.update(overrides)
        return Supplier.objects.create(**fields)

    return _make
