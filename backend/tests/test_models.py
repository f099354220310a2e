"""
XY CRM - Request models
Tests: numeric fields accept JSON numbers as well as strings.
Run: cd backend && pytest tests/test_models.py -v
"""

from models.ams import AmsCreate
from models.catalog import ProductCreate, ProductUpdate
from services.deal_codes import to_amount


class TestProductPrice:

    def test_numeric_price_accepted(self):
        product = ProductCreate(name="Solar Panel 5kW", price=150000, description="Rooftop kit")
        assert to_amount(product.price, default=None) == 150000.0

    def test_float_price_accepted(self):
        assert to_amount(ProductUpdate(price=99.5).price, default=None) == 99.5

    def test_string_price_still_accepted(self):
        assert to_amount(ProductCreate(price="1200.75").price, default=None) == 1200.75

    def test_non_numeric_price_left_to_route_validation(self):
        assert to_amount(ProductCreate(price="free").price, default=None) is None


class TestAmsCost:

    def test_non_numeric_cost_is_not_zero(self):
        ams = AmsCreate(ams_cost="abc", no_of_visits_per_year=4)
        assert to_amount(ams.ams_cost, default=None) is None

    def test_numeric_cost(self):
        assert to_amount(AmsCreate(ams_cost=2500).ams_cost, default=None) == 2500.0
