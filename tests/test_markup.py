from decimal import Decimal
from types import SimpleNamespace

import pytest

from app.models.enums import ServiceLevel
from app.services.markup import MultiplierResolver, apply_markup
from app.services.money import round_half_up
from app.services.providers.types import RateOption


def make_option(cargo=800, fuel=150, additional=50, insurance=0, carrier="c1"):
    return RateOption(
        provider="fake",
        carrier_id=carrier,
        display_name=carrier.upper(),
        service_class=ServiceLevel.STANDARD,
        delivery_time_estimate="3-5 business days",
        delivery_days_max=5,
        cargo_price_cost=cargo,
        fuel_cost_cost=fuel,
        additional_fee_cost=additional,
        insurance_cost=insurance,
    )


class FakeUserRepo:
    def __init__(self, multiplier=None):
        self.multiplier = multiplier

    async def get_price_multiplier(self, user_id):
        return self.multiplier


class FakeSettingsRepo:
    def __init__(self, values=None):
        self.values = values or {}

    async def get_value(self, key):
        return self.values.get(key)


def test_customer_total_is_rounded_cost_times_multiplier():
    [option] = apply_markup([make_option()], Decimal("1.45"))
    assert option.total_price_cost == 1000
    assert option.total_price_customer == 1450
    assert option.applied_multiplier == Decimal("1.45")
    assert option.margin == 450


def test_cost_fields_are_preserved():
    original = make_option(cargo=1234, fuel=77, additional=0)
    [marked] = apply_markup([original], Decimal("1.3"))
    assert (marked.cargo_price_cost, marked.fuel_cost_cost, marked.total_price_cost) == (1234, 77, 1311)
    assert original.total_price_customer is None


def test_half_up_rounding():
    assert round_half_up(Decimal("1504.5")) == 1505
    assert round_half_up(Decimal("1504.49")) == 1504
    [option] = apply_markup([make_option(cargo=1003, fuel=0, additional=0)], Decimal("1.5"))
    assert option.total_price_customer == 1505


@pytest.mark.parametrize("multiplier", ["1.45", "1.0", "2.3333", "1.07"])
def test_invariant_holds_for_every_option(multiplier):
    options = [make_option(cargo=c, fuel=f, carrier=f"c{c}") for c, f in [(999, 1), (1, 0), (4567, 321), (10, 3)]]
    for option in apply_markup(options, Decimal(multiplier)):
        assert option.total_price_customer == round_half_up(option.total_price_cost * Decimal(multiplier))


def test_insurance_is_part_of_the_marked_up_total():
    [option] = apply_markup([make_option().with_insurance(300)], Decimal("1.45"))
    assert option.total_price_cost == 1300
    assert option.total_price_customer == 1885


def test_rejects_non_positive_multiplier():
    with pytest.raises(ValueError):
        apply_markup([make_option()], Decimal("0"))


def make_resolver(customer=None, system=None):
    resolver = MultiplierResolver(session=None, settings=SimpleNamespace(default_price_multiplier=Decimal("1.45")))
    resolver.users = FakeUserRepo(customer)
    resolver.system_settings = FakeSettingsRepo({"DEFAULT_PRICE_MULTIPLIER": system} if system else {})
    return resolver


@pytest.mark.asyncio
async def test_shipment_multiplier_wins_over_customer():
    resolver = make_resolver(customer=Decimal("1.2"), system="1.6")
    shipment = SimpleNamespace(applied_multiplier=Decimal("1.35"))
    assert await resolver.resolve("u1", shipment) == Decimal("1.35")


@pytest.mark.asyncio
async def test_customer_multiplier_wins_over_system_default():
    resolver = make_resolver(customer=Decimal("1.2"), system="1.6")
    assert await resolver.resolve("u1", SimpleNamespace(applied_multiplier=None)) == Decimal("1.2")


@pytest.mark.asyncio
async def test_system_setting_then_config_default():
    assert await make_resolver(system="1.6").resolve("u1") == Decimal("1.6")
    assert await make_resolver().resolve("u1") == Decimal("1.45")
    assert await make_resolver(system="not-a-number").resolve("u1") == Decimal("1.45")
