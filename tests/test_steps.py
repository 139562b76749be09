"""Tests for step snapshot providers and the snapshot registry."""

import pytest

from coursewizard.wizard.snapshots import (
    ADDITIONAL_STEP,
    CURRENCIES,
    PAYMENT_STEP,
    FAQ,
    AdditionalDetails,
    PaymentDetails,
    SnapshotRegistry,
    StepSnapshotProvider,
    clamp_percentage,
    non_negative,
    non_negative_int,
)
from coursewizard.wizard.steps import MAX_FAQS, AdditionalDetailsStep, PaymentDetailsStep


class Counter:
    def __init__(self):
        self.count = 0

    def __call__(self):
        self.count += 1


class StaticProvider:
    def __init__(self, snapshot):
        self.snapshot = snapshot

    def pull(self):
        return self.snapshot


@pytest.mark.parametrize("raw, expected", [("12.5", 12.5), ("-3", 0.0), ("abc", 0.0), (None, 0.0), ("nan", 0.0), (7, 7.0), ("inf", 0.0), ("-inf", 0.0), ("1e999", 0.0)])
def test_non_negative(raw, expected):
    assert non_negative(raw) == expected


@pytest.mark.parametrize("raw, expected", [("45", 45), ("12.9", 12), ("-2", 0), ("inf", 0), ("1e999", 0), ("nan", 0), (None, 0)])
def test_non_negative_int(raw, expected):
    assert non_negative_int(raw) == expected


def test_non_finite_input_falls_back_to_the_default():
    assert non_negative("inf", default=15) == 15.0
    assert non_negative_int("1e999", default=3) == 3


def test_clamp_percentage():
    assert clamp_percentage("150") == 100.0
    assert clamp_percentage("-1") == 0.0
    assert clamp_percentage("", default=10) == 10.0


class TestSnapshotRegistry:
    def test_pull_prefers_fresh_value_and_caches_it(self):
        registry = SnapshotRegistry()
        provider = StaticProvider(AdditionalDetails(affiliate_active=True))
        registry.register(ADDITIONAL_STEP, provider)

        assert isinstance(provider, StepSnapshotProvider)
        assert registry.pull(ADDITIONAL_STEP).affiliate_active is True
        provider.snapshot = None
        assert registry.pull(ADDITIONAL_STEP).affiliate_active is True

    def test_deregister_keeps_the_last_value(self):
        registry = SnapshotRegistry()
        registry.register(ADDITIONAL_STEP, StaticProvider(AdditionalDetails(watermark_removal_enabled=True)))
        registry.deregister(ADDITIONAL_STEP)

        assert registry.is_registered(ADDITIONAL_STEP) is False
        assert registry.pull_all()[ADDITIONAL_STEP].watermark_removal_enabled is True

    def test_seed_never_overwrites_a_pulled_value(self):
        registry = SnapshotRegistry()
        registry.register(ADDITIONAL_STEP, StaticProvider(AdditionalDetails(affiliate_active=True)))
        registry.pull_all()
        registry.seed(ADDITIONAL_STEP, AdditionalDetails())

        assert registry.cached(ADDITIONAL_STEP).affiliate_active is True

    def test_unknown_step_pulls_nothing(self):
        registry = SnapshotRegistry()
        assert registry.pull(PAYMENT_STEP) is None
        assert registry.pull_all() == {}
        registry.deregister(PAYMENT_STEP)


class TestPaymentDetailsStep:
    def test_defaults_apply_global_prices_to_every_currency(self):
        snapshot = PaymentDetailsStep().snapshot()

        assert snapshot.listed_price == {code: 15.0 for code in CURRENCIES}
        assert snapshot.selling_price == {code: 10.0 for code in CURRENCIES}
        assert snapshot.enabled_currencies == {"INR": True, "USD": False, "EUR": False, "GBP": False}
        assert snapshot.payment_methods["universal"]["card"] is True

    def test_currency_specific_prices(self):
        step = PaymentDetailsStep()
        step.use_currency_specific_pricing(True)
        step.set_currency_prices("USD", listed="20", selling="abc")

        snapshot = step.snapshot()
        assert snapshot.global_pricing_enabled is False
        assert snapshot.listed_price["USD"] == 20.0
        assert snapshot.selling_price["USD"] == 0.0
        assert snapshot.listed_price["INR"] == 0.0

    def test_every_setter_reports_a_change(self):
        changes = Counter()
        step = PaymentDetailsStep(on_change=changes)
        step.set_global_prices("1", "1")
        step.toggle_currency("EUR", True)
        step.set_payment_method("paypal", True)
        step.set_payment_method("upi", True, currency="INR")
        step.set_installments(True, period=6, count=-2)
        step.set_policies(send_payment_receipts=False)

        assert changes.count == 6
        snapshot = step.snapshot()
        assert snapshot.number_of_installments == 0
        assert snapshot.installment_period == 6
        assert snapshot.payment_methods["INR"] == {"upi": True}
        assert snapshot.send_payment_receipts is False

    def test_unknown_currency_is_rejected(self):
        with pytest.raises(ValueError):
            PaymentDetailsStep().toggle_currency("JPY", True)

    def test_pull_answers_none_until_mounted(self, registry):
        step = PaymentDetailsStep()
        assert step.pull() is None
        step.mount(registry)
        assert step.pull() is not None
        step.unmount(registry)
        assert step.pull() is None
        assert registry.cached(PAYMENT_STEP) is not None

    def test_hydrate_restores_without_marking_dirty(self):
        changes = Counter()
        step = PaymentDetailsStep(on_change=changes)
        stored = PaymentDetails.model_validate(
            {
                "listedPrice": {"INR": 500, "USD": 500, "EUR": 500, "GBP": 500},
                "sellingPrice": {"INR": 399, "USD": 399, "EUR": 399, "GBP": 399},
                "globalPricingEnabled": True,
                "enabledCurrencies": {"USD": True},
                "paymentMethods": {"universal": {"paypal": True}},
                "installmentsOn": True,
                "numberOfInstallments": 4,
            }
        )
        step.hydrate(stored)

        assert changes.count == 0
        assert step.global_list_price == "500"
        assert step.global_actual_price == "399"
        snapshot = step.snapshot()
        assert snapshot.listed_price["GBP"] == 500.0
        assert snapshot.enabled_currencies["USD"] is True
        assert snapshot.enabled_currencies["INR"] is True
        assert snapshot.payment_methods["universal"] == {"card": True, "paypal": True, "bankTransfer": False}
        assert snapshot.number_of_installments == 4


class TestAdditionalDetailsStep:
    def test_faq_rows_are_capped(self):
        step = AdditionalDetailsStep()
        for _ in range(MAX_FAQS - 1):
            step.add_faq()
        with pytest.raises(ValueError):
            step.add_faq()
        assert len(step.faqs) == MAX_FAQS

    def test_last_faq_row_is_never_removed(self):
        changes = Counter()
        step = AdditionalDetailsStep(on_change=changes)
        step.remove_faq(0)

        assert len(step.faqs) == 1
        assert changes.count == 0

    def test_snapshot_drops_incomplete_faqs(self):
        step = AdditionalDetailsStep()
        step.set_faq(0, question=" Refunds? ", answer=" 30 days ")
        step.add_faq()
        step.set_faq(1, question="Half filled")

        assert step.snapshot().faqs == (FAQ(question="Refunds?", answer="30 days"),)

    def test_hydrate_does_not_undo_a_fresh_affiliate_toggle(self):
        step = AdditionalDetailsStep()
        step.set_affiliate(True, "25")
        step.hydrate(AdditionalDetails(affiliate_active=False, affiliate_reward_percentage=15))

        snapshot = step.snapshot()
        assert snapshot.affiliate_active is True
        assert snapshot.affiliate_reward_percentage == 15.0
        assert step.faqs == [{"question": "", "answer": ""}]

    def test_hydrate_loads_stored_faqs(self):
        step = AdditionalDetailsStep()
        step.hydrate(AdditionalDetails.model_validate({"faqs": [{"question": "Q", "answer": "A"}], "affiliateActive": True}))

        assert step.faqs == [{"question": "Q", "answer": "A"}]
        assert step.affiliate_reward_enabled is True
