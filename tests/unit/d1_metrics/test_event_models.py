"""
Tests for the subscription event model and plan classification
"""
import pytest

from d1_metrics.aggregators import monthly_value_cents
from d1_metrics.models import EventType, PlanType, SubscriptionEvent, classify_plan

pytestmark = pytest.mark.unit


class TestFromDocument:
    def test_maps_store_fields(self):
        doc = {
            "_id": "evt_1",
            "type": "INITIAL_PURCHASE",
            "event_timestamp_ms": 1704067200000,
            "app_user_id": "user_1",
            "product_id": "premium_monthly",
            "price_in_purchased_currency": 9.99,
            "currency": "EUR",
            "expiration_at_ms": 1706745600000,
            "is_trial_period": False,
        }

        event = SubscriptionEvent.from_document(doc)

        assert event == SubscriptionEvent(
            type=EventType.INITIAL_PURCHASE,
            timestamp_ms=1704067200000,
            user_id="user_1",
            product_id="premium_monthly",
            price=9.99,
            currency="EUR",
            expiration_at_ms=1706745600000,
            is_trial_period=False,
        )

    def test_missing_fields_default(self):
        event = SubscriptionEvent.from_document({"type": "RENEWAL", "event_timestamp_ms": 5})

        assert event.price == 0.0
        assert event.currency == "USD"
        assert event.user_id == ""
        assert event.product_id == ""
        assert event.expiration_at_ms is None
        assert event.is_trial_period is False

    def test_trial_from_period_type(self):
        event = SubscriptionEvent.from_document({"type": "INITIAL_PURCHASE", "period_type": "TRIAL"})

        assert event.is_trial_period is True

    def test_explicit_trial_flag_wins_over_period_type(self):
        event = SubscriptionEvent.from_document(
            {"type": "INITIAL_PURCHASE", "is_trial_period": False, "period_type": "TRIAL"}
        )

        assert event.is_trial_period is False

    def test_unknown_type_kept_as_string(self):
        event = SubscriptionEvent.from_document({"type": "BILLING_ISSUE", "event_timestamp_ms": 1})

        assert event.type == "BILLING_ISSUE"
        assert not isinstance(event.type, EventType)

    def test_junk_numbers_default(self):
        event = SubscriptionEvent.from_document(
            {"type": "RENEWAL", "event_timestamp_ms": "abc", "price_in_purchased_currency": "n/a"}
        )

        assert event.timestamp_ms == 0
        assert event.price == 0.0


class TestClassifyPlan:
    @pytest.mark.parametrize(
        "product_id,name,plan_type",
        [
            ("com.app.premium.monthly", "Monthly", PlanType.MONTHLY),
            ("com.app.premium.Yearly", "Yearly", PlanType.YEARLY),
            ("ANNUAL_PRO", "Yearly", PlanType.YEARLY),
            ("lifetime_unlock", "Lifetime", PlanType.LIFETIME),
            ("lifetime_yearly_bundle", "Lifetime", PlanType.LIFETIME),
            ("yearly_monthly_switch", "Yearly", PlanType.YEARLY),
            ("monthly_trial", "Monthly", PlanType.MONTHLY),
            ("welcome_offer", "Welcome Yearly", PlanType.YEARLY),
            ("free_trial", "Trial", PlanType.TRIAL),
            ("coins_100", "coins_100", PlanType.OTHER),
        ],
    )
    def test_substring_classification(self, product_id, name, plan_type):
        plan = classify_plan(product_id)

        assert plan.name == name
        assert plan.type == plan_type


class TestMonthlyValue:
    def event(self, product_id, price, currency="USD"):
        return SubscriptionEvent(
            type=EventType.INITIAL_PURCHASE, timestamp_ms=0, product_id=product_id, price=price, currency=currency
        )

    def test_monthly_plan_counts_in_full(self):
        assert monthly_value_cents(self.event("premium_monthly", 9.99)) == 999

    def test_yearly_plan_divided_by_twelve(self):
        assert monthly_value_cents(self.event("premium_yearly", 59.99)) == 500

    def test_yearly_rounds_half_up(self):
        assert monthly_value_cents(self.event("premium_annual", 1.02)) == 9

    def test_yearly_normalizes_currency_first(self):
        assert monthly_value_cents(self.event("premium_yearly", 120, "EUR")) == 1100

    @pytest.mark.parametrize("product_id", ["lifetime_unlock", "free_trial", "coins_100"])
    def test_non_recurring_plans_contribute_nothing(self, product_id):
        assert monthly_value_cents(self.event(product_id, 99.99)) == 0
