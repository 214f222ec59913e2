"""Tests for the plan builder."""

from datetime import date, datetime
from decimal import Decimal

import pytest
from pydantic import ValidationError

from components.core.exceptions import BillingValidationError, InstallmentNotFound
from components.plan import builder, payments
from components.plan.schemas import (
    DiscountType,
    InstallmentFrequency,
    InstallmentOverride,
    PaymentType,
    PlanConfig,
)
from components.settings.schemas import CreditCardMethod, RateTable


class TestResolveDiscount:
    def test_no_discount(self):
        result = builder.resolve_discount(Decimal("1200"), DiscountType.NONE, Decimal("50"))
        assert result.discount_amount == Decimal("0")
        assert result.base_amount == Decimal("1200")

    def test_full_scholarship_zeroes_the_base(self):
        result = builder.resolve_discount(Decimal("1200"), DiscountType.FULL_SCHOLARSHIP, Decimal("0"))
        assert result.discount_amount == Decimal("1200")
        assert result.base_amount == Decimal("0")

    def test_percentage(self):
        result = builder.resolve_discount(Decimal("1200"), DiscountType.PERCENTAGE, Decimal("10"))
        assert result.discount_amount == Decimal("120")
        assert result.base_amount == Decimal("1080")
        assert result.warnings == []

    def test_fixed_discount_above_total_is_clamped_with_warning(self):
        result = builder.resolve_discount(Decimal("500"), DiscountType.FIXED, Decimal("800"))
        assert result.discount_amount == Decimal("500")
        assert result.base_amount == Decimal("0")
        assert [w.code for w in result.warnings] == ["discount_exceeds_total"]

    def test_percentage_above_hundred_is_rejected(self):
        with pytest.raises(BillingValidationError):
            builder.resolve_discount(Decimal("500"), DiscountType.PERCENTAGE, Decimal("120"))

    @pytest.mark.parametrize("discount_type,value", [
        (DiscountType.NONE, "0"),
        (DiscountType.PERCENTAGE, "33"),
        (DiscountType.PERCENTAGE, "100"),
        (DiscountType.FIXED, "999.99"),
        (DiscountType.FULL_SCHOLARSHIP, "0"),
    ])
    def test_base_is_total_minus_discount(self, discount_type, value):
        total = Decimal("999.99")
        result = builder.resolve_discount(total, discount_type, Decimal(value))
        assert result.base_amount == total - result.discount_amount
        assert Decimal("0") <= result.discount_amount <= total


class TestScheduleDueDates:
    def test_monthly_steps_clamp_to_month_end(self):
        dates = builder.schedule_due_dates(date(2025, 1, 31), 3, InstallmentFrequency.MONTHLY)
        assert dates == [date(2025, 1, 31), date(2025, 2, 28), date(2025, 3, 31)]

    def test_weekly(self):
        dates = builder.schedule_due_dates(date(2025, 1, 1), 3, InstallmentFrequency.WEEKLY)
        assert dates == [date(2025, 1, 1), date(2025, 1, 8), date(2025, 1, 15)]

    def test_custom_days(self):
        dates = builder.schedule_due_dates(date(2025, 1, 1), 3, InstallmentFrequency.CUSTOM, 10)
        assert dates == [date(2025, 1, 1), date(2025, 1, 11), date(2025, 1, 21)]

    def test_count_must_be_positive(self):
        with pytest.raises(BillingValidationError):
            builder.schedule_due_dates(date(2025, 1, 1), 0, InstallmentFrequency.MONTHLY)


class TestBuildPlan:
    def test_three_monthly_installments(self, installment_config, rates):
        plan = builder.build_plan(installment_config, rates)

        assert plan.discounted_amount == Decimal("1080")
        assert [inst.amount for inst in plan.installments] == [Decimal("360")] * 3
        assert [inst.due_date for inst in plan.installments] == [
            date(2025, 1, 15), date(2025, 2, 15), date(2025, 3, 15),
        ]
        assert plan.totals.amount == Decimal("1080")
        assert plan.totals.discount_amount == Decimal("120")
        assert plan.warnings == []

    def test_rounding_remainder_goes_to_last_installment(self, rates):
        config = PlanConfig(
            total_amount=Decimal("1000"),
            payment_type=PaymentType.CASH_INSTALLMENT,
            installment_count=3,
            first_installment_date=date(2025, 1, 1),
        )
        plan = builder.build_plan(config, rates)

        assert [inst.amount for inst in plan.installments] == [
            Decimal("333.33"), Decimal("333.33"), Decimal("333.34"),
        ]
        assert sum(inst.amount for inst in plan.installments) == Decimal("1000")

    @pytest.mark.parametrize("total,count", [("1", 3), ("100", 7), ("12345.67", 11), ("0", 4)])
    def test_amounts_add_up_to_base(self, rates, total, count):
        config = PlanConfig(
            total_amount=Decimal(total),
            payment_type=PaymentType.CASH_INSTALLMENT,
            installment_count=count,
            first_installment_date=date(2025, 1, 1),
        )
        plan = builder.build_plan(config, rates)
        assert sum(inst.amount for inst in plan.installments) == plan.discounted_amount

    def test_cash_full_is_one_installment(self, rates):
        config = PlanConfig(
            total_amount=Decimal("800"),
            payment_type=PaymentType.CASH_FULL,
            first_installment_date=date(2025, 2, 1),
        )
        plan = builder.build_plan(config, rates)
        assert len(plan.installments) == 1
        assert plan.installments[0].amount == Decimal("800")
        assert plan.installments[0].due_date == date(2025, 2, 1)
        assert plan.installments[0].commission == Decimal("0")

    def test_credit_card_commission_and_vat(self, rates):
        config = PlanConfig(
            total_amount=Decimal("1000"),
            payment_type=PaymentType.CREDIT_CARD,
            first_installment_date=date(2025, 2, 1),
            payment_date=date(2025, 2, 3),
            credit_card_installments=3,
            is_invoiced=True,
        )
        inst = builder.build_plan(config, rates).installments[0]

        assert inst.due_date == date(2025, 2, 3)
        assert inst.payment_method == CreditCardMethod(installments=3)
        assert inst.commission_rate == Decimal("9")
        assert inst.commission == Decimal("90.00")
        assert inst.vat == Decimal("109.00")
        assert inst.total == Decimal("1199.00")

    def test_override_sets_custom_amount_and_method(self, installment_config, rates):
        config = installment_config.model_copy(update={"overrides": [
            InstallmentOverride(installment_number=2, amount=Decimal("500")),
            InstallmentOverride(installment_number=3, payment_method=CreditCardMethod(installments=2)),
        ]})
        plan = builder.build_plan(config, rates)

        assert [inst.amount for inst in plan.installments] == [
            Decimal("290"), Decimal("500"), Decimal("290"),
        ]
        assert plan.installments[1].is_custom_amount
        assert plan.installments[2].commission_rate == Decimal("6.5")
        assert plan.installments[2].commission == Decimal("18.85")

    def test_override_for_unknown_installment(self, installment_config, rates):
        config = installment_config.model_copy(update={"overrides": [
            InstallmentOverride(installment_number=9, amount=Decimal("10")),
        ]})
        with pytest.raises(InstallmentNotFound):
            builder.build_plan(config, rates)

    def test_missing_card_rate_is_an_error(self):
        config = PlanConfig(
            total_amount=Decimal("1000"),
            payment_type=PaymentType.CREDIT_CARD,
            first_installment_date=date(2025, 2, 1),
            credit_card_installments=5,
        )
        with pytest.raises(BillingValidationError):
            builder.build_plan(config, RateTable(vat_rate=Decimal("10"), credit_card_rates={1: Decimal("4")}))

    def test_installment_count_required(self):
        with pytest.raises(ValidationError):
            PlanConfig(
                total_amount=Decimal("1000"),
                payment_type=PaymentType.CASH_INSTALLMENT,
                first_installment_date=date(2025, 2, 1),
            )


class TestRedistribution:
    def test_custom_amount_redistributes_the_rest(self, installment_config, rates):
        plan = builder.build_plan(installment_config, rates)
        updated = builder.set_custom_amount(plan, 2, Decimal("500"), rates)

        assert [inst.amount for inst in updated.installments] == [
            Decimal("290"), Decimal("500"), Decimal("290"),
        ]
        assert updated.installments[1].is_custom_amount
        # The input plan is left alone
        assert [inst.amount for inst in plan.installments] == [Decimal("360")] * 3

    def test_reset_all_restores_even_split(self, installment_config, rates):
        plan = builder.build_plan(installment_config, rates)
        plan = builder.set_custom_amount(plan, 1, Decimal("100"), rates)
        plan = builder.set_custom_amount(plan, 3, Decimal("200"), rates)
        for number in (1, 2, 3):
            plan = builder.reset_to_automatic(plan, number, rates)

        assert [inst.amount for inst in plan.installments] == [Decimal("360")] * 3
        assert not any(inst.is_custom_amount for inst in plan.installments)

    def test_custom_amount_above_base_warns(self, installment_config, rates):
        plan = builder.build_plan(installment_config, rates)
        updated = builder.set_custom_amount(plan, 1, Decimal("1200"), rates)

        assert [w.code for w in updated.warnings] == ["custom_amounts_exceed_base"]
        assert builder.negative_installments(updated) == [2, 3]

    def test_custom_amount_using_whole_base_warns(self, installment_config, rates):
        plan = builder.build_plan(installment_config, rates)
        updated = builder.set_custom_amount(plan, 1, Decimal("1080"), rates)
        assert [w.code for w in updated.warnings] == ["automatic_share_zero"]

    def test_all_custom_with_wrong_sum_warns(self, rates):
        config = PlanConfig(
            total_amount=Decimal("1000"),
            payment_type=PaymentType.CASH_FULL,
            first_installment_date=date(2025, 1, 1),
        )
        plan = builder.set_custom_amount(builder.build_plan(config, rates), 1, Decimal("900"), rates)
        assert [w.code for w in plan.warnings] == ["custom_total_mismatch"]

    def test_negative_custom_amount(self, installment_config, rates):
        plan = builder.build_plan(installment_config, rates)
        with pytest.raises(BillingValidationError):
            builder.set_custom_amount(plan, 1, Decimal("-1"), rates)

    def test_unknown_installment(self, installment_config, rates):
        plan = builder.build_plan(installment_config, rates)
        with pytest.raises(InstallmentNotFound):
            builder.set_custom_amount(plan, 4, Decimal("10"), rates)
        with pytest.raises(InstallmentNotFound):
            builder.reset_to_automatic(plan, 4, rates)

    def test_paid_installment_amount_is_locked(self, installment_config, rates):
        plan = builder.build_plan(installment_config, rates)
        plan = payments.apply_payment(plan, 1, Decimal("100"), datetime(2025, 1, 15)).plan
        with pytest.raises(BillingValidationError):
            builder.set_custom_amount(plan, 1, Decimal("200"), rates)


class TestRecomputePlan:
    def test_price_change_keeps_paid_installments(self, installment_config, rates):
        plan = builder.build_plan(installment_config, rates)
        plan = payments.apply_payment(plan, 1, Decimal("360"), datetime(2025, 1, 15)).plan

        updated = builder.recompute_plan(plan, Decimal("1500"), DiscountType.PERCENTAGE, Decimal("10"), rates)

        assert updated.discounted_amount == Decimal("1350")
        assert [inst.amount for inst in updated.installments] == [
            Decimal("360"), Decimal("495"), Decimal("495"),
        ]
        assert updated.paid_amount == Decimal("360")
        assert updated.remaining_amount == Decimal("990")

    def test_discount_change_reports_clamp(self, installment_config, rates):
        plan = builder.build_plan(installment_config, rates)
        updated = builder.recompute_plan(plan, Decimal("1200"), DiscountType.FIXED, Decimal("1500"), rates)
        assert updated.discounted_amount == Decimal("0")
        assert "discount_exceeds_total" in [w.code for w in updated.warnings]
