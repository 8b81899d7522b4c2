import unittest
from dataclasses import replace
from datetime import date

from paytrack.services.forecast import (
    BudgetLine,
    BudgetPlanInput,
    ForecastItem,
    MonthForecast,
    PaidRecord,
    ScheduleEntry,
    Visibility,
    budget_periods,
    build_forecast,
    summarize,
)
from paytrack.validation import ValidationError


TODAY = date(2026, 3, 15)


def _inputs():
    plans = [
        BudgetPlanInput(
            plan_id=1,
            name="Spring works",
            start_date=date(2026, 3, 1),
            items=(BudgetLine(1, "Paint", "single", 100000, start_date=date(2026, 3, 10)),),
        )
    ]
    schedules = [ScheduleEntry(1, 10, "Roofing deposit", date(2026, 3, 20), 50000, "scheduled")]
    items = [ForecastItem(2, "Payroll", "monthly", 500000, 300000, date(2026, 3, 31))]
    paid = [
        PaidRecord(1, 3, "Permit fee", 30000, "2026-03", "2026-03"),
        PaidRecord(2, 4, "January invoice", 20000, "2026-03", "2026-01"),
    ]
    return items, schedules, plans, paid


class ForecastAggregationTests(unittest.TestCase):
    def test_all_buckets_visible(self):
        items, schedules, plans, paid = _inputs()

        months = build_forecast(items, schedules, plans, paid, months=1, today=TODAY)

        self.assertEqual(len(months), 1)
        march = months[0]
        self.assertEqual(march.month, "2026-03")
        self.assertEqual(march.budget_cents, 100000)
        self.assertEqual(march.scheduled_cents, 50000)
        self.assertEqual(march.estimated_cents, 0)
        self.assertEqual(march.recurring_cents, 200000)
        self.assertEqual(march.paid_current_cents, 30000)
        self.assertEqual(march.paid_carry_over_cents, 20000)
        self.assertEqual(march.total_cents, 400000)

    def test_hidden_buckets_reported_but_not_totalled(self):
        items, schedules, plans, paid = _inputs()

        march = build_forecast(
            items, schedules, plans, paid,
            months=1, today=TODAY, visibility=Visibility(budget=False, paid=False),
        )[0]

        self.assertEqual(march.budget_cents, 100000)
        self.assertEqual(march.paid_current_cents, 30000)
        self.assertEqual(march.paid_carry_over_cents, 20000)
        self.assertEqual(march.total_cents, 50000 + 200000)

    def test_total_matches_visible_buckets(self):
        items, schedules, plans, paid = _inputs()
        for hidden in ([], ["budget"], ["scheduled", "recurring"], ["estimated", "paid"],
                       ["budget", "scheduled", "estimated", "recurring", "paid"]):
            visibility = Visibility.from_hidden(hidden)
            month = build_forecast(items, schedules, plans, paid, months=1, today=TODAY,
                                   visibility=visibility)[0]
            visible = [
                month.budget_cents if visibility.budget else 0,
                month.scheduled_cents if visibility.scheduled else 0,
                month.estimated_cents if visibility.estimated else 0,
                month.recurring_cents if visibility.recurring else 0,
                month.paid_current_cents + month.paid_carry_over_cents if visibility.paid else 0,
            ]
            self.assertEqual(month.total_cents, sum(visible), hidden)

    def test_pure_and_repeatable(self):
        items, schedules, plans, paid = _inputs()
        snapshot = (list(items), list(schedules), list(plans), list(paid))

        first = build_forecast(items, schedules, plans, paid, months=4, today=TODAY)
        second = build_forecast(items, schedules, plans, paid, months=4, today=TODAY)

        self.assertEqual(first, second)
        self.assertEqual([m.to_dict() for m in first], [m.to_dict() for m in second])
        self.assertEqual((items, schedules, plans, paid), snapshot)

    def test_months_start_at_current_month(self):
        months = build_forecast([], [], [], [], months=3, today=date(2026, 11, 30))
        self.assertEqual([m.month for m in months], ["2026-11", "2026-12", "2027-01"])
        self.assertTrue(all(m.total_cents == 0 for m in months))

    def test_estimated_excludes_monthly_and_outside_horizon(self):
        items = [
            ForecastItem(1, "Invoice", "single", 10000, 2500, date(2026, 4, 5)),
            ForecastItem(2, "Loan", "installment", 30000, 0, date(2026, 5, 1)),
            ForecastItem(3, "Rent", "monthly", 90000, 30000, date(2026, 4, 30)),
            ForecastItem(4, "Far away", "single", 10000, 0, date(2027, 1, 1)),
            ForecastItem(5, "Settled", "single", 10000, 10000, date(2026, 4, 1)),
        ]
        months = build_forecast(items, [], [], [], months=3, today=TODAY)

        self.assertEqual([m.estimated_cents for m in months], [0, 7500, 30000])
        self.assertEqual([m.recurring_cents for m in months], [0, 60000, 0])

    def test_closed_schedules_and_converted_budget_ignored(self):
        schedules = [
            ScheduleEntry(1, 1, "done", date(2026, 3, 20), 1000, "completed"),
            ScheduleEntry(2, 1, "dropped", date(2026, 3, 21), 2000, "cancelled"),
            ScheduleEntry(3, 1, "moved", date(2026, 3, 22), 4000, "rescheduled"),
        ]
        plans = [BudgetPlanInput(1, "Plan", date(2026, 3, 1), items=(
            BudgetLine(1, "Converted", "single", 5000, start_date=date(2026, 3, 5), converted=True),
        ))]
        month = build_forecast([], schedules, plans, [], months=1, today=TODAY)[0]

        self.assertEqual(month.scheduled_cents, 4000)
        self.assertEqual(month.budget_cents, 0)

    def test_paid_records_outside_horizon_ignored(self):
        paid = [PaidRecord(1, 1, "old", 5000, "2026-01", "2026-01")]
        month = build_forecast([], [], [], paid, months=1, today=TODAY)[0]
        self.assertEqual(month.paid_current_cents, 0)

    def test_detail_lines_for_drill_down(self):
        items, schedules, plans, paid = _inputs()
        march = build_forecast(items, schedules, plans, paid, months=1, today=TODAY)[0]

        carry = march.details["paid_carry_over"]
        self.assertEqual(len(carry), 1)
        self.assertEqual(carry[0].label, "2026-01")
        self.assertEqual(march.details["paid_current"][0].label, "current")
        self.assertEqual(march.details["budget"][0].label, "Spring works")

    def test_invalid_months(self):
        for months in (0, -1, 1.5, True):
            with self.assertRaises(ValidationError):
                build_forecast([], [], [], [], months=months, today=TODAY)


class BudgetPeriodTests(unittest.TestCase):
    def test_monthly_amount_per_month(self):
        line = BudgetLine(1, "Cleaner", "monthly", 30000, monthly_amount_cents=10000, month_count=3)
        self.assertEqual(
            budget_periods(line, date(2026, 3, 1)),
            [(date(2026, 3, 1), 10000), (date(2026, 4, 1), 10000), (date(2026, 5, 1), 10000)],
        )

    def test_installment_split_remainder_first(self):
        line = BudgetLine(1, "Boiler", "installment", 10000, installment_count=3,
                          start_date=date(2026, 4, 15))
        self.assertEqual(
            budget_periods(line, date(2026, 3, 1)),
            [(date(2026, 4, 15), 3334), (date(2026, 5, 15), 3333), (date(2026, 6, 15), 3333)],
        )

    def test_one_off_uses_end_date_then_start_date(self):
        line = BudgetLine(1, "Audit", "single", 7000, start_date=date(2026, 3, 2), end_date=date(2026, 6, 30))
        self.assertEqual(budget_periods(line, date(2026, 1, 1)), [(date(2026, 6, 30), 7000)])
        self.assertEqual(budget_periods(replace(line, end_date=None), date(2026, 1, 1)), [(date(2026, 3, 2), 7000)])
        self.assertEqual(
            budget_periods(replace(line, end_date=None, start_date=None), date(2026, 1, 1)),
            [(date(2026, 1, 1), 7000)],
        )


class SummaryTests(unittest.TestCase):
    def _months(self, *totals):
        return [MonthForecast(month=f"2026-{i + 1:02d}", total_cents=t) for i, t in enumerate(totals)]

    def test_statistics(self):
        summary = summarize(self._months(10000, 15000, 5000))

        self.assertEqual(summary.total_cents, 30000)
        self.assertEqual(summary.average_cents, 10000)
        self.assertEqual((summary.peak_month, summary.peak_cents), ("2026-02", 15000))
        self.assertEqual((summary.trough_month, summary.trough_cents), ("2026-03", 5000))
        self.assertEqual(summary.trend_cents, 5000)
        self.assertEqual(summary.trend_percent, 50.0)

    def test_zero_first_month_has_zero_percent(self):
        summary = summarize(self._months(0, 5000))
        self.assertEqual(summary.trend_cents, 5000)
        self.assertEqual(summary.trend_percent, 0.0)

    def test_single_month_has_no_trend(self):
        summary = summarize(self._months(4200))
        self.assertEqual((summary.trend_cents, summary.trend_percent), (0, 0.0))

    def test_empty(self):
        self.assertEqual(summarize([]).total_cents, 0)


class VisibilityTests(unittest.TestCase):
    def test_from_hidden(self):
        visibility = Visibility.from_hidden(["Budget", " paid", ""])
        self.assertFalse(visibility.budget)
        self.assertFalse(visibility.paid)
        self.assertTrue(visibility.scheduled)
        self.assertFalse(visibility.shows("paid_carry_over"))

    def test_unknown_bucket_rejected(self):
        with self.assertRaises(ValidationError):
            Visibility.from_hidden(["taxes"])


if __name__ == "__main__":
    unittest.main()
