import datetime as dt
import io

from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import SimpleTestCase, override_settings
from django.urls import reverse

from .conf import get_analytics_settings
from .domain_models import (
    MetricsResult,
    PriceChangeEvent,
    PricePoint,
    PricingFactors,
    ProjectedEarning,
    Product,
    ReturnRecord,
    SalesRecord,
    to_dict,
)
from .ml.demand_elasticity import (
    average_daily_sales,
    build_price_change_events,
    estimate_elasticity,
)
from .ml.product_scoring import _reason_for, score_products
from .ml.revenue_forecast import (
    fit_linear_trend,
    forecast_monthly,
    monthly_revenue_totals,
    project_earnings,
)
from .notifications import NotificationPreferences, PreferenceAwareNotifier, RecordingSink
from .pricing_engine import (
    apply_pricing_factors,
    compute_price_suggestions,
    compute_pricing_suggestions,
    derive_pricing_factors,
    optimize_price,
    round_to_nice_price_point,
)
from .reports import (
    analyze_revenue_trends,
    compute_metrics,
    day_of_week_trends,
    determine_resolution,
    determine_trend,
    inventory_levels,
    peak_selling_hours,
    revenue_metrics,
    sales_time_series,
    top_products,
)
from .services.price_history_csv_loader import PriceHistoryCsvError, load_price_history_from_csv
from .services.product_csv_loader import ProductCsvError, load_products_from_csv
from .services.sales_csv_loader import SalesCsvError, load_sales_from_csv
from .services.uploads import parse_datetime
from .state import AnalyticsStore, get_store, init_store, teardown_store


def sale(date, product_id="P1", quantity=1, unit_price=10.0, total_amount=None):
    return SalesRecord(
        date=date,
        product_id=product_id,
        quantity=quantity,
        unit_price=unit_price,
        total_amount=quantity * unit_price if total_amount is None else total_amount,
    )


def event(previous_price, price, before, after, when=dt.datetime(2024, 5, 1)):
    return PriceChangeEvent(
        product_id="P1",
        price=price,
        previous_price=previous_price,
        effective_date=when,
        sales_before=before,
        sales_after=after,
    )


BASE_DATE = dt.datetime(2024, 1, 1)
CHANGE_SPACING = dt.timedelta(days=61)
PRICING_AS_OF = BASE_DATE + 5 * CHANGE_SPACING + dt.timedelta(days=40)


def build_pricing_store(store=None):
    """
    P1 alternates between 10 and 12 five times; every change moves daily
    units by exactly twice the relative price change, in the opposite direction.
    P2 has no price history at all.
    """
    store = store or AnalyticsStore()
    long_ago = PRICING_AS_OF - dt.timedelta(days=1000)
    store.upsert_products(
        [
            Product(id="P1", name="Canvas Tote", selling_price=12, unit_cost=4, stock_quantity=50),
            Product(id="P2", name="Logo Cap", selling_price=50, unit_cost=0, stock_quantity=20),
        ],
        effective_date=long_ago,
    )

    prices = [10, 12, 10, 12, 10, 12]
    units = {(10, 12): (10, 6), (12, 10): (6, 8)}
    store.add_price_history(
        PricePoint(product_id="P1", price=price, effective_date=BASE_DATE + k * CHANGE_SPACING)
        for k, price in enumerate(prices)
    )

    sales = []
    for k in range(1, len(prices)):
        changed_at = BASE_DATE + k * CHANGE_SPACING
        before, after = units[(prices[k - 1], prices[k])]
        sales.append(sale(changed_at - dt.timedelta(days=10), quantity=before, unit_price=prices[k - 1]))
        sales.append(sale(changed_at + dt.timedelta(days=10), quantity=after, unit_price=prices[k]))
    store.add_sales(sales)
    return store


class MetricsTests(SimpleTestCase):
    def test_empty_values_return_all_zero(self):
        result = compute_metrics([])

        self.assertEqual(result, MetricsResult())
        self.assertEqual(result.count, 0)
        self.assertEqual(result.median, 0)
        self.assertEqual(
            to_dict(result.percentiles), {"p25": 0, "p75": 0, "p90": 0, "p95": 0, "p99": 0}
        )

    def test_basic_metrics(self):
        result = compute_metrics([40, 10, 30, 20])

        self.assertEqual(result.count, 4)
        self.assertEqual(result.sum, 100)
        self.assertEqual(result.avg, 25)
        self.assertEqual(result.median, 25)
        self.assertEqual(result.min, 10)
        self.assertEqual(result.max, 40)

    def test_odd_length_median_is_middle_value(self):
        self.assertEqual(compute_metrics([5, 1, 3]).median, 3)

    def test_percentiles_use_nearest_rank_index(self):
        result = compute_metrics(list(range(1, 11)))

        self.assertEqual(result.percentiles.p25, 3)
        self.assertEqual(result.percentiles.p75, 8)
        self.assertEqual(result.percentiles.p90, 10)
        self.assertEqual(result.percentiles.p99, 10)

    def test_input_is_not_reordered(self):
        values = [3, 1, 2]
        compute_metrics(values)
        self.assertEqual(values, [3, 1, 2])


class ElasticityEstimatorTests(SimpleTestCase):
    def test_ten_identical_samples_give_high_confidence(self):
        estimate = estimate_elasticity([event(10, 11, 10, 9)] * 10)

        self.assertAlmostEqual(estimate.elasticity, -1.0)
        self.assertEqual(estimate.confidence, "high")
        self.assertEqual(estimate.sample_size, 10)

    def test_five_samples_give_medium_confidence(self):
        estimate = estimate_elasticity([event(10, 11, 10, 9)] * 5)
        self.assertEqual(estimate.confidence, "medium")

    def test_fewer_than_five_events_fall_back_to_default(self):
        estimate = estimate_elasticity([event(10, 11, 10, 9)] * 4)

        self.assertEqual(estimate.elasticity, -1.2)
        self.assertEqual(estimate.confidence, "low")
        self.assertEqual(estimate.sample_size, 0)

    def test_events_without_prior_sales_are_skipped(self):
        estimate = estimate_elasticity([event(10, 11, 0, 9)] * 6)
        self.assertEqual((estimate.elasticity, estimate.sample_size), (-1.2, 0))

    def test_median_is_used_instead_of_mean(self):
        events = [event(10, 11, 10, 9)] * 4 + [event(10, 11, 10, 0)]
        estimate = estimate_elasticity(events)

        self.assertAlmostEqual(estimate.elasticity, -1.0)
        self.assertEqual(estimate.confidence, "medium")

    def test_unchanged_prices_do_not_count_as_samples(self):
        events = [event(10, 10, 10, 9)] * 2 + [event(10, 11, 10, 9)] * 3
        estimate = estimate_elasticity(events)

        self.assertEqual(estimate.sample_size, 3)
        self.assertEqual(estimate.confidence, "low")
        self.assertAlmostEqual(estimate.elasticity, -1.0)

    def test_lookback_drops_old_events(self):
        as_of = dt.datetime(2024, 6, 1)
        recent = [event(10, 11, 10, 9, when=as_of - dt.timedelta(days=10))] * 4
        old = [event(10, 11, 10, 9, when=as_of - dt.timedelta(days=200))] * 2

        estimate = estimate_elasticity(recent + old, lookback_days=90, as_of=as_of)
        self.assertEqual(estimate.sample_size, 0)

    def test_positive_response_is_returned_unchanged(self):
        estimate = estimate_elasticity([event(10, 11, 10, 11)] * 5)
        self.assertAlmostEqual(estimate.elasticity, 1.0)

    def test_average_daily_sales_counts_only_days_with_sales(self):
        sales = [
            sale(dt.datetime(2024, 3, 1, 9), quantity=2),
            sale(dt.datetime(2024, 3, 1, 17), quantity=4),
            sale(dt.datetime(2024, 3, 3, 12), quantity=2),
            sale(dt.datetime(2024, 4, 20), quantity=50),
        ]

        average = average_daily_sales(sales, dt.datetime(2024, 3, 1), dt.datetime(2024, 3, 31))
        self.assertEqual(average, 4.0)
        self.assertEqual(average_daily_sales([], dt.datetime(2024, 3, 1), dt.datetime(2024, 3, 2)), 0.0)

    def test_build_price_change_events_uses_windows_around_each_change(self):
        history = [
            PricePoint(product_id="P1", price=12, effective_date=dt.datetime(2024, 2, 1)),
            PricePoint(product_id="P1", price=10, effective_date=dt.datetime(2024, 1, 1)),
        ]
        sales = [
            sale(dt.datetime(2024, 1, 20), quantity=10),
            sale(dt.datetime(2024, 2, 10), quantity=6),
            sale(dt.datetime(2024, 2, 10), product_id="P9", quantity=99),
        ]

        events = build_price_change_events(history, sales)

        self.assertEqual(len(events), 1)
        self.assertEqual(events[0].previous_price, 10)
        self.assertEqual(events[0].price, 12)
        self.assertEqual(events[0].sales_before, 10)
        self.assertEqual(events[0].sales_after, 6)

    def test_single_price_point_has_no_events(self):
        history = [PricePoint(product_id="P1", price=10, effective_date=dt.datetime(2024, 1, 1))]
        self.assertEqual(build_price_change_events(history, []), [])


class PriceOptimizerTests(SimpleTestCase):
    def test_zero_elasticity_keeps_price(self):
        result = optimize_price(20, 0)

        self.assertEqual(result.optimized_price, 20)
        self.assertEqual(result.expected_sales_change, 0)
        self.assertEqual(result.expected_revenue_change, 0)

    def test_positive_elasticity_keeps_price(self):
        self.assertEqual(optimize_price(20, 0.8, cost_price=5).optimized_price, 20)

    def test_revenue_optimum_is_clamped_to_bounds(self):
        result = optimize_price(20, -1.5, -0.2, 0.2, 0)

        self.assertGreaterEqual(result.optimized_price, 16)
        self.assertLessEqual(result.optimized_price, 24)
        self.assertAlmostEqual(result.optimized_price, 24)
        self.assertAlmostEqual(result.expected_sales_change, -30)
        self.assertAlmostEqual(result.expected_revenue_change, -16)

    def test_inelastic_demand_clamps_to_lower_bound(self):
        result = optimize_price(20, -0.5)

        self.assertAlmostEqual(result.optimized_price, 16)
        self.assertAlmostEqual(result.expected_sales_change, 10)
        self.assertAlmostEqual(result.expected_revenue_change, -12)

    def test_profit_optimum_with_cost(self):
        result = optimize_price(20, -2, cost_price=9)

        self.assertAlmostEqual(result.optimized_price, 18)
        self.assertAlmostEqual(result.expected_sales_change, 20)
        self.assertAlmostEqual(result.expected_revenue_change, 8)

    def test_custom_bounds(self):
        self.assertAlmostEqual(optimize_price(20, -1.5, -0.1, 0.1).optimized_price, 22)

    def test_unit_elasticity_does_not_divide_by_zero(self):
        self.assertAlmostEqual(optimize_price(20, -1, cost_price=5).optimized_price, 24)
        self.assertAlmostEqual(optimize_price(20, -1).optimized_price, 16)


class PricingFactorTests(SimpleTestCase):
    def test_nice_price_points(self):
        self.assertEqual(round_to_nice_price_point(47.23), 39.99)
        self.assertEqual(round_to_nice_price_point(7.10), 7.99)
        self.assertEqual(round_to_nice_price_point(150), 99)
        self.assertEqual(round_to_nice_price_point(10), 9.99)
        self.assertEqual(round_to_nice_price_point(100), 99)
        self.assertEqual(round_to_nice_price_point(999.5), 899)
        self.assertEqual(round_to_nice_price_point(0), 0)
        self.assertEqual(round_to_nice_price_point(-5), 0)

    def test_apply_pricing_factors_multiplies_then_rounds(self):
        neutral = PricingFactors(product_id="P1")
        self.assertEqual(apply_pricing_factors(50, neutral), 49.99)

        discounted = PricingFactors(product_id="P1", competitive_factor=0.98)
        self.assertEqual(apply_pricing_factors(50, discounted), 39.99)

    def test_derive_pricing_factors(self):
        june = dt.datetime(2024, 6, 15)
        december = dt.datetime(2024, 12, 1)

        def factors(stock, when=june):
            product = Product(id="P1", name="Tee", selling_price=20, stock_quantity=stock)
            return derive_pricing_factors(product, as_of=when)

        self.assertEqual(factors(150).inventory_factor, 0.95)
        self.assertEqual(factors(5).inventory_factor, 1.02)
        self.assertEqual(factors(0).inventory_factor, 1.0)
        self.assertEqual(factors(50).inventory_factor, 1.0)
        self.assertEqual(factors(50).competitive_factor, 0.98)
        self.assertEqual(factors(50).cost_factor, 1.0)
        self.assertEqual(factors(50).seasonality_factor, 1.0)
        self.assertEqual(factors(50, december).seasonality_factor, 1.05)


class PricingSuggestionTests(SimpleTestCase):
    def setUp(self):
        self.store = build_pricing_store()

    def test_suggests_price_for_product_with_history(self):
        results = compute_pricing_suggestions(self.store, lookback_days=400, as_of=PRICING_AS_OF)

        self.assertEqual([r.product_id for r in results], ["P1"])
        result = results[0]
        self.assertAlmostEqual(result.price_elasticity, -2.0)
        self.assertEqual(result.confidence, "medium")
        self.assertEqual(result.history_data_points, 5)
        self.assertAlmostEqual(result.expected_revenue_change, 12)
        self.assertAlmostEqual(result.expected_sales_change, 40)
        self.assertEqual(result.suggested_price, 9.99)

    def test_low_confidence_products_below_revenue_threshold_are_dropped(self):
        results = compute_pricing_suggestions(
            self.store, confidence_threshold="low", lookback_days=400, as_of=PRICING_AS_OF
        )
        self.assertNotIn("P2", [r.product_id for r in results])

    def test_high_threshold_skips_medium_confidence(self):
        results = compute_pricing_suggestions(
            self.store, confidence_threshold="high", lookback_days=400, as_of=PRICING_AS_OF
        )
        self.assertEqual(results, [])

    def test_short_lookback_has_too_few_changes(self):
        results = compute_pricing_suggestions(self.store, lookback_days=90, as_of=PRICING_AS_OF)
        self.assertEqual(results, [])

    def test_unknown_confidence_level(self):
        with self.assertRaises(ValueError):
            compute_pricing_suggestions(self.store, confidence_threshold="certain")

    def test_heuristic_price_suggestions(self):
        store = AnalyticsStore()
        store.upsert_products(
            [
                Product(id="P3", name="Hoodie", selling_price=20, unit_cost=10, stock_quantity=2),
                Product(id="P4", name="Jacket", selling_price=30, unit_cost=20, stock_quantity=100),
                Product(id="P5", name="Beanie", selling_price=10, unit_cost=4, stock_quantity=15),
            ]
        )
        store.add_sales(
            [
                sale(dt.datetime(2024, 5, 1), product_id="P3", quantity=10, unit_price=20),
                sale(dt.datetime(2024, 5, 2), product_id="P5", quantity=10, unit_price=10),
            ]
        )

        suggestions = compute_price_suggestions(store, as_of=dt.datetime(2024, 6, 1))

        self.assertEqual([s.product_id for s in suggestions], ["P3", "P4"])
        self.assertEqual(suggestions[0].suggested_price, 22.0)
        self.assertEqual(suggestions[0].potential, 10)
        self.assertEqual(suggestions[0].recommendation, "Increase price")
        self.assertEqual(suggestions[0].confidence, "low")
        self.assertEqual(suggestions[1].suggested_price, 27.0)
        self.assertEqual(suggestions[1].potential, -10)
        self.assertEqual(suggestions[1].recommendation, "Decrease price")

        self.assertEqual(len(compute_price_suggestions(store, limit=1)), 1)

    def test_falls_back_to_heuristics_without_elasticity_data(self):
        suggestions = compute_price_suggestions(
            self.store, confidence_threshold="medium", as_of=PRICING_AS_OF
        )
        # the 90 day default lookback leaves P1 without elasticity data
        self.assertTrue(all(s.confidence == "low" for s in suggestions))


class ProductScoringTests(SimpleTestCase):
    as_of = dt.datetime(2024, 6, 30)

    def test_full_score(self):
        product = Product(id="A", name="Tote", selling_price=10, unit_cost=5, stock_quantity=50)
        sales = [sale(self.as_of - dt.timedelta(days=1), product_id="A", quantity=100, unit_price=10)]
        returns = [ReturnRecord(product_id="A", date=self.as_of - dt.timedelta(days=2), quantity=2)]

        [scored] = score_products([product], sales, returns, as_of=self.as_of)

        self.assertEqual(scored.score, 85)
        self.assertEqual(scored.reason, "High performer across all metrics")
        self.assertAlmostEqual(scored.metrics.profit_margin, 100)
        self.assertAlmostEqual(scored.metrics.sales_volume, 100)
        self.assertAlmostEqual(scored.metrics.return_rate, 20)
        self.assertAlmostEqual(scored.metrics.restock_rate, 40)
        self.assertAlmostEqual(scored.metrics.growth_rate, 98)

    def test_products_without_sales_are_excluded(self):
        products = [
            Product(id="A", name="Tote", selling_price=10, unit_cost=1, stock_quantity=1),
            Product(id="B", name="Cap", selling_price=100, unit_cost=1, stock_quantity=1),
        ]
        sales = [sale(self.as_of - dt.timedelta(days=3), product_id="A", quantity=1)]

        scored = score_products(products, sales, as_of=self.as_of)
        self.assertEqual([p.id for p in scored], ["A"])

    def test_volume_is_normalised_against_batch_maximum(self):
        products = [
            Product(id="A", name="Tote", selling_price=10, unit_cost=5, stock_quantity=10),
            Product(id="B", name="Cap", selling_price=10, unit_cost=5, stock_quantity=10),
        ]
        when = self.as_of - dt.timedelta(days=1)
        sales = [
            sale(when, product_id="A", quantity=50),
            sale(when, product_id="B", quantity=100),
        ]

        volumes = {p.id: p.metrics.sales_volume for p in score_products(products, sales, as_of=self.as_of)}
        self.assertEqual(volumes, {"A": 50.0, "B": 100.0})

    def test_sales_and_returns_after_as_of_are_ignored(self):
        products = [
            Product(id="A", name="Tote", selling_price=10, unit_cost=5, stock_quantity=5),
            Product(id="B", name="Cap", selling_price=10, unit_cost=5, stock_quantity=5),
        ]
        sales = [
            sale(self.as_of - dt.timedelta(days=1), product_id="A", quantity=10),
            sale(self.as_of + dt.timedelta(days=60), product_id="A", quantity=100),
            sale(self.as_of + dt.timedelta(days=5), product_id="B", quantity=20),
        ]
        returns = [ReturnRecord(product_id="A", date=self.as_of + dt.timedelta(days=10), quantity=5)]

        [scored] = score_products(products, sales, returns, as_of=self.as_of)

        self.assertEqual(scored.id, "A")
        self.assertEqual(scored.score, 88)
        self.assertLessEqual(scored.score, 100)
        self.assertAlmostEqual(scored.metrics.growth_rate, 98)
        self.assertAlmostEqual(scored.metrics.return_rate, 0)
        self.assertAlmostEqual(scored.metrics.restock_rate, 40)

    def test_sales_outside_window_are_ignored(self):
        product = Product(id="A", name="Tote", selling_price=10, unit_cost=5, stock_quantity=10)
        sales = [sale(self.as_of - dt.timedelta(days=120), product_id="A", quantity=5)]

        self.assertEqual(score_products([product], sales, days=90, as_of=self.as_of), [])

    def test_results_sorted_and_limited(self):
        products = [
            Product(id=pid, name=pid, selling_price=10, unit_cost=5, stock_quantity=10) for pid in "ABC"
        ]
        sales = [
            sale(self.as_of - dt.timedelta(days=days), product_id=pid, quantity=10)
            for pid, days in (("A", 40), ("B", 1), ("C", 20))
        ]

        scored = score_products(products, sales, limit=2, as_of=self.as_of)
        self.assertEqual([p.id for p in scored], ["B", "C"])

    def test_reason_thresholds_fall_to_lower_bucket(self):
        self.assertEqual(_reason_for(76), "High performer across all metrics")
        self.assertEqual(_reason_for(75), "Good balanced performance")
        self.assertEqual(_reason_for(51), "Good balanced performance")
        self.assertEqual(_reason_for(50), "Average performer")


class ForecastTests(SimpleTestCase):
    def test_empty_history_has_no_forecast(self):
        self.assertEqual(forecast_monthly([], 3), [])

    def test_linear_history_projects_along_trend(self):
        actuals = [10000, 11000, 12000, 13000, 14000, 15000]

        slope, intercept = fit_linear_trend(actuals)
        self.assertAlmostEqual(slope, 1000)
        self.assertAlmostEqual(intercept, 10000)

        series = forecast_monthly(actuals, 3)
        self.assertEqual(len(series), 9)
        self.assertTrue(all(p.projected is None for p in series[:6]))
        self.assertEqual([p.actual for p in series[:6]], actuals)
        self.assertTrue(all(p.actual is None for p in series[6:]))
        self.assertEqual([p.projected for p in series[6:]], [16000, 17000, 18000])

    def test_projections_never_negative(self):
        series = forecast_monthly([300, 200, 100], 3)
        self.assertEqual([p.projected for p in series[3:]], [0, 0, 0])

    def test_single_month_is_flat(self):
        series = forecast_monthly([500], 2)
        self.assertEqual([p.projected for p in series[1:]], [500, 500])

    def test_label_count_must_match_history(self):
        with self.assertRaises(ValueError):
            forecast_monthly([1, 2, 3], 1, labels=["Jan", "Feb"])
        with self.assertRaises(ValueError):
            forecast_monthly([1, 2, 3], 2, future_labels=["Apr"])

    def test_fit_requires_data(self):
        with self.assertRaises(ValueError):
            fit_linear_trend([])

    def test_monthly_totals_are_zero_filled(self):
        sales = [
            sale(dt.datetime(2024, 3, 20), total_amount=999),
            sale(dt.datetime(2024, 4, 2), total_amount=100),
            sale(dt.datetime(2024, 6, 1), total_amount=50),
            sale(dt.datetime(2024, 6, 14, 18), total_amount=25),
        ]

        totals = monthly_revenue_totals(sales, past_months=2, as_of=dt.datetime(2024, 6, 15))
        self.assertEqual(totals.tolist(), [100.0, 0.0, 75.0])

    def test_project_earnings_labels_months(self):
        sales = [
            sale(dt.datetime(2024, 4, 2), total_amount=100),
            sale(dt.datetime(2024, 6, 1), total_amount=75),
        ]

        series = project_earnings(sales, past_months=2, future_months=2, as_of=dt.datetime(2024, 6, 15))

        self.assertEqual(
            series,
            [
                ProjectedEarning(month="Apr", actual=100.0, projected=None),
                ProjectedEarning(month="May", actual=0.0, projected=None),
                ProjectedEarning(month="Jun", actual=75.0, projected=None),
                ProjectedEarning(month="Jul", actual=None, projected=33),
                ProjectedEarning(month="Aug", actual=None, projected=21),
            ],
        )

    def test_project_earnings_without_sales(self):
        self.assertEqual(project_earnings([], as_of=dt.datetime(2024, 6, 15)), [])


class ReportTests(SimpleTestCase):
    as_of = dt.datetime(2024, 6, 15, 12)

    def test_revenue_metrics_for_week(self):
        sales = [
            sale(self.as_of - dt.timedelta(days=1), total_amount=30),
            sale(self.as_of - dt.timedelta(days=3), total_amount=10),
            sale(self.as_of - dt.timedelta(days=10), total_amount=500),
        ]

        result = revenue_metrics(sales, "week", as_of=self.as_of)
        self.assertEqual((result.count, result.sum, result.max), (2, 40, 30))

    def test_revenue_metrics_rejects_unknown_timeframe(self):
        with self.assertRaises(ValueError):
            revenue_metrics([], "decade")

    def test_sales_time_series_by_month(self):
        sales = [
            sale(dt.datetime(2024, 5, 20), total_amount=10),
            sale(dt.datetime(2024, 6, 1), total_amount=20),
            sale(dt.datetime(2024, 6, 2), total_amount=5),
        ]

        series = sales_time_series(sales, interval="month", as_of=self.as_of)

        self.assertEqual([p.period for p in series], ["2024-05", "2024-06"])
        self.assertEqual([p.total_sales for p in series], [10.0, 25.0])
        self.assertEqual([p.order_count for p in series], [1, 2])

    def test_top_products(self):
        products = [Product(id="P1", name="Tote", selling_price=10)]
        sales = [
            sale(self.as_of, product_id="P1", quantity=3),
            sale(self.as_of, product_id="P1", quantity=2),
            sale(self.as_of, product_id="P9", quantity=7),
        ]

        ranked = top_products(products, sales)

        self.assertEqual([(p.id, p.quantity_sold, p.order_count) for p in ranked], [("P9", 7.0, 1), ("P1", 5.0, 2)])
        self.assertEqual(ranked[0].name, "Unknown Product")
        self.assertEqual(len(top_products(products, sales, limit=1)), 1)
        self.assertEqual(top_products(products, []), [])

    def test_inventory_levels(self):
        products = [
            Product(id="A", name="A", selling_price=1, stock_quantity=20),
            Product(id="B", name="B", selling_price=1, stock_quantity=5),
            Product(id="C", name="C", selling_price=1, stock_quantity=0),
        ]

        levels = inventory_levels(products, low_stock_threshold=5)

        self.assertEqual([level.id for level in levels], ["C", "B", "A"])
        self.assertEqual([level.low_stock for level in levels], [True, True, False])

    def test_peak_selling_hours(self):
        day = dt.datetime(2024, 6, 14)
        sales = [
            sale(day.replace(hour=9, minute=15)),
            sale(day.replace(hour=9, minute=45)),
            sale(day.replace(hour=21)),
        ]

        hours = {h.hour: h.sales for h in peak_selling_hours(sales, as_of=self.as_of)}
        self.assertEqual(len(hours), 12)
        self.assertEqual(hours["8-10 AM"], 2)
        self.assertEqual(hours["8-10 PM"], 1)
        self.assertEqual(hours["12-2 AM"], 0)

        normalised = {h.hour: h.sales for h in peak_selling_hours(sales, normalize=True, as_of=self.as_of)}
        self.assertEqual(normalised["8-10 AM"], 67)
        self.assertEqual(normalised["8-10 PM"], 33)

    def test_peak_selling_hours_ignore_sales_after_as_of(self):
        sales = [sale(self.as_of + dt.timedelta(days=60))]
        self.assertEqual(peak_selling_hours(sales, as_of=self.as_of), [])

    def test_peak_selling_hours_without_sales(self):
        self.assertEqual(peak_selling_hours([], as_of=self.as_of), [])


class RevenueTrendTests(SimpleTestCase):
    as_of = dt.datetime(2024, 6, 15, 12)

    def test_resolution_follows_window_length(self):
        self.assertEqual(determine_resolution(0), "yearly")
        self.assertEqual(determine_resolution(3), "hourly")
        self.assertEqual(determine_resolution(14), "daily")
        self.assertEqual(determine_resolution(90), "weekly")
        self.assertEqual(determine_resolution(365), "monthly")
        self.assertEqual(determine_resolution(730), "quarterly")
        self.assertEqual(determine_resolution(731), "yearly")

    def test_monthly_growth_and_seasonality(self):
        amounts = [100, 110, 120, 130, 140, 150, 160]
        dates = [dt.datetime(2023, 12, 20)] + [dt.datetime(2024, month, 10) for month in range(1, 7)]
        sales = [sale(when, total_amount=amount) for when, amount in zip(dates, amounts)]

        analysis = analyze_revenue_trends(sales, days=180, as_of=dt.datetime(2024, 6, 15))

        self.assertEqual(analysis.resolution, "monthly")
        self.assertEqual([p.period for p in analysis.data][:2], ["2023-12", "2024-01"])
        self.assertEqual([p.value for p in analysis.data], amounts)
        self.assertEqual((analysis.total, analysis.average, analysis.median), (910, 130, 130))
        self.assertEqual((analysis.min.period, analysis.min.value), ("2023-12", 100))
        self.assertEqual((analysis.max.period, analysis.max.value), ("2024-06", 160))
        self.assertAlmostEqual(analysis.growth.overall, 60)
        self.assertAlmostEqual(analysis.growth.periodic[0], 10)
        self.assertEqual(len(analysis.growth.periodic), 6)
        self.assertEqual(analysis.trend, "increasing")
        self.assertTrue(analysis.seasonality.detected)
        self.assertEqual(analysis.seasonality.pattern, "monthly")
        self.assertEqual(analysis.seasonality.strongest, "June")
        self.assertEqual(analysis.seasonality.weakest, "December")

    def test_daily_decline_without_weekday_pattern(self):
        amounts = [200, 190, 180, 170, 160, 150, 140, 130]
        sales = [
            sale(dt.datetime(2024, 6, 8 + offset, 12), total_amount=amount)
            for offset, amount in enumerate(amounts)
        ]

        analysis = analyze_revenue_trends(sales, days=7, as_of=self.as_of)

        self.assertEqual(analysis.resolution, "daily")
        self.assertEqual(analysis.data[0].period, "2024-06-08")
        self.assertEqual([p.value for p in analysis.data], amounts)
        self.assertEqual(analysis.median, 165)
        self.assertEqual(analysis.trend, "decreasing")
        self.assertFalse(analysis.seasonality.detected)

    def test_all_time_uses_yearly_buckets_from_first_sale(self):
        sales = [
            sale(dt.datetime(2022, 3, 1), total_amount=50),
            sale(dt.datetime(2024, 2, 1), total_amount=150),
            sale(self.as_of + dt.timedelta(days=30), total_amount=999),
        ]

        analysis = analyze_revenue_trends(sales, days=0, as_of=self.as_of)

        self.assertEqual([(p.period, p.value) for p in analysis.data], [("2022", 50), ("2023", 0), ("2024", 150)])
        self.assertEqual(analysis.growth.periodic, [-100, 100])
        self.assertEqual(analysis.trend, "volatile")

    def test_no_sales_in_window(self):
        old = [sale(self.as_of - dt.timedelta(days=100), total_amount=10)]
        self.assertIsNone(analyze_revenue_trends(old, days=30, as_of=self.as_of))
        self.assertIsNone(analyze_revenue_trends([], days=0, as_of=self.as_of))

    def test_trend_labels(self):
        self.assertEqual(determine_trend([]), "stable")
        self.assertEqual(determine_trend([50, -50]), "volatile")
        self.assertEqual(determine_trend([5, 5, -5]), "stable")
        self.assertEqual(determine_trend([5, 5, -5], seasonal=True), "increasing")


class DayOfWeekTrendTests(SimpleTestCase):
    as_of = dt.datetime(2024, 6, 15, 12)

    def test_best_day_and_ordering(self):
        products = [Product(id="P1", name="Tote", selling_price=10)]
        sales = [
            sale(dt.datetime(2024, 6, 3), product_id="P1", quantity=2),  # Monday
            sale(dt.datetime(2024, 6, 10), product_id="P1", quantity=4),  # Monday
            sale(dt.datetime(2024, 6, 14), product_id="P1", quantity=1),  # Friday
            sale(dt.datetime(2024, 6, 12), product_id="P2", quantity=2),
            sale(dt.datetime(2024, 6, 12), product_id="P3", quantity=3),  # Wednesday
        ]

        trends = day_of_week_trends(products, sales, as_of=self.as_of)

        self.assertEqual([t.product_id for t in trends], ["P3", "P1"])
        tote = trends[1]
        self.assertEqual(tote.product_name, "Tote")
        self.assertEqual((tote.best_day, tote.day_index), ("Monday", 0))
        self.assertEqual(tote.average_sales, 1.0)
        by_day = {d.day: (d.sales, d.percent_of_average) for d in tote.sales_by_day}
        self.assertEqual(by_day["Monday"], (6, 600))
        self.assertEqual(by_day["Friday"], (1, 100))
        self.assertEqual(by_day["Sunday"], (0, 0))
        self.assertEqual(trends[0].product_name, "Unknown Product")
        self.assertEqual(trends[0].best_day, "Wednesday")

    def test_sales_outside_window_are_ignored(self):
        sales = [
            sale(self.as_of + dt.timedelta(days=1), quantity=5),
            sale(self.as_of - dt.timedelta(days=200), quantity=5),
        ]
        self.assertEqual(day_of_week_trends([], sales, as_of=self.as_of), [])


class LoaderTests(SimpleTestCase):
    def test_load_products(self):
        csv_content = (
            "id,name,selling_price,unit_cost,stock_quantity,category\n"
            "P1,Canvas Tote,19.99,7.5,40,Bags\n"
            "P2,Logo Cap,12,,,\n"
        )

        products = load_products_from_csv(io.StringIO(csv_content))

        self.assertEqual(
            products,
            [
                Product(id="P1", name="Canvas Tote", selling_price=19.99, unit_cost=7.5, stock_quantity=40, category="Bags"),
                Product(id="P2", name="Logo Cap", selling_price=12.0, unit_cost=0.0, stock_quantity=0, category=None),
            ],
        )

    def test_load_products_missing_columns(self):
        with self.assertRaises(ProductCsvError):
            load_products_from_csv(io.StringIO("id,name\nP1,Tote\n"))

    def test_load_products_invalid_price(self):
        with self.assertRaises(ProductCsvError):
            load_products_from_csv(io.StringIO("id,name,selling_price\nP1,Tote,cheap\n"))

    def test_load_products_from_bytes(self):
        products = load_products_from_csv(io.BytesIO(b"id,name,selling_price\nP1,Tote,5\n"))
        self.assertEqual(products[0].selling_price, 5.0)

    def test_load_sales(self):
        csv_content = (
            "date,product_id,quantity,unit_price,total_amount\n"
            "2024-01-05 14:30:00,P1,2,19.99,39.98\n"
            "2024-01-03,P2,3,5,\n"
        )

        records = load_sales_from_csv(io.StringIO(csv_content))

        self.assertEqual([rec.product_id for rec in records], ["P2", "P1"])
        self.assertEqual(records[0].total_amount, 15.0)
        self.assertEqual(records[1].date, dt.datetime(2024, 1, 5, 14, 30))

    def test_load_sales_invalid_quantity(self):
        with self.assertRaises(SalesCsvError):
            load_sales_from_csv(io.StringIO("date,product_id,quantity,unit_price\n2024-01-01,P1,two,5\n"))

    def test_load_price_history(self):
        csv_content = (
            "product_id,price,effective_date\n"
            "P1,12,2024-02-01\n"
            "P1,10,2024-01-01\n"
        )

        points = load_price_history_from_csv(io.StringIO(csv_content))
        self.assertEqual([p.price for p in points], [10.0, 12.0])

    def test_parse_datetime_accepts_utc_suffix(self):
        self.assertEqual(parse_datetime("2024-01-05T14:30:00Z"), dt.datetime(2024, 1, 5, 14, 30))
        self.assertEqual(parse_datetime(" 2024-01-05 "), dt.datetime(2024, 1, 5))

    def test_load_price_history_rejects_non_positive_price(self):
        with self.assertRaises(PriceHistoryCsvError):
            load_price_history_from_csv(io.StringIO("product_id,price,effective_date\nP1,0,2024-01-01\n"))


class StoreTests(SimpleTestCase):
    def tearDown(self):
        teardown_store()

    def test_init_store_is_idempotent(self):
        first = init_store()
        self.assertIs(init_store(), first)
        self.assertIs(get_store(), first)

    def test_teardown_releases_store(self):
        store = get_store()
        store.upsert_products([Product(id="P1", name="Tote", selling_price=10)])

        teardown_store()

        self.assertIsNot(get_store(), store)
        self.assertEqual(get_store().get_products(), [])

    def test_price_changes_are_recorded(self):
        store = AnalyticsStore()
        jan, feb, mar = dt.datetime(2024, 1, 1), dt.datetime(2024, 2, 1), dt.datetime(2024, 3, 1)

        store.upsert_products([Product(id="P1", name="Tote", selling_price=10)], effective_date=jan)
        store.upsert_products([Product(id="P1", name="Tote", selling_price=10)], effective_date=feb)
        store.upsert_products([Product(id="P1", name="Tote", selling_price=12)], effective_date=mar)

        history = store.get_price_history("P1")
        self.assertEqual([(p.price, p.effective_date) for p in history], [(10, jan), (12, mar)])
        self.assertEqual(len(store.get_price_history("P1", start=feb)), 1)

    def test_sale_item_aggregates(self):
        store = AnalyticsStore()
        store.add_sales(
            [
                sale(dt.datetime(2024, 1, 1), quantity=2),
                sale(dt.datetime(2024, 1, 2), quantity=3),
                sale(dt.datetime(2024, 1, 2), product_id="P2", quantity=1),
            ]
        )

        self.assertEqual(store.sale_item_aggregates(), {"P1": (5, 2), "P2": (1, 1)})
        self.assertEqual(store.sale_item_aggregates(start=dt.datetime(2024, 1, 2)), {"P1": (3, 1), "P2": (1, 1)})


class NotificationTests(SimpleTestCase):
    def test_disabled_levels_are_suppressed(self):
        sink = RecordingSink()
        notifier = PreferenceAwareNotifier(sink, preferences=NotificationPreferences(info=False))

        self.assertFalse(notifier.info("Recalculated"))
        self.assertTrue(notifier.error("Import failed"))
        self.assertEqual(sink.sent, [("error", "Import failed")])

    def test_unknown_level(self):
        notifier = PreferenceAwareNotifier(RecordingSink())
        with self.assertRaises(ValueError):
            notifier.notify("debug", "noise")

    def test_preferences_from_mapping(self):
        prefs = NotificationPreferences.from_mapping({"success": False})
        self.assertFalse(prefs.allows("success"))
        self.assertTrue(prefs.allows("warning"))
        with self.assertRaises(ValueError):
            NotificationPreferences.from_mapping({"loud": True})


class SettingsTests(SimpleTestCase):
    def test_defaults(self):
        config = get_analytics_settings()
        self.assertEqual(config.lookback_days, 90)
        self.assertEqual(config.confidence_threshold, "medium")
        self.assertTrue(config.notifications["error"])

    @override_settings(SALES_ANALYTICS={"lookback_days": 30, "NOTIFICATIONS": {"info": False}})
    def test_overrides(self):
        config = get_analytics_settings()
        self.assertEqual(config.lookback_days, 30)
        self.assertFalse(config.notifications["info"])
        self.assertTrue(config.notifications["success"])

    @override_settings(SALES_ANALYTICS={"colour": "blue"})
    def test_unknown_setting(self):
        with self.assertRaises(ValueError):
            get_analytics_settings()


class SerializationTests(SimpleTestCase):
    def test_to_dict_uses_camel_case(self):
        data = to_dict([ProjectedEarning(month="Jul", actual=None, projected=33)])
        self.assertEqual(data, [{"month": "Jul", "actual": None, "projected": 33}])

        product = Product(id="P1", name="Tote", selling_price=10, stock_quantity=3)
        self.assertEqual(to_dict(product)["sellingPrice"], 10)
        self.assertEqual(to_dict(product)["stockQuantity"], 3)


class ViewTests(SimpleTestCase):
    def setUp(self):
        teardown_store()
        self.store = build_pricing_store(get_store())

    def tearDown(self):
        teardown_store()

    def test_pricing_suggestions_endpoint(self):
        response = self.client.get(
            reverse("pricing_suggestions"),
            {"as_of": PRICING_AS_OF.isoformat(), "lookback_days": 400},
        )

        self.assertEqual(response.status_code, 200)
        [suggestion] = response.json()["data"]
        self.assertEqual(suggestion["productId"], "P1")
        self.assertEqual(suggestion["suggestedPrice"], 9.99)
        self.assertEqual(suggestion["confidence"], "medium")

    def test_projected_earnings_endpoint(self):
        response = self.client.get(
            reverse("projected_earnings"),
            {"as_of": PRICING_AS_OF.isoformat(), "past_months": 2, "future_months": 1},
        )

        self.assertEqual(response.status_code, 200)
        data = response.json()["data"]
        self.assertEqual(len(data), 4)
        self.assertIsNone(data[-1]["actual"])

    def test_optimal_products_endpoint(self):
        response = self.client.get(
            reverse("optimal_products"), {"as_of": PRICING_AS_OF.isoformat(), "days": 90}
        )

        self.assertEqual(response.status_code, 200)
        [product] = response.json()["data"]
        self.assertEqual(product["id"], "P1")
        self.assertIn("salesVolume", product["metrics"])

    def test_revenue_metrics_endpoint(self):
        response = self.client.get(reverse("revenue_metrics"), {"timeframe": "year", "as_of": PRICING_AS_OF.isoformat()})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"]["count"], 10)

    def test_invalid_parameters_return_400(self):
        response = self.client.get(reverse("top_products"), {"limit": "lots"})
        self.assertEqual(response.status_code, 400)
        self.assertIn("limit", response.json()["error"])

        response = self.client.get(reverse("revenue_metrics"), {"timeframe": "decade"})
        self.assertEqual(response.status_code, 400)

    def test_price_suggestions_follow_settings(self):
        params = {"as_of": PRICING_AS_OF.isoformat()}

        response = self.client.get(reverse("price_suggestions"), params)
        self.assertEqual([s["productId"] for s in response.json()["data"]], ["P2"])

        with override_settings(SALES_ANALYTICS={"lookback_days": 400}):
            response = self.client.get(reverse("price_suggestions"), params)

        data = response.json()["data"]
        self.assertEqual([s["productId"] for s in data], ["P1", "P2"])
        self.assertEqual(data[0]["potential"], 12)
        self.assertEqual(data[0]["confidence"], "medium")

    @override_settings(SALES_ANALYTICS={"colour": "blue"})
    def test_misconfigured_settings_are_not_reported_as_bad_requests(self):
        with self.assertRaises(ValueError):
            self.client.get(reverse("price_suggestions"))

    def test_revenue_trends_endpoint(self):
        response = self.client.get(
            reverse("revenue_trends"), {"as_of": PRICING_AS_OF.isoformat(), "days": 365}
        )

        self.assertEqual(response.status_code, 200)
        data = response.json()["data"]
        self.assertEqual(data["resolution"], "monthly")
        self.assertEqual(len(data["data"]), 13)
        self.assertAlmostEqual(data["total"], 820)
        self.assertIn("averagePeriodic", data["growth"])

    def test_revenue_trends_without_sales(self):
        teardown_store()
        response = self.client.get(reverse("revenue_trends"))

        self.assertEqual(response.status_code, 200)
        self.assertIsNone(response.json()["data"])

    def test_day_of_week_trends_endpoint(self):
        response = self.client.get(reverse("day_of_week_trends"), {"as_of": PRICING_AS_OF.isoformat()})

        self.assertEqual(response.status_code, 200)
        [trend] = response.json()["data"]
        self.assertEqual(trend["productId"], "P1")
        self.assertEqual(len(trend["salesByDay"]), 7)

    def test_analytics_endpoints_are_read_only(self):
        response = self.client.post(reverse("inventory_levels"))
        self.assertEqual(response.status_code, 405)

    def test_product_upload(self):
        upload = SimpleUploadedFile(
            "products.csv", b"id,name,selling_price,stock_quantity\nP7,Scarf,25,3\n", content_type="text/csv"
        )

        response = self.client.post(reverse("product_upload"), {"file": upload})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["imported"], 1)
        self.assertEqual(
            response.json()["notifications"], [{"level": "success", "message": "Imported 1 product rows."}]
        )
        self.assertEqual(get_store().get_product("P7").stock_quantity, 3)

    def test_sales_upload_with_bad_file(self):
        upload = SimpleUploadedFile("sales.csv", b"date,product_id\n2024-01-01,P1\n", content_type="text/csv")

        response = self.client.post(reverse("sales_upload"), {"file": upload})

        self.assertEqual(response.status_code, 400)
        [notification] = response.json()["notifications"]
        self.assertEqual(notification["level"], "error")

    def test_upload_requires_file(self):
        response = self.client.post(reverse("price_history_upload"))
        self.assertEqual(response.status_code, 400)

    @override_settings(SALES_ANALYTICS={"NOTIFICATIONS": {"success": False}})
    def test_success_notifications_can_be_switched_off(self):
        upload = SimpleUploadedFile(
            "history.csv", b"product_id,price,effective_date\nP1,11,2024-12-01\n", content_type="text/csv"
        )

        response = self.client.post(reverse("price_history_upload"), {"file": upload})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["notifications"], [])
