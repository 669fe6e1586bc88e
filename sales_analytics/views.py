import datetime as dt
import functools
import logging

from django.http import JsonResponse
from django.views.decorators.http import require_GET, require_POST

from .conf import get_analytics_settings
from .domain_models import to_dict
from .ml.product_scoring import score_products
from .ml.revenue_forecast import project_earnings
from .notifications import (
    DjangoMessagesSink,
    NotificationPreferences,
    PreferenceAwareNotifier,
    RecordingSink,
)
from .pricing_engine import compute_price_suggestions, compute_pricing_suggestions
from .reports import (
    analyze_revenue_trends,
    day_of_week_trends,
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
from .state import get_store

logger = logging.getLogger(__name__)


class QueryParameterError(ValueError):
    """Raised for a query parameter that cannot be parsed or is out of range."""


def _int_param(request, name: str, default: int, minimum: int = 0) -> int:
    raw = request.GET.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError) as exc:
        raise QueryParameterError(f"{name} must be a whole number.") from exc
    if value < minimum:
        raise QueryParameterError(f"{name} must be at least {minimum}.")
    return value


def _choice_param(request, name: str, default: str, choices) -> str:
    value = request.GET.get(name) or default
    if value not in choices:
        raise QueryParameterError(f"{name} must be one of: {', '.join(choices)}.")
    return value


def _datetime_param(request, name: str) -> dt.datetime | None:
    raw = request.GET.get(name)
    if not raw:
        return None
    try:
        return parse_datetime(raw)
    except ValueError as exc:
        raise QueryParameterError(f"{name} must be an ISO date or timestamp.") from exc


def analytics_endpoint(view):
    """Serialise the view's result to JSON and turn bad query parameters into HTTP 400."""

    @functools.wraps(view)
    def wrapper(request, *args, **kwargs):
        try:
            result = view(request, *args, **kwargs)
        except QueryParameterError as exc:
            return JsonResponse({"error": str(exc)}, status=400)
        return JsonResponse({"data": to_dict(result)})

    return require_GET(wrapper)


@analytics_endpoint
def revenue_metrics_view(request):
    timeframe = _choice_param(request, "timeframe", "month", ("day", "week", "month", "year"))
    return revenue_metrics(get_store().get_sales(), timeframe, as_of=_datetime_param(request, "as_of"))


@analytics_endpoint
def sales_time_series_view(request):
    return sales_time_series(
        get_store().get_sales(),
        interval=_choice_param(request, "interval", "day", ("day", "week", "month")),
        start=_datetime_param(request, "start"),
        end=_datetime_param(request, "end"),
        as_of=_datetime_param(request, "as_of"),
    )


@analytics_endpoint
def top_products_view(request):
    store = get_store()
    return top_products(store.get_products(), store.get_sales(), limit=_int_param(request, "limit", 10, 1))


@analytics_endpoint
def inventory_levels_view(request):
    config = get_analytics_settings()
    threshold = _int_param(request, "low_stock_threshold", config.low_stock_threshold)
    return inventory_levels(get_store().get_products(), low_stock_threshold=threshold)


@analytics_endpoint
def peak_hours_view(request):
    return peak_selling_hours(
        get_store().get_sales(),
        days=_int_param(request, "days", 30, 1),
        normalize=request.GET.get("normalize", "").lower() in ("1", "true", "yes"),
        as_of=_datetime_param(request, "as_of"),
    )


@analytics_endpoint
def revenue_trends_view(request):
    return analyze_revenue_trends(
        get_store().get_sales(),
        days=_int_param(request, "days", 30),
        as_of=_datetime_param(request, "as_of"),
    )


@analytics_endpoint
def day_of_week_trends_view(request):
    config = get_analytics_settings()
    store = get_store()
    return day_of_week_trends(
        store.get_products(),
        store.get_sales(),
        days=_int_param(request, "days", config.scoring_days, 1),
        as_of=_datetime_param(request, "as_of"),
    )


@analytics_endpoint
def pricing_suggestions_view(request):
    config = get_analytics_settings()
    product_ids = request.GET.getlist("product_id") or None
    return compute_pricing_suggestions(
        get_store(),
        product_ids=product_ids,
        confidence_threshold=_choice_param(
            request, "confidence", config.confidence_threshold, ("high", "medium", "low")
        ),
        lookback_days=_int_param(request, "lookback_days", config.lookback_days, 1),
        as_of=_datetime_param(request, "as_of"),
        min_price_change=config.min_price_change,
        max_price_change=config.max_price_change,
        revenue_improvement_threshold=config.revenue_improvement_threshold,
    )


@analytics_endpoint
def price_suggestions_view(request):
    config = get_analytics_settings()
    return compute_price_suggestions(
        get_store(),
        limit=_int_param(request, "limit", config.suggestion_limit, 1),
        confidence_threshold=_choice_param(
            request, "confidence", config.confidence_threshold, ("high", "medium", "low")
        ),
        as_of=_datetime_param(request, "as_of"),
        lookback_days=config.lookback_days,
        min_price_change=config.min_price_change,
        max_price_change=config.max_price_change,
        revenue_improvement_threshold=config.revenue_improvement_threshold,
    )


@analytics_endpoint
def optimal_products_view(request):
    config = get_analytics_settings()
    store = get_store()
    return score_products(
        store.get_products(),
        store.get_sales(),
        store.get_returns(),
        days=_int_param(request, "days", config.scoring_days, 1),
        limit=_int_param(request, "limit", config.suggestion_limit, 1),
        as_of=_datetime_param(request, "as_of"),
    )


@analytics_endpoint
def projected_earnings_view(request):
    config = get_analytics_settings()
    return project_earnings(
        get_store().get_sales(),
        past_months=_int_param(request, "past_months", config.past_months),
        future_months=_int_param(request, "future_months", config.future_months),
        as_of=_datetime_param(request, "as_of"),
    )


def _build_notifier(request):
    config = get_analytics_settings()
    recorder = RecordingSink()
    notifier = PreferenceAwareNotifier(
        DjangoMessagesSink(request),
        recorder,
        preferences=NotificationPreferences.from_mapping(config.notifications),
    )
    return notifier, recorder


def _upload_response(request, loader, error_cls, store_method, label: str):
    notifier, recorder = _build_notifier(request)

    upload = request.FILES.get("file")
    if not upload:
        notifier.error(f"Please select a {label} CSV file to upload.")
        status, payload = 400, {"error": f"Missing {label} CSV file."}
    elif not upload.name.lower().endswith(".csv"):
        notifier.error("The uploaded file must be a .csv file.")
        status, payload = 400, {"error": "The uploaded file must be a .csv file."}
    else:
        try:
            records = loader(upload)
        except error_cls as exc:
            notifier.error(f"{label.capitalize()} CSV error: {exc}")
            status, payload = 400, {"error": str(exc)}
        else:
            imported = store_method(records)
            logger.info("Imported %d %s rows from %s", imported, label, upload.name)
            notifier.success(f"Imported {imported} {label} rows.")
            status, payload = 200, {"imported": imported}

    payload["notifications"] = [{"level": level, "message": message} for level, message in recorder.sent]
    return JsonResponse(payload, status=status)


@require_POST
def product_upload_view(request):
    return _upload_response(
        request, load_products_from_csv, ProductCsvError, get_store().upsert_products, "product"
    )


@require_POST
def sales_upload_view(request):
    return _upload_response(request, load_sales_from_csv, SalesCsvError, get_store().add_sales, "sales")


@require_POST
def price_history_upload_view(request):
    return _upload_response(
        request,
        load_price_history_from_csv,
        PriceHistoryCsvError,
        get_store().add_price_history,
        "price history",
    )
