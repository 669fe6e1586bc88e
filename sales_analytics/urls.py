from django.urls import path

from . import views

urlpatterns = [
    path('metrics/revenue/', views.revenue_metrics_view, name='revenue_metrics'),
    path('sales/time-series/', views.sales_time_series_view, name='sales_time_series'),
    path('products/top/', views.top_products_view, name='top_products'),
    path('inventory/levels/', views.inventory_levels_view, name='inventory_levels'),
    path('analytics/peak-hours/', views.peak_hours_view, name='peak_hours'),
    path('analytics/revenue-trends/', views.revenue_trends_view, name='revenue_trends'),
    path('analytics/day-of-week-trends/', views.day_of_week_trends_view, name='day_of_week_trends'),
    path('analytics/pricing-suggestions/', views.pricing_suggestions_view, name='pricing_suggestions'),
    path('analytics/price-suggestions/', views.price_suggestions_view, name='price_suggestions'),
    path('analytics/optimal-products/', views.optimal_products_view, name='optimal_products'),
    path('analytics/projected-earnings/', views.projected_earnings_view, name='projected_earnings'),
    path('import/products/', views.product_upload_view, name='product_upload'),
    path('import/sales/', views.sales_upload_view, name='sales_upload'),
    path('import/price-history/', views.price_history_upload_view, name='price_history_upload'),
]
