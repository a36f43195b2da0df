# public/urls.py
"""
PUBLIC API URLS (TICKET STOREFRONT)

Base path (mounted in backend/urls.py):
    /api/public/

Catalog + cart:
- GET            /api/public/events/
- GET            /api/public/events/<event_id>/
- GET/POST/DEL   /api/public/cart/
- DELETE         /api/public/cart/items/<ticket_type_id>/
- POST           /api/public/coupons/preview/

Checkout:
- POST /api/public/orders/
- GET  /api/public/orders/<order_id>/
- GET  /api/public/orders/<order_id>/events/
- POST /api/public/orders/<order_id>/pay/
- POST /api/public/orders/<order_id>/retry/

Provider:
- POST /api/public/payments/mpesa/callback/

Signed-in buyers:
- GET  /api/public/me/orders/
"""

from __future__ import annotations

from django.urls import include, path
from rest_framework.routers import SimpleRouter

from public.views.cart import PublicCartItemView, PublicCartView
from public.views.catalog import PublicEventDetailView, PublicEventListView
from public.views.coupons import PublicCouponPreviewView
from public.views.me import TicketHistoryViewSet
from public.views.mpesa import MpesaCallbackView
from public.views.orders import (
    PublicOrderCreateView,
    PublicOrderEventsView,
    PublicOrderPayView,
    PublicOrderRetryView,
    PublicOrderStatusView,
)

app_name = "public"

router = SimpleRouter()
router.register(r"me/orders", TicketHistoryViewSet, basename="me-orders")

urlpatterns = [
    # Catalog
    path("events/", PublicEventListView.as_view(), name="public-events"),
    path("events/<uuid:event_id>/", PublicEventDetailView.as_view(), name="public-event-detail"),

    # Cart
    path("cart/", PublicCartView.as_view(), name="public-cart"),
    path("cart/items/<uuid:ticket_type_id>/", PublicCartItemView.as_view(), name="public-cart-item"),
    path("coupons/preview/", PublicCouponPreviewView.as_view(), name="public-coupon-preview"),

    # Checkout
    path("orders/", PublicOrderCreateView.as_view(), name="public-order-create"),
    path("orders/<uuid:order_id>/", PublicOrderStatusView.as_view(), name="public-order-status"),
    path("orders/<uuid:order_id>/events/", PublicOrderEventsView.as_view(), name="public-order-events"),
    path("orders/<uuid:order_id>/pay/", PublicOrderPayView.as_view(), name="public-order-pay"),
    path("orders/<uuid:order_id>/retry/", PublicOrderRetryView.as_view(), name="public-order-retry"),

    # M-Pesa
    path("payments/mpesa/callback/", MpesaCallbackView.as_view(), name="mpesa-callback"),

    path("", include(router.urls)),
]
