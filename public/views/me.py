# public/views/me.py
"""
TICKET HISTORY (signed-in buyers)

GET /api/public/me/orders/
GET /api/public/me/orders/<id>/

Filters (django-filter):
    ?order_status=completed
    ?event=<event uuid>
    ?created_after=2026-01-01&created_before=2026-12-31
"""

from __future__ import annotations

import django_filters
from drf_spectacular.utils import extend_schema
from rest_framework.permissions import IsAuthenticated
from rest_framework.viewsets import ReadOnlyModelViewSet

from carts.services import owner_key_for
from orders.models import Order
from public.serializers import TicketHistorySerializer


class TicketHistoryFilter(django_filters.FilterSet):
    order_status = django_filters.ChoiceFilter(choices=Order.STATUS_CHOICES)
    created_after = django_filters.DateFilter(field_name="created_at", lookup_expr="date__gte")
    created_before = django_filters.DateFilter(field_name="created_at", lookup_expr="date__lte")

    class Meta:
        model = Order
        fields = ["order_status", "event"]


@extend_schema(tags=["Public"])
class TicketHistoryViewSet(ReadOnlyModelViewSet):
    """
    The caller's own orders with their tickets. Scoped by owner; never
    exposes another buyer's orders.
    """

    permission_classes = [IsAuthenticated]
    serializer_class = TicketHistorySerializer
    filterset_class = TicketHistoryFilter
    http_method_names = ["get", "head", "options"]

    def get_queryset(self):
        if getattr(self, "swagger_fake_view", False):
            return Order.objects.none()

        return (
            Order.objects.filter(owner_id=owner_key_for(user=self.request.user))
            .select_related("event")
            .prefetch_related("tickets")
            .order_by("-created_at")
        )
