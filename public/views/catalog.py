# public/views/catalog.py
"""
PUBLIC CATALOG (TICKET STOREFRONT)

GET /api/public/events/
GET /api/public/events/<event_id>/

Rules:
- AllowAny (public)
- Active events only; ticket types carry live remaining inventory
- Backend is source of truth for prices
"""

from __future__ import annotations

from django.db.models import Prefetch
from django.shortcuts import get_object_or_404
from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from events.models import Event, TicketType
from public.serializers import PublicEventSerializer
from public.views.common import PublicPollThrottle


def _active_events():
    return Event.objects.filter(is_active=True).prefetch_related(
        Prefetch("ticket_types", queryset=TicketType.objects.order_by("unit_price"))
    )


class PublicEventListView(APIView):
    permission_classes = [AllowAny]
    throttle_classes = [PublicPollThrottle]

    @extend_schema(
        tags=["Public"],
        responses={200: PublicEventSerializer(many=True), 429: OpenApiResponse(description="Rate limited")},
        description="Active events with their ticket types (AllowAny).",
    )
    def get(self, request, *args, **kwargs):
        events = _active_events().order_by("starts_at", "name")
        return Response(PublicEventSerializer(events, many=True).data, status=status.HTTP_200_OK)


class PublicEventDetailView(APIView):
    permission_classes = [AllowAny]
    throttle_classes = [PublicPollThrottle]

    @extend_schema(
        tags=["Public"],
        responses={200: PublicEventSerializer, 404: OpenApiResponse(description="Event not found")},
    )
    def get(self, request, event_id, *args, **kwargs):
        event = get_object_or_404(_active_events(), pk=event_id)
        return Response(PublicEventSerializer(event).data, status=status.HTTP_200_OK)
