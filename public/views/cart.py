# public/views/cart.py
"""
PUBLIC CART (persisted, per user or guest session)

GET    /api/public/cart/                          current cart
POST   /api/public/cart/                          set one line {ticket_type_id, quantity}
DELETE /api/public/cart/                          clear
DELETE /api/public/cart/items/<ticket_type_id>/   remove one line

Rules:
- quantity is absolute (0 removes the line)
- a cart holds tickets for ONE event; mixing events -> 400 cart_event_mismatch
- availability is checked softly here; the hard reservation happens when an
  order locks its totals
"""

from __future__ import annotations

from decimal import Decimal

from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.parsers import JSONParser
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from carts.models import Cart
from carts.services import clear_cart, get_or_create_active_cart, remove_item, set_item_quantity
from events.models import TicketType
from orders.services.exceptions import CheckoutError
from public.serializers import CartItemSetSerializer, CartResponseSerializer
from public.views.common import (
    PublicPollThrottle,
    PublicWriteThrottle,
    caller_owner_key,
    checkout_error_response,
)


def cart_payload(cart: Cart) -> dict:
    items = list(cart.items.select_related("ticket_type").order_by("created_at"))
    return {
        "cart_id": str(cart.id),
        "event_id": str(cart.event_id) if cart.event_id else None,
        "items": [
            {
                "ticket_type_id": str(item.ticket_type_id),
                "name": item.ticket_type.name,
                "unit_price": item.unit_price,
                "quantity": item.quantity,
                "line_total": item.line_total,
            }
            for item in items
        ],
        "item_count": sum(int(item.quantity) for item in items),
        "subtotal_amount": sum((item.line_total for item in items), Decimal("0.00")),
    }


def _ticket_type_not_found() -> Response:
    return Response({"detail": "Ticket type not found"}, status=status.HTTP_404_NOT_FOUND)


class PublicCartView(APIView):
    permission_classes = [AllowAny]
    parser_classes = [JSONParser]

    def get_throttles(self):
        if self.request.method == "GET":
            return [PublicPollThrottle()]
        return [PublicWriteThrottle()]

    @extend_schema(tags=["Public"], responses={200: CartResponseSerializer})
    def get(self, request, *args, **kwargs):
        cart = get_or_create_active_cart(caller_owner_key(request))
        return Response(CartResponseSerializer(cart_payload(cart)).data, status=status.HTTP_200_OK)

    @extend_schema(
        tags=["Public"],
        request=CartItemSetSerializer,
        responses={
            200: CartResponseSerializer,
            400: OpenApiResponse(description="Validation error / different event"),
            404: OpenApiResponse(description="Ticket type not found"),
            409: OpenApiResponse(description="Not enough tickets left"),
        },
    )
    def post(self, request, *args, **kwargs):
        s = CartItemSetSerializer(data=request.data)
        s.is_valid(raise_exception=True)

        cart = get_or_create_active_cart(caller_owner_key(request))
        try:
            cart = set_item_quantity(
                cart,
                ticket_type_id=s.validated_data["ticket_type_id"],
                quantity=s.validated_data["quantity"],
            )
        except TicketType.DoesNotExist:
            return _ticket_type_not_found()
        except CheckoutError as exc:
            return checkout_error_response(exc)

        return Response(CartResponseSerializer(cart_payload(cart)).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Public"], responses={200: CartResponseSerializer})
    def delete(self, request, *args, **kwargs):
        cart = clear_cart(get_or_create_active_cart(caller_owner_key(request)))
        return Response(CartResponseSerializer(cart_payload(cart)).data, status=status.HTTP_200_OK)


class PublicCartItemView(APIView):
    permission_classes = [AllowAny]
    throttle_classes = [PublicWriteThrottle]

    @extend_schema(
        tags=["Public"],
        responses={200: CartResponseSerializer, 404: OpenApiResponse(description="Ticket type not found")},
    )
    def delete(self, request, ticket_type_id, *args, **kwargs):
        cart = get_or_create_active_cart(caller_owner_key(request))
        try:
            cart = remove_item(cart, ticket_type_id=ticket_type_id)
        except TicketType.DoesNotExist:
            return _ticket_type_not_found()
        return Response(CartResponseSerializer(cart_payload(cart)).data, status=status.HTTP_200_OK)
