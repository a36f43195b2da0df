# public/views/orders.py
"""
PUBLIC ORDERS (checkout state machine over HTTP)

POST /api/public/orders/                      create (or re-price) from the caller's cart
GET  /api/public/orders/<order_id>/           merged order + payment status (poll)
GET  /api/public/orders/<order_id>/events/    same, as a Server-Sent-Events stream
POST /api/public/orders/<order_id>/pay/       initiate payment (M-Pesa STK or manual paybill)
POST /api/public/orders/<order_id>/retry/     new order from a failed one

Rules:
- Totals are always recomputed server-side; client prices are never trusted
- Payment confirmation is asynchronous: pay returns once the push is sent,
  the buyer then watches the status/stream until success or failed
- The timeout guard runs on every status read
"""

from __future__ import annotations

import json
import logging

from django.core.serializers.json import DjangoJSONEncoder
from django.http import StreamingHttpResponse
from django.shortcuts import get_object_or_404
from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.parsers import JSONParser
from rest_framework.permissions import AllowAny
from rest_framework.renderers import BaseRenderer, JSONRenderer
from rest_framework.response import Response
from rest_framework.views import APIView

from carts.models import Cart
from carts.services import build_cart_snapshot
from orders.models import Order
from orders.services.config import CheckoutConfig
from orders.services.exceptions import CheckoutError, EmptyCartError
from orders.services.order_lifecycle import InvalidOrderTransitionError
from orders.services.order_service import create_or_update_order, retry_order, validate_contact
from orders.services.payment_service import initiate_payment
from orders.services.subscription import order_status_snapshot, refresh_on_read, subscribe
from public.serializers import (
    OrderCreateSerializer,
    OrderSerializer,
    OrderStatusResponseSerializer,
    PaymentInitiationResponseSerializer,
    PayOrderSerializer,
)
from public.services.mpesa import MpesaConfig, MpesaGateway
from public.views.common import (
    PublicPollThrottle,
    PublicWriteThrottle,
    caller_owner_key,
    checkout_error_response,
    transition_error_response,
)

logger = logging.getLogger(__name__)


def _order_response(order: Order, *, status_code=status.HTTP_200_OK) -> Response:
    order = Order.objects.select_related("event").prefetch_related("items").get(pk=order.pk)
    return Response(OrderSerializer(order).data, status=status_code)


def sse_message(data: dict, *, event: str = "status") -> str:
    return f"event: {event}\ndata: {json.dumps(data, cls=DjangoJSONEncoder)}\n\n"


class EventStreamRenderer(BaseRenderer):
    """Lets `Accept: text/event-stream` pass content negotiation (errors render as one event)."""

    media_type = "text/event-stream"
    format = "event-stream"
    charset = "utf-8"

    def render(self, data, accepted_media_type=None, renderer_context=None):
        if data is None:
            return b""
        return sse_message(data, event="error").encode(self.charset)


class PublicOrderCreateView(APIView):
    permission_classes = [AllowAny]
    parser_classes = [JSONParser]
    throttle_classes = [PublicWriteThrottle]

    @extend_schema(
        tags=["Public"],
        request=OrderCreateSerializer,
        responses={
            201: OrderSerializer,
            200: OrderSerializer,
            400: OpenApiResponse(description="Empty cart / invalid contact / bad coupon input"),
            404: OpenApiResponse(description="Order not found"),
            409: OpenApiResponse(description="Sold out / coupon rejected / order no longer editable"),
        },
        description="Lock totals for the caller's cart into an order (pending payment initiation).",
    )
    def post(self, request, *args, **kwargs):
        s = OrderCreateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        data = s.validated_data

        owner = caller_owner_key(request)

        existing = None
        if data.get("order_id"):
            existing = get_object_or_404(Order, pk=data["order_id"], owner_id=owner)

        try:
            contact = validate_contact(
                data.get("customer_name"),
                data.get("customer_email"),
                data.get("customer_phone"),
            )

            cart = Cart.objects.filter(owner_key=owner, is_active=True).first()
            if cart is None:
                raise EmptyCartError()
            snapshot = build_cart_snapshot(cart, event_id=data.get("event_id"))

            order = create_or_update_order(
                snapshot,
                contact,
                data.get("coupon_code") or None,
                owner_id=owner,
                order=existing,
            )
        except CheckoutError as exc:
            return checkout_error_response(exc)
        except InvalidOrderTransitionError as exc:
            return transition_error_response(exc)

        return _order_response(
            order,
            status_code=status.HTTP_200_OK if existing else status.HTTP_201_CREATED,
        )


class PublicOrderStatusView(APIView):
    permission_classes = [AllowAny]
    throttle_classes = [PublicPollThrottle]

    @extend_schema(
        tags=["Public"],
        responses={
            200: OrderStatusResponseSerializer,
            404: OpenApiResponse(description="Order not found"),
            429: OpenApiResponse(description="Rate limited"),
        },
        description="Merged order + payment state; tickets are included once the order succeeded.",
    )
    def get(self, request, order_id, *args, **kwargs):
        order = get_object_or_404(Order, pk=order_id)
        order = refresh_on_read(order, config=CheckoutConfig.from_settings())
        return Response(order_status_snapshot(order), status=status.HTTP_200_OK)


class PublicOrderEventsView(APIView):
    permission_classes = [AllowAny]
    throttle_classes = [PublicPollThrottle]
    renderer_classes = [EventStreamRenderer, JSONRenderer]

    @extend_schema(
        tags=["Public"],
        responses={200: OpenApiResponse(description="text/event-stream of status snapshots")},
        description="Server-Sent Events: one `status` event per state change, closes once final.",
    )
    def get(self, request, order_id, *args, **kwargs):
        order = get_object_or_404(Order, pk=order_id)
        config = CheckoutConfig.from_settings()

        stream = (sse_message(snapshot) for snapshot in subscribe(order.pk, config=config))

        response = StreamingHttpResponse(stream, content_type="text/event-stream")
        response["Cache-Control"] = "no-cache"
        response["X-Accel-Buffering"] = "no"
        return response


class PublicOrderPayView(APIView):
    permission_classes = [AllowAny]
    parser_classes = [JSONParser]
    throttle_classes = [PublicWriteThrottle]

    @extend_schema(
        tags=["Public"],
        request=PayOrderSerializer,
        responses={
            200: PaymentInitiationResponseSerializer,
            400: OpenApiResponse(description="Invalid phone / unsupported method"),
            404: OpenApiResponse(description="Order not found"),
            409: OpenApiResponse(description="Order cannot be paid in its current state"),
            502: OpenApiResponse(description="M-Pesa rejected or unreachable (order failed)"),
        },
        description=(
            "Start payment. A second call while a payment is in flight returns "
            "status=in_progress without contacting M-Pesa again."
        ),
    )
    def post(self, request, order_id, *args, **kwargs):
        s = PayOrderSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        data = s.validated_data

        order = get_object_or_404(Order, pk=order_id)

        gateway = None
        if data["method"] == Order.METHOD_MPESA_STK:
            gateway = MpesaGateway(MpesaConfig.from_settings())

        try:
            initiation = initiate_payment(
                order,
                data["method"],
                phone=data.get("phone") or order.customer_phone,
                gateway=gateway,
                config=CheckoutConfig.from_settings(),
            )
        except CheckoutError as exc:
            return checkout_error_response(exc)
        except InvalidOrderTransitionError as exc:
            return transition_error_response(exc)

        payload = {
            "order_id": initiation.order_id,
            "order_status": initiation.order_status,
            "method": initiation.method,
            "correlation_id": initiation.correlation_id,
            "customer_message": initiation.customer_message,
            "manual_instructions": initiation.manual_instructions,
        }
        return Response(PaymentInitiationResponseSerializer(payload).data, status=status.HTTP_200_OK)


class PublicOrderRetryView(APIView):
    permission_classes = [AllowAny]
    throttle_classes = [PublicWriteThrottle]

    @extend_schema(
        tags=["Public"],
        request=None,
        responses={
            201: OrderSerializer,
            404: OpenApiResponse(description="Order not found"),
            409: OpenApiResponse(description="Order is not failed / sold out since"),
        },
        description="Re-create a failed order (same lines, contact and coupon) without re-entering details.",
    )
    def post(self, request, order_id, *args, **kwargs):
        order = get_object_or_404(Order, pk=order_id)

        try:
            new_order = retry_order(order, owner_id=caller_owner_key(request))
        except CheckoutError as exc:
            return checkout_error_response(exc)
        except InvalidOrderTransitionError as exc:
            return transition_error_response(exc)

        logger.info(
            "Order retried",
            extra={"order_id": str(new_order.id), "supersedes": str(order.id)},
        )
        return _order_response(new_order, status_code=status.HTTP_201_CREATED)
