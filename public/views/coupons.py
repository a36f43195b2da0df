# public/views/coupons.py
"""
COUPON PREVIEW (provisional apply)

POST /api/public/coupons/preview/   {code, event_id?}

Prices the caller's current cart with the coupon without redeeming it.
The binding discount is computed again when the order locks its totals.
"""

from __future__ import annotations

from django.shortcuts import get_object_or_404
from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.parsers import JSONParser
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from carts.models import Cart
from coupons.services import apply_coupon
from events.models import Event
from orders.services.exceptions import CartEventMismatchError, CheckoutError, EmptyCartError
from public.serializers import CouponPreviewResponseSerializer, CouponPreviewSerializer
from public.views.common import PublicWriteThrottle, caller_owner_key, checkout_error_response


class PublicCouponPreviewView(APIView):
    permission_classes = [AllowAny]
    parser_classes = [JSONParser]
    throttle_classes = [PublicWriteThrottle]

    @extend_schema(
        tags=["Public"],
        request=CouponPreviewSerializer,
        responses={
            200: CouponPreviewResponseSerializer,
            400: OpenApiResponse(description="Empty cart"),
            409: OpenApiResponse(description="Coupon not found / expired / exhausted / not applicable"),
        },
    )
    def post(self, request, *args, **kwargs):
        s = CouponPreviewSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        data = s.validated_data

        owner = caller_owner_key(request)
        cart = Cart.objects.filter(owner_key=owner, is_active=True).first()

        try:
            if cart is None or cart.event_id is None:
                raise EmptyCartError()

            if data.get("event_id") and str(data["event_id"]) != str(cart.event_id):
                raise CartEventMismatchError()

            event = get_object_or_404(Event, pk=cart.event_id, is_active=True)

            application = apply_coupon(
                data["code"],
                cart.subtotal_amount,
                event=event,
                owner_id=owner,
            )
        except CheckoutError as exc:
            return checkout_error_response(exc)

        payload = {
            "code": application.coupon.code,
            "discount_type": application.coupon.discount_type,
            "original_total": application.original_total,
            "discount_amount": application.discount_amount,
            "discounted_total": application.discounted_total,
        }
        return Response(CouponPreviewResponseSerializer(payload).data, status=status.HTTP_200_OK)
