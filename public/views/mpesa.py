# public/views/mpesa.py
"""
M-PESA STK CALLBACK (Daraja -> us)

POST /api/public/payments/mpesa/callback/?token=<MPESA_CALLBACK_TOKEN>

Rules:
- Shared-secret token on the callback URL (Daraja does not sign callbacks)
- Always acknowledge with 200 once the token checks out: Daraja retries on
  anything else, and every outcome is already recorded (or logged) here
- Reconciliation is idempotent; duplicate callbacks are no-ops
"""

from __future__ import annotations

import logging

from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.parsers import JSONParser
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from orders.services.reconciliation import reconcile_payment
from public.serializers import MpesaCallbackAckSerializer
from public.services.mpesa import MpesaConfig, parse_stk_callback, verify_callback_token
from public.views.common import WebhookThrottle

logger = logging.getLogger(__name__)

ACK = {"ResultCode": 0, "ResultDesc": "Accepted"}


class MpesaCallbackView(APIView):
    authentication_classes = []
    permission_classes = [AllowAny]
    parser_classes = [JSONParser]
    throttle_classes = [WebhookThrottle]

    @extend_schema(
        tags=["Public"],
        request=None,
        responses={
            200: MpesaCallbackAckSerializer,
            403: OpenApiResponse(description="Invalid callback token"),
        },
        description="Daraja STK push result callback.",
    )
    def post(self, request, *args, **kwargs):
        config = MpesaConfig.from_settings()

        if not verify_callback_token(config, request.query_params.get("token")):
            logger.warning("Invalid M-Pesa callback token")
            return Response({"ResultCode": 1, "ResultDesc": "Rejected"}, status=status.HTTP_403_FORBIDDEN)

        try:
            callback = parse_stk_callback(request.data)
        except ValueError as exc:
            logger.warning("Unparseable M-Pesa callback", extra={"error": str(exc)})
            return Response(ACK, status=status.HTTP_200_OK)

        try:
            result = reconcile_payment(callback)
        except Exception:
            logger.exception(
                "M-Pesa callback reconciliation crashed",
                extra={"correlation_id": callback.correlation_id},
            )
            return Response(ACK, status=status.HTTP_200_OK)

        logger.info(
            "M-Pesa callback processed",
            extra={
                "correlation_id": callback.correlation_id,
                "outcome": callback.outcome,
                "action": result.action,
                "order_id": result.order_id,
                "tickets_issued": result.tickets_issued,
            },
        )
        return Response(ACK, status=status.HTTP_200_OK)
