"""HTTP views for the orders app.

Views are kept intentionally small: they validate requests (via Pydantic),
map them to domain commands, delegate to the ``OrderService`` returned by
``providers.get_order_service()`` and render the result with the read DTOs
from ``schemas``. Domain errors are translated to HTTP statuses in one
place, ``_error_response``.

Idempotency: when an ``Idempotency-Key`` header is sent with a create
request, the first request is processed and its response stored; retries
with the same payload replay the stored response (``Idempotent-Replay:
true``), and reusing the key with a different payload returns 409.
"""

import logging

import httpx
from django.db import DatabaseError
from pydantic import ValidationError
from rest_framework import status
from rest_framework.permissions import AllowAny, IsAdminUser
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from . import providers
from .domain import InsufficientStock, NotFoundError, OrderConflict, OrderError
from .http_adapters import CircuitOpenError
from .idempotency import finalize, get_or_create_idempotent
from .schemas import (
    CancelOrderDTO,
    ConfirmPaymentDTO,
    CreateOrderDTO,
    OrderListQuery,
    OrderReadDTO,
    ResendNotificationsDTO,
    TrackingReadDTO,
    UpdateStatusDTO,
    dump,
    notification_results_payload,
    payment_qr_payload,
)

logger = logging.getLogger("orders")

HANDLED_ERRORS = (OrderError, DatabaseError, httpx.HTTPError, CircuitOpenError)


def _validation_response(exc: ValidationError) -> Response:
    errors = [
        {"field": ".".join(str(p) for p in err["loc"]) or "body", "message": err["msg"]}
        for err in exc.errors()
    ]
    return Response({"detail": "VALIDATION_ERROR", "errors": errors}, status=status.HTTP_400_BAD_REQUEST)


def _error_response(exc: Exception) -> Response:
    """Translate a domain, persistence or upstream error into a response."""
    if isinstance(exc, InsufficientStock):
        body = {"detail": str(exc)}
        if exc.sku:
            body["sku"] = exc.sku
        return Response(body, status=status.HTTP_422_UNPROCESSABLE_ENTITY)
    if isinstance(exc, NotFoundError):
        return Response({"detail": str(exc)}, status=status.HTTP_404_NOT_FOUND)
    if isinstance(exc, OrderConflict) and str(exc) == "CONCURRENT_UPDATE":
        return Response({"detail": str(exc)}, status=status.HTTP_409_CONFLICT)
    if isinstance(exc, OrderError):
        return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
    if isinstance(exc, DatabaseError):
        logger.exception("persistence error")
        return Response({"detail": "PERSISTENCE_ERROR"}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)
    logger.warning("upstream unavailable", extra={"error": str(exc)})
    return Response({"detail": "UPSTREAM_UNAVAILABLE"}, status=status.HTTP_503_SERVICE_UNAVAILABLE)


def _owner_scope(request):
    """Customers act on their own orders; staff may act on any order."""
    return None if request.user.is_staff else str(request.user.pk)


def _list_response(query: OrderListQuery, customer_id=None) -> Response:
    orders, total = providers.get_order_service().list_orders(
        customer_id=customer_id,
        status=query.status,
        search=query.search,
        page=query.page,
        limit=query.limit,
    )
    return Response(
        {
            "count": total,
            "page": query.page,
            "limit": query.limit,
            "results": [dump(OrderReadDTO.from_domain(o)) for o in orders],
        },
        status=status.HTTP_200_OK,
    )


class OrdersCollectionView(APIView):
    """List the caller's orders (GET) or place a new order (POST)."""

    throttle_classes = [ScopedRateThrottle]

    def get_throttles(self):
        # DRF evaluates throttles in initial(), before get/post
        self.throttle_scope = "orders_list" if self.request.method == "GET" else "orders_create"
        return [throttle() for throttle in self.throttle_classes]

    def get(self, request):
        try:
            query = OrderListQuery.model_validate(request.query_params.dict())
        except ValidationError as e:
            return _validation_response(e)
        return _list_response(query, customer_id=str(request.user.pk))

    def post(self, request):
        """Create a new order.

        Returns:
            Response: One of the following responses.
            - 201 with ``{order, paymentQR}`` when the order is created.
            - Replay of the stored response for a retried idempotency key.
            - 409 ``IDEMPOTENCY_CONFLICT`` when the key is reused with a
              different payload.
            - 400 ``VALIDATION_ERROR`` or a domain validation code.
            - 404 ``PRODUCT_NOT_FOUND``.
            - 422 ``INSUFFICIENT_STOCK``.
            - 503 ``UPSTREAM_UNAVAILABLE`` when the catalog is unreachable.
        """
        idem_key = request.headers.get("Idempotency-Key")
        user_id = str(request.user.pk)

        # 1) Pydantic validation
        try:
            dto = CreateOrderDTO.model_validate(request.data)
        except ValidationError as e:
            return _validation_response(e)

        # 2) Idempotency get-or-create
        rec = None
        if idem_key:
            try:
                existing, rec = get_or_create_idempotent(idem_key, request.data, scope=user_id)
            except ValueError:
                return Response({"detail": "IDEMPOTENCY_CONFLICT"}, status=status.HTTP_409_CONFLICT)
            if existing:
                if not rec.response_status:
                    return Response({"detail": "IDEMPOTENCY_IN_PROGRESS"}, status=status.HTTP_409_CONFLICT)
                resp = Response(rec.response_body, status=rec.response_status)
                resp["Idempotent-Replay"] = "true"
                return resp

        # 3) Domain
        try:
            placed = providers.get_order_service().create_order(dto.to_command(request.user))
        except HANDLED_ERRORS as e:
            resp = _error_response(e)
            if rec and resp.status_code < 500:
                finalize(rec, resp.status_code, resp.data)
            elif rec:
                # transient failure: release the key so the client can retry
                rec.delete()
            return resp
        except Exception:
            if rec:
                rec.delete()
            raise

        # 4) Response
        body = {"order": dump(OrderReadDTO.from_domain(placed.order)), "paymentQR": payment_qr_payload(placed.payment_qr)}
        if rec:
            finalize(rec, status.HTTP_201_CREATED, body, order_id=placed.order.id)
        return Response(body, status=status.HTTP_201_CREATED)


class RetrieveOrderView(APIView):
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_detail"

    def get(self, request, oid):
        try:
            order = providers.get_order_service().get_order(oid, customer_id=str(request.user.pk))
        except HANDLED_ERRORS as e:
            return _error_response(e)
        return Response(dump(OrderReadDTO.from_domain(order)), status=status.HTTP_200_OK)


class ConfirmPaymentView(APIView):
    """Record a payment reference and confirm the order."""

    def post(self, request, oid):
        try:
            dto = ConfirmPaymentDTO.model_validate(request.data)
        except ValidationError as e:
            return _validation_response(e)
        try:
            order = providers.get_order_service().confirm_payment(
                oid,
                transaction_id=dto.transaction_id,
                method=dto.payment_method,
                customer_id=_owner_scope(request),
            )
        except HANDLED_ERRORS as e:
            return _error_response(e)
        return Response(dump(OrderReadDTO.from_domain(order)), status=status.HTTP_200_OK)


class CancelOrderView(APIView):
    def post(self, request, oid):
        try:
            dto = CancelOrderDTO.model_validate(request.data or {})
        except ValidationError as e:
            return _validation_response(e)
        try:
            order = providers.get_order_service().cancel_order(
                oid, reason=dto.reason, customer_id=_owner_scope(request)
            )
        except HANDLED_ERRORS as e:
            return _error_response(e)
        return Response(dump(OrderReadDTO.from_domain(order)), status=status.HTTP_200_OK)


class TrackOrderView(APIView):
    """Public order tracking by order number or id."""

    permission_classes = [AllowAny]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_track"

    def get(self, request, ref: str):
        try:
            tracking = providers.get_order_service().track_order(ref)
        except HANDLED_ERRORS as e:
            return _error_response(e)
        return Response(dump(TrackingReadDTO.from_domain(tracking)), status=status.HTTP_200_OK)


# ---------------- Admin ---------------- #

class AdminOrdersView(APIView):
    permission_classes = [IsAdminUser]

    def get(self, request):
        try:
            query = OrderListQuery.model_validate(request.query_params.dict())
        except ValidationError as e:
            return _validation_response(e)
        return _list_response(query)


class AdminOrderDetailView(APIView):
    permission_classes = [IsAdminUser]

    def get(self, request, oid):
        try:
            order = providers.get_order_service().get_order(oid)
        except HANDLED_ERRORS as e:
            return _error_response(e)
        return Response(dump(OrderReadDTO.from_domain(order)), status=status.HTTP_200_OK)

    def delete(self, request, oid):
        try:
            providers.get_order_service().delete_order(oid)
        except HANDLED_ERRORS as e:
            return _error_response(e)
        return Response(status=status.HTTP_204_NO_CONTENT)


class AdminOrderStatusView(APIView):
    """Apply a status transition, with tracking details when shipping."""

    permission_classes = [IsAdminUser]

    def put(self, request, oid):
        try:
            dto = UpdateStatusDTO.model_validate(request.data)
        except ValidationError as e:
            return _validation_response(e)
        try:
            order = providers.get_order_service().update_status(
                oid,
                dto.status,
                note=dto.note,
                tracking=dto.tracking(),
                updated_by=str(request.user.pk),
            )
        except HANDLED_ERRORS as e:
            return _error_response(e)
        return Response(dump(OrderReadDTO.from_domain(order)), status=status.HTTP_200_OK)


class AdminOrderNotificationsView(APIView):
    """Send an order event's notifications again, e.g. after a channel failed."""

    permission_classes = [IsAdminUser]

    def post(self, request, oid):
        try:
            dto = ResendNotificationsDTO.model_validate(request.data or {})
        except ValidationError as e:
            return _validation_response(e)
        try:
            order, results = providers.get_order_service().resend_notifications(oid, event=dto.event)
        except HANDLED_ERRORS as e:
            return _error_response(e)
        return Response(
            {"order": dump(OrderReadDTO.from_domain(order)), "results": notification_results_payload(results)},
            status=status.HTTP_200_OK,
        )
