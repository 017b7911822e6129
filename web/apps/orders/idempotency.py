"""Idempotency-Key handling for order creation.

A checkout retried with the same ``Idempotency-Key`` must not create (and
debit stock for) a second order. The first request claims the key and later
stores its response; a retry with the same payload replays that response,
and a retry with a different payload is a conflict.

Keys are scoped per user so two customers can never replay each other's
responses.
"""

import hashlib
import json
from typing import Optional, Tuple

from django.core.serializers.json import DjangoJSONEncoder
from django.db import IntegrityError, transaction

from .models import IdempotencyKey


def _hash(payload: dict) -> str:
    """Stable SHA-256 of a JSON payload (sorted keys, compact separators)."""
    body = json.dumps(payload, sort_keys=True, separators=(",", ":"), cls=DjangoJSONEncoder)
    return hashlib.sha256(body.encode("utf-8")).hexdigest()


def scoped_key(key: str, scope: Optional[str]) -> str:
    return f"{scope}:{key}" if scope else key


@transaction.atomic
def get_or_create_idempotent(key: str, payload: dict, scope: Optional[str] = None) -> Tuple[bool, IdempotencyKey]:
    """Claim ``key`` for this request, or return the existing claim.

    Args:
        key: Client-provided idempotency key.
        payload: Request body; its hash detects key reuse with new data.
        scope: Owner of the key, usually the user id.

    Returns:
        tuple[bool, IdempotencyKey]: ``(existing, rec)``. ``existing`` is
        False when the key was claimed by this call.

    Raises:
        ValueError: ``IDEMPOTENCY_CONFLICT`` when the key was used with a
            different payload.
    """
    full_key = scoped_key(key, scope)
    h = _hash(payload)

    try:
        # savepoint: an IntegrityError only rolls back this block
        with transaction.atomic():
            rec = IdempotencyKey.objects.create(key=full_key, request_hash=h, response_status=0, response_body={})
            return False, rec
    except IntegrityError:
        rec = IdempotencyKey.objects.select_for_update().get(key=full_key)
        if rec.request_hash != h:
            raise ValueError("IDEMPOTENCY_CONFLICT")
        return True, rec


def finalize(rec: IdempotencyKey, status_code: int, body: dict, order_id=None) -> None:
    """Store the response so retries can replay it without side effects."""
    rec.response_status = status_code
    rec.response_body = json.loads(json.dumps(body, cls=DjangoJSONEncoder))
    fields = ["response_status", "response_body"]
    if order_id is not None:
        rec.order_id = order_id
        fields.append("order_id")
    rec.save(update_fields=fields)
