"""
Idempotency guard for payment-provider webhooks.

A delivery is a duplicate only when the exact (transaction_id, status)
pair was already processed; a transaction progressing from Pending to
Success is processed twice, once per status.

Two layers:
    - Durable: WebhookEvent has a unique (transaction_id, payment_status)
      constraint. claim() inserts inside a savepoint and reports False
      when another delivery got there first. This is the correctness
      mechanism and works across processes and restarts.
    - Cache: last seen status per transaction id in the Django cache
      (django-redis in production) with a short TTL. A hit skips the
      database; a miss falls through to the durable check.

The guard is constructed per request (or per worker) and closed when
done; it holds no module-level state.

Usage:
    from payments.webhooks.guard import WebhookIdempotencyGuard

    with WebhookIdempotencyGuard() as guard:
        if guard.seen(txn_id, "Success"):
            return ok("already processed")
        with transaction.atomic():
            if not guard.claim(txn_id, "Success", payload):
                return ok("already processed")
            ...
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.conf import settings
from django.core.cache import caches
from django.db import IntegrityError, transaction
from django.utils import timezone

from payments.models import WebhookEvent
from payments.state_machines import WebhookEventStatus

if TYPE_CHECKING:
    from typing import Any

logger = logging.getLogger(__name__)

CACHE_KEY_PREFIX = "payments:webhook:last_status:"
DEFAULT_TTL_SECONDS = 300


class WebhookIdempotencyGuard:
    """
    Deduplicates provider callbacks by (transaction id, status).

    Args:
        cache: Django cache backend (defaults to the "default" cache)
        ttl: Seconds a seen status stays in the cache
    """

    def __init__(self, cache=None, ttl: int | None = None):
        self._cache = cache if cache is not None else caches["default"]
        self.ttl = ttl or getattr(
            settings, "WEBHOOK_DEDUP_TTL_SECONDS", DEFAULT_TTL_SECONDS
        )
        self._closed = False

    def __enter__(self) -> WebhookIdempotencyGuard:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # =========================================================================
    # Queries
    # =========================================================================

    def seen(self, transaction_id: str, status: str) -> bool:
        """True if this exact (transaction_id, status) was already processed."""
        self._check_open()
        if self._cache_get(transaction_id) == status:
            return True
        return WebhookEvent.objects.filter(
            transaction_id=transaction_id, payment_status=status
        ).exists()

    # =========================================================================
    # Recording
    # =========================================================================

    def claim(
        self,
        transaction_id: str,
        status: str,
        payload: dict[str, Any] | None = None,
    ) -> bool:
        """
        Atomically record the pair; False if it was already recorded.

        Call inside the transaction that applies the webhook: if that
        transaction rolls back, the claim goes with it and a provider
        retry is processed normally. The cache is only warmed on commit.
        """
        self._check_open()
        try:
            with transaction.atomic():
                WebhookEvent.objects.create(
                    transaction_id=transaction_id,
                    payment_status=status,
                    payload=payload or {},
                    processed_at=timezone.now(),
                )
        except IntegrityError:
            logger.info(
                "Webhook already claimed",
                extra={"transaction_id": transaction_id, "status": status},
            )
            return False

        transaction.on_commit(lambda: self._cache_set(transaction_id, status))
        return True

    def mark_seen(
        self,
        transaction_id: str,
        status: str,
        payload: dict[str, Any] | None = None,
        outcome: str = WebhookEventStatus.PROCESSED,
    ) -> WebhookEvent:
        """Record the pair (idempotent) and warm the cache."""
        self._check_open()
        event, created = WebhookEvent.objects.get_or_create(
            transaction_id=transaction_id,
            payment_status=status,
            defaults={
                "payload": payload or {},
                "status": outcome,
                "processed_at": timezone.now(),
            },
        )
        if not created and event.status != outcome:
            event.status = outcome
            event.save(update_fields=["status", "updated_at"])
        self._cache_set(transaction_id, status)
        return event

    def close(self) -> None:
        """Release the cache reference; the guard cannot be used afterwards."""
        self._cache = None
        self._closed = True

    # =========================================================================
    # Cache helpers
    # =========================================================================

    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeError("WebhookIdempotencyGuard is closed")

    @staticmethod
    def _key(transaction_id: str) -> str:
        return f"{CACHE_KEY_PREFIX}{transaction_id}"

    def _cache_get(self, transaction_id: str) -> str | None:
        try:
            return self._cache.get(self._key(transaction_id))
        except Exception as e:
            # Cache outage degrades to the durable check
            logger.warning(
                f"Webhook dedup cache read failed: {type(e).__name__}",
                extra={"transaction_id": transaction_id},
            )
            return None

    def _cache_set(self, transaction_id: str, status: str) -> None:
        if self._cache is None:
            return
        try:
            self._cache.set(self._key(transaction_id), status, timeout=self.ttl)
        except Exception as e:
            logger.warning(
                f"Webhook dedup cache write failed: {type(e).__name__}",
                extra={"transaction_id": transaction_id},
            )
