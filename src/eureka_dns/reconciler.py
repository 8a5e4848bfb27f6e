"""Compare the observed address to the published record and fix drift."""

from __future__ import annotations

import concurrent.futures
import logging
import threading
import time
from typing import Any, Callable

from eureka_dns.address import validate_address
from eureka_dns.errors import (
    ProviderError,
    ReconcileError,
    ReconcileTimeout,
    RecordDataMissing,
    RecordNotFound,
)
from eureka_dns.models import DNSRecord, InvocationEvent, Outcome
from eureka_dns.providers import DNSProvider

logger = logging.getLogger(__name__)

RECORD_TYPE = "A"


class Reconciler:
    """Keeps one ``A`` record pointed at the observed address.

    Every invocation reads the record from the provider before deciding, so an
    ambiguous earlier failure (e.g. an upsert whose acknowledgement timed out)
    is corrected by the next invocation without any local bookkeeping.
    """

    def __init__(
        self,
        *,
        dns_provider: DNSProvider,
        zone_id: str,
        record_name: str,
        ttl: int = 300,
        timeout_seconds: float = 30.0,
        clock: Callable[[], float] = time.time,
    ):
        self.dns_provider = dns_provider
        self.zone_id = zone_id
        self.record_name = record_name
        self.ttl = ttl
        self.timeout_seconds = timeout_seconds
        self._clock = clock

    def reconcile(self, observed_address: Any) -> InvocationEvent:
        started = self._clock()
        try:
            address = validate_address(observed_address)
        except ReconcileError as e:
            return self._failed(started, str(observed_address or ""), e)

        cancelled = threading.Event()
        executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="reconcile"
        )
        try:
            future = executor.submit(self._apply, address, cancelled)
            outcome = future.result(timeout=self.timeout_seconds)
        except concurrent.futures.TimeoutError:
            # The worker is abandoned, not joined; it checks the flag before writing.
            cancelled.set()
            error = ReconcileTimeout(
                f"Reconciliation did not finish within {self.timeout_seconds}s; "
                "any in-flight change is uncertain"
            )
            return self._failed(started, address, error)
        except ReconcileError as e:
            return self._failed(started, address, e)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        return InvocationEvent(timestamp=started, outcome=outcome, observed_address=address)

    def _apply(self, address: str, cancelled: threading.Event) -> Outcome:
        record = self._find_record()

        if not record.values:
            raise RecordDataMissing(f"Record {record.name} ({record.type}) has no address values")

        if address in record.values:
            logger.info(f"Address unchanged for {self.record_name}: {address}")
            return Outcome.UNCHANGED

        if cancelled.is_set():
            raise ReconcileTimeout("Deadline passed before upsert; no change was sent")

        logger.info(
            f"Address changed for {self.record_name}: {', '.join(sorted(record.values))} -> {address}"
        )
        ack = self._call_provider(
            self.dns_provider.upsert_record_set,
            self.zone_id,
            self.record_name,
            RECORD_TYPE,
            [address],
            self.ttl,
        )
        logger.info(f"Upserted {self.record_name} -> {address} (ttl {self.ttl}): {ack}")
        return Outcome.UPDATED

    def _find_record(self) -> DNSRecord:
        record = self._call_provider(
            self.dns_provider.find_record, self.zone_id, self.record_name, RECORD_TYPE
        )
        if record is None:
            raise RecordNotFound(f"Record {self.record_name} not found in zone {self.zone_id}")
        return record

    def _call_provider(self, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return fn(*args)
        except ReconcileError:
            raise
        except Exception as e:
            raise ProviderError(f"{self.dns_provider.name} call failed: {e}", e) from e

    def _failed(self, started: float, address: str, error: ReconcileError) -> InvocationEvent:
        cause = getattr(error, "cause", None)
        logger.error(
            f"Reconciliation failed [{error.kind.value}] zone={self.zone_id} "
            f"record={self.record_name} observed={address or '-'}: {error}"
            + (f" (cause: {cause!r})" if cause is not None else "")
        )
        return InvocationEvent(
            timestamp=started,
            outcome=Outcome.FAILED,
            observed_address=address,
            error=error.kind,
            detail=str(error),
        )
