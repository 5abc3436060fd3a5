"""Work Order Builder/Store

Materializes a validated RepairPlan as a WorkOrder and writes it with the
document store's atomic create. Guarantees:

- a plan without steps is never persisted
- an existing record is never overwritten; id/number collisions are retried
  with fresh identifiers (bounded)
- throttling and unavailability are retried with backoff, then surface as
  PersistenceError
"""

import asyncio
import logging
import secrets
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from redis.asyncio import Redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from repair_planner.clients.document_store import DocumentStore
from repair_planner.exceptions import (
    DocumentConflictError,
    DocumentStoreError,
    DocumentStoreUnavailableError,
    DocumentThrottledError,
    PersistenceError,
    PlanValidationError,
)
from repair_planner.models import (
    DiagnosedFault,
    RepairPlan,
    WorkOrder,
    WorkOrderStatus,
    priority_for_severity,
)
from repair_planner.utils import RetryPolicy, create_custom_retry

logger = logging.getLogger(__name__)

DEFAULT_CONTAINER = "WorkOrders"


# =============================================================================
# Work order numbers
# =============================================================================


class WorkOrderNumberAllocator(ABC):
    """Source of human-readable work order numbers"""

    @abstractmethod
    async def next_number(self, now: datetime) -> str:
        pass

    async def aclose(self) -> None:
        """Release any connection the allocator holds."""
        pass


class RandomWorkOrderNumberAllocator(WorkOrderNumberAllocator):
    """WO-YYYYMMDD-XXXXXX with a random hex suffix.

    Uniqueness is enforced by the store's unique key on workOrderNumber; a
    collision comes back as a conflict and a new number is drawn.
    """

    def __init__(self, prefix: str = "WO", token_bytes: int = 3):
        self.prefix = prefix
        self.token_bytes = token_bytes

    async def next_number(self, now: datetime) -> str:
        return f"{self.prefix}-{now:%Y%m%d}-{secrets.token_hex(self.token_bytes).upper()}"


_redis_retry = create_custom_retry(
    max_attempts=3,
    min_wait=1,
    max_wait=4,
    retry_on=(RedisConnectionError, RedisTimeoutError),
)


class RedisWorkOrderNumberAllocator(WorkOrderNumberAllocator):
    """WO-YYYYMMDD-000042 from a monotonic Redis INCR sequence"""

    def __init__(self, redis: Redis, key: str = "repair_planner:work_order_seq", prefix: str = "WO"):
        self.redis = redis
        self.key = key
        self.prefix = prefix

    @_redis_retry
    async def _increment(self) -> int:
        return int(await self.redis.incr(self.key))

    async def next_number(self, now: datetime) -> str:
        sequence = await self._increment()
        return f"{self.prefix}-{now:%Y%m%d}-{sequence:06d}"

    async def aclose(self) -> None:
        await self.redis.aclose()
        logger.info("Redis connection for work order numbers closed")


# =============================================================================
# Builder
# =============================================================================


def build_work_order(
    fault: DiagnosedFault,
    plan: RepairPlan,
    work_order_id: str,
    work_order_number: str,
    created_at: datetime,
) -> WorkOrder:
    """Assemble a new work order in the Created state."""
    if not plan.steps:
        raise PlanValidationError(
            "Refusing to build a work order from a plan without steps",
            context={"machine_id": fault.machine_id, "fault_type": fault.fault_type},
        )
    return WorkOrder(
        id=work_order_id,
        work_order_number=work_order_number,
        machine_id=fault.machine_id,
        fault_type=fault.fault_type,
        root_cause=fault.root_cause,
        severity=fault.severity,
        priority=priority_for_severity(fault.severity),
        plan=plan,
        status=WorkOrderStatus.CREATED,
        created_at_utc=created_at,
    )


# =============================================================================
# Store
# =============================================================================


class WorkOrderStore:
    """Creates and persists work orders"""

    def __init__(
        self,
        document_store: DocumentStore,
        container: str = DEFAULT_CONTAINER,
        number_allocator: Optional[WorkOrderNumberAllocator] = None,
        max_collision_retries: int = 3,
        retry_policy: Optional[RetryPolicy] = None,
        write_timeout: float = 30.0,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ):
        """
        Args:
            document_store: Store providing the atomic create
            container: Container holding work orders
            number_allocator: Work order number source (default: random)
            max_collision_retries: New-identifier retries after a conflict
            retry_policy: Backoff for throttled/unavailable store
            write_timeout: Timeout for one create call (seconds)
            id_factory: Generates work order ids
        """
        self.document_store = document_store
        self.container = container
        self.number_allocator = number_allocator or RandomWorkOrderNumberAllocator()
        self.max_collision_retries = max_collision_retries
        self.retry_policy = retry_policy or RetryPolicy()
        self.write_timeout = write_timeout
        self.id_factory = id_factory

    async def aclose(self) -> None:
        await self.number_allocator.aclose()

    async def _next_number(self, now: datetime) -> str:
        try:
            return await self.number_allocator.next_number(now)
        except RedisError as e:
            raise PersistenceError(f"Could not allocate work order number: {e}")

    async def _is_own_write(self, work_order: WorkOrder) -> Optional[Dict[str, Any]]:
        """After a retried create conflicts, check whether the earlier attempt landed."""
        existing = await self.document_store.read_item(
            self.container, work_order.id, work_order.partition_key
        )
        if existing and existing.get("workOrderNumber") == work_order.work_order_number:
            return existing
        return None

    async def _write(self, work_order: WorkOrder) -> Dict[str, Any]:
        document = work_order.to_document()
        attempts = 0

        async for attempt in self.retry_policy.async_retrying(
            (DocumentThrottledError, DocumentStoreUnavailableError)
        ):
            with attempt:
                attempts += 1
                try:
                    return await asyncio.wait_for(
                        self.document_store.create_item(
                            self.container, document, work_order.partition_key
                        ),
                        timeout=self.write_timeout,
                    )
                except asyncio.TimeoutError:
                    raise DocumentStoreUnavailableError(
                        f"create_item timed out after {self.write_timeout}s"
                    )
                except DocumentConflictError:
                    # A timed-out earlier attempt may have been applied
                    if attempts > 1:
                        existing = await self._is_own_write(work_order)
                        if existing is not None:
                            return existing
                    raise
        raise AssertionError("unreachable")  # pragma: no cover

    async def create_work_order(self, fault: DiagnosedFault, plan: RepairPlan) -> WorkOrder:
        """
        Build and persist a work order for a validated plan.

        Returns:
            The stored work order, including the store's revision tag

        Raises:
            PlanValidationError: If the plan has no steps (nothing is written)
            PersistenceError: If the store stays unavailable or collisions persist
        """
        if not plan.steps:
            raise PlanValidationError(
                "Refusing to persist a work order without repair steps",
                context={"machine_id": fault.machine_id, "fault_type": fault.fault_type},
            )

        for collision in range(self.max_collision_retries + 1):
            now = datetime.now(timezone.utc)
            work_order = build_work_order(
                fault, plan, self.id_factory(), await self._next_number(now), now
            )

            try:
                stored = await self._write(work_order)
            except DocumentConflictError:
                logger.warning(
                    f"Identifier collision for work order {work_order.work_order_number} "
                    f"(id={work_order.id}); retrying with new identifiers "
                    f"({collision + 1}/{self.max_collision_retries})"
                )
                continue
            except (DocumentThrottledError, DocumentStoreUnavailableError) as e:
                raise PersistenceError(
                    f"Document store unavailable: {e}",
                    context={"container": self.container, "machine_id": fault.machine_id},
                )
            except DocumentStoreError as e:
                raise PersistenceError(
                    f"Document store rejected work order: {e}",
                    context={"container": self.container, "machine_id": fault.machine_id},
                )

            persisted = WorkOrder.from_document(stored)
            logger.info(
                f"Work order created: {persisted.work_order_number} (id={persisted.id})"
            )
            return persisted

        raise PersistenceError(
            f"Identifier collisions persisted after {self.max_collision_retries} retries",
            context={"container": self.container, "machine_id": fault.machine_id},
        )
