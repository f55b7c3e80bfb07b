"""
Failure Policies

Every operation that touches an external collaborator (catalog, store)
has exactly one entry here saying what happens when that collaborator
fails:

- FAIL: the typed error propagates to the caller.
- DEGRADE: the error is logged and the caller continues with a fallback
  value; the surrounding request still succeeds.
- RETRY: the error is logged, the caller leaves its state untouched and the
  operation is attempted again on the next scheduled run.
"""

import enum
import logging
from collections.abc import Awaitable
from typing import Any, TypeVar

from catalog_search.exceptions import CatalogUnavailableError, StoreFailureError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ErrorPolicy(str, enum.Enum):
    RETRY = "retry"
    DEGRADE = "degrade"
    FAIL = "fail"


OPERATION_POLICIES: dict[str, ErrorPolicy] = {
    # Search path
    "search.catalog": ErrorPolicy.FAIL,
    "search.record_query": ErrorPolicy.DEGRADE,
    "search.record_history": ErrorPolicy.DEGRADE,
    "suggestions.history": ErrorPolicy.DEGRADE,
    "suggestions.catalog": ErrorPolicy.DEGRADE,
    # Owner-scoped CRUD
    "history.list": ErrorPolicy.FAIL,
    "history.delete_one": ErrorPolicy.FAIL,
    "history.clear": ErrorPolicy.FAIL,
    "history.save": ErrorPolicy.FAIL,
    "clicks.record": ErrorPolicy.FAIL,
    "clicks.by_product": ErrorPolicy.FAIL,
    "clicks.by_owner": ErrorPolicy.FAIL,
    # Session lifecycle
    "session.close": ErrorPolicy.FAIL,
    "session.sweep_cascade": ErrorPolicy.RETRY,
    "session.orphan_scan": ErrorPolicy.RETRY,
    # Analytics reads
    "analytics.top_products": ErrorPolicy.FAIL,
    "analytics.top_terms": ErrorPolicy.FAIL,
    "analytics.trends": ErrorPolicy.FAIL,
    "analytics.stats": ErrorPolicy.FAIL,
    "analytics.export": ErrorPolicy.FAIL,
}

COLLABORATOR_ERRORS = (StoreFailureError, CatalogUnavailableError)


def policy_for(operation: str) -> ErrorPolicy:
    """Look up the policy for an operation. Unknown operations fail loudly."""
    try:
        return OPERATION_POLICIES[operation]
    except KeyError:
        raise KeyError(f"No failure policy registered for operation '{operation}'") from None


async def apply_policy(operation: str, awaitable: Awaitable[T], fallback: Any = None) -> T:
    """
    Await a collaborator call under the operation's failure policy.

    Only collaborator errors are subject to the policy; programming errors
    always propagate.

    Args:
        operation: Key in OPERATION_POLICIES
        awaitable: The pending collaborator call
        fallback: Value returned when the policy degrades or defers

    Returns:
        The call's result, or ``fallback`` when the failure was absorbed
    """
    policy = policy_for(operation)
    try:
        return await awaitable
    except COLLABORATOR_ERRORS as exc:
        if policy is ErrorPolicy.FAIL:
            raise
        if policy is ErrorPolicy.RETRY:
            logger.error(f"[{operation}] failed, will retry on next run: {exc.message}", exc_info=True)
        else:
            logger.warning(f"[{operation}] failed, continuing degraded: {exc.message}", exc_info=True)
        return fallback
