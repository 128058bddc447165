"""Merging desired Lambda@Edge bindings into a distribution configuration.

The merge is additive per event type: a desired binding is appended when
its event type is absent and its ARN is overwritten in place when it
differs. Bindings for other event types are never removed or reordered,
so associations managed elsewhere survive a reconciliation.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from .models import DesiredBinding

logger = logging.getLogger(__name__)


def _find_association(items: list[dict[str, Any]], event_type: str) -> dict[str, Any] | None:
    for item in items:
        if item.get("EventType") == event_type:
            return item
    return None


def associate_functions_to_behavior(
    behavior: dict[str, Any],
    bindings: Iterable[DesiredBinding],
) -> bool:
    """Apply desired bindings to one cache behavior.

    Args:
        behavior: A DefaultCacheBehavior or CacheBehaviors item, modified in place.
        bindings: Desired bindings in declaration order.

    Returns:
        True if the behavior was modified.
    """
    associations = behavior.get("LambdaFunctionAssociations") or {}
    items: list[dict[str, Any]] = list(associations.get("Items") or [])
    changed = False

    for binding in bindings:
        event_type = binding.event_type.value
        existing = _find_association(items, event_type)

        if existing is None:
            logger.info(
                f"Adding new Lamba@Edge association for {event_type}: {binding.function_arn}",
                extra={"event_type": event_type, "function_arn": binding.function_arn},
            )
            items.append({"EventType": event_type, "LambdaFunctionARN": binding.function_arn})
            changed = True
        elif existing.get("LambdaFunctionARN") != binding.function_arn:
            logger.info(
                f"Updating {event_type} to use {binding.function_arn} "
                f"(was {existing.get('LambdaFunctionARN')})",
                extra={
                    "event_type": event_type,
                    "function_arn": binding.function_arn,
                    "previous_arn": existing.get("LambdaFunctionARN"),
                },
            )
            existing["LambdaFunctionARN"] = binding.function_arn
            changed = True

    # Untouched behaviors are left exactly as fetched
    if changed:
        associations["Items"] = items
        associations["Quantity"] = len(items)
        behavior["LambdaFunctionAssociations"] = associations

    return changed


def merge_distribution_config(
    config: dict[str, Any],
    bindings: list[DesiredBinding],
) -> bool:
    """Apply desired bindings to every behavior of a distribution.

    The default behavior is merged first, then each additional cache
    behavior in order.

    Args:
        config: CloudFront DistributionConfig, modified in place.
        bindings: Desired bindings for this distribution.

    Returns:
        True if at least one behavior was modified.
    """
    changed = False

    default_behavior = config.get("DefaultCacheBehavior")
    if default_behavior is not None:
        changed = associate_functions_to_behavior(default_behavior, bindings)

    cache_behaviors = config.get("CacheBehaviors") or {}
    for behavior in cache_behaviors.get("Items") or []:
        behavior_changed = associate_functions_to_behavior(behavior, bindings)
        changed = changed or behavior_changed

    return changed
