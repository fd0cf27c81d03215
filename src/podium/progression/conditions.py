"""Achievement condition parsing and evaluation. Pure, no I/O."""

from __future__ import annotations

import logging
from typing import Any, Literal

from pydantic import BaseModel, ValidationError

from podium.errors import ProgressionValidationError
from podium.progression.metrics import Metric, Scope, UserStatsSnapshot, metric_value

logger = logging.getLogger(__name__)

Operator = Literal["gte", "lte", "eq"]


class MinCount(BaseModel):
    """Secondary gate: ``metric`` must be at least ``value`` before the main check runs."""

    metric: str
    value: float


class Condition(BaseModel):
    metric: str
    operator: Operator = "gte"
    value: float
    scope: Scope | None = None
    min_count: MinCount | None = None


def parse_condition(raw: dict[str, Any] | Condition) -> Condition:
    """Validate a stored condition document."""
    if isinstance(raw, Condition):
        return raw
    try:
        return Condition.model_validate(raw)
    except ValidationError as e:
        raise ProgressionValidationError(f"Invalid achievement condition: {e}") from e


def resolve_metric(name: str, snapshot: UserStatsSnapshot, scope: Scope | None = None) -> float:
    """Look up a metric by name. Unknown names log a warning and resolve to 0."""
    try:
        metric = Metric(name)
    except ValueError:
        logger.warning("Unknown metric %r for user %s, resolving to 0", name, snapshot.user_id)
        return 0
    return metric_value(metric, scope or Scope.LIFETIME, snapshot)


def _compare(actual: float, operator: Operator, threshold: float) -> bool:
    if operator == "gte":
        return actual >= threshold
    if operator == "lte":
        return actual <= threshold
    return actual == threshold


def evaluate_condition(condition: dict[str, Any] | Condition, snapshot: UserStatsSnapshot) -> bool:
    """Return True when the snapshot satisfies the condition.

    The min_count gate is checked first, in the condition's scope, and
    short-circuits to False when unmet.
    """
    cond = parse_condition(condition)
    if cond.min_count is not None:
        if resolve_metric(cond.min_count.metric, snapshot, cond.scope) < cond.min_count.value:
            return False
    actual = resolve_metric(cond.metric, snapshot, cond.scope)
    return _compare(actual, cond.operator, cond.value)


def condition_progress(condition: dict[str, Any] | Condition, snapshot: UserStatsSnapshot) -> float:
    """Linear progress towards the threshold in [0, 100].

    Ignores the min_count gate and prerequisites; it is a display hint.
    """
    cond = parse_condition(condition)
    if cond.value == 0:
        return 100.0 if evaluate_condition(cond, snapshot) else 0.0
    actual = resolve_metric(cond.metric, snapshot, cond.scope)
    return max(0.0, min(100.0, actual / cond.value * 100))
