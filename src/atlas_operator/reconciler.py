"""State reconciler: the per-resource control loop.

One pass loads the resource, resolves its version handler, runs the callback
of the current lifecycle state and persists whatever the callback decided.
The reconciler never hardcodes transitions; it applies Result.next_state.
"""

from __future__ import annotations

import copy
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

from . import metrics
from .config import OperatorConfig
from .constants import (
    ANNOTATION_REAPPLY_TIMESTAMP,
    API_GROUP_VERSION,
    CONTROLLER_NAME,
    FINALIZER,
    REASON_DELETION_PROTECTION,
)
from .dispatcher import VersionDispatcher
from .exceptions import (
    AtlasAPIError,
    ConflictError,
    DeletionProtectionError,
    OperatorError,
    TranslationError,
    ValidationError,
)
from .handlers.base import StateHandler
from .logging import log_resource_event
from .protection import reconciliation_should_be_skipped
from .state import (
    PENDING_STATES,
    SETTLED_STATES,
    LifecycleState,
    Result,
    get_state,
    next_state,
    observed_generation_for,
    ready_for_state,
    reapply_period,
    reapply_timestamp,
    select_state,
)
from .store import KubeObjectStore
from .tracing import add_span_attribute, trace_span
from .utils.conditions import (
    domain_condition,
    find_condition,
    first_failing_domain,
    merge_conditions,
    remove_conditions,
    set_ready_condition,
    set_state_condition,
)
from .utils.context import with_correlation_id
from .utils.errors import sanitize_error_message
from .utils.events import (
    EventRecorder,
    emit_deletion_protection,
    emit_reconcile_failed,
    emit_state_changed,
    emit_validate_failed,
)

logger = logging.getLogger(__name__)

MAX_CONFLICT_RETRIES = 3

_CALLBACKS: dict[LifecycleState, str] = {
    LifecycleState.INITIAL: "handle_initial",
    LifecycleState.IMPORT_REQUESTED: "handle_import_requested",
    LifecycleState.IMPORTED: "handle_imported",
    LifecycleState.CREATING: "handle_creating",
    LifecycleState.CREATED: "handle_created",
    LifecycleState.UPDATING: "handle_updating",
    LifecycleState.UPDATED: "handle_updated",
    LifecycleState.DELETION_REQUESTED: "handle_deletion_requested",
    LifecycleState.DELETING: "handle_deleting",
}

# Errors that need a user fix; reported as validation failures.
_HELD_ERRORS = (ValidationError, TranslationError, DeletionProtectionError)


@dataclass
class ReconcileOutcome:
    """What the work queue should do with a key after a pass."""

    requeue_after: float | None = None
    error: Exception | None = None
    # Retry with the queue's per-key exponential backoff instead of requeue_after.
    backoff: bool = False


def run_callback(handler: StateHandler, state: LifecycleState, obj: dict[str, Any]) -> Result:
    """Invoke the handler callback bound to state."""
    return getattr(handler, _CALLBACKS[state])(obj)


class StateReconciler:
    """Drives one resource instance through its lifecycle.

    Args:
        store: Kubernetes object store
        dispatcher: Version dispatcher resolving the handler per pass
        config: Operator configuration
        events: Event recorder; no events are emitted when None
        clock: Source of the current time in epoch seconds
    """

    def __init__(
        self,
        store: KubeObjectStore,
        dispatcher: VersionDispatcher,
        config: OperatorConfig,
        events: EventRecorder | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.config = config
        self.events = events
        self.clock = clock

    def reconcile(self, kind: str, namespace: str, name: str) -> ReconcileOutcome:
        """Run one pass over kind namespace/name.

        A compare-and-swap conflict restarts the whole pass from a fresh read.
        Errors outside the OperatorError taxonomy propagate to the caller.
        """
        start_time = time.time()
        result_label = "error"
        with with_correlation_id(), trace_span(
            "reconcile",
            attributes={"k8s.kind": kind, "k8s.namespace": namespace, "k8s.name": name},
        ):
            try:
                conflict: ConflictError | None = None
                for attempt in range(MAX_CONFLICT_RETRIES):
                    try:
                        outcome = self.reconcile_once(kind, namespace, name)
                    except ConflictError as e:
                        conflict = e
                        logger.info(f"{kind} {namespace}/{name}: {e.message} (attempt {attempt + 1})")
                        continue
                    result_label = "success" if outcome.error is None else "failed"
                    return outcome
                result_label = "failed"
                return ReconcileOutcome(error=conflict, backoff=True)
            finally:
                metrics.reconcile_total.labels(kind=kind, result=result_label).inc()
                metrics.reconcile_duration_seconds.labels(kind=kind).observe(time.time() - start_time)

    def reconcile_once(self, kind: str, namespace: str, name: str) -> ReconcileOutcome:
        obj = self.store.get(kind, namespace, name)
        if obj is None:
            logger.debug(f"{kind} {namespace}/{name} is gone, nothing to do")
            return ReconcileOutcome()
        obj.setdefault("kind", kind)
        obj.setdefault("apiVersion", API_GROUP_VERSION)
        meta = obj["metadata"]
        status = obj.get("status") or {}
        prev_conditions = status.get("conditions") or []
        recorded = get_state(prev_conditions)

        if reconciliation_should_be_skipped(obj):
            self._log(obj, "Skipping reconciliation by annotation", reason="Skipped")
            if recorded == LifecycleState.DELETED.value:
                self.store.remove_finalizer(obj)
            return ReconcileOutcome()

        deleting = bool(meta.get("deletionTimestamp"))
        if deleting and FINALIZER not in (meta.get("finalizers") or []):
            return ReconcileOutcome()
        if not deleting:
            obj = self.store.ensure_finalizer(obj)

        current = select_state(obj, recorded)
        try:
            state = LifecycleState(current)
        except ValueError:
            state = None
        if state not in _CALLBACKS:
            raise ValueError(f"unsupported state {current!r}")
        add_span_attribute("atlas.state", state.value)

        error: OperatorError | None = None
        try:
            handler = self.dispatcher.resolve(obj)
        except ConflictError:
            raise
        except OperatorError as e:
            if state == LifecycleState.DELETION_REQUESTED and isinstance(e, (ValidationError, TranslationError)):
                # No handler can run for this spec; nothing was created through it.
                self._log(obj, f"Releasing {kind} with unresolvable spec: {e.message}", reason=e.reason)
                self.store.remove_finalizer(obj)
                return ReconcileOutcome()
            error = e
            result = next_state(state)
        else:
            try:
                result = run_callback(handler, state, obj)
            except ConflictError:
                raise
            except OperatorError as e:
                error = e
                result = next_state(state)
            finally:
                handler.close()

        return self.apply(obj, state, result, error)

    def apply(
        self,
        obj: dict[str, Any],
        current: LifecycleState,
        result: Result,
        error: OperatorError | None,
    ) -> ReconcileOutcome:
        """Persist the outcome of one callback and pick the requeue."""
        kind = obj["kind"]
        meta = obj["metadata"]
        status = obj.get("status") or {}
        prev_conditions = status.get("conditions") or []
        target = LifecycleState(result.next_state)

        if target != current:
            metrics.state_transitions_total.labels(
                kind=kind, from_state=current.value, to_state=target.value
            ).inc()

        if target == LifecycleState.DELETED:
            self.store.remove_finalizer(obj)
            self._log(obj, f"{kind} released: {result.message}", reason="Deleted")
            return ReconcileOutcome()

        annotations = dict(result.annotations)
        reapply_after = None
        if error is None and target in SETTLED_STATES and result.requeue_after is None:
            try:
                reapply_after = self.reapply(obj, annotations)
            except ValueError as e:
                error = ValidationError(str(e))

        generation = meta.get("generation", 0)
        observed_generation = observed_generation_for(generation, prev_conditions, target)
        conditions = remove_conditions(copy.deepcopy(prev_conditions), result.clear_conditions)
        updates = list(result.conditions)
        if isinstance(error, DeletionProtectionError):
            updates.append(domain_condition(error.condition_type, False, error.message, REASON_DELETION_PROTECTION))
        conditions = merge_conditions(conditions, updates, observed_generation)

        state_message = error.message if error is not None else result.message
        conditions = set_state_condition(conditions, target.value, error is None, state_message, observed_generation)

        ready, reason, message = ready_for_state(target)
        failing = first_failing_domain(conditions)
        if error is not None:
            ready, reason, message = False, error.reason, error.message
        elif failing is not None:
            ready, reason, message = False, failing.get("reason", ""), failing.get("message", "")
        conditions = set_ready_condition(conditions, ready, reason, message, observed_generation)

        new_status = copy.deepcopy(status)
        new_status.update(copy.deepcopy(result.status))
        new_status["conditions"] = conditions
        if new_status != status:
            obj = self.store.replace_status(obj, new_status)

        current_annotations = obj["metadata"].get("annotations") or {}
        changed = {key: value for key, value in annotations.items() if current_annotations.get(key) != value}
        if changed:
            self.store.patch_metadata(obj, annotations=changed)

        metrics.resource_status_total.labels(kind=kind, status="ready" if ready else "not_ready").inc()
        self._report(obj, current, target, result, error, prev_conditions)
        return self.requeue(target, result, error, failing, reapply_after)

    def reapply(self, obj: dict[str, Any], annotations: dict[str, str]) -> float | None:
        """Stamp the reapply timestamp when due and return the delay until the next reapply.

        Raises:
            ValueError: If the reapply annotations are malformed
        """
        current = obj["metadata"].get("annotations") or {}
        period = reapply_period(current)
        if period is None:
            return None
        now = self.clock()
        stamped = reapply_timestamp(current)
        if stamped is None or stamped + period <= now:
            annotations[ANNOTATION_REAPPLY_TIMESTAMP] = str(int(now * 1000))
            return period
        return stamped + period - now

    def requeue(
        self,
        target: LifecycleState,
        result: Result,
        error: OperatorError | None,
        failing: dict[str, Any] | None,
        reapply_after: float | None,
    ) -> ReconcileOutcome:
        if error is not None:
            if isinstance(error, AtlasAPIError) and error.transient:
                return ReconcileOutcome(error=error, backoff=True)
            return ReconcileOutcome(requeue_after=self.config.validation_requeue_seconds, error=error)
        if result.requeue_after is not None:
            return ReconcileOutcome(requeue_after=result.requeue_after)
        if failing is not None:
            return ReconcileOutcome(requeue_after=self.config.validation_requeue_seconds)
        if target in PENDING_STATES or target in (LifecycleState.INITIAL, LifecycleState.IMPORT_REQUESTED):
            return ReconcileOutcome(requeue_after=self.config.pending_requeue_seconds)
        if reapply_after is not None:
            return ReconcileOutcome(requeue_after=min(reapply_after, self.config.sync_period_seconds))
        return ReconcileOutcome(requeue_after=self.config.sync_period_seconds)

    def _report(
        self,
        obj: dict[str, Any],
        current: LifecycleState,
        target: LifecycleState,
        result: Result,
        error: OperatorError | None,
        prev_conditions: list[dict[str, Any]],
    ) -> None:
        kind = obj["kind"]
        for cond in result.conditions:
            prev = find_condition(prev_conditions, cond["type"])
            already_held = prev is not None and prev.get("reason") == REASON_DELETION_PROTECTION
            if cond.get("reason") == REASON_DELETION_PROTECTION and not already_held:
                emit_deletion_protection(self.events, obj, cond.get("message", ""))

        if error is None:
            if target != current:
                emit_state_changed(self.events, obj, current.value, target.value)
                self._log(obj, f"State changed from {current.value} to {target.value}", reason="StateChanged")
            return

        metrics.error_total.labels(kind=kind, error_type=type(error).__name__).inc()
        message = sanitize_error_message(error.message)
        if isinstance(error, DeletionProtectionError):
            emit_deletion_protection(self.events, obj, message)
        elif isinstance(error, _HELD_ERRORS):
            emit_validate_failed(self.events, obj, message)
        else:
            emit_reconcile_failed(self.events, obj, message)
        self._log(obj, f"Reconciliation failed: {message}", reason=error.reason, level=logging.WARNING)

    def _log(self, obj: dict[str, Any], message: str, reason: str, level: int = logging.INFO) -> None:
        meta = obj.get("metadata", {})
        log_resource_event(
            logger,
            controller=CONTROLLER_NAME,
            resource_kind=obj.get("kind", ""),
            resource_name=meta.get("name", "unknown"),
            namespace=meta.get("namespace", "default"),
            uid=meta.get("uid", "unknown"),
            event="reconcile",
            reason=reason,
            message=message,
            level=level,
        )
