# -*- coding: utf-8 -*-
"""
Validation Service Setup - ACS Guard Domain Validation

Provides the ``ValidationService`` facade that orchestrates the domain
validation pipeline, plus ``configure_validation_service()`` and
``get_validation_service()`` singleton accessors.

``validate_entity()`` runs four stages in a fixed order:
    1. Field constraints
    2. Domain rules (unique name, cyclic hierarchy, URI pattern, ...)
    3. Business rules, highest priority first, stopping after the first
       Critical violation
    4. Structural invariants (never skipped, never bypassed)

``validate_entities_bulk()`` runs the same pipeline concurrently for every
entity of a batch with the bulk flag set, then runs the cross-entity
invariants once and merges their violations into every entity's result.

Rule faults never escape: each becomes one Error violation naming the rule
and the exception. Only ``ConfigurationError`` reaches callers.

Usage:
    >>> from acsguard.validation.setup import ValidationService
    >>> service = ValidationService()
    >>> result = service.validate_entity(group, "Update", graph=graph)
    >>> if not result.is_valid:
    ...     print(result.error_message())
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from concurrent.futures import as_completed
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from acsguard.exceptions import (
    ConfigurationError,
    RuleExecutionError,
    ValidationTimeoutError,
    format_exception_chain,
)
from acsguard.validation.cache import ValidationCache
from acsguard.validation.config import (
    EntityValidationSettings,
    ValidationConfig,
    get_config,
)
from acsguard.validation.gateways import (
    PermissionEvaluator,
    PersistenceGateway,
    UserContextProvider,
)
from acsguard.validation.graph import EntityGraph
from acsguard.validation.invariants import (
    StructuralInvariants,
    check_field_constraints,
    check_system_invariants,
)
from acsguard.validation.metrics import (
    record_bulk_batch,
    record_critical_short_circuit,
    record_rule_error,
    record_rule_evaluation,
    record_validation,
    record_violation,
    update_system_invariant_violations,
)
from acsguard.validation.models import (
    OPERATION_VERBS,
    Entity,
    OperationType,
    RuleSeverity,
    UserContext,
    ValidationOperationContext,
    ValidationResult,
    Violation,
    ViolationKind,
)
from acsguard.validation.registry import RuleRegistry, build_default_registry
from acsguard.validation.rules import (
    Rule,
    RuleContext,
    subject_label,
    subject_type_name,
)

logger = logging.getLogger(__name__)

RULE_EXECUTION_ERROR = "RULE_EXECUTION_ERROR"
VALIDATION_TIMEOUT = "VALIDATION_TIMEOUT"

OperationLike = Union[OperationType, str]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _result_key(subject: Any) -> str:
    ref = getattr(subject, "ref", None)
    return ref if ref else str(id(subject))


# ===================================================================
# ValidationService facade
# ===================================================================

_singleton_lock = threading.Lock()
_singleton_instance: Optional["ValidationService"] = None


class ValidationService:
    """Unified facade over the domain validation engine.

    Attributes:
        config: ValidationConfig instance.
        cache: ValidationCache shared by rules and the registry.
        registry: RuleRegistry resolving rules per entity type.
        persistence_gateway: Read-only queries (unique names, system
            invariants). Optional.
        permission_evaluator: ``has_permission`` collaborator. Optional.
        user_context_provider: Supplies the caller when a call does not.

    Example:
        >>> service = ValidationService(persistence_gateway=gateway)
        >>> results = service.validate_entities_bulk(users, "Create")
        >>> bad = [ref for ref, r in results.items() if not r.is_valid]
    """

    def __init__(
        self,
        config: Optional[ValidationConfig] = None,
        registry: Optional[RuleRegistry] = None,
        cache: Optional[ValidationCache] = None,
        persistence_gateway: Optional[PersistenceGateway] = None,
        permission_evaluator: Optional[PermissionEvaluator] = None,
        user_context_provider: Optional[UserContextProvider] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """Initialize the Validation Service facade.

        Args:
            config: Optional config. Uses global config if None.
            registry: Rule registry. Default rule set if None.
            cache: Validation cache. A fresh one if None.
            persistence_gateway: Persistence queries collaborator.
            permission_evaluator: Permission evaluation collaborator.
            user_context_provider: Callable returning the current caller.
            clock: Time source handed to time-dependent rules.

        Raises:
            ConfigurationError: If a supplied collaborator does not
                provide the interface the engine needs.
        """
        self.config = config or get_config()

        if persistence_gateway is not None and not isinstance(
            persistence_gateway, PersistenceGateway,
        ):
            raise ConfigurationError(
                "Persistence gateway does not implement the required queries",
                collaborator="persistence_gateway",
            )
        if permission_evaluator is not None and not callable(
            getattr(permission_evaluator, "has_permission", None),
        ):
            raise ConfigurationError(
                "Permission evaluator has no has_permission method",
                collaborator="permission_evaluator",
            )
        if user_context_provider is not None and not callable(user_context_provider):
            raise ConfigurationError(
                "User context provider must be callable",
                collaborator="user_context_provider",
            )
        if registry is not None and not isinstance(registry, RuleRegistry):
            raise ConfigurationError(
                "Rule registry must be a RuleRegistry",
                collaborator="registry",
            )

        if cache is None:
            cache = ValidationCache(
                default_ttl_seconds=self.config.cache_expiration_seconds,
                max_entries=self.config.cache_max_entries,
            )
        self.cache = cache
        if registry is None:
            registry = build_default_registry(self.config, self.cache)
        else:
            registry.bind_cache(self.cache, self.config.rule_cache_ttl_seconds)
        self.registry = registry

        self.persistence_gateway = persistence_gateway
        self.permission_evaluator = permission_evaluator
        self.user_context_provider = user_context_provider
        self.clock = clock or _utcnow

        # Internal metrics
        self._metrics_lock = threading.Lock()
        self._total_validations = 0
        self._failed_validations = 0
        self._bulk_batches = 0
        self._rule_faults = 0
        self._critical_stops = 0
        self._system_runs = 0

        self._started = False
        logger.info(
            "ValidationService facade created (strict=%s, max_depth=%d)",
            self.config.strict_mode, self.config.max_validation_depth,
        )

    # ------------------------------------------------------------------
    # Context helpers
    # ------------------------------------------------------------------

    def _current_user(self, user_context: Optional[UserContext]) -> Optional[UserContext]:
        if user_context is not None:
            return user_context
        if self.user_context_provider is None:
            return None
        return self.user_context_provider()

    def _rule_context(
        self,
        subject: Any,
        graph: EntityGraph,
        operation_type: OperationLike = OperationType.UPDATE,
        user_context: Optional[UserContext] = None,
        operation_data: Optional[Dict[str, Any]] = None,
        is_bulk: bool = False,
    ) -> RuleContext:
        operation = ValidationOperationContext(
            operation_type=operation_type,
            entity=subject,
            operation_data=dict(operation_data or {}),
            is_bulk_operation=is_bulk,
            user_context=self._current_user(user_context),
        )
        return RuleContext(
            operation=operation,
            config=self.config,
            graph=graph,
            cache=self.cache,
            gateway=self.persistence_gateway,
            permission_evaluator=self.permission_evaluator,
            clock=self.clock,
        )

    @staticmethod
    def _graph_view(
        graph: Optional[EntityGraph], subjects: Iterable[Any],
    ) -> EntityGraph:
        """The caller's graph with the candidate entities laid over it."""
        base = graph if graph is not None else EntityGraph()
        return base.with_entities(s for s in subjects if isinstance(s, Entity))

    # ------------------------------------------------------------------
    # Single entity
    # ------------------------------------------------------------------

    def validate_entity(
        self,
        entity: Any,
        operation_type: OperationLike = OperationType.UPDATE,
        graph: Optional[EntityGraph] = None,
        user_context: Optional[UserContext] = None,
        operation_data: Optional[Dict[str, Any]] = None,
    ) -> ValidationResult:
        """Run the full pipeline for one entity or permission.

        Args:
            entity: Entity (User/Group/Role/Resource) or Permission.
            operation_type: Create, Read, Update or Delete.
            graph: Graph the entity's edges resolve through. The entity
                itself is laid over it.
            user_context: Calling principal. Falls back to the provider.
            operation_data: Markers consumed by rules (ApprovalId, ...).

        Returns:
            ValidationResult aggregating every stage.
        """
        if entity is None:
            return ValidationResult.success()
        ctx = self._rule_context(
            entity, self._graph_view(graph, [entity]),
            operation_type, user_context, operation_data,
        )
        return self._validate_one(entity, ctx)

    def _validate_one(self, subject: Any, ctx: RuleContext) -> ValidationResult:
        start = time.perf_counter()
        type_name = subject_type_name(subject)
        settings = self.config.settings_for(type_name)
        violations: List[Violation] = []

        try:
            if settings.enable_constraint_validation:
                violations.extend(check_field_constraints(subject))
                violations.extend(self._run_domain_rules(subject, ctx, settings))
            if settings.enable_business_rule_validation:
                violations.extend(self._run_business_rules(subject, ctx, settings))
            violations.extend(self._run_invariants(subject, ctx.graph, settings))
        except Exception as exc:
            logger.error(
                "Error validating entity of type %s: %s", type_name, exc,
                exc_info=True,
            )
            violations.append(Violation(
                kind=ViolationKind.STRUCTURAL,
                message=f"Validation error: {exc}",
                code=RULE_EXECUTION_ERROR,
                entity_name=subject_label(subject),
            ))

        result = ValidationResult(violations=violations)
        elapsed = time.perf_counter() - start
        self._record(type_name, result, elapsed)
        logger.debug(
            "Entity validation for %s took %.2fms (%d violations)",
            type_name, elapsed * 1000, len(violations),
        )
        return result

    def _run_domain_rules(
        self,
        subject: Any,
        ctx: RuleContext,
        settings: EntityValidationSettings,
    ) -> List[Violation]:
        found: List[Violation] = []
        for rule in self.registry.domain_rules_for(subject_type_name(subject)):
            if not self._should_run(rule, subject, ctx, settings):
                continue
            violation = self._evaluate(rule, subject, ctx)
            if violation is not None:
                found.append(violation)
        return found

    def _run_business_rules(
        self,
        subject: Any,
        ctx: RuleContext,
        settings: EntityValidationSettings,
    ) -> List[Violation]:
        found: List[Violation] = []
        for rule in self.registry.business_rules_for(subject_type_name(subject)):
            if not self._should_run(rule, subject, ctx, settings):
                continue
            violation = self._evaluate(rule, subject, ctx)
            if violation is None:
                continue
            found.append(violation)
            if rule.severity is RuleSeverity.CRITICAL and violation.code != RULE_EXECUTION_ERROR:
                logger.info(
                    "Critical rule %s failed for %s; skipping remaining business rules",
                    rule.rule_id, subject_label(subject),
                )
                record_critical_short_circuit()
                with self._metrics_lock:
                    self._critical_stops += 1
                break
        return found

    @staticmethod
    def _should_run(
        rule: Rule,
        subject: Any,
        ctx: RuleContext,
        settings: EntityValidationSettings,
    ) -> bool:
        if rule.rule_id in settings.skipped_validations:
            return False
        if ctx.is_bulk and rule.skip_in_bulk:
            return False
        return rule.applies_to(subject)

    def _evaluate(self, rule: Rule, subject: Any, ctx: RuleContext) -> Optional[Violation]:
        """Evaluate one rule, turning a fault into an Error violation."""
        record_rule_evaluation(rule.rule_id)
        try:
            return rule.evaluate(subject, ctx)
        except Exception as exc:
            type_name = subject_type_name(subject)
            error = RuleExecutionError(
                f"Rule {rule.rule_id} failed: {exc}",
                rule_id=rule.rule_id,
                entity_type=type_name,
                cause=exc,
            )
            error.__cause__ = exc
            logger.error(
                "Error evaluating rule %s for %s:\n%s",
                rule.rule_id, type_name, format_exception_chain(error),
                exc_info=True,
            )
            record_rule_error(rule.rule_id)
            with self._metrics_lock:
                self._rule_faults += 1
            return Violation(
                kind=rule.kind,
                message=error.message,
                code=RULE_EXECUTION_ERROR,
                rule_id=rule.rule_id,
                severity=RuleSeverity.ERROR,
                entity_name=subject_label(subject),
            )

    def _run_invariants(
        self,
        subject: Any,
        graph: EntityGraph,
        settings: EntityValidationSettings,
    ) -> List[Violation]:
        invariants = StructuralInvariants(self.config, graph)
        try:
            return invariants.validate(
                subject, cascade=settings.enable_cascade_validation,
            )
        except Exception as exc:
            logger.error(
                "Error validating invariants for %s:\n%s",
                subject_type_name(subject), format_exception_chain(exc),
                exc_info=True,
            )
            return [Violation(
                kind=ViolationKind.STRUCTURAL,
                message=f"Invariant validation error: {exc}",
                code=RULE_EXECUTION_ERROR,
                entity_name=subject_label(subject),
            )]

    def _record(self, type_name: str, result: ValidationResult, elapsed: float) -> None:
        record_validation(type_name, result.is_valid, elapsed)
        for violation in result.violations:
            record_violation(violation.kind.value)
        with self._metrics_lock:
            self._total_validations += 1
            if not result.is_valid:
                self._failed_validations += 1

    # ------------------------------------------------------------------
    # Bulk
    # ------------------------------------------------------------------

    def validate_entities_bulk(
        self,
        entities: Iterable[Any],
        operation_type: OperationLike = OperationType.UPDATE,
        graph: Optional[EntityGraph] = None,
        user_context: Optional[UserContext] = None,
        operation_data: Optional[Dict[str, Any]] = None,
        max_workers: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, ValidationResult]:
        """Validate a batch concurrently, then run cross-entity invariants.

        Args:
            entities: Entities (or permissions) to validate.
            operation_type: Operation applied to every entity.
            graph: Graph the batch's edges resolve through.
            user_context: Calling principal.
            operation_data: Markers shared by every entity's context.
            max_workers: Worker bound. Defaults to ``max_concurrency``.
            timeout: Deadline in seconds for the per-entity fan-out.
                Defaults to ``validation_timeout_seconds``.

        Returns:
            Results keyed by each entity's ``ref``. Cross-entity
            violations appear in every result.
        """
        batch = list(entities)
        if not batch:
            return {}

        view = self._graph_view(graph, batch)
        base = self._rule_context(
            None, view, operation_type, user_context, operation_data, is_bulk=True,
        )
        workers = max(1, min(max_workers or self.config.max_concurrency, len(batch)))
        deadline = self.config.validation_timeout_seconds if timeout is None else timeout

        logger.info(
            "Starting bulk validation for %d entities (workers=%d)",
            len(batch), workers,
        )
        record_bulk_batch(len(batch))
        with self._metrics_lock:
            self._bulk_batches += 1

        results: Dict[str, ValidationResult] = {}
        pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="acsguard-bulk")
        futures = {
            pool.submit(self._validate_one, subject, base.for_subject(subject)): subject
            for subject in batch
        }
        try:
            for future in as_completed(futures, timeout=deadline):
                results[_result_key(futures[future])] = future.result()
        except FuturesTimeout:
            error = ValidationTimeoutError(
                f"Bulk validation exceeded {deadline}s",
                timeout_seconds=deadline,
                context={"batch_size": len(batch), "completed": len(results)},
            )
            logger.error("%s", error)
            for future, subject in futures.items():
                key = _result_key(subject)
                if key in results:
                    continue
                future.cancel()
                results[key] = ValidationResult(violations=[Violation(
                    kind=ViolationKind.STRUCTURAL,
                    message=f"Validation did not complete: {error.message}",
                    code=VALIDATION_TIMEOUT,
                    entity_name=subject_label(subject),
                )])
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

        cross = StructuralInvariants(self.config, view).cross_entity(batch)
        if cross:
            logger.info(
                "Cross-entity invariants reported %d violations for batch of %d",
                len(cross), len(batch),
            )
            for violation in cross:
                record_violation(violation.kind.value)
            cross_result = ValidationResult(violations=cross)
            for key in list(results):
                results[key] = results[key].merge(cross_result)

        return {
            _result_key(s): results[_result_key(s)] for s in batch
        }

    # ------------------------------------------------------------------
    # Narrow entry points
    # ------------------------------------------------------------------

    def validate_business_rules_only(
        self,
        entity: Any,
        operation_data: Optional[Dict[str, Any]] = None,
        operation_type: OperationLike = OperationType.UPDATE,
        graph: Optional[EntityGraph] = None,
        user_context: Optional[UserContext] = None,
    ) -> ValidationResult:
        """Business rule stage only, honoring skip lists and the toggle."""
        ctx = self._rule_context(
            entity, self._graph_view(graph, [entity]),
            operation_type, user_context, operation_data,
        )
        settings = self.config.settings_for(subject_type_name(entity))
        return ValidationResult(
            violations=self._run_business_rules(entity, ctx, settings),
        )

    def validate_invariants_only(
        self,
        entity: Any,
        graph: Optional[EntityGraph] = None,
    ) -> ValidationResult:
        """Structural invariant stage only."""
        view = self._graph_view(graph, [entity])
        settings = self.config.settings_for(subject_type_name(entity))
        return ValidationResult(
            violations=self._run_invariants(entity, view, settings),
        )

    async def validate_system_invariants(
        self, timeout: Optional[float] = None,
    ) -> ValidationResult:
        """System-wide invariants through the persistence gateway.

        Args:
            timeout: Deadline in seconds for the gateway queries.
                Defaults to ``validation_timeout_seconds``.

        Raises:
            ConfigurationError: If no persistence gateway is configured.
        """
        if self.persistence_gateway is None:
            raise ConfigurationError(
                "System invariants need a persistence gateway",
                collaborator="persistence_gateway",
            )
        deadline = self.config.validation_timeout_seconds if timeout is None else timeout

        try:
            violations = await asyncio.wait_for(
                check_system_invariants(self.persistence_gateway, self.config),
                timeout=deadline,
            )
        except asyncio.TimeoutError:
            error = ValidationTimeoutError(
                f"System invariant validation exceeded {deadline}s",
                timeout_seconds=deadline,
            )
            logger.error("%s", error)
            violations = [Violation(
                kind=ViolationKind.SYSTEM_INVARIANT,
                message=error.message,
                code=VALIDATION_TIMEOUT,
            )]

        for violation in violations:
            record_violation(violation.kind.value)
        update_system_invariant_violations(len(violations))
        with self._metrics_lock:
            self._system_runs += 1
        logger.info("System invariants checked: %d violations", len(violations))
        return ValidationResult(violations=violations)

    def validate_property(
        self,
        entity: Any,
        property_name: str,
        value: Any,
        graph: Optional[EntityGraph] = None,
        user_context: Optional[UserContext] = None,
    ) -> ValidationResult:
        """Check a prospective value for one property.

        Runs the field constraints on that property and the domain rules
        that target it.
        """
        violations: List[Violation] = []
        if property_name in type(entity).model_fields:
            candidate = entity.model_copy(update={property_name: value})
            violations.extend(
                v for v in check_field_constraints(candidate)
                if property_name in v.member_names
            )

        ctx = self._rule_context(
            entity, self._graph_view(graph, [entity]),
            user_context=user_context,
        )
        rules = self.registry.domain_rules_for(subject_type_name(entity), property_name)
        for rule in rules:
            if not rule.applies_to(entity):
                continue
            record_rule_evaluation(rule.rule_id)
            try:
                violation = rule.evaluate_value(value, entity, ctx)
            except Exception as exc:
                logger.error(
                    "Error evaluating rule %s on property %s: %s",
                    rule.rule_id, property_name, exc, exc_info=True,
                )
                record_rule_error(rule.rule_id)
                violation = Violation(
                    kind=rule.kind,
                    message=f"Rule {rule.rule_id} failed: {exc}",
                    code=RULE_EXECUTION_ERROR,
                    rule_id=rule.rule_id,
                )
            if violation is not None:
                violations.append(violation)
        return ValidationResult(violations=violations)

    def is_operation_allowed(
        self,
        entity: Any,
        operation_type: OperationLike,
        operation_data: Optional[Dict[str, Any]] = None,
        user_context: Optional[UserContext] = None,
        graph: Optional[EntityGraph] = None,
    ) -> bool:
        """True only if the caller holds the verb and business rules pass.

        The permission check targets ``/{type name lower}`` with the verb
        mapped from the operation (Create POST, Read GET, Update PUT,
        Delete DELETE). It is skipped without a caller or an evaluator.
        """
        operation = OperationType(operation_type)
        user = self._current_user(user_context)
        if user is not None and self.permission_evaluator is not None:
            resource = f"/{subject_type_name(entity).lower()}"
            verb = OPERATION_VERBS[operation]
            try:
                allowed = self.permission_evaluator.has_permission(
                    user.user_id, resource, verb,
                )
            except Exception as exc:
                logger.error(
                    "Permission evaluation failed for user %s on %s: %s",
                    user.user_id, resource, exc, exc_info=True,
                )
                return False
            if not allowed:
                logger.info(
                    "Operation %s on %s denied for user %s",
                    operation.value, resource, user.user_id,
                )
                return False

        result = self.validate_business_rules_only(
            entity, operation_data, operation, graph, user,
        )
        return result.is_valid

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def get_entity_validation_settings(self, entity_type: str) -> EntityValidationSettings:
        return self.config.settings_for(entity_type)

    def update_configuration(self, new_config: ValidationConfig) -> None:
        """Apply new settings; per-type overrides are merged, not replaced."""
        self.config.merge(new_config)
        self.registry.bind_cache(self.cache, self.config.rule_cache_ttl_seconds)
        self.cache.max_entries = self.config.cache_max_entries
        if not self.config.enable_validation_caching:
            self.cache.remove_prefix("unique_name_")
        logger.info("Validation configuration updated")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def startup(self) -> None:
        """Start the validation service.

        Safe to call multiple times.
        """
        if self._started:
            logger.debug("ValidationService already started; skipping")
            return

        logger.info("ValidationService starting up...")
        self._started = True
        logger.info(
            "ValidationService startup complete (%d rules registered)",
            len(self.registry),
        )

    def shutdown(self) -> None:
        """Shutdown the validation service and drop cached results."""
        if not self._started:
            return

        self.cache.clear()
        self._started = False
        logger.info("ValidationService shut down")

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    def get_metrics(self) -> Dict[str, Any]:
        """Get validation service metrics summary.

        Returns:
            Dictionary with service metric summaries.
        """
        stats = self.cache.stats()
        with self._metrics_lock:
            total = self._total_validations
            return {
                "started": self._started,
                "total_validations": total,
                "failed_validations": self._failed_validations,
                "failure_rate": (
                    self._failed_validations / total * 100 if total > 0 else 0
                ),
                "bulk_batches": self._bulk_batches,
                "rule_faults": self._rule_faults,
                "critical_stops": self._critical_stops,
                "system_invariant_runs": self._system_runs,
                "rules_registered": len(self.registry),
                "cache_entries": stats.entries,
                "cache_hit_rate": stats.hit_rate,
                "strict_mode": self.config.strict_mode,
                "caching_enabled": self.config.enable_validation_caching,
            }


# ===================================================================
# Thread-safe singleton access
# ===================================================================


def get_validation_service() -> ValidationService:
    """Get or create the singleton ValidationService instance.

    Returns:
        The singleton ValidationService.
    """
    global _singleton_instance
    if _singleton_instance is None:
        with _singleton_lock:
            if _singleton_instance is None:
                _singleton_instance = ValidationService()
    return _singleton_instance


def configure_validation_service(
    config: Optional[ValidationConfig] = None,
    **collaborators: Any,
) -> ValidationService:
    """Create, start and install the singleton ValidationService.

    Args:
        config: Optional validation config.
        **collaborators: Forwarded to ``ValidationService``
            (persistence_gateway, permission_evaluator, ...).

    Returns:
        ValidationService instance.
    """
    global _singleton_instance

    service = ValidationService(config=config, **collaborators)
    with _singleton_lock:
        _singleton_instance = service

    service.startup()
    logger.info("Validation service configured")
    return service


def reset_validation_service() -> None:
    """Drop the singleton (primarily for test teardown)."""
    global _singleton_instance
    with _singleton_lock:
        if _singleton_instance is not None:
            _singleton_instance.shutdown()
        _singleton_instance = None


__all__ = [
    "RULE_EXECUTION_ERROR",
    "VALIDATION_TIMEOUT",
    "ValidationService",
    "configure_validation_service",
    "get_validation_service",
    "reset_validation_service",
]
