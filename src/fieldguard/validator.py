"""Validator: the orchestrator of the validation engine.

The Validator owns a FieldBag, an ErrorBag and a DependencyGraph, and a
rule registry layered over the shared one. It turns triggers (value
changes, explicit validate calls) into pipeline runs, applies results
that are still current, and cascades revalidation to dependant fields.

Concurrency model: single-threaded asyncio. Each validation request bumps
the field's token; a finished run only mutates flags and errors when its
token is still the field's current one. There is no cancellation: stale
runs finish and are ignored.
"""

import asyncio
import logging
from typing import Any, Mapping

from fieldguard.config import ValidatorConfig
from fieldguard.dsl import parse_rules
from fieldguard.error_bag import ErrorBag
from fieldguard.exceptions import DuplicateFieldError, FieldguardError, FieldNotFoundError
from fieldguard.field import Field, FieldFlags, FieldOptions
from fieldguard.field_bag import FieldBag
from fieldguard.graph import DependencyGraph
from fieldguard.messages import Dictionary, MessageProvider
from fieldguard.pipeline import PassResult, RuleRunner, RunRequest, ValidationRun
from fieldguard.registry import Rule, RuleFn, RuleRegistry, default_registry
from fieldguard.types import MISSING, VerifyResult

logger = logging.getLogger(__name__)


class Validator:
    """Validates attached fields and tracks their state.

    Example:
        register_builtin_rules()
        validator = Validator()
        validator.attach(name="password", rules="required|min:8")
        valid = await validator.change("password", "hunter2")
        validator.errors.first("password")
    """

    def __init__(
        self,
        config: ValidatorConfig | None = None,
        registry: RuleRegistry | None = None,
        messages: MessageProvider | None = None,
    ):
        self.config = config or ValidatorConfig()
        self.rules = RuleRegistry(parent=registry if registry is not None else default_registry)
        self.messages = messages if messages is not None else Dictionary()
        if self.config.messages_path is not None and isinstance(self.messages, Dictionary):
            self.messages.merge(Dictionary.from_yaml(self.config.messages_path).container)

        self.fields = FieldBag()
        self.errors = ErrorBag()
        self.graph = DependencyGraph()
        self.fast_exit = self.config.fast_exit
        self.locale = self.config.locale
        self.paused = False
        self.runner = RuleRunner(self.rules, self.messages, lambda: self.locale)

    # =========================================================================
    # Rule registry
    # =========================================================================

    def extend(self, name: str, rule: Rule | RuleFn, **options: Any) -> Rule:
        """Register a rule on this validator's registry layer."""
        definition = self.rules.extend(name, rule, **options)
        for field in self.fields:
            if name in field.rule_names:
                self._refresh_dependencies(field)
        return definition

    def remove(self, name: str) -> None:
        """Remove a rule. Fields already validated keep their state."""
        self.rules.remove(name)
        for field in self.fields:
            if name in field.rule_names:
                self._refresh_dependencies(field)

    # =========================================================================
    # Field lifecycle
    # =========================================================================

    def attach(self, options: FieldOptions | Mapping[str, Any] | None = None, **kwargs: Any) -> Field:
        """Register a field to be validated.

        Args:
            options: A FieldOptions or a dict; keyword arguments are merged in

        Returns:
            The attached Field

        Raises:
            ConfigurationError: Malformed rules or missing rule parameters
            DuplicateFieldError: Name and scope already attached (strict_fields only)
        """
        if options is None:
            kwargs.setdefault("events", self.config.events)
            options = FieldOptions(**kwargs)
        elif isinstance(options, Mapping):
            options = FieldOptions.from_dict({"events": self.config.events, **options, **kwargs})

        field = Field(options, self.rules)
        for spec in field.rules:
            if self.rules.has(spec.name):
                self.rules.resolve(spec.name).check_params(
                    spec.params if isinstance(spec.params, dict) else list(spec.params)
                )

        existing = self.fields.find({"name": field.name, "scope": field.scope})
        if existing is not None and not field.allow_duplicate:
            if self.config.strict_fields:
                raise DuplicateFieldError(field.name, field.scope)
            logger.warning(
                "Field '%s' is already attached; replacing it", field.qualified_name
            )
            self._destroy(existing)

        self.fields.push(field)
        self._refresh_dependencies(field)
        for other in self.fields:
            if other is not field and field.name in other.target_names():
                self._refresh_dependencies(other)

        if not self.paused:
            initial_only = not field.initial
            if field.initial or any(
                self.rules.has(n) and self.rules.resolve(n).initial for n in field.rule_names
            ):
                try:
                    self._start_initial(field, initial_only=initial_only)
                except FieldguardError:
                    self._destroy(field)
                    raise
        return field

    def detach(self, name: str | Field, scope: str | None = None) -> None:
        """Remove a field, its errors and its dependency edges. No-op if absent."""
        field = self._resolve_field(name, scope, strict=False)
        if field is not None:
            self._destroy(field)

    def update(self, selector: str | Field, **options: Any) -> Field:
        """Update a field's rules, alias, scope, getter or bail policy.

        Raises:
            ConfigurationError: Unknown option
        """
        field = self._resolve_field(selector)
        field.update(**options)
        if "scope" in options:
            self.errors.update(field.id, scope=field.scope)
        if "rules" in options or "scope" in options:
            self._refresh_dependencies(field)
        return field

    def _destroy(self, field: Field) -> None:
        self.fields.remove(field)
        self.errors.remove_by_id(field.id)
        self.graph.remove_node(field.id)
        field.bump_token()
        field.detached = True

    def _find_target(self, name: str, scope: str | None) -> Field | None:
        """Resolve a target field name, preferring the dependant's scope."""
        target = self.fields.find({"name": name, "scope": scope})
        if target is None and scope is not None:
            target = self.fields.find({"name": name, "scope": None})
        return target

    def _refresh_dependencies(self, field: Field) -> None:
        target_ids = []
        for name in field.target_names():
            target = self._find_target(name, field.scope)
            if target is not None:
                target_ids.append(target.id)
        self.graph.set_targets(field.id, target_ids)

    # =========================================================================
    # Interaction
    # =========================================================================

    async def change(self, selector: str | Field, value: Any = MISSING, *, scope: str | None = None) -> bool:
        """Record a user value change, validate the field and its dependants.

        With a getter the getter stays authoritative and ``value`` is only
        stored for fields without one.
        """
        field = self._resolve_field(selector, scope)
        if value is not MISSING:
            field.value = value
        field.set_flags(touched=True, dirty=True)
        if self.paused:
            return self._last_validity(field)

        result, _ = await self._validate_field(field)
        await self._cascade(field)
        return result.valid

    def touch(self, selector: str | Field, *, scope: str | None = None) -> None:
        """Record a blur-like interaction."""
        self._resolve_field(selector, scope).set_flags(touched=True)

    def flag(self, selector: str | Field, *, scope: str | None = None, **flags: Any) -> None:
        """Set flags on a field from outside the engine."""
        self._resolve_field(selector, scope).set_flags(**flags)

    @property
    def flags(self) -> dict[str, FieldFlags]:
        return {field.qualified_name: field.flags for field in self.fields}

    # =========================================================================
    # Validation
    # =========================================================================

    async def validate(
        self,
        selector: str | Field | None = None,
        value: Any = MISSING,
        *,
        scope: str | None = None,
        silent: bool = False,
    ) -> bool:
        """Validate one field.

        Args:
            selector: Field, "#<id>", "scope.name" or name; None validates all
            value: Value to validate instead of the live value
            scope: Explicit scope for the name
            silent: Run rules without touching flags or errors

        Returns:
            True if the field is valid

        Raises:
            FieldNotFoundError: No field matches the selector
            UnknownRuleError / ConfigurationError: Structural problems
        """
        if selector is None:
            return await self.validate_all()

        field = self._resolve_field(selector, scope)
        if self.paused:
            return self._last_validity(field)

        result, applied = await self._validate_field(field, value, silent=silent)
        if applied:
            await self._cascade(field)
        return result.valid

    async def validate_all(
        self,
        values: Mapping[str, Any] | str | None = None,
        *,
        scope: Any = MISSING,
    ) -> bool:
        """Validate every field (optionally in one scope) concurrently.

        Args:
            values: Map of name (or "scope.name") to value overriding live
                values, also used for target lookups. A string is taken as
                the scope.
            scope: Only validate fields in this scope (None means unscoped)

        Returns:
            True if every field is valid
        """
        if isinstance(values, str):
            scope, values = values, None
        matcher = {} if scope is MISSING else {"scope": scope}
        fields = self.fields.filter(matcher)

        if self.paused:
            return all(self._last_validity(f) for f in fields)

        results = await asyncio.gather(
            *(
                self._validate_field(f, self._value_from(values, f), values=values)
                for f in fields
            )
        )
        return all(result.valid for result, _ in results)

    async def validate_scopes(self) -> bool:
        """Validate every scope concurrently, unscoped fields included."""
        scopes = list(dict.fromkeys(f.scope for f in self.fields))
        results = await asyncio.gather(*(self.validate_all(scope=s) for s in scopes))
        return all(results)

    async def verify(
        self,
        value: Any,
        rules: Any,
        *,
        name: str | None = None,
        alias: str | None = None,
        bails: bool | None = None,
        values: Mapping[str, Any] | None = None,
    ) -> VerifyResult:
        """Validate a value against rules without touching any field state.

        Args:
            value: The value to validate
            rules: Rule specification (string DSL or mapping)
            name: Field name used in messages
            alias: Display name used in messages
            bails: Bail policy (defaults to the validator's fast_exit)
            values: Values for target parameters, keyed by target name
        """
        targets = dict(values or {})
        request = RunRequest(
            value=value,
            rules=parse_rules(rules),
            bails=self.fast_exit if bails is None else bails,
            name=name,
            alias=alias,
            resolve_target=lambda target: (targets.get(target), target),
        )
        result = await self.runner.run(request)
        return result.to_verify_result()

    async def reset(self, matcher: Mapping[str, Any] | None = None) -> None:
        """Reset flags and errors of matching fields (all when omitted).

        In-flight validations of those fields are superseded and their
        results discarded.
        """
        for field in self.fields.filter(matcher):
            field.reset()
            self.errors.remove_by_id(field.id)

    def pause(self) -> "Validator":
        self.paused = True
        return self

    def resume(self) -> "Validator":
        self.paused = False
        return self

    def localize(self, locale: str, dictionary: Mapping[str, Any] | None = None) -> None:
        """Switch the active locale and regenerate existing error messages."""
        if dictionary and isinstance(self.messages, Dictionary):
            self.messages.merge({locale: dictionary})
        self.locale = locale
        self.errors.regenerate()

    # =========================================================================
    # Internals
    # =========================================================================

    def _bails(self, field: Field) -> bool:
        return self.fast_exit if field.bails is None else field.bails

    def _last_validity(self, field: Field) -> bool:
        return bool(field.flags.valid) if field.flags.validated else True

    def _value_from(self, values: Mapping[str, Any] | None, field: Field) -> Any:
        if not values:
            return MISSING
        if field.qualified_name in values:
            return values[field.qualified_name]
        if field.name in values:
            return values[field.name]
        return MISSING

    def _request(
        self,
        field: Field,
        value: Any,
        *,
        values: Mapping[str, Any] | None = None,
        initial: bool = False,
    ) -> RunRequest:
        def resolve_target(name: str) -> tuple[Any, str]:
            target = self._find_target(name, field.scope)
            if target is None:
                return (values or {}).get(name), name
            target_value = self._value_from(values, target)
            if target_value is MISSING:
                target_value = target.value
            return target_value, target.display_name

        return RunRequest(
            value=field.value if value is MISSING else value,
            rules=field.rules,
            bails=self._bails(field),
            name=field.name,
            alias=field.alias,
            scope=field.scope,
            resolve_target=resolve_target,
            initial=initial,
        )

    def _resolve_field(
        self,
        selector: str | Field,
        scope: str | None = None,
        strict: bool = True,
    ) -> Field | None:
        """Find a field by object, "#id", explicit scope, "scope.name" or name."""
        field: Field | None = None
        if isinstance(selector, Field):
            field = selector if not selector.detached and selector in self.fields.items else None
        elif selector.startswith("#"):
            field = self.fields.find({"id": selector[1:]})
        elif scope is not None:
            field = self.fields.find({"name": selector, "scope": scope})
        else:
            if "." in selector:
                scope_name, _, name = selector.partition(".")
                field = self.fields.find({"name": name, "scope": scope_name})
            if field is None:
                field = self.fields.find({"name": selector, "scope": None})

        if field is None and strict:
            raise FieldNotFoundError(str(selector))
        return field

    async def _validate_field(
        self,
        field: Field,
        value: Any = MISSING,
        *,
        values: Mapping[str, Any] | None = None,
        silent: bool = False,
    ) -> tuple[PassResult, bool]:
        """Run the pipeline for a field; returns (result, applied)."""
        request = self._request(field, value, values=values)
        if silent:
            return await self.runner.run(request), False

        token = field.bump_token()
        field.set_flags(pending=True)
        try:
            run = self.runner.start(request)
            result = run.result if run.done else await run.wait()
        except FieldguardError:
            if field.is_current(token):
                field.set_flags(pending=False)
            raise
        return result, self._apply(field, token, result)

    def _apply(self, field: Field, token: int, result: PassResult) -> bool:
        """Apply a finished run if it is still the field's current one."""
        if not field.is_current(token):
            logger.debug(
                "Discarding stale validation of '%s' (token %d, current %d)",
                field.qualified_name, token, field.token,
            )
            return False

        field.force_required = result.required
        field.pending_validation = None
        field.set_flags(
            pending=False,
            validated=True,
            valid=result.valid,
            required=field.is_required,
        )
        self.errors.remove_by_id(field.id)
        self.errors.add(result.to_field_errors(field.name, field.scope, field.id))
        return True

    async def _cascade(self, field: Field) -> None:
        """Revalidate every transitive dependant of ``field`` exactly once."""
        visited = {field.id}
        dependants = [
            dependant
            for dependant_id in self.graph.walk(field.id, visited)
            if (dependant := self.fields.find({"id": dependant_id})) is not None
        ]
        if not dependants:
            return
        logger.debug(
            "Cascading validation from '%s' to %s",
            field.qualified_name, [d.qualified_name for d in dependants],
        )
        await asyncio.gather(*(self._validate_field(d) for d in dependants))

    def _start_initial(self, field: Field, initial_only: bool) -> None:
        """Validate on attach; the synchronous part completes before returning."""
        token = field.bump_token()
        field.set_flags(pending=True)
        try:
            run = self.runner.start(self._request(field, MISSING, initial=initial_only))
        except FieldguardError:
            field.set_flags(pending=False)
            raise

        if run.done:
            self._apply(field, token, run.result)
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            run.discard()
            field.set_flags(pending=False)
            logger.warning(
                "Initial validation of '%s' needs an event loop; deferred to the first validate call",
                field.qualified_name,
            )
            return
        field.pending_validation = loop.create_task(self._finish(field, token, run))

    async def _finish(self, field: Field, token: int, run: ValidationRun) -> PassResult:
        result = await run.wait()
        self._apply(field, token, result)
        return result
