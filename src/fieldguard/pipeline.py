"""Rule execution pipeline.

Runs an ordered rule list against one value:

1. computesRequired rules run first (synchronously) to settle ``required``
2. a non-required empty value passes without running any rule
3. rules run in declaration order; synchronous results are consumed at
   once, awaitables are scheduled and joined at the end
4. when bailing, the first synchronous failure stops the run; scheduled
   async rules keep running but their results are ignored
5. a rule that raises counts as failed

The pipeline holds no per-field state. The Validator decides whether a
finished run is still current before applying it.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping

from fieldguard.exceptions import ConfigurationError
from fieldguard.messages import MessageProvider
from fieldguard.registry import Rule, RuleRegistry
from fieldguard.rules.builtins import is_empty
from fieldguard.types import FieldError, RuleContext, RuleOutcome, RuleSpec, VerifyResult

logger = logging.getLogger(__name__)

# Resolves a target field name to (live value, display name)
TargetResolver = Callable[[str], tuple[Any, str]]


@dataclass
class RuleFailure:
    """A failed rule with its message and a message generator."""

    rule: str
    msg: str
    regenerate: Callable[[], str] | None = None


@dataclass
class PassResult:
    """Aggregate outcome of one pipeline run."""

    valid: bool
    failures: list[RuleFailure] = field(default_factory=list)
    required: bool = False

    def to_verify_result(self) -> VerifyResult:
        return VerifyResult(
            valid=self.valid,
            errors=[f.msg for f in self.failures],
            failed_rules={f.rule: f.msg for f in self.failures},
        )

    def to_field_errors(self, name: str, scope: str | None, field_id: str | None) -> list[FieldError]:
        return [
            FieldError(
                field=name,
                msg=f.msg,
                rule=f.rule,
                scope=scope,
                field_id=field_id,
                regenerate=f.regenerate,
            )
            for f in self.failures
        ]


@dataclass
class RunRequest:
    """Everything the pipeline needs to validate one value.

    Attributes:
        value: The value to validate
        rules: Parsed rules in declaration order
        bails: Stop at the first synchronous failure
        name: Field name used in messages (None for anonymous verify calls)
        alias: Field display name
        scope: Field scope
        resolve_target: Lookup for target parameters
        initial: Only run rules flagged ``initial``
        required: Field is required regardless of computesRequired rules
    """

    value: Any
    rules: list[RuleSpec]
    bails: bool = True
    name: str | None = None
    alias: str | None = None
    scope: str | None = None
    resolve_target: TargetResolver | None = None
    initial: bool = False
    required: bool = False


@dataclass
class _Pending:
    """An async rule awaiting completion, in declaration position."""

    spec: RuleSpec
    awaitable: Awaitable[Any]
    ctx: RuleContext
    message_params: Any


class ValidationRun:
    """A started pipeline run.

    ``done`` is True when every executed rule was synchronous; ``result``
    is then available immediately. Otherwise ``wait()`` joins the
    scheduled async rules.
    """

    def __init__(self, runner: "RuleRunner", request: RunRequest):
        self.runner = runner
        self.request = request
        self.required = request.required
        self._entries: list[RuleFailure | _Pending | None] = []
        self.result: PassResult | None = None

    @property
    def done(self) -> bool:
        return self.result is not None

    def finish_sync(self, bailed: RuleFailure | None = None) -> None:
        if bailed is not None:
            self._suppress_pending()
            self.result = PassResult(valid=False, failures=[bailed], required=self.required)
        elif not any(isinstance(e, _Pending) for e in self._entries):
            failures = [e for e in self._entries if isinstance(e, RuleFailure)]
            self.result = PassResult(valid=not failures, failures=failures, required=self.required)

    async def wait(self) -> PassResult:
        """Join async rules and aggregate failures in declaration order."""
        if self.result is not None:
            return self.result

        pending = [e for e in self._entries if isinstance(e, _Pending)]
        outcomes = await asyncio.gather(
            *(p.awaitable for p in pending), return_exceptions=True
        )
        by_pending = {id(p): outcome for p, outcome in zip(pending, outcomes)}

        failures: list[RuleFailure] = []
        for entry in self._entries:
            if isinstance(entry, RuleFailure):
                failures.append(entry)
            elif isinstance(entry, _Pending):
                failure = self.runner.settle(
                    self.request, entry.spec, by_pending[id(entry)], entry.ctx, entry.message_params
                )
                if failure is not None:
                    failures.append(failure)

        if self.request.bails:
            failures = failures[:1]
        self.result = PassResult(valid=not failures, failures=failures, required=self.required)
        return self.result

    def discard(self) -> None:
        """Drop a run that will never be awaited."""
        self._suppress_pending()

    def _suppress_pending(self) -> None:
        for entry in self._entries:
            if not isinstance(entry, _Pending):
                continue
            awaitable = entry.awaitable
            if isinstance(awaitable, asyncio.Future):
                awaitable.add_done_callback(_drain)
            elif inspect.iscoroutine(awaitable):
                awaitable.close()


def _drain(future: "asyncio.Future[Any]") -> None:
    """Retrieve the outcome of a suppressed rule so it is never reported as lost."""
    if future.cancelled():
        return
    error = future.exception()
    if error is not None:
        logger.debug("Suppressed async rule raised: %s", error)


def _schedule(awaitable: Awaitable[Any]) -> Awaitable[Any]:
    """Start an awaitable on the running loop, if there is one."""
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return awaitable
    return asyncio.ensure_future(awaitable)


def _normalize(result: Any) -> tuple[bool, dict[str, Any]]:
    if isinstance(result, RuleOutcome):
        return bool(result.valid), dict(result.data)
    if isinstance(result, Mapping) and "valid" in result:
        return bool(result["valid"]), dict(result.get("data") or {})
    return bool(result), {}


class RuleRunner:
    """Executes rule lists using a registry and a message provider."""

    def __init__(
        self,
        registry: RuleRegistry,
        messages: MessageProvider,
        locale: Callable[[], str],
    ):
        self.registry = registry
        self.messages = messages
        self.locale = locale

    def start(self, request: RunRequest) -> ValidationRun:
        """Run the synchronous stage and schedule async rules.

        Raises:
            UnknownRuleError: A rule is not registered
            ConfigurationError: Missing parameters or an invalid require rule
        """
        run = ValidationRun(self, request)
        resolved = [(spec, self.registry.resolve(spec.name)) for spec in request.rules]
        for spec, rule in resolved:
            rule.check_params(spec.params if isinstance(spec.params, dict) else list(spec.params))

        run.required = request.required or any(spec.name == "required" for spec in request.rules)
        for spec, rule in resolved:
            if rule.computes_required and self._computes_required(request, spec, rule):
                run.required = True

        if not run.required and is_empty(request.value):
            run.result = PassResult(valid=True, required=run.required)
            return run

        for spec, rule in resolved:
            if request.initial and not rule.initial:
                continue
            entry = self._invoke(request, spec, rule, run.required)
            run._entries.append(entry)
            if isinstance(entry, RuleFailure) and request.bails:
                run.finish_sync(bailed=entry)
                return run

        run.finish_sync()
        return run

    async def run(self, request: RunRequest) -> PassResult:
        return await self.start(request).wait()

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _prepare(self, request: RunRequest, spec: RuleSpec, rule: Rule, required: bool) -> tuple[Any, Any, RuleContext]:
        """Build bound params, message params and the rule context."""
        ctx = RuleContext(
            field=request.name,
            display_name=request.alias or request.name,
            scope=request.scope,
            required=required,
        )
        if isinstance(spec.params, dict):
            params: Any = dict(spec.params)
            message_params: Any = dict(spec.params)
            first_key = next(iter(params), None)
        else:
            params = list(spec.params)
            message_params = list(spec.params)
            first_key = 0 if params else None

        if rule.has_target and first_key is not None:
            target_name = str(params[first_key])
            if request.resolve_target is not None:
                target_value, target_display = request.resolve_target(target_name)
            else:
                target_value, target_display = None, target_name
            params[first_key] = target_value
            message_params[first_key] = target_display
            ctx.targets[target_name] = target_value

        return rule.bind_params(params), rule.bind_params(message_params), ctx

    def _computes_required(self, request: RunRequest, spec: RuleSpec, rule: Rule) -> bool:
        params, _, ctx = self._prepare(request, spec, rule, required=False)
        try:
            result = rule.validate(request.value, params, ctx)
        except Exception as e:
            # The rule fails again in the main stage and is reported there
            logger.warning("Rule '%s' raised while computing required: %s", spec.name, e)
            return False
        if inspect.isawaitable(result):
            if inspect.iscoroutine(result):
                result.close()
            raise ConfigurationError(f"Rule '{spec.name}' computes required and cannot be async.")
        if not isinstance(result, (RuleOutcome, Mapping)):
            raise ConfigurationError(
                f"Rule '{spec.name}' computes required and must return a RuleOutcome."
            )
        _, data = _normalize(result)
        return data.get("required") is True

    def _invoke(self, request: RunRequest, spec: RuleSpec, rule: Rule, required: bool) -> RuleFailure | _Pending | None:
        params, message_params, ctx = self._prepare(request, spec, rule, required)
        try:
            result = rule.validate(request.value, params, ctx)
        except Exception as e:
            logger.warning("Rule '%s' raised on field '%s': %s", spec.name, request.name, e)
            return self._failure(request, spec.name, message_params, {})

        if inspect.isawaitable(result):
            return _Pending(spec=spec, awaitable=_schedule(result), ctx=ctx, message_params=message_params)
        return self.settle(request, spec, result, ctx, message_params)

    def settle(self, request: RunRequest, spec: RuleSpec, result: Any, ctx: RuleContext, message_params: Any) -> RuleFailure | None:
        """Turn a rule result (or the exception it raised) into a failure, or None."""
        if isinstance(result, BaseException):
            logger.warning("Rule '%s' raised on field '%s': %s", spec.name, request.name, result)
            return self._failure(request, spec.name, message_params, {})
        valid, data = _normalize(result)
        if valid:
            return None
        return self._failure(request, spec.name, message_params, data)

    def _failure(self, request: RunRequest, rule: str, params: Any, data: dict[str, Any]) -> RuleFailure:
        name = request.name or "{field}"

        def generate() -> str:
            return self.messages.get_message(self.locale(), rule, name, request.alias, params, data)

        return RuleFailure(rule=rule, msg=generate(), regenerate=generate)
