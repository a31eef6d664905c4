"""Tests for the Validator orchestrator."""

import asyncio
import logging

import pytest

from fieldguard.config import ValidatorConfig
from fieldguard.exceptions import (
    ConfigurationError,
    DuplicateFieldError,
    FieldNotFoundError,
    UnknownRuleError,
)
from fieldguard.field import FieldOptions
from fieldguard.registry import RuleRegistry
from fieldguard.rules import register_builtin_rules
from fieldguard.validator import Validator


@pytest.fixture
def registry():
    return register_builtin_rules(RuleRegistry())


@pytest.fixture
def validator(registry):
    return Validator(registry=registry)


@pytest.fixture
def no_bail_validator(registry):
    return Validator(config=ValidatorConfig(fast_exit=False), registry=registry)


class Counter:
    """Rule that records how often it ran."""

    def __init__(self, result=True):
        self.calls = 0
        self.result = result

    def __call__(self, value, params, ctx):
        self.calls += 1
        return self.result


# =============================================================================
# Attach / detach
# =============================================================================


class TestAttach:
    def test_attach_returns_indexed_field(self, validator):
        field = validator.attach(name="email", rules="required|email")
        assert validator.fields.find({"name": "email"}) is field
        assert field.flags.required is True
        assert field.flags.validated is False

    def test_attach_with_options_and_dict(self, validator):
        a = validator.attach(FieldOptions(name="a", rules="required"))
        b = validator.attach({"name": "b", "rules": "min:3", "initialValue": "xyz"})
        assert a.rule_names == ["required"]
        assert b.value == "xyz"

    def test_attach_malformed_rules(self, validator):
        with pytest.raises(ConfigurationError):
            validator.attach(name="a", rules="required||min")

    def test_attach_missing_parameter(self, validator):
        with pytest.raises(ConfigurationError):
            validator.attach(name="a", rules="between:1")
        assert len(validator.fields) == 0

    def test_duplicate_replaces_with_warning(self, validator, caplog):
        first = validator.attach(name="email", rules="required")
        with caplog.at_level(logging.WARNING):
            second = validator.attach(name="email", rules="email")
        assert len(validator.fields) == 1
        assert validator.fields.find({"name": "email"}) is second
        assert first.detached is True
        assert "already attached" in caplog.text

    def test_duplicate_strict(self, registry):
        validator = Validator(config=ValidatorConfig(strict_fields=True), registry=registry)
        validator.attach(name="email")
        with pytest.raises(DuplicateFieldError):
            validator.attach(name="email")

    def test_duplicate_allowed_explicitly(self, validator):
        validator.attach(name="tags")
        validator.attach(name="tags", allow_duplicate=True)
        assert len(validator.fields) == 2

    def test_same_name_different_scope_is_not_duplicate(self, validator):
        validator.attach(name="email", scope="billing")
        validator.attach(name="email", scope="shipping")
        assert len(validator.fields) == 2

    @pytest.mark.asyncio
    async def test_detach_cleanup(self, validator):
        validator.attach(name="email", rules="required")
        await validator.validate("email", "")
        assert validator.errors.has("email")

        validator.detach("email")
        assert not validator.errors.has("email")
        assert not validator.errors.any()
        assert validator.fields.find({"name": "email"}) is None

    def test_detach_removes_dependency_edges(self, validator):
        password = validator.attach(name="password")
        confirm = validator.attach(name="confirm", rules="confirmed:password")
        assert validator.graph.has_edge(password.id, confirm.id)
        validator.detach("password")
        assert validator.graph.targets(confirm.id) == set()

    def test_detach_unknown_is_noop(self, validator):
        validator.detach("missing")

    def test_failed_initial_pass_leaves_nothing_attached(self, validator, caplog):
        password = validator.attach(name="password")
        with pytest.raises(UnknownRuleError):
            validator.attach(name="confirm", rules="confirmed:password|nope", initial=True)
        assert validator.fields.find({"name": "confirm"}) is None
        assert validator.graph.dependants(password.id) == set()

        with caplog.at_level(logging.WARNING):
            confirm = validator.attach(name="confirm", rules="confirmed:password", initial=True)
        assert "already attached" not in caplog.text
        assert validator.fields.filter({"name": "confirm"}) == [confirm]

    def test_dependency_registered_when_target_attached_later(self, validator):
        confirm = validator.attach(name="confirm", rules="confirmed:password")
        password = validator.attach(name="password")
        assert validator.graph.has_edge(password.id, confirm.id)

    def test_scoped_target_preferred(self, validator):
        global_password = validator.attach(name="password")
        scoped_password = validator.attach(name="password", scope="signup")
        confirm = validator.attach(name="confirm", scope="signup", rules="confirmed:password")
        assert validator.graph.targets(confirm.id) == {scoped_password.id}
        assert not validator.graph.has_edge(global_password.id, confirm.id)


# =============================================================================
# Initial validation
# =============================================================================


class TestInitialValidation:
    def test_initial_sync_pass_completes_before_attach_returns(self, validator):
        field = validator.attach(name="email", rules="required|email", initial=True)
        assert field.flags.validated is True
        assert field.flags.invalid is True
        assert field.flags.dirty is True
        assert validator.errors.first("email") == "The email field is required."

    @pytest.mark.asyncio
    async def test_initial_async_pass_is_scheduled(self, validator):
        async def remote(value, params, ctx):
            await asyncio.sleep(0)
            return value == "ok"

        validator.extend("remote", remote)
        field = validator.attach(name="user", rules="remote", initial=True, initial_value="ok")
        assert field.flags.pending is True
        await field.pending_validation
        assert field.flags.pending is False
        assert field.flags.valid is True

    def test_initial_async_without_loop_is_deferred(self, validator, caplog):
        async def remote(value, params, ctx):
            return True

        validator.extend("remote", remote)
        with caplog.at_level(logging.WARNING):
            field = validator.attach(name="user", rules="remote", initial=True, initial_value="x")
        assert field.flags.pending is False
        assert field.flags.validated is False
        assert "deferred" in caplog.text

    def test_initial_rules_run_on_attach(self, validator):
        always = Counter(False)
        other = Counter(True)
        validator.extend("always", always, initial=True)
        validator.extend("other", other)

        field = validator.attach(name="code", rules="always|other", initial_value="abc")
        assert always.calls == 1
        assert other.calls == 0
        assert field.flags.validated is True
        assert field.flags.valid is False

    def test_no_initial_pass_while_paused(self, validator):
        validator.pause()
        field = validator.attach(name="email", rules="required", initial=True)
        assert field.flags.validated is False


# =============================================================================
# Validate
# =============================================================================


class TestValidate:
    @pytest.mark.asyncio
    async def test_field_without_rules_is_valid(self, validator):
        validator.attach(name="notes", initial_value="anything")
        assert await validator.validate("notes") is True
        assert not validator.errors.any()

    @pytest.mark.asyncio
    async def test_flags_after_validation(self, validator):
        field = validator.attach(name="email", rules="required|email")
        assert await validator.validate("email", "user@example.com") is True
        assert field.flags.validated is True
        assert field.flags.pending is False
        assert field.flags.valid is True
        assert field.flags.invalid is False
        # Validation alone is not interaction
        assert field.flags.untouched is True
        assert field.flags.pristine is True

    @pytest.mark.asyncio
    async def test_explicit_value_is_not_stored(self, validator):
        field = validator.attach(name="email", rules="email", initial_value="bad")
        await validator.validate("email", "user@example.com")
        assert field.value == "bad"

    @pytest.mark.asyncio
    async def test_idempotent(self, validator):
        validator.attach(name="password", rules="required|min:8", initial_value="short")
        first = await validator.validate("password")
        first_errors = validator.errors.collect("password", map=False)
        second = await validator.validate("password")
        second_errors = validator.errors.collect("password", map=False)
        assert first == second is False
        assert [(e.rule, e.msg) for e in first_errors] == [(e.rule, e.msg) for e in second_errors]

    @pytest.mark.asyncio
    async def test_bail_law(self, validator):
        second, third = Counter(), Counter()
        validator.extend("second", second)
        validator.extend("third", third)
        validator.attach(name="code", rules="min:3|second|third", initial_value="x")

        assert await validator.validate("code") is False
        assert len(validator.errors.collect("code")) == 1
        assert second.calls == 0
        assert third.calls == 0

    @pytest.mark.asyncio
    async def test_no_bail_law(self, no_bail_validator):
        no_bail_validator.extend("passes", Counter(True))
        no_bail_validator.extend("fails", Counter(False))
        no_bail_validator.attach(name="code", rules="min:3|passes|fails", initial_value="x")

        assert await no_bail_validator.validate("code") is False
        errors = no_bail_validator.errors.collect("code", map=False)
        assert [e.rule for e in errors] == ["min", "fails"]

    @pytest.mark.asyncio
    async def test_field_bails_overrides_default(self, validator):
        validator.attach(name="password", rules="required|min:8", bails=False)
        await validator.validate("password", "")
        assert len(validator.errors.collect("password")) == 2

    @pytest.mark.asyncio
    async def test_password_example_no_bail(self, no_bail_validator):
        no_bail_validator.attach(name="password", rules="required|min:8", initial_value="")
        assert await no_bail_validator.validate("password") is False
        assert no_bail_validator.errors.collect("password") == [
            "The password field is required.",
            "The password field must be at least 8 characters.",
        ]

    @pytest.mark.asyncio
    async def test_password_example_bail(self, validator):
        validator.attach(name="password", rules="required|min:8", initial_value="")
        assert await validator.validate("password") is False
        assert validator.errors.collect("password") == ["The password field is required."]

    @pytest.mark.asyncio
    async def test_errors_replaced_on_each_pass(self, validator):
        validator.attach(name="email", rules="required|email")
        await validator.validate("email", "")
        await validator.validate("email", "not-an-email")
        assert validator.errors.collect("email") == ["The email field must be a valid email."]
        await validator.validate("email", "user@example.com")
        assert not validator.errors.has("email")

    @pytest.mark.asyncio
    async def test_selectors(self, validator):
        scoped = validator.attach(name="email", scope="billing", rules="required")
        validator.attach(name="email", rules="email")

        assert await validator.validate("billing.email", "") is False
        assert scoped.flags.invalid is True
        assert await validator.validate(f"#{scoped.id}", "x") is True
        assert await validator.validate("email", "", scope="billing") is False
        assert await validator.validate(scoped, "y") is True

    @pytest.mark.asyncio
    async def test_unknown_field(self, validator):
        with pytest.raises(FieldNotFoundError):
            await validator.validate("missing")

    @pytest.mark.asyncio
    async def test_unknown_rule_raises_and_clears_pending(self, validator):
        field = validator.attach(name="code", rules="mystery", initial_value="x")
        with pytest.raises(UnknownRuleError):
            await validator.validate("code")
        assert field.flags.pending is False

    @pytest.mark.asyncio
    async def test_removed_rule_keeps_previous_state(self, validator):
        validator.extend("odd", lambda value, params, ctx: int(value) % 2 == 1)
        field = validator.attach(name="n", rules="odd", initial_value="2")
        assert await validator.validate("n") is False

        validator.remove("odd")
        assert field.flags.invalid is True
        assert validator.errors.has("n")
        with pytest.raises(UnknownRuleError):
            await validator.validate("n")

    @pytest.mark.asyncio
    async def test_rule_exception_becomes_error_entry(self, validator, caplog):
        def broken(value, params, ctx):
            raise ValueError("bad input")

        validator.extend("broken", broken)
        validator.attach(name="x", rules="broken", initial_value="1")
        with caplog.at_level(logging.WARNING):
            assert await validator.validate("x") is False
        assert validator.errors.first_rule("x") == "broken"
        assert "bad input" in caplog.text

    @pytest.mark.asyncio
    async def test_silent_validation_has_no_side_effects(self, validator):
        field = validator.attach(name="email", rules="required")
        assert await validator.validate("email", "", silent=True) is False
        assert field.flags.validated is False
        assert not validator.errors.any()

    @pytest.mark.asyncio
    async def test_computes_required_updates_flag(self, validator):
        validator.attach(name="status", initial_value="published")
        field = validator.attach(name="published_at", rules="required_if:status,published")
        assert field.flags.required is False
        assert await validator.validate("published_at", "") is False
        assert field.flags.required is True

    @pytest.mark.asyncio
    async def test_validate_without_selector_validates_all(self, validator):
        validator.attach(name="a", rules="required", initial_value="x")
        validator.attach(name="b", rules="required", initial_value="")
        assert await validator.validate() is False


# =============================================================================
# Stale results
# =============================================================================


class TestStaleResults:
    @pytest.mark.asyncio
    async def test_latest_run_wins(self, validator):
        release = asyncio.Event()

        async def remote(value, params, ctx):
            if value == "slow":
                await release.wait()
                return False
            return True

        validator.extend("remote", remote)
        field = validator.attach(name="username", rules="remote")

        slow = asyncio.create_task(validator.validate("username", "slow"))
        await asyncio.sleep(0)
        assert field.flags.pending is True

        assert await validator.validate("username", "fast") is True
        assert field.flags.valid is True

        release.set()
        assert await slow is False
        # The slow run resolved last but was superseded
        assert field.flags.valid is True
        assert field.flags.pending is False
        assert not validator.errors.has("username")

    @pytest.mark.asyncio
    async def test_reset_supersedes_in_flight_run(self, validator):
        release = asyncio.Event()

        async def remote(value, params, ctx):
            await release.wait()
            return False

        validator.extend("remote", remote)
        field = validator.attach(name="username", rules="remote", initial_value="x")

        pending = asyncio.create_task(validator.validate("username"))
        await asyncio.sleep(0)
        await validator.reset()
        release.set()
        await pending

        assert field.flags.validated is False
        assert field.flags.pending is False
        assert not validator.errors.any()

    @pytest.mark.asyncio
    async def test_detach_discards_in_flight_run(self, validator):
        release = asyncio.Event()

        async def remote(value, params, ctx):
            await release.wait()
            return False

        validator.extend("remote", remote)
        validator.attach(name="username", rules="remote", initial_value="x")

        pending = asyncio.create_task(validator.validate("username"))
        await asyncio.sleep(0)
        validator.detach("username")
        release.set()
        await pending
        assert not validator.errors.any()


# =============================================================================
# Interaction and cascades
# =============================================================================


class TestInteraction:
    @pytest.mark.asyncio
    async def test_change_sets_interaction_flags(self, validator):
        field = validator.attach(name="email", rules="email")
        assert await validator.change("email", "user@example.com") is True
        assert field.flags.dirty is True
        assert field.flags.touched is True
        assert field.flags.pristine is False
        assert field.value == "user@example.com"

    def test_touch(self, validator):
        field = validator.attach(name="email")
        validator.touch("email")
        assert field.flags.touched is True
        assert field.flags.dirty is False

    def test_flag(self, validator):
        field = validator.attach(name="email")
        validator.flag("email", dirty=True)
        assert field.flags.pristine is False

    def test_flags_snapshot(self, validator):
        validator.attach(name="email")
        validator.attach(name="email", scope="billing")
        assert set(validator.flags) == {"email", "billing.email"}

    @pytest.mark.asyncio
    async def test_confirm_example(self, validator):
        validator.attach(name="password", rules="required|min:8", initial_value="secret123")
        confirm = validator.attach(name="confirm", rules="confirmed:password")

        assert await validator.change("confirm", "secret123") is True
        assert confirm.flags.valid is True

        await validator.change("password", "different1")
        assert confirm.flags.valid is False
        assert validator.errors.first("confirm") == "The confirm confirmation does not match."

    @pytest.mark.asyncio
    async def test_cascade_uses_live_getter_value(self, validator):
        state = {"password": "secret123", "confirm": "secret123"}
        validator.attach(name="password", getter=lambda: state["password"])
        confirm = validator.attach(name="confirm", rules="confirmed:password", getter=lambda: state["confirm"])

        await validator.validate("confirm")
        assert confirm.flags.valid is True
        state["password"] = "changed"
        await validator.change("password")
        assert confirm.flags.valid is False

    @pytest.mark.asyncio
    async def test_cyclic_cascade_runs_each_field_once(self, validator):
        calls = []

        def same_as(value, params, ctx):
            calls.append(ctx.field)
            return str(value) == str(params[0])

        validator.extend("same_as", same_as, has_target=True)
        validator.attach(name="a", rules="same_as:b", initial_value="x")
        validator.attach(name="b", rules="same_as:a", initial_value="x")

        await validator.change("a", "y")
        assert sorted(calls) == ["a", "b"]

    @pytest.mark.asyncio
    async def test_cascade_reaches_transitive_dependants_once(self, validator):
        calls = []

        def same_as(value, params, ctx):
            calls.append(ctx.field)
            return True

        validator.extend("same_as", same_as, has_target=True)
        validator.attach(name="a", initial_value="x")
        validator.attach(name="b", rules="same_as:a", initial_value="x")
        validator.attach(name="c", rules="same_as:a", initial_value="x")
        validator.attach(name="d", rules="same_as:b", initial_value="x")

        await validator.change("a", "y")
        assert sorted(calls) == ["b", "c", "d"]

    @pytest.mark.asyncio
    async def test_validate_cascades_after_applied_pass(self, validator):
        validator.attach(name="password", initial_value="a")
        confirm = validator.attach(name="confirm", rules="confirmed:password", initial_value="b")
        await validator.validate("password")
        assert confirm.flags.invalid is True


# =============================================================================
# validate_all / verify / pause / reset / localize
# =============================================================================


class TestValidateAll:
    @pytest.mark.asyncio
    async def test_all_valid(self, validator):
        validator.attach(name="a", rules="required", initial_value="x")
        validator.attach(name="b", rules="email", initial_value="user@example.com")
        assert await validator.validate_all() is True

    @pytest.mark.asyncio
    async def test_each_field_keeps_its_bail_policy(self, validator):
        validator.attach(name="a", rules="required|min:3", initial_value="")
        validator.attach(name="b", rules="required|min:3", initial_value="", bails=False)
        assert await validator.validate_all() is False
        assert len(validator.errors.collect("a")) == 1
        assert len(validator.errors.collect("b")) == 2

    @pytest.mark.asyncio
    async def test_values_override_live_values(self, validator):
        field = validator.attach(name="a", rules="required", initial_value="")
        assert await validator.validate_all({"a": "given"}) is True
        assert field.value == ""

    @pytest.mark.asyncio
    async def test_values_used_for_targets(self, validator):
        validator.attach(name="password", initial_value="one")
        validator.attach(name="confirm", rules="confirmed:password", initial_value="two")
        assert await validator.validate_all({"password": "two"}) is True

    @pytest.mark.asyncio
    async def test_scoped_values_used_for_targets(self, validator):
        validator.attach(name="password", scope="billing", initial_value="one")
        validator.attach(
            name="confirm", scope="billing", rules="confirmed:password", initial_value="two"
        )
        assert await validator.validate_all({"billing.password": "two"}) is True
        assert await validator.validate_all({"billing.password": "three"}) is False

    @pytest.mark.asyncio
    async def test_scope_filter(self, validator):
        validator.attach(name="a", scope="s1", rules="required", initial_value="")
        validator.attach(name="b", scope="s2", rules="required", initial_value="x")
        assert await validator.validate_all(scope="s2") is True
        assert await validator.validate_all("s1") is False
        assert await validator.validate_scopes() is False

    @pytest.mark.asyncio
    async def test_async_fields_run_concurrently(self, validator):
        started = []
        release = asyncio.Event()

        async def remote(value, params, ctx):
            started.append(ctx.field)
            await release.wait()
            return True

        validator.extend("remote", remote)
        validator.attach(name="a", rules="remote", initial_value="x")
        validator.attach(name="b", rules="remote", initial_value="y")

        task = asyncio.create_task(validator.validate_all())
        for _ in range(5):
            await asyncio.sleep(0)
        assert sorted(started) == ["a", "b"]
        release.set()
        assert await task is True


class TestVerify:
    @pytest.mark.asyncio
    async def test_verify_is_stateless(self, validator):
        result = await validator.verify("", "required|min:3", bails=False)
        assert result.valid is False
        assert list(result.failed_rules) == ["required", "min"]
        assert len(validator.fields) == 0
        assert not validator.errors.any()

    @pytest.mark.asyncio
    async def test_verify_with_name_and_targets(self, validator):
        result = await validator.verify(
            "abc", "confirmed:password", name="confirm", values={"password": "abd"}
        )
        assert result.errors == ["The confirm confirmation does not match."]

    @pytest.mark.asyncio
    async def test_verify_mapping_rules(self, validator):
        result = await validator.verify(7, {"between": [1, 5]})
        assert result.valid is False
        assert result.to_dict()["failedRules"] == {
            "between": "The {field} field must be between 1 and 5."
        }


class TestPauseResetLocalize:
    @pytest.mark.asyncio
    async def test_pause_returns_last_known_validity(self, validator):
        counter = Counter(False)
        validator.extend("counted", counter)
        field = validator.attach(name="a", rules="counted", initial_value="x")

        assert validator.pause() is validator
        assert await validator.validate("a") is True
        assert counter.calls == 0
        assert field.flags.validated is False

        validator.resume()
        assert await validator.validate("a") is False
        validator.pause()
        assert await validator.validate("a") is False
        assert await validator.validate_all() is False
        assert counter.calls == 1

    @pytest.mark.asyncio
    async def test_pause_preserves_errors(self, validator):
        validator.attach(name="a", rules="required", initial_value="")
        await validator.validate("a")
        validator.pause()
        await validator.change("a", "now valid")
        assert validator.errors.has("a")

    @pytest.mark.asyncio
    async def test_reset_matcher(self, validator):
        a = validator.attach(name="a", rules="required", initial_value="")
        b = validator.attach(name="b", rules="required", initial_value="")
        await validator.validate_all()
        await validator.change("a", "")

        await validator.reset({"name": "a"})
        assert a.flags.validated is False
        assert a.flags.untouched is True
        assert a.rule_names == ["required"]
        assert not validator.errors.has("a")
        assert b.flags.validated is True
        assert validator.errors.has("b")

    @pytest.mark.asyncio
    async def test_localize_regenerates_messages(self, validator):
        validator.attach(name="name", rules="required", initial_value="")
        await validator.validate("name")
        validator.localize("fr", {"messages": {"required": "Le champ {field} est obligatoire."}})
        assert validator.errors.first("name") == "Le champ name est obligatoire."

    def test_update_scope_moves_errors(self, validator):
        field = validator.attach(name="email", rules="required", initial=True)
        validator.update("email", scope="billing")
        assert field.scope == "billing"
        assert validator.errors.all("billing") == ["The email field is required."]

    def test_update_rejects_unknown_option(self, validator):
        field = validator.attach(name="email", rules="required")
        with pytest.raises(ConfigurationError, match="rule"):
            validator.update("email", rule="email")
        assert field.rule_names == ["required"]


class TestRegistryLayer:
    @pytest.mark.asyncio
    async def test_removed_target_rule_drops_cascade(self, validator):
        password = validator.attach(name="password", initial_value="a")
        confirm = validator.attach(name="confirm", rules="confirmed:password", initial_value="a")
        await validator.validate("confirm")

        validator.remove("confirmed")
        assert not validator.graph.has_edge(password.id, confirm.id)
        assert await validator.change("password", "b") is True
        assert confirm.flags.valid is True
        with pytest.raises(UnknownRuleError):
            await validator.validate("confirm")

    def test_extend_restores_dependency_after_remove(self, validator):
        password = validator.attach(name="password")
        confirm = validator.attach(name="confirm", rules="same_as:password")
        validator.extend("same_as", lambda value, params, ctx: value == params[0], has_target=True)
        assert validator.graph.has_edge(password.id, confirm.id)
        validator.remove("same_as")
        assert validator.graph.targets(confirm.id) == set()

    def test_extend_does_not_leak_into_shared_registry(self, registry):
        first = Validator(registry=registry)
        second = Validator(registry=registry)
        first.extend("only_here", lambda value, params, ctx: True)
        assert first.rules.has("only_here")
        assert not second.rules.has("only_here")
        assert not registry.has("only_here")

    def test_builtins_reserved_through_validator(self, validator):
        with pytest.raises(ConfigurationError):
            validator.extend("required", lambda value, params, ctx: True)
        validator.extend("required", lambda value, params, ctx: True, override=True)

    def test_messages_path_from_config(self, registry, tmp_path):
        messages = tmp_path / "messages.yaml"
        messages.write_text("en:\n  messages:\n    required: '{field} is mandatory.'\n")
        validator = Validator(
            config=ValidatorConfig(messages_path=messages), registry=registry
        )
        validator.attach(name="email", rules="required", initial=True)
        assert validator.errors.first("email") == "email is mandatory."
