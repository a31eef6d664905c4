"""ErrorBag: the ordered collection of field errors.

Entries keep insertion order and are never deduplicated; the Validator
replaces a field's entries after every applied validation pass.

Field selectors accepted by the lookup methods:
- "email"          plain field name
- "billing.email"  scope-qualified name (when no scope argument is given)
- "email:required" name restricted to one rule (``first`` only)
"""

from typing import Any, Iterable, Iterator

from fieldguard.types import MISSING, FieldError


def _scope_matches(error_scope: str | None, scope: Any) -> bool:
    if scope is MISSING:
        return True
    return error_scope == scope


class ErrorBag:
    """Ordered list of FieldError entries with lookup helpers."""

    def __init__(self, items: Iterable[FieldError] | None = None):
        self.items: list[FieldError] = list(items or [])

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator[FieldError]:
        return iter(self.items)

    # -------------------------------------------------------------------------
    # Mutation
    # -------------------------------------------------------------------------

    def add(self, error: FieldError | Iterable[FieldError]) -> None:
        """Add one error or a list of errors."""
        if isinstance(error, FieldError):
            self.items.append(error)
        else:
            self.items.extend(error)

    def update(self, field_id: str, **changes: Any) -> None:
        """Update every entry of a field (e.g. after its scope or name changed)."""
        for item in self.items:
            if item.field_id != field_id:
                continue
            for key, value in changes.items():
                setattr(item, key, value)

    def regenerate(self) -> None:
        """Rebuild messages of entries that carry a generator."""
        for item in self.items:
            if item.regenerate is not None:
                item.msg = item.regenerate()

    def remove(self, field: str, scope: Any = MISSING) -> None:
        """Remove all entries for a field name, optionally within a scope."""
        self.items = [
            e for e in self.items
            if not (e.field == field and _scope_matches(e.scope, scope))
        ]

    def remove_by_id(self, field_id: str | Iterable[str]) -> None:
        ids = {field_id} if isinstance(field_id, str) else set(field_id)
        self.items = [e for e in self.items if e.field_id not in ids]

    def clear(self, scope: Any = MISSING) -> None:
        """Remove all entries, or only those within ``scope``."""
        if scope is MISSING:
            self.items = []
            return
        self.items = [e for e in self.items if e.scope != scope]

    # -------------------------------------------------------------------------
    # Read surface
    # -------------------------------------------------------------------------

    def all(self, scope: Any = MISSING) -> list[str]:
        """All messages, optionally within a scope (None means unscoped)."""
        return [e.msg for e in self.items if _scope_matches(e.scope, scope)]

    def any(self, scope: Any = MISSING) -> bool:
        return any(_scope_matches(e.scope, scope) for e in self.items)

    def count(self) -> int:
        return len(self.items)

    def collect(
        self,
        field: str | None = None,
        scope: Any = MISSING,
        map: bool = True,
    ) -> list[str] | list[FieldError] | dict[str, list[Any]]:
        """Collect errors for one field, or grouped by field name.

        Args:
            field: Field name; when omitted the result is grouped by name
            scope: Restrict to a scope (None means unscoped)
            map: Return messages instead of FieldError records

        Returns:
            A list for a single field, otherwise a dict of name -> list
        """
        if field is not None:
            name, scope = self._resolve(field, scope)
            matched = [
                e for e in self.items
                if e.field == name and _scope_matches(e.scope, scope)
            ]
            return [e.msg for e in matched] if map else matched

        grouped: dict[str, list[Any]] = {}
        for e in self.items:
            if not _scope_matches(e.scope, scope):
                continue
            grouped.setdefault(e.field, []).append(e.msg if map else e)
        return grouped

    def has(self, field: str, scope: Any = None) -> bool:
        name, scope = self._resolve(field, scope)
        return any(self._match(e, name, scope) for e in self.items)

    def first(self, field: str, scope: Any = None) -> str | None:
        """First message for a field.

        ``"name:rule"`` restricts the lookup to one rule.
        """
        name, rule = self._split_rule(field)
        if rule is not None:
            return self.first_by_rule(name, rule, scope)
        name, scope = self._resolve(name, scope)
        for e in self.items:
            if self._match(e, name, scope):
                return e.msg
        return None

    def first_by_id(self, field_id: str) -> str | None:
        for e in self.items:
            if e.field_id == field_id:
                return e.msg
        return None

    def first_rule(self, field: str, scope: Any = None) -> str | None:
        """Name of the first failed rule for a field."""
        name, scope = self._resolve(field, scope)
        for e in self.items:
            if self._match(e, name, scope):
                return e.rule
        return None

    def first_by_rule(self, field: str, rule: str, scope: Any = None) -> str | None:
        name, scope = self._resolve(field, scope)
        for e in self.items:
            if self._match(e, name, scope) and e.rule == rule:
                return e.msg
        return None

    def first_not(self, field: str, rule: str = "required", scope: Any = None) -> str | None:
        """First message for a field whose rule is not ``rule``."""
        name, scope = self._resolve(field, scope)
        for e in self.items:
            if self._match(e, name, scope) and e.rule != rule:
                return e.msg
        return None

    # -------------------------------------------------------------------------
    # Selector helpers
    # -------------------------------------------------------------------------

    def _match(self, error: FieldError, name: str, scope: Any) -> bool:
        if error.field != name:
            return False
        if scope is MISSING:
            return True
        return error.scope == scope

    def _split_rule(self, field: str) -> tuple[str, str | None]:
        name, sep, rule = field.partition(":")
        return (name, rule) if sep and rule else (field, None)

    def _resolve(self, field: str, scope: Any) -> tuple[str, Any]:
        """Resolve a "scope.name" selector when no explicit scope is given.

        A dotted name that exists unscoped wins over the scoped reading.
        """
        if scope is not None or "." not in field:
            return field, scope
        if any(e.field == field and e.scope is None for e in self.items):
            return field, None
        scope_name, _, name = field.partition(".")
        return name, scope_name
