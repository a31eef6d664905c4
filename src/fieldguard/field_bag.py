"""FieldBag: the collection of attached fields."""

from typing import Any, Callable, Iterable, Iterator, Mapping

from fieldguard.field import Field

Matcher = Mapping[str, Any]


class FieldBag:
    """Ordered collection of fields, looked up by id, name and scope."""

    def __init__(self, items: Iterable[Field] | None = None):
        self.items: list[Field] = list(items or [])

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator[Field]:
        return iter(self.items)

    def find(self, matcher: Matcher) -> Field | None:
        """First field matching the matcher, or None."""
        for item in self.items:
            if item.matches(matcher):
                return item
        return None

    def filter(self, matcher: Matcher | list[Matcher] | None) -> list[Field]:
        """All fields matching the matcher (or any matcher of a list)."""
        if isinstance(matcher, list):
            return [f for f in self.items if any(f.matches(m) for m in matcher)]
        return [f for f in self.items if f.matches(matcher)]

    def map(self, mapper: Callable[[Field], Any]) -> list[Any]:
        return [mapper(f) for f in self.items]

    def push(self, item: Field) -> None:
        if any(existing.id == item.id for existing in self.items):
            raise ValueError(f"Field with id '{item.id}' is already in the bag.")
        self.items.append(item)

    def remove(self, matcher: Matcher | Field) -> Field | None:
        """Remove and return the first matching field."""
        if isinstance(matcher, Field):
            target = matcher if matcher in self.items else None
        else:
            target = self.find(matcher)
        if target is None:
            return None
        self.items.remove(target)
        return target
