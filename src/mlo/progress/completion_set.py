"""Structured set of identifiers: problem slugs, roadmap topic ids."""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from mlo.errors import ProgressValidationError

SLUG_MAX_LENGTH = 128


class CompletionSet:
    """Immutable, de-duplicated set of identifiers with validated members."""

    __slots__ = ("_members",)

    def __init__(self, members: Iterable[str] = ()) -> None:
        self._members = frozenset(members)

    @classmethod
    def parse(
        cls,
        values: object,
        max_size: int | None = None,
        field: str = "completedSlugs",
        label: str = "problem slug",
    ) -> CompletionSet:
        """Build from untrusted input, raising ``ProgressValidationError`` on bad shape."""
        if not isinstance(values, (list, tuple, set, frozenset)):
            raise ProgressValidationError(f"{field} must be a list of strings")
        if max_size is not None and len(values) > max_size:
            raise ProgressValidationError(f"At most {max_size} entries are accepted in {field}")
        members = []
        for value in values:
            if not isinstance(value, str):
                raise ProgressValidationError(f"{field} must be a list of strings")
            member = value.strip()
            if not member or len(member) > SLUG_MAX_LENGTH:
                raise ProgressValidationError(f"Invalid {label}: {value!r}")
            members.append(member)
        return cls(members)

    @classmethod
    def from_flags(cls, flags: object, max_size: int | None = None, field: str = "completions") -> CompletionSet:
        """Build from a ``{id: bool}`` map, keeping the ids flagged true."""
        if not isinstance(flags, dict) or not all(isinstance(v, bool) for v in flags.values()):
            raise ProgressValidationError(f"{field} must map ids to true/false")
        return cls.parse([k for k, done in flags.items() if done], max_size=max_size, field=field, label="id")

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._members))

    def __len__(self) -> int:
        return len(self._members)

    def __contains__(self, member: object) -> bool:
        return member in self._members

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CompletionSet):
            return NotImplemented
        return self._members == other._members

    def __hash__(self) -> int:
        return hash(self._members)

    def __repr__(self) -> str:
        return f"CompletionSet({sorted(self._members)!r})"

    def difference(self, other: Iterable[str]) -> CompletionSet:
        return CompletionSet(self._members.difference(other))

    def to_list(self) -> list[str]:
        return sorted(self._members)
