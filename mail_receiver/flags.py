"""Message flags: the fixed IMAP system flags plus free-form user flags."""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum


class SystemFlag(str, Enum):
    """System flags defined by RFC 3501, valued by their IMAP atom."""

    SEEN = "\\Seen"
    ANSWERED = "\\Answered"
    DELETED = "\\Deleted"
    FLAGGED = "\\Flagged"
    DRAFT = "\\Draft"
    RECENT = "\\Recent"


_BY_ATOM = {flag.value.upper(): flag for flag in SystemFlag}
_FLAGS_RE = re.compile(rb"FLAGS \(([^)]*)\)")


@dataclass(frozen=True)
class FlagSet:
    """Immutable combination of system and user flags."""

    system: frozenset[SystemFlag] = field(default_factory=frozenset)
    user: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def of(cls, *flags: SystemFlag | str) -> FlagSet:
        """Build a FlagSet from system flags and/or user flag names."""
        system: set[SystemFlag] = set()
        user: set[str] = set()
        for flag in flags:
            if isinstance(flag, SystemFlag):
                system.add(flag)
            else:
                user.add(flag)
        return cls(frozenset(system), frozenset(user))

    def is_empty(self) -> bool:
        return not self.system and not self.user

    def __contains__(self, flag: object) -> bool:
        if isinstance(flag, SystemFlag):
            return flag in self.system
        return flag in self.user

    def __or__(self, other: FlagSet) -> FlagSet:
        return FlagSet(self.system | other.system, self.user | other.user)

    def __sub__(self, other: FlagSet) -> FlagSet:
        return FlagSet(self.system - other.system, self.user - other.user)

    def __iter__(self):
        yield from sorted(self.system, key=lambda f: f.value)
        yield from sorted(self.user)

    def to_imap(self) -> str:
        """Render as an IMAP parenthesized flag list, e.g. ``(\\Seen custom)``."""
        atoms = [f.value if isinstance(f, SystemFlag) else f for f in self]
        return "(" + " ".join(atoms) + ")"

    @classmethod
    def from_atoms(cls, atoms: Iterable[str]) -> FlagSet:
        """Parse IMAP flag atoms; unknown backslash atoms are dropped."""
        system: set[SystemFlag] = set()
        user: set[str] = set()
        for atom in atoms:
            if not atom:
                continue
            known = _BY_ATOM.get(atom.upper())
            if known is not None:
                system.add(known)
            elif not atom.startswith("\\"):
                user.add(atom)
        return cls(frozenset(system), frozenset(user))

    @classmethod
    def from_fetch_response(cls, data: bytes) -> FlagSet:
        """Extract the ``FLAGS (...)`` item of an IMAP FETCH response line."""
        match = _FLAGS_RE.search(data)
        if match is None:
            return cls()
        return cls.from_atoms(match.group(1).decode("ascii", errors="replace").split())


def is_empty_flags(flags: FlagSet | None) -> bool:
    """True for ``None`` or a FlagSet with no system and no user flags."""
    return flags is None or flags.is_empty()
