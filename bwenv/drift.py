"""
Drift detection between a local and a remote secret map.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping


@dataclass(frozen=True)
class DriftReport:
    """
    Differences between a local and a remote secret map.

    Only disagreements are listed; keys with equal values on both sides are
    counted in `matching` and otherwise omitted. All key collections are
    sorted so that rendering is stable. `mismatched` maps each key to its
    `(local_value, remote_value)` pair, is read-only and is kept out of
    `repr`.
    """

    local_only: tuple[str, ...] = ()
    remote_only: tuple[str, ...] = ()
    mismatched: Mapping[str, tuple[str, str]] = field(
        default_factory=lambda: MappingProxyType({}), repr=False
    )
    matching: int = 0

    @property
    def mismatched_keys(self) -> tuple[str, ...]:
        return tuple(self.mismatched)

    @property
    def in_sync(self) -> bool:
        return not (self.local_only or self.remote_only or self.mismatched)

    @property
    def total_drift(self) -> int:
        return len(self.local_only) + len(self.remote_only) + len(self.mismatched)

    def inverted(self) -> "DriftReport":
        """Return the report as seen from the other side."""
        return DriftReport(
            local_only=self.remote_only,
            remote_only=self.local_only,
            mismatched=MappingProxyType(
                {key: (remote, local) for key, (local, remote) in self.mismatched.items()}
            ),
            matching=self.matching,
        )


def diff(local: Mapping[str, str], remote: Mapping[str, str]) -> DriftReport:
    """
    Compare a local map against a remote map.

    Keys are compared case-sensitively and values by exact string equality.

    Args:
        local: Variables from the local env file
        remote: Variables from the remote project

    Returns:
        A DriftReport with sorted key sets
    """
    local_only = sorted(key for key in local if key not in remote)
    remote_only = sorted(key for key in remote if key not in local)

    mismatched: dict[str, tuple[str, str]] = {}
    matching = 0
    for key in sorted(key for key in local if key in remote):
        if local[key] == remote[key]:
            matching += 1
        else:
            mismatched[key] = (local[key], remote[key])

    return DriftReport(
        local_only=tuple(local_only),
        remote_only=tuple(remote_only),
        mismatched=MappingProxyType(mismatched),
        matching=matching,
    )
