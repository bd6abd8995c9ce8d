"""
Merge engine for bwenv.

Combines two secret maps under an explicit conflict policy. The same rules
apply in both directions: pushing local values into the remote store and
pulling remote values into a local file.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Mapping


class MergePolicy(Enum):
    """Conflict rule for keys present on both sides."""

    OVERWRITE = "overwrite"
    PRESERVE = "preserve"

    @classmethod
    def from_flag(cls, overwrite: bool) -> "MergePolicy":
        return cls.OVERWRITE if overwrite else cls.PRESERVE

    @classmethod
    def parse(cls, value: str | MergePolicy) -> "MergePolicy":
        """
        Parse a policy name such as "overwrite" or "preserve".

        Raises:
            ValueError: If the name is not a known policy
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            choices = ", ".join(policy.value for policy in cls)
            raise ValueError(
                f"Unknown merge policy '{value}' (expected one of: {choices})"
            ) from exc


@dataclass(frozen=True)
class MergeResult:
    """A merged map together with what changed relative to `existing`."""

    merged: dict[str, str]
    added: tuple[str, ...] = ()
    updated: tuple[str, ...] = ()
    kept: tuple[str, ...] = ()

    @property
    def changed(self) -> bool:
        return bool(self.added or self.updated)


def merge(
    existing: Mapping[str, str],
    incoming: Mapping[str, str],
    policy: MergePolicy,
) -> dict[str, str]:
    """
    Merge `incoming` into `existing`.

    Every key from either side appears in the result. Keys only in
    `existing` are kept unchanged, keys only in `incoming` are added, and
    keys on both sides take the incoming value under OVERWRITE or keep the
    existing value under PRESERVE. Neither input is modified.

    Args:
        existing: The map being merged into
        incoming: The map providing new values
        policy: Conflict rule

    Returns:
        A new merged mapping
    """
    return merge_with_changes(existing, incoming, policy).merged


def merge_with_changes(
    existing: Mapping[str, str],
    incoming: Mapping[str, str],
    policy: MergePolicy,
) -> MergeResult:
    """
    Merge like `merge` and report the keys that were added or updated.

    Keys present on both sides with different values are listed in
    `updated` under OVERWRITE and in `kept` under PRESERVE. Keys whose
    values already agree are in neither list.
    """
    merged = dict(existing)
    added: list[str] = []
    updated: list[str] = []
    kept: list[str] = []

    for key, value in incoming.items():
        if key not in merged:
            merged[key] = value
            added.append(key)
        elif merged[key] != value:
            if policy is MergePolicy.OVERWRITE:
                merged[key] = value
                updated.append(key)
            else:
                kept.append(key)

    return MergeResult(
        merged=merged,
        added=tuple(sorted(added)),
        updated=tuple(sorted(updated)),
        kept=tuple(sorted(kept)),
    )
