#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Provides the parameters for the transactions subscription.

The filter is built once, before the first connection attempt, and
reused for every reconnect. It carries no connection specific state.

The wire format looks like this:

..code:: python
{
    "network": "solana-mainnet",
    "verified": False,
    "filter": {
        "accountKeys": {
            "all": ["TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"],
            "exclude": ["675kPX9MHTjS2zt1qfr1NYHuzeLXfQM9H24wFSUt1Mp8", ...]
        }
    }
}

An empty 'all' list means: no restriction. It is always sent, never
omitted.

Created on Sat Oct 17 10:02:17 2026

@author_ dhaneor
"""
import json

from dataclasses import dataclass, field
from typing import Any, Iterable


@dataclass(frozen=True)
class SubscriptionFilter:
    """Immutable parameters for a transactions subscription."""

    network: str
    verified: bool = False
    include: tuple[str, ...] = ()
    exclude: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self):
        """Type check for provided values."""

        if not isinstance(self.network, str) or not self.network:
            raise TypeError("network must be a non-empty string")

        if not isinstance(self.verified, bool):
            raise TypeError("verified must be a bool")

        for key in (*self.include, *self.exclude):
            _check_key(key)

    def to_params(self) -> dict[str, Any]:
        return {
            "network": self.network,
            "verified": self.verified,
            "filter": {
                "accountKeys": {
                    "all": list(self.include),
                    "exclude": sorted(self.exclude),
                }
            },
        }

    def to_json(self) -> str:
        return json.dumps(self.to_params())

    @staticmethod
    def from_json(json_str: str) -> "SubscriptionFilter":
        d = json.loads(json_str)
        keys = d["filter"]["accountKeys"]

        return build_filter(
            network=d["network"],
            verified=d["verified"],
            include=keys.get("all", []),
            exclude=keys.get("exclude", []),
        )


def _check_key(key: Any) -> None:
    if not isinstance(key, str):
        raise TypeError(f"account keys must be strings, got: {type(key)}")

    if not key:
        raise ValueError("account keys must not be empty")


def build_filter(
    network: str,
    verified: bool,
    include: Iterable[str] = (),
    exclude: Iterable[str] = (),
) -> SubscriptionFilter:
    """Build the subscription filter.

    Parameters
    ----------
    network : str
        target network, e.g. 'solana-mainnet'
    verified : bool
        only verified transactions yes/no
    include : Iterable[str], optional
        account keys that must be involved, empty means all, by
        default ()
    exclude : Iterable[str], optional
        account keys that must not be involved, by default ()

    Returns
    -------
    SubscriptionFilter
    """
    # keep the order of the include keys, but drop duplicates
    return SubscriptionFilter(
        network=network,
        verified=verified,
        include=tuple(dict.fromkeys(include)),
        exclude=frozenset(exclude),
    )
