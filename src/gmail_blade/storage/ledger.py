from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, Set


@dataclass
class ProcessedLedger:
    """
    UIDs already handled during this process lifetime.
    In memory only: a restart starts from an empty ledger.
    """

    uids: Set[int] = field(default_factory=set)

    def add(self, uid: int) -> None:
        self.uids.add(uid)

    def __contains__(self, uid: object) -> bool:
        return uid in self.uids

    def __len__(self) -> int:
        return len(self.uids)

    def __iter__(self) -> Iterator[int]:
        return iter(sorted(self.uids))
