"""
Import reconciliation: decide which imported candidates may join the store.

A single ordered pass over the candidates. A candidate is rejected when its
mobile number is
  - empty                                   → "empty-mobile"
  - already used by an existing record      → "existing-mobile"
  - already accepted earlier in this batch  → "duplicate-in-file"
Everything else is accepted. Rejections are counted, never raised, so one
bad row does not block the rest of the batch.
"""

from __future__ import annotations

import logging
import typing
from collections import namedtuple
from dataclasses import dataclass, field

from .record import PatientRecord

logger = logging.getLogger(__name__)

EMPTY_MOBILE = "empty-mobile"
EXISTING_MOBILE = "existing-mobile"
DUPLICATE_IN_FILE = "duplicate-in-file"

RejectedRow = namedtuple("RejectedRow", ["position", "mobile_number", "reason"])


@dataclass
class ReconcileResult:
    """
    Outcome of reconciling one batch.

    Attributes:
        accepted: Candidates allowed into the store, in batch order.
        rejections: One RejectedRow per dropped candidate (position is 0-based in the batch).
    """

    accepted: list[PatientRecord] = field(default_factory=list)
    rejections: list[RejectedRow] = field(default_factory=list)

    @property
    def accepted_count(self) -> int:
        return len(self.accepted)

    @property
    def rejected_count(self) -> int:
        return len(self.rejections)


def reconcile(
    candidates: typing.Sequence[PatientRecord],
    existing: typing.Iterable[PatientRecord],
) -> ReconcileResult:
    existing_mobiles = {r.mobile_number for r in existing if r.mobile_number}
    seen_in_batch: set[str] = set()
    result = ReconcileResult()

    for position, candidate in enumerate(candidates):
        mobile = candidate.mobile_number
        if not mobile:
            reason = EMPTY_MOBILE
        elif mobile in existing_mobiles:
            reason = EXISTING_MOBILE
        elif mobile in seen_in_batch:
            reason = DUPLICATE_IN_FILE
        else:
            seen_in_batch.add(mobile)
            result.accepted.append(candidate)
            continue

        logger.warning(f"Rejected imported row {position}: {reason} ({mobile!r})")
        result.rejections.append(RejectedRow(position, mobile, reason))

    return result
