"""Errors and warnings raised while evaluating reporting sessions."""

from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional


class EvidenceUnavailable(Exception):
    """An evidence source could not answer a count query."""

    def __init__(self, source: str, reason: str = ""):
        self.source = source
        self.reason = reason
        super().__init__(f"Evidence source '{source}' unavailable: {reason}" if reason else f"Evidence source '{source}' unavailable")


class InvalidEvaluationTime(ValueError):
    """The supplied ``now`` is before the reporting day begins, or is naive."""


class MarketNotFound(LookupError):
    """No market exists with the requested id."""

    def __init__(self, market_id: str):
        self.market_id = market_id
        super().__init__(f"Market not found: {market_id}")


@dataclass(frozen=True)
class EvidenceWarning:
    """Non-fatal problem attached to an otherwise usable result.

    kind is one of: ``evidence_unavailable``, ``evidence_timeout``,
    ``punch_times_unavailable``, ``role_lookup_unavailable``, ``unknown_role``.
    """

    kind: str
    source: Optional[str] = None
    reason: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
