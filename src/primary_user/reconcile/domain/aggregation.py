"""Sign-in frequency aggregation.

Picks, per device directory id, the principal that signed in most often.

Tie-break: when several principals share the highest count, the one whose
first qualifying event appears earliest in the input sequence wins. The rule
is applied through explicit first-seen indexes, so the result never depends
on dict ordering or sort stability.

Principals are grouped case-insensitively; the first spelling seen for a
principal is the one reported.

Events with an empty or missing principal are ignored.
"""

from collections.abc import Iterable, Sequence
from typing import Optional

from .entities import SignInEvent


class _PrincipalTally:
    """Counts per principal for one device, remembering first-seen order."""

    __slots__ = ("counts", "first_seen", "spelling")

    def __init__(self):
        # All keyed by the casefolded principal
        self.counts: dict[str, int] = {}
        self.first_seen: dict[str, int] = {}
        self.spelling: dict[str, str] = {}

    def add(self, principal: str, position: int) -> None:
        key = principal.casefold()
        if key not in self.counts:
            self.counts[key] = 0
            self.first_seen[key] = position
            self.spelling[key] = principal
        self.counts[key] += 1

    def winner(self) -> Optional[str]:
        if not self.counts:
            return None
        # Highest count first, then earliest first occurrence
        key = min(
            self.counts,
            key=lambda k: (-self.counts[k], self.first_seen[k]),
        )
        return self.spelling[key]

    def as_dict(self) -> dict[str, int]:
        return {self.spelling[k]: n for k, n in self.counts.items()}


class SignInAggregator:
    """Index of sign-in events by device directory id.

    Built once from the full telemetry window, then queried per device in
    O(principals for that device).

    Example:
        aggregator = SignInAggregator(events)
        upn = aggregator.most_frequent_user(device.directory_id)
    """

    def __init__(self, events: Iterable[SignInEvent]):
        self._tallies: dict[str, _PrincipalTally] = {}
        self.event_count = 0
        self.qualifying_count = 0

        for position, event in enumerate(events):
            self.event_count += 1
            if not event.device_id or not event.user_principal:
                continue
            tally = self._tallies.get(event.device_id)
            if tally is None:
                tally = self._tallies[event.device_id] = _PrincipalTally()
            tally.add(event.user_principal, position)
            self.qualifying_count += 1

    @property
    def device_count(self) -> int:
        """Number of devices with at least one qualifying event."""
        return len(self._tallies)

    def most_frequent_user(self, device_directory_id: str) -> Optional[str]:
        """Return the most frequent signer on the device, or None."""
        tally = self._tallies.get(device_directory_id)
        if tally is None:
            return None
        return tally.winner()

    def counts_for(self, device_directory_id: str) -> dict[str, int]:
        """Per-principal counts for one device (for diagnostics)."""
        tally = self._tallies.get(device_directory_id)
        return tally.as_dict() if tally else {}


def most_frequent_user(
    events: Sequence[SignInEvent],
    device_directory_id: str,
) -> Optional[str]:
    """Most frequent signer on one device over a sequence of events.

    Convenience wrapper for single lookups. For many devices build one
    SignInAggregator and query it instead.
    """
    tally = _PrincipalTally()
    for position, event in enumerate(events):
        if event.device_id == device_directory_id and event.user_principal:
            tally.add(event.user_principal, position)
    return tally.winner()
