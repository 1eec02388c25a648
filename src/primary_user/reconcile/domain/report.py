"""Append-only outcome report for a reconciliation run."""

from dataclasses import dataclass
from typing import Optional

from .entities import ReconciliationOutcome
from .ports import IReportSink


@dataclass(frozen=True)
class ReconciliationReport:
    """The finalized trace of a run, in processing order."""

    outcomes: tuple[ReconciliationOutcome, ...] = ()

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def modified(self) -> int:
        return sum(1 for o in self.outcomes if o.was_modified)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.is_failure)

    @property
    def unchanged(self) -> int:
        return self.total - self.modified - self.failed


class OutcomeReporter:
    """Accumulates one outcome per processed device.

    Each appended outcome is forwarded to the sink immediately, so the report
    on disk is complete up to the last processed device even if the run is
    interrupted. The reporter is passed explicitly to whoever produces
    outcomes.
    """

    def __init__(self, sink: Optional[IReportSink] = None):
        self._sink = sink
        self._outcomes: list[ReconciliationOutcome] = []
        self._finalized = False

    def append(self, outcome: ReconciliationOutcome) -> None:
        if self._finalized:
            raise RuntimeError("Cannot append to a finalized report")
        self._outcomes.append(outcome)
        if self._sink:
            self._sink.write(outcome)

    def __len__(self) -> int:
        return len(self._outcomes)

    def finalize(self) -> ReconciliationReport:
        """Close the sink and return the immutable report.

        Calling finalize() again returns the same report.
        """
        if not self._finalized:
            self._finalized = True
            if self._sink:
                self._sink.close()
        return ReconciliationReport(outcomes=tuple(self._outcomes))
