"""
Allocation errors.

Under-capacity is not an error: it is reported as pending demand on the result.
"""


class AllocationError(Exception):
    pass


class InputInconsistencyError(AllocationError):
    """A selection or assignment conflicts with the current committed state."""
    pass


class InvalidPhaseError(AllocationError):
    """Workflow operation not allowed in the current phase."""
    pass


class TrackerFinalizedError(AllocationError):
    pass


class TieBreakDecisionError(AllocationError):
    """The injected tie-break decision function failed or answered out of set."""

    def __init__(self, key: str, message: str):
        super().__init__(f"Tie-break for {key} failed: {message}")
        self.key = key


class TieBreakPendingError(AllocationError):
    """A decision for this key is already in progress."""

    def __init__(self, key: str):
        super().__init__(f"Tie-break for {key} is already pending")
        self.key = key


class TieBreakRequired(AllocationError):
    """
    Raised when a tie needs an outside decision and none can be made now.
    Record the answer on the resolver and re-run; the run replays deterministically.
    """

    def __init__(self, request):
        super().__init__(f"Tie-break decision required for {request.key}")
        self.request = request
