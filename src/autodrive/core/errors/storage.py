"""Session state storage error classes."""


class LockAcquisitionError(Exception):
    """Raised when the state file lock cannot be acquired within timeout."""
    pass


class StateCorrupted(Exception):
    """Raised when a state file exists but cannot be parsed or validated."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"State file {path} is corrupted: {reason}")
