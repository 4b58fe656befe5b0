"""
Error taxonomy.

AdmissionRejected   - a deployment gate said no (expected, user-facing)
CollaboratorFailure - ledger / deployer / pool / bridge call failed
PartialHarvestFailure - one position's fee stream failed inside a batch

None of these are fatal. Tools turn them into {"error": ...} payloads,
periodic tasks log them.
"""


class LauncherError(Exception):
    """Base for all launcher errors."""
    pass


class AdmissionRejected(LauncherError):
    """Raised by an admission gate. Carries the gate name for logging."""

    def __init__(self, gate: str, reason: str):
        super().__init__(reason)
        self.gate = gate
        self.reason = reason


class CollaboratorFailure(LauncherError):
    """An external collaborator call failed. Message is surfaced verbatim."""

    def __init__(self, collaborator: str, message: str):
        super().__init__(message)
        self.collaborator = collaborator
        self.message = message


class PartialHarvestFailure(LauncherError):
    """A single fee stream of a single position failed."""

    def __init__(self, position_ref: str, stream: str, message: str):
        super().__init__(f"{stream} fees for {position_ref}: {message}")
        self.position_ref = position_ref
        self.stream = stream
        self.message = message
