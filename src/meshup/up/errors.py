"""Errors raised by the up command."""


class UpError(Exception):
    """Base class for up command failures."""


class UpValidationError(UpError):
    """Flags that can't be turned into valid prefs."""


class UsageError(UpValidationError):
    """The command line itself is malformed."""


class AccidentalRevertError(UpError):
    """Unmentioned flags would silently revert current settings.

    Carries both halves of the corrective command line so callers can
    present or reuse it.
    """

    PREFIX = (
        "Error: changing settings via 'up' requires mentioning all\n"
        "non-default flags. To proceed, either re-run your command with --reset or\n"
        "use the command below to explicitly mention the current value of\n"
        "all non-default settings:\n\n"
    )

    def __init__(self, explicit: list[str], missing: list[str], program: str = "meshup up"):
        self.explicit = explicit
        self.missing = missing
        self.program = program
        super().__init__(f"{self.PREFIX}\t{self.command_line}\n\n")

    @property
    def command_line(self) -> str:
        return " ".join([self.program, *self.explicit, *self.missing])


class BackendError(UpError):
    """The daemon reported a fatal error while we waited on it."""


class StreamClosedError(UpError):
    """The notification stream ended before the backend was running."""


class HandshakeCancelledError(UpError):
    """Waiting for the backend was cancelled or timed out."""
