"""Exceptions raised by the planner."""


class PlannerError(Exception):
    """Base exception for planner errors.

    ``component`` names the part of the planner that failed and ``subject``
    the input it was looking at, so the CLI can report both.
    """

    component = "planner"

    def __init__(self, message: str, subject: str | None = None):
        super().__init__(message)
        self.subject = subject

    def describe(self) -> str:
        if self.subject:
            return f"[{self.component}] {self.subject}: {self}"
        return f"[{self.component}] {self}"


class ConfigurationError(PlannerError):
    """The configuration is malformed or contradicts itself."""

    component = "config"


class ForecastGapError(PlannerError):
    """The price forecast does not cover a session anywhere it may run."""

    component = "forecast"


class SpotPriceError(PlannerError):
    """A spot price blob could not be fetched or parsed."""

    component = "prices"


class ExecutionFailure(PlannerError):
    """The device rejected or failed to schedule a session."""

    component = "execution"
