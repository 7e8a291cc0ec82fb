"""Project-specific exception types."""

from __future__ import annotations


class ClawupError(RuntimeError):
    """Base error for domain-level clawup failures."""


class MissingSSHIdentityError(ClawupError):
    """Raised when an SSH identity is required but missing."""


class ProvisionError(ClawupError):
    """The control plane rejected a request or returned an unusable response.

    The raw upstream payload is kept on ``response`` and included verbatim
    in the message, since it is the operator's only diagnostic signal.
    """

    def __init__(self, message: str, response: object = None):
        self.response = response
        if response is not None:
            message = f'{message}\nControl plane response: {response}'
        super().__init__(message)


class ReachabilityTimeout(ClawupError, TimeoutError):
    """The instance never accepted an authenticated session within budget."""

    def __init__(self, address: str, attempts: int, elapsed: float):
        self.address = address
        self.attempts = attempts
        self.elapsed = elapsed
        super().__init__(
            f'Server {address} did not become reachable after {attempts} '
            f'attempts ({int(elapsed)}s). Check the provider console.'
        )


class RequiredStepError(ClawupError):
    """A required bootstrap step failed; the run was aborted at that step."""

    def __init__(self, step: str, cause: BaseException):
        self.step = step
        self.cause = cause
        # Attached by the orchestrator so callers can render partial progress.
        self.report = None
        super().__init__(f'Required step {step!r} failed: {cause}')


class StepNotApplicable(ClawupError):
    """Raised by a step action when there is nothing to act on."""


class OptionalStepWarning(UserWarning):
    """Failure of an optional step. Recorded in the report, never raised."""

    def __init__(self, step: str, cause: BaseException | str):
        self.step = step
        self.cause = cause
        super().__init__(f'Optional step {step!r} failed: {cause}')
