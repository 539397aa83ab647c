"""Exceptions raised by the Herit service layer."""


class InvalidToken(ValueError):
    """Token or cookie is invalid, malformed, or forged."""


class ExpiredToken(InvalidToken):
    """Token has expired."""


class TokenReplayed(InvalidToken):
    """A refresh token was presented after it had already been rotated."""


class NoSuchUser(RuntimeError):
    """A request was made for a user that does not exist."""


class UserExists(RuntimeError):
    """An account with the requested e-mail address already exists."""


class AuthenticationFailed(RuntimeError):
    """Failed to authenticate user with provided credentials."""


class RegistrationFailed(RuntimeError):
    """Could not create a new user."""


class InvalidStep(ValueError):
    """Onboarding step is not an integer in the range 0-3."""


class StepOutOfOrder(ValueError):
    """Onboarding step was submitted before the steps that precede it."""


class IncompleteOnboarding(RuntimeError):
    """Onboarding cannot be completed until every step is done."""

    def __init__(self, message: str, completion_status: dict) -> None:
        super(IncompleteOnboarding, self).__init__(message)
        self.completion_status = completion_status


class InvalidSignature(ValueError):
    """Signature payload is missing required data."""


class Unavailable(RuntimeError):
    """The database is temporarily unavailable."""


class InvalidPayload(ValueError):
    """Request body does not match the structure expected for it."""


class MissingConsents(ValueError):
    """The legal consent step requires consents the user has not signed."""

    def __init__(self, message: str, missing: list) -> None:
        super(MissingConsents, self).__init__(message)
        self.missing = missing
