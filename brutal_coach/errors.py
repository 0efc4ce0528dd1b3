class CoachError(Exception):
    """Base class for errors the bot reports back to the invoking user."""


class ValidationError(CoachError):
    pass


class SessionNotFound(CoachError):
    pass


class CompletionFailed(CoachError):
    def __init__(self, last_error: str):
        super().__init__(last_error)
        self.last_error = last_error
