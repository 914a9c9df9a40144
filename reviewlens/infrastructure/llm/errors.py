"""Errors raised by the LLM-backed classifier and insight generator."""


class ClassifierError(Exception):
    """Base exception for classifier errors."""
    pass


class ClassifierUnavailable(ClassifierError):
    """No API key, connection failure or an HTTP error status."""
    pass


class ClassifierTimeout(ClassifierError):
    """The call exceeded the configured timeout."""
    pass


class ClassifierMalformedResponse(ClassifierError):
    """The response was not JSON or did not match the expected shape."""
    pass
