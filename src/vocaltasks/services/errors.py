"""Error taxonomy for note parsing.

Every ``NoteParsingError`` is absorbed by the note parser and turned into the
heuristic fallback result. ``InternalInvariantFailure`` is not a
``NoteParsingError``: it signals a broken deployment (e.g. an unknown
timezone) and propagates to the caller.
"""


class NoteParsingError(Exception):
    """Base class for recoverable parsing failures."""

    pass


class NoCredentialConfiguredError(NoteParsingError):
    """No usable provider credential is configured."""

    pass


class ProviderUnavailableError(NoteParsingError):
    """The provider could not be reached or answered with an error status."""

    pass


class EmptyResponseError(NoteParsingError):
    """The provider answered without any text."""

    pass


class MalformedResultError(NoteParsingError):
    """The provider text is not the expected JSON object."""

    pass


class InternalInvariantFailure(Exception):
    """Configuration is broken in a way no fallback can hide."""

    pass
