"""Exception types raised across the completion pipeline."""


class CompletionError(Exception):
    """Base class for llm-complete errors."""


class InputError(CompletionError):
    """Input could not be obtained (missing file argument, unreadable file)."""


class StreamError(CompletionError):
    """The token source failed while producing tokens."""


class SinkError(CompletionError):
    """Writing a token to the output sink failed."""
