class CortexError(Exception):
    """Base class for every error raised by cortexmem."""

class EmbeddingUnavailable(CortexError):
    pass

class ClassificationUnavailable(CortexError):
    pass

class LLMError(CortexError):
    pass

class LLMParseError(LLMError):
    """The model answered, but not with a payload of the requested shape."""

    def __init__(self, msg: str, raw: str = ""):
        super().__init__(msg)
        self.raw = raw

class LLMUnavailable(LLMError):
    pass

class StoreUnavailable(CortexError):
    """The backing database could not be reached or failed mid-operation."""

class StoreError(CortexError):
    """A write would break a stored-data invariant."""
