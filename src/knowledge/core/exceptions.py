"""
Custom exceptions for the knowledge module.
"""


class KnowledgeError(Exception):
    """Base exception for all knowledge module errors."""
    pass


class KnowledgeConfigError(KnowledgeError):
    """
    Error in knowledge configuration.

    Raised when:
    - The selected embedding model is not declared in the models table
    - A model declares an unknown backend kind
    - Configuration values are out of valid range
    """
    pass


class KnowledgeBackendError(KnowledgeError):
    """
    Error computing an embedding with a backend.

    Raised when:
    - Provider is unreachable
    - Request times out
    - Provider returns an error response
    - Response is malformed or has the wrong vector width
    """

    def __init__(self, message: str, backend: str = None, status_code: int = None):
        super().__init__(message)
        self.backend = backend
        self.status_code = status_code


class KnowledgeIndexError(KnowledgeError):
    """
    Error with the similarity index.

    Raised when:
    - The index is redeclared with a different dimension
    - A record or query vector does not match the declared dimension
    - The index declaration itself fails
    """

    def __init__(self, message: str, expected: int = None, actual: int = None):
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class KnowledgeSourceError(KnowledgeError):
    """
    Error reading a knowledge source.

    Raised when:
    - A local file cannot be read or decoded
    - A directory to ingest does not exist
    - A URL fetch fails or returns an error status
    """
    pass


class KnowledgeStorageError(KnowledgeError):
    """
    Error persisting or querying knowledge in the embedded database.

    Raised when:
    - The database file cannot be opened
    - An upsert or query statement fails
    """
    pass
