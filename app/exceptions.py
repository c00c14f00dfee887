"""
Error taxonomy for the concordance core.
Each error carries the HTTP status the API layer reports it with.
"""
import functools

from sqlalchemy.exc import InterfaceError, OperationalError


class ConcordanceError(Exception):
    """Base class for errors raised by the indexing and query code."""
    status_code = 500


class InvalidQuery(ConcordanceError):
    """Search term, phrase or word list is empty after normalization."""
    status_code = 400


class NotFound(ConcordanceError):
    """Referenced decision, word group or phrase does not exist."""
    status_code = 404


class IndexingFailure(ConcordanceError):
    """A re-index transaction failed and was rolled back."""
    status_code = 500


class StorageUnavailable(ConcordanceError):
    """The database could not be reached."""
    status_code = 503


class SourceFetchError(ConcordanceError):
    """Downloading a decision text from a remote URL failed."""
    status_code = 502


def translate_storage_errors(func):
    """Report connectivity failures on read paths as StorageUnavailable."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except (OperationalError, InterfaceError) as e:
            raise StorageUnavailable(f"Database unavailable: {e.orig}") from e
    return wrapper
