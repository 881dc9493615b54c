"""Error kinds raised by the translator, validators, store and engine.

Each kind carries the HTTP status it is rendered with, a human readable
message and an optional detail payload that becomes the envelope's ``data``.
"""

from contextlib import contextmanager


class ApiError(Exception):
    status_code = 500

    def __init__(self, message, data=None):
        super().__init__(message)
        self.message = message
        self.data = {} if data is None else data


class BadRequest(ApiError):
    status_code = 400


class NotFound(ApiError):
    status_code = 404


class StoreError(ApiError):
    status_code = 500


class DuplicateKey(StoreError):
    """A store-level unique constraint was violated."""


@contextmanager
def reraise_as(message):
    """Give a bare store failure the message of the operation that hit it."""
    try:
        yield
    except DuplicateKey:
        raise
    except StoreError as exc:
        raise StoreError(message, exc.data) from exc
