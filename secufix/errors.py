# secufix/errors.py


class SecuFixError(Exception):
    """Base class for errors that abort a scan (or one step of it)."""


class InvalidRepositoryError(SecuFixError):
    """The repository identifier is missing or not a GitHub URL."""


class FetchError(SecuFixError):
    """The repository or one of its files could not be retrieved."""


class RewriteError(SecuFixError):
    """Updated manifest text could not be produced for a file."""
