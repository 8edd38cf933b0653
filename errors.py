"""
Catalog errors

Core modules raise these; main.py turns each one into an HTTP response.
"""


class CatalogError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(CatalogError):
    status_code = 404


class ValidationFailure(CatalogError):
    status_code = 400


class Conflict(CatalogError):
    status_code = 409


class Unauthorized(CatalogError):
    status_code = 401


class DependencyFailure(CatalogError):
    """The document store or the asset service failed."""

    status_code = 502
