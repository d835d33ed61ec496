"""Exceptions shared by the repositories and the HTTP layer.

Lookups that miss return None instead of raising; these cover the cases
where the caller must not proceed.
"""


class StorefrontError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class StoreError(StorefrontError):
    status_code = 503


class PermissionDenied(StorefrontError):
    status_code = 403


class InvalidTransition(StorefrontError):
    status_code = 400


class InsufficientStock(StorefrontError):
    status_code = 400


class InvalidOrder(StorefrontError):
    status_code = 400
