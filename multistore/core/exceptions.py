"""Domain errors raised by the multi-store services.

Routes let these propagate; the handler registered in ``multistore.main``
renders them as ``ErrorResponse`` bodies with the error's status code.
"""

from fastapi import status


class MultiStoreError(Exception):
    """Base class for errors surfaced to the merchant dashboard."""

    code = "multi_store_error"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code


class ValidationError(MultiStoreError):
    code = "validation_error"


class NotFound(MultiStoreError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class AlreadyExists(MultiStoreError):
    code = "already_exists"


class CapacityExceeded(MultiStoreError):
    code = "capacity_exceeded"


class UpstreamError(MultiStoreError):
    """A Shopify Admin API call failed."""

    code = "upstream_error"
    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(
        self,
        message: str,
        *,
        upstream_status: int | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, status_code=status_code)
        self.upstream_status = upstream_status


class NoApiToken(MultiStoreError):
    code = "no_api_token"


class NoEnabledBackups(MultiStoreError):
    code = "no_enabled_backups"


class EmptyPrimaryCatalog(MultiStoreError):
    code = "empty_primary_catalog"


class UnmappedItems(MultiStoreError):
    """Cart contains variants without a mapping for the selected backup store.

    The checkout router reports this as a soft ``RouteResult`` rather than
    raising it; the class exists so callers share one reason code.
    """

    code = "unmapped_items"

    def __init__(self, variant_ids: list[str]) -> None:
        super().__init__(f"No mapping for variants: {', '.join(variant_ids)}")
        self.variant_ids = variant_ids
