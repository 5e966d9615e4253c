"""Paginated pull of the remote product catalog.

This module provides:
- ProductSyncController: Resumable, idempotent catalog pull into the local store
- parse_product / parse_page: Validation and mapping of remote payloads

Progress model:
    The checkpoint records the last page committed locally. A run requests
    current_page + 1, upserts the page in one bulk write and then advances
    the checkpoint in one write. A failure anywhere in between leaves the
    checkpoint untouched, so the next run asks for the same page again.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import TYPE_CHECKING, Any

from possync.client.state import PRODUCT_SYNC_SOURCE, Product, SyncProgress, to_decimal
from possync.client.sync.types import SyncOutcome, SyncResult, ValidationError
from possync.core.types import SyncKind

if TYPE_CHECKING:
    from possync.client.api import HTTPClient
    from possync.client.state import LocalStore

logger = logging.getLogger(__name__)

PRODUCTS_ENDPOINT = "/products"
DEFAULT_CATEGORY = "Uncategorized"


def _pick(record: dict[str, Any], attrs: dict[str, Any], *keys: str) -> Any:
    """First non-null value among keys, top level first, then attributes."""
    for key in keys:
        for source in (record, attrs):
            value = source.get(key)
            if value is not None:
                return value
    return None


def parse_product(record: Any) -> Product:
    """Map one remote product record to a Product row.

    Accepts flat records and JSON:API style records whose fields live under
    "attributes".

    Raises:
        ValidationError: If id, name or price is missing or malformed.
    """
    if not isinstance(record, dict):
        raise ValidationError(f"Product record is not an object: {record!r}")

    attrs = record.get("attributes")
    if not isinstance(attrs, dict):
        attrs = {}

    product_id = record.get("id")
    if product_id is None or product_id == "" or isinstance(product_id, bool):
        raise ValidationError(f"Product record without id: {record!r}")

    name = _pick(record, attrs, "name")
    if not isinstance(name, str) or not name.strip():
        raise ValidationError(f"Product {product_id} has no name")

    price = _pick(record, attrs, "price", "product_price", "selling_price")
    if price is None:
        raise ValidationError(f"Product {product_id} has no price")

    category = _pick(record, attrs, "category", "category_id", "product_category_id")
    code = _pick(record, attrs, "code", "sku")

    return Product(
        id=str(product_id),
        name=name,
        price=to_decimal(price, f"price of product {product_id}"),
        category=str(category) if category not in (None, "") else DEFAULT_CATEGORY,
        code=str(code) if code not in (None, "") else None,
        raw_response=json.dumps(record, sort_keys=True),
    )


def parse_page(body: Any) -> tuple[list[Product], int]:
    """Validate one catalog page.

    Args:
        body: Decoded response body, {"data": [...], "last_page": n} or with
            last_page nested in a "meta" object.

    Returns:
        Tuple of (products, last_page).

    Raises:
        ValidationError: If data or last_page is missing or malformed.
    """
    if not isinstance(body, dict):
        raise ValidationError("Products response is not a JSON object")

    data = body.get("data")
    if not isinstance(data, list):
        raise ValidationError("Products response has no 'data' list")

    last_page = body.get("last_page")
    if last_page is None and isinstance(body.get("meta"), dict):
        last_page = body["meta"].get("last_page")
    if last_page is None or isinstance(last_page, bool):
        raise ValidationError("Products response has no 'last_page'")
    try:
        last_page = int(last_page)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid last_page: {last_page!r}") from e

    # An empty catalog still has one (empty) page.
    last_page = max(last_page, 1)

    return [parse_product(record) for record in data], last_page


class ProductSyncController:
    """Pulls the remote catalog page by page into the local store.

    Usage:
        controller = ProductSyncController(store, client)
        result = await controller.start_sync(base_url, token)
        progress = controller.get_progress()
    """

    def __init__(
        self,
        store: LocalStore,
        client: HTTPClient,
        page_delay: float = 0.0,
        source: str = PRODUCT_SYNC_SOURCE,
    ) -> None:
        """Initialize the controller.

        Args:
            store: Local store receiving the products and the checkpoint.
            client: Transport client.
            page_delay: Seconds to wait between two pages (server throttling).
            source: Checkpoint identifier.
        """
        self._store = store
        self._client = client
        self._page_delay = page_delay
        self._source = source

    def get_progress(self) -> SyncProgress:
        """Current checkpoint."""
        return self._store.get_sync_progress(self._source)

    def reset_sync(self) -> SyncProgress:
        """Clear the checkpoint so the next run pulls the catalog from page 1."""
        logger.info("Resetting product sync progress")
        return self._store.reset_sync_progress(self._source)

    async def fetch_page(self, base_url: str, user_token: str, page: int) -> tuple[list[Product], int]:
        """Fetch and validate one catalog page.

        Raises:
            TransportError: On network or HTTP failure.
            ValidationError: On a malformed payload.
        """
        response = await self._client.get(
            f"{base_url.rstrip('/')}{PRODUCTS_ENDPOINT}",
            params={"page": page},
            token=user_token,
        )
        products, last_page = parse_page(response.body)
        if last_page < page:
            raise ValidationError(
                f"Server reports last_page {last_page} but page {page} was requested; "
                "the catalog shrank, reset product sync to pull it again"
            )
        return products, last_page

    async def start_sync(self, base_url: str, user_token: str | None) -> SyncResult:
        """Pull every remaining page.

        Returns:
            SyncResult with SKIPPED_NO_TOKEN without a token or
            SKIPPED_COMPLETED when the catalog was already fully pulled (no
            network call in either case), else COMPLETED.

        Raises:
            TransportError: If a page fetch fails. Committed pages are kept.
            ValidationError: If a page payload is malformed.
        """
        if not user_token:
            logger.debug("No auth token, skipping product sync")
            return SyncResult(SyncKind.PRODUCTS, SyncOutcome.SKIPPED_NO_TOKEN)

        progress = self.get_progress()
        if progress.is_completed:
            logger.info(
                "Product sync already completed (%d products), nothing to do",
                progress.total_products,
            )
            return SyncResult(SyncKind.PRODUCTS, SyncOutcome.SKIPPED_COMPLETED)

        if progress.current_page:
            logger.info(
                "Resuming product sync after page %d of %s",
                progress.current_page,
                progress.last_page,
            )
        else:
            logger.info("Starting product sync")

        pages = 0
        products = 0
        while True:
            page = progress.current_page + 1
            records, last_page = await self.fetch_page(base_url, user_token, page)

            self._store.upsert_products(records)
            progress = self._store.advance_sync_progress(
                last_page, len(records), source=self._source
            )
            pages += 1
            products += len(records)
            logger.info(
                "Stored %d products from page %d/%d",
                len(records),
                page,
                last_page,
            )

            if progress.is_completed:
                break
            if self._page_delay > 0:
                await asyncio.sleep(self._page_delay)

        logger.info(
            "Product sync completed: %d pages, %d products this run, %d total",
            pages,
            products,
            progress.total_products,
        )
        return SyncResult(
            SyncKind.PRODUCTS,
            SyncOutcome.COMPLETED,
            pages=pages,
            products=products,
        )
