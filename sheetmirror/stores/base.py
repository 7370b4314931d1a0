"""Base classes for table stores."""

import logging
from abc import ABC, abstractmethod
from typing import Any, Generic, TypeVar

import httpx

from ..errors import AdapterUnavailable
from ..models import Table

logger = logging.getLogger(__name__)

L = TypeVar("L")


class TableAdapter(ABC, Generic[L]):
    """Uniform read/overwrite of a named table in some store.

    ``L`` is the locator type the store needs to address one table.
    """

    store_name: str = "store"

    @abstractmethod
    async def fetch(self, locator: L) -> Table:
        """Read the full table.

        Raises:
            AdapterUnavailable: The store rejected or failed the request.
        """
        pass

    @abstractmethod
    async def replace(self, locator: L, table: Table) -> None:
        """Overwrite the table with ``table``.

        Callers supply the complete desired state.

        Raises:
            AdapterUnavailable: The store rejected or failed the request.
            MalformedTable: Rows do not match the header length.
        """
        pass


async def send_request(
    client: httpx.AsyncClient,
    store: str,
    method: str,
    url: str,
    **kwargs: Any,
) -> httpx.Response:
    """Issue one HTTP request and map every failure to AdapterUnavailable.

    Args:
        client: Shared async client (its timeout bounds the call).
        store: Store name used in error messages.
        method: HTTP method.
        url: Absolute URL or path relative to the client's base URL.
        **kwargs: Passed through to ``client.request``.

    Returns:
        The successful (2xx) response.
    """
    try:
        response = await client.request(method, url, **kwargs)
    except httpx.TimeoutException as e:
        logger.warning(f"{store} request timed out: {method} {url}")
        raise AdapterUnavailable(store, f"request timed out ({e.__class__.__name__})") from e
    except httpx.HTTPError as e:
        logger.warning(f"{store} request failed: {method} {url}: {e}")
        raise AdapterUnavailable(store, str(e) or e.__class__.__name__) from e

    if response.status_code >= 400:
        body = response.text
        snippet = (body[:200] + "...") if len(body) > 200 else body
        raise AdapterUnavailable(store, snippet, status_code=response.status_code)

    return response
