# 404, non-2xx and bad json are misses; 401/403/429 raise ProviderRejected
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

import httpx
import structlog
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_incrementing
from tenacity.wait import wait_base

from homeinv.config import Settings, settings as default_settings
from homeinv.models.enums import ProductSource
from homeinv.schemas.barcode import ProductInfo

logger = structlog.get_logger(__name__)

ISBN_PATTERN = re.compile(r"^97[89]\d{10}$")

_REJECTED_STATUSES = {401, 403, 429}

def is_isbn(upc: str) -> bool:
    return bool(ISBN_PATTERN.match(upc))

def _clean(value: Any) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        value = str(value)
    value = value.strip()
    return value or None

def _names(items: Any) -> list[str]:
    # [{"name": "..."}] or ["..."]
    out: list[str] = []
    if not isinstance(items, list):
        return out
    for item in items:
        name = _clean(item.get("name")) if isinstance(item, dict) else _clean(item)
        if name:
            out.append(name)
    return out

class ProviderCallFailed(Exception):
    pass

class ProviderRejected(Exception):
    def __init__(self, provider: str, status_code: int):
        super().__init__(f"{provider} rejected request with HTTP {status_code}")
        self.provider = provider
        self.status_code = status_code

class _Retryable(Exception):
    pass

@dataclass(frozen=True)
class ProviderHit:
    product: ProductInfo
    raw: dict[str, Any]

class ProductProvider:
    name: str = ""
    # insert-if-absent instead of upsert when False
    overwrite_cache: bool = True

    def __init__(
        self,
        client: httpx.Client,
        max_attempts: int = 3,
        backoff_seconds: float = 0.75,
        wait: wait_base | None = None,
    ):
        self.client = client
        self.max_attempts = max_attempts
        self.wait = wait or wait_incrementing(start=backoff_seconds, increment=backoff_seconds)

    def applies_to(self, upc: str) -> bool:
        return True

    def fetch(self, upc: str) -> dict[str, Any] | None:
        raise NotImplementedError

    def normalize(self, upc: str, data: dict[str, Any]) -> ProductInfo | None:
        raise NotImplementedError

    def try_lookup(self, upc: str) -> ProviderHit | None:
        try:
            data = self.fetch(upc)
        except ProviderCallFailed as e:
            logger.warning("barcode_provider_failed", provider=self.name, upc=upc, error=str(e))
            return None

        product = self.normalize(upc, data) if data else None
        if product is None:
            logger.info("barcode_provider_miss", provider=self.name, upc=upc)
            return None

        return ProviderHit(product=product, raw=data)

    def _get_json(
        self,
        url: str,
        params: dict[str, str] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self.wait,
            retry=retry_if_exception_type(_Retryable),
            reraise=True,
        )
        try:
            response = retrying(self._send, url, params, headers)
        except _Retryable as e:
            raise ProviderCallFailed(str(e)) from e

        if response.status_code in _REJECTED_STATUSES:
            raise ProviderRejected(self.name, response.status_code)
        if response.status_code == 404:
            return None
        if not response.is_success:
            raise ProviderCallFailed(f"HTTP {response.status_code}")

        try:
            return response.json()
        except ValueError as e:
            raise ProviderCallFailed(f"malformed json: {e}") from e

    def _send(
        self,
        url: str,
        params: dict[str, str] | None,
        headers: dict[str, str] | None,
    ) -> httpx.Response:
        try:
            response = self.client.get(url, params=params, headers=headers)
        except httpx.TransportError as e:
            raise _Retryable(f"{type(e).__name__}: {e}") from e

        if response.status_code >= 500:
            raise _Retryable(f"HTTP {response.status_code}")
        return response

class OpenLibraryProvider(ProductProvider):
    name = ProductSource.openlibrary.value
    url = "https://openlibrary.org/api/books"

    def applies_to(self, upc: str) -> bool:
        return is_isbn(upc)

    def fetch(self, upc: str) -> dict[str, Any] | None:
        data = self._get_json(
            self.url,
            params={"bibkeys": f"ISBN:{upc}", "format": "json", "jscmd": "data"},
        )
        if not isinstance(data, dict):
            return None
        book = data.get(f"ISBN:{upc}")
        return book if isinstance(book, dict) else None

    def normalize(self, upc: str, data: dict[str, Any]) -> ProductInfo | None:
        title = _clean(data.get("title"))
        if not title:
            return None
        subtitle = _clean(data.get("subtitle"))

        cover = data.get("cover") if isinstance(data.get("cover"), dict) else {}
        authors = _names(data.get("authors"))
        publishers = _names(data.get("publishers"))

        notes = data.get("notes")
        if isinstance(notes, dict):
            notes = notes.get("value")

        features: list[str] = []
        if publishers:
            features.append(f"Publisher: {', '.join(publishers)}")
        if _clean(data.get("publish_date")):
            features.append(f"Published: {_clean(data.get('publish_date'))}")
        if data.get("number_of_pages"):
            features.append(f"Pages: {data['number_of_pages']}")

        return ProductInfo(
            upc=upc,
            name=f"{title}: {subtitle}" if subtitle else title,
            description=_clean(notes),
            brand=", ".join(authors) or None,
            category="Book",
            image_url=_clean(cover.get("large") or cover.get("medium") or cover.get("small")),
            features=features,
            source=self.name,
        )

class GoogleBooksProvider(ProductProvider):
    name = ProductSource.googlebooks.value
    url = "https://www.googleapis.com/books/v1/volumes"

    def __init__(self, client: httpx.Client, api_key: str | None = None, **kwargs: Any):
        super().__init__(client, **kwargs)
        self.api_key = api_key

    def applies_to(self, upc: str) -> bool:
        return is_isbn(upc)

    def fetch(self, upc: str) -> dict[str, Any] | None:
        params = {"q": f"isbn:{upc}"}
        if self.api_key:
            params["key"] = self.api_key

        data = self._get_json(self.url, params=params)
        if not isinstance(data, dict):
            return None
        items = data.get("items")
        if not isinstance(items, list) or not items or not isinstance(items[0], dict):
            return None
        return items[0]

    def normalize(self, upc: str, data: dict[str, Any]) -> ProductInfo | None:
        info = data.get("volumeInfo")
        if not isinstance(info, dict):
            return None
        title = _clean(info.get("title"))
        if not title:
            return None
        subtitle = _clean(info.get("subtitle"))

        images = info.get("imageLinks") if isinstance(info.get("imageLinks"), dict) else {}
        image = _clean(images.get("thumbnail") or images.get("smallThumbnail"))
        if image and image.startswith("http://"):
            image = "https://" + image[len("http://"):]

        features: list[str] = []
        if _clean(info.get("publisher")):
            features.append(f"Publisher: {_clean(info.get('publisher'))}")
        if _clean(info.get("publishedDate")):
            features.append(f"Published: {_clean(info.get('publishedDate'))}")
        if info.get("pageCount"):
            features.append(f"Pages: {info['pageCount']}")
        features.extend(f"Subject: {c}" for c in _names(info.get("categories")))

        return ProductInfo(
            upc=upc,
            name=f"{title}: {subtitle}" if subtitle else title,
            description=_clean(info.get("description")),
            brand=", ".join(_names(info.get("authors"))) or None,
            category="Book",
            image_url=image,
            features=features,
            source=self.name,
        )

class OpenFoodFactsProvider(ProductProvider):
    name = ProductSource.openfoodfacts.value
    url = "https://world.openfoodfacts.org/api/v2/product/{upc}.json"

    def __init__(self, client: httpx.Client, user_agent: str, **kwargs: Any):
        super().__init__(client, **kwargs)
        self.user_agent = user_agent

    def fetch(self, upc: str) -> dict[str, Any] | None:
        data = self._get_json(self.url.format(upc=upc), headers={"User-Agent": self.user_agent})
        if not isinstance(data, dict) or data.get("status") != 1:
            return None
        product = data.get("product")
        return product if isinstance(product, dict) else None

    def normalize(self, upc: str, data: dict[str, Any]) -> ProductInfo | None:
        name = _clean(data.get("product_name")) or _clean(data.get("product_name_en")) or _clean(data.get("generic_name"))
        if not name:
            return None

        brands = [b.strip() for b in (_clean(data.get("brands")) or "").split(",") if b.strip()]
        categories = [c.strip() for c in (_clean(data.get("categories")) or "").split(",") if c.strip()]
        labels = [lbl.strip() for lbl in (_clean(data.get("labels")) or "").split(",") if lbl.strip()]

        return ProductInfo(
            upc=upc,
            name=name,
            description=_clean(data.get("generic_name")),
            brand=brands[0] if brands else None,
            size=_clean(data.get("quantity")),
            # most specific category is listed last
            category=categories[-1] if categories else None,
            image_url=_clean(data.get("image_front_url") or data.get("image_url")),
            features=labels,
            ingredients=_clean(data.get("ingredients_text")),
            source=self.name,
        )

class UpcItemDbProvider(ProductProvider):
    name = ProductSource.upcitemdb.value
    overwrite_cache = False
    trial_url = "https://api.upcitemdb.com/prod/trial/lookup"
    paid_url = "https://api.upcitemdb.com/prod/v1/lookup"

    def __init__(self, client: httpx.Client, api_key: str | None = None, **kwargs: Any):
        super().__init__(client, **kwargs)
        self.api_key = api_key

    def fetch(self, upc: str) -> dict[str, Any] | None:
        if self.api_key:
            data = self._get_json(
                self.paid_url,
                params={"upc": upc},
                headers={"user_key": self.api_key, "key_type": "3scale"},
            )
        else:
            data = self._get_json(self.trial_url, params={"upc": upc})

        if not isinstance(data, dict):
            return None
        items = data.get("items")
        if not isinstance(items, list) or not items or not isinstance(items[0], dict):
            return None
        return items[0]

    def normalize(self, upc: str, data: dict[str, Any]) -> ProductInfo | None:
        name = _clean(data.get("title"))
        if not name:
            return None

        images = data.get("images")
        image = _clean(images[0]) if isinstance(images, list) and images else None
        features = data.get("features")

        return ProductInfo(
            upc=upc,
            name=name,
            description=_clean(data.get("description")),
            brand=_clean(data.get("brand")),
            color=_clean(data.get("color")),
            size=_clean(data.get("size")),
            category=_clean(data.get("category")),
            image_url=image,
            features=[f for f in (_clean(x) for x in features) if f] if isinstance(features, list) else [],
            source=self.name,
        )

def build_default_providers(client: httpx.Client, cfg: Settings | None = None) -> list[ProductProvider]:
    cfg = cfg or default_settings
    retry = {"max_attempts": cfg.provider_max_attempts, "backoff_seconds": cfg.provider_backoff_seconds}
    return [
        OpenLibraryProvider(client, **retry),
        GoogleBooksProvider(client, api_key=cfg.google_books_api_key, **retry),
        OpenFoodFactsProvider(client, user_agent=cfg.openfoodfacts_user_agent, **retry),
        UpcItemDbProvider(client, api_key=cfg.upcitemdb_api_key, **retry),
    ]
