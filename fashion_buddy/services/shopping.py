"""
Product search — SerpAPI Google Shopping. Direct HTTP call.

Results are price-filtered to the requested budget range and cut to the
configured limit (5 by default). Any transport or API failure is a SearchError.
"""

import logging
import re
from dataclasses import dataclass, asdict
from typing import Optional

import httpx

from ..core.config import get_settings
from ..core.errors import SearchError

logger = logging.getLogger(__name__)

# Menu choice → budget range string
BUDGET_RANGES = {
    "1": "500-1500",
    "2": "1500-3000",
    "3": "3000+",
}

_PRICE_JUNK = re.compile(r"[^0-9.]+")


@dataclass
class ShoppingProduct:
    title: str
    price: float
    brand: str
    link: str
    source: str = ""
    image: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


def parse_budget(budget_range: str) -> tuple[float, Optional[float]]:
    """'500-1500' → (500, 1500); '3000+' → (3000, None)."""
    budget_range = budget_range.strip()
    if budget_range.endswith("+"):
        return float(budget_range[:-1]), None
    low, _, high = budget_range.partition("-")
    return float(low), float(high) if high else None


def parse_price(raw) -> Optional[float]:
    """Turn '₹1,299.00' (or a number) into 1299.0. None if there is no number."""
    if isinstance(raw, (int, float)):
        return float(raw)
    if not raw:
        return None
    cleaned = _PRICE_JUNK.sub("", str(raw))
    try:
        return float(cleaned)
    except ValueError:
        return None


def build_query(recommended_colors: list[str], skin_tone: Optional[str] = None) -> str:
    """Search query from the top recommended colors, falling back to the skin tone."""
    colors = [c for c in recommended_colors if c][:3]
    if colors:
        return f"clothing {' OR '.join(colors)} indian fashion"
    return f"{skin_tone or 'trendy'} colored shirts"


def _parse_results(raw: dict) -> list[ShoppingProduct]:
    products = []
    for item in raw.get("shopping_results") or []:
        price = item.get("extracted_price")
        if price is None:
            price = parse_price(item.get("price"))
        if price is None or not item.get("title"):
            continue
        products.append(ShoppingProduct(
            title=item["title"],
            price=float(price),
            brand=item.get("brand") or "Unknown",
            link=item.get("link") or item.get("product_link") or "",
            source=item.get("source") or "",
            image=item.get("thumbnail"),
        ))
    return products


def filter_by_budget(products: list[ShoppingProduct], budget_range: str) -> list[ShoppingProduct]:
    low, high = parse_budget(budget_range)
    return [
        p for p in products
        if p.price >= low and (high is None or p.price <= high)
    ]


class ProductSearch:
    """Google Shopping search through SerpAPI."""

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        self._client = client

    async def _get_json(self, url: str, params: dict) -> dict:
        if self._client is not None:
            resp = await self._client.get(url, params=params)
            resp.raise_for_status()
            return resp.json()
        async with httpx.AsyncClient(timeout=20) as client:
            resp = await client.get(url, params=params)
            resp.raise_for_status()
            return resp.json()

    async def search(self, query: str, budget_range: str) -> list[ShoppingProduct]:
        settings = get_settings()
        if not settings.serp_api_key:
            raise SearchError("SERP_API_KEY not set")

        params = {
            "engine": "google_shopping",
            "q": query,
            "gl": settings.serp_country,
            "api_key": settings.serp_api_key,
        }
        logger.info("Searching products: %r (budget=%s)", query, budget_range)

        try:
            raw = await self._get_json(settings.serp_api_url, params)
        except httpx.HTTPStatusError as e:
            logger.error("SerpAPI HTTP %d: %s", e.response.status_code, e.response.text[:300])
            raise SearchError(f"Product search failed: HTTP {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error("SerpAPI request failed: %s", e)
            raise SearchError(f"Product search failed: {e}") from e

        if raw.get("error"):
            # SerpAPI reports "no results" as an error string too
            if "hasn't returned any results" in str(raw["error"]):
                return []
            raise SearchError(f"Product search failed: {raw['error']}")

        products = filter_by_budget(_parse_results(raw), budget_range)
        products = products[: settings.product_result_limit]
        logger.info("Product search returned %d products in range %s", len(products), budget_range)
        return products
