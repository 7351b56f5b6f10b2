"""
Heuristic product extraction from a product detail page.

Each field is resolved independently by the first strategy that yields it:

1. Visible text: every "KES <amount>" in the page body, skipping savings
   call-outs ("Save KES 500"). First amount is the price, the largest higher
   amount is the original price.
2. JSON-LD: a schema.org Product block's name and offer price.
3. Meta tags: og:title / <title> for the name, product:price:amount for price.
4. Image: og:image, else the first real product <img>.

JSON-LD availability of OutOfStock/SoldOut/Discontinued marks the result
out of stock regardless of the price found.

extract() never raises. A result without a price is the failure signal.
"""

import json
import logging
import re
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from pricewatch.config import CURRENCY
from pricewatch.models import ExtractionResult

logger = logging.getLogger(__name__)

PRICE_PATTERN = re.compile(CURRENCY + r"\W{0,20}?(\d[\d,]*(?:\.\d{2})?)")
SAVE_CONTEXT_CHARS = 20
SAVE_WORD = "save"

PRODUCT_IMAGE_SELECTORS = '.product-image img, .product-img img, img[itemprop="image"]'
LD_PRICE_PATTERN = re.compile(r'"(?:price|lowPrice|highPrice)"\s*:\s*"?(\d[\d,]*(?:\.\d+)?)')
LD_NAME_PATTERN = re.compile(r'"name"\s*:\s*"([^"]+)"')
OUT_OF_STOCK_MARKERS = ("OutOfStock", "SoldOut", "Discontinued")


def parse_price(text: str | float | int | None) -> float | None:
    """Parse '29,999.00' -> 29999.0. Thousands separators are always stripped."""
    if text is None:
        return None
    if isinstance(text, (int, float)):
        return float(text)
    cleaned = str(text).replace(",", "").strip()
    try:
        return float(cleaned)
    except ValueError:
        return None


def find_price_candidates(text: str, skip_savings: bool = True) -> list[float]:
    """Currency amounts in document order, minus savings call-outs."""
    candidates: list[float] = []
    for match in PRICE_PATTERN.finditer(text):
        if skip_savings:
            context = text[max(0, match.start() - SAVE_CONTEXT_CHARS):match.start()].lower()
            if SAVE_WORD in context:
                continue
        value = parse_price(match.group(1))
        if value is not None:
            candidates.append(value)
    return candidates


def is_plausible_image(src: str | None) -> bool:
    return bool(src) and not src.startswith("data:") and "placeholder" not in src


def _visible_text(soup: BeautifulSoup) -> str:
    root = soup.body or soup
    for tag in root.find_all(["script", "style", "noscript", "template"]):
        tag.decompose()
    return root.get_text(" ")


def _from_visible_text(text: str) -> tuple[float | None, float | None]:
    candidates = find_price_candidates(text)
    if not candidates or not candidates[0]:
        return None, None
    price = candidates[0]
    highest = max(candidates)
    return price, highest if highest > price else None


def _iter_ld_nodes(data):
    """Yield every JSON-LD object, unwrapping lists and @graph containers."""
    if isinstance(data, list):
        for entry in data:
            yield from _iter_ld_nodes(entry)
    elif isinstance(data, dict):
        yield data
        if "@graph" in data:
            yield from _iter_ld_nodes(data["@graph"])


def _is_product(node: dict) -> bool:
    kind = node.get("@type")
    if isinstance(kind, list):
        return "Product" in kind
    return kind == "Product"


def _offer_price(offers) -> float | None:
    offer = offers[0] if isinstance(offers, list) and offers else offers
    if not isinstance(offer, dict):
        return None
    for key in ("price", "lowPrice", "highPrice"):
        value = parse_price(offer.get(key))
        if value:
            return value
    return None


def _declares_out_of_stock(blocks: list[str]) -> bool:
    """True when a Product block's offer availability says it cannot be bought."""
    for raw in blocks:
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            continue
        for node in _iter_ld_nodes(data):
            if not _is_product(node):
                continue
            offers = node.get("offers")
            offer = offers[0] if isinstance(offers, list) and offers else offers
            if isinstance(offer, dict):
                availability = str(offer.get("availability", ""))
                if availability.rsplit("/", 1)[-1] in OUT_OF_STOCK_MARKERS:
                    return True
    return False


def _from_structured_data(blocks: list[str]) -> tuple[str | None, float | None]:
    name: str | None = None
    price: float | None = None
    for raw in blocks:
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.debug("Error parsing JSON-LD, using pattern fallback: %s", e)
            if '"Product"' in raw:
                price_match = LD_PRICE_PATTERN.search(raw)
                name_match = LD_NAME_PATTERN.search(raw)
                name = name or (name_match.group(1) if name_match else None)
                price = price or (parse_price(price_match.group(1)) if price_match else None)
            continue
        for node in _iter_ld_nodes(data):
            if not _is_product(node):
                continue
            name = node.get("name") or name
            if node.get("offers"):
                price = _offer_price(node["offers"]) or price
    return name, price


def _meta_content(soup: BeautifulSoup, prop: str) -> str | None:
    tag = soup.find("meta", attrs={"property": prop})
    content = tag.get("content") if tag else None
    return content.strip() if content else None


def _title_name(soup: BeautifulSoup) -> str | None:
    title = soup.title.get_text() if soup.title else ""
    name = title.split("|")[0].strip()
    if name.startswith("Buy "):
        name = name[4:]
    return name or None


def _image_url(soup: BeautifulSoup) -> str | None:
    og_image = _meta_content(soup, "og:image")
    if og_image:
        return og_image
    for img in soup.select(PRODUCT_IMAGE_SELECTORS):
        src = img.get("src") or img.get("data-src")
        if is_plausible_image(src):
            return src
    return None


def extract(html: str, base_url: str | None = None) -> ExtractionResult:
    """Extract name, price, original price and image from product page HTML."""
    try:
        soup = BeautifulSoup(html or "", "html.parser")
    except Exception as e:  # extract() never raises
        logger.warning("HTML parse failed: %s", e)
        return ExtractionResult()

    ld_blocks = [
        tag.string or tag.get_text()
        for tag in soup.find_all("script", attrs={"type": "application/ld+json"})
    ]
    image_url = _image_url(soup)
    name = None

    # 1. Visible text
    price, original_price = _from_visible_text(_visible_text(soup))

    # 2. JSON-LD
    if not price:
        name, price = _from_structured_data(ld_blocks)

    # 3. Meta tags
    if not name:
        name = _meta_content(soup, "og:title") or _title_name(soup)
    if not price:
        price = parse_price(
            _meta_content(soup, "product:price:amount") or _meta_content(soup, "og:price:amount")
        )

    if not price:
        logger.debug("Could not extract price; page starts with: %s", (html or "")[:500])
        price = None

    if image_url and base_url:
        image_url = urljoin(base_url, image_url)

    return ExtractionResult(
        name=name,
        price=price,
        original_price=original_price if price else None,
        image_url=image_url,
        out_of_stock=_declares_out_of_stock(ld_blocks),
    )
