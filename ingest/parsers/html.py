from __future__ import annotations

from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag


_URL_ATTRIBUTES = {"href", "src"}


def _extract(element: Tag, selector: str, base_url: str | None) -> str | None:
    if "@" in selector:
        css, attr = selector.rsplit("@", 1)
        css = css.strip()
        node = element.select_one(css) if css else element
        if node is None:
            return None
        value = node.get(attr)
        if isinstance(value, list):
            value = " ".join(value)
        value = str(value).strip() if value else None
        if value and base_url and attr in _URL_ATTRIBUTES:
            value = urljoin(base_url, value)
        return value or None

    node = element.select_one(selector)
    if node is None:
        return None
    text = " ".join(node.get_text(" ", strip=True).split())
    return text or None


def parse_html_items(
    data: bytes, selectors: dict[str, str], base_url: str | None = None
) -> list[dict]:
    item_selector = selectors.get("item")
    if not item_selector:
        return []

    soup = BeautifulSoup(data, "html.parser")
    records: list[dict] = []
    for element in soup.select(item_selector):
        record: dict[str, str | None] = {}
        for field, selector in selectors.items():
            if field == "item":
                continue
            record[field] = _extract(element, selector, base_url)
        records.append(record)
    return records
