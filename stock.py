"""
Stock lines of a product.

A product's stock is a list of ``{"size", "color", "quantity"}`` dicts. A
``(size, color)`` pair identifies at most one line: updates find and replace
the matching line, they never append a second one. These helpers are pure and
return new lists; persisting them is the catalog's job.
"""
from typing import Dict, List, Optional

from errors import NotFoundError
from schemas import DEFAULT_COLOR

StockLines = List[Dict]


def find_line(lines: StockLines, size: str, color: str = DEFAULT_COLOR) -> Optional[int]:
    for index, line in enumerate(lines):
        if line.get("size") == size and line.get("color", DEFAULT_COLOR) == color:
            return index
    return None


def get_stock(lines: StockLines, size: str, color: str = DEFAULT_COLOR) -> int:
    """Quantity on hand for a variant; a line that was never provisioned holds zero."""
    index = find_line(lines, size, color)
    return 0 if index is None else int(lines[index].get("quantity", 0))


def with_quantity(lines: StockLines, size: str, color: str, quantity: int) -> StockLines:
    """Replace the variant's quantity, appending a line if none exists. Floors at zero."""
    updated = [dict(line) for line in lines]
    quantity = max(0, int(quantity))
    index = find_line(updated, size, color)
    if index is None:
        updated.append({"size": size, "color": color, "quantity": quantity})
    else:
        updated[index]["quantity"] = quantity
    return updated


def reduced(lines: StockLines, size: str, color: str, quantity: int) -> StockLines:
    """Take ``quantity`` off a variant, clamping at zero.

    Raises NotFoundError when the variant has no stock line at all.
    """
    index = find_line(lines, size, color)
    if index is None:
        raise NotFoundError(f"Stock item not found for size {size}, color {color}")
    updated = [dict(line) for line in lines]
    updated[index]["quantity"] = max(0, int(updated[index].get("quantity", 0)) - int(quantity))
    return updated


def low_stock_alert(lines: StockLines, threshold: int) -> bool:
    return any(0 < int(line.get("quantity", 0)) <= threshold for line in lines)


def is_out_of_stock(lines: StockLines) -> bool:
    # vacuously true for a product with no lines
    return all(int(line.get("quantity", 0)) == 0 for line in lines)


def stock_status(lines: StockLines) -> List[Dict]:
    """Availability per variant, without quantities."""
    return [
        {
            "size": line.get("size"),
            "color": line.get("color", DEFAULT_COLOR),
            "in_stock": int(line.get("quantity", 0)) > 0,
        }
        for line in lines
    ]
