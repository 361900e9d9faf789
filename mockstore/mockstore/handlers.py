"""Sample store functions over an in-memory catalogue.

All handlers are registered on the module-level ``registry`` which the
server imports.  Results follow the store's JSON conventions:
``{"success": 1, "data": ...}`` or ``{"success": 0, "error_code": ...}``.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import Any

from mockstore.dispatcher import Registry

log = logging.getLogger(__name__)

registry = Registry()

VALIDATION_ERROR = "MER-JSN-00019"
NOT_FOUND = "MER-JSN-00020"


@dataclass(slots=True)
class Catalog:
    """Products and categories keyed by code."""

    products: dict[str, dict[str, Any]] = field(default_factory=dict)
    categories: dict[str, dict[str, Any]] = field(default_factory=dict)
    _next_id: int = 1

    def next_id(self) -> int:
        value = self._next_id
        self._next_id += 1
        return value

    def add_product(self, code: str, name: str, price: float, active: bool = True) -> dict[str, Any]:
        product = {"id": self.next_id(), "code": code, "name": name, "price": price, "active": active}
        self.products[code] = product
        return product

    def add_category(self, code: str, name: str, active: bool = True) -> dict[str, Any]:
        category = {"id": self.next_id(), "code": code, "name": name, "active": active}
        self.categories[code] = category
        return category


def default_catalog() -> Catalog:
    catalog = Catalog()
    catalog.add_product("prod1", "Product One", 10.0)
    catalog.add_product("prod2", "Product Two", 25.5)
    catalog.add_product("prod3", "Retired Product", 5.0, active=False)
    catalog.add_category("cat1", "Category One")
    catalog.add_category("cat2", "Hidden Category", active=False)
    return catalog


# ── Query helpers ────────────────────────────────────────────────────


def _matches(record: dict[str, Any], clause: dict[str, Any]) -> bool:
    op = str(clause.get("operator", "")).upper()
    actual = record.get(clause.get("field"))
    expected = clause.get("value")

    if op == "EQ":
        return actual == expected
    if op == "NE":
        return actual != expected
    if op in ("CO", "LIKE"):
        return str(expected).strip("%").lower() in str(actual).lower()
    if op == "GT":
        return actual is not None and actual > expected
    if op == "LT":
        return actual is not None and actual < expected
    if op == "TRUE":
        return bool(actual)
    if op == "FALSE":
        return not actual
    if op == "NULL":
        return actual is None
    if op == "IN":
        options = expected if isinstance(expected, list) else str(expected).split(",")
        return str(actual) in [str(o) for o in options]
    if op == "SUBWHERE":
        return any(_matches(record, sub) for sub in expected or [])
    log.debug("unsupported search operator %r", op)
    return False


def _list_query(records: list[dict[str, Any]], call: dict[str, Any], show_name: str) -> dict[str, Any]:
    show = "Active"
    for f in call.get("Filter", []):
        name = f.get("name")
        if name and name.lower() == "search":
            records = [r for r in records if all(_matches(r, c) for c in f["value"])]
        elif name == show_name:
            show = f.get("value", "Active")

    if show == "Active":
        records = [r for r in records if r["active"]]

    sort = call.get("Sort")
    if sort:
        key = sort.lstrip("-")
        records = sorted(records, key=lambda r: r.get(key), reverse=sort.startswith("-"))

    total = len(records)
    offset = call.get("Offset", 0) or 0
    count = call.get("Count", 0) or 0
    page = records[offset : offset + count] if count else records[offset:]

    return {
        "success": 1,
        "data": {
            "total_count": total,
            "start_offset": offset,
            "data": copy.deepcopy(page),
        },
    }


def _validation_error(fields: list[tuple[str, str]]) -> dict[str, Any]:
    return {
        "success": 0,
        "validation_error": 1,
        "input_errors": 1,
        "error_code": VALIDATION_ERROR,
        "error_message": "One or more parameters are invalid",
        "error_fields": [{"error_field": f, "error_message": m} for f, m in fields],
    }


def _price_error(value: Any) -> str | None:
    if isinstance(value, bool):
        return "Price must be numeric"
    try:
        float(value)
    except (TypeError, ValueError):
        return "Price must be numeric"
    return None


# ── Handlers ─────────────────────────────────────────────────────────


@registry.handler("ProductList_Load_Query")
async def product_list_load_query(call: dict[str, Any], catalog: Catalog) -> dict[str, Any]:
    return _list_query(list(catalog.products.values()), call, "Product_Show")


@registry.handler("CategoryList_Load_Query")
async def category_list_load_query(call: dict[str, Any], catalog: Catalog) -> dict[str, Any]:
    return _list_query(list(catalog.categories.values()), call, "Category_Show")


@registry.handler("Product_Insert")
async def product_insert(call: dict[str, Any], catalog: Catalog) -> dict[str, Any]:
    code = call.get("Product_Code")
    name = call.get("Product_Name")
    price = call.get("Product_Price")

    problems: list[tuple[str, str]] = []
    if not code:
        problems.append(("Product_Code", "Code is required"))
    elif code in catalog.products:
        problems.append(("Product_Code", "A product with this code already exists"))
    if not name:
        problems.append(("Product_Name", "Name is required"))
    if _price_error(price):
        problems.append(("Product_Price", _price_error(price)))
    if problems:
        return _validation_error(problems)

    product = catalog.add_product(code, name, float(price), bool(call.get("Product_Active", True)))
    log.info("inserted product %s", code)
    return {"success": 1, "data": copy.deepcopy(product)}


@registry.handler("Product_Update")
async def product_update(call: dict[str, Any], catalog: Catalog) -> dict[str, Any]:
    code = call.get("Edit_Product") or call.get("Product_Code")
    product = catalog.products.get(code) if code else None
    if product is None:
        return {
            "success": 0,
            "error_code": NOT_FOUND,
            "error_message": "Product not found",
            "error_field": "Edit_Product",
            "error_field_message": f"No product with code {code!r}",
        }

    if "Product_Price" in call and _price_error(call["Product_Price"]):
        return _validation_error([("Product_Price", _price_error(call["Product_Price"]))])

    if "Product_Name" in call:
        product["name"] = call["Product_Name"]
    if "Product_Price" in call:
        product["price"] = float(call["Product_Price"])
    if "Product_Active" in call:
        product["active"] = bool(call["Product_Active"])
    return {"success": 1}
