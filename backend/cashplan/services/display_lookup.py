from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List

from cashplan.schemas.journal import WorkspaceSnapshot
from cashplan.schemas.orders import OrderBase
from cashplan.services.normalize import normalize_key

PLACEHOLDER = "—"


@dataclass(frozen=True)
class ItemMeta:
    sku_aliases: str
    item_summary: str


def combine_display(values: List[str]) -> str:
    """``"a"`` for one distinct value, ``"a, …"`` for several, ``""`` for none."""

    entries = unique(values)
    if not entries:
        return ""
    if len(entries) == 1:
        return entries[0]
    return f"{entries[0]}, …"


def unique(values) -> List[str]:
    out: List[str] = []
    for value in values:
        if value and value not in out:
            out.append(value)
    return out


@dataclass(frozen=True)
class DisplayLookup:
    supplier_names: Dict[str, str] = field(default_factory=dict)
    sku_aliases: Dict[str, str] = field(default_factory=dict)

    def supplier_name(self, order: OrderBase) -> str:
        for candidate in (order.supplier_id, order.supplier_name):
            key = normalize_key(candidate)
            if key and key in self.supplier_names:
                return self.supplier_names[key]
        return order.supplier_name or order.supplier_id or PLACEHOLDER

    def alias(self, sku: str) -> str:
        if not sku:
            return PLACEHOLDER
        return self.sku_aliases.get(normalize_key(sku)) or sku

    def item_meta(self, order: OrderBase) -> ItemMeta:
        if not order.items:
            return ItemMeta(sku_aliases=PLACEHOLDER, item_summary=PLACEHOLDER)
        aliases = unique(self.alias(item.sku) for item in order.items)
        return ItemMeta(
            sku_aliases=", ".join(aliases) or PLACEHOLDER,
            item_summary=combine_display(aliases) or PLACEHOLDER,
        )


def build_display_lookup(snapshot: WorkspaceSnapshot) -> DisplayLookup:
    supplier_names: Dict[str, str] = {}
    for supplier in snapshot.suppliers:
        for key in (normalize_key(supplier.id), normalize_key(supplier.name)):
            if key:
                supplier_names[key] = supplier.name

    sku_aliases: Dict[str, str] = {}
    for product in snapshot.products:
        key = normalize_key(product.sku)
        if key:
            sku_aliases[key] = product.alias or product.sku

    return DisplayLookup(supplier_names=supplier_names, sku_aliases=sku_aliases)
