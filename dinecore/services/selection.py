"""Variant/addon choices attached to a cart line.

A line either has no variant or exactly one ``VariantChoice``, plus a set of
``AddonChoice``. Raw JSON is parsed into these once; everything downstream
works with the typed values.
"""

import hashlib
import json
from dataclasses import dataclass, field
from typing import Any, Union

from dinecore.core.errors import InvalidSelection


@dataclass(frozen=True)
class NoVariant:
    pass


@dataclass(frozen=True)
class VariantChoice:
    group_id: str
    variant_id: str


@dataclass(frozen=True, order=True)
class AddonChoice:
    group_id: str
    addon_id: str


VariantSelection = Union[NoVariant, VariantChoice]


@dataclass(frozen=True)
class Selection:
    variant: VariantSelection = NoVariant()
    addons: frozenset = field(default_factory=frozenset)

    def variant_json(self) -> dict | None:
        if isinstance(self.variant, VariantChoice):
            return {"group_id": self.variant.group_id, "variant_id": self.variant.variant_id}
        return None

    def addons_json(self) -> list[dict]:
        return [{"group_id": a.group_id, "addon_id": a.addon_id} for a in sorted(self.addons)]

    def key(self) -> str:
        """Stable digest; two lines with the same item and key are the same line."""
        canonical = json.dumps({"v": self.variant_json(), "a": self.addons_json()}, sort_keys=True, separators=(",", ":"))
        return hashlib.sha1(canonical.encode("utf-8")).hexdigest()


def _require_str(raw: dict, name: str) -> str:
    value = raw.get(name)
    if not isinstance(value, str) or not value.strip():
        raise InvalidSelection(f"{name} is required", field=name)
    return value.strip()


def parse_selection(raw_variant: Any = None, raw_addons: Any = None) -> Selection:
    if raw_variant in (None, {}):
        variant: VariantSelection = NoVariant()
    elif isinstance(raw_variant, dict):
        variant = VariantChoice(_require_str(raw_variant, "group_id"), _require_str(raw_variant, "variant_id"))
    else:
        raise InvalidSelection("variant must be an object with group_id and variant_id")

    if raw_addons is None:
        raw_addons = []
    if not isinstance(raw_addons, list):
        raise InvalidSelection("addons must be a list")
    addons = set()
    for raw in raw_addons:
        if not isinstance(raw, dict):
            raise InvalidSelection("each addon must be an object with group_id and addon_id")
        choice = AddonChoice(_require_str(raw, "group_id"), _require_str(raw, "addon_id"))
        if choice in addons:
            raise InvalidSelection("addon selected twice", addon_id=choice.addon_id)
        addons.add(choice)
    return Selection(variant=variant, addons=frozenset(addons))
