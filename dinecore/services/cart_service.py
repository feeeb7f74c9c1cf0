"""Customer carts and the cart materializer.

A cart holds item references and option choices only. Prices are never
stored on a cart line; ``materialize`` resolves lines against the catalog
each time a price is needed.
"""

import uuid
from dataclasses import dataclass
from typing import Iterable, Sequence

import structlog
from sqlalchemy import select, update, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from dinecore.core.config import CheckoutConfig
from dinecore.core.errors import EmptyCart, InvalidSelection, ItemUnavailable, NotFound, ValidationError
from dinecore.models.cart_line import CartLine
from dinecore.services.catalog_service import CatalogItem, CatalogService
from dinecore.services.pricing_service import ZERO, PricedLine, UnitBreakdown
from dinecore.services.selection import Selection, VariantChoice, parse_selection

logger = structlog.get_logger(__name__)

CART_TYPES = ("food", "groceries")


@dataclass(frozen=True)
class LineRef:
    item_id: str
    quantity: int
    selection: Selection


@dataclass(frozen=True)
class MaterializedCart:
    restaurant_id: str
    lines: tuple


def refs_from_cart(lines: Iterable[CartLine]) -> list[LineRef]:
    return [LineRef(l.menu_item_id, int(l.quantity), parse_selection(l.variant_json, l.addons_json)) for l in lines]


def refs_from_snapshot(items: Iterable[dict]) -> list[LineRef]:
    return [LineRef(i["item_id"], int(i["quantity"]), parse_selection(i.get("variant"), i.get("addons"))) for i in items]


def resolve_unit(item: CatalogItem, selection: Selection) -> UnitBreakdown:
    """Price one unit of ``item`` with the chosen options. Raises InvalidSelection."""
    variant_name, variant_price = "", ZERO
    if isinstance(selection.variant, VariantChoice):
        variant = item.find_variant(selection.variant.group_id, selection.variant.variant_id)
        if variant is None:
            raise InvalidSelection("unknown variant", item_id=item.id, variant_id=selection.variant.variant_id)
        variant_name, variant_price = variant.name, variant.additional_price

    chosen: dict[str, list] = {}
    for choice in sorted(selection.addons):
        group = item.find_addon_group(choice.group_id)
        addon = next((a for a in group.addons if a.id == choice.addon_id), None) if group else None
        if addon is None:
            raise InvalidSelection("unknown addon", item_id=item.id, addon_id=choice.addon_id)
        chosen.setdefault(group.id, []).append(addon)

    for group in item.addon_groups:
        count = len(chosen.get(group.id, []))
        if count < group.min_selection or count > group.max_selection:
            raise InvalidSelection(
                f"choose between {group.min_selection} and {group.max_selection} from {group.title or group.id}",
                item_id=item.id,
                group_id=group.id,
            )

    addons = tuple((a.name, a.price) for group_addons in chosen.values() for a in group_addons)
    return UnitBreakdown(item.base_price, variant_name, variant_price, addons)


def materialize(catalog: CatalogService, refs: Sequence[LineRef]) -> MaterializedCart:
    """Re-resolve cart lines against current catalog data.

    Fails fast on the first unavailable item or bad option. All lines must come
    from one restaurant.
    """
    if not refs:
        raise EmptyCart("cart is empty")

    restaurant_id = None
    priced = []
    for ref in refs:
        item = catalog.get_item(ref.item_id)
        if item is None or not item.available:
            raise ItemUnavailable("item is no longer available", item_id=ref.item_id)
        if restaurant_id is None:
            restaurant_id = item.restaurant_id
        elif item.restaurant_id != restaurant_id:
            raise ValidationError("cart contains items from more than one restaurant", item_id=item.id)
        unit = resolve_unit(item, ref.selection)
        priced.append(PricedLine(
            item_id=item.id,
            name=item.name,
            quantity=ref.quantity,
            unit=unit,
            variant=ref.selection.variant_json(),
            addons=tuple(ref.selection.addons_json()),
        ))
    return MaterializedCart(restaurant_id=restaurant_id, lines=tuple(priced))


class CartService:
    def __init__(self, config: CheckoutConfig):
        self.config = config

    def _check_quantity(self, quantity: int) -> None:
        if quantity < self.config.min_quantity or quantity > self.config.max_quantity:
            raise ValidationError(
                f"quantity must be between {self.config.min_quantity} and {self.config.max_quantity}",
                field="quantity",
            )

    def get_cart(self, db: Session, user_id: str, cart_type: str = "food") -> list[CartLine]:
        return list(db.execute(
            select(CartLine)
            .where(CartLine.user_id == user_id, CartLine.cart_type == cart_type)
            .order_by(CartLine.created_at.asc(), CartLine.id.asc())
        ).scalars())

    def add_item(self, db: Session, user_id: str, item_id: str, quantity: int = 1,
                 variant: dict | None = None, addons: list | None = None) -> CartLine:
        self._check_quantity(quantity)
        selection = parse_selection(variant, addons)
        item = CatalogService(db).get_item(item_id)
        if item is None or not item.available:
            raise ItemUnavailable("item is not available", item_id=item_id)
        resolve_unit(item, selection)
        cart_type = "food" if item.is_food else "groceries"

        other = db.execute(
            select(CartLine.restaurant_id)
            .where(CartLine.user_id == user_id, CartLine.cart_type == cart_type, CartLine.restaurant_id != item.restaurant_id)
            .limit(1)
        ).first()
        if other:
            raise ValidationError("cart already holds items from another restaurant; clear it first")

        key = selection.key()
        for _ in range(2):
            # same item and options: bump quantity in place, bounded by the maximum
            res = db.execute(
                update(CartLine)
                .where(
                    CartLine.user_id == user_id,
                    CartLine.cart_type == cart_type,
                    CartLine.menu_item_id == item_id,
                    CartLine.selection_key == key,
                    CartLine.quantity + quantity <= self.config.max_quantity,
                )
                .values(quantity=CartLine.quantity + quantity)
                .execution_options(synchronize_session=False)
            )
            if res.rowcount:
                db.commit()
                return self._line(db, user_id, cart_type, item_id, key)

            if self._line(db, user_id, cart_type, item_id, key) is not None:
                db.rollback()
                raise ValidationError(f"quantity cannot exceed {self.config.max_quantity}", field="quantity")

            line = CartLine(
                id=str(uuid.uuid4()),
                user_id=user_id,
                cart_type=cart_type,
                restaurant_id=item.restaurant_id,
                menu_item_id=item_id,
                quantity=quantity,
                variant_json=selection.variant_json(),
                addons_json=selection.addons_json(),
                selection_key=key,
            )
            db.add(line)
            try:
                db.commit()
            except IntegrityError:
                # a concurrent add created the line first; retry as an increment
                db.rollback()
                continue
            db.refresh(line)
            logger.info("cart.item_added", user_id=user_id, item_id=item_id, quantity=quantity)
            return line
        raise ValidationError("cart changed concurrently, please retry")

    def _line(self, db: Session, user_id: str, cart_type: str, item_id: str, key: str) -> CartLine | None:
        return db.execute(
            select(CartLine).where(
                CartLine.user_id == user_id,
                CartLine.cart_type == cart_type,
                CartLine.menu_item_id == item_id,
                CartLine.selection_key == key,
            ).execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def update_quantity(self, db: Session, user_id: str, line_id: str, quantity: int) -> CartLine:
        self._check_quantity(quantity)
        res = db.execute(
            update(CartLine)
            .where(CartLine.id == line_id, CartLine.user_id == user_id)
            .values(quantity=quantity)
            .execution_options(synchronize_session=False)
        )
        if not res.rowcount:
            db.rollback()
            raise NotFound("cart line not found", line_id=line_id)
        db.commit()
        line = db.get(CartLine, line_id, populate_existing=True)
        return line

    def remove_item(self, db: Session, user_id: str, line_id: str) -> None:
        db.execute(delete(CartLine).where(CartLine.id == line_id, CartLine.user_id == user_id))
        db.commit()

    def clear_cart(self, db: Session, user_id: str, cart_type: str | None = None) -> int:
        """Delete cart lines without committing; callers own the transaction."""
        stmt = delete(CartLine).where(CartLine.user_id == user_id)
        if cart_type is not None:
            stmt = stmt.where(CartLine.cart_type == cart_type)
        return db.execute(stmt).rowcount
