"""
Calcul des montants d'un devis.

Toute l'arithmétique se fait en Decimal. Remise et taxe sont calculées sans
arrondi intermédiaire; seul le total de chaque ligne est arrondi à 2 décimales
(ROUND_HALF_UP). Les totaux du devis sont la somme des parts arrondies, jamais
un arrondi de la somme.
"""
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable, List

from src.quotes.exceptions import QuoteValidationException

TWO_PLACES = Decimal("0.01")
HUNDRED = Decimal(100)
ZERO = Decimal("0.00")


@dataclass(frozen=True)
class ItemAmounts:
    subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    line_total: Decimal

    @property
    def after_discount(self) -> Decimal:
        return self.subtotal - self.discount_amount


@dataclass(frozen=True)
class QuoteAmounts:
    subtotal: Decimal
    total_discount: Decimal
    total_tax: Decimal
    grand_total: Decimal
    items: List[ItemAmounts]


def round_money(value: Decimal) -> Decimal:
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def to_decimal(value: Any, field: str) -> Decimal:
    """Convertit une valeur numérique en Decimal (les floats passent par str)."""
    if isinstance(value, bool) or value is None:
        raise QuoteValidationException(field, "doit être un nombre")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, float):
        result = Decimal(str(value))
    else:
        try:
            result = Decimal(value)
        except (InvalidOperation, TypeError, ValueError):
            raise QuoteValidationException(field, "doit être un nombre")
    if not result.is_finite():
        raise QuoteValidationException(field, "doit être un nombre fini")
    return result


def _check_percent(value: Any, field: str) -> Decimal:
    percent = to_decimal(value, field)
    if percent < 0 or percent > HUNDRED:
        raise QuoteValidationException(field, "doit être compris entre 0 et 100")
    return percent


def compute_item(item: Any, field_prefix: str = "") -> ItemAmounts:
    """
    Calcule les montants d'une ligne.

    `item` expose quantity, unit_price, discount_percent et tax_percent
    (schéma d'entrée ou ligne persistée).
    """
    quantity = getattr(item, "quantity", None)
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise QuoteValidationException(f"{field_prefix}quantity", "doit être un entier")
    if quantity < 1:
        raise QuoteValidationException(f"{field_prefix}quantity", "doit être supérieure ou égale à 1")

    unit_price = to_decimal(getattr(item, "unit_price", None), f"{field_prefix}unit_price")
    if unit_price < 0:
        raise QuoteValidationException(f"{field_prefix}unit_price", "ne peut pas être négatif")

    discount_percent = _check_percent(getattr(item, "discount_percent", 0) or 0, f"{field_prefix}discount_percent")
    tax_percent = _check_percent(getattr(item, "tax_percent", 0) or 0, f"{field_prefix}tax_percent")

    # Calcul exact, seul le total de ligne est arrondi
    gross = quantity * unit_price
    discount = gross * discount_percent / HUNDRED
    after_discount = gross - discount
    tax = after_discount * tax_percent / HUNDRED
    line_total = round_money(after_discount + tax)

    # Parts affichées: la taxe absorbe l'écart d'arrondi pour que
    # subtotal - discount_amount + tax_amount == line_total
    subtotal = round_money(gross)
    discount_amount = round_money(discount)
    return ItemAmounts(
        subtotal=subtotal,
        discount_amount=discount_amount,
        tax_amount=line_total - (subtotal - discount_amount),
        line_total=line_total,
    )


def compute_quote(items: Iterable[Any], shipping_cost: Any = ZERO) -> QuoteAmounts:
    """Calcule les totaux d'un devis à partir de ses lignes et des frais de port."""
    items = list(items)
    if not items:
        raise QuoteValidationException("items", "un devis doit contenir au moins une ligne")

    shipping = to_decimal(shipping_cost if shipping_cost is not None else ZERO, "shipping_cost")
    if shipping < 0:
        raise QuoteValidationException("shipping_cost", "ne peut pas être négatif")
    shipping = round_money(shipping)

    amounts = [compute_item(item, field_prefix=f"items[{index}].") for index, item in enumerate(items)]
    subtotal = sum((a.subtotal for a in amounts), ZERO)
    total_discount = sum((a.discount_amount for a in amounts), ZERO)
    total_tax = sum((a.tax_amount for a in amounts), ZERO)
    return QuoteAmounts(
        subtotal=subtotal,
        total_discount=total_discount,
        total_tax=total_tax,
        grand_total=(subtotal - total_discount) + total_tax + shipping,
        items=amounts,
    )
