"""
Normalisation des unités.

Fonctions pures, sans état ni accès base :
- un token libre (OCR) -> une unité canonique (table d'alias fixe, pas de fuzzy)
- conversion de quantité à l'intérieur d'une même famille (masse / volume)
- les unités de comptage / conditionnement ne se convertissent jamais entre elles
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from backoffice.app.db.models.core_types import Unit


class UnrecognizedUnit(ValueError):
    def __init__(self, token: str | None):
        self.token = token
        super().__init__(f"Unrecognized unit: {token!r}")


# famille -> {unité: facteur vers l'unité de base de la famille}
UNIT_FAMILIES: dict[str, dict[Unit, Decimal]] = {
    "mass": {Unit.g: Decimal("1"), Unit.kg: Decimal("1000")},
    "volume": {Unit.ml: Decimal("1"), Unit.cl: Decimal("10"), Unit.l: Decimal("1000")},
}

UNIT_ALIASES: dict[str, Unit] = {
    "LITER": Unit.l,
    "LITRE": Unit.l,
    "LITERS": Unit.l,
    "LITRES": Unit.l,
    "KILO": Unit.kg,
    "KILOS": Unit.kg,
    "KILOGRAM": Unit.kg,
    "KILOGRAMME": Unit.kg,
    "KGS": Unit.kg,
    "GRAM": Unit.g,
    "GRAMME": Unit.g,
    "GRAMS": Unit.g,
    "GRAMMES": Unit.g,
    "GR": Unit.g,
    "GRS": Unit.g,
    "MILLILITER": Unit.ml,
    "MILLILITRE": Unit.ml,
    "CENTILITER": Unit.cl,
    "CENTILITRE": Unit.cl,
    "PIECE": Unit.pc,
    "PIECES": Unit.pc,
    "PCS": Unit.pc,
    "PCE": Unit.pc,
    "PCES": Unit.pc,
    "BOITE": Unit.box,
    "SAC": Unit.bag,
    "PAQUET": Unit.pack,
    "BOTTE": Unit.bunch,
    "GOUSSE": Unit.clove,
    "UNITE": Unit.unit,
    "UNITÉ": Unit.unit,
}

_CANONICAL = {u.value: u for u in Unit}


@dataclass(frozen=True)
class Conversion:
    quantity: Decimal
    unit: Unit
    was_converted: bool
    incompatible: bool
    description: str


def normalize_unit(token: str | Unit | None) -> Unit:
    """Token libre -> Unit. Lève UnrecognizedUnit, ne devine jamais."""
    if isinstance(token, Unit):
        return token
    if token is None:
        raise UnrecognizedUnit(token)

    key = token.strip().upper()
    if key in _CANONICAL:
        return _CANONICAL[key]
    if key in UNIT_ALIASES:
        return UNIT_ALIASES[key]
    raise UnrecognizedUnit(token)


def unit_family(unit: Unit) -> str:
    for family, members in UNIT_FAMILIES.items():
        if unit in members:
            return family
    # chaque unité de comptage est sa propre famille
    return unit.value


def are_units_compatible(a: Unit | str, b: Unit | str) -> bool:
    return unit_family(normalize_unit(a)) == unit_family(normalize_unit(b))


def conversion_factor(from_unit: Unit, to_unit: Unit) -> Decimal:
    """Multiplicateur tel que qty_to = qty_from * facteur (unités compatibles)."""
    if from_unit == to_unit:
        return Decimal("1")
    family = UNIT_FAMILIES[unit_family(from_unit)]
    return family[from_unit] / family[to_unit]


def convert_quantity(quantity: Decimal, from_unit: Unit | str, to_unit: Unit | str) -> Conversion:
    src = normalize_unit(from_unit)
    dst = normalize_unit(to_unit)
    quantity = Decimal(quantity)

    if unit_family(src) != unit_family(dst):
        return Conversion(
            quantity=quantity,
            unit=src,
            was_converted=False,
            incompatible=True,
            description=f"{format_quantity(quantity)} {src.value} ≠ {dst.value} (incompatible)",
        )

    if src == dst:
        return Conversion(
            quantity=quantity,
            unit=dst,
            was_converted=False,
            incompatible=False,
            description=f"{format_quantity(quantity)} {dst.value}",
        )

    converted = quantity * conversion_factor(src, dst)
    return Conversion(
        quantity=converted,
        unit=dst,
        was_converted=True,
        incompatible=False,
        description=conversion_description(quantity, src, converted, dst),
    )


def convert_unit_price(price: Decimal | None, from_unit: Unit | str, to_unit: Unit | str) -> Decimal | None:
    """Prix par from_unit -> prix par to_unit (1 kg coûte 1000x le gramme)."""
    if price is None:
        return None
    src = normalize_unit(from_unit)
    dst = normalize_unit(to_unit)
    if not are_units_compatible(src, dst):
        raise ValueError(f"Cannot convert a price from {src.value} to {dst.value}")
    return Decimal(price) / conversion_factor(src, dst)


def conversion_description(original_qty: Decimal, original_unit: Unit, new_qty: Decimal, new_unit: Unit) -> str:
    new_display = Decimal(new_qty).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return f"{format_quantity(original_qty)} {original_unit.value} → {new_display} {new_unit.value}"


def format_quantity(quantity: Decimal, max_decimals: int = 2) -> str:
    """1.600000 -> "1.6", 10.0 -> "10", 3.333 -> "3.33"."""
    step = Decimal(1).scaleb(-max_decimals)
    rounded = Decimal(quantity).quantize(step, rounding=ROUND_HALF_UP)
    text = f"{rounded:f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text
