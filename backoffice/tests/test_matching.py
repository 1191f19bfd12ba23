from decimal import Decimal

from backoffice.app.db.models.core_types import Unit
from backoffice.app.db.models.models_v1 import Product
from backoffice.services.matching import (
    best_match,
    extract_unit_from_name,
    rank_candidates,
    sanitize_product_name,
    score_name,
    search_products,
)


def _p(pid, name, unit=Unit.kg, aliases=None, display_name=None):
    return Product(
        id=pid,
        name=name,
        unit=unit,
        quantity=Decimal("0"),
        aliases=aliases or [],
        display_name=display_name,
    )


def test_exact_match_ignores_case_and_accents():
    assert score_name("CRÈME FRAÎCHE", "creme fraiche") == 1.0


def test_substring_scores_above_threshold():
    assert score_name("Tomate", "Tomates") > 0.9
    assert 0.6 <= score_name("Milk", "Whole Milk") < 1.0


def test_unrelated_names_do_not_match():
    products = [_p(1, "Milk", Unit.l), _p(2, "Carrots")]

    assert rank_candidates("Beurre doux", products) == []


def test_exact_match_wins_over_fuzzy_candidates():
    products = [_p(1, "Milk powder"), _p(2, "Milk", Unit.l), _p(3, "Whole milk", Unit.l)]

    ranked = rank_candidates("MILK", products)

    assert [c.id for c in ranked] == [2]
    assert ranked[0].exact
    assert ranked[0].score == 1.0


def test_alias_and_display_name_are_matched():
    products = [
        _p(1, "Lait entier", Unit.l, aliases=["whole milk"]),
        _p(2, "Beurre", display_name="Beurre doux AOP"),
    ]

    assert rank_candidates("Whole Milk", products)[0].id == 1
    assert rank_candidates("beurre doux aop", products)[0].id == 2


def test_fuzzy_candidates_sorted_by_score_then_name():
    products = [_p(1, "Tomates cerises"), _p(2, "Tomates grappe"), _p(3, "Tomates")]

    ranked = rank_candidates("Tomate", products)

    assert ranked[0].id == 3
    assert [c.score for c in ranked] == sorted((c.score for c in ranked), reverse=True)


def test_short_query_returns_nothing():
    assert rank_candidates("a", [_p(1, "Ail")]) == []


def test_limit_is_applied():
    products = [_p(i, f"Tomates {i}") for i in range(1, 8)]

    assert len(rank_candidates("Tomates", products, limit=3)) == 3


def test_sanitize_ocr_name():
    assert sanitize_product_name("TOMATE GRAPPE X1KG BARQUETTE F.G") == "Tomate Grappe"
    assert sanitize_product_name("*HUILE OLIVE 1L ESPAGNE") == "Huile Olive"


def test_extract_unit_from_name():
    assert extract_unit_from_name("LAIT ENTIER 1L") == (Unit.l, Decimal("1"))
    assert extract_unit_from_name("FARINE T55 X25KG") == (Unit.kg, Decimal("25"))
    assert extract_unit_from_name("CREME 500ML") == (Unit.ml, Decimal("500"))
    assert extract_unit_from_name("OEUFS PLEIN AIR") == (None, None)


def test_search_products_reads_catalogue(db_session, make_product):
    milk = make_product("Milk", "L", quantity="5")
    make_product("Tomatoes", "G")

    assert best_match(db_session, "milk").id == milk.id
    assert best_match(db_session, "Saumon fumé") is None

    found = search_products(db_session, "Tomato")
    assert [c.name for c in found] == ["Tomatoes"]
    assert found[0].unit == Unit.g
