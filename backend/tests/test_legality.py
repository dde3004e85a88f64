from app.schemas.routing import SearchParams
from app.services.catalog import CatalogStore
from app.services.legality import resolve_legality


def _facts(db_path, **params):
    return resolve_legality(SearchParams(**params), CatalogStore(db_path))


def test_state_and_product_scenario(seeded_catalog, db_path):
    facts = _facts(db_path, state="Texas", product="Delta-8")

    assert len(facts) == 1
    f = facts[0]
    assert (f.state, f.brand, f.product, f.is_legal) == ("Texas", "BrandX", "Delta-8 Gummies", True)
    assert "allowed" in f.details


def test_every_fact_is_asserted_legal(seeded_catalog, db_path):
    facts = _facts(db_path, state="Texas")
    assert len(facts) == 4
    assert all(f.is_legal for f in facts)
    assert [f.product for f in facts] == ["Delta-8 Gummies", "THCA Flower", "Galaxy Gummies", "Labs Vape"]


def test_absent_from_allow_list_is_not_reported_as_illegal(seeded_catalog, db_path):
    assert _facts(db_path, state="Florida", product="THCA") == []


def test_state_lookup_is_case_insensitive_then_fuzzy(seeded_catalog, db_path):
    assert len(_facts(db_path, state="texas")) == 4
    # "Mexico" only fuzzy-matches "New Mexico", which has no allowed products
    assert _facts(db_path, state="Mexico") == []
    assert [f.product for f in _facts(db_path, state="flor")] == ["Delta-8 Gummies"]


def test_unknown_state_aborts(seeded_catalog, db_path):
    assert _facts(db_path, state="Atlantis", product="Delta-8") == []


def test_unknown_brand_aborts(seeded_catalog, db_path):
    assert _facts(db_path, state="Texas", brand="Nonexistent") == []


def test_exact_brand_beats_fuzzy(seeded_catalog, db_path):
    facts = _facts(db_path, state="Texas", brand="galaxy treats")
    assert [f.product for f in facts] == ["Galaxy Gummies"]


def test_fuzzy_brand_keeps_all_candidates(seeded_catalog, db_path):
    facts = _facts(db_path, state="Texas", brand="Galaxy")
    assert sorted(f.brand for f in facts) == ["Galaxy Labs", "Galaxy Treats"]


def test_brand_only_spans_states(seeded_catalog, db_path):
    facts = _facts(db_path, brand="BrandX")
    assert sorted((f.state, f.product) for f in facts) == [
        ("Florida", "Delta-8 Gummies"),
        ("Texas", "Delta-8 Gummies"),
        ("Texas", "THCA Flower"),
    ]


def test_product_filter_only_narrows(seeded_catalog, db_path):
    broad = _facts(db_path, state="Texas", brand="BrandX")
    narrow = _facts(db_path, state="Texas", brand="BrandX", product="gummies")

    broad_keys = {(f.state, f.brand, f.product) for f in broad}
    narrow_keys = {(f.state, f.brand, f.product) for f in narrow}
    assert narrow_keys <= broad_keys
    assert narrow_keys == {("Texas", "BrandX", "Delta-8 Gummies")}


def test_product_filter_escapes_wildcards(seeded_catalog, db_path):
    assert _facts(db_path, state="Texas", product="%") == []
    assert _facts(db_path, state="Texas", product="_") == []


def test_no_params_returns_nothing(seeded_catalog, db_path):
    assert _facts(db_path) == []
    assert _facts(db_path, query="what is legal") == []
