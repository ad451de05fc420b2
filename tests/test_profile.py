from canna_journal import catalog
from canna_journal.models import Entry, Product
from canna_journal.profile import (
    PreferenceProfile,
    build_profile,
    build_ideal_profile,
)


def test_profile_only_learns_from_high_ratings():
    products = [
        Product(id=1, name="Loved", strain="sativa", cannabinoids={"thc": 20}, terpenes={"limonene": 1}),
        Product(id=2, name="Meh", strain="indica", cannabinoids={"cbd": 15}, terpenes={"myrcene": 2}),
    ]
    entries = [
        Entry(product_id=1, rating=5, effects=("uplifted",)),
        Entry(product_id=1, rating=4, effects=("uplifted", "creative")),
        Entry(product_id=2, rating=3, effects=("relaxed",)),
        Entry(product_id=2, rating=1, effects=("relaxed",)),
    ]

    profile = build_profile(entries, products)

    assert profile.total_entries == 4
    assert profile.avg_rating == (5 + 4 + 3 + 1) / 4
    assert profile.favorite_effects == {"uplifted": 2, "creative": 1}
    assert profile.favorite_cannabinoids == {"thc": 5 * 20 + 4 * 20}
    assert profile.favorite_terpenes == {"limonene": 9}
    assert profile.favorite_strain == "sativa"


def test_profile_ignores_non_positive_effects():
    products = [Product(id=1, name="Couch Lock", strain="indica")]
    entries = [Entry(product_id=1, rating=5, effects=("sleepy", "dry_mouth", "relaxed", "made_up"))]

    profile = build_profile(entries, products)

    assert profile.favorite_effects == {"relaxed": 1}


def test_profile_keeps_top_n_with_stable_ties():
    products = [
        Product(
            id=1,
            name="Full Spectrum",
            cannabinoids={"cbg": 1, "thc": 3, "cbn": 1, "cbd": 2},
            terpenes={"pinene": 1, "myrcene": 1},
        ),
    ]
    entries = [Entry(product_id=1, rating=4)]

    profile = build_profile(entries, products)

    # Top 3 cannabinoids; cbg and cbn tie and cbg was seen first
    assert list(profile.favorite_cannabinoids) == ["thc", "cbd", "cbg"]
    assert list(profile.favorite_terpenes) == ["pinene", "myrcene"]


def test_profile_strain_tie_goes_to_first_seen():
    products = [
        Product(id=1, name="First", strain="hybrid"),
        Product(id=2, name="Second", strain="sativa"),
    ]
    entries = [Entry(product_id=1, rating=5), Entry(product_id=2, rating=5)]

    assert build_profile(entries, products).favorite_strain == "hybrid"


def test_profile_skips_missing_products_for_chemistry():
    entries = [Entry(product_id=42, rating=5, effects=("happy",))]

    profile = build_profile(entries, [])

    assert profile.favorite_effects == {"happy": 1}
    assert profile.favorite_cannabinoids == {}
    assert profile.favorite_strain is None


def test_profile_of_empty_journal_is_well_formed():
    profile = build_profile([], [])

    assert profile.total_entries == 0
    assert profile.avg_rating == 0.0
    assert profile.favorite_effects == {}
    assert profile.favorite_terpenes == {}
    assert profile.favorite_strain is None


def test_profile_all_zero_ratings():
    products = [Product(id=1, name="Unrated", cannabinoids={"thc": 10})]
    entries = [Entry(product_id=1) for _ in range(3)]

    profile = build_profile(entries, products)

    assert profile.avg_rating == 0.0
    assert profile.favorite_cannabinoids == {}


def test_ideal_profile_preserves_rank_order_and_drops_unknown():
    profile = PreferenceProfile(
        favorite_effects={"focused": 4, "happy": 2},
        favorite_cannabinoids={"cbd": 30.0, "thc": 12.0},
        favorite_terpenes={"linalool": 10.0, "bogus": 6.0, "myrcene": 5.0},
        favorite_strain="indica",
    )

    ideal = build_ideal_profile(profile)

    assert [c.id for c in ideal.cannabinoids] == ["cbd", "thc"]
    assert [t.id for t in ideal.terpenes] == ["linalool", "myrcene"]
    assert [e.id for e in ideal.effects] == ["focused", "happy"]
    assert ideal.strain == catalog.STRAINS_BY_ID["indica"]


def test_ideal_profile_unknown_strain_resolves_to_none():
    ideal = build_ideal_profile(PreferenceProfile(favorite_strain="ruderalis"))

    assert ideal.strain is None
    assert ideal.describe() == ""


def test_ideal_profile_describe():
    profile = PreferenceProfile(
        favorite_cannabinoids={"thc": 280.0},
        favorite_terpenes={"limonene": 14.0},
        favorite_strain="sativa",
    )

    hint = build_ideal_profile(profile).describe()

    assert hint == (
        "When shopping for new products, look for items that contain "
        "THC and Limonene. Consider Sativa strains."
    )
