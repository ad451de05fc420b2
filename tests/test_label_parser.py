import pytest

from canna_journal.label_parser import (
    LabelDraft,
    extract_product_name,
    extract_strain,
    extract_terpenes,
    parse_label_text,
)

BLUE_DREAM_LABEL = """
Blue Dream
Hybrid - Sativa dominant, Indica backcross
THC: 22.5%
CBD 0.8%
CBG - 1.2%
Limonene: 0.9%
Myrcene 12mg
Contains Pinene
Batch 2024-07
"""


def test_parse_label_text_full_example():
    draft = parse_label_text(BLUE_DREAM_LABEL)

    assert draft.name == "Blue Dream"
    assert draft.cannabinoids == {"thc": 22.5, "cbd": 0.8, "cbg": 1.2}
    assert draft.terpenes == {"myrcene": 12.0, "limonene": 0.9, "pinene": 1.0}
    assert draft.strain == "hybrid"


def test_product_name_skips_numbers_and_compound_lines():
    text = "THC 20%\n123 Main St\nOG\nGelato Cake\nIndica"

    assert extract_product_name(text) == "Gelato Cake"


@pytest.mark.parametrize("text", [
    "",
    "THC 20%\nCBD 1%",
    "a\nb\nc\nd\ne\nFar Too Late",
])
def test_product_name_falls_back_to_unknown(text):
    assert extract_product_name(text) == "Unknown Product"


def test_headline_thc_wins_over_thcv():
    draft = parse_label_text("Tangie\nTHCV: 0.4%\nTHC 18%")

    assert draft.cannabinoids == {"thc": 18.0, "thcv": 0.4}


@pytest.mark.parametrize("text, strain", [
    ("100% Sativa", "sativa"),
    ("indica dominant", "indica"),
    ("sativa / indica cross", "hybrid"),
    ("Hybrid", None),
    ("no strain info", None),
])
def test_extract_strain(text, strain):
    assert extract_strain(text) == strain


def test_mentioned_terpene_without_amount_gets_default():
    assert extract_terpenes("Terpene profile: linalool, humulene 0.2%") == {
        "linalool": 1.0,
        "humulene": 0.2,
    }


def test_parse_label_text_tolerates_empty_input():
    draft = parse_label_text("")

    assert draft == LabelDraft()
    assert draft.strain is None


def test_to_product_drops_milligram_amounts(caplog):
    draft = LabelDraft(
        name="Gummies",
        cannabinoids={"thc": 250.0, "cbd": 5.0},
        terpenes={"myrcene": 12.0},
        strain="indica",
    )

    product = draft.to_product(product_type="edible", brand="Chewy Co")

    assert product.name == "Gummies"
    assert product.type == "edible"
    assert product.brand == "Chewy Co"
    assert product.strain == "indica"
    assert product.cannabinoids == {"cbd": 5.0}
    assert product.terpenes == {"myrcene": 12.0}
    assert "thc=250.0" in caplog.text
