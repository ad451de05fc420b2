import json
import logging
import sys

import pytest

from canna_journal import cli
from canna_journal.catalog import CANNABINOIDS_BY_ID
from canna_journal.database import JournalStore


def run_cli(monkeypatch, db_path, *argv):
    monkeypatch.setattr(sys, "argv", ["canna-journal", "--db", str(db_path), *argv])
    cli.main()


def cli_json(caplog):
    """Last JSON document the CLI logged."""
    messages = [r.getMessage() for r in caplog.records if r.name == cli.__name__]
    return json.loads(next(m for m in reversed(messages) if m.startswith("{")))


@pytest.fixture
def journal_db(monkeypatch, db_path, caplog):
    """A CLI database with two products and three entries for the first."""
    caplog.set_level(logging.INFO)
    run_cli(monkeypatch, db_path, "add-product", "Sour Diesel", "--strain", "sativa",
            "-c", "thc=22", "-t", "limonene=1.1", "--brand", "Coastal")
    run_cli(monkeypatch, db_path, "add-product", "Granddaddy Purple", "--strain", "indica",
            "-c", "cbd=1")
    for day, rating in ((1, 5), (2, 4), (3, 5)):
        run_cli(monkeypatch, db_path, "log", "1", "--rating", str(rating),
                "--effects", "energetic", "focused", "--date", f"2024-05-0{day}T20:00:00")
    caplog.clear()
    return db_path


def test_main_dispatches_to_subcommand(monkeypatch):
    called = {}

    def fake_stats(args):
        called["command"] = args.command

    monkeypatch.setattr(cli, "cmd_stats", fake_stats)
    monkeypatch.setattr(sys, "argv", ["prog", "stats"])

    cli.main()

    assert called["command"] == "stats"


def test_parse_amounts_accepts_percent_suffix_and_case():
    parsed = cli._parse_amounts(["thc=21.5%", "CBD=0.4"], CANNABINOIDS_BY_ID, "cannabinoid")

    assert parsed == {"thc": 21.5, "cbd": 0.4}


@pytest.mark.parametrize("pair, message", [
    ("bogus=3", "Unknown cannabinoid 'bogus'"),
    ("cbg", "expected id=percent"),
    ("thc=lots", "not a number"),
])
def test_parse_amounts_rejects_bad_pairs(pair, message):
    with pytest.raises(ValueError, match=message):
        cli._parse_amounts(["cbd=1", pair], CANNABINOIDS_BY_ID, "cannabinoid")


def test_add_product_with_bad_amount_exits(monkeypatch, db_path, caplog):
    with pytest.raises(SystemExit) as exc:
        run_cli(monkeypatch, db_path, "add-product", "Bad Batch", "-c", "thc=lots")

    assert exc.value.code == 1
    assert "not a number" in caplog.text
    store = JournalStore(db_path)
    try:
        store.init_db()
        assert store.list_products() == []
    finally:
        store.close()


def test_parse_effects_rejects_unknown():
    assert cli._parse_effects(["Happy", "happy", "relaxed"]) == ("happy", "relaxed")
    with pytest.raises(ValueError, match="telepathic"):
        cli._parse_effects(["telepathic"])


def test_recommend_json_end_to_end(monkeypatch, journal_db, caplog):
    run_cli(monkeypatch, journal_db, "recommend", "--format", "json")

    output = cli_json(caplog)

    assert output["ready"] is True
    assert [r["name"] for r in output["recommendations"]] == ["Sour Diesel", "Granddaddy Purple"]
    top = output["recommendations"][0]
    assert top["brand"] == "Coastal"
    assert top["match_percent"] > 100
    assert output["preferences"]["favorite_strain"] == "sativa"
    assert output["preferences"]["favorite_effects"] == {"energetic": 3, "focused": 3}
    assert output["stats"] == {"total_entries": 3, "total_products": 2}


def test_recommend_json_not_ready(monkeypatch, db_path, caplog):
    caplog.set_level(logging.INFO)

    run_cli(monkeypatch, db_path, "recommend", "--format", "json")

    output = cli_json(caplog)
    assert output["ready"] is False
    assert "at least 3 entries" in output["message"]


def test_recommendation_limit_setting_is_used(monkeypatch, journal_db, caplog):
    run_cli(monkeypatch, journal_db, "settings", "--recommendation-limit", "1")
    run_cli(monkeypatch, journal_db, "recommend", "--format", "json")

    assert len(cli_json(caplog)["recommendations"]) == 1

    run_cli(monkeypatch, journal_db, "recommend", "--format", "json", "--limit", "2")

    assert len(cli_json(caplog)["recommendations"]) == 2


@pytest.mark.parametrize("limit", ["0", "-1"])
def test_recommend_rejects_non_positive_limit(monkeypatch, journal_db, caplog, limit):
    with pytest.raises(SystemExit) as exc:
        run_cli(monkeypatch, journal_db, "recommend", "--format", "json", "--limit", limit)

    assert exc.value.code == 1
    assert "at least 1" in caplog.text


def test_text_commands_render(monkeypatch, journal_db, caplog):
    for command in (["products"], ["journal", "--limit", "2"], ["stats"], ["profile"], ["recommend"]):
        run_cli(monkeypatch, journal_db, *command)

    text = caplog.text
    assert "#1 Sour Diesel (Coastal) [flower, Sativa], 3 entries, avg 4.7" in text
    assert "Showing 2 of 3 entries" in text
    assert "Energetic: 3 times" in text
    assert "look for items that contain THC and Limonene" in text
    assert "1. Sour Diesel (Coastal) [Sativa]" in text


def test_delete_product_cascades_through_cli(monkeypatch, journal_db, caplog):
    run_cli(monkeypatch, journal_db, "delete-product", "1")

    assert "and 3 journal entries" in caplog.text
    store = JournalStore(journal_db)
    try:
        assert store.list_entries() == []
        assert [p.name for p in store.list_products()] == ["Granddaddy Purple"]
    finally:
        store.close()


def test_edit_commands_update_records(monkeypatch, journal_db):
    run_cli(monkeypatch, journal_db, "edit-product", "2", "--strain", "none", "--name", "GDP")
    run_cli(monkeypatch, journal_db, "edit-entry", "1", "--rating", "2", "--method", "vaping")

    store = JournalStore(journal_db)
    try:
        product = store.get_product(2)
        entry = store.get_entry(1)
    finally:
        store.close()

    assert (product.name, product.strain) == ("GDP", None)
    assert product.cannabinoids == {"cbd": 1.0}
    assert (entry.rating, entry.method) == (2, "vaping")
    assert entry.effects == ("energetic", "focused")


def test_main_exits_on_value_error(monkeypatch, db_path, caplog):
    with pytest.raises(SystemExit) as exc:
        run_cli(monkeypatch, db_path, "log", "99", "--rating", "4")

    assert exc.value.code == 1
    assert "No product with id 99" in caplog.text


def test_export_import_round_trip(monkeypatch, journal_db, tmp_path):
    export_file = tmp_path / "journal.json"
    run_cli(monkeypatch, journal_db, "export", str(export_file))

    data = json.loads(export_file.read_text())
    assert len(data["products"]) == 2
    assert len(data["entries"]) == 3

    copy_db = tmp_path / "copy.db"
    run_cli(monkeypatch, copy_db, "import", str(export_file))

    original, copy = JournalStore(journal_db), JournalStore(copy_db)
    try:
        assert copy.snapshot() == original.snapshot()
    finally:
        original.close()
        copy.close()


def test_parse_label_save(monkeypatch, db_path, tmp_path, caplog):
    caplog.set_level(logging.INFO)
    label = tmp_path / "label.txt"
    label.write_text("Pineapple Express\nSativa\nTHC: 19.5%\nLimonene 0.7%\nCBD 10mg\n")

    run_cli(monkeypatch, db_path, "parse-label", str(label), "--save", "--type", "preroll")

    assert "Name: Pineapple Express" in caplog.text
    store = JournalStore(db_path)
    try:
        [product] = store.list_products()
    finally:
        store.close()
    assert product.type == "preroll"
    assert product.strain == "sativa"
    assert product.cannabinoids == {"thc": 19.5, "cbd": 10.0}
    assert product.terpenes == {"limonene": 0.7}


def test_import_rejects_invalid_records_and_rolls_back(monkeypatch, db_path, tmp_path, caplog):
    bad_file = tmp_path / "bad.json"
    bad_file.write_text(json.dumps({
        "products": [
            {"id": 1, "name": "Fine", "type": "flower", "cannabinoids": {"thc": 18}},
            {"id": 2, "name": "", "type": "spaceship", "strain": "ruderalis",
             "cannabinoids": {"thc": 500, "cbd": -3}},
        ],
        "entries": [],
    }))

    with pytest.raises(SystemExit) as exc:
        run_cli(monkeypatch, db_path, "import", str(bad_file))

    assert exc.value.code == 1
    assert "Product name is required" in caplog.text
    store = JournalStore(db_path)
    try:
        assert store.list_products() == []
    finally:
        store.close()


def test_import_rejects_unknown_effects(monkeypatch, db_path, tmp_path, caplog):
    bad_file = tmp_path / "bad.json"
    bad_file.write_text(json.dumps({
        "products": [{"id": 1, "name": "Fine", "type": "flower"}],
        "entries": [{"id": 1, "product_id": 1, "rating": 4, "effects": ["telepathic"]}],
    }))

    with pytest.raises(SystemExit):
        run_cli(monkeypatch, db_path, "import", str(bad_file))

    assert "Unknown effects: telepathic" in caplog.text
    store = JournalStore(db_path)
    try:
        assert store.list_products() == []
        assert store.list_entries() == []
    finally:
        store.close()


def test_import_refuses_existing_ids(monkeypatch, journal_db, tmp_path, caplog):
    clash_file = tmp_path / "clash.json"
    clash_file.write_text(json.dumps({
        "products": [{"id": 1, "name": "Impostor", "type": "flower"}],
        "entries": [],
    }))

    with pytest.raises(SystemExit):
        run_cli(monkeypatch, journal_db, "import", str(clash_file))

    assert "would overwrite existing products: ids 1" in caplog.text
    store = JournalStore(journal_db)
    try:
        assert store.get_product(1).name == "Sour Diesel"
        assert len(store.list_entries_for_product(1)) == 3
    finally:
        store.close()
