import argparse
import json
import logging
import sys
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from pathlib import Path

from tqdm import tqdm

from .catalog import (
    CANNABINOIDS,
    TERPENES,
    EFFECTS,
    STRAIN_TYPES,
    PRODUCT_TYPES,
    CONSUMPTION_METHODS,
    CANNABINOIDS_BY_ID,
    TERPENES_BY_ID,
    EFFECTS_BY_ID,
    STRAINS_BY_ID,
    PRODUCT_TYPES_BY_ID,
    METHODS_BY_ID,
)
from .config import DEFAULT_RECOMMENDATION_LIMIT, IMPORT_CHUNK_SIZE
from .database import JournalStore, validate_entry, validate_product
from .label_parser import parse_label_text
from .models import Entry, Product
from .profile import build_profile, build_ideal_profile
from .recommender import get_recommendations
from .stats import compute_statistics

logger = logging.getLogger(__name__)

RECOMMENDATION_LIMIT_KEY = "recommendation_limit"


@contextmanager
def _open_store(args: argparse.Namespace):
    """Open (and create if needed) the journal database named by --db."""
    store = JournalStore(getattr(args, 'db', None))
    store.init_db()
    try:
        yield store
    finally:
        store.close()


def _parse_amounts(pairs: list[str] | None, known: dict, kind: str) -> dict[str, float]:
    """
    Parse compound=percentage arguments into a dict.
    Raises ValueError on a malformed pair, an unknown id or a non-numeric amount.
    """
    if not pairs:
        return {}

    parsed: dict[str, float] = {}
    for pair in pairs:
        if "=" not in pair:
            raise ValueError(f"Invalid {kind} '{pair}' (expected id=percent)")
        key, value = pair.split("=", 1)
        key = key.strip().lower()
        if key not in known:
            raise ValueError(f"Unknown {kind} '{key}'")
        try:
            parsed[key] = float(value.strip().rstrip("%"))
        except ValueError:
            raise ValueError(f"Invalid {kind} '{pair}' (not a number)") from None

    return parsed


def _parse_effects(effects: list[str] | None) -> tuple[str, ...]:
    if not effects:
        return ()
    cleaned = tuple(dict.fromkeys(e.strip().lower() for e in effects))
    unknown = [e for e in cleaned if e not in EFFECTS_BY_ID]
    if unknown:
        raise ValueError(f"Unknown effects: {', '.join(unknown)}")
    return cleaned


def _format_amounts(amounts: dict[str, float], table: dict) -> str:
    parts = []
    for key, value in amounts.items():
        if value > 0:
            label = table[key].name if key in table else key
            parts.append(f"{label} {value:g}%")
    return ", ".join(parts)


def _require_product(store: JournalStore, product_id: int) -> Product:
    product = store.get_product(product_id)
    if product is None:
        raise ValueError(f"No product with id {product_id}")
    return product


def _require_entry(store: JournalStore, entry_id: int) -> Entry:
    entry = store.get_entry(entry_id)
    if entry is None:
        raise ValueError(f"No entry with id {entry_id}")
    return entry


def cmd_add_product(args: argparse.Namespace) -> None:
    """Add a product to the catalog."""
    product = Product(
        name=args.name,
        type=args.type,
        strain=args.strain,
        brand=args.brand,
        cannabinoids=_parse_amounts(args.cannabinoid, CANNABINOIDS_BY_ID, "cannabinoid"),
        terpenes=_parse_amounts(args.terpene, TERPENES_BY_ID, "terpene"),
        notes=args.notes or "",
    )
    with _open_store(args) as store:
        product_id = store.add_product(product)
    logger.info(f"Added product #{product_id}: {product.name}")


def cmd_edit_product(args: argparse.Namespace) -> None:
    """Replace fields of an existing product."""
    with _open_store(args) as store:
        product = _require_product(store, args.product_id)
        changes = {}
        if args.name is not None:
            changes['name'] = args.name
        if args.type is not None:
            changes['type'] = args.type
        if args.strain is not None:
            changes['strain'] = None if args.strain == 'none' else args.strain
        if args.brand is not None:
            changes['brand'] = args.brand or None
        if args.cannabinoid is not None:
            changes['cannabinoids'] = _parse_amounts(args.cannabinoid, CANNABINOIDS_BY_ID, "cannabinoid")
        if args.terpene is not None:
            changes['terpenes'] = _parse_amounts(args.terpene, TERPENES_BY_ID, "terpene")
        if args.notes is not None:
            changes['notes'] = args.notes

        if not changes:
            logger.info("Nothing to change")
            return
        store.update_product(replace(product, **changes))
    logger.info(f"Updated product #{args.product_id}")


def cmd_delete_product(args: argparse.Namespace) -> None:
    """Delete a product together with its entries and photos."""
    with _open_store(args) as store:
        product = _require_product(store, args.product_id)
        removed = store.delete_product(args.product_id)
    logger.info(f"Deleted '{product.name}' and {removed} journal entries")


def cmd_products(args: argparse.Namespace) -> None:
    """List catalogued products."""
    with _open_store(args) as store:
        entries, products = store.snapshot()

    if not products:
        logger.info("No products yet. Add one with: canna-journal add-product NAME")
        return

    ratings_by_product: dict[int, list[int]] = {}
    for entry in entries:
        ratings_by_product.setdefault(entry.product_id, []).append(entry.rating)

    logger.info(f"\n{len(products)} products:")
    for product in products:
        strain = STRAINS_BY_ID[product.strain].name if product.strain in STRAINS_BY_ID else "-"
        brand = f" ({product.brand})" if product.brand else ""
        ratings = ratings_by_product.get(product.id, [])
        tried = f", {len(ratings)} entries, avg {sum(ratings) / len(ratings):.1f}" if ratings else ""
        logger.info(f"  #{product.id} {product.name}{brand} [{product.type}, {strain}]{tried}")
        chemistry = ", ".join(filter(None, [
            _format_amounts(product.cannabinoids, CANNABINOIDS_BY_ID),
            _format_amounts(product.terpenes, TERPENES_BY_ID),
        ]))
        if chemistry:
            logger.info(f"     {chemistry}")


def cmd_log(args: argparse.Namespace) -> None:
    """Log an experience with a product."""
    entry = Entry(
        product_id=args.product_id,
        rating=args.rating or 0,
        effects=_parse_effects(args.effects),
        method=args.method,
        dosage=args.dosage or "",
        notes=args.notes or "",
        date=args.date,
    )
    with _open_store(args) as store:
        product = _require_product(store, args.product_id)
        entry_id = store.add_entry(entry)
    logger.info(f"Logged entry #{entry_id} for {product.name}")


def cmd_edit_entry(args: argparse.Namespace) -> None:
    """Replace fields of an existing entry."""
    with _open_store(args) as store:
        entry = _require_entry(store, args.entry_id)
        changes = {}
        if args.rating is not None:
            changes['rating'] = args.rating
        if args.effects is not None:
            changes['effects'] = _parse_effects(args.effects)
        if args.method is not None:
            changes['method'] = None if args.method == 'none' else args.method
        if args.dosage is not None:
            changes['dosage'] = args.dosage
        if args.notes is not None:
            changes['notes'] = args.notes
        if args.date is not None:
            changes['date'] = args.date

        if not changes:
            logger.info("Nothing to change")
            return
        store.update_entry(replace(entry, **changes))
    logger.info(f"Updated entry #{args.entry_id}")


def cmd_delete_entry(args: argparse.Namespace) -> None:
    with _open_store(args) as store:
        store.delete_entry(args.entry_id)
    logger.info(f"Deleted entry #{args.entry_id}")


def cmd_journal(args: argparse.Namespace) -> None:
    """Show journal entries, newest first."""
    with _open_store(args) as store:
        entries, products = store.snapshot()

    if not entries:
        logger.info("Your journal is empty. Log an entry with: canna-journal log PRODUCT_ID --rating 4")
        return

    names = {p.id: p.name for p in products}
    shown = entries[:args.limit] if args.limit else entries
    logger.info(f"\nShowing {len(shown)} of {len(entries)} entries:")
    for entry in shown:
        name = names.get(entry.product_id, "(deleted product)")
        stars = "★" * entry.rating if entry.rating else "unrated"
        when = entry.timestamp.strftime("%Y-%m-%d %H:%M") if entry.timestamp else "-"
        logger.info(f"  #{entry.id} {when} {name} {stars}")
        details = []
        if entry.effects:
            details.append(", ".join(
                EFFECTS_BY_ID[e].name if e in EFFECTS_BY_ID else e for e in entry.effects
            ))
        if entry.method:
            details.append(METHODS_BY_ID[entry.method].name if entry.method in METHODS_BY_ID else entry.method)
        if entry.dosage:
            details.append(entry.dosage)
        if details:
            logger.info(f"     {' | '.join(details)}")
        if entry.notes:
            logger.info(f"     {entry.notes}")


def _log_aggregates(title: str, aggregates: dict, table: dict) -> None:
    if not aggregates:
        return
    logger.info(f"\n{title}:")
    for key, agg in sorted(aggregates.items(), key=lambda x: -x[1].avg_rating):
        label = table[key].name if key in table else key
        logger.info(f"  {label}: {agg.avg_rating:.2f} avg over {agg.count} entries")


def cmd_stats(args: argparse.Namespace) -> None:
    """Show journal statistics."""
    with _open_store(args) as store:
        entries, products = store.snapshot()

    stats = compute_statistics(entries, products)

    logger.info("\nJournal Statistics:")
    logger.info(f"  Entries: {stats.total_entries}")
    logger.info(f"  Products: {stats.total_products}")

    if stats.effects:
        logger.info("\nMost common effects:")
        for effect, count in stats.top_effects(10):
            label = EFFECTS_BY_ID[effect].name if effect in EFFECTS_BY_ID else effect
            logger.info(f"  {label}: {count} times")

    _log_aggregates("Average rating by cannabinoid", stats.cannabinoids, CANNABINOIDS_BY_ID)
    _log_aggregates("Average rating by terpene", stats.terpenes, TERPENES_BY_ID)
    _log_aggregates("Average rating by strain", stats.strains, STRAINS_BY_ID)


def cmd_recommend(args: argparse.Namespace) -> None:
    """Recommend products from the journal."""
    with _open_store(args) as store:
        if args.limit is not None:
            limit = args.limit
        else:
            limit = store.get_preference(RECOMMENDATION_LIMIT_KEY, DEFAULT_RECOMMENDATION_LIMIT)
        result = get_recommendations(store, limit=limit)

    output_format = getattr(args, 'format', 'text')

    if output_format == 'json':
        if not result.ready:
            logger.info(json.dumps({"ready": False, "message": result.message}, indent=2))
            return
        output = {
            "ready": True,
            "recommendations": [
                {
                    "id": r.product.id,
                    "name": r.product.name,
                    "brand": r.product.brand,
                    "strain": r.product.strain,
                    "score": round(r.score, 2),
                    "match_percent": r.percent,
                }
                for r in result.recommendations
            ],
            "preferences": {
                "avg_rating": round(result.preferences.avg_rating, 2),
                "favorite_effects": result.preferences.favorite_effects,
                "favorite_cannabinoids": result.preferences.favorite_cannabinoids,
                "favorite_terpenes": result.preferences.favorite_terpenes,
                "favorite_strain": result.preferences.favorite_strain,
            },
            "stats": {
                "total_entries": result.stats.total_entries,
                "total_products": result.stats.total_products,
            },
        }
        logger.info(json.dumps(output, indent=2))
        return

    if not result.ready:
        logger.info(result.message)
        return

    logger.info(f"\nTop {len(result.recommendations)} recommendations "
                f"(from {result.stats.total_entries} entries, {result.stats.total_products} products):")
    for i, rec in enumerate(result.recommendations, 1):
        product = rec.product
        brand = f" ({product.brand})" if product.brand else ""
        strain = f" [{STRAINS_BY_ID[product.strain].name}]" if product.strain in STRAINS_BY_ID else ""
        logger.info(f"{i}. {product.name}{brand}{strain} - Match: {rec.percent}% (score {rec.score:.1f})")


def cmd_profile(args: argparse.Namespace) -> None:
    """Show the learned preference profile."""
    with _open_store(args) as store:
        entries, products = store.snapshot()

    if not entries:
        logger.info("No entries yet, so there is no profile to show.")
        return

    profile = build_profile(entries, products)
    ideal = build_ideal_profile(profile)

    logger.info(f"\nProfile from {profile.total_entries} entries")
    logger.info(f"  Average rating: {profile.avg_rating:.2f}★")

    if profile.favorite_effects:
        logger.info("\nFavorite effects:")
        for effect in ideal.effects:
            logger.info(f"  {effect.icon} {effect.name}: {profile.favorite_effects[effect.id]} times")

    if ideal.cannabinoids:
        logger.info("\nFavorite cannabinoids:")
        for c in ideal.cannabinoids:
            logger.info(f"  {c.name} ({c.full_name}): {c.description}")

    if ideal.terpenes:
        logger.info("\nFavorite terpenes:")
        for t in ideal.terpenes:
            logger.info(f"  {t.name}: {t.aroma} - {', '.join(t.effects)}")

    if ideal.strain:
        logger.info(f"\nFavorite strain: {ideal.strain.name} ({ideal.strain.description})")

    hint = ideal.describe()
    if hint:
        logger.info(f"\n{hint}")


def cmd_parse_label(args: argparse.Namespace) -> None:
    """Parse recognised label text into a draft product, optionally saving it."""
    text = Path(args.file).read_text(encoding="utf-8")
    draft = parse_label_text(text)

    logger.info(f"\nName: {draft.name}")
    logger.info(f"Strain: {draft.strain or '-'}")
    logger.info(f"Cannabinoids: {_format_amounts(draft.cannabinoids, CANNABINOIDS_BY_ID) or '-'}")
    logger.info(f"Terpenes: {_format_amounts(draft.terpenes, TERPENES_BY_ID) or '-'}")

    if args.save:
        product = draft.to_product(product_type=args.type, brand=args.brand)
        with _open_store(args) as store:
            product_id = store.add_product(product)
        logger.info(f"Saved as product #{product_id}")


def cmd_export(args: argparse.Namespace) -> None:
    """Export the journal to a JSON file."""
    with _open_store(args) as store:
        entries, products = store.snapshot()

    data = {
        "products": [p.to_dict() for p in products],
        "entries": [e.to_dict() for e in entries],
        "exported_at": datetime.now().isoformat(),
    }
    with open(args.file, 'w', encoding="utf-8") as f:
        json.dump(data, f, indent=2)

    logger.info(f"Exported {len(products)} products and {len(entries)} entries to {args.file}")


def _reject_existing_ids(conn, table: str, records) -> None:
    ids = [r.id for r in records if r.id is not None]
    if not ids:
        return
    placeholders = ",".join("?" * len(ids))
    taken = [row[0] for row in conn.execute(
        f"SELECT id FROM {table} WHERE id IN ({placeholders})", ids
    )]
    if taken:
        raise ValueError(f"Import would overwrite existing {table}: ids {', '.join(map(str, sorted(taken)))}")


def cmd_import(args: argparse.Namespace) -> None:
    """
    Import products and entries from a JSON export. Records keep their ids.

    Every record is validated and ids already in the journal are refused;
    any failure rolls back the whole import.
    """
    with open(args.file, 'r', encoding="utf-8") as f:
        data = json.load(f)

    products = [Product.from_dict(p) for p in data.get('products', [])]
    entries = [Entry.from_dict(e) for e in data.get('entries', [])]

    def _batched(items, size=IMPORT_CHUNK_SIZE):
        for i in range(0, len(items), size):
            yield items[i:i+size]

    with _open_store(args) as store, store.get_db() as conn:
        with tqdm(total=len(products) + len(entries), desc="Import") as progress:
            for chunk in _batched(products):
                for p in chunk:
                    validate_product(p)
                _reject_existing_ids(conn, "products", chunk)
                conn.executemany("""
                    INSERT INTO products
                    (id, name, type, strain, brand, cannabinoids, terpenes, notes, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, [(
                    p.id, p.name.strip(), p.type, p.strain, p.brand,
                    json.dumps(p.cannabinoids), json.dumps(p.terpenes),
                    p.notes, p.created_at or datetime.now().isoformat(),
                ) for p in chunk])
                progress.update(len(chunk))

            for chunk in _batched(entries):
                for e in chunk:
                    validate_entry(e)
                _reject_existing_ids(conn, "entries", chunk)
                conn.executemany("""
                    INSERT INTO entries
                    (id, product_id, date, rating, effects, method, dosage, notes)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """, [(
                    e.id, e.product_id, e.date or datetime.now().isoformat(), e.rating,
                    json.dumps(list(e.effects)), e.method, e.dosage, e.notes,
                ) for e in chunk])
                progress.update(len(chunk))

    logger.info(f"Imported {len(products)} products and {len(entries)} entries from {args.file}")


def cmd_catalog(args: argparse.Namespace) -> None:
    """Show reference data identifiers."""
    if args.kind == 'cannabinoids':
        for c in CANNABINOIDS:
            logger.info(f"  {c.id}: {c.name} - {c.full_name} ({c.description})")
    elif args.kind == 'terpenes':
        for t in TERPENES:
            logger.info(f"  {t.id}: {t.name} - {t.aroma}")
    elif args.kind == 'effects':
        for e in EFFECTS:
            logger.info(f"  {e.id}: {e.icon} {e.name} ({e.category})")
    elif args.kind == 'strains':
        for s in STRAIN_TYPES:
            logger.info(f"  {s.id}: {s.name} - {s.description}")
    elif args.kind == 'types':
        for p in PRODUCT_TYPES:
            logger.info(f"  {p.id}: {p.icon} {p.name}")
    else:
        for m in CONSUMPTION_METHODS:
            logger.info(f"  {m.id}: {m.icon} {m.name}")


def cmd_settings(args: argparse.Namespace) -> None:
    """Show or change stored settings."""
    with _open_store(args) as store:
        if args.recommendation_limit is not None:
            if args.recommendation_limit < 1:
                raise ValueError("Recommendation limit must be at least 1")
            store.set_preference(RECOMMENDATION_LIMIT_KEY, args.recommendation_limit)
        limit = store.get_preference(RECOMMENDATION_LIMIT_KEY, DEFAULT_RECOMMENDATION_LIMIT)
    logger.info(f"Recommendation limit: {limit}")


def _add_product_fields(parser: argparse.ArgumentParser, editing: bool = False) -> None:
    strain_choices = list(STRAINS_BY_ID) + (['none'] if editing else [])
    parser.add_argument("--type", choices=list(PRODUCT_TYPES_BY_ID),
                        default=None if editing else 'flower', help="Product type")
    parser.add_argument("--strain", choices=strain_choices, help="Strain type")
    parser.add_argument("--brand", help="Brand name")
    parser.add_argument("--cannabinoid", "-c", nargs="*", metavar="ID=PCT",
                        help="Cannabinoid percentages, e.g. thc=22.5 cbd=0.4")
    parser.add_argument("--terpene", "-t", nargs="*", metavar="ID=PCT",
                        help="Terpene percentages, e.g. limonene=1.2")
    parser.add_argument("--notes", help="Free-text notes")


def _add_entry_fields(parser: argparse.ArgumentParser, editing: bool = False) -> None:
    method_choices = list(METHODS_BY_ID) + (['none'] if editing else [])
    parser.add_argument("--rating", "-r", type=int, choices=range(1, 6), help="Rating 1-5")
    parser.add_argument("--effects", "-e", nargs="*", help="Effect ids (see: catalog effects)")
    parser.add_argument("--method", "-m", choices=method_choices, help="Consumption method")
    parser.add_argument("--dosage", help="Dosage (free text)")
    parser.add_argument("--notes", help="Free-text notes")
    parser.add_argument("--date", help="ISO timestamp (default: now)")


def main():
    parser = argparse.ArgumentParser(description="Cannabis Journal")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    parser.add_argument("--db", type=Path, help="Journal database path (default: $CANNA_JOURNAL_DB)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # Catalog management
    add_product_parser = subparsers.add_parser("add-product", help="Add a product")
    add_product_parser.add_argument("name", help="Product name")
    _add_product_fields(add_product_parser)
    add_product_parser.set_defaults(func=cmd_add_product)

    edit_product_parser = subparsers.add_parser("edit-product", help="Edit a product")
    edit_product_parser.add_argument("product_id", type=int, help="Product id")
    edit_product_parser.add_argument("--name", help="New product name")
    _add_product_fields(edit_product_parser, editing=True)
    edit_product_parser.set_defaults(func=cmd_edit_product)

    delete_product_parser = subparsers.add_parser("delete-product", help="Delete a product and its entries")
    delete_product_parser.add_argument("product_id", type=int, help="Product id")
    delete_product_parser.set_defaults(func=cmd_delete_product)

    products_parser = subparsers.add_parser("products", help="List products")
    products_parser.set_defaults(func=cmd_products)

    # Journal
    log_parser = subparsers.add_parser("log", help="Log an experience")
    log_parser.add_argument("product_id", type=int, help="Product id")
    _add_entry_fields(log_parser)
    log_parser.set_defaults(func=cmd_log)

    edit_entry_parser = subparsers.add_parser("edit-entry", help="Edit a journal entry")
    edit_entry_parser.add_argument("entry_id", type=int, help="Entry id")
    _add_entry_fields(edit_entry_parser, editing=True)
    edit_entry_parser.set_defaults(func=cmd_edit_entry)

    delete_entry_parser = subparsers.add_parser("delete-entry", help="Delete a journal entry")
    delete_entry_parser.add_argument("entry_id", type=int, help="Entry id")
    delete_entry_parser.set_defaults(func=cmd_delete_entry)

    journal_parser = subparsers.add_parser("journal", help="Show journal entries")
    journal_parser.add_argument("--limit", type=int, default=20, help="Number of entries to show (0 for all)")
    journal_parser.set_defaults(func=cmd_journal)

    # Insights
    stats_parser = subparsers.add_parser("stats", help="Show journal statistics")
    stats_parser.set_defaults(func=cmd_stats)

    rec_parser = subparsers.add_parser("recommend", help="Recommend products")
    rec_parser.add_argument("--limit", type=int, help="Number of recommendations")
    rec_parser.add_argument("--format", choices=['text', 'json'], default='text', help="Output format")
    rec_parser.set_defaults(func=cmd_recommend)

    profile_parser = subparsers.add_parser("profile", help="Show your preference profile")
    profile_parser.set_defaults(func=cmd_profile)

    # Label parsing
    label_parser = subparsers.add_parser("parse-label", help="Parse label text into a product draft")
    label_parser.add_argument("file", help="Text file with the recognised label text")
    label_parser.add_argument("--type", choices=list(PRODUCT_TYPES_BY_ID), default='flower',
                              help="Product type used with --save")
    label_parser.add_argument("--brand", help="Brand used with --save")
    label_parser.add_argument("--save", action="store_true", help="Add the draft to the catalog")
    label_parser.set_defaults(func=cmd_parse_label)

    # Export / import
    export_parser = subparsers.add_parser("export", help="Export journal to JSON")
    export_parser.add_argument("file", help="Output JSON file path")
    export_parser.set_defaults(func=cmd_export)

    import_parser = subparsers.add_parser("import", help="Import journal from JSON")
    import_parser.add_argument("file", help="Input JSON file path")
    import_parser.set_defaults(func=cmd_import)

    # Reference data and settings
    catalog_parser = subparsers.add_parser("catalog", help="Show reference identifiers")
    catalog_parser.add_argument("kind", choices=['cannabinoids', 'terpenes', 'effects', 'strains', 'types', 'methods'])
    catalog_parser.set_defaults(func=cmd_catalog)

    settings_parser = subparsers.add_parser("settings", help="Show or change settings")
    settings_parser.add_argument("--recommendation-limit", type=int, help="Default number of recommendations")
    settings_parser.set_defaults(func=cmd_settings)

    args = parser.parse_args()

    # Configure logging based on verbosity
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        args.func(args)
    except ValueError as e:
        logger.error(str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
