"""
Bootstrap data for a fresh database.

    python seed.py            # create the super-admin from ADMIN_EMAIL / ADMIN_PASSWORD
    python seed.py --demo     # also generate demo schools and products
"""
import argparse
import logging
import random

from faker import Faker
from pymongo.database import Database

from auth import AdminGate
from catalog import Catalog
from schemas import DEFAULT_COLOR
from settings import ADMIN_EMAIL, ADMIN_NAME, ADMIN_PASSWORD

logger = logging.getLogger(__name__)

SCHOOL_CATEGORIES = ["pre-primary", "primary", "secondary"]
UNIFORM_ITEMS = [
    ("Shirt", "uniforms", ["28", "30", "32", "34", "36"]),
    ("Trousers", "uniforms", ["24", "26", "28", "30"]),
    ("Skirt", "uniforms", ["22", "24", "26"]),
    ("Sports T-Shirt", "sportswear", ["S", "M", "L", "XL"]),
    ("Blazer", "outerwear", ["S", "M", "L"]),
    ("Tie", "accessories", ["Free Size"]),
    ("School Shoes", "footwear", ["3", "4", "5", "6", "7"]),
]


def seed_demo_catalog(catalog: Catalog, schools: int = 4, seed=None) -> dict:
    """Create fake schools, each with a set of uniform products and stock."""
    fake = Faker()
    rng = random.Random(seed)
    if seed is not None:
        Faker.seed(seed)
    created = {"schools": 0, "products": 0}
    for number in range(1, schools + 1):
        school = catalog.create_school({
            "name": f"{fake.unique.last_name()} {rng.choice(['Public School', 'Academy', 'High School'])}",
            "color": fake.hex_color(),
            "category": rng.choice(SCHOOL_CATEGORIES),
            "description": fake.sentence(),
        })
        created["schools"] += 1
        code = f"{school['slug'].replace('-', '')[:5].upper()}{number}"
        for index, (item, category, sizes) in enumerate(UNIFORM_ITEMS, start=1):
            price = float(rng.randrange(299, 1999, 50))
            catalog.create_product({
                "name": f"{school['name']} {item}",
                "sku": f"{code}-{index:03d}",
                "category": category,
                "school": school["_id"],
                "price": price,
                "original_price": price + 100 if rng.random() < 0.3 else None,
                "images": [f"https://picsum.photos/seed/{code}{index}/600/600"],
                "sizes": sizes,
                "colors": [DEFAULT_COLOR],
                "stock": [{"size": s, "color": DEFAULT_COLOR, "quantity": rng.randint(0, 25)} for s in sizes],
            })
            created["products"] += 1
    return created


def run(database: Database, demo: bool = False) -> dict:
    result = {"super_admin": None}
    admin = AdminGate(database).ensure_super_admin(ADMIN_NAME, ADMIN_EMAIL, ADMIN_PASSWORD)
    if admin:
        result["super_admin"] = admin["email"]
    if demo:
        result.update(seed_demo_catalog(Catalog(database)))
    return result


if __name__ == "__main__":
    from database import db, ensure_indexes

    parser = argparse.ArgumentParser(description="Seed the Uniform Store database")
    parser.add_argument("--demo", action="store_true", help="generate demo schools and products")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)
    if db is None:
        raise SystemExit("DATABASE_URL is not set")
    ensure_indexes(db)
    logger.info("Seeded: %s", run(db, demo=args.demo))
