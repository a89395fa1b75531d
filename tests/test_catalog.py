import pytest
from pydantic import ValidationError as SchemaValidationError

from catalog import slugify
from errors import NotFoundError, ValidationError


@pytest.mark.parametrize(
    "name,slug",
    [
        ("St. Mary's  School!", "st-marys-school"),
        ("  Delhi Public School  ", "delhi-public-school"),
        ("Kids_Corner -- Pre School", "kids-corner-pre-school"),
        ("--Green Valley--", "green-valley"),
    ],
)
def test_slugify(name, slug):
    assert slugify(name) == slug
    assert slugify(slug) == slug


def test_create_school_derives_slug(catalog):
    school = catalog.create_school({"name": "St. Mary's  School!"})
    assert school["slug"] == "st-marys-school"
    assert school["is_active"] is True
    assert catalog.get_school("st-marys-school")["_id"] == school["_id"]
    assert catalog.get_school(school["_id"])["name"] == "St. Mary's  School!"


def test_update_school_reslugs_on_rename(catalog, school):
    updated = catalog.update_school(school["_id"], {"name": "Holy Cross Academy"})
    assert updated["slug"] == "holy-cross-academy"
    with pytest.raises(NotFoundError):
        catalog.get_school("st-marys-school")


def test_school_with_active_product_cannot_be_deleted(catalog, school, make_product):
    product = make_product(school=school["_id"])

    with pytest.raises(ValidationError) as exc:
        catalog.delete_school(school["_id"])
    assert "1 associated products" in str(exc.value)
    assert catalog.get_school(school["_id"])["is_active"] is True

    catalog.update_product(product["_id"], {"school": None})
    catalog.delete_school(school["_id"])

    with pytest.raises(NotFoundError):
        catalog.get_school(school["_id"])
    listed = {s["_id"]: s for s in catalog.list_schools_with_stats()}
    assert listed[school["_id"]]["is_active"] is False
    assert listed[school["_id"]]["lifecycle"] == "retired"


def test_retired_products_do_not_block_school_delete(catalog, school, make_product):
    product = make_product(school=school["_id"])
    catalog.delete_product(product["_id"])
    catalog.delete_school(school["_id"])
    assert catalog.list_schools() == []


def test_school_stats_count_active_products(catalog, school, make_product):
    make_product(school=school["_id"])
    retired = make_product(school=school["_id"])
    catalog.delete_product(retired["_id"])
    assert catalog.list_schools_with_stats()[0]["product_count"] == 1


def test_product_sku_is_uppercased(make_product):
    assert make_product(sku=" tie-red ")["sku"] == "TIE-RED"


def test_product_rejects_duplicate_stock_lines(make_product):
    with pytest.raises(SchemaValidationError):
        make_product(stock=[{"size": "M", "quantity": 1}, {"size": "M", "color": "Default", "quantity": 2}])


def test_product_rejects_school_and_institution(make_product, school):
    with pytest.raises(SchemaValidationError):
        make_product(school=school["_id"], institution="mens-wear")


def test_product_with_unknown_school_is_not_found(make_product):
    with pytest.raises(NotFoundError):
        make_product(school="64b7f0c2a1b2c3d4e5f60718")


def test_product_view_expands_school_and_discount(make_product, school):
    product = make_product(school=school["_id"], price=750.0, original_price=1000.0)
    assert product["school"]["slug"] == "st-marys-school"
    assert product["discount_percent"] == 25
    assert product["is_out_of_stock"] is False


def test_public_product_hides_quantities(catalog, make_product):
    product = make_product(stock=[{"size": "M", "quantity": 3}, {"size": "L", "quantity": 0}])
    public = catalog.get_public_product(product["_id"])
    assert "stock" not in public
    assert "low_stock_alert" not in public
    assert public["stock_status"] == [
        {"size": "M", "color": "Default", "in_stock": True},
        {"size": "L", "color": "Default", "in_stock": False},
    ]
    assert public["is_out_of_stock"] is False


def test_retired_product_is_hidden_from_storefront(catalog, make_product):
    product = make_product()
    catalog.delete_product(product["_id"])
    with pytest.raises(NotFoundError):
        catalog.get_public_product(product["_id"])
    items, total = catalog.list_products()
    assert items == [] and total == 0
    assert catalog.get_product(product["_id"])["is_active"] is False


def test_list_products_filters(catalog, school, make_product):
    make_product(name="Blue Blazer", category="outerwear", school=school["_id"], price=1500.0)
    make_product(name="Formal Shirt", institution="mens-wear", price=900.0)
    make_product(name="Sports Shoes", category="footwear", price=2500.0)

    items, total = catalog.list_products(search="blazer")
    assert total == 1 and items[0]["name"] == "Blue Blazer"

    items, _ = catalog.list_products(school=school["_id"])
    assert [i["name"] for i in items] == ["Blue Blazer"]

    items, _ = catalog.list_products(institution="mens-wear")
    assert [i["name"] for i in items] == ["Formal Shirt"]

    items, total = catalog.list_products(min_price=1000, max_price=2000)
    assert total == 1 and items[0]["name"] == "Blue Blazer"

    items, total = catalog.list_products(page=2, limit=2)
    assert total == 3 and len(items) == 1


def test_admin_listing_filters_on_stock_flags(catalog, make_product):
    make_product(name="Plenty", stock=[{"size": "M", "quantity": 40}])
    make_product(name="Low", stock=[{"size": "M", "quantity": 2}])
    make_product(name="Gone", stock=[{"size": "M", "quantity": 0}])

    low, _ = catalog.list_admin_products(low_stock=True)
    assert [p["name"] for p in low] == ["Low"]
    gone, _ = catalog.list_admin_products(out_of_stock=True)
    assert [p["name"] for p in gone] == ["Gone"]
    assert gone[0]["stock"][0]["quantity"] == 0


def test_update_product_replaces_stock_and_flags(catalog, make_product):
    product = make_product(stock=[{"size": "M", "quantity": 40}])
    updated = catalog.update_product(product["_id"], {"stock": [{"size": "S", "quantity": 1}], "price": 450.0})
    assert updated["price"] == 450.0
    assert updated["stock"] == [{"size": "S", "color": "Default", "quantity": 1}]
    assert updated["low_stock_alert"] is True


def test_malformed_school_filter_matches_nothing(catalog, make_product):
    make_product()
    assert catalog.list_products(school="not-an-id") == ([], 0)
