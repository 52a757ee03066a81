from conftest import make_room

from housekeeping.catalog import InventoryCatalog, VarianceStatus
from housekeeping.fallback import FALLBACK_ITEMS, FALLBACK_RECIPES
from housekeeping.schema import ItemCategory, ItemDefinition, RecipeLine, RoomRecipe


def test_resolve_by_id_then_name():
    catalog = InventoryCatalog(FALLBACK_ITEMS, FALLBACK_RECIPES)
    assert catalog.resolve("L_GA18").name == "Ga Trải 1m8"
    assert catalog.resolve("Ga Trải 1m8").id == "L_GA18"
    assert catalog.resolve("nothing") is None


def test_recipe_lines_accept_display_names():
    items = [ItemDefinition(id="L_1", name="Khăn", category=ItemCategory.LINEN)]
    recipes = {"STD": RoomRecipe(room_type="STD", items=[RecipeLine(item_id="Khăn", quantity=3)])}
    lines = InventoryCatalog(items, recipes).recipe_lines("STD")

    assert lines[0].item_id == "L_1"
    assert lines[0].category == ItemCategory.LINEN


def test_required_quantities_skip_untyped_rooms():
    catalog = InventoryCatalog(FALLBACK_ITEMS, FALLBACK_RECIPES)
    rooms = [make_room("101"), make_room("102"), make_room("103", room_type=None)]

    required = catalog.required_quantities(rooms)
    assert required["L_GOI"] == 4
    assert required["A_BANCHAI"] == 4


def test_variance_sorted_shortages_first():
    items = [
        ItemDefinition(id="L_A", name="A", category=ItemCategory.LINEN, stock=1),
        ItemDefinition(id="L_B", name="B", category=ItemCategory.LINEN, stock=10),
        ItemDefinition(id="M_C", name="C", category=ItemCategory.MINIBAR, stock=2),
        ItemDefinition(id="SV_D", name="D", category=ItemCategory.SERVICE, stock=0),
    ]
    recipes = {"STD": RoomRecipe(room_type="STD", items=[
        RecipeLine(item_id="L_A", quantity=2),
        RecipeLine(item_id="L_B", quantity=1),
        RecipeLine(item_id="M_C", quantity=1),
    ])}
    rooms = [make_room("101", room_type="STD"), make_room("102", room_type="STD")]

    report = InventoryCatalog(items, recipes).variance(rooms)

    assert [(line.item_id, line.variance, line.status) for line in report] == [
        ("L_A", -3, VarianceStatus.SHORTAGE),
        ("M_C", 0, VarianceStatus.BALANCED),
        ("L_B", 8, VarianceStatus.SURPLUS),
    ]


def test_actual_assets_prefer_fixed_total():
    item = ItemDefinition(id="L_X", name="X", stock=3, in_circulation=4, laundry_stock=1, vendor_stock=2)
    assert item.actual_assets == 10
    assert item.model_copy(update={"total_assets": 40}).actual_assets == 40
