"""
HOUSEKEEPING CORE - Built-in Datasets
=====================================
Served by the gateway when the store is unreachable or a table is missing,
so the application stays usable for training and demonstration.
Recipes also seed the live recipe table: stored recipes override these.
"""

from typing import Dict, List

from .schema import (
    Facility, Room, RoomStatus, ItemDefinition, ItemCategory,
    RoomRecipe, RecipeLine,
)


def _item(id, name, price, cost, unit, stock, min_stock, category, total):
    return ItemDefinition(
        id=id, name=name, price=price, cost_price=cost, unit=unit,
        stock=stock, min_stock=min_stock, category=category, total_assets=total,
    )


FALLBACK_ITEMS: List[ItemDefinition] = [
    # Linen & assets, cycled through laundry
    _item("L_GA18", "Ga Trải 1m8", 200000, 150000, "Cái", 50, 10, ItemCategory.LINEN, 150),
    _item("L_BOC18", "Vỏ Bọc 1m8", 250000, 180000, "Cái", 50, 10, ItemCategory.LINEN, 150),
    _item("L_GA12", "Ga Trải 1m2", 150000, 100000, "Cái", 50, 10, ItemCategory.LINEN, 150),
    _item("L_BOC12", "Vỏ Bọc 1m2", 180000, 120000, "Cái", 50, 10, ItemCategory.LINEN, 150),
    _item("L_GOI", "Vỏ Gối", 50000, 30000, "Cái", 200, 20, ItemCategory.LINEN, 500),
    _item("L_AO", "Áo Tắm", 200000, 150000, "Cái", 100, 10, ItemCategory.LINEN, 300),

    # Amenities, free
    _item("A_BANCHAI", "Bàn Chải", 5000, 2000, "Cái", 500, 50, ItemCategory.AMENITY, 500),
    _item("A_DAOCAO", "Dao Cạo", 5000, 2000, "Cái", 500, 50, ItemCategory.AMENITY, 500),
    _item("A_LUOC", "Lược", 3000, 1000, "Cái", 500, 50, ItemCategory.AMENITY, 500),
    _item("A_CHUPTOC", "Chụp Tóc", 2000, 500, "Cái", 500, 50, ItemCategory.AMENITY, 500),
    _item("A_TUIGIAT", "Túi Giặt", 1000, 200, "Cái", 500, 50, ItemCategory.AMENITY, 500),
    _item("A_NUOCSUOI", "Nước Suối (Free)", 0, 3000, "Chai", 200, 24, ItemCategory.AMENITY, 200),

    # Minibar, charged
    _item("M_NUOC_S", "Nước Suối (Tính phí)", 10000, 3500, "Chai", 100, 24, ItemCategory.MINIBAR, 100),
    _item("M_BOHUC", "Bò Húc", 20000, 9500, "Lon", 48, 10, ItemCategory.MINIBAR, 48),
    _item("M_STING", "Sting Dâu", 15000, 8000, "Chai", 48, 10, ItemCategory.MINIBAR, 48),
    _item("M_COCA", "Coca Cola", 15000, 7500, "Lon", 48, 10, ItemCategory.MINIBAR, 48),
    _item("M_BIA", "Bia Tiger", 25000, 16000, "Lon", 48, 10, ItemCategory.MINIBAR, 48),
    _item("M_MILY", "Mì Ly", 15000, 8000, "Ly", 50, 10, ItemCategory.MINIBAR, 50),
    _item("M_SNACK", "Snack/Bim bim", 10000, 5000, "Gói", 50, 10, ItemCategory.MINIBAR, 50),

    # Services
    _item("SV_GIAT", "Giặt ủi khách", 40000, 15000, "Kg", 0, 0, ItemCategory.SERVICE, 0),
    _item("SV_DON", "Dọn phòng thêm", 50000, 20000, "Lần", 0, 0, ItemCategory.SERVICE, 0),
]


# Amenities shared by every recipe, scaled by guest count
def _amenities(guests: int, water: int) -> List[RecipeLine]:
    return [
        RecipeLine(item_id="A_BANCHAI", quantity=guests),
        RecipeLine(item_id="A_DAOCAO", quantity=1),
        RecipeLine(item_id="A_LUOC", quantity=1),
        RecipeLine(item_id="A_CHUPTOC", quantity=1),
        RecipeLine(item_id="A_TUIGIAT", quantity=1),
        RecipeLine(item_id="A_NUOCSUOI", quantity=water),
    ]


def _recipe(room_type: str, description: str, linen: Dict[str, int], guests: int, water: int) -> RoomRecipe:
    lines = [RecipeLine(item_id=item_id, quantity=qty) for item_id, qty in linen.items()]
    return RoomRecipe(room_type=room_type, description=description, items=lines + _amenities(guests, water))


_DOUBLE_1M8 = {"L_GA18": 2, "L_BOC18": 2, "L_GOI": 4, "L_AO": 2}

FALLBACK_RECIPES: Dict[str, RoomRecipe] = {
    recipe.room_type: recipe
    for recipe in [
        _recipe("1GM8", "1 Giường 1m8 (35m2)",
                {"L_GA18": 1, "L_BOC18": 1, "L_GOI": 2, "L_AO": 2}, guests=2, water=2),
        _recipe("2GM2", "2 Giường 1m2 (35m2)",
                {"L_GA12": 2, "L_BOC12": 2, "L_GOI": 2, "L_AO": 2}, guests=2, water=2),
        _recipe("GL GN", "Gđ nhỏ: 1m8 + 1m2 (36m2)",
                {"L_GA18": 1, "L_GA12": 1, "L_BOC18": 1, "L_BOC12": 1, "L_GOI": 3, "L_AO": 2},
                guests=2, water=3),
        _recipe("2GM8 + SOFA", "2 Giường 1m8 + Sofa (39m2)", _DOUBLE_1M8, guests=4, water=4),
        _recipe("2GM6", "2 Giường 1m6 (37m2)", _DOUBLE_1M8, guests=4, water=4),
        _recipe("2PN", "Căn hộ 2 Phòng Ngủ (55m2)", _DOUBLE_1M8, guests=4, water=4),
        _recipe("2GM6 + SOFA", "2 Giường 1m6 + Sofa (37m2)", _DOUBLE_1M8, guests=4, water=4),
    ]
}


FALLBACK_FACILITY_NAMES = [
    "Grand Hotel Saigon (Q.1)",
    "Ocean View Resort (Vũng Tàu)",
    "Mountain Retreat (Đà Lạt)",
    "Riverside Lodge (Thảo Điền)",
    "Airport Transit Hotel (Tân Bình)",
]

ROOMS_PER_FACILITY = 20


def create_fallback_facilities() -> List[Facility]:
    return [
        Facility(id=f"F{index + 1:03d}", name=name)
        for index, name in enumerate(FALLBACK_FACILITY_NAMES)
    ]


def create_fallback_rooms() -> List[Room]:
    """Deterministic room set: floor = facility number, every fourth room dirty"""
    rooms = []
    room_types = list(FALLBACK_RECIPES)

    for index, facility in enumerate(create_fallback_facilities()):
        floor = index + 1
        base_price = 400000 + index * 100000
        for number in range(1, ROOMS_PER_FACILITY + 1):
            code = f"{floor}{number:02d}"
            room_type = room_types[(index + number) % len(room_types)]
            rooms.append(Room(
                id=f"{facility.id}_{code}",
                facility_id=facility.id,
                facility_name=facility.name,
                code=code,
                status=RoomStatus.DIRTY if number % 4 == 0 else RoomStatus.CLEAN,
                room_type=room_type,
                price=base_price + (200000 if number % 5 == 0 else 0),
                area=39 if "SOFA" in room_type else 35,
            ))
    return rooms
