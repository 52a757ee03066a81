"""
HOUSEKEEPING CORE - Inventory Catalog
=====================================
Read-side view of item definitions and room-type recipes.
"""

from enum import Enum
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel

from .schema import ItemCategory, ItemDefinition, RecipeLine, Room, RoomRecipe

# Categories that appear in the standard-inventory report
VARIANCE_CATEGORIES = (
    ItemCategory.LINEN,
    ItemCategory.ASSET,
    ItemCategory.MINIBAR,
    ItemCategory.AMENITY,
)


class VarianceStatus(str, Enum):
    SHORTAGE = "Shortage"
    SURPLUS = "Surplus"
    BALANCED = "Balanced"


class VarianceLine(BaseModel):
    """Required (all rooms x recipe) vs actual assets for one item"""
    item_id: str
    item_name: str
    unit: str
    category: ItemCategory
    required_standard: int
    current_total_assets: int
    variance: int
    status: VarianceStatus


class ResolvedRecipeLine(BaseModel):
    line: RecipeLine
    item: Optional[ItemDefinition] = None

    @property
    def item_id(self) -> str:
        return self.item.id if self.item else self.line.item_id

    @property
    def name(self) -> str:
        return self.item.name if self.item else self.line.item_id

    @property
    def category(self) -> Optional[ItemCategory]:
        return self.item.category if self.item else None


class InventoryCatalog:
    """Items by id or display name, and recipes by room type"""

    def __init__(self, items: Iterable[ItemDefinition], recipes: Dict[str, RoomRecipe]):
        self.items: List[ItemDefinition] = list(items)
        self.recipes = dict(recipes)
        self._by_id = {item.id: item for item in self.items}
        self._by_name = {item.name: item for item in self.items}

    def resolve(self, key: str) -> Optional[ItemDefinition]:
        """Look an item up by id, then by display name"""
        return self._by_id.get(key) or self._by_name.get(key)

    def recipe_for(self, room_type: Optional[str]) -> Optional[RoomRecipe]:
        if not room_type:
            return None
        return self.recipes.get(room_type)

    def recipe_lines(self, room_type: Optional[str]) -> List[ResolvedRecipeLine]:
        recipe = self.recipe_for(room_type)
        if not recipe:
            return []
        return [ResolvedRecipeLine(line=line, item=self.resolve(line.item_id)) for line in recipe.items]

    def required_quantities(self, rooms: Iterable[Room]) -> Dict[str, int]:
        """Total standard load-out per item id across the given rooms"""
        requirements: Dict[str, int] = {}
        for room in rooms:
            if not room.room_type:
                continue
            for resolved in self.recipe_lines(room.room_type):
                requirements[resolved.item_id] = requirements.get(resolved.item_id, 0) + resolved.line.quantity
        return requirements

    def variance(self, rooms: Iterable[Room]) -> List[VarianceLine]:
        """Standard-inventory report, shortages first"""
        requirements = self.required_quantities(rooms)
        results = []
        for item in self.items:
            if item.category not in VARIANCE_CATEGORIES:
                continue
            required = requirements.get(item.id, 0)
            actual = item.actual_assets
            diff = actual - required
            if diff == 0:
                status = VarianceStatus.BALANCED
            elif diff > 0:
                status = VarianceStatus.SURPLUS
            else:
                status = VarianceStatus.SHORTAGE
            results.append(VarianceLine(
                item_id=item.id,
                item_name=item.name,
                unit=item.unit,
                category=item.category,
                required_standard=required,
                current_total_assets=actual,
                variance=diff,
                status=status,
            ))
        return sorted(results, key=lambda x: x.variance)
