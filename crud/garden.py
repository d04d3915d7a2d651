"""
GardenRepository for database operations on gardens and their placements
"""

from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.utils.errors import NotFoundError, ValidationError
from database_models import Garden, PlacedPlant
from models.garden import Placement, validate_grid_size, validate_placements


class GardenRepository:
    """
    Repository class for Garden and PlacedPlant database operations.
    Owners are referenced by id only; nothing checks that the user row exists.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_garden(self, user_id: str, name: str, grid_size: int) -> Garden:
        if not user_id:
            raise ValidationError("userId required")
        if not name or not name.strip():
            raise ValidationError("Garden name required")
        garden = Garden(user_id=user_id, name=name.strip(), grid_size=validate_grid_size(grid_size))
        self.db.add(garden)
        await self.db.flush()
        await self.db.refresh(garden)
        return garden

    async def get_garden(self, garden_id: str) -> Garden:
        garden = await self.db.get(Garden, garden_id)
        if garden is None:
            raise NotFoundError("Garden not found")
        return garden

    async def list_gardens(self, user_id: str) -> List[Garden]:
        result = await self.db.execute(
            select(Garden).where(Garden.user_id == user_id).order_by(Garden.created_at)
        )
        return list(result.scalars().all())

    async def list_placements(self, garden_id: str) -> List[PlacedPlant]:
        result = await self.db.execute(
            select(PlacedPlant).where(PlacedPlant.garden_id == garden_id).order_by(PlacedPlant.y, PlacedPlant.x)
        )
        return list(result.scalars().all())

    async def replace_placements(
        self,
        garden_id: str,
        placements: Sequence[Placement],
        stages: Optional[dict] = None,
    ) -> List[PlacedPlant]:
        """
        Overwrite the garden's layout.

        Args:
            garden_id: Garden to update
            placements: New layout; cells must be unique and inside the grid
            stages: Optional map of (x, y) -> growth stage

        Returns:
            The stored PlacedPlant rows
        """
        garden = await self.get_garden(garden_id)
        validated = validate_placements(placements, garden.grid_size)
        stages = stages or {}

        await self.db.execute(delete(PlacedPlant).where(PlacedPlant.garden_id == garden_id))
        now = datetime.utcnow()
        rows = [
            PlacedPlant(
                garden_id=garden_id,
                plant_id=p.plant_id,
                x=p.x,
                y=p.y,
                stage=stages.get(p.cell),
                planted_at=now,
            )
            for p in validated
        ]
        self.db.add_all(rows)
        garden.updated_at = now
        await self.db.flush()
        return rows
