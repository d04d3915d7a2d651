"""
Garden Router - garden layouts and share links
"""

from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from backend.utils.responses import success_response
from config.settings import settings
from crud.garden import GardenRepository
from database import get_db
from database_models import Garden, PlacedPlant
from models.garden import DEFAULT_GARDEN_NAME, DEFAULT_GRID_SIZE, GardenState, Placement

garden_router = APIRouter(prefix="/api", tags=["gardens"])


class CreateGardenRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId")
    name: str = DEFAULT_GARDEN_NAME
    grid_size: int = Field(default=DEFAULT_GRID_SIZE, alias="gridSize")


class PlacementIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    plant_id: str = Field(alias="plantId")
    x: int
    y: int
    stage: Optional[Literal["seedling", "growing", "ready"]] = None


class ReplacePlantsRequest(BaseModel):
    plants: List[PlacementIn]


def _plant_payload(plant: PlacedPlant) -> dict:
    return {
        "id": plant.id,
        "plantId": plant.plant_id,
        "x": plant.x,
        "y": plant.y,
        "stage": plant.stage,
        "plantedAt": plant.planted_at,
    }


def _garden_payload(garden: Garden, plants: Optional[List[PlacedPlant]] = None) -> dict:
    payload = {
        "id": garden.id,
        "userId": garden.user_id,
        "name": garden.name,
        "gridSize": garden.grid_size,
        "createdAt": garden.created_at,
        "updatedAt": garden.updated_at,
    }
    if plants is not None:
        payload["plants"] = [_plant_payload(p) for p in plants]
    return payload


@garden_router.post("/gardens", status_code=201)
async def create_garden(request: CreateGardenRequest, db: AsyncSession = Depends(get_db)):
    garden = await GardenRepository(db).create_garden(request.user_id, request.name, request.grid_size)
    return success_response(_garden_payload(garden, []), status=201)


@garden_router.get("/gardens")
async def list_gardens(user_id: str = Query(alias="userId"), db: AsyncSession = Depends(get_db)):
    gardens = await GardenRepository(db).list_gardens(user_id)
    return success_response({"gardens": [_garden_payload(g) for g in gardens]})


@garden_router.get("/gardens/{garden_id}")
async def get_garden(garden_id: str, db: AsyncSession = Depends(get_db)):
    repo = GardenRepository(db)
    garden = await repo.get_garden(garden_id)
    return success_response(_garden_payload(garden, await repo.list_placements(garden_id)))


@garden_router.put("/gardens/{garden_id}/plants")
async def replace_plants(garden_id: str, request: ReplacePlantsRequest, db: AsyncSession = Depends(get_db)):
    """Overwrite the layout. Duplicate or out-of-grid cells are rejected with 400."""
    repo = GardenRepository(db)
    placements = [Placement(p.plant_id, p.x, p.y) for p in request.plants]
    stages = {(p.x, p.y): p.stage for p in request.plants if p.stage}
    plants = await repo.replace_placements(garden_id, placements, stages)
    garden = await repo.get_garden(garden_id)
    return success_response(_garden_payload(garden, plants))


@garden_router.get("/gardens/{garden_id}/share")
async def share_garden(garden_id: str, db: AsyncSession = Depends(get_db)):
    repo = GardenRepository(db)
    garden = await repo.get_garden(garden_id)
    plants = await repo.list_placements(garden_id)
    state = GardenState(name=garden.name, grid_size=garden.grid_size)
    state.placements = [Placement(p.plant_id, p.x, p.y) for p in plants]
    return success_response({"url": state.get_share_url(settings.base_url)})


@garden_router.get("/share")
async def open_share_link(garden: Optional[str] = Query(default=None)):
    """Decode a share token back into a layout."""
    state = GardenState.decode_share_token(garden)
    return success_response({
        "name": state.name,
        "gridSize": state.grid_size,
        "plants": [{"plantId": p.plant_id, "x": p.x, "y": p.y} for p in state.placements],
    })
