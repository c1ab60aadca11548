from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, field_validator
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..auth import require_admin
from ..database import get_db
from ..models import CoveredArea, User
from ..services.coverage_service import GEOJSON_SOURCES, check_coverage, get_region_geojson

router = APIRouter(prefix="/coverage", tags=["Coverage"])


class CoveredAreaCreate(BaseModel):
    name: str
    region: str = "london"
    isActive: bool = True

    @field_validator("name")
    @classmethod
    def check_name(cls, v):
        if not v.strip():
            raise ValueError("Area name is required")
        return v.strip()

    @field_validator("region")
    @classmethod
    def check_region(cls, v):
        if v not in GEOJSON_SOURCES:
            raise ValueError(f"Region must be one of {', '.join(GEOJSON_SOURCES)}")
        return v


class CoveredAreaUpdate(BaseModel):
    name: Optional[str] = None
    region: Optional[str] = None
    isActive: Optional[bool] = None

    @field_validator("region")
    @classmethod
    def check_region(cls, v):
        if v is not None and v not in GEOJSON_SOURCES:
            raise ValueError(f"Region must be one of {', '.join(GEOJSON_SOURCES)}")
        return v


class CoveredAreaResponse(BaseModel):
    id: int
    name: str
    region: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


def _name_taken(db: Session, name: str, exclude_id: Optional[int] = None) -> bool:
    query = db.query(CoveredArea).filter(func.lower(CoveredArea.name) == name.strip().lower())
    if exclude_id:
        query = query.filter(CoveredArea.id != exclude_id)
    return query.first() is not None


@router.get("/areas", response_model=list[CoveredAreaResponse])
async def list_covered_areas(
    region: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    """Public list of active service areas"""
    query = db.query(CoveredArea).filter(CoveredArea.is_active.is_(True))
    if region:
        query = query.filter(CoveredArea.region == region)
    return query.order_by(CoveredArea.name.asc()).all()


@router.post("/areas", response_model=CoveredAreaResponse)
async def create_covered_area(
    data: CoveredAreaCreate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    if _name_taken(db, data.name):
        raise HTTPException(status_code=400, detail=f"{data.name} is already listed")
    area = CoveredArea(name=data.name, region=data.region, is_active=data.isActive)
    db.add(area)
    db.commit()
    db.refresh(area)
    return area


@router.patch("/areas/{area_id}", response_model=CoveredAreaResponse)
async def update_covered_area(
    area_id: int,
    data: CoveredAreaUpdate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    area = db.query(CoveredArea).filter(CoveredArea.id == area_id).first()
    if not area:
        raise HTTPException(status_code=404, detail="Area not found")

    if data.name:
        if _name_taken(db, data.name, exclude_id=area.id):
            raise HTTPException(status_code=400, detail=f"{data.name} is already listed")
        area.name = data.name.strip()
    if data.region:
        area.region = data.region
    if data.isActive is not None:
        area.is_active = data.isActive
    db.commit()
    db.refresh(area)
    return area


@router.delete("/areas/{area_id}")
async def delete_covered_area(
    area_id: int,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    area = db.query(CoveredArea).filter(CoveredArea.id == area_id).first()
    if not area:
        raise HTTPException(status_code=404, detail="Area not found")
    db.delete(area)
    db.commit()
    return {"message": f"{area.name} removed from coverage"}


@router.get("/geojson/{region}")
async def get_geojson(region: str):
    return await get_region_geojson(region)


@router.get("/check")
async def check_area_coverage(
    postcode: Optional[str] = Query(None),
    area: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    return await check_coverage(db, postcode=postcode, area=area)
