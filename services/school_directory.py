from typing import Iterable, List, Optional

from pydantic import BaseModel
from sqlmodel import Session, select

from models.school import School
from utils.cache import TTLCache
from utils.geofence import Coordinates


# Detached Copy Of A School Row That Is Safe To Keep In The Cache
class SchoolGeofence(BaseModel):
    id: str
    name: str
    address: Optional[str] = None
    center_lat: float
    center_lng: float
    radius_meters: float
    is_active: bool = True

    @property
    def center(self) -> Coordinates:
        return Coordinates(latitude=self.center_lat, longitude=self.center_lng)

    @classmethod
    def from_school(cls, school: School) -> "SchoolGeofence":
        return cls(
            id=school.id,
            name=school.name,
            address=school.address,
            center_lat=school.center_lat,
            center_lng=school.center_lng,
            radius_meters=school.radius_meters,
            is_active=school.is_active,
        )


def get_school_geofence(
    session: Session, cache: TTLCache, school_id: str
) -> Optional[SchoolGeofence]:
    def load():
        school = session.get(School, school_id)
        return SchoolGeofence.from_school(school) if school else None

    return cache.get_or_load(f"school:{school_id}", load)


def list_school_geofences(
    session: Session, cache: TTLCache, school_ids: Iterable[str]
) -> List[SchoolGeofence]:
    """Active schools among school_ids, ordered by name."""
    wanted = sorted(set(school_ids))
    if not wanted:
        return []

    def load():
        rows = session.exec(
            select(School)
            .where(School.id.in_(wanted))
            .where(School.is_active == True)
            .order_by(School.name)
        ).all()
        return [SchoolGeofence.from_school(s) for s in rows]

    return cache.get_or_load(f"list:{','.join(wanted)}", load)


def forget_school(cache: TTLCache, school_id: str) -> None:
    cache.invalidate(f"school:{school_id}")
    cache.invalidate_prefix("list:")
