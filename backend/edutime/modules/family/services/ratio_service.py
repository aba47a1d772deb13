import math

from sqlalchemy.orm import Session

from edutime.modules.auth.models import User
from edutime.modules.family.models import DEFAULT_GLOBAL_RATIO, Family


def ResolveStudyRatio(db: Session, child_id: str) -> float:
    family_id = db.query(User.FamilyId).filter(User.Id == child_id).scalar()
    if not family_id:
        return DEFAULT_GLOBAL_RATIO
    ratio = db.query(Family.GlobalRatio).filter(Family.Id == family_id).scalar()
    if ratio is None or ratio <= 0:
        return DEFAULT_GLOBAL_RATIO
    return float(ratio)


def ComputeEarnedSeconds(activity_type: str, duration_seconds: int, ratio: float) -> int:
    if activity_type != "study":
        return 0
    return math.floor(duration_seconds * ratio)
