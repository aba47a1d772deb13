from sqlalchemy.orm import Session

from edutime.modules.auth.deps import CallerContext
from edutime.modules.auth.models import PARENT_ROLE, User
from edutime.modules.family.models import FamilyChild
from edutime.modules.sync.errors import PermissionDenied, Unauthenticated


def _IsParentOfChild(db: Session, family_id: str, child_id: str) -> bool:
    link = (
        db.query(FamilyChild)
        .filter(FamilyChild.FamilyId == family_id, FamilyChild.ChildUserId == child_id)
        .first()
    )
    return link is not None


def AuthorizeChildSync(db: Session, caller: CallerContext | None, child_id: str) -> User:
    """Allow the child itself or a parent whose family lists the child."""
    if caller is None or not caller.Id:
        raise Unauthenticated("User must be authenticated")

    profile = db.query(User).filter(User.Id == caller.Id).first()
    if not profile:
        raise PermissionDenied("User profile not found")

    if caller.Id == child_id:
        return profile
    if profile.Role == PARENT_ROLE and profile.FamilyId and _IsParentOfChild(db, profile.FamilyId, child_id):
        return profile
    raise PermissionDenied("Not authorized to sync for this child")
