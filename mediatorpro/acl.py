from __future__ import annotations

from typing import Optional

from .models import ObjectPermission, ObjectRecord, Visibility


def is_allowed(
    record: Optional[ObjectRecord],
    user_id: Optional[str],
    permission: ObjectPermission = ObjectPermission.READ,
) -> bool:
    """Decide access from the sidecar alone; missing metadata always denies."""
    if record is None:
        return False

    # Writes (ACL changes, deletes) belong to the owner, public or not.
    if permission == ObjectPermission.WRITE:
        return user_id is not None and record.owner is not None and user_id == record.owner

    if record.visibility == Visibility.PUBLIC:
        return True

    if not user_id:
        return False

    if record.owner == user_id:
        return True

    return user_id in record.allowed_users
