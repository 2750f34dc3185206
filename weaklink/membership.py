# backend/weaklink/membership.py
from typing import List

from .models.group import Group, GroupMember


def group_member_ids(group_id: int) -> List[int]:
    rows = (
        GroupMember.query.filter_by(group_id=group_id)
        .order_by(GroupMember.user_id.asc())
        .all()
    )
    return [m.user_id for m in rows]


def is_member(group_id: int, user_id: int) -> bool:
    return (
        GroupMember.query.filter_by(group_id=group_id, user_id=user_id).first()
        is not None
    )


def all_group_ids() -> List[int]:
    return [g.id for g in Group.query.order_by(Group.id.asc()).all()]
