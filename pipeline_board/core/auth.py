from __future__ import annotations

from typing import Iterable

from fastapi import Depends, HTTPException, Request, status

from pipeline_board.core.roles import Role, has_required_role, normalize_role
from pipeline_board.schemas.user import UserContext


async def get_current_user(request: Request) -> UserContext:
    # Dev-mode user context:
    # - X-User-Id: 17
    # - X-User-Role: Senior_Recruiter
    # - X-User-Name: Jane Doe (optional)
    raw_id = (request.headers.get("x-user-id") or "").strip()
    if not raw_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-User-Id header")
    try:
        user_id = int(raw_id)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid X-User-Id header")

    raw_role = (request.headers.get("x-user-role") or "").strip()
    if not raw_role:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-User-Role header")
    role = normalize_role(raw_role)
    if role is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"Unknown role: {raw_role}")

    full_name = (request.headers.get("x-user-name") or "").strip() or None
    return UserContext(user_id=user_id, role=role, full_name=full_name)


def require_roles(required: Iterable[Role]):
    async def dependency(user: UserContext = Depends(get_current_user)) -> UserContext:
        if not has_required_role(user.role, required):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return user

    return dependency
