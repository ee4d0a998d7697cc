from fastapi import Depends, HTTPException, Request, status

from pipeline_board.core.auth import get_current_user
from pipeline_board.schemas.user import UserContext
from pipeline_board.services.board import BoardRegistry, PipelineBoard


async def get_user(user: UserContext = Depends(get_current_user)) -> UserContext:
    return user


def get_registry(request: Request) -> BoardRegistry:
    registry = getattr(request.app.state, "boards", None)
    if registry is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Board service not ready")
    return registry


async def get_board(
    user: UserContext = Depends(get_user),
    registry: BoardRegistry = Depends(get_registry),
) -> PipelineBoard:
    return registry.get(user)
