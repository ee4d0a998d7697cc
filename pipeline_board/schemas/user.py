from typing import Optional

from pydantic import BaseModel

from pipeline_board.core.roles import Role


class UserContext(BaseModel):
    user_id: int
    role: Optional[Role] = None
    full_name: Optional[str] = None
