from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from .. import schemas
from app.database import get_db
from app.services.comments import CommentService
from tms_common.security import RequirePermission, Permissions, UserPayload

router = APIRouter(prefix="/comments", tags=["Comments"])

@router.delete("/{comment_id}", response_model=schemas.MessageResponse)
async def delete_comment(
    comment_id: int,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.COMMENT_CREATE))
):
    """**Eliminar Comentario** (solo el autor o un administrador; borra también sus respuestas)."""
    await CommentService.delete_comment(db, comment_id, user.user_id, user.is_admin)
    return {"message": "Comment deleted successfully"}
