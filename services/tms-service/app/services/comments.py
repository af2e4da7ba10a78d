import logging
from typing import List, Optional, Tuple
from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

from app import crud, models, schemas
from app.services import emails

logger = logging.getLogger(__name__)

def _comment_query():
    return select(models.Comment).options(
        selectinload(models.Comment.author),
        selectinload(models.Comment.replies).selectinload(models.Comment.author),
    ).execution_options(populate_existing=True)

async def get_comment(db: AsyncSession, comment_id: int) -> Optional[models.Comment]:
    result = await db.execute(_comment_query().filter(models.Comment.id == comment_id))
    return result.scalars().first()

class CommentService:

    @staticmethod
    async def list_comments(
        db: AsyncSession,
        project_id: Optional[int] = None,
        task_id: Optional[int] = None
    ) -> List[models.Comment]:
        """Comentarios raíz (con respuestas) de un proyecto o de una tarea."""
        query = _comment_query().filter(models.Comment.parent_comment_id.is_(None))
        if project_id is not None:
            query = query.filter(models.Comment.project_id == project_id)
        else:
            query = query.filter(models.Comment.task_id == task_id)
        result = await db.execute(query.order_by(models.Comment.created_at.desc(), models.Comment.id.desc()))
        return list(result.scalars().all())

    @staticmethod
    async def create_comment(
        db: AsyncSession,
        data: schemas.CommentCreate,
        author_id: int,
        audience: List[str],
        target: str,
        project_id: Optional[int] = None,
        task_id: Optional[int] = None
    ) -> Tuple[models.Comment, Optional[schemas.EmailMessage]]:
        """
        Crea el comentario (de proyecto XOR de tarea) y prepara el aviso.

        `audience` son los miembros/asignados; se añaden los administradores y
        se excluye al autor. Las respuestas a una respuesta se cuelgan del
        comentario raíz para mantener un solo nivel de hilo.
        """
        if (project_id is None) == (task_id is None):
            raise HTTPException(status_code=400, detail="A comment must belong to either a project or a task")

        author = await crud.get_user_by_id(db, author_id)
        if not author:
            raise HTTPException(status_code=404, detail="User not found")

        parent_id = None
        if data.parent_comment_id is not None:
            parent = await db.get(models.Comment, data.parent_comment_id)
            if not parent or parent.project_id != project_id or parent.task_id != task_id:
                raise HTTPException(status_code=400, detail="Parent comment not found in this thread")
            parent_id = parent.parent_comment_id or parent.id

        db_comment = models.Comment(
            content=data.content,
            author_id=author.id,
            project_id=project_id,
            task_id=task_id,
            parent_comment_id=parent_id,
            attachments=data.attachments,
        )
        db.add(db_comment)
        await db.commit()
        logger.info(f"💬 Comentario #{db_comment.id} en {target}")

        recipients = emails.unique_emails(
            list(audience) + await crud.get_admin_emails(db),
            exclude=[author.email]
        )
        message = None
        if recipients:
            message = emails.comment_email(
                recipients, data.content, author.full_name, author.email, author.role, target
            )
        return await get_comment(db, db_comment.id), message

    @staticmethod
    async def delete_comment(db: AsyncSession, comment_id: int, user_id: int, is_admin: bool) -> None:
        comment = await get_comment(db, comment_id)
        if not comment:
            raise HTTPException(status_code=404, detail="Comment not found")
        if comment.author_id != user_id and not is_admin:
            raise HTTPException(status_code=403, detail="You can only delete your own comments")

        await db.delete(comment)
        await db.commit()
        logger.info(f"🗑️ Comentario eliminado: #{comment_id}")
