from __future__ import annotations
import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import PointViolation, VisitViolation

logger = structlog.get_logger(__name__)

async def record_violation(db: AsyncSession, row: VisitViolation | PointViolation) -> None:
    """Commit a rejected-attempt row on its own; a failure here never masks the rejection."""
    try:
        db.add(row)
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        logger.warning("audit.violation_write_failed", table=row.__tablename__, exc_info=True)
