from __future__ import annotations
import uuid
from typing import Any, Dict, List
import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import transaction
from ..models import AccountBatch, User, UserRole
from ..core.codes import create_qr_token_factory, create_unique_code_factory
from ..core.config import get_settings
from ..core.errors import InvalidInput
from ..core.labels import format_student_id
from ..schemas import StudentAccountPreview, StudentBatchRequest, StudentBatchResult

settings = get_settings()
logger = structlog.get_logger(__name__)

PREVIEW_SIZE = 5

def plan_batch_size(params: StudentBatchRequest) -> int:
    if params.grade_from > params.grade_to:
        raise InvalidInput("끝 학년은 시작 학년보다 크거나 같아야 합니다.")
    if params.class_count <= 0 or params.students_per_class <= 0:
        raise InvalidInput("반 수와 학생 수는 1 이상이어야 합니다.")
    total = (params.grade_to - params.grade_from + 1) * params.class_count * params.students_per_class
    if total > settings.student_batch_size_limit:
        raise InvalidInput(f"한 번에 최대 {settings.student_batch_size_limit}명의 학생만 생성할 수 있습니다.")
    return total

async def create_student_batch(
    db: AsyncSession, *, creator_id: uuid.UUID | None, params: StudentBatchRequest
) -> StudentBatchResult:
    """Provision grade x class x number student accounts in one transaction."""
    total = plan_batch_size(params)
    make_code = await create_unique_code_factory(db)
    make_qr = await create_qr_token_factory(db, User)

    planned: List[StudentAccountPreview] = []
    for grade in range(params.grade_from, params.grade_to + 1):
        for class_number in range(1, params.class_count + 1):
            for offset in range(params.students_per_class):
                student_number = params.start_number + offset
                student_id = format_student_id(grade, class_number, student_number)
                if student_id is None:
                    raise InvalidInput("학번을 계산하지 못했습니다. 학년/반/번호를 확인해주세요.")
                planned.append(StudentAccountPreview(
                    grade=grade, class_number=class_number, student_number=student_number,
                    student_id=student_id, code=make_code(),
                ))

    payload: Dict[str, Any] = {
        "version": 1,
        "kind": "student",
        "params": params.model_dump(by_alias=True),
        "total": total,
        "accounts": [p.model_dump(by_alias=True) for p in planned],
    }
    async with transaction(db):
        db.add_all([
            User(
                role=UserRole.STUDENT,
                code=p.code,
                nickname=p.student_id,
                grade=p.grade,
                class_number=p.class_number,
                student_number=p.student_number,
                qr_token=make_qr(),
            )
            for p in planned
        ])
        batch = AccountBatch(created_by=creator_id, kind="students", payload=payload)
        db.add(batch)
        await db.flush()
        batch_id = batch.id

    logger.info("accounts.student_batch_created", batch_id=str(batch_id), total=total)
    return StudentBatchResult(batch_id=batch_id, total=total, preview=planned[:PREVIEW_SIZE])
