from __future__ import annotations

import logging
from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError

from app import db
from app.exceptions import ConstraintViolation

logger = logging.getLogger(__name__)

CONSTRAINT_VIOLATION_MESSAGE = 'database constraint violated'


@contextmanager
def atomic():
    """
    여러 행을 쓰는 작업을 하나의 트랜잭션으로 묶는다.

    - 블록이 정상 종료되면 commit
    - 어떤 예외든 rollback 후 다시 발생 (IntegrityError는 ConstraintViolation으로 변환)
    - DB 드라이버 메시지는 로그에만 남기고 호출자에게는 일반 메시지만 전달
    """
    try:
        yield db.session
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        logger.warning(f'제약조건 위반으로 롤백: {e.orig}')
        raise ConstraintViolation(CONSTRAINT_VIOLATION_MESSAGE) from e
    except Exception:
        db.session.rollback()
        raise
