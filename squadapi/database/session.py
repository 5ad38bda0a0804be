import logging
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from squadapi.core.exceptions import InfrastructureError
from squadapi.database.connection import SessionLocal

logger = logging.getLogger(__name__)


def get_db():
    db = SessionLocal()
    try:
        yield db
    except Exception:
        if db.in_transaction():
            db.rollback()
        raise
    finally:
        db.close()


@contextmanager
def get_db_context():
    """컨텍스트 매니저를 사용한 데이터베이스 세션 관리 (배치/스크립트용)"""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@contextmanager
def transactional(db: Session, operation: str, commit: bool = True):
    """
    서비스 연산 하나를 하나의 DB 트랜잭션으로 실행

    - commit=True: 성공 시 commit, 실패 시 rollback (최상위 연산)
    - commit=False: flush 만 수행하고 바깥 트랜잭션에 합류 (다른 연산의 일부)
    - SQLAlchemyError 는 InfrastructureError(503)로 변환
    """
    try:
        yield db
        if commit:
            db.commit()
        else:
            db.flush()
    except SQLAlchemyError as e:
        if commit:
            db.rollback()
        logger.error(f"[{operation}] database error: {str(e)}")
        raise InfrastructureError(details={"operation": operation}) from e
    except Exception:
        if commit:
            db.rollback()
        raise
