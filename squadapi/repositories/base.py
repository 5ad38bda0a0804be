from abc import ABC
from typing import TypeVar, Generic, Optional, List, Any, Type
from sqlalchemy.orm import Session
from pydantic import BaseModel

T = TypeVar("T")
SchemaType = TypeVar("SchemaType", bound=BaseModel)


class BaseRepository(Generic[T, SchemaType], ABC):
    """
    모든 리포지토리의 베이스 클래스 - Pydantic 응답 보장

    리포지토리는 flush 까지만 수행하고 commit/rollback 은 서비스의 트랜잭션 경계
    (database.session.transactional)가 담당합니다. 여러 조건부 쓰기를 하나의
    트랜잭션으로 묶기 위함입니다.
    """

    def __init__(
        self, model_class: Type[T], schema_class: Type[SchemaType], db: Session
    ):
        self.model_class = model_class
        self.schema_class = schema_class
        self.db = db

    def to_schema(self, model_instance: Any) -> Optional[SchemaType]:
        """SQLAlchemy 모델을 Pydantic 스키마로 변환"""
        if model_instance is None:
            return None
        return self.schema_class.model_validate(model_instance)

    def to_schemas(self, model_instances: List[Any]) -> List[SchemaType]:
        return [self.schema_class.model_validate(m) for m in model_instances]

    def _query(self):
        # 조건부 UPDATE(synchronize_session=False) 이후에도 최신 값을 읽도록 항상 덮어쓰기
        return self.db.query(self.model_class).populate_existing()

    def get_model(self, id: Any) -> Optional[T]:
        """ID로 모델 조회 (서비스 내부용)"""
        return self._query().filter(getattr(self.model_class, "id") == id).first()

    def get_by_id(self, id: Any) -> Optional[SchemaType]:
        """ID로 조회 - Pydantic 스키마 반환"""
        return self.to_schema(self.get_model(id))

    def create(self, commit: bool = False, **kwargs) -> T:
        """새 레코드 생성 - 기본은 flush 만 수행"""
        instance = self.model_class(**kwargs)
        self.db.add(instance)
        self.db.flush()
        if commit:
            self.db.commit()
        return instance
