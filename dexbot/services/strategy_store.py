"""Strategy persistence: registry state survives restarts and deletions stay auditable."""

import logging
from datetime import datetime, timezone

from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from dexbot.models.strategy import StrategyRecord
from dexbot.utils.constants import StrategyStatus

logger = logging.getLogger(__name__)


class StrategyStore:
    def __init__(self, engine: Engine):
        self.engine = engine

    def save(self, record: StrategyRecord):
        """Insert or update a strategy row from a freshly serialized record."""
        with Session(self.engine) as session:
            row = session.get(StrategyRecord, record.id)
            if row is None:
                session.add(record)
            else:
                for key, value in record.model_dump(exclude={"id", "created_at"}).items():
                    setattr(row, key, value)
                row.updated_at = datetime.now(timezone.utc)
                session.add(row)
            session.commit()

    def get(self, strategy_id: str) -> StrategyRecord | None:
        with Session(self.engine) as session:
            return session.get(StrategyRecord, strategy_id)

    def load_restorable(self) -> list[StrategyRecord]:
        """Every strategy that has not been deleted, oldest first."""
        stmt = (
            select(StrategyRecord)
            .where(StrategyRecord.status != StrategyStatus.DELETED.value)
            .order_by(StrategyRecord.created_at)
        )
        with Session(self.engine) as session:
            return list(session.exec(stmt).all())

    def mark_deleted(self, strategy_id: str):
        with Session(self.engine) as session:
            row = session.get(StrategyRecord, strategy_id)
            if row is None:
                return
            row.status = StrategyStatus.DELETED.value
            row.is_active = False
            row.updated_at = datetime.now(timezone.utc)
            session.add(row)
            session.commit()
        logger.info(f"Strategy {strategy_id} marked deleted")
