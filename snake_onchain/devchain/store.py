import os
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
from uuid import uuid4

from sqlalchemy import JSON, Column, Float, Integer, String, create_engine, func, select
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

Base = declarative_base()

SCORE_SUBMITTED = "ScoreSubmitted"


class Revert(ValueError):
    pass


class PlayerModel(Base):
    __tablename__ = "players"
    address = Column(String, primary_key=True)
    high_score = Column(Integer, nullable=False, default=0)
    submissions = Column(Integer, nullable=False, default=0)
    last_submitted_at = Column(Float, nullable=True)


class TransactionModel(Base):
    __tablename__ = "transactions"
    hash = Column(String, primary_key=True)
    sender = Column(String, nullable=False)
    function = Column(String, nullable=False)
    args = Column(JSON, nullable=False)
    status = Column(Integer, nullable=False)
    block_number = Column(Integer, nullable=False, index=True)
    revert_reason = Column(String, nullable=True)


class EventModel(Base):
    __tablename__ = "events"
    id = Column(Integer, primary_key=True, autoincrement=True)
    block_number = Column(Integer, nullable=False, index=True)
    name = Column(String, nullable=False)
    player = Column(String, nullable=False)
    score = Column(Integer, nullable=False)
    timestamp = Column(Integer, nullable=False)


class LedgerStore:
    """Score contract state for local play: one transaction per block, mined instantly."""

    def __init__(
        self,
        database_url: Optional[str] = None,
        cooldown: float = 0.0,
        leaderboard_size: int = 100,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.database_url = database_url or os.getenv("DEVCHAIN_DB_URL", "sqlite:///:memory:")
        self.cooldown = cooldown
        self.leaderboard_size = leaderboard_size
        self.clock = clock
        self.engine = self._create_engine(self.database_url)
        self.SessionLocal = sessionmaker(bind=self.engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True)
        Base.metadata.create_all(self.engine)

    @staticmethod
    def _normalize_address(address: str) -> str:
        return address.strip().lower()

    def _create_engine(self, url: str):
        kwargs = {"future": True}
        if url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if ":memory:" in url:
                kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)

    def _session(self):
        return self.SessionLocal()

    def _block_number(self, session) -> int:
        return session.execute(select(func.max(TransactionModel.block_number))).scalar_one() or 0

    def block_number(self) -> int:
        with self._session() as session:
            return self._block_number(session)

    def _validate(self, session, sender: str, function: str, args: Sequence[Any]) -> None:
        if function != "submitScore":
            raise Revert(f"unknown function {function}")
        if len(args) != 1:
            raise Revert("submitScore expects one argument")
        try:
            score = int(args[0])
        except (TypeError, ValueError) as exc:
            raise Revert("score must be an unsigned integer") from exc
        if score <= 0:
            raise Revert("Score must be greater than zero")
        player = session.get(PlayerModel, sender)
        if self.cooldown and player is not None and player.last_submitted_at is not None:
            if self.clock() - player.last_submitted_at < self.cooldown:
                raise Revert("Cooldown active: wait before submitting again")

    def estimate(self, sender: str, function: str, args: Sequence[Any]) -> None:
        with self._session() as session:
            self._validate(session, self._normalize_address(sender), function, args)

    def _execute(self, session, sender: str, args: Sequence[Any], block: int) -> None:
        score = int(args[0])
        now = self.clock()
        player = session.get(PlayerModel, sender)
        if player is None:
            player = PlayerModel(address=sender, high_score=0, submissions=0)
            session.add(player)
        player.high_score = max(player.high_score or 0, score)
        player.submissions = (player.submissions or 0) + 1
        player.last_submitted_at = now
        session.add(EventModel(block_number=block, name=SCORE_SUBMITTED, player=sender, score=score, timestamp=int(now)))

    def submit_transaction(self, sender: str, function: str, args: Sequence[Any]) -> str:
        sender = self._normalize_address(sender)
        tx_hash = "0x" + uuid4().hex + uuid4().hex
        with self._session() as session:
            block = self._block_number(session) + 1
            try:
                self._validate(session, sender, function, args)
            except Revert as exc:
                status, reason = 0, str(exc)
            else:
                self._execute(session, sender, args, block)
                status, reason = 1, None
            session.add(
                TransactionModel(
                    hash=tx_hash,
                    sender=sender,
                    function=function,
                    args=list(args),
                    status=status,
                    block_number=block,
                    revert_reason=reason,
                )
            )
            session.commit()
        return tx_hash

    def receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        with self._session() as session:
            record = session.get(TransactionModel, tx_hash)
            if record is None:
                return None
            receipt = {
                "transactionHash": record.hash,
                "status": hex(record.status),
                "blockNumber": hex(record.block_number),
            }
            if record.revert_reason:
                receipt["revertReason"] = record.revert_reason
            return receipt

    def leaderboard(self) -> Tuple[List[str], List[int]]:
        with self._session() as session:
            rows = session.execute(
                select(PlayerModel.address, PlayerModel.high_score)
                .order_by(PlayerModel.high_score.desc(), PlayerModel.address.asc())
                .limit(self.leaderboard_size)
            ).all()
            return [row.address for row in rows], [row.high_score for row in rows]

    def my_score(self, address: str) -> Tuple[int, int, int]:
        with self._session() as session:
            player = session.get(PlayerModel, self._normalize_address(address))
            if player is None:
                return 0, 0, 0
            return player.high_score, player.submissions, int(player.last_submitted_at or 0)

    def logs(self, name: str, from_block: int, to_block: Optional[int] = None) -> List[Dict[str, Any]]:
        with self._session() as session:
            query = select(EventModel).where(EventModel.name == name, EventModel.block_number >= from_block)
            if to_block is not None:
                query = query.where(EventModel.block_number <= to_block)
            rows = session.execute(query.order_by(EventModel.id.asc())).scalars().all()
            return [
                {
                    "event": row.name,
                    "blockNumber": hex(row.block_number),
                    "args": {"player": row.player, "score": row.score, "timestamp": row.timestamp},
                }
                for row in rows
            ]

    def reset(self) -> None:
        with self._session() as session:
            session.query(EventModel).delete()
            session.query(TransactionModel).delete()
            session.query(PlayerModel).delete()
            session.commit()
