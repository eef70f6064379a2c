"""
store/sql.py - SQLAlchemy production store.

Every operation runs in one database transaction (session_scope). The
one-active-session-per-machine rule is a partial unique index on
production_sessions(machine_id) WHERE status = 'active'; a violation
surfaces as IntegrityError and is mapped to InvariantViolation.
"""

from __future__ import annotations
from contextlib import contextmanager
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterator, List, Optional, Tuple
import logging

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    create_engine,
    select,
    text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, relationship, sessionmaker
from sqlalchemy.pool import StaticPool

from .base import ProductionStore, accumulate
from ..core.enums import (
    MachineType,
    MaterialKind,
    MaterialRole,
    SessionKind,
    SessionStatus,
    ShiftCode,
    WarpYarnType,
)
from ..errors import ErrorCode, InvariantViolation, PartialWriteRisk, ValidationError
from ..inventory.models import BatchDeduction, InventoryBatch, MaterialDescriptor, plan_deduction
from ..sessions.models import Machine, MaterialBinding, ProductionSession, ShiftEntry
from ..specs.models import FabricSpec, StrapSpec

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


# ==================== Tables ====================

class FabricSpecRow(Base):
    __tablename__ = "fabric_specs"

    spec_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    code: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    width_cm: Mapped[float] = mapped_column(Float, nullable=False, index=True)
    density_gsm: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    warp_kg_per_m: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    weft_kg_per_m: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    warp_denier: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    warp_tape_width_cm: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    weft_denier: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    weft_tape_width_cm: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    recipe_polymer_kg_per_m: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    recipe_filler_kg_per_m: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    recipe_stabilizer_kg_per_m: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    recipe_dye_kg_per_m: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)


class StrapSpecRow(Base):
    __tablename__ = "strap_specs"

    spec_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    width_mm: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    weight_g_per_m: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    warp_kg_per_m: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    weft_kg_per_m: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    warp_yarn_type: Mapped[str] = mapped_column(String(10), nullable=False, default="PP")
    warp_denier: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    is_fully_purchased: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    mfn_kg_per_m: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    recipe_polymer_kg_per_m: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    recipe_filler_kg_per_m: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    recipe_stabilizer_kg_per_m: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    recipe_dye_kg_per_m: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)


class MachineRow(Base):
    __tablename__ = "machines"

    machine_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    machine_type: Mapped[str] = mapped_column(String(20), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_session_seq: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class InventoryBatchRow(Base):
    __tablename__ = "inventory_batches"

    batch_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    batch_number: Mapped[str] = mapped_column(String(100), nullable=False)
    material_name: Mapped[str] = mapped_column(String(200), nullable=False)
    kind: Mapped[str] = mapped_column(String(10), nullable=False, default="yarn")
    denier: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    color: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    quantity_kg: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class ProductionSessionRow(Base):
    __tablename__ = "production_sessions"
    __table_args__ = (
        Index(
            "uq_active_session_per_machine",
            "machine_id",
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
    )

    session_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    session_number: Mapped[str] = mapped_column(String(100), nullable=False)
    machine_id: Mapped[str] = mapped_column(ForeignKey("machines.machine_id"), nullable=False)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    spec_id: Mapped[int] = mapped_column(Integer, nullable=False)
    accumulated_length_m: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    accumulated_weight_kg: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    started_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    linear_density_g_per_m: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    bindings: Mapped[List["SessionBindingRow"]] = relationship(
        back_populates="session",
        order_by="SessionBindingRow.id",
        cascade="all, delete-orphan",
    )


class SessionBindingRow(Base):
    __tablename__ = "session_bindings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(ForeignKey("production_sessions.session_id"), nullable=False)
    role: Mapped[str] = mapped_column(String(10), nullable=False)
    batch_id: Mapped[str] = mapped_column(ForeignKey("inventory_batches.batch_id"), nullable=False)
    rate_kg_per_m: Mapped[float] = mapped_column(Float, nullable=False)
    kind: Mapped[str] = mapped_column(String(10), nullable=False, default="yarn")

    session: Mapped[ProductionSessionRow] = relationship(back_populates="bindings")


class ShiftEntryRow(Base):
    __tablename__ = "shift_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    entry_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    session_id: Mapped[str] = mapped_column(
        ForeignKey("production_sessions.session_id"), nullable=False, index=True
    )
    shift_date: Mapped[date] = mapped_column(Date, nullable=False)
    shift: Mapped[str] = mapped_column(String(10), nullable=False)
    operator_id: Mapped[str] = mapped_column(String(100), nullable=False)
    length_m: Mapped[float] = mapped_column(Float, nullable=False)
    weight_kg: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    usage_kg: Mapped[Dict[str, float]] = mapped_column(JSON, nullable=False, default=dict)
    calculated_weight_kg: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    is_final: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


# ==================== Row conversion ====================

_FABRIC_COLUMNS = [c.name for c in FabricSpecRow.__table__.columns]
_STRAP_COLUMNS = [c.name for c in StrapSpecRow.__table__.columns]


def _fabric_from_row(row: FabricSpecRow) -> FabricSpec:
    return FabricSpec(**{name: getattr(row, name) for name in _FABRIC_COLUMNS})


def _strap_from_row(row: StrapSpecRow) -> StrapSpec:
    data = {name: getattr(row, name) for name in _STRAP_COLUMNS}
    data["warp_yarn_type"] = WarpYarnType(data["warp_yarn_type"])
    return StrapSpec(**data)


def _machine_from_row(row: MachineRow) -> Machine:
    return Machine(
        machine_id=row.machine_id,
        code=row.code,
        name=row.name,
        machine_type=MachineType(row.machine_type),
        is_active=row.is_active,
    )


def _batch_from_row(row: InventoryBatchRow) -> InventoryBatch:
    return InventoryBatch(
        batch_id=row.batch_id,
        batch_number=row.batch_number,
        material=MaterialDescriptor(
            name=row.material_name,
            kind=MaterialKind(row.kind),
            denier=row.denier,
            color=row.color,
        ),
        quantity_kg=row.quantity_kg,
        updated_at=row.updated_at,
    )


def _session_from_row(row: ProductionSessionRow) -> ProductionSession:
    return ProductionSession(
        session_id=row.session_id,
        session_number=row.session_number,
        machine_id=row.machine_id,
        kind=SessionKind(row.kind),
        spec_id=row.spec_id,
        bindings=[
            MaterialBinding(
                role=MaterialRole(b.role),
                batch_id=b.batch_id,
                rate_kg_per_m=b.rate_kg_per_m,
                kind=MaterialKind(b.kind),
            )
            for b in row.bindings
        ],
        accumulated_length_m=row.accumulated_length_m,
        accumulated_weight_kg=row.accumulated_weight_kg,
        status=SessionStatus(row.status),
        started_at=row.started_at,
        completed_at=row.completed_at,
        started_by=row.started_by,
        linear_density_g_per_m=row.linear_density_g_per_m,
    )


def _entry_from_row(row: ShiftEntryRow) -> ShiftEntry:
    return ShiftEntry(
        entry_id=row.entry_id,
        session_id=row.session_id,
        shift_date=row.shift_date,
        shift=ShiftCode(row.shift),
        operator_id=row.operator_id,
        length_m=row.length_m,
        weight_kg=row.weight_kg,
        usage_kg=dict(row.usage_kg or {}),
        calculated_weight_kg=row.calculated_weight_kg,
        notes=row.notes,
        is_final=row.is_final,
        created_at=row.created_at,
    )


# ==================== Store ====================

def create_store_engine(database_url: str, echo: bool = False) -> Engine:
    """Engine for a database URL; in-memory SQLite shares one connection across threads."""
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(database_url, echo=echo)


class SqlProductionStore(ProductionStore):
    """Production store on a relational database."""

    def __init__(self, engine: Engine, create_schema: bool = True):
        self.engine = engine
        self._session_factory = sessionmaker(bind=engine, expire_on_commit=False)
        if create_schema:
            Base.metadata.create_all(engine)

    @classmethod
    def from_url(cls, database_url: str, echo: bool = False) -> "SqlProductionStore":
        return cls(create_store_engine(database_url, echo=echo))

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """Transactional scope: commit on success, rollback on any error."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # ==================== Seeding ====================

    def add_fabric_spec(self, spec: FabricSpec) -> None:
        with self.session_scope() as db:
            db.merge(FabricSpecRow(**{name: getattr(spec, name) for name in _FABRIC_COLUMNS}))

    def add_strap_spec(self, spec: StrapSpec) -> None:
        data = {name: getattr(spec, name) for name in _STRAP_COLUMNS}
        data["warp_yarn_type"] = spec.warp_yarn_type.value
        with self.session_scope() as db:
            db.merge(StrapSpecRow(**data))

    def add_machine(self, machine: Machine) -> None:
        with self.session_scope() as db:
            existing = db.get(MachineRow, machine.machine_id)
            if existing is None:
                db.add(MachineRow(
                    machine_id=machine.machine_id,
                    code=machine.code,
                    name=machine.name,
                    machine_type=machine.machine_type.value,
                    is_active=machine.is_active,
                    last_session_seq=0,
                ))
            else:
                existing.code = machine.code
                existing.name = machine.name
                existing.machine_type = machine.machine_type.value
                existing.is_active = machine.is_active

    def add_batch(self, batch: InventoryBatch) -> None:
        with self.session_scope() as db:
            db.merge(InventoryBatchRow(
                batch_id=batch.batch_id,
                batch_number=batch.batch_number,
                material_name=batch.material.name,
                kind=batch.material.kind.value,
                denier=batch.material.denier,
                color=batch.material.color,
                quantity_kg=batch.quantity_kg,
                updated_at=batch.updated_at,
            ))

    def seed(self, data: Dict[str, Any]) -> None:
        """Load reference data and opening balances (same layout as the memory seed file)."""
        for d in data.get("fabric_specs", []):
            self.add_fabric_spec(FabricSpec.from_dict(d))
        for d in data.get("strap_specs", []):
            self.add_strap_spec(StrapSpec.from_dict(d))
        for d in data.get("machines", []):
            self.add_machine(Machine.from_dict(d))
        for d in data.get("batches", []):
            self.add_batch(InventoryBatch.from_dict(d))

    # ==================== Specs ====================

    def list_fabric_specs(self) -> List[FabricSpec]:
        with self.session_scope() as db:
            rows = db.scalars(select(FabricSpecRow).order_by(FabricSpecRow.width_cm, FabricSpecRow.name))
            return [_fabric_from_row(r) for r in rows]

    def get_fabric_specs_by_width(self, width_cm: float) -> List[FabricSpec]:
        with self.session_scope() as db:
            rows = db.scalars(
                select(FabricSpecRow)
                .where(FabricSpecRow.width_cm == float(width_cm))
                .order_by(FabricSpecRow.name)
            )
            return [_fabric_from_row(r) for r in rows]

    def get_fabric_spec(self, spec_id: int) -> Optional[FabricSpec]:
        with self.session_scope() as db:
            row = db.get(FabricSpecRow, spec_id)
            return _fabric_from_row(row) if row else None

    def get_strap_specs(self) -> List[StrapSpec]:
        with self.session_scope() as db:
            rows = db.scalars(select(StrapSpecRow).order_by(StrapSpecRow.name))
            return [_strap_from_row(r) for r in rows]

    def get_strap_spec(self, spec_id: int) -> Optional[StrapSpec]:
        with self.session_scope() as db:
            row = db.get(StrapSpecRow, spec_id)
            return _strap_from_row(row) if row else None

    # ==================== Machines ====================

    def get_machine(self, machine_id: str) -> Optional[Machine]:
        with self.session_scope() as db:
            row = db.get(MachineRow, machine_id)
            return _machine_from_row(row) if row else None

    def list_machines(self) -> List[Machine]:
        with self.session_scope() as db:
            return [_machine_from_row(r) for r in db.scalars(select(MachineRow).order_by(MachineRow.code))]

    # ==================== Inventory ====================

    def get_batch(self, batch_id: str) -> Optional[InventoryBatch]:
        with self.session_scope() as db:
            row = db.get(InventoryBatchRow, batch_id)
            return _batch_from_row(row) if row else None

    def decrement_batch(
        self,
        batch_id: str,
        amount_kg: float,
        session_id: Optional[str] = None,
    ) -> BatchDeduction:
        with self.session_scope() as db:
            return self._apply_deduction(db, batch_id, amount_kg, session_id)

    def _apply_deduction(
        self,
        db: Session,
        batch_id: str,
        amount_kg: float,
        session_id: Optional[str],
    ) -> BatchDeduction:
        row = db.get(InventoryBatchRow, batch_id, with_for_update=True)
        if row is None:
            raise ValidationError(f"Unknown batch {batch_id}", field="batch_id", session_id=session_id)
        deduction = plan_deduction(batch_id, row.quantity_kg, amount_kg, session_id)
        row.quantity_kg = deduction.balance_after_kg
        row.updated_at = _utcnow()
        return deduction

    # ==================== Sessions ====================

    def _active_row(self, db: Session, machine_id: str) -> Optional[ProductionSessionRow]:
        return db.scalars(
            select(ProductionSessionRow).where(
                ProductionSessionRow.machine_id == machine_id,
                ProductionSessionRow.status == SessionStatus.ACTIVE.value,
            )
        ).first()

    def find_active_session(self, machine_id: str) -> Optional[ProductionSession]:
        with self.session_scope() as db:
            row = self._active_row(db, machine_id)
            return _session_from_row(row) if row else None

    def _reserve_sequence(self, db: Session, machine_id: str) -> int:
        machine = db.get(MachineRow, machine_id, with_for_update=True)
        if machine is None:
            raise ValidationError(f"Unknown machine {machine_id}", field="machine_id", machine_id=machine_id)
        machine.last_session_seq += 1
        return machine.last_session_seq

    def create_session(
        self,
        session: ProductionSession,
        number_prefix: Optional[str] = None,
    ) -> ProductionSession:
        try:
            with self.session_scope() as db:
                existing = self._active_row(db, session.machine_id)
                if existing is not None:
                    raise InvariantViolation(
                        f"Machine {session.machine_id} already has active session {existing.session_number}",
                        machine_id=session.machine_id,
                        session_id=existing.session_id,
                        code=ErrorCode.INV_ACTIVE_SESSION_EXISTS,
                    )
                session_number = session.session_number
                if number_prefix is not None:
                    seq = self._reserve_sequence(db, session.machine_id)
                    session_number = f"{number_prefix}-{seq:03d}"
                row = ProductionSessionRow(
                    session_id=session.session_id,
                    session_number=session_number,
                    machine_id=session.machine_id,
                    kind=session.kind.value,
                    spec_id=session.spec_id,
                    accumulated_length_m=session.accumulated_length_m,
                    accumulated_weight_kg=session.accumulated_weight_kg,
                    status=session.status.value,
                    started_at=session.started_at,
                    started_by=session.started_by,
                    linear_density_g_per_m=session.linear_density_g_per_m,
                    bindings=[
                        SessionBindingRow(
                            role=b.role.value,
                            batch_id=b.batch_id,
                            rate_kg_per_m=b.rate_kg_per_m,
                            kind=b.kind.value,
                        )
                        for b in session.bindings
                    ],
                )
                db.add(row)
                db.flush()
                return _session_from_row(row)
        except IntegrityError as e:
            raise InvariantViolation(
                f"Machine {session.machine_id} already has an active session",
                machine_id=session.machine_id,
                code=ErrorCode.INV_ACTIVE_SESSION_EXISTS,
            ) from e

    def get_session(self, session_id: str) -> Optional[ProductionSession]:
        with self.session_scope() as db:
            row = db.get(ProductionSessionRow, session_id)
            return _session_from_row(row) if row else None

    def list_shift_entries(self, session_id: str) -> List[ShiftEntry]:
        with self.session_scope() as db:
            rows = db.scalars(
                select(ShiftEntryRow)
                .where(ShiftEntryRow.session_id == session_id)
                .order_by(ShiftEntryRow.id)
            )
            return [_entry_from_row(r) for r in rows]

    def append_shift_and_maybe_finalize(
        self,
        session_id: str,
        entry: ShiftEntry,
    ) -> Tuple[ProductionSession, List[BatchDeduction]]:
        try:
            return self._append_in_transaction(session_id, entry)
        except SQLAlchemyError as e:
            raise PartialWriteRisk(
                f"Shift write for session {session_id} was not committed: {e}",
                session_id=session_id,
            ) from e

    def _append_in_transaction(
        self,
        session_id: str,
        entry: ShiftEntry,
    ) -> Tuple[ProductionSession, List[BatchDeduction]]:
        with self.session_scope() as db:
            row = db.get(ProductionSessionRow, session_id, with_for_update=True)
            if row is None:
                raise ValidationError(f"Unknown session {session_id}", field="session_id")
            if row.status != SessionStatus.ACTIVE.value:
                raise InvariantViolation(
                    f"Session {row.session_number} is already completed",
                    machine_id=row.machine_id,
                    session_id=session_id,
                    code=ErrorCode.INV_SESSION_COMPLETED,
                )

            try:
                deductions = self._append(db, row, entry)
                db.flush()
            except Exception as e:
                logger.error(f"Shift write for session {session_id} failed: {e}")
                raise PartialWriteRisk(
                    f"Shift write for session {session_id} failed and was rolled back: {e}",
                    session_id=session_id,
                    machine_id=row.machine_id,
                ) from e

            return _session_from_row(row), deductions

    def _append(self, db: Session, row: ProductionSessionRow, entry: ShiftEntry) -> List[BatchDeduction]:
        db.add(ShiftEntryRow(
            entry_id=entry.entry_id,
            session_id=row.session_id,
            shift_date=entry.shift_date,
            shift=entry.shift.value,
            operator_id=entry.operator_id,
            length_m=entry.length_m,
            weight_kg=entry.weight_kg,
            usage_kg=dict(entry.usage_kg),
            calculated_weight_kg=entry.calculated_weight_kg,
            notes=entry.notes,
            is_final=entry.is_final,
            created_at=entry.created_at,
        ))
        row.accumulated_length_m = accumulate(row.accumulated_length_m, entry.length_m)
        row.accumulated_weight_kg = accumulate(row.accumulated_weight_kg, entry.weight_kg)

        deductions: List[BatchDeduction] = []
        if entry.is_final:
            for b in row.bindings:
                binding = MaterialBinding(
                    role=MaterialRole(b.role),
                    batch_id=b.batch_id,
                    rate_kg_per_m=b.rate_kg_per_m,
                    kind=MaterialKind(b.kind),
                )
                amount = binding.consumption_kg(row.accumulated_length_m)
                deductions.append(self._apply_deduction(db, b.batch_id, amount, row.session_id))
            row.status = SessionStatus.COMPLETED.value
            row.completed_at = _utcnow()
        return deductions
