"""
Database models and SQLAlchemy setup for the Cost Control Engine.
All monetary values stored as integer cents to avoid float drift.
"""
from datetime import datetime

from sqlalchemy import (
    create_engine, Column, Integer, String, Float,
    DateTime, Date, Text, ForeignKey, UniqueConstraint
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker, relationship

DEFAULT_DATABASE_URL = "sqlite:///./cost_engine.db"
Base = declarative_base()


def get_engine(database_url: str = DEFAULT_DATABASE_URL) -> Engine:
    """Create an engine; SQLite connections may be shared across threads."""
    connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
    return create_engine(database_url, connect_args=connect_args)


def get_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(engine: Engine) -> None:
    """Create all tables."""
    Base.metadata.create_all(bind=engine)


class ProjectRecord(Base):
    """Project view consumed by the engine (owned by the project system)."""
    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(String(64), unique=True, nullable=False, index=True)
    name = Column(String(200), nullable=False)
    status = Column(String(20), nullable=False, default="planning")
    project_type = Column(String(50), nullable=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    percent_complete = Column(Float, nullable=False, default=0.0)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class BudgetRecord(Base):
    """One budget per project; the unique project_id makes creation a conditional write."""
    __tablename__ = "budgets"

    id = Column(Integer, primary_key=True, index=True)
    budget_id = Column(String(36), unique=True, nullable=False, index=True)
    project_id = Column(String(64), unique=True, nullable=False, index=True)
    currency = Column(String(3), nullable=False, default="USD")
    status = Column(String(10), nullable=False, default="draft")
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    categories = relationship(
        "BudgetCategoryRecord",
        back_populates="budget",
        order_by="BudgetCategoryRecord.position",
        cascade="all, delete-orphan",
    )


class BudgetCategoryRecord(Base):
    """Allocation of one budget category."""
    __tablename__ = "budget_categories"
    __table_args__ = (
        UniqueConstraint('budget_fk', 'name', name='uq_budget_category_name'),
    )

    id = Column(Integer, primary_key=True, index=True)
    budget_fk = Column(Integer, ForeignKey("budgets.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    name = Column(String(100), nullable=False)
    allocated_cents = Column(Integer, nullable=False, default=0)
    description = Column(Text, nullable=True)

    budget = relationship("BudgetRecord", back_populates="categories")


class CostEntryRecord(Base):
    """
    Append-only cost entry stream.

    (project_id, sequence) is unique: two writers appending at the same
    ledger version cannot both succeed.
    """
    __tablename__ = "cost_entries"
    __table_args__ = (
        UniqueConstraint('project_id', 'sequence', name='uq_cost_entry_sequence'),
    )

    id = Column(Integer, primary_key=True, index=True)
    cost_id = Column(String(36), unique=True, nullable=False, index=True)
    project_id = Column(String(64), nullable=False, index=True)
    sequence = Column(Integer, nullable=False)
    category = Column(String(100), nullable=False)
    amount_cents = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False)
    entry_date = Column(Date, nullable=False, index=True)
    recorded_by = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    kind = Column(String(10), nullable=False, default="standard")
    reverses_cost_id = Column(String(36), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
