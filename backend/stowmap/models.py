import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    String,
    Integer,
    Float,
    DateTime,
    Boolean,
    Enum,
    ForeignKey,
    UniqueConstraint,
    CheckConstraint,
    JSON,
    Index,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column
from .db import Base, utcnow


class OrgRole(str, enum.Enum):
    member = "Member"
    general_officers = "General Officers"
    executive_officers = "Executive Officers"
    administrator = "Administrator"

    @property
    def rank(self) -> int:
        return ROLE_ORDER.index(self)


# Lowest to highest.
ROLE_ORDER = (
    OrgRole.member,
    OrgRole.general_officers,
    OrgRole.executive_officers,
    OrgRole.administrator,
)


class TransactionAction(str, enum.Enum):
    add = "Add"
    remove = "Remove"
    move = "Move"
    adjust = "Adjust"


class Organization(Base):
    __tablename__ = "organizations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255))
    slug: Mapped[str] = mapped_column(String(120), unique=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    org_id: Mapped[int] = mapped_column(ForeignKey("organizations.id"), index=True)
    login: Mapped[str] = mapped_column(String(50), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(255), default="")
    password_hash: Mapped[str] = mapped_column(String(255))
    role: Mapped[OrgRole] = mapped_column(Enum(OrgRole), default=OrgRole.member)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class Part(Base):
    __tablename__ = "parts"
    __table_args__ = (
        UniqueConstraint("org_id", "sku", name="uq_parts_org_sku"),
        Index("idx_parts_org_category", "org_id", "category"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    org_id: Mapped[int] = mapped_column(ForeignKey("organizations.id"), index=True)
    name: Mapped[str] = mapped_column(String(255))
    sku: Mapped[str] = mapped_column(String(64))
    category: Mapped[str] = mapped_column(String(120), default="")
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    archived: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)


class Blueprint(Base):
    __tablename__ = "blueprints"
    __table_args__ = (Index("idx_blueprints_org_name", "org_id", "name"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    org_id: Mapped[int] = mapped_column(ForeignKey("organizations.id"), index=True)
    name: Mapped[str] = mapped_column(String(255))
    locked_by: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True, index=True)
    lock_timestamp: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    background_image_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    # Highest revision version ever issued; survives eviction and deletes.
    last_revision_version: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class Drawer(Base):
    __tablename__ = "drawers"
    __table_args__ = (Index("idx_drawers_blueprint_z", "blueprint_id", "z_index"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    blueprint_id: Mapped[int] = mapped_column(ForeignKey("blueprints.id"), index=True)
    # Center point in blueprint space.
    x: Mapped[float] = mapped_column(Float)
    y: Mapped[float] = mapped_column(Float)
    width: Mapped[float] = mapped_column(Float)
    height: Mapped[float] = mapped_column(Float)
    rotation: Mapped[float] = mapped_column(Float, default=0)
    z_index: Mapped[int] = mapped_column(Integer, default=0)
    grid_rows: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    grid_cols: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    label: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class Compartment(Base):
    __tablename__ = "compartments"
    __table_args__ = (Index("idx_compartments_drawer_z", "drawer_id", "z_index"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    drawer_id: Mapped[int] = mapped_column(ForeignKey("drawers.id"), index=True)
    # Center point relative to the parent drawer's center.
    x: Mapped[float] = mapped_column(Float)
    y: Mapped[float] = mapped_column(Float)
    width: Mapped[float] = mapped_column(Float)
    height: Mapped[float] = mapped_column(Float)
    rotation: Mapped[float] = mapped_column(Float, default=0)
    z_index: Mapped[int] = mapped_column(Integer, default=0)
    label: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class Divider(Base):
    """Cosmetic line drawn on a blueprint; holds no stock."""

    __tablename__ = "dividers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    blueprint_id: Mapped[int] = mapped_column(ForeignKey("blueprints.id"), index=True)
    # Endpoints in blueprint space.
    x1: Mapped[float] = mapped_column(Float)
    y1: Mapped[float] = mapped_column(Float)
    x2: Mapped[float] = mapped_column(Float)
    y2: Mapped[float] = mapped_column(Float)
    thickness: Mapped[float] = mapped_column(Float, default=4)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class Inventory(Base):
    __tablename__ = "inventory"
    __table_args__ = (
        UniqueConstraint("part_id", "compartment_id", name="uq_inventory_part_compartment"),
        CheckConstraint("quantity >= 0", name="ck_inventory_quantity_non_negative"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    org_id: Mapped[int] = mapped_column(ForeignKey("organizations.id"), index=True)
    part_id: Mapped[int] = mapped_column(ForeignKey("parts.id"), index=True)
    compartment_id: Mapped[int] = mapped_column(ForeignKey("compartments.id"), index=True)
    quantity: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class Transaction(Base):
    __tablename__ = "transactions"
    __table_args__ = (Index("idx_transactions_org_ts", "org_id", "timestamp"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    org_id: Mapped[int] = mapped_column(ForeignKey("organizations.id"))
    action_type: Mapped[TransactionAction] = mapped_column(Enum(TransactionAction))
    quantity_delta: Mapped[int] = mapped_column(Integer)
    # Plain ids: the audit trail outlives the compartments it mentions.
    source_compartment_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    dest_compartment_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    part_id: Mapped[int] = mapped_column(ForeignKey("parts.id"), index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class BlueprintRevision(Base):
    __tablename__ = "blueprint_revisions"
    __table_args__ = (
        UniqueConstraint("blueprint_id", "version", name="uq_revision_blueprint_version"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    org_id: Mapped[int] = mapped_column(ForeignKey("organizations.id"), index=True)
    blueprint_id: Mapped[int] = mapped_column(ForeignKey("blueprints.id"), index=True)
    version: Mapped[int] = mapped_column(Integer)
    state: Mapped[dict] = mapped_column(JSON)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_by: Mapped[int] = mapped_column(ForeignKey("users.id"))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class AuditLog(Base):
    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    org_id: Mapped[Optional[int]] = mapped_column(ForeignKey("organizations.id"), nullable=True, index=True)
    user_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True)
    action: Mapped[str] = mapped_column(String(120))
    entity_type: Mapped[str] = mapped_column(String(120))
    entity_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    payload_json: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
