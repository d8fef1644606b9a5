from __future__ import annotations

import datetime as dt
from typing import Any, Dict, List, Optional

from sqlalchemy import Boolean, DateTime, Integer, JSON, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from opcua_dashboard.db.base import Base


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def as_utc(value: Optional[dt.datetime]) -> Optional[dt.datetime]:
    """SQLite drops tzinfo on the way back; stored values are always UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value


class PLCRecord(Base):
    __tablename__ = "plcs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    plc_name: Mapped[str] = mapped_column(String(200))
    plc_ip: Mapped[str] = mapped_column(String(255), index=True)
    plc_no: Mapped[int] = mapped_column(Integer, index=True)
    opcua_url: Mapped[str] = mapped_column(String(500), index=True)

    status: Mapped[str] = mapped_column(String(20), default="maintenance")
    is_connected: Mapped[bool] = mapped_column(Boolean, default=False)
    last_checked: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    # Flat upload shape; normalized views are recomputed from it on every read.
    address_mappings: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, default=list)


class OpcuaNode(Base):
    __tablename__ = "opcua_nodes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    plc_no: Mapped[int] = mapped_column(Integer, index=True)
    node_name: Mapped[str] = mapped_column(String(300), index=True)
    description: Mapped[str] = mapped_column(Text)
    value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    timestamp: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    datatype: Mapped[str] = mapped_column(String(50))
    reg_add: Mapped[str] = mapped_column(String(200))
    user_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class UserDescription(Base):
    __tablename__ = "user_descriptions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    plc_id: Mapped[str] = mapped_column(String(100), index=True)
    node_id: Mapped[str] = mapped_column(String(300))
    user_description: Mapped[str] = mapped_column(Text)

    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("plc_id", "node_id", name="uq_user_descriptions_plc_node"),
    )
