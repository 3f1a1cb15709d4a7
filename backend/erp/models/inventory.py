from __future__ import annotations
from decimal import Decimal
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, Numeric, ForeignKey, DateTime, UniqueConstraint, func

from .authz import Base


class Store(Base):
    __tablename__ = 'stores'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[str] = mapped_column(String(16), nullable=False)
    name: Mapped[str] = mapped_column(String(80), nullable=False)
    city: Mapped[Optional[str]] = mapped_column(String(80))
    state: Mapped[Optional[str]] = mapped_column(String(80))
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    inventories = relationship('Inventory', back_populates='store', cascade='all, delete-orphan')

    __table_args__ = (
        UniqueConstraint('code', name='uq_stores_code'),
        UniqueConstraint('name', name='uq_stores_name'),
    )

    @property
    def location(self) -> Optional[str]:
        parts = [p for p in (self.city, self.state) if p]
        return ', '.join(parts) if parts else None


class Inventory(Base):
    """Stock record for one (store, item) pair."""
    __tablename__ = 'inventories'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    store_id: Mapped[int] = mapped_column(ForeignKey('stores.id', ondelete='CASCADE'), nullable=False, index=True)
    item_id: Mapped[int] = mapped_column(ForeignKey('items.id', ondelete='CASCADE'), nullable=False, index=True)
    quantity: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False, default=Decimal('0'))
    reserved: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False, default=Decimal('0'))
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    store = relationship('Store', back_populates='inventories')
    item = relationship('Item', back_populates='inventories')

    __table_args__ = (UniqueConstraint('store_id', 'item_id', name='uq_inventory_store_item'),)

__all__ = ['Store', 'Inventory']
