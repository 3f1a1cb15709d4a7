from __future__ import annotations
from decimal import Decimal
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, Boolean, Numeric, ForeignKey, DateTime, UniqueConstraint, func

from .authz import Base


class Category(Base):
    __tablename__ = 'categories'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(80), nullable=False)
    slug: Mapped[str] = mapped_column(String(80), nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(String(300))
    parent_id: Mapped[Optional[int]] = mapped_column(ForeignKey('categories.id', ondelete='SET NULL'))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    parent = relationship('Category', remote_side='Category.id')
    items = relationship('Item', back_populates='category')

    __table_args__ = (
        UniqueConstraint('name', name='uq_categories_name'),
        UniqueConstraint('slug', name='uq_categories_slug'),
    )


class Item(Base):
    __tablename__ = 'items'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    sku: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    barcode: Mapped[Optional[str]] = mapped_column(String(64))
    name: Mapped[str] = mapped_column(String(120), nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(String(600))
    category_id: Mapped[Optional[int]] = mapped_column(ForeignKey('categories.id', ondelete='SET NULL'), index=True)
    base_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal('0.00'))
    cost_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal('0.00'))
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal('0.00'))
    track_inventory: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_serialized: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    category = relationship('Category', back_populates='items')
    inventories = relationship('Inventory', back_populates='item', cascade='all, delete-orphan')

    __table_args__ = (
        UniqueConstraint('sku', name='uq_items_sku'),
        UniqueConstraint('barcode', name='uq_items_barcode'),
    )

__all__ = ['Category', 'Item']
