"""
Linen Models
Linen product catalogue and customer orders
"""

from sqlalchemy import Boolean, Column, Date, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class LinenProduct(Base):
    __tablename__ = "linen_products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    type = Column(String(50), nullable=True)  # bedding, towels, kits
    description = Column(Text, nullable=True)
    price = Column(Float, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())


class LinenOrder(Base):
    __tablename__ = "linen_orders"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), index=True, nullable=False)
    address_id = Column(Integer, ForeignKey("addresses.id", ondelete="SET NULL"), nullable=True)
    status = Column(String(20), default="pending")  # pending, processing, delivered, cancelled
    payment_status = Column(String(20), default="pending")
    payment_method = Column(String(50), default="card")
    total_cost = Column(Float, default=0.0)
    delivery_date = Column(Date, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    items = relationship("LinenOrderItem", back_populates="order")
    customer = relationship("Customer")


class LinenOrderItem(Base):
    __tablename__ = "linen_order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("linen_orders.id", ondelete="CASCADE"), nullable=False)
    product_id = Column(Integer, ForeignKey("linen_products.id"), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    unit_price = Column(Float, nullable=False)  # price at time of order

    order = relationship("LinenOrder", back_populates="items")
    product = relationship("LinenProduct")
