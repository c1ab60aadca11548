"""
Linen Routes
Linen products and customer linen orders
"""

import logging
from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session, selectinload

from ..auth import require_admin, require_customer
from ..database import get_db
from ..domain.customers.repository import CustomerRepository
from ..models import User
from ..models_linen import LinenOrder, LinenOrderItem, LinenProduct
from ..rate_limiter import create_rate_limiter
from ..services.activity_logger import log_activity
from ..shared.validators import validate_email, validate_postcode, validate_uk_phone

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/linen", tags=["Linen"])

ORDER_STATUSES = ("pending", "processing", "delivered", "cancelled")
PAYMENT_STATUSES = ("pending", "paid", "failed", "refunded")

rate_limit_linen_order = create_rate_limiter(limit=10, window_seconds=3600, key_prefix="linen_order")


class LinenProductCreate(BaseModel):
    name: str
    type: Optional[str] = None
    description: Optional[str] = None
    price: float
    isActive: bool = True

    @field_validator("price")
    @classmethod
    def validate_price(cls, v):
        if v < 0:
            raise ValueError("Price cannot be negative")
        return v


class LinenProductUpdate(BaseModel):
    name: Optional[str] = None
    type: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = None
    isActive: Optional[bool] = None

    @field_validator("price")
    @classmethod
    def validate_price(cls, v):
        if v is not None and v < 0:
            raise ValueError("Price cannot be negative")
        return v


class LinenProductResponse(BaseModel):
    id: int
    name: str
    type: Optional[str] = None
    description: Optional[str] = None
    price: float
    is_active: bool

    class Config:
        from_attributes = True


class LinenOrderItemIn(BaseModel):
    productId: int
    quantity: int = 1

    @field_validator("quantity")
    @classmethod
    def validate_quantity(cls, v):
        if v < 1:
            raise ValueError("Quantity must be at least 1")
        return v


class LinenOrderCreate(BaseModel):
    firstName: str
    lastName: Optional[str] = None
    email: str
    phone: Optional[str] = None
    address: str
    postcode: str
    items: list[LinenOrderItemIn]
    deliveryDate: Optional[date] = None
    paymentMethod: str = "card"
    totalCost: Optional[float] = None
    notes: Optional[str] = None

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        return validate_email(v)

    @field_validator("phone")
    @classmethod
    def check_phone(cls, v):
        if v:
            return validate_uk_phone(v)
        return v

    @field_validator("postcode")
    @classmethod
    def check_postcode(cls, v):
        return validate_postcode(v)

    @field_validator("items")
    @classmethod
    def check_items(cls, v):
        if not v:
            raise ValueError("At least one item is required")
        return v


class LinenOrderStatusUpdate(BaseModel):
    status: Optional[str] = None
    paymentStatus: Optional[str] = None
    deliveryDate: Optional[date] = None

    @field_validator("status")
    @classmethod
    def check_status(cls, v):
        if v is not None and v not in ORDER_STATUSES:
            raise ValueError(f"Status must be one of {', '.join(ORDER_STATUSES)}")
        return v

    @field_validator("paymentStatus")
    @classmethod
    def check_payment_status(cls, v):
        if v is not None and v not in PAYMENT_STATUSES:
            raise ValueError(f"Payment status must be one of {', '.join(PAYMENT_STATUSES)}")
        return v


class LinenOrderItemResponse(BaseModel):
    id: int
    product_id: int
    quantity: int
    unit_price: float

    class Config:
        from_attributes = True


class LinenOrderResponse(BaseModel):
    id: int
    customer_id: int
    address_id: Optional[int] = None
    status: Optional[str] = None
    payment_status: Optional[str] = None
    payment_method: Optional[str] = None
    total_cost: Optional[float] = None
    delivery_date: Optional[date] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    items: list[LinenOrderItemResponse] = []

    class Config:
        from_attributes = True


PRODUCT_FIELDS = {
    "name": "name",
    "type": "type",
    "description": "description",
    "price": "price",
    "isActive": "is_active",
}


# ============================================================================
# PRODUCTS
# ============================================================================


@router.get("/products", response_model=list[LinenProductResponse])
async def list_products(
    include_inactive: bool = Query(False),
    db: Session = Depends(get_db),
):
    """Public product catalogue"""
    query = db.query(LinenProduct)
    if not include_inactive:
        query = query.filter(LinenProduct.is_active.is_(True))
    return query.order_by(LinenProduct.name.asc()).all()


@router.post("/products", response_model=LinenProductResponse)
async def create_product(
    data: LinenProductCreate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    product = LinenProduct(**{PRODUCT_FIELDS[k]: v for k, v in data.model_dump().items()})
    db.add(product)
    db.commit()
    db.refresh(product)
    return product


@router.patch("/products/{product_id}", response_model=LinenProductResponse)
async def update_product(
    product_id: int,
    data: LinenProductUpdate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    product = db.query(LinenProduct).filter(LinenProduct.id == product_id).first()
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")

    for key, value in data.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(product, PRODUCT_FIELDS[key], value)
    db.commit()
    db.refresh(product)
    return product


@router.delete("/products/{product_id}")
async def delete_product(
    product_id: int,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    product = db.query(LinenProduct).filter(LinenProduct.id == product_id).first()
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")

    # Ordered products stay for order history
    if db.query(LinenOrderItem).filter(LinenOrderItem.product_id == product_id).first():
        product.is_active = False
        db.commit()
        return {"message": "Product has orders and was deactivated"}

    db.delete(product)
    db.commit()
    return {"message": "Product deleted"}


# ============================================================================
# ORDERS
# ============================================================================


def submit_linen_order(db: Session, data: LinenOrderCreate) -> LinenOrder:
    """
    Create a linen order from the public form.

    The customer is matched by email (created when new) and the delivery
    address by postcode. Items are priced from the catalogue at order time.

    Raises:
        HTTPException(400) unknown or inactive product
    """
    product_ids = {item.productId for item in data.items}
    products = {
        p.id: p
        for p in db.query(LinenProduct)
        .filter(LinenProduct.id.in_(product_ids), LinenProduct.is_active.is_(True))
        .all()
    }
    missing = product_ids - set(products)
    if missing:
        raise HTTPException(
            status_code=400, detail=f"Unknown or unavailable products: {', '.join(map(str, sorted(missing)))}"
        )

    customer = CustomerRepository.get_customer_by_email(db, data.email)
    if not customer:
        customer = CustomerRepository.create_customer(
            db,
            first_name=data.firstName,
            last_name=data.lastName,
            email=data.email,
            phone=data.phone,
            client_status="New",
            source="linen",
        )
        logger.info(f"👤 Created customer {customer.id} from linen order")

    address = CustomerRepository.find_address_by_postcode(db, customer.id, data.postcode)
    if not address:
        address = CustomerRepository.create_address(
            db, customer.id, make_default=False, address=data.address, postcode=data.postcode
        )

    items_total = sum(products[item.productId].price * item.quantity for item in data.items)
    order = LinenOrder(
        customer_id=customer.id,
        address_id=address.id,
        status="pending",
        payment_status="pending",
        payment_method=data.paymentMethod,
        total_cost=round(data.totalCost if data.totalCost is not None else items_total, 2),
        delivery_date=data.deliveryDate,
        notes=data.notes,
    )
    db.add(order)
    db.flush()

    for item in data.items:
        db.add(
            LinenOrderItem(
                order_id=order.id,
                product_id=item.productId,
                quantity=item.quantity,
                unit_price=products[item.productId].price,
            )
        )
    db.commit()
    db.refresh(order)

    logger.info(f"✅ Linen order {order.id} created for customer {customer.id} (£{order.total_cost:.2f})")
    return order


@router.post("/orders", response_model=LinenOrderResponse)
async def create_linen_order(
    data: LinenOrderCreate,
    db: Session = Depends(get_db),
    _: None = Depends(rate_limit_linen_order),
):
    order = submit_linen_order(db, data)
    log_activity(
        db,
        "linen_order_created",
        entity_type="linen_order",
        entity_id=order.id,
        details={"customer_id": order.customer_id, "total_cost": order.total_cost},
    )
    return order


@router.get("/orders", response_model=list[LinenOrderResponse])
async def list_linen_orders(
    status: Optional[str] = Query(None),
    customer_id: Optional[int] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    query = db.query(LinenOrder).options(selectinload(LinenOrder.items))
    if status:
        query = query.filter(LinenOrder.status == status)
    if customer_id:
        query = query.filter(LinenOrder.customer_id == customer_id)
    return query.order_by(LinenOrder.created_at.desc(), LinenOrder.id.desc()).offset(skip).limit(limit).all()


@router.get("/my-orders", response_model=list[LinenOrderResponse])
async def list_my_linen_orders(
    current_user: User = Depends(require_customer),
    db: Session = Depends(get_db),
):
    return (
        db.query(LinenOrder)
        .options(selectinload(LinenOrder.items))
        .filter(LinenOrder.customer_id == current_user.customer_id)
        .order_by(LinenOrder.created_at.desc(), LinenOrder.id.desc())
        .all()
    )


@router.patch("/orders/{order_id}", response_model=LinenOrderResponse)
async def update_linen_order_status(
    order_id: int,
    data: LinenOrderStatusUpdate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    order = db.query(LinenOrder).filter(LinenOrder.id == order_id).first()
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")

    previous = order.status
    if data.status:
        order.status = data.status
    if data.paymentStatus:
        order.payment_status = data.paymentStatus
    if data.deliveryDate:
        order.delivery_date = data.deliveryDate
    db.commit()
    db.refresh(order)

    log_activity(
        db,
        "linen_order_updated",
        entity_type="linen_order",
        entity_id=order.id,
        details={"from": previous, "to": order.status, "payment_status": order.payment_status},
        user_id=current_user.id,
    )
    return order
