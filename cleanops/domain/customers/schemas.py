"""Customer domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...shared.validators import validate_email, validate_postcode, validate_uk_phone


class CustomerCreate(BaseModel):
    """Schema for creating a new customer"""

    firstName: str
    lastName: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    whatsapp: Optional[str] = None
    clientStatus: Optional[str] = "New"
    clientType: Optional[str] = None
    source: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        return validate_email(v)

    @field_validator("phone", "whatsapp")
    @classmethod
    def check_phone(cls, v):
        if v:
            return validate_uk_phone(v)
        return v


class CustomerUpdate(BaseModel):
    """Schema for updating an existing customer"""

    firstName: Optional[str] = None
    lastName: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    whatsapp: Optional[str] = None
    clientStatus: Optional[str] = None
    clientType: Optional[str] = None
    source: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        return validate_email(v)

    @field_validator("phone", "whatsapp")
    @classmethod
    def check_phone(cls, v):
        if v:
            return validate_uk_phone(v)
        return v


class AddressCreate(BaseModel):
    address: str
    postcode: Optional[str] = None
    accessNotes: Optional[str] = None
    isDefault: bool = False

    @field_validator("postcode")
    @classmethod
    def check_postcode(cls, v):
        return validate_postcode(v)


class AddressResponse(BaseModel):
    id: int
    customer_id: int
    address: str
    postcode: Optional[str] = None
    access_notes: Optional[str] = None
    is_default: bool = False
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CustomerResponse(BaseModel):
    """Schema for customer response"""

    id: int
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    whatsapp: Optional[str] = None
    client_status: Optional[str] = None
    client_type: Optional[str] = None
    source: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CustomerDetailResponse(CustomerResponse):
    addresses: list[AddressResponse] = []
