"""Booking domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, field_validator

from ...shared.validators import validate_email, validate_postcode, validate_uk_phone


class BookingCreate(BaseModel):
    """Schema for an office-created booking"""

    customerId: Optional[int] = None
    cleanerId: Optional[int] = None
    addressId: Optional[int] = None
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    email: Optional[str] = None
    phoneNumber: Optional[str] = None
    address: Optional[str] = None
    postcode: Optional[str] = None
    dateTime: datetime
    totalHours: Optional[float] = None
    serviceType: Optional[str] = None
    cleaningType: Optional[str] = None
    frequently: Optional[str] = None
    cleaningCostPerHour: Optional[float] = None
    totalCost: Optional[float] = None
    cleanerPay: Optional[float] = None
    costDeduction: Optional[float] = None
    paymentMethod: Optional[str] = None
    paymentStatus: Optional[str] = "Unpaid"
    invoiceTerm: Optional[int] = None
    propertyDetails: Optional[dict[str, Any]] = None
    additionalDetails: Optional[str] = None

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        return validate_email(v)

    @field_validator("phoneNumber")
    @classmethod
    def check_phone(cls, v):
        if v:
            return validate_uk_phone(v)
        return v

    @field_validator("totalCost", "totalHours", "cleaningCostPerHour")
    @classmethod
    def check_not_negative(cls, v):
        if v is not None and v < 0:
            raise ValueError("Value cannot be negative")
        return v


class BookingUpdate(BaseModel):
    """Schema for updating a booking. Only provided fields change"""

    customerId: Optional[int] = None
    cleanerId: Optional[int] = None
    addressId: Optional[int] = None
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    email: Optional[str] = None
    phoneNumber: Optional[str] = None
    address: Optional[str] = None
    postcode: Optional[str] = None
    dateTime: Optional[datetime] = None
    totalHours: Optional[float] = None
    serviceType: Optional[str] = None
    cleaningType: Optional[str] = None
    frequently: Optional[str] = None
    cleaningCostPerHour: Optional[float] = None
    totalCost: Optional[float] = None
    cleanerPay: Optional[float] = None
    costDeduction: Optional[float] = None
    paymentMethod: Optional[str] = None
    paymentStatus: Optional[str] = None
    bookingStatus: Optional[str] = None
    invoiceTerm: Optional[int] = None
    propertyDetails: Optional[dict[str, Any]] = None
    additionalDetails: Optional[str] = None

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        return validate_email(v)

    @field_validator("phoneNumber")
    @classmethod
    def check_phone(cls, v):
        if v:
            return validate_uk_phone(v)
        return v


class PublicBookingCreate(BaseModel):
    """Booking form submission from the website or a sales agent"""

    firstName: str
    lastName: Optional[str] = ""
    email: str
    phone: Optional[str] = None

    houseNumber: Optional[str] = None
    street: Optional[str] = None
    city: Optional[str] = None
    postcode: str
    addressId: Optional[int] = None

    propertyType: Optional[str] = None
    bedrooms: Optional[str] = None
    bathrooms: Optional[str] = None
    toilets: Optional[str] = None
    numberOfFloors: Optional[int] = None
    additionalRooms: Optional[dict[str, int]] = None
    propertyFeatures: Optional[dict[str, bool]] = None

    serviceType: Optional[str] = None
    cleaningType: Optional[str] = None
    serviceFrequency: Optional[str] = None
    ovenType: Optional[str] = None

    selectedDate: Optional[str] = None
    selectedTime: Optional[str] = None
    flexibility: Optional[str] = None
    shortNoticeCharge: Optional[float] = None

    propertyAccess: Optional[str] = None
    accessNotes: Optional[str] = None

    totalCost: float = 0
    estimatedHours: Optional[float] = None
    totalHours: Optional[float] = None
    hourlyRate: Optional[float] = None

    notes: Optional[str] = None
    paymentMethod: Optional[str] = None
    agentUserId: Optional[int] = None

    wantsFirstDeepClean: bool = False
    firstDeepCleanExtraHours: Optional[float] = None
    firstDeepCleanHours: Optional[float] = None
    firstDeepCleanCost: Optional[float] = None
    regularRecurringCost: Optional[float] = None

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

    @field_validator("totalCost")
    @classmethod
    def check_total(cls, v):
        if v < 0:
            raise ValueError("Total cost cannot be negative")
        return v


class PublicBookingResponse(BaseModel):
    success: bool = True
    bookingId: int
    customerId: int
    recurringServiceId: Optional[int] = None


class BookingResponse(BaseModel):
    """Schema for booking response"""

    id: int
    customer_id: Optional[int] = None
    cleaner_id: Optional[int] = None
    address_id: Optional[int] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone_number: Optional[str] = None
    address: Optional[str] = None
    postcode: Optional[str] = None
    date_time: Optional[datetime] = None
    total_hours: Optional[float] = None
    service_type: Optional[str] = None
    cleaning_type: Optional[str] = None
    frequently: Optional[str] = None
    cleaning_cost_per_hour: Optional[float] = None
    total_cost: Optional[float] = None
    cleaner_pay: Optional[float] = None
    cost_deduction: Optional[float] = None
    payment_method: Optional[str] = None
    payment_status: Optional[str] = None
    booking_status: Optional[str] = None
    invoice_id: Optional[str] = None
    invoice_link: Optional[str] = None
    invoice_term: Optional[int] = None
    property_details: Optional[Any] = None
    additional_details: Optional[str] = None
    created_by_source: Optional[str] = None
    recurring_group_id: Optional[str] = None
    recurring_service_id: Optional[int] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CustomerBookingResponse(BaseModel):
    """Booking as shown in the customer portal"""

    id: int
    date_time: Optional[datetime] = None
    total_hours: Optional[float] = None
    address: Optional[str] = None
    postcode: Optional[str] = None
    service_type: Optional[str] = None
    cleaning_type: Optional[str] = None
    total_cost: Optional[float] = None
    payment_status: Optional[str] = None
    booking_status: Optional[str] = None
    invoice_link: Optional[str] = None

    class Config:
        from_attributes = True
