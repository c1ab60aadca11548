"""Booking service - Business logic for booking operations"""

import json
import logging
import uuid
from datetime import date, datetime
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...email_service import send_booking_completed_email, send_booking_confirmation_email
from ...models import Address, Customer, RecurringService, User
from ...services import stripe_service
from ...services.activity_logger import log_activity
from ...services.booking_automation import archive_booking
from ...services.notification_service import schedule_booking_notifications
from ...services.recurring_bookings import normalize_frequency
from ...services.stripe_service import StripeError
from ...services.twilio_service import SMSError, booking_completed_message, send_sms
from ...shared.formatters import format_long_date, format_money, format_time_12h, parse_booking_time
from .repository import BookingRepository
from .schemas import BookingCreate, BookingUpdate, PublicBookingCreate

logger = logging.getLogger(__name__)

FIELD_MAP = {
    "customerId": "customer_id",
    "cleanerId": "cleaner_id",
    "addressId": "address_id",
    "firstName": "first_name",
    "lastName": "last_name",
    "email": "email",
    "phoneNumber": "phone_number",
    "address": "address",
    "postcode": "postcode",
    "dateTime": "date_time",
    "totalHours": "total_hours",
    "serviceType": "service_type",
    "cleaningType": "cleaning_type",
    "frequently": "frequently",
    "cleaningCostPerHour": "cleaning_cost_per_hour",
    "totalCost": "total_cost",
    "cleanerPay": "cleaner_pay",
    "costDeduction": "cost_deduction",
    "paymentMethod": "payment_method",
    "paymentStatus": "payment_status",
    "bookingStatus": "booking_status",
    "invoiceTerm": "invoice_term",
    "propertyDetails": "property_details",
    "additionalDetails": "additional_details",
}


def _to_columns(values: dict) -> dict:
    return {FIELD_MAP[key]: value for key, value in values.items() if key in FIELD_MAP}


class BookingService:
    """Service layer for booking business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = BookingRepository()

    # ========================================================================
    # ADMIN
    # ========================================================================

    def get_bookings(self, past: bool = False, **filters) -> list:
        return self.repo.get_bookings(self.db, past=past, **filters)

    def get_booking(self, booking_id: int):
        """Upcoming booking, or the archived one with the same id"""
        booking = self.repo.get_booking_by_id(self.db, booking_id) or self.repo.get_past_booking_by_id(
            self.db, booking_id
        )
        if not booking:
            raise HTTPException(status_code=404, detail="Booking not found")
        return booking

    def create_booking(self, data: BookingCreate, user: User):
        values = _to_columns(data.model_dump())

        if data.customerId:
            customer = self.db.query(Customer).filter(Customer.id == data.customerId).first()
            if not customer:
                raise HTTPException(status_code=404, detail="Customer not found")
            values["first_name"] = values.get("first_name") or customer.first_name
            values["last_name"] = values.get("last_name") or customer.last_name
            values["email"] = values.get("email") or customer.email
            values["phone_number"] = values.get("phone_number") or customer.phone

        if data.addressId:
            address = (
                self.db.query(Address)
                .filter(Address.id == data.addressId, Address.customer_id == data.customerId)
                .first()
            )
            if not address:
                raise HTTPException(status_code=404, detail="Address not found")
            values["address"] = values.get("address") or address.address
            values["postcode"] = values.get("postcode") or address.postcode

        if values.get("total_cost") is None and data.cleaningCostPerHour and data.totalHours:
            values["total_cost"] = round(data.cleaningCostPerHour * data.totalHours, 2)

        values["booking_status"] = "active"
        values["created_by_source"] = "admin"
        booking = self.repo.create_booking(self.db, **values)
        schedule_booking_notifications(self.db, booking, "booking_created")

        log_activity(
            self.db, "booking_created", entity_type="booking", entity_id=booking.id, user_id=user.id
        )
        logger.info(f"✅ Booking {booking.id} created by {user.email}")
        return booking

    def update_booking(self, booking_id: int, data: BookingUpdate, user: User):
        booking = self.get_booking(booking_id)
        updates = _to_columns(data.model_dump(exclude_unset=True))
        booking = self.repo.update_booking(self.db, booking, **updates)

        log_activity(
            self.db,
            "booking_updated",
            entity_type="booking",
            entity_id=booking.id,
            details={"fields": sorted(updates)},
            user_id=user.id,
        )
        return booking

    def delete_booking(self, booking_id: int, user: User) -> dict:
        booking = self.get_booking(booking_id)
        self.repo.delete_booking(self.db, booking)
        log_activity(self.db, "booking_deleted", entity_type="booking", entity_id=booking_id, user_id=user.id)
        return {"message": "Booking deleted"}

    async def cancel_booking(self, booking_id: int, user: Optional[User] = None) -> dict:
        """
        Cancel a booking, releasing any card authorization held for it.

        Raises:
            HTTPException(404) booking missing
            StripeError when Stripe refuses to release the hold
        """
        booking = self.get_booking(booking_id)
        released = False

        if (booking.payment_status or "").lower() == "authorized" and booking.invoice_id:
            try:
                await stripe_service.cancel_payment_intent(booking.invoice_id)
            except StripeError as e:
                if e.code != "payment_intent_unexpected_state":
                    logger.error(f"❌ Could not release authorization for booking {booking_id}: {e.message}")
                    raise
            booking.payment_status = "cancelled"
            booking.invoice_id = None
            released = True
            logger.info(f"💳 Authorization released for cancelled booking {booking_id}")

        booking.booking_status = "cancelled"
        self.db.commit()

        log_activity(
            self.db,
            "booking_cancelled",
            entity_type="booking",
            entity_id=booking_id,
            details={"authorization_released": released},
            user_id=user.id if user else None,
        )
        return {"success": True, "booking_id": booking_id, "authorization_released": released}

    async def complete_booking(self, booking_id: int, user: Optional[User] = None, notify: bool = True) -> dict:
        """Mark a booking completed, archive it and tell the customer"""
        booking = self.repo.get_booking_by_id(self.db, booking_id)
        if not booking:
            raise HTTPException(status_code=404, detail="Booking not found")
        if booking.is_cancelled:
            raise HTTPException(status_code=400, detail="Cancelled bookings cannot be completed")

        booking.booking_status = "completed"
        archive_booking(self.db, booking)
        self.db.commit()
        past = self.repo.get_past_booking_by_id(self.db, booking_id)

        log_activity(
            self.db,
            "booking_completed",
            entity_type="booking",
            entity_id=booking_id,
            user_id=user.id if user else None,
        )

        email_sent = False
        sms_sent = False
        if notify and past.email:
            try:
                await send_booking_completed_email(
                    past.email,
                    past.first_name or "there",
                    past.service_type or "cleaning",
                    format_long_date(past.date_time) if past.date_time else "",
                )
                email_sent = True
            except Exception as e:
                logger.error(f"❌ Completion email failed for booking {booking_id}: {e}")
        if notify and past.phone_number:
            try:
                await send_sms(
                    past.phone_number,
                    booking_completed_message(past.first_name or "there", past.service_type),
                )
                sms_sent = True
            except SMSError as e:
                logger.error(f"❌ Completion SMS failed for booking {booking_id}: {e.message}")

        return {"success": True, "booking_id": booking_id, "email_sent": email_sent, "sms_sent": sms_sent}

    # ========================================================================
    # PUBLIC BOOKING FORM
    # ========================================================================

    def _find_or_create_customer(self, data: PublicBookingCreate) -> Customer:
        customer = self.repo.get_customer_by_email(self.db, data.email)
        if customer:
            customer.client_status = "Current"
            logger.info(f"👤 Existing customer {customer.id} booked again")
        else:
            customer = Customer(
                first_name=data.firstName,
                last_name=data.lastName,
                email=data.email,
                phone=data.phone,
                client_status="New",
                source="website",
            )
            self.db.add(customer)
            logger.info(f"👤 New customer from booking form: {data.email}")
        self.db.flush()
        return customer

    def _resolve_address(self, data: PublicBookingCreate, customer: Customer) -> tuple[str, Optional[Address]]:
        """Booking address text plus the saved address row it belongs to, if any"""
        if data.addressId:
            address = (
                self.db.query(Address)
                .filter(Address.id == data.addressId, Address.customer_id == customer.id)
                .first()
            )
            if address:
                return address.address, address

        if not data.street:
            return data.postcode, None

        text = f"{data.houseNumber or ''} {data.street}".strip()
        if data.city:
            text = f"{text}, {data.city}"

        address = self.repo.find_address(self.db, customer.id, text)
        if not address:
            has_addresses = self.db.query(Address).filter(Address.customer_id == customer.id).first() is not None
            address = Address(
                customer_id=customer.id,
                address=text,
                postcode=data.postcode,
                access_notes=data.accessNotes,
                is_default=not has_addresses,
            )
            self.db.add(address)
            self.db.flush()
        return text, address

    @staticmethod
    def _parse_selected_date(value: Optional[str]) -> Optional[date]:
        if not value:
            return None
        try:
            return datetime.fromisoformat(value.strip().replace("Z", "+00:00")).date()
        except ValueError as e:
            raise HTTPException(status_code=400, detail=f"Invalid booking date: {value}") from e

    @staticmethod
    def _property_details(data: PublicBookingCreate) -> dict:
        details = {
            "type": data.propertyType or "flat",
            "bedrooms": data.bedrooms or "1",
            "bathrooms": data.bathrooms or "1",
        }
        if data.toilets:
            details["toilets"] = data.toilets
        if data.numberOfFloors and data.numberOfFloors > 0:
            details["numberOfFloors"] = data.numberOfFloors
        if data.additionalRooms:
            details["additionalRooms"] = data.additionalRooms
        if data.propertyFeatures:
            details["propertyFeatures"] = data.propertyFeatures
        return details

    @staticmethod
    def _additional_details(data: PublicBookingCreate) -> dict:
        details = {"serviceFrequency": data.serviceFrequency or "onetime"}
        if data.wantsFirstDeepClean:
            details["firstDeepClean"] = {
                "enabled": True,
                "extraHours": data.firstDeepCleanExtraHours or 0,
                "hours": data.firstDeepCleanHours or 0,
                "cost": data.firstDeepCleanCost or 0,
                "regularRecurringCost": data.regularRecurringCost or 0,
            }
        if data.ovenType and data.ovenType != "dontneed":
            details["ovenCleaning"] = {"needed": True, "type": data.ovenType}
        if data.flexibility:
            details["flexibility"] = data.flexibility
        if data.shortNoticeCharge and data.shortNoticeCharge > 0:
            details["shortNoticeCharge"] = data.shortNoticeCharge
        details["access"] = {
            "method": data.propertyAccess or "customer-home",
            "notes": data.accessNotes or "",
        }
        if data.notes:
            details["notes"] = data.notes
        return details

    @staticmethod
    def booking_hours(data: PublicBookingCreate) -> float:
        """Hours for the first visit; a first deep clean replaces the regular hours"""
        regular = data.estimatedHours or data.totalHours or 0
        if not data.wantsFirstDeepClean:
            return regular
        if data.firstDeepCleanHours and data.firstDeepCleanHours > 0:
            return data.firstDeepCleanHours
        return regular + (data.firstDeepCleanExtraHours or 0)

    async def create_public_booking(self, data: PublicBookingCreate) -> dict:
        """
        Turn a booking form submission into a customer, an address, a booking
        and, for repeat cleans, a recurring service.
        """
        customer = self._find_or_create_customer(data)
        address_text, address = self._resolve_address(data, customer)

        booking_date = self._parse_selected_date(data.selectedDate)
        booking_time = parse_booking_time(data.selectedTime)
        date_time = datetime.combine(booking_date, booking_time) if booking_date else None

        frequency = normalize_frequency(data.serviceFrequency)
        is_recurring = frequency is not None
        recurring_group_id = str(uuid.uuid4()) if is_recurring else None
        source = "sales_agent" if data.agentUserId else "website"

        if data.wantsFirstDeepClean or (data.serviceFrequency or "onetime") == "onetime":
            cleaning_type = "Deep Cleaning"
        else:
            cleaning_type = data.cleaningType or "Standard Cleaning"

        total_hours = self.booking_hours(data)
        booking = self.repo.create_booking(
            self.db,
            customer_id=customer.id,
            address_id=address.id if address else None,
            first_name=data.firstName,
            last_name=data.lastName,
            email=data.email,
            phone_number=data.phone,
            address=address_text,
            postcode=data.postcode,
            date_time=date_time,
            total_hours=total_hours,
            service_type=data.serviceType or "Domestic",
            cleaning_type=cleaning_type,
            frequently=data.serviceFrequency or "onetime",
            cleaning_cost_per_hour=data.hourlyRate or 0,
            total_cost=data.totalCost,
            payment_method=data.paymentMethod,
            payment_status="Unpaid",
            booking_status="active",
            property_details=self._property_details(data),
            additional_details=json.dumps(self._additional_details(data)),
            created_by_source=source,
            recurring_group_id=recurring_group_id,
        )
        logger.info(f"✅ Public booking {booking.id} created for customer {customer.id} ({source})")
        schedule_booking_notifications(self.db, booking, "booking_created")

        recurring_service_id = None
        if is_recurring and booking_date:
            recurring_service_id = self._create_recurring_service(
                data, customer, address, booking_date, frequency, booking
            )

        log_activity(
            self.db,
            "public_booking_created",
            entity_type="booking",
            entity_id=booking.id,
            details={"source": source, "agent_user_id": data.agentUserId},
            user_id=data.agentUserId,
        )

        if date_time:
            try:
                await send_booking_confirmation_email(
                    data.email,
                    data.firstName,
                    format_long_date(date_time),
                    format_time_12h(date_time),
                    address_text,
                    format_money(data.totalCost),
                )
            except Exception as e:
                logger.error(f"❌ Booking confirmation email failed for booking {booking.id}: {e}")

        return {
            "success": True,
            "bookingId": booking.id,
            "customerId": customer.id,
            "recurringServiceId": recurring_service_id,
        }

    def _create_recurring_service(
        self,
        data: PublicBookingCreate,
        customer: Customer,
        address: Optional[Address],
        start_date: date,
        frequency: str,
        first_booking,
    ) -> int:
        """Recurring template for repeat cleans; the first booking is linked to it"""
        regular_hours = data.estimatedHours or data.totalHours or 0
        start_time = parse_booking_time(data.selectedTime) if data.selectedTime else None
        service = RecurringService(
            customer_id=customer.id,
            address_id=address.id if address else None,
            cleaning_type="Domestic",
            frequently=frequency,
            days_of_the_week=start_date.strftime("%A").lower(),
            hours=regular_hours,
            cost_per_hour=data.hourlyRate or 0,
            total_cost=data.regularRecurringCost or regular_hours * (data.hourlyRate or 0),
            payment_method=data.paymentMethod,
            start_date=start_date,
            start_time=start_time.strftime("%H:%M") if start_time else None,
            postponed=False,
        )
        self.db.add(service)
        self.db.flush()
        first_booking.recurring_service_id = service.id
        self.db.commit()
        logger.info(f"🔁 Recurring service {service.id} ({frequency}) created from booking {first_booking.id}")
        return service.id

    # ========================================================================
    # CUSTOMER PORTAL
    # ========================================================================

    def get_customer_bookings(self, customer_id: int, past: bool = False) -> list:
        return self.repo.get_customer_bookings(self.db, customer_id, past)

    def get_unpaid_bookings(self, customer_id: int) -> list:
        return self.repo.get_unpaid_bookings(self.db, customer_id)

    def get_customer_booking(self, customer_id: int, booking_id: int):
        booking = self.get_booking(booking_id)
        if booking.customer_id != customer_id:
            raise HTTPException(status_code=404, detail="Booking not found")
        return booking
