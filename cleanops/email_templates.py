"""
MJML Email Templates
Built-in transactional emails. Admin-editable notification templates live in the database.
"""

from typing import Optional

from .config import COMPANY_NAME, FRONTEND_URL

THEME = {
    "primary": "#1d4ed8",
    "background": "#f8fafc",
    "text_primary": "#0f172a",
    "text_secondary": "#334155",
    "text_muted": "#64748b",
    "border": "#e2e8f0",
}


def get_base_template(
    title: str,
    preview_text: str,
    content_sections: str,
    cta_url: Optional[str] = None,
    cta_label: Optional[str] = None,
) -> str:
    """Base MJML template wrapper for all emails"""

    cta_section = ""
    if cta_url and cta_label:
        cta_section = f"""
        <mj-section padding="20px 0">
          <mj-column>
            <mj-button
              href="{cta_url}"
              background-color="{THEME['primary']}"
              color="#ffffff"
              font-weight="600"
              border-radius="8px"
              padding="18px 40px"
              font-size="16px">
              {cta_label}
            </mj-button>
          </mj-column>
        </mj-section>
        """

    return f"""
    <mjml>
      <mj-head>
        <mj-title>{title}</mj-title>
        <mj-preview>{preview_text}</mj-preview>
        <mj-attributes>
          <mj-all font-family="-apple-system, BlinkMacSystemFont, 'Segoe UI', Arial, sans-serif" />
          <mj-text font-size="16px" line-height="1.6" color="{THEME['text_secondary']}" />
        </mj-attributes>
      </mj-head>
      <mj-body background-color="{THEME['background']}">
        <mj-section background-color="#ffffff" padding="32px 40px 48px 40px">
          <mj-column>
            <mj-text font-size="22px" font-weight="600" color="{THEME['text_primary']}" padding="0 0 16px 0">
              {title}
            </mj-text>
            {content_sections}
          </mj-column>
        </mj-section>

        {cta_section}

        <mj-section padding="24px 20px">
          <mj-column>
            <mj-text align="center" font-size="13px" color="{THEME['text_muted']}">
              {COMPANY_NAME} · London &amp; Essex
            </mj-text>
          </mj-column>
        </mj-section>
      </mj-body>
    </mjml>
    """


def booking_confirmation_template(
    customer_name: str, booking_date: str, booking_time: str, address: str, total_cost: str
) -> str:
    content = f"""
    <mj-text>Hi {customer_name},</mj-text>
    <mj-text>Thank you for your booking. Here are the details we have:</mj-text>
    <mj-text padding="0 0 0 20px">
      • Date: {booking_date}<br/>
      • Time: {booking_time}<br/>
      • Address: {address}<br/>
      • Total: {total_cost}
    </mj-text>
    <mj-text>Reply to this email if anything needs changing.</mj-text>
    """
    return get_base_template(
        title="Booking Confirmed",
        preview_text=f"Your cleaning on {booking_date} is booked",
        content_sections=content,
    )


def booking_completed_template(customer_name: str, service_type: str, booking_date: str) -> str:
    content = f"""
    <mj-text>Hi {customer_name},</mj-text>
    <mj-text>Your {service_type} on {booking_date} has been completed.</mj-text>
    <mj-text>We hope everything is spotless. If anything was missed, let us know within 24 hours and we will put it right.</mj-text>
    """
    return get_base_template(
        title="Your Cleaning Is Complete",
        preview_text="Thank you for choosing us",
        content_sections=content,
        cta_url=f"{FRONTEND_URL}/customer-dashboard",
        cta_label="View Your Bookings",
    )


def payment_link_template(customer_name: str, amount: str, description: str, payment_url: str) -> str:
    content = f"""
    <mj-text>Hi {customer_name},</mj-text>
    <mj-text>Please use the secure link below to pay {amount} for {description}.</mj-text>
    <mj-text color="{THEME['text_muted']}" font-size="14px">Payments are processed by Stripe.</mj-text>
    """
    return get_base_template(
        title="Payment Request",
        preview_text=f"Payment of {amount} requested",
        content_sections=content,
        cta_url=payment_url,
        cta_label=f"Pay {amount}",
    )


def quote_template(customer_name: str, service_type: str, quote_amount: str, quote_url: str) -> str:
    content = f"""
    <mj-text>Hi {customer_name},</mj-text>
    <mj-text>Thanks for your interest. Your quote for {service_type} is <strong>{quote_amount}</strong>.</mj-text>
    <mj-text>You can pick up where you left off and book online at any time.</mj-text>
    """
    return get_base_template(
        title="Your Cleaning Quote",
        preview_text=f"Your quote: {quote_amount}",
        content_sections=content,
        cta_url=quote_url,
        cta_label="Book Now",
    )


def password_reset_template(reset_link: str) -> str:
    content = """
    <mj-text>We received a request to reset your password.</mj-text>
    <mj-text>The link below is valid for one hour. If you did not ask for this, you can ignore this email.</mj-text>
    """
    return get_base_template(
        title="Reset Your Password",
        preview_text="Password reset requested",
        content_sections=content,
        cta_url=reset_link,
        cta_label="Reset Password",
    )


def account_credentials_template(customer_name: str, email: str, temporary_password: str) -> str:
    content = f"""
    <mj-text>Hi {customer_name},</mj-text>
    <mj-text>An account has been created for you so you can manage your bookings and payments online.</mj-text>
    <mj-text padding="0 0 0 20px">
      • Email: {email}<br/>
      • Temporary password: <strong>{temporary_password}</strong>
    </mj-text>
    <mj-text>Please change your password after your first login.</mj-text>
    """
    return get_base_template(
        title="Your Account Is Ready",
        preview_text="Log in to manage your bookings",
        content_sections=content,
        cta_url=f"{FRONTEND_URL}/login",
        cta_label="Log In",
    )


def photos_ready_template(
    customer_name: str, service_type: str, booking_date: str, photo_count: int, photos_url: str
) -> str:
    content = f"""
    <mj-text>Hi {customer_name},</mj-text>
    <mj-text>Your cleaner has finished the {service_type} on {booking_date} and uploaded {photo_count} photos of the work at your property.</mj-text>
    <mj-text color="{THEME['text_muted']}" font-size="14px">The photos stay available in your customer portal.</mj-text>
    """
    return get_base_template(
        title="Your Cleaning Photos Are Ready",
        preview_text=f"{photo_count} photos from your cleaning on {booking_date}",
        content_sections=content,
        cta_url=photos_url,
        cta_label="View Photos",
    )
