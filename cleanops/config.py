import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "postgresql+psycopg://localhost:5432/cleanops")

# Company details used in emails, SMS and invoices
COMPANY_NAME = os.getenv("COMPANY_NAME", "SN Cleaning Services")
COMPANY_SHORT_NAME = os.getenv("COMPANY_SHORT_NAME", "SN Cleaning")

# Security - CRITICAL: No default secret key in production
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "720"))

# Frontend base URL for links in emails and payment redirects
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

# Stripe Configuration
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")
STRIPE_API_URL = os.getenv("STRIPE_API_URL", "https://api.stripe.com/v1")
# Return URL required when confirming PaymentIntents that may need 3DS
STRIPE_RETURN_URL = os.getenv("STRIPE_RETURN_URL", f"{FRONTEND_URL}/payment-complete")
PAYMENT_CURRENCY = os.getenv("PAYMENT_CURRENCY", "gbp")

# Invoiless Configuration
INVOILESS_API_KEY = os.getenv("INVOILESS_API_KEY")
INVOILESS_API_URL = os.getenv("INVOILESS_API_URL", "https://api.invoiless.com/v1")
INVOICE_EMAIL_SUBJECT = os.getenv("INVOICE_EMAIL_SUBJECT", f"Your Invoice from {COMPANY_NAME}")

# Resend Email Configuration
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
RESEND_WEBHOOK_SECRET = os.getenv("RESEND_WEBHOOK_SECRET")
EMAIL_FROM_ADDRESS = os.getenv(
    "EMAIL_FROM_ADDRESS", "SN Cleaning <noreply@notifications.sncleaningservices.co.uk>"
)

# Twilio SMS Configuration
TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID")
TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN")
TWILIO_PHONE_NUMBER = os.getenv("TWILIO_PHONE_NUMBER")

# Coverage map data
LONDON_BOROUGHS_GEOJSON_URL = os.getenv(
    "LONDON_BOROUGHS_GEOJSON_URL",
    "https://raw.githubusercontent.com/radoi90/housequest-data/master/london_boroughs.geojson",
)
ESSEX_GEOJSON_URL = os.getenv(
    "ESSEX_GEOJSON_URL",
    "https://raw.githubusercontent.com/glynnbird/ukcountiesgeojson/master/essex.geojson",
)

# Cloudflare R2 storage for cleaning photos
R2_ACCOUNT_ID = os.getenv("R2_ACCOUNT_ID")
R2_ACCESS_KEY_ID = os.getenv("R2_ACCESS_KEY_ID")
R2_SECRET_ACCESS_KEY = os.getenv("R2_SECRET_ACCESS_KEY")
R2_BUCKET_NAME = os.getenv("R2_BUCKET_NAME", "cleaning-photos")
PHOTO_URL_EXPIRATION = int(os.getenv("PHOTO_URL_EXPIRATION", "3600"))
