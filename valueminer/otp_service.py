import logging
import secrets
import string
from datetime import timedelta

from fastapi import HTTPException

from . import database
from .email_service import EmailDeliveryError, is_configured, send_email
from .utils import as_utc, utcnow

logger = logging.getLogger(__name__)

OTP_LENGTH = 6
OTP_EXPIRY_MINUTES = 5
MAX_OTP_ATTEMPTS = 3


def generate_otp(length: int = OTP_LENGTH) -> str:
    """Generate secure numeric OTP"""
    return ''.join(secrets.choice(string.digits) for _ in range(length))


async def store_otp(email: str, otp: str, expiry_minutes: int = OTP_EXPIRY_MINUTES):
    """Store OTP in MongoDB with expiration"""
    now = utcnow()

    # Upsert (update if exists, insert if not)
    await database.otp_collection.update_one(
        {"email": email},
        {
            "$set": {
                "otp": otp,
                "expires_at": now + timedelta(minutes=expiry_minutes),
                "attempts": 0,
                "created_at": now,
            }
        },
        upsert=True
    )
    logger.info(f"✅ Stored OTP for {email}")


async def verify_otp(email: str, otp: str) -> bool:
    """Verify OTP with rate limiting"""
    otp_doc = await database.otp_collection.find_one({"email": email})

    if not otp_doc:
        raise HTTPException(status_code=400, detail="OTP not found. Please request a new one.")

    # Check expiration
    if utcnow() > as_utc(otp_doc["expires_at"]):
        await database.otp_collection.delete_one({"email": email})
        raise HTTPException(status_code=400, detail="OTP expired. Please request a new one.")

    # Check attempts
    if otp_doc["attempts"] >= MAX_OTP_ATTEMPTS:
        await database.otp_collection.delete_one({"email": email})
        raise HTTPException(status_code=429, detail="Too many failed attempts. Please request a new OTP.")

    if not secrets.compare_digest(otp_doc["otp"].encode("utf-8"), otp.encode("utf-8")):
        await database.otp_collection.update_one(
            {"email": email},
            {"$inc": {"attempts": 1}}
        )
        return False

    # Success - delete OTP
    await database.otp_collection.delete_one({"email": email})
    return True


def send_otp_email(email: str, otp: str) -> bool:
    """Send the login code, falling back to console mode when SMTP is not set up"""
    if not is_configured():
        logger.warning(f"📧 Email not configured - console mode. OTP for {email}: {otp}")
        return True

    html = f"""
    <html>
      <body style="font-family: Arial, sans-serif; padding: 20px; background-color: #f5f5f5;">
        <div style="max-width: 600px; margin: 0 auto; background: white; padding: 30px; border-radius: 10px;">
          <h2 style="color: #a45de9; margin: 0; text-align: center;">⛏️ Value Miner</h2>
          <p style="color: #666; font-size: 14px; line-height: 1.6;">
            Your one-time sign-in code is:
          </p>
          <div style="background: #16182a; color: white; font-size: 36px; font-weight: bold;
                      padding: 25px; text-align: center; border-radius: 10px;
                      letter-spacing: 10px; margin: 25px 0;">
            {otp}
          </div>
          <p style="color: #856404; font-size: 14px;">
            ⏰ This code will expire in <strong>{OTP_EXPIRY_MINUTES} minutes</strong>
          </p>
          <p style="color: #999; font-size: 12px;">
            If you didn't request this code, please ignore this email.
          </p>
        </div>
      </body>
    </html>
    """

    text = f"""
Value Miner - Sign-in code

Your one-time code is: {otp}

This code will expire in {OTP_EXPIRY_MINUTES} minutes.
    """

    try:
        send_email(email, f"Your Value Miner code: {otp}", html, text)
    except EmailDeliveryError as e:
        # The code is still stored, so the user can request a resend
        logger.error(f"❌ OTP email to {email} failed: {e.message}")
        return False
    return True
