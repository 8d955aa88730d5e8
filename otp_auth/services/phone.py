"""Phone verification lookups against Firebase Authentication."""

import logging

import anyio
import firebase_admin
from firebase_admin import auth as fb_auth
from firebase_admin import credentials
from firebase_admin.exceptions import FirebaseError

from otp_auth.core.config import settings

logger = logging.getLogger(__name__)


def _init_firebase_app() -> firebase_admin.App | None:
    """Return the default Firebase app, initializing it on first use."""
    if firebase_admin._apps:  # type: ignore[attr-defined]
        return firebase_admin.get_app()
    if not settings.FIREBASE_CREDENTIALS_FILE:
        logger.warning("Firebase credentials are not configured; phone verification fallback disabled")
        return None
    try:
        cred = credentials.Certificate(settings.FIREBASE_CREDENTIALS_FILE)
        app = firebase_admin.initialize_app(cred)
    except (OSError, ValueError) as e:
        logger.error(f"Failed to initialize Firebase app: {e}")
        return None
    logger.info("Firebase app initialized")
    return app


class PhoneVerificationOracle:
    """Answers whether a phone number is already verified by Firebase."""

    async def is_verified(self, phone: str) -> bool:
        app = _init_firebase_app()
        if app is None:
            return False

        def _lookup() -> bool:
            record = fb_auth.get_user_by_phone_number(phone, app=app)
            return record.phone_number is not None and record.phone_number == phone

        try:
            return await anyio.to_thread.run_sync(_lookup)
        except (FirebaseError, ValueError) as e:
            logger.info(f"Phone verification lookup failed for {phone}: {e}")
            return False
