"""OTP issuance, verification and status backed by the `otp_records` table."""

import logging
import math
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from otp_auth.core.config import settings
from otp_auth.core.errors import InternalError, RateLimitError, RequestError
from otp_auth.db.models.otp import OtpRecord
from otp_auth.services.email import Mailer, MailMessage, render_otp_body
from otp_auth.services.phone import PhoneVerificationOracle
from otp_auth.services.validation import has_text

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

# rounds of read-decide-write before giving up on a contended email or a code collision
MAX_ISSUE_ROUNDS = 3


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from stores without tz support."""
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value.astimezone(timezone.utc)


def to_epoch_millis(value: datetime) -> int:
    return int(as_utc(value).timestamp() * 1000)


def generate_otp(length: int = settings.OTP_LENGTH) -> int:
    """Uniformly random code over the whole `length`-digit space."""
    return secrets.randbelow(10 ** length)


def resend_wait_seconds(record: OtpRecord | None, now: datetime) -> int:
    """Seconds left before another code may be sent for this record (0 = allowed).

    The interval only applies when the last code went out on the same UTC day.
    """
    if record is None:
        return 0
    last_sent = as_utc(record.last_sent_at)
    if last_sent.date() != now.date():
        return 0
    elapsed = (now - last_sent).total_seconds()
    if elapsed >= settings.OTP_RESEND_INTERVAL_SECONDS:
        return 0
    return math.ceil(settings.OTP_RESEND_INTERVAL_SECONDS - elapsed)


@dataclass
class OtpContent:
    subject: str
    message: str


@dataclass
class IssuedOtp:
    email: str
    phone: str | None
    expiry_time: datetime

    def as_payload(self) -> dict:
        return {"email": self.email, "phone": self.phone, "expiryTime": to_epoch_millis(self.expiry_time)}


@dataclass
class OtpStatus:
    expiry_time: int
    message: str
    attempts: int


REGISTRATION_CONTENT = OtpContent(subject="Verification", message="Your one-time passcode for registration is")
RESET_CONTENT = OtpContent(
    subject="Password Reset Request", message="Your one-time passcode for resetting your password is"
)


class OTPService:
    """High-level API for issuing, verifying and inspecting OTP codes."""

    def __init__(
        self,
        session: AsyncSession,
        mailer: Mailer,
        phone_oracle: PhoneVerificationOracle,
        clock: Clock = utcnow,
        missing_record_passes: bool = settings.OTP_MISSING_RECORD_PASSES,
    ):
        self.session = session
        self.mailer = mailer
        self.phone_oracle = phone_oracle
        self.clock = clock
        self.missing_record_passes = missing_record_passes

    async def get_record(self, email: str) -> OtpRecord | None:
        return await self.session.scalar(
            select(OtpRecord).where(OtpRecord.email == email).execution_options(populate_existing=True)
        )

    async def issue(self, *, first_name: str, email: str, phone: str | None, content: OtpContent) -> IssuedOtp:
        """Mint and persist a fresh code for `email`, then mail it.

        Raises `RateLimitError` while the resend interval is running; in that
        case nothing is written and nothing is sent.
        """
        try:
            code, expiry_time = await self._store_new_code(email, phone)
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise InternalError.from_exception(exc) from exc

        logger.info("Issued OTP for %s, expires at %s", email, expiry_time.isoformat())
        await self.mailer.send(
            MailMessage(
                first_name=first_name,
                email=email,
                subject=content.subject,
                html_body=render_otp_body(content.message, code),
            )
        )
        return IssuedOtp(email=email, phone=phone, expiry_time=expiry_time)

    async def _store_new_code(self, email: str, phone: str | None) -> tuple[int, datetime]:
        for _ in range(MAX_ISSUE_ROUNDS):
            now = self.clock()
            record = await self.get_record(email)
            wait = resend_wait_seconds(record, now)
            if wait:
                raise RateLimitError(f"please wait {wait} seconds before resending otp")

            code = generate_otp()
            expiry_time = now + timedelta(seconds=settings.OTP_EXPIRE_SECONDS)
            try:
                if record is None:
                    self.session.add(
                        OtpRecord(
                            email=email,
                            phone=phone,
                            code=code,
                            expiry_time=expiry_time,
                            last_sent_at=now,
                            resend_attempts=1,
                            version=1,
                        )
                    )
                    await self.session.commit()
                    return code, expiry_time

                same_day = as_utc(record.last_sent_at).date() == now.date()
                attempts = record.resend_attempts if same_day else 0
                result = await self.session.execute(
                    update(OtpRecord)
                    .where(OtpRecord.email == email, OtpRecord.version == record.version)
                    .values(
                        code=code,
                        expiry_time=expiry_time,
                        last_sent_at=now,
                        resend_attempts=attempts + 1,
                        version=record.version + 1,
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 1:
                    await self.session.commit()
                    return code, expiry_time
                # another request updated the row first; re-read and decide again
                await self.session.rollback()
            except IntegrityError:
                # concurrent insert for the same email, or the code is held by another email
                await self.session.rollback()
                self.session.expunge_all()
        raise InternalError("could not issue otp, please try again")

    async def verify(self, *, code: int, email: str, phone: str | None = None) -> bool:
        """Check `code` for `email` and consume the record on success."""
        try:
            record = await self.get_record(email)
            if record is None:
                if self.missing_record_passes:
                    return True
                raise RequestError("no otp found")

            if self.clock() > as_utc(record.expiry_time):
                raise RequestError("otp has expired")

            if record.code != int(code):
                if not has_text(phone) or not await self.phone_oracle.is_verified(phone):
                    raise RequestError("invalid passcode")
                logger.info("OTP mismatch for %s accepted through verified phone", email)

            await self.session.delete(record)
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise InternalError.from_exception(exc) from exc
        logger.info("Verified OTP for %s", email)
        return True

    async def status(self, email: str) -> OtpStatus:
        """Read-only view of the record: expiry, resend hint and attempt count."""
        try:
            record = await self.get_record(email)
        except SQLAlchemyError as exc:
            raise InternalError.from_exception(exc) from exc

        if record is None:
            return OtpStatus(expiry_time=0, message="no otp data found", attempts=0)

        wait = resend_wait_seconds(record, self.clock())
        message = f"please wait {wait} seconds before resending otp" if wait else "otp can be sent"
        return OtpStatus(
            expiry_time=to_epoch_millis(record.expiry_time),
            message=message,
            attempts=record.resend_attempts,
        )
