from otp_auth.db.models.otp import OtpRecord
from otp_auth.db.models.user import DeleteAccountRequest, User

__all__ = ["DeleteAccountRequest", "OtpRecord", "User"]
