from enum import StrEnum


class TokenType(StrEnum):
    """Value of the ``type`` claim carried by every signed token."""
    ACCESS = "access"
    REFRESH = "refresh"


class TokenStatus(StrEnum):
    """Outcome of verifying a bearer token."""
    ACCESS = "access"
    REFRESH = "refresh"
    INVALID = "invalid"


class ErrorKind(StrEnum):
    """Tag carried by every application exception."""
    VALIDATION = "validation"
    CONFLICT = "conflict"
    RATE_LIMITED = "rate_limited"
    AUTH = "auth"
    NOT_FOUND = "not_found"
    INTERNAL = "internal"


class ActivityAction(StrEnum):
    """Action names written to the activity log."""
    OTP_SENT = "otp_sent"
    OTP_RESENT = "otp_resent"
    REGISTRATION_COMPLETED = "registration_completed_otp"
    LOGIN_SUCCESS = "login_success"
    LOGIN_FAILED = "login_failed"
    TOKEN_REFRESHED = "token_refreshed"
    TOKEN_REFRESH_FAILED = "token_refresh_failed"
    LOGOUT = "logout_success"
    PROFILE_ACCESSED = "profile_accessed"
    PROFILE_UPDATED = "profile_updated"
    PASSWORD_CHANGED = "password_changed"
    PASSWORD_CHANGE_FAILED = "password_change_failed"


class AuthErrorDetails(StrEnum):
    """Authentication and authorization related error messages."""

    PASSWORD_REQUIRED = "Password is required"
    PASSWORD_TOO_SHORT = "Password must be at least 8 characters long"
    PASSWORD_TOO_LONG = "Password must be at most 72 characters long"
    PASSWORD_MISSING_UPPERCASE = "Password must contain at least one uppercase letter"
    PASSWORD_MISSING_LOWERCASE = "Password must contain at least one lowercase letter"
    PASSWORD_MISSING_NUMBER = "Password must contain at least one number"
    PASSWORD_MISSING_SPECIAL = "Password must contain at least one special character"

    EMAIL_REQUIRED = "Email is required"
    EMAIL_INVALID = "Please provide a valid email address"
    EMAIL_TOO_LONG = "Email must be at most 255 characters long"
    NAME_REQUIRED = "Name is required"
    NAME_LENGTH = "Name must be between 2 and 100 characters"
    NAME_CHARACTERS = "Name can only contain letters, spaces, hyphens, apostrophes and periods"
    PHONE_INVALID = "Phone number must contain 10 to 15 digits"
    DATE_OF_BIRTH_INVALID = "Date of birth must be a valid date (YYYY-MM-DD)"
    DATE_OF_BIRTH_FUTURE = "Date of birth cannot be in the future"
    DATE_OF_BIRTH_AGE = "You must be between 13 and 150 years old"
    PROFILE_IMAGE_URL_INVALID = "Profile image URL must be a valid http(s) URL"
    OTP_REQUIRED = "Verification code is required"
    OTP_FORMAT = "Verification code must be {length} digits"
    UNKNOWN_FIELD = "Unknown field"
    NO_FIELDS_TO_UPDATE = "No valid fields provided for update"
    CURRENT_PASSWORD_REQUIRED = "Current password is required"
    NEW_PASSWORD_SAME = "New password must be different from the current password"

    INVALID_CREDENTIALS = "Invalid email or password"
    ACCOUNT_DEACTIVATED = "Your account has been deactivated. Please contact support."
    CURRENT_PASSWORD_INCORRECT = "Current password is incorrect"

    RATE_LIMIT_EXCEEDED_LOGIN = "Too many login attempts. Please try again later"
    RATE_LIMIT_EXCEEDED_OTP_VERIFY = "Too many verification attempts. Please try again later"

    TOKEN_MISSING = "No authentication token provided"
    TOKEN_INVALID = "Invalid or expired authentication token"
    TOKEN_TYPE_INVALID = "Invalid token type"
    USER_NOT_FOUND_OR_INACTIVE = "User not found or inactive"
    REFRESH_TOKEN_REQUIRED = "Refresh token is required"
    REFRESH_TOKEN_INVALID = "Invalid or expired refresh token"
    SESSION_EXPIRED = "Session expired. Please log in again."

    # OTP registration
    EMAIL_ALREADY_EXISTS = "An account with this email address already exists"
    OTP_ALREADY_SENT = "OTP already sent to this email. Please wait {minutes} minute(s) before requesting a new one."
    OTP_SEND_FAILED = "Failed to send verification email. Please try again."
    OTP_INVALID_OR_EXPIRED = "Invalid or expired verification code. Please start registration again."
    OTP_EXPIRED = "Verification code has expired. Please start registration again."
    OTP_ATTEMPTS_EXCEEDED = "Too many invalid attempts. Please start registration again."
    OTP_INVALID_REMAINING = "Invalid verification code. {remaining} {noun} remaining."
    OTP_INVALID_NONE_REMAINING = "Invalid verification code. No attempts remaining. Please start registration again."
    NO_PENDING_REGISTRATION = "No pending registration found for this email. Please start registration again."
    RESEND_HOURLY_LIMIT = "Maximum {limit} resend attempts per hour exceeded. Please try again later."
    RESEND_COOLDOWN = "Please wait {seconds} seconds before requesting another OTP."


class SuccessMessages(StrEnum):
    """Messages returned with successful responses."""

    OTP_SENT = "Verification code sent to your email"
    OTP_RESENT = "A new verification code has been sent to your email"
    REGISTRATION_COMPLETE = "Registration completed successfully"
    LOGIN = "Login successful"
    TOKEN_REFRESHED = "Token refreshed successfully"
    LOGOUT = "Successfully logged out. Thank you for using our service!"
    PROFILE_RETRIEVED = "Profile retrieved successfully"
    PROFILE_UPDATED = "Profile updated successfully"
    PASSWORD_CHANGED = "Password changed successfully"


class GeneralErrorDetails(StrEnum):
    """General application error messages."""

    INTERNAL_SERVER_ERROR = "An internal server error occurred"
    VALIDATION_FAILED = "Validation failed"
    BAD_REQUEST = "Invalid request"
    UNAUTHORIZED = "Authentication required"
    NOT_FOUND = "Resource not found"
    RATE_LIMIT_EXCEEDED = "Too many requests. Please try again later"
    SERVICE_UNAVAILABLE = "Service temporarily unavailable"
