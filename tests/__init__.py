import os

# Settings are read at import time; pin a fast, self-contained configuration.
os.environ.setdefault("ENVIRONMENT", "dev")
os.environ.setdefault("AUTH_STORE", "memory")
os.environ.setdefault("EMAIL_PROVIDER", "console")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("SECRET_KEY", "test-secret-key-with-at-least-32-characters")
os.environ.setdefault("FIXED_OTP", "")
