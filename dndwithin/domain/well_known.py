"""
Names of global settings read by the domain and the dispatch worker.

Defaults live next to the names so every reader falls back to the
same value when a row is missing or malformed.
"""

ACCOUNT_ACTIVATION_EXPIRATION_MINUTES = "account_activation_expiration_minutes"
DEFAULT_ACTIVATION_EXPIRATION_MINUTES = 5

ACTIVATION_LINK_FORMAT = "activation_link_format"
ACTIVATION_EMAIL_SUBJECT = "activation_email_subject"
DEFAULT_ACTIVATION_EMAIL_SUBJECT = "Activate your DND Within account"

PASSWORD_RESET_EXPIRATION_MINUTES = "password_reset_expiration_minutes"
DEFAULT_PASSWORD_RESET_EXPIRATION_MINUTES = 15

PASSWORD_RESET_LINK_FORMAT = "password_reset_link_format"
PASSWORD_RESET_EMAIL_SUBJECT = "password_reset_email_subject"
DEFAULT_PASSWORD_RESET_EMAIL_SUBJECT = "Reset your DND Within password"

SERVICE_ACCOUNT_USERNAME = "service_account_username"

JWT_TOKEN_LIFETIME_HOURS = "jwt_token_lifetime_hours"
DEFAULT_JWT_TOKEN_LIFETIME_HOURS = 8

EMAIL_SEND_BATCH_LIMIT = "email_send_batch_limit"
DEFAULT_EMAIL_SEND_BATCH_LIMIT = 100

EMAIL_SEND_ATTEMPTS_MAX = "email_send_attempts_max"
DEFAULT_EMAIL_SEND_ATTEMPTS_MAX = 5
