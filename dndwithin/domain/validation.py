"""
Business-rule validation returning structured failures.

Validators collect every violation into a ValidationResult so the caller
can report all of them at once. Nothing in this module raises for
invalid input.
"""

from email_validator import EmailNotValidError, validate_email

from .hashing import MAX_PASSWORD_BYTES
from .models import (
    Account,
    GetAllAccountsOptions,
    GetAllGlobalSettingsOptions,
    GlobalSetting,
    ValidationResult,
)
from .ports import AccountRepository

MAX_PAGE_SIZE = 25

ACCOUNT_SORT_FIELDS = frozenset({"username", "lastlogin"})
SETTING_SORT_FIELDS = frozenset({"name"})


def is_valid_email(email: str) -> bool:
    """Syntactic email check only; deliverability is not probed."""
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def _is_blank(value: str | None) -> bool:
    return value is None or not value.strip()


def validate_password(password: str | None, result: ValidationResult, field: str = "password") -> None:
    if _is_blank(password):
        result.add(field, "Password cannot be empty")
    elif len(password.encode()) > MAX_PASSWORD_BYTES:
        result.add(field, f"Password cannot be longer than {MAX_PASSWORD_BYTES} bytes")


class AccountValidator:
    """
    Validates a new account before creation.

    Uniqueness checks go through the repository; the database unique
    constraints still catch races between concurrent creators.
    """

    def __init__(self, repository: AccountRepository) -> None:
        self._repository = repository

    async def validate(self, account: Account) -> ValidationResult:
        result = ValidationResult()

        if _is_blank(account.first_name):
            result.add("first_name", "First name cannot be empty")
        if _is_blank(account.last_name):
            result.add("last_name", "Last name cannot be empty")

        if _is_blank(account.username):
            result.add("username", "Username cannot be empty")
        elif await self._repository.exists_by_username(account.username):
            result.add("username", "Username already in use")

        if _is_blank(account.email):
            result.add("email", "Email cannot be empty")
        elif not is_valid_email(account.email):
            result.add("email", "Email is not a valid email address")
        elif await self._repository.exists_by_email(account.email):
            result.add("email", "Email already exists. Please login instead")

        validate_password(account.password, result)
        return result


def validate_account_options(options: GetAllAccountsOptions) -> ValidationResult:
    result = ValidationResult()
    if options.sort_field is not None and options.sort_field.lower() not in ACCOUNT_SORT_FIELDS:
        result.add("sort_field", "You can only sort by Username or Lastlogin")
    _validate_paging(options.page, options.page_size, result)
    return result


def validate_setting_options(options: GetAllGlobalSettingsOptions) -> ValidationResult:
    result = ValidationResult()
    if options.sort_field is not None and options.sort_field.lower() not in SETTING_SORT_FIELDS:
        result.add("sort_field", "You can only sort by Name")
    _validate_paging(options.page, options.page_size, result)
    return result


def validate_global_setting(setting: GlobalSetting) -> ValidationResult:
    result = ValidationResult()
    if setting.id is None or setting.id.int == 0:
        result.add("id", "Id cannot be empty")
    if _is_blank(setting.name):
        result.add("name", "Name cannot be empty")
    if _is_blank(setting.value):
        result.add("value", "Value cannot be empty")
    return result


def _validate_paging(page: int, page_size: int, result: ValidationResult) -> None:
    if page < 1:
        result.add("page", "Page must be greater than or equal to 1")
    if not 1 <= page_size <= MAX_PAGE_SIZE:
        result.add("page_size", f"You can get between 1 and {MAX_PAGE_SIZE} items per page")
