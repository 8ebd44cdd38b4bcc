"""HTML form models.

Each form is a pydantic model. ``bind_form`` validates submitted form data and
returns the per-field error messages shown next to the inputs when the form is
re-rendered.
"""

from typing import Any, Dict, Mapping, Optional, Tuple, Type, TypeVar

from pydantic import (
    BaseModel,
    EmailStr,
    ValidationInfo,
    ValidationError,
    ValidatorFunctionWrapHandler,
    field_validator,
)
from pydantic_core import PydanticCustomError

PERMITTED_EXPIRES = (1, 7, 365)
TITLE_MAX_CHARS = 100
PASSWORD_MIN_CHARS = 8
PASSWORD_MAX_BYTES = 72

F = TypeVar("F", bound=BaseModel)


def not_blank(value: str) -> str:
    if value.strip() == "":
        raise PydanticCustomError("blank", "This field cannot be blank")
    return value


def valid_email(value: Any, handler: ValidatorFunctionWrapHandler) -> str:
    """Run the EmailStr validation with the form's own messages."""
    if isinstance(value, str):
        not_blank(value)
    try:
        return handler(value)
    except ValidationError:
        raise PydanticCustomError(
            "email", "This field must be a valid email address"
        ) from None


def valid_new_password(value: str) -> str:
    not_blank(value)
    if len(value) < PASSWORD_MIN_CHARS:
        raise PydanticCustomError(
            "min_chars",
            "This field must be at least {min} characters long",
            {"min": PASSWORD_MIN_CHARS},
        )
    if len(value.encode("utf-8")) > PASSWORD_MAX_BYTES:
        raise PydanticCustomError(
            "max_bytes",
            "This field must be no more than {max} bytes long",
            {"max": PASSWORD_MAX_BYTES},
        )
    return value


class SnippetCreateForm(BaseModel):
    title: str = ""
    content: str = ""
    expires: int = 365

    @field_validator("title")
    @classmethod
    def check_title(cls, v: str) -> str:
        not_blank(v)
        if len(v) > TITLE_MAX_CHARS:
            raise PydanticCustomError(
                "max_chars",
                "This field cannot be more than {max} characters long",
                {"max": TITLE_MAX_CHARS},
            )
        return v

    @field_validator("content")
    @classmethod
    def check_content(cls, v: str) -> str:
        return not_blank(v)

    @field_validator("expires", mode="before")
    @classmethod
    def check_expires(cls, v: Any) -> int:
        try:
            days = int(v)
        except (TypeError, ValueError):
            days = None
        if days not in PERMITTED_EXPIRES:
            raise PydanticCustomError(
                "permitted_value", "This field must equal 1, 7 or 365"
            )
        return days


class UserSignupForm(BaseModel):
    name: str = ""
    email: EmailStr = ""
    password: str = ""

    @field_validator("name")
    @classmethod
    def check_name(cls, v: str) -> str:
        return not_blank(v)

    @field_validator("email", mode="wrap")
    @classmethod
    def check_email(cls, v: Any, handler: ValidatorFunctionWrapHandler) -> str:
        return valid_email(v, handler)

    @field_validator("password")
    @classmethod
    def check_password(cls, v: str) -> str:
        return valid_new_password(v)


class UserLoginForm(BaseModel):
    email: EmailStr = ""
    password: str = ""

    @field_validator("email", mode="wrap")
    @classmethod
    def check_email(cls, v: Any, handler: ValidatorFunctionWrapHandler) -> str:
        return valid_email(v, handler)

    @field_validator("password")
    @classmethod
    def check_password(cls, v: str) -> str:
        return not_blank(v)


class AccountPasswordUpdateForm(BaseModel):
    current_password: str = ""
    new_password: str = ""
    new_password_confirmation: str = ""

    @field_validator("current_password")
    @classmethod
    def check_current_password(cls, v: str) -> str:
        return not_blank(v)

    @field_validator("new_password")
    @classmethod
    def check_new_password(cls, v: str) -> str:
        return valid_new_password(v)

    @field_validator("new_password_confirmation")
    @classmethod
    def check_confirmation(cls, v: str, info: ValidationInfo) -> str:
        not_blank(v)
        if v != info.data.get("new_password"):
            raise PydanticCustomError("mismatch", "Passwords do not match")
        return v


def bind_form(
    form_class: Type[F], data: Mapping[str, Any]
) -> Tuple[Optional[F], Dict[str, Any], Dict[str, str]]:
    """
    Validate submitted form data.

    Returns:
        A tuple of the validated form (None when invalid), the submitted values
        to re-populate the inputs with, and a mapping of field name to error
        message.
    """
    values = {name: data.get(name, "") for name in form_class.model_fields}
    try:
        return form_class.model_validate(values), values, {}
    except ValidationError as e:
        field_errors: Dict[str, str] = {}
        for error in e.errors():
            field = str(error["loc"][0]) if error["loc"] else "__all__"
            field_errors.setdefault(field, error["msg"])
        return None, values, field_errors
