"""Shared pydantic config.

The client speaks camelCase (firstName, isEmailVerified); Python code
uses snake_case. CamelModel aliases every field so both spellings are
accepted on input and camelCase is emitted on output.
"""

from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, EmailStr
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
        "from_attributes": True,
    }


def _strip_lower(value: Any) -> Any:
    return value.strip().lower() if isinstance(value, str) else value


# Emails are stored lowercased; EmailStr checks the syntax after trimming
NormalizedEmail = Annotated[EmailStr, BeforeValidator(_strip_lower)]
