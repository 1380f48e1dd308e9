from __future__ import annotations

from typing import Annotated

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, StringConstraints


def _upper(value):
    return value.strip().upper() if isinstance(value, str) else value


def _digits(value):
    if not isinstance(value, str):
        return value
    return "".join(ch for ch in value if ch.isdigit()) or None


CountryCode = Annotated[str, BeforeValidator(_upper), StringConstraints(pattern=r"^[A-Z]{2}$")]
# "6109.10.00" and "610910 00" both become "61091000".
HsCode = Annotated[str | None, BeforeValidator(_digits)]
# Non-negative amount in minor units.
Cents = Annotated[int, Field(ge=0)]


class BaseSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)
