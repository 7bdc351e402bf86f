"""Common schemas for the API."""

import typing as t

from ninja import ModelSchema, Schema
from pydantic import StringConstraints

from accounts.models import ClubUser

StrippedString = t.Annotated[str, StringConstraints(strip_whitespace=True)]
OneToFiveHundredString = t.Annotated[str, StringConstraints(min_length=1, max_length=500, strip_whitespace=True)]


class VersionResponse(Schema):
    version: str


class ResponseOk(Schema):
    status: t.Literal["ok"] = "ok"


class ResponseMessage(Schema):
    message: str


class ValidationErrorResponse(Schema):
    errors: dict[str, str | list[str]]


class ErrorResponse(Schema):
    detail: str
    code: str | None = None


class MemberSchema(ModelSchema):
    display_name: str

    class Meta:
        model = ClubUser
        fields = ("id", "name", "email")
