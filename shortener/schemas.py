from pydantic import BaseModel, AnyUrl, ConfigDict, Field, TypeAdapter, ValidationError, field_validator
from pydantic.alias_generators import to_camel
from typing import Optional
from datetime import datetime
from uuid import UUID

_url_adapter = TypeAdapter(AnyUrl)

class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

class LinkCreate(CamelModel):
    target_url: str
    code: Optional[str] = Field(None, pattern=r"^[A-Za-z0-9]{6,8}$")

    @field_validator("target_url")
    @classmethod
    def must_be_absolute_url(cls, value: str) -> str:
        # Validate only; the URL is stored and redirected to exactly as submitted
        try:
            _url_adapter.validate_python(value)
        except ValidationError:
            raise ValueError("Invalid URL format")
        return value

class LinkResponse(CamelModel):
    id: UUID
    code: str
    short_url: str
    target_url: str
    total_clicks: int
    last_clicked: Optional[datetime]
    created_at: datetime
    updated_at: datetime
