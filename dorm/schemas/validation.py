from typing import Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from dorm.database.models import ResidentType, IdentityRole
from dorm.errors import ValidationError

EMAIL_PATTERN = r'^[^@\s]+@[^@\s]+\.[^@\s]+$'
PHONE_PATTERN = r'^\+?[\d\s-]{9,20}$'

ModelT = TypeVar("ModelT", bound=BaseModel)


def _blank_to_none(v):
    if isinstance(v, str) and not v.strip():
        return None
    return v


class TenantCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, use_enum_values=True, validate_default=True)

    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    email: Optional[str] = Field(default=None, pattern=EMAIL_PATTERN)
    phone: Optional[str] = Field(default=None, pattern=PHONE_PATTERN)
    address: Optional[str] = None
    emergency_contact: Optional[str] = None
    residents: ResidentType = ResidentType.dependent

    @field_validator('email', 'phone', 'address', 'emergency_contact', mode='before')
    def optional_blank(cls, v):
        return _blank_to_none(v)

    @model_validator(mode='after')
    def primary_needs_address(self):
        if self.residents == ResidentType.primary.value and not self.address:
            raise ValueError("address is required for a primary resident")
        return self


class TenantUpdate(BaseModel):
    """Partial update: only fields that were passed are applied"""
    model_config = ConfigDict(str_strip_whitespace=True, use_enum_values=True)

    first_name: Optional[str] = Field(default=None, min_length=1)
    last_name: Optional[str] = Field(default=None, min_length=1)
    email: Optional[str] = Field(default=None, pattern=EMAIL_PATTERN)
    phone: Optional[str] = Field(default=None, pattern=PHONE_PATTERN)
    address: Optional[str] = None
    emergency_contact: Optional[str] = None
    residents: Optional[ResidentType] = None

    @field_validator('email', 'phone', 'address', 'emergency_contact', mode='before')
    def optional_blank(cls, v):
        return _blank_to_none(v)

    @field_validator('first_name', 'last_name', 'residents')
    def not_cleared(cls, v):
        if v is None:
            raise ValueError("field cannot be cleared")
        return v


class ProvisioningRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, use_enum_values=True, validate_default=True)

    email: str = Field(pattern=EMAIL_PATTERN)
    password: str = Field(min_length=6)
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    address: str = Field(min_length=1)
    phone: Optional[str] = Field(default=None, pattern=PHONE_PATTERN)
    role: IdentityRole = IdentityRole.tenant

    @field_validator('email', mode='after')
    def lower_email(cls, v):
        return v.lower()

    @field_validator('phone', mode='before')
    def optional_blank(cls, v):
        return _blank_to_none(v)


def parse(model: Type[ModelT], data) -> ModelT:
    """Validate input into `model`, raising the core ValidationError on failure."""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        fields = sorted({".".join(str(p) for p in err["loc"]) or "__root__" for err in e.errors()})
        raise ValidationError(
            f"Invalid {model.__name__}: {', '.join(fields)}",
            errors=e.errors(include_url=False)
        ) from e
