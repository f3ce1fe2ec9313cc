import re
from typing import Optional
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator

from src.infrascan.errors import ValidationError

DEFAULT_REGION = "us-east-1"
REGION_PATTERN = re.compile(r"^[a-z]{2}-[a-z]+-\d+$")
KEY_MIN_LENGTH = 16
KEY_MAX_LENGTH = 128


class Credentials(BaseModel):
    access_key: str
    secret_key: str = Field(..., repr=False)
    region: str = DEFAULT_REGION

    @field_validator("access_key")
    @classmethod
    def check_access_key(cls, value: str) -> str:
        if not KEY_MIN_LENGTH <= len(value) <= KEY_MAX_LENGTH:
            raise ValueError("Invalid AWS Access Key format")
        return value

    @field_validator("secret_key")
    @classmethod
    def check_secret_key(cls, value: str) -> str:
        if not KEY_MIN_LENGTH <= len(value) <= KEY_MAX_LENGTH:
            raise ValueError("Invalid AWS Secret Key format")
        return value

    @field_validator("region")
    @classmethod
    def check_region(cls, value: str) -> str:
        if not REGION_PATTERN.match(value):
            raise ValueError("Invalid AWS region format (e.g., us-east-1)")
        return value

    @classmethod
    def build(cls, access_key: Optional[str], secret_key: Optional[str], region: Optional[str]) -> "Credentials":
        """
        Validates a raw triple, raising ValidationError with a readable reason.
        """
        if not access_key or not secret_key or not region:
            raise ValidationError("Missing required credentials")
        try:
            return cls(access_key=access_key, secret_key=secret_key, region=region)
        except PydanticValidationError as e:
            reasons = [err["msg"].replace("Value error, ", "", 1) for err in e.errors()]
            raise ValidationError("; ".join(reasons), {"fields": [err["loc"][0] for err in e.errors()]})

    def masked_access_key(self) -> str:
        return f"{self.access_key[:4]}...{self.access_key[-4:]}"

    def to_profile(self, profile: str = "default") -> str:
        """Renders the shared-credentials file format the AWS tooling reads."""
        return (
            f"[{profile}]\n"
            f"aws_access_key_id = {self.access_key}\n"
            f"aws_secret_access_key = {self.secret_key}\n"
            f"region = {self.region}\n"
        )


class ExtractionResult(BaseModel):
    success: bool
    access_key: Optional[str] = None
    secret_key: Optional[str] = Field(None, repr=False)
    region: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def found(cls, access_key: str, secret_key: str, region: Optional[str] = None) -> "ExtractionResult":
        return cls(success=True, access_key=access_key, secret_key=secret_key, region=region or DEFAULT_REGION)

    @classmethod
    def failed(cls, reason: str) -> "ExtractionResult":
        return cls(success=False, error=reason)
