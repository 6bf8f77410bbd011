from typing import Any, Optional

from pydantic import BaseModel, field_validator


# Fields stay optional here: OtpManager owns the "required" / format checks so
# that missing input is reported as 400 {error}, like any other InvalidInput.
class SendOtpIn(BaseModel):
    email: Optional[str] = None


class SendOtpOut(BaseModel):
    message: str
    email: str


class VerifyOtpIn(BaseModel):
    email: Optional[str] = None
    otp: Optional[str] = None

    @field_validator("otp", mode="before")
    @classmethod
    def otp_as_text(cls, v: Any) -> Any:
        # clients post the code as a JSON number as often as a string
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v


class VerifyOtpOut(BaseModel):
    success: bool = True
    message: str
    email: str
