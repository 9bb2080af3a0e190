from pydantic import BaseModel, Field


class TokenData(BaseModel):
    sub: str = Field(..., description="Subject (user identifier) of the token")
    email: str | None = Field(default=None, description="Optional email claim")


class Identity(BaseModel):
    """The verified caller of a request."""

    uid: str = Field(..., description="Stable user identifier")
    email: str | None = None
