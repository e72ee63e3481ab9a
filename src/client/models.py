"""Data models for the posts API and its registration endpoint."""
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field


class Credentials(BaseModel):
    """Email/password pair submitted to /register."""
    email: str = Field(description="Generated email address")
    password: str = Field(description="Generated password")


class AuthResponse(BaseModel):
    """Answer of /register."""
    model_config = ConfigDict(extra="allow")

    accessToken: str = Field(description="Bearer token for protected writes")
    user: Optional[Dict[str, Any]] = Field(default=None)


class Post(BaseModel):
    """A post as reported by the server. Unknown fields are kept."""
    model_config = ConfigDict(extra="allow")

    id: Optional[int] = Field(default=None, description="Server-assigned identifier")
    title: Optional[str] = None
    body: Optional[str] = None
    content: Optional[str] = None
    userId: Optional[int] = None

    def payload(self) -> Dict[str, Any]:
        """Fields to submit on create/update (id and unset fields left out)."""
        return self.model_dump(exclude={"id"}, exclude_none=True)
