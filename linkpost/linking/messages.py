from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

MESSAGE_KIND = "oauth-result"

class OAuthResult(BaseModel):
    """Envelope the callback page posts to its opener."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    kind: str = MESSAGE_KIND
    success: bool = False
    error: Optional[str] = None
    description: Optional[str] = None
    message: Optional[str] = None
    access_token: Optional[str] = Field(None, alias="accessToken")
    refresh_token: Optional[str] = Field(None, alias="refreshToken")
    expires_in: Optional[int] = Field(None, alias="expiresIn")
    scope: Optional[str] = None
    profile: Dict[str, Any] = Field(default_factory=dict)
    email: Optional[str] = None

    @property
    def profile_id(self) -> Optional[str]:
        return self.profile.get("sub") or self.profile.get("id")

    @property
    def contact_email(self) -> Optional[str]:
        return self.email or self.profile.get("email")

    def reason(self) -> str:
        detail = self.description or self.message
        return f"{self.error}: {detail}" if detail else str(self.error)

def is_oauth_result(data: Any) -> bool:
    """Filter for message events; unrelated same-origin traffic is dropped."""
    if not isinstance(data, dict):
        return False
    kind = data.get("kind")
    if kind is not None and kind != MESSAGE_KIND:
        return False
    return bool(data.get("error") or data.get("success") or data.get("accessToken"))

def parse_message(data: Any) -> Optional[OAuthResult]:
    if not is_oauth_result(data):
        return None
    try:
        return OAuthResult.model_validate(data)
    except ValidationError:
        return None
