from typing import Literal, Optional
from pydantic import BaseModel, Field, ConfigDict


class Principal(BaseModel):
    """인증된 사용자 정보 (외부 인증 서비스가 발급한 토큰에서 추출)"""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="사용자 ID")
    email: Optional[str] = Field(None, description="사용자 이메일")
    role: Literal["customer", "admin"] = Field("customer", description="사용자 역할")

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"
