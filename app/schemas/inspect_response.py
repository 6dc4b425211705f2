from pydantic import BaseModel, Field


class InspectResponse(BaseModel):
    """POST /inspect 응답 (camelCase 키 그대로 노출)"""
    width: int
    height: int
    durationSec: float = Field(..., description="길이(초, 소수 3자리)")
    aspectRatio: float = Field(..., description="width / height (소수 3자리)")
    shortsEligible: bool
    reason: list[str] = Field(default_factory=list, description="위반 항목")

    class Config:
        json_schema_extra = {
            "example": {
                "width": 952,
                "height": 718,
                "durationSec": 48.033,
                "aspectRatio": 1.326,
                "shortsEligible": False,
                "reason": ["NOT_VERTICAL", "ASPECT_RATIO_MISMATCH"],
            }
        }


class ErrorResponse(BaseModel):
    """에러 응답"""
    error: str = Field(..., description="에러 분류 코드")
    message: str = Field(..., description="짧은 진단 메시지")
