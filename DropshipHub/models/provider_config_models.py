from typing import Optional
from pydantic import BaseModel, Field


class ProviderConfig(BaseModel):
    """Credential/enablement record for one dropshipping provider"""
    name: str
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    enabled: bool = True
    store_id: Optional[str] = None
    request_timeout: float = Field(default=30.0, gt=0, le=120)

    def credentials(self) -> dict:
        """Credential values only, for matching against a provider's credential schema"""
        return {
            key: value
            for key, value in {"api_key": self.api_key, "store_id": self.store_id}.items()
            if value
        }


class DropshipSettings(BaseModel):
    """Process-wide resilience and concurrency settings"""
    max_concurrency: int = Field(default=5, ge=1, le=50)
    request_timeout: float = Field(default=30.0, gt=0, le=120)
    retry_max_attempts: int = Field(default=3, ge=1)
    retry_base_delay: float = Field(default=0.5, ge=0)
    retry_backoff_factor: float = Field(default=2.0, ge=1)
    retry_max_delay: float = Field(default=30.0, ge=0)
    retry_jitter: bool = True
