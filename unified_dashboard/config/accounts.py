"""
Per-Account Settings

Fee configuration and source credentials for one identity. These values are
read from the account settings store on every pipeline run and passed down
explicitly; nothing in the pipeline reads them from global state.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from unified_dashboard.models import Identity


class MarketerType(str, Enum):
    """How the marketer commission is charged"""
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class FeeSettings(BaseModel):
    """Fee policy configuration"""
    gateway_fee_enabled: bool = True
    gateway_fee_percent: float = 2.0
    marketer_enabled: bool = False
    marketer_type: MarketerType = MarketerType.PERCENTAGE
    marketer_value: float = 0.0
    cod_remittance_fee: float = 0.49
    cod_fee_on_delivery_only: bool = False


class SourceCredentials(BaseModel):
    """Opaque credentials for the three upstream sources"""
    shopify_store_url: Optional[str] = None
    shopify_access_token: Optional[str] = None
    shiprocket_email: Optional[str] = None
    shiprocket_password: Optional[str] = None
    facebook_access_token: Optional[str] = None
    facebook_ad_account_id: Optional[str] = None
    facebook_app_id: Optional[str] = None
    facebook_app_secret: Optional[str] = None


class AccountSettings(BaseModel):
    """Everything the pipeline needs to know about one account"""
    fees: FeeSettings = Field(default_factory=FeeSettings)
    credentials: SourceCredentials = Field(default_factory=SourceCredentials)


class AccountSettingsStore(ABC):
    """Key-value configuration store keyed by identity"""

    @abstractmethod
    async def get_settings(self, identity: Identity) -> AccountSettings:
        """Settings for an identity; defaults when nothing is stored"""

    @abstractmethod
    async def save_source_token(self, identity: Identity, source: str, token: str) -> None:
        """Persist an upgraded access token for a source"""

    @abstractmethod
    async def list_identities(self, limit: int) -> List[Identity]:
        """Identities with credentials configured, at most ``limit``"""
