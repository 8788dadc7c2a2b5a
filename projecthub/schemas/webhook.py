"""
schemas/webhook.py
------------------
Parsed shapes of identity-provider webhook payloads.

Only the fields the processor reads are declared; everything else in the
provider's payload is ignored so new provider fields never break parsing.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _Lenient(BaseModel):
    model_config = ConfigDict(extra="ignore")


class WebhookEnvelope(_Lenient):
    type: str = Field(..., min_length=1)
    data: Dict[str, Any]


class EmailAddress(_Lenient):
    id: Optional[str] = None
    email_address: Optional[str] = None


class UserEventData(_Lenient):
    id: str = Field(..., min_length=1)
    email_addresses: List[EmailAddress] = []
    primary_email_address_id: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    image_url: Optional[str] = None

    def primary_email(self) -> Optional[str]:
        """The address flagged as primary, else the first one listed."""
        for address in self.email_addresses:
            if address.id and address.id == self.primary_email_address_id:
                return address.email_address or None
        if self.email_addresses:
            return self.email_addresses[0].email_address or None
        return None


class OrganizationEventData(_Lenient):
    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    slug: Optional[str] = None


class OrganizationRef(_Lenient):
    id: str = Field(..., min_length=1)


class PublicUserData(_Lenient):
    user_id: str = Field(..., min_length=1)


class MembershipEventData(_Lenient):
    organization: OrganizationRef
    public_user_data: PublicUserData
