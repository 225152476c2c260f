"""
giftstrack/schemas/master_data.py

Purpose: Reference ("master") data models

- One item model per collection, wire field names kept as aliases
- MasterData aggregate: all seven collections required
- MasterDataCategory enumerates the collections for default lookups
"""

from enum import Enum
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class MasterDataCategory(str, Enum):
    """Collections of the master data aggregate, by wire name."""
    STATES = "states"
    DISTRICTS = "districts"
    CITIES = "cities"
    EVENT_TYPES = "eventTypes"
    GIFT_TYPES = "giftTypes"
    INVITATION_STATUS = "invitationStatus"
    CARE_OF_OPTIONS = "careOfOptions"


# Categories a superadmin may edit through the category endpoints
EDITABLE_CATEGORIES = (
    MasterDataCategory.EVENT_TYPES,
    MasterDataCategory.GIFT_TYPES,
    MasterDataCategory.INVITATION_STATUS,
    MasterDataCategory.CARE_OF_OPTIONS,
)


class MasterDataItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: Union[int, str]
    name: str
    code: Optional[str] = None
    is_active: Optional[bool] = Field(default=None, alias="isActive")
    is_default: Optional[bool] = Field(default=None, alias="isDefault")


class State(MasterDataItem):
    pass


class District(MasterDataItem):
    state_id: Optional[Union[int, str]] = None


class City(MasterDataItem):
    district_id: Optional[Union[int, str]] = None


class MasterData(BaseModel):
    """
    Aggregate of the seven reference collections.

    Every field is required: a payload missing any collection fails
    validation as a whole.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    states: List[State]
    districts: List[District]
    cities: List[City]
    event_types: List[MasterDataItem] = Field(..., alias="eventTypes")
    gift_types: List[MasterDataItem] = Field(..., alias="giftTypes")
    invitation_status: List[MasterDataItem] = Field(..., alias="invitationStatus")
    care_of_options: List[MasterDataItem] = Field(..., alias="careOfOptions")

    def collection(self, category: MasterDataCategory) -> List[MasterDataItem]:
        """Returns the items of one collection by category."""
        return getattr(self, _CATEGORY_FIELDS[MasterDataCategory(category)])


_CATEGORY_FIELDS = {
    MasterDataCategory.STATES: "states",
    MasterDataCategory.DISTRICTS: "districts",
    MasterDataCategory.CITIES: "cities",
    MasterDataCategory.EVENT_TYPES: "event_types",
    MasterDataCategory.GIFT_TYPES: "gift_types",
    MasterDataCategory.INVITATION_STATUS: "invitation_status",
    MasterDataCategory.CARE_OF_OPTIONS: "care_of_options",
}


def is_valid_master_data(data: Any) -> bool:
    """
    Structural check applied to cached aggregates.

    True only when `data` is a mapping holding all seven collections as lists.
    """
    if not isinstance(data, dict):
        return False
    return all(isinstance(data.get(category.value), list) for category in MasterDataCategory)


class MasterDataItemPayload(BaseModel):
    """Body for superadmin create/update calls on an editable category."""
    model_config = ConfigDict(populate_by_name=True)

    name: str
    is_active: Optional[bool] = Field(default=None, alias="isActive")
    is_default: Optional[bool] = Field(default=None, alias="isDefault")
