"""
Pydantic schemas for the stored portfolio document.

The document keeps the camelCase keys the web client writes. These schemas
validate it at the load/edit boundary and convert to and from the asset
dataclasses the engine works with.
"""

from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from models.asset import (
    GROUP_TYPES,
    Asset,
    CategoryType,
    Currency,
    GroupAsset,
    LeafAsset,
    SubAsset,
)
from models.portfolio import PortfolioSettings


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


class _Document(BaseModel):
    """Common config: accept both document keys and field names."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("id", mode="before", check_fields=False)
    @classmethod
    def id_as_string(cls, v: Any) -> Any:
        return str(v) if isinstance(v, int) else v

    @field_validator("name", "notes", mode="before", check_fields=False)
    @classmethod
    def blank_text(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("invested", "current_value", "qty", "units", mode="before", check_fields=False)
    @classmethod
    def blank_amount_is_zero(cls, v: Any) -> Any:
        return 0.0 if _blank(v) else v

    @field_validator("invested_usd", "price_updated_at", "nav_updated_at", mode="before", check_fields=False)
    @classmethod
    def blank_is_none(cls, v: Any) -> Any:
        return None if _blank(v) else v

    @field_validator("currency", mode="before", check_fields=False)
    @classmethod
    def default_currency(cls, v: Any) -> Any:
        return Currency.THB if _blank(v) else v

    @field_validator("price_updated_at", "nav_updated_at", check_fields=False)
    @classmethod
    def assume_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


class SubAssetDocument(_Document):
    """A sub-asset as stored inside a stock group."""

    id: str = Field(..., min_length=1)
    name: str = ""
    currency: Currency = Currency.THB
    invested: float = 0.0
    invested_usd: Optional[float] = Field(None, alias="investedUSD")
    current_value: float = Field(0.0, alias="currentValue")
    qty: float = 0.0
    symbol: Optional[str] = Field(None, alias="yahooSymbol")
    price_updated_at: Optional[datetime] = Field(None, alias="priceUpdatedAt")
    notes: str = ""

    def to_sub_asset(self) -> SubAsset:
        return SubAsset(**self.model_dump())


class AssetDocument(_Document):
    """An asset as stored in the portfolio document; the type picks the variant."""

    id: str = Field(..., min_length=1)
    name: str = ""
    type: CategoryType = CategoryType.OTHER
    currency: Currency = Currency.THB
    is_speculative: bool = Field(False, alias="isSpeculative")
    invested: float = 0.0
    invested_usd: Optional[float] = Field(None, alias="investedUSD")
    current_value: float = Field(0.0, alias="currentValue")
    color: Optional[str] = None
    notes: str = ""
    nav_updated_at: Optional[datetime] = Field(None, alias="navUpdatedAt")
    price_updated_at: Optional[datetime] = Field(None, alias="priceUpdatedAt")
    units: float = 0.0
    fund_code: Optional[str] = Field(None, alias="finnomenaCode")
    sub_assets: List[SubAssetDocument] = Field(default_factory=list, alias="subAssets")

    @field_validator("type", mode="before")
    @classmethod
    def unknown_type_is_other(cls, v: Any) -> Any:
        # Legacy documents carry categories that no longer exist
        if isinstance(v, CategoryType):
            return v
        if _blank(v) or v not in {c.value for c in CategoryType}:
            return CategoryType.OTHER
        return v

    @field_validator("is_speculative", mode="before")
    @classmethod
    def missing_flag_is_false(cls, v: Any) -> Any:
        return False if v is None else v

    @field_validator("sub_assets", mode="before")
    @classmethod
    def missing_list_is_empty(cls, v: Any) -> Any:
        return [] if v is None else v

    def to_asset(self) -> Asset:
        common = self.model_dump(exclude={"units", "fund_code", "sub_assets"})
        if self.type in GROUP_TYPES:
            return GroupAsset(sub_assets=[s.to_sub_asset() for s in self.sub_assets], **common)
        return LeafAsset(units=self.units, fund_code=self.fund_code or None, **common)


class SettingsDocument(_Document):
    """Portfolio settings; missing or null values take the defaults."""

    dca: Optional[float] = None
    spec_cap: Optional[float] = Field(None, alias="specCap")

    def to_settings(self, defaults: PortfolioSettings) -> PortfolioSettings:
        return PortfolioSettings(
            dca=defaults.dca if self.dca is None else self.dca,
            spec_cap=defaults.spec_cap if self.spec_cap is None else self.spec_cap,
        )


def asset_from_dict(data: Dict[str, Any]) -> Asset:
    """
    Build a LeafAsset or GroupAsset from its document representation.

    Raises:
        ValueError: if the id is missing or a field has the wrong shape
            (pydantic's ValidationError is a ValueError)
    """
    return AssetDocument.model_validate(data).to_asset()


def asset_to_dict(asset: Asset) -> Dict[str, Any]:
    """Serialize an asset to its JSON-ready document representation."""
    document = AssetDocument.model_validate(asdict(asset))
    exclude = {"units", "fund_code"} if isinstance(asset, GroupAsset) else None
    return document.model_dump(mode="json", by_alias=True, exclude=exclude)


def settings_from_dict(data: Optional[Dict[str, Any]], defaults: Optional[PortfolioSettings] = None) -> PortfolioSettings:
    """Parse stored settings, filling missing or null keys from defaults."""
    return SettingsDocument.model_validate(data or {}).to_settings(defaults or PortfolioSettings())


def settings_to_dict(settings: PortfolioSettings) -> Dict[str, Any]:
    return SettingsDocument.model_validate(asdict(settings)).model_dump(mode="json", by_alias=True)
