"""Dashboard state the client sends along with every chat request."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

TAB_SUMMARY = "summary"
TAB_SKU = "sku"
TAB_DETAIL = "detail"
TAB_DETAIL_SIZE = "detail-size"

KNOWN_TABS = frozenset({TAB_SUMMARY, TAB_SKU, TAB_DETAIL, TAB_DETAIL_SIZE})

CATEGORICAL_FILTERS = (
    "branch",
    "store",
    "entity",
    "customer",
    "gender",
    "series",
    "color",
    "tier",
    "tipe",
    "version",
)


class DashboardFilters(BaseModel):
    """Filters currently applied on the dashboard."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    date_from: str | None = Field(default=None, alias="from")
    date_to: str | None = Field(default=None, alias="to")
    branch: list[str] = Field(default_factory=list)
    store: list[str] = Field(default_factory=list)
    entity: list[str] = Field(default_factory=list)
    customer: list[str] = Field(default_factory=list)
    gender: list[str] = Field(default_factory=list)
    series: list[str] = Field(default_factory=list)
    color: list[str] = Field(default_factory=list)
    tier: list[str] = Field(default_factory=list)
    tipe: list[str] = Field(default_factory=list)
    version: list[str] = Field(default_factory=list)
    q: str = ""
    exclude_non_sku: bool = Field(default=False, alias="excludeNonSku")

    @field_validator(*CATEGORICAL_FILTERS, mode="before")
    @classmethod
    def _as_list(cls, value: Any) -> Any:
        # The dashboard sends a bare string for single-select filters.
        if value is None or value == "":
            return []
        if isinstance(value, str):
            return [value]
        return value

    @field_validator("q", mode="before")
    @classmethod
    def _blank_query(cls, value: Any) -> Any:
        return "" if value is None else value

    def active_filter_count(self) -> int:
        """Independent filters narrowing the data; the date range is not one."""
        count = sum(1 for name in CATEGORICAL_FILTERS if getattr(self, name))
        if self.q.strip():
            count += 1
        return count


class DashboardContext(BaseModel):
    """Ephemeral, caller-supplied view of the dashboard."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    filters: DashboardFilters = Field(default_factory=DashboardFilters)
    visible_data: dict[str, Any] = Field(default_factory=dict, alias="visibleData")
    active_tab: str | None = Field(default=None, alias="activeTab")

    @property
    def tab(self) -> str:
        """Active tab, with unknown or missing values read as the summary."""
        if self.active_tab in KNOWN_TABS:
            return self.active_tab
        return TAB_SUMMARY

    @property
    def exclude_non_product(self) -> bool:
        return self.filters.exclude_non_sku
