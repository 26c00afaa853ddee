"""Prompt composition from static knowledge and dashboard state."""

from .composer import PromptComposer, suggested_row_limit  # noqa: F401
from .context import DashboardContext, DashboardFilters  # noqa: F401
