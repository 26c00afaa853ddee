"""System instructions for the assistant.

The composer is pure: the same ``PromptConfig`` and context always give
the same text, and it never touches the network or the database.  Static
sections come verbatim from ``PromptConfig`` so they stay byte-identical
across requests; only the dashboard state, the non-product rule, the row
limit advice and the view guidance depend on the context.
"""

from __future__ import annotations

import json

from metis.configs.prompt import PromptConfig

from .context import TAB_SUMMARY, DashboardContext

SECTION_SEPARATOR = "\n\n"

# Advisory LIMIT by number of active filters: (minimum filters, limit).
ROW_LIMIT_STEPS: tuple[tuple[int, int], ...] = ((3, 100), (1, 50), (0, 20))

DEFAULT_MAX_ROWS = 200


def suggested_row_limit(active_filters: int, max_rows: int = DEFAULT_MAX_ROWS) -> int:
    """More filters mean a narrower result set, so a higher LIMIT is safe."""
    for threshold, limit in ROW_LIMIT_STEPS:
        if active_filters >= threshold:
            return min(limit, max_rows)
    return min(ROW_LIMIT_STEPS[-1][1], max_rows)


def _compact_json(value: object) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)


class PromptComposer:
    """Builds the system prompt from static knowledge plus dashboard state."""

    def __init__(self, config: PromptConfig, *, max_rows: int = DEFAULT_MAX_ROWS):
        self._config = config
        self._max_rows = max_rows

    def compose(self, context: DashboardContext | None = None) -> str:
        cfg = self._config
        sections = [cfg.persona]
        if context is not None:
            sections.append(self._dashboard_section(context))
        sections.extend(
            [
                cfg.schema_docs,
                cfg.query_rules,
                self._non_product_section(context),
                self._row_limit_section(context),
                self._view_section(context),
                cfg.response_format,
                cfg.business_context,
            ]
        )
        return SECTION_SEPARATOR.join(s.strip() for s in sections if s and s.strip())

    # -- dynamic sections ---------------------------------------------------

    def _dashboard_section(self, context: DashboardContext) -> str:
        filters = context.filters.model_dump(
            by_alias=True, exclude_defaults=True, mode="json"
        )
        lines = [
            "## Current Dashboard State",
            f"Active tab: {context.tab}",
            f"Active filters: {_compact_json(filters)}",
        ]
        if context.visible_data:
            lines.append(f"Visible data: {_compact_json(context.visible_data)}")
        lines.append(
            "If the question can be answered from the visible data above, "
            "answer directly without running a query."
        )
        return "\n".join(lines)

    def _non_product_section(self, context: DashboardContext | None) -> str:
        names = self._config.non_product_patterns
        patterns = ", ".join(f"'{p}'" for p in names)
        if context is not None and context.exclude_non_product:
            return (
                "## Non-Product Items (filter ACTIVE)\n"
                "The dashboard hides non-product lines. Every sales query MUST add:\n"
                "```sql\n"
                f"AND UPPER(article) NOT SIMILAR TO '%({'|'.join(names)})%'\n"
                "```\n"
                f"Non-product articles: {patterns}."
            )
        return (
            "## Non-Product Items\n"
            "The dashboard currently includes non-product lines "
            f"({patterns}); do not exclude them unless the user asks."
        )

    def _row_limit_section(self, context: DashboardContext | None) -> str:
        active = context.filters.active_filter_count() if context is not None else 0
        limit = suggested_row_limit(active, self._max_rows)
        return (
            "## Row Limit\n"
            f"{active} dashboard filter(s) are active. For detail queries use "
            f"LIMIT {limit} or lower. Results are always capped at "
            f"{self._max_rows} rows."
        )

    def _view_section(self, context: DashboardContext | None) -> str:
        tab = context.tab if context is not None else TAB_SUMMARY
        guidance = self._config.tab_guidance
        text = guidance.get(tab) or guidance.get(TAB_SUMMARY, "")
        return f"## Current View\n{text}" if text else ""
