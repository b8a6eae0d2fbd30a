"""BOM comparison workspace: dataset normalization, compare/replace orchestration
and persisted multi-window project sessions."""

__version__ = "0.4.0"
