"""Bank connectivity package.

Dispatches approved payment runs to bank channels and reconciles the bank's
acknowledgment and execution-status files back onto runs and lines.
"""

__all__: list[str] = []
