"""Mini README: Core package initializer for the grant ledger service.

The package tracks research-grant budgets: projects with a total budget and
five earmarked categories, the expenses recorded against them, and the live
balance views that observers keep open. Only light convenience imports live
here so importing the package stays cheap.
"""

from .logging_utils import get_logger

__all__ = ["get_logger"]
