"""Response composition."""

from exchangeql.explain.composer import ComposedResponse, ResponseComposer

__all__ = ["ComposedResponse", "ResponseComposer"]
