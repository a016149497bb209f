"""helpdesk-rag: retrieval-augmented answers over help-center articles."""

__version__ = "0.1.0"
