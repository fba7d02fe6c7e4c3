"""hvimport — restore configuration-only Hyper-V exports in place."""

__version__ = "0.1.0"
