"""Core module - settings, error taxonomy and observability.

Nothing in here knows about sheets, invoices or sales rows. Domain logic
lives in /reconciliation/, /payments/ and /kitchen_sales/; store access
lives in /connectors/.
"""

__version__ = "1.0.0"
