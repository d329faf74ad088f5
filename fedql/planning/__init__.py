"""Strategy planning: where and how a query runs."""
