"""Login, reconciliation and publish services."""
