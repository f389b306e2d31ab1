"""
Status Update Service

Lifecycle status management for packages and shipment groups.

Features:
- Single, bulk and group status updates with rule-table validation
- Chunked batch processing with bounded concurrency
- Group to package cascading
- Sequenced tracking timelines and append-only status history
- Optional halt, rollback, cancellation and idempotent replay
- Customer notification and batch completion events
"""

__version__ = "1.0.0"
