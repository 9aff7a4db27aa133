"""
PrintDesk Backend - REST API for print job intake and fulfillment

This package provides a FastAPI-based web service connecting customers and
print shops. It enables:

- Multi-file print job submission with page counting and cost calculation
- Per-shop pricing configuration by paper type and color mode
- Print job status tracking (PENDING, PROCESSING, COMPLETED, CANCELLED)
- Time-limited attachment URLs backed by S3, renewed lazily on read
- Live updates to shop dashboards and customer trackers over WebSockets

Key Components:
    - main: FastAPI application and HTTP/WebSocket endpoint definitions
    - job_manager: Print job lifecycle coordinator
    - pricing: Pricing resolution and pricing configuration management
    - page_counter: Page counts for uploaded documents
    - s3_service: File store gateway over S3
    - notifications: Room-scoped broadcaster
    - database: SQLite persistence and shop directory
    - models / records: API models and internal typed records
    - configuration: Settings loading and merging logic

Usage:
    Run the API server with:
        uvicorn printdesk_backend.main:app --reload --host 0.0.0.0 --port 8000
"""
