"""Feed ingestion and synchronization engine."""
