"""Record sources and dataset ingestion."""
