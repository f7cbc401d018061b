"""CSV and JSON export."""
