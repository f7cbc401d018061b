"""Platform revenue aggregation over user cohorts."""
