"""LiftLog workers: training analytics aggregation and statistics."""
