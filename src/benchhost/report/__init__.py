"""Turn raw results into summary tables and reports."""
