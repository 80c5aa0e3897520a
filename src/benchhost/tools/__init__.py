"""Built-in builders and executors."""
