"""Host side of benchhost: toolchains, job execution and raw results."""
