"""HTTP surface: health probes and metrics."""
