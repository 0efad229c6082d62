"""omniquota: quota window normalization and fleet aggregation."""
