"""Bridge and shard-host network clients."""
