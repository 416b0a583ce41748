"""Background worker (RQ) for queued sync batches."""
