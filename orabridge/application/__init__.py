"""Application layer: validator, executor, reconciler, health, workflows and use cases."""
