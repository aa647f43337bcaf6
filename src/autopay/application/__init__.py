"""Application layer: condition handling, execution pipeline and engine."""
