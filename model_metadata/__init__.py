"""Metadata collection for ModelCar container images."""
