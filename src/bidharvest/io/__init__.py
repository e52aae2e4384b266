"""Batch and intake file storage."""

from bidharvest.io.batches import BatchWriter, read_batches, write_batch
from bidharvest.io.intake_output import find_prior_intake, write_intake_output

__all__ = ["BatchWriter", "find_prior_intake", "read_batches", "write_batch", "write_intake_output"]
