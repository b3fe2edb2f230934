"""Worker package exports."""

from lease_engine.workers.expiry_sweeper import ExpirySweeper

__all__ = ["ExpirySweeper"]
