"""Acquisition backlog prioritization."""

from .prioritizer import PriorityEntry, iter_platform_backlog, rank, score_item

__all__ = ["PriorityEntry", "iter_platform_backlog", "rank", "score_item"]
