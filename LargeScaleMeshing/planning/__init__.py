"""
Planning
========

Resolution search (single-block mode) and partition planning (auto mode).
"""

from .granularity_search import GranularitySearchController, SearchResult, next_resolution
from .partition_planner import PartitionPlanner, single_block_plan, PLAN_CACHE_FILENAME

__all__ = [
    'GranularitySearchController',
    'SearchResult',
    'next_resolution',
    'PartitionPlanner',
    'single_block_plan',
    'PLAN_CACHE_FILENAME',
]
