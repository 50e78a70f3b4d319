"""Team auto-balancing helpers."""

from .teams import BalancedTeams, PerformanceFn, balance_teams, performance_lookup

__all__ = ["BalancedTeams", "PerformanceFn", "balance_teams", "performance_lookup"]
