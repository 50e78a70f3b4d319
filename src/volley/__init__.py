"""Volleyball league tracking: players, seasons, games, standings and team balancing."""
