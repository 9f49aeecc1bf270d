"""TruthRank: rank scoring, upgrades, leaderboards and batch jobs for a prediction platform."""

__version__ = "0.1.0"
