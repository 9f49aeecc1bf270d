"""
Data transfer objects for the TruthRank engine.
"""
