"""
Rank catalog: the ordered ladder of tiers and their qualification criteria.

The catalog is loaded once at process start and never mutated. Loading
validates the ladder so that scoring code can rely on its invariants:
weights sum to WEIGHT_TOTAL for every tier, criteria are non-negative and time
gates never decrease along the ladder.
"""

import logging
from typing import Dict, Iterable, List, Optional

from truthrank.constants import DEFAULT_RANK_CONFIGS, ScoringConstants
from truthrank.data_models.rank import Rank, RankConfig, RankCriteria
from truthrank.utils.exceptions import CatalogError

logger = logging.getLogger(__name__)

WEIGHT_TOLERANCE = 1e-6


class RankCatalog:
    """Immutable, validated rank ladder (lowest tier first)."""

    def __init__(self, configs: Iterable[RankConfig]):
        ordered = list(configs)
        self._validate(ordered)
        self._ladder: List[Rank] = [config.id for config in ordered]
        self._configs: Dict[Rank, RankConfig] = {config.id: config for config in ordered}
        logger.debug(f"Loaded rank catalog with {len(ordered)} tiers")

    @classmethod
    def default(cls) -> 'RankCatalog':
        return cls(DEFAULT_RANK_CONFIGS)

    @property
    def ranks(self) -> List[Rank]:
        return list(self._ladder)

    @property
    def entry_rank(self) -> Rank:
        return self._ladder[0]

    def get(self, rank: Rank) -> RankConfig:
        try:
            return self._configs[rank]
        except KeyError:
            raise CatalogError(f"unknown rank '{rank}'") from None

    def criteria_for(self, rank: Rank) -> RankCriteria:
        return self.get(rank).criteria

    def contains(self, rank: Rank) -> bool:
        return rank in self._configs

    def index_of(self, rank: Rank) -> int:
        self.get(rank)
        return self._ladder.index(rank)

    def next_rank(self, rank: Rank) -> Optional[Rank]:
        """Get the next rank in the ladder, or None at the top tier."""
        index = self.index_of(rank)
        if index == len(self._ladder) - 1:
            return None
        return self._ladder[index + 1]

    def is_terminal(self, rank: Rank) -> bool:
        return self.next_rank(rank) is None

    @staticmethod
    def _validate(configs: List[RankConfig]):
        if not configs:
            raise CatalogError("ladder must contain at least one tier")

        seen = set()
        previous_gate = None
        for config in configs:
            if config.id in seen:
                raise CatalogError(f"duplicate tier '{config.id.value}'")
            seen.add(config.id)

            criteria = config.criteria
            total = criteria.total_weight
            if abs(total - ScoringConstants.WEIGHT_TOTAL) > WEIGHT_TOLERANCE:
                raise CatalogError(
                    f"weights for '{config.id.value}' sum to {total}, "
                    f"expected {ScoringConstants.WEIGHT_TOTAL}"
                )

            values = {
                'min_time_gate_days': config.min_time_gate_days,
                'min_predictions': criteria.min_predictions,
                'min_accuracy': criteria.min_accuracy,
                'min_resolved_predictions': criteria.min_resolved_predictions,
                'min_active_weeks': criteria.min_active_weeks,
                'accuracy_weight': criteria.accuracy_weight,
                'consistency_weight': criteria.consistency_weight,
                'volume_weight': criteria.volume_weight,
                'time_weight': criteria.time_weight,
            }
            for name, value in values.items():
                if value < 0:
                    raise CatalogError(f"{name} for '{config.id.value}' must not be negative")
            if criteria.min_accuracy > 100:
                raise CatalogError(f"min_accuracy for '{config.id.value}' must be at most 100")

            if previous_gate is not None and config.min_time_gate_days < previous_gate:
                raise CatalogError(f"time gate for '{config.id.value}' is lower than the previous tier")
            previous_gate = config.min_time_gate_days
