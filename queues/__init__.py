"""
Purpose: Package entry + stable exports.

Station queue domain package.

Public API:
- Models: QueueEntry, QueuePosition
- Configuration: FairnessWeights, default_weights, weights_from_env
- Scoring: score, fixed_score, rank_value, score_from_rank
- Store + queue: QueueStore, StationFairQueue
- Errors: FairDispatchError, AlreadyQueued, NotAvailable, NotQueued, StoreUnavailable
"""
from .models import QueueEntry, QueuePosition
from .policy import FairnessWeights, default_weights, weights_from_env
from .scoring import score, fixed_score, rank_value, score_from_rank
from .errors import FairDispatchError, AlreadyQueued, NotAvailable, NotQueued, StoreUnavailable
from .store import QueueStore, StoredEntry
from .station_queue import StationFairQueue

__all__ = ["QueueEntry",
           "QueuePosition",
           "FairnessWeights",
           "default_weights",
           "weights_from_env",
           "score",
           "fixed_score",
           "rank_value",
           "score_from_rank",
           "FairDispatchError",
           "AlreadyQueued",
           "NotAvailable",
           "NotQueued",
           "StoreUnavailable",
           "QueueStore",
           "StoredEntry",
           "StationFairQueue",
           ]
