"""
errors.py

Exception taxonomy of the recommendation engine.

  TransientQueryFailure     knowledge graph unreachable / timed out / malformed
  RepositoryFailure         product catalog unreachable
  RecommendationUnavailable every tier of the fallback chain failed
  DeadlineExceeded          request deadline passed before a graph query
  RequestCancelled          caller cancelled the request
  InvalidProfile            request payload does not describe a guest profile

An empty result set is not an error: it is an escalation signal handled by
the fallback chain.
"""
from __future__ import annotations


class RecommendationError(Exception):
    """Base class for recommendation engine errors."""


class TransientQueryFailure(RecommendationError):
    pass


class DeadlineExceeded(TransientQueryFailure):
    """Handled like a graph timeout: the chain degrades instead of aborting."""


class RepositoryFailure(RecommendationError):
    pass


class RecommendationUnavailable(RecommendationError):
    def __init__(self, message: str = "Recommendation system temporarily unavailable") -> None:
        super().__init__(message)


class RequestCancelled(RecommendationError):
    pass


class InvalidProfile(RecommendationError, ValueError):
    pass
