"""
Fare estimation  (Strategy Pattern)
===================================

Formula
-------
Fare = Base_Fare + Distance x Rate_Per_KM

Distance is not routed: ``FixedDistanceEstimator`` returns a configured
constant for every pickup/drop-off pair.  Both the estimator and the pricing
strategy are injected into the Lifecycle Engine, so a routing client or a
surge-aware strategy can replace them without touching the lifecycle code.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# ── Strategy hierarchy ────────────────────────────────────────────────


class PricingStrategy(ABC):
    @abstractmethod
    def calculate(self, distance_km: float) -> float: ...


class StandardPricing(PricingStrategy):
    def __init__(self, base_fare: float = 4.1, rate_per_km: float = 2.0):
        self.base_fare = base_fare
        self.rate_per_km = rate_per_km

    def calculate(self, distance_km: float) -> float:
        return round(self.base_fare + distance_km * self.rate_per_km, 2)


# ── Distance ──────────────────────────────────────────────────────────


class DistanceEstimator(ABC):
    @abstractmethod
    def estimate(self, pickup: str, dropoff: str) -> float: ...


class FixedDistanceEstimator(DistanceEstimator):
    """Same distance for every trip until a routing service is wired in."""

    def __init__(self, distance_km: float = 10.0):
        self.distance_km = distance_km

    def estimate(self, pickup: str, dropoff: str) -> float:
        return self.distance_km
