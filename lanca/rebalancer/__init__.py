from .reconciler import Correction, DeficitSurplusReconciler, rebalancer_fee
from .runner import RebalancerRunner

__all__ = ["Correction", "DeficitSurplusReconciler", "RebalancerRunner", "rebalancer_fee"]
