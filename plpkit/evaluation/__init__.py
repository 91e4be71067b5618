"""Evaluation metrics."""

from .metrics import VALUE, compute_auc, compute_roc_auc

__all__ = ["VALUE", "compute_auc", "compute_roc_auc"]
