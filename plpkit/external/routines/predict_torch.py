"""
Scoring routine for artifacts written by deep_torch.py.

Reads from its globals:
    population  (n, 3): rowIdZeroBased, outcomeCount, indexes
    covariates  (n, time, covariates) float32, built with the training covariate map
    model_dir   directory holding model.pt and config.json

Writes:
    prediction  (n, 4): rowIdZeroBased, outcomeCount, indexes, probability of NO outcome
"""

import json
from pathlib import Path

import numpy as np
import torch

from plpkit.external.routines.networks import RecurrentClassifier, predict_network


def run(ns: dict) -> dict:
    model_dir = Path(ns["model_dir"])
    with open(model_dir / "config.json") as f:
        config = json.load(f)

    model = RecurrentClassifier(**config)
    model.load_state_dict(torch.load(model_dir / "model.pt", weights_only=True))

    population = np.asarray(ns["population"], dtype=np.float64)
    features = np.asarray(ns["covariates"], dtype=np.float32)
    if features.shape[2] != model.input_size:
        raise ValueError(
            f"Model expects {model.input_size} covariates, got {features.shape[2]}"
        )

    prediction = np.zeros((len(population), 4))
    prediction[:, :3] = population
    prediction[:, 3] = predict_network(model, features)[:, 0]
    return {"prediction": prediction}


if __name__ == "__routine__":
    globals().update(run(globals()))
