"""
Recurrent-network training routine, executed inside an external session.

Reads from its globals:
    population    (n, 3): rowIdZeroBased, outcomeCount, indexes
    covariates    (n, time, covariates) float32
    epochs, hidden_size, seed, class_weight, model_type, train
    model_output  directory for the artifact (final mode only)

Writes:
    train=True:  prediction (n, 4): rowIdZeroBased, outcomeCount, indexes,
                 probability of NO outcome. Out-of-fold when there are at
                 least two folds, in-sample otherwise.
    train=False: model.pt and config.json in model_output.
"""

import json
import logging
from pathlib import Path

import numpy as np
import torch

from plpkit.external.routines.networks import fit_network, predict_network

logger = logging.getLogger("plpkit.external.routines.deep_torch")


def _fit(features, labels, ns):
    return fit_network(
        features,
        labels,
        hidden_size=int(ns["hidden_size"]),
        epochs=int(ns["epochs"]),
        model_type=ns["model_type"],
        class_weight=float(ns["class_weight"]),
        seed=ns["seed"],
    )


def run(ns: dict) -> dict:
    population = np.asarray(ns["population"], dtype=np.float64)
    features = np.asarray(ns["covariates"], dtype=np.float32)
    labels = (population[:, 1] > 0).astype(np.int64)
    folds = population[:, 2].astype(int)

    if ns["train"]:
        prediction = np.zeros((len(population), 4))
        prediction[:, :3] = population
        distinct = np.unique(folds[folds > 0])

        if len(distinct) >= 2:
            for fold in distinct:
                held_out = folds == fold
                model = _fit(features[~held_out], labels[~held_out], ns)
                prediction[held_out, 3] = predict_network(model, features[held_out])[:, 0]
                logger.info(f"Fold {fold}: scored {int(held_out.sum())} rows")
        else:
            model = _fit(features, labels, ns)
            prediction[:, 3] = predict_network(model, features)[:, 0]

        return {"prediction": prediction}

    output = Path(ns["model_output"])
    output.mkdir(parents=True, exist_ok=True)
    model = _fit(features, labels, ns)
    torch.save(model.state_dict(), output / "model.pt")
    with open(output / "config.json", "w") as f:
        json.dump(
            {
                "input_size": model.input_size,
                "hidden_size": model.hidden_size,
                "model_type": model.model_type,
            },
            f,
            indent=2,
        )
    logger.info(f"Saved model to {output}")
    return {}


if __name__ == "__routine__":
    globals().update(run(globals()))
