"""
Recurrent classifiers used by the external training routines.

Architectures:
    - RNN: single-layer Elman RNN
    - BiRNN: bidirectional RNN, forward and backward states concatenated
    - GRU: gated recurrent unit

All three read a (batch, time, covariates) tensor and emit two-class logits
from the last time step.

Class imbalance (class_weight):
    -  0: cross-entropy weighted by the inverse class ratio
    - -1: focal loss (gamma=2)
    - >0: cross-entropy with this weight on the outcome class
"""

import logging
from typing import Optional

import numpy as np
import torch
import torch.nn as nn
import torch.nn.functional as F
from torch.utils.data import DataLoader, TensorDataset

logger = logging.getLogger(__name__)


class RecurrentClassifier(nn.Module):
    """RNN / BiRNN / GRU encoder followed by a linear two-class head."""

    def __init__(self, input_size: int, hidden_size: int, model_type: str = "RNN"):
        super().__init__()
        self.input_size = input_size
        self.hidden_size = hidden_size
        self.model_type = model_type

        bidirectional = model_type == "BiRNN"
        rnn_class = nn.GRU if model_type == "GRU" else nn.RNN
        self.rnn = rnn_class(
            input_size=input_size,
            hidden_size=hidden_size,
            batch_first=True,
            bidirectional=bidirectional,
        )
        self.fc = nn.Linear(hidden_size * (2 if bidirectional else 1), 2)

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        """
        Args:
            x: (batch, time, covariates)

        Returns:
            Logits of shape (batch, 2)
        """
        output, _ = self.rnn(x)
        return self.fc(output[:, -1, :])


class FocalLoss(nn.Module):
    """Focal loss for two-class logits (Lin et al., 2017)."""

    def __init__(self, gamma: float = 2.0):
        super().__init__()
        self.gamma = gamma

    def forward(self, logits: torch.Tensor, target: torch.Tensor) -> torch.Tensor:
        log_prob = F.log_softmax(logits, dim=1)
        log_pt = log_prob.gather(1, target.unsqueeze(1)).squeeze(1)
        pt = log_pt.exp()
        return (-(1 - pt) ** self.gamma * log_pt).mean()


def make_criterion(labels: np.ndarray, class_weight: float) -> nn.Module:
    """Loss function for the class_weight convention above."""
    if class_weight == -1:
        return FocalLoss()

    if class_weight == 0:
        n_pos = float(labels.sum())
        n_neg = float(len(labels) - n_pos)
        positive_weight = n_neg / n_pos if n_pos > 0 else 1.0
    else:
        positive_weight = float(class_weight)

    return nn.CrossEntropyLoss(weight=torch.tensor([1.0, positive_weight]))


def seed_everything(seed: Optional[int]):
    if seed is None:
        return
    torch.manual_seed(seed)
    np.random.seed(seed)


def fit_network(
    features: np.ndarray,
    labels: np.ndarray,
    hidden_size: int,
    epochs: int,
    model_type: str = "RNN",
    class_weight: float = 0,
    seed: Optional[int] = None,
    batch_size: int = 256,
    learning_rate: float = 1e-3,
) -> RecurrentClassifier:
    """
    Train a RecurrentClassifier.

    Args:
        features: (rows, time, covariates) float32
        labels: Binary outcome per row
        hidden_size: Recurrent hidden size
        epochs: Passes over the data
        model_type: RNN, BiRNN or GRU
        class_weight: See module docstring
        seed: Seed for weight init and shuffling

    Returns:
        Trained model in eval mode
    """
    seed_everything(seed)

    labels = np.asarray(labels).astype(np.int64)
    model = RecurrentClassifier(features.shape[2], hidden_size, model_type)
    criterion = make_criterion(labels, class_weight)
    optimizer = torch.optim.Adam(model.parameters(), lr=learning_rate)

    dataset = TensorDataset(
        torch.from_numpy(np.ascontiguousarray(features, dtype=np.float32)),
        torch.from_numpy(labels),
    )
    generator = torch.Generator()
    if seed is not None:
        generator.manual_seed(seed)
    loader = DataLoader(dataset, batch_size=batch_size, shuffle=True, generator=generator)

    for epoch in range(epochs):
        model.train()
        total_loss = 0.0
        n_batches = 0
        for batch_x, batch_y in loader:
            optimizer.zero_grad()
            loss = criterion(model(batch_x), batch_y)
            loss.backward()
            optimizer.step()
            total_loss += loss.item()
            n_batches += 1
        logger.info(f"Epoch {epoch}: loss={total_loss / max(n_batches, 1):.4f}")

    model.eval()
    return model


def predict_network(
    model: RecurrentClassifier,
    features: np.ndarray,
    batch_size: int = 1024,
) -> np.ndarray:
    """Class probabilities, shape (rows, 2)."""
    model.eval()
    tensor = torch.from_numpy(np.ascontiguousarray(features, dtype=np.float32))
    probabilities = []
    with torch.no_grad():
        for start in range(0, len(tensor), batch_size):
            logits = model(tensor[start:start + batch_size])
            probabilities.append(torch.softmax(logits, dim=1).numpy())
    if not probabilities:
        return np.zeros((0, 2))
    return np.concatenate(probabilities)
