"""Feed-forward calibration network.

A small numpy multilayer perceptron (8 -> 16 -> 8 -> 1, sigmoid
activations) mapping the eight confidence factors to a base score.
The network starts from a deterministic prior built from feature
importance weights and is refined by mini-batch gradient descent on
feedback-labelled samples.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any

import numpy as np

LAYER_SIZES: tuple[int, ...] = (8, 16, 8, 1)

# Relative importance of each factor, in factor order
FEATURE_WEIGHTS = np.array([0.15, 0.18, 0.25, 0.22, 0.12, 0.08, 0.15, 0.10])

# Pre-activation scale and offset of the prior; a clean factor vector
# lands well inside the sigmoid's upper plateau.
_PRIOR_GAIN = 8.0
_PRIOR_BIAS = -4.0


def _sigmoid(x: np.ndarray) -> np.ndarray:
    return 1.0 / (1.0 + np.exp(-np.clip(x, -500, 500)))


@dataclass
class TrainingMetrics:
    """Rolling metrics of the most recent training pass.

    Attributes:
        accuracy: Share of samples on the right side of 0.5
        precision: Precision of the "acceptable" class
        recall: Recall of the "acceptable" class
        f1_score: Harmonic mean of precision and recall
        training_epochs: Epochs run over the model's lifetime
        last_trained: When the model was last trained (or created)
        validation_loss: Mean squared error on the held-out split
    """
    accuracy: float = 0.0
    precision: float = 0.0
    recall: float = 0.0
    f1_score: float = 0.0
    training_epochs: int = 0
    last_trained: datetime = field(default_factory=datetime.now)
    validation_loss: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "accuracy": self.accuracy,
            "precision": self.precision,
            "recall": self.recall,
            "f1_score": self.f1_score,
            "training_epochs": self.training_epochs,
            "last_trained": self.last_trained.isoformat(),
            "validation_loss": self.validation_loss,
        }


@dataclass
class NeuralCalibrationModel:
    """Weights, biases and metrics of the calibration network.

    ``weights[i]`` has shape ``(layers[i], layers[i + 1])``. The model is
    only mutated by ``fit``; callers retrain a ``copy()`` and swap it in.
    """
    weights: list[np.ndarray]
    biases: list[np.ndarray]
    activation: str = "sigmoid"
    layers: tuple[int, ...] = LAYER_SIZES
    metrics: TrainingMetrics = field(default_factory=TrainingMetrics)

    @classmethod
    def prior(cls, seed: int | None = None, jitter: float = 0.01) -> "NeuralCalibrationModel":
        """Build the starting network from feature importance weights.

        Every first-layer unit sees the importance-weighted mean of the
        factors, and the deeper layers average their inputs, so the
        output rises monotonically with every factor. ``jitter`` adds
        small seeded noise to break the symmetry between units.
        """
        rng = np.random.default_rng(seed)
        importance = FEATURE_WEIGHTS / FEATURE_WEIGHTS.sum()

        weights = []
        biases = []
        for i, (n_in, n_out) in enumerate(zip(LAYER_SIZES, LAYER_SIZES[1:])):
            if i == 0:
                w = np.tile((importance * _PRIOR_GAIN)[:, None], (1, n_out))
            else:
                w = np.full((n_in, n_out), _PRIOR_GAIN / n_in)
            if jitter:
                w = w + rng.normal(0.0, jitter, size=w.shape)
            weights.append(w)
            biases.append(np.full(n_out, _PRIOR_BIAS))

        return cls(weights=weights, biases=biases)

    def copy(self) -> "NeuralCalibrationModel":
        """Deep copy of weights, biases and metrics."""
        return NeuralCalibrationModel(
            weights=[w.copy() for w in self.weights],
            biases=[b.copy() for b in self.biases],
            activation=self.activation,
            layers=self.layers,
            metrics=replace(self.metrics),
        )

    def _forward(self, x: np.ndarray) -> list[np.ndarray]:
        activations = [x]
        for w, b in zip(self.weights, self.biases):
            x = _sigmoid(x @ w + b)
            activations.append(x)
        return activations

    def predict(self, inputs: Any) -> float:
        """Score one factor vector."""
        x = np.asarray(inputs, dtype=float).reshape(1, -1)
        return float(self._forward(x)[-1][0, 0])

    def predict_batch(self, inputs: np.ndarray) -> np.ndarray:
        return self._forward(np.asarray(inputs, dtype=float))[-1][:, 0]

    def _train_batch(self, x: np.ndarray, y: np.ndarray, learning_rate: float) -> float:
        activations = self._forward(x)
        output = activations[-1]
        error = output - y
        loss = float(np.mean(error ** 2))

        # Squared error through the sigmoid, averaged over the batch
        delta = 2.0 * error / len(x) * output * (1.0 - output)
        for layer in reversed(range(len(self.weights))):
            previous = activations[layer]
            grad_w = previous.T @ delta
            grad_b = delta.sum(axis=0)
            if layer > 0:
                next_delta = (delta @ self.weights[layer].T) * previous * (1.0 - previous)
            self.weights[layer] -= learning_rate * grad_w
            self.biases[layer] -= learning_rate * grad_b
            if layer > 0:
                delta = next_delta

        return loss

    def fit(
        self,
        inputs: np.ndarray,
        targets: np.ndarray,
        epochs: int = 500,
        batch_size: int = 32,
        learning_rate: float = 0.1,
        early_stop_loss: float = 0.01,
        seed: int | None = None,
    ) -> TrainingMetrics:
        """Train in place with shuffled mini-batches.

        Training stops after ``epochs`` or as soon as an epoch's average
        batch loss drops below ``early_stop_loss``. A tenth of the data
        is held out for the validation loss.

        Args:
            inputs: Factor vectors, shape (n, 8)
            targets: Target scores in [0, 1], shape (n,)
            epochs: Maximum number of epochs
            batch_size: Samples per gradient step
            learning_rate: Gradient descent step size
            early_stop_loss: Average batch loss that ends training
            seed: Seed for shuffling

        Returns:
            The updated training metrics
        """
        x = np.asarray(inputs, dtype=float)
        y = np.asarray(targets, dtype=float).reshape(-1, 1)
        if len(x) == 0:
            return self.metrics

        rng = np.random.default_rng(seed)
        order = rng.permutation(len(x))
        n_val = len(x) // 10
        val_idx, train_idx = order[:n_val], order[n_val:]
        x_train, y_train = x[train_idx], y[train_idx]

        epochs_run = 0
        for _ in range(epochs):
            perm = rng.permutation(len(x_train))
            losses = [
                self._train_batch(x_train[perm[i:i + batch_size]], y_train[perm[i:i + batch_size]], learning_rate)
                for i in range(0, len(x_train), batch_size)
            ]
            epochs_run += 1
            if float(np.mean(losses)) < early_stop_loss:
                break

        if n_val:
            val_pred = self.predict_batch(x[val_idx])
            validation_loss = float(np.mean((val_pred - y[val_idx, 0]) ** 2))
        else:
            validation_loss = float(np.mean((self.predict_batch(x_train) - y_train[:, 0]) ** 2))

        predicted = self.predict_batch(x) >= 0.5
        actual = y[:, 0] >= 0.5
        tp = int(np.sum(predicted & actual))
        fp = int(np.sum(predicted & ~actual))
        fn = int(np.sum(~predicted & actual))
        precision = tp / (tp + fp) if tp + fp else 0.0
        recall = tp / (tp + fn) if tp + fn else 0.0

        self.metrics = TrainingMetrics(
            accuracy=float(np.mean(predicted == actual)),
            precision=precision,
            recall=recall,
            f1_score=2 * precision * recall / (precision + recall) if precision + recall else 0.0,
            training_epochs=self.metrics.training_epochs + epochs_run,
            last_trained=datetime.now(),
            validation_loss=validation_loss,
        )
        return self.metrics
