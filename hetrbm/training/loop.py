# Copyright 2025 HetRBM Contributors
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""
Minibatch training loop for RBMs

This module drives RestrictedBoltzmannMachine.train:
- Minibatch iteration with the last batch aligned to the end of the data
- Momentum gradient descent with a per-minibatch learning-rate decay
- Periodic monitoring by reconstruction error or pseudo-likelihood
- Progress reporting through callbacks and a tqdm bar
"""

from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional
import torch
import logging
from tqdm import tqdm

if TYPE_CHECKING:
    from ..models.rbm import RestrictedBoltzmannMachine

logger = logging.getLogger(__name__)


class MonitoringMethod(str, Enum):
    """Diagnostic reported during training."""

    RECONSTRUCTION_ERROR = "reconstruction_error"
    PSEUDO_LIKELIHOOD = "pseudo_likelihood"


class TrainingLoop:
    """
    Runs the epochs of one train call.

    The global step counts minibatches across epochs; monitoring happens on
    every ``monitoring_interval``-th step.
    """

    def __init__(self, model: 'RestrictedBoltzmannMachine', callbacks: Optional[List[Any]] = None):
        self.model = model
        self.callbacks = callbacks or []
        self.method = MonitoringMethod(model.monitoring_method)

        self.current_epoch = 0
        self.global_step = 0
        self.history: Dict[str, List[float]] = {
            'step': [],
            'epoch': [],
            self.method.value: [],
        }

    def run(self, inputs: torch.Tensor) -> Dict[str, List[float]]:
        """
        Train on ``inputs`` [num_visible, num_vectors].

        Returns:
            history: Monitoring history
        """
        model = self.model

        if model.monitoring_interval < 1:
            raise ValueError(f"monitoring_interval must be positive, got {model.monitoring_interval}")

        training_set_size = inputs.shape[1]
        mini_batch_size = model.gd_mini_batch_size or training_set_size
        if mini_batch_size > training_set_size:
            logger.warning(
                f"Minibatch size {mini_batch_size} exceeds the {training_set_size} "
                f"training vectors, using {training_set_size}"
            )
            mini_batch_size = training_set_size

        model.set_batch_size(mini_batch_size)

        # seeds the persistent chain with the first minibatch
        model.visible_state.copy_(inputs[:, :mini_batch_size])

        gradients = torch.zeros(model.num_params, dtype=model.dtype, device=model.device)
        param_updates = torch.zeros_like(gradients)

        alpha = model.gd_learning_rate

        if self.method == MonitoringMethod.RECONSTRUCTION_ERROR:
            buffer = torch.zeros(model.num_visible, mini_batch_size, dtype=model.dtype, device=model.device)
        else:
            buffer = torch.zeros(model.num_hidden, mini_batch_size, dtype=model.dtype, device=model.device)

        logger.info(
            f"Starting training for {model.max_num_epochs} epochs on {training_set_size} "
            f"vectors with minibatches of {mini_batch_size}"
        )

        for callback in self.callbacks:
            if hasattr(callback, 'on_train_begin'):
                callback.on_train_begin(logs={}, model=model)

        pbar = tqdm(
            range(model.max_num_epochs),
            desc="Training",
            disable=not logger.isEnabledFor(logging.INFO)
        )

        for epoch in pbar:
            self.current_epoch = epoch

            for callback in self.callbacks:
                if hasattr(callback, 'on_epoch_begin'):
                    callback.on_epoch_begin(epoch=epoch, logs={}, model=model)

            for start in range(0, training_set_size, mini_batch_size):
                alpha = model.gd_learning_rate_decay * alpha

                start = min(start, training_set_size - mini_batch_size)
                inputs_batch = inputs[:, start:start + mini_batch_size]

                model.params.add_(param_updates, alpha=model.gd_momentum)

                model.contrastive_divergence(inputs_batch, gradients)

                param_updates.mul_(model.gd_momentum).add_(gradients, alpha=-alpha)
                model.params.add_(gradients, alpha=-alpha)

                if self.global_step % model.monitoring_interval == 0:
                    value = self._monitor(inputs_batch, buffer, epoch)
                    pbar.set_postfix({self.method.value: f'{value:.4f}'})

                self.global_step += 1

            epoch_logs = {'epoch': epoch, 'global_step': self.global_step, 'learning_rate': alpha}
            for callback in self.callbacks:
                if hasattr(callback, 'on_epoch_end'):
                    callback.on_epoch_end(epoch=epoch, logs=epoch_logs, model=model)

        for callback in self.callbacks:
            if hasattr(callback, 'on_train_end'):
                callback.on_train_end(logs=self.history, model=model)

        logger.info("Training completed")
        return self.history

    def _monitor(self, inputs_batch: torch.Tensor, buffer: torch.Tensor, epoch: int) -> float:
        """Evaluate and report the configured diagnostic on one minibatch."""
        model = self.model
        method = self.method

        if method == MonitoringMethod.RECONSTRUCTION_ERROR:
            value = model.reconstruction_error(inputs_batch, buffer)
            logger.info(f"Epoch {epoch}: reconstruction error = {value}")
        else:
            value = model.pseudo_likelihood(inputs_batch, buffer)
            logger.info(f"Epoch {epoch}: pseudo-log-likelihood = {value}")

        self.history['step'].append(self.global_step)
        self.history['epoch'].append(epoch)
        self.history[method.value].append(value)

        logs = {'step': self.global_step, 'epoch': epoch, method.value: value}
        for callback in self.callbacks:
            if hasattr(callback, 'on_batch_end'):
                callback.on_batch_end(batch=self.global_step, logs=logs, model=model)

        return value
