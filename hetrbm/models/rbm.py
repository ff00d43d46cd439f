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
Restricted Boltzmann Machine with heterogeneous visible unit groups

This module implements an RBM whose visible layer is split into groups of
binary, softmax or Gaussian units, with support for:
- Contrastive Divergence (CD-k) and Persistent Contrastive Divergence (PCD)
- Momentum gradient descent with L1/L2 weight penalties
- Reconstruction error and pseudo-likelihood monitoring
- Unconditional and evidence-clamped block Gibbs sampling

All state matrices are ``units x batch``. The visible state buffer doubles as
the persistent chain: it survives across minibatches and is only redrawn when
the batch size changes.
"""

from typing import Any, Dict, List, Optional, Union
import torch
import torch.nn.functional as F
import logging
from pathlib import Path

from .layout import ParameterLayout, ParameterViews, VisibleGroup, VisibleUnitType, parameter_views
from .utils import (
    random_binary_state,
    sample_bernoulli,
    sample_categorical,
    sample_gaussian,
    sigmoid,
    stable_softmax,
)
from ..data.features import DenseFeatures
from ..exceptions import (
    DimensionMismatchError,
    FeatureTypeError,
    GroupIndexError,
    NullInputError,
    UnsupportedConfigurationError,
)
from ..training.loop import MonitoringMethod, TrainingLoop

logger = logging.getLogger(__name__)


class RestrictedBoltzmannMachine:
    """
    RBM with binary hidden units and grouped visible units.

    Visible groups are registered with add_visible_group before
    initialize_neural_network allocates the flat parameter vector.
    Training hyperparameters are plain attributes and may be changed
    between calls to train.
    """

    HYPERPARAMETERS = (
        'cd_num_steps',
        'cd_persistent',
        'cd_sample_visible',
        'l1_coefficient',
        'l2_coefficient',
        'monitoring_method',
        'monitoring_interval',
        'gd_mini_batch_size',
        'max_num_epochs',
        'gd_learning_rate',
        'gd_learning_rate_decay',
        'gd_momentum',
    )

    def __init__(
        self,
        num_hidden: int = 0,
        num_visible: Optional[int] = None,
        visible_unit_type: Union[VisibleUnitType, str] = VisibleUnitType.BINARY,
        random_seed: Optional[int] = None,
        generator: Optional[torch.Generator] = None,
        device: Optional[torch.device] = None,
    ):
        """
        Initialize the machine.

        Args:
            num_hidden: Number of hidden units
            num_visible: If given, a first visible group of this size is added
            visible_unit_type: Unit type of that first group
            random_seed: Seed for a freshly created generator
            generator: Random engine shared with the caller (takes precedence
                over random_seed)
            device: Device for parameters and state buffers
        """
        self.num_hidden = num_hidden
        self.num_visible = 0
        self.visible_groups: List[VisibleGroup] = []
        self.device = device or torch.device('cpu')
        self.dtype = torch.float64

        if generator is None:
            generator = torch.Generator(device=self.device)
            if random_seed is not None:
                generator.manual_seed(random_seed)
            else:
                generator.seed()
        self.generator = generator

        # Training hyperparameters
        self.cd_num_steps = 1
        self.cd_persistent = True
        self.cd_sample_visible = False
        self.l2_coefficient = 0.0
        self.l1_coefficient = 0.0
        self.monitoring_method = MonitoringMethod.RECONSTRUCTION_ERROR
        self.monitoring_interval = 10
        self.gd_mini_batch_size = 0
        self.max_num_epochs = 1
        self.gd_learning_rate = 0.1
        self.gd_learning_rate_decay = 1.0
        self.gd_momentum = 0.9

        self.params = torch.zeros(0, dtype=self.dtype, device=self.device)

        # Batch state, reallocated by set_batch_size
        self.batch_size = 0
        self.hidden_state = torch.zeros(0, 0, dtype=self.dtype, device=self.device)
        self.visible_state = torch.zeros(0, 0, dtype=self.dtype, device=self.device)

        if num_visible is not None:
            self.add_visible_group(num_visible, visible_unit_type)

    # ------------------------------------------------------------------
    # Layout
    # ------------------------------------------------------------------

    @property
    def num_visible_groups(self) -> int:
        return len(self.visible_groups)

    @property
    def layout(self) -> ParameterLayout:
        return ParameterLayout(num_visible=self.num_visible, num_hidden=self.num_hidden)

    @property
    def num_params(self) -> int:
        return self.params.numel()

    def add_visible_group(self, num_units: int, unit_type: Union[VisibleUnitType, str]) -> VisibleGroup:
        """
        Append a group of visible units.

        The group occupies the next ``num_units`` rows of the visible state.

        Args:
            num_units: Number of units in the group
            unit_type: Binary, softmax or Gaussian

        Returns:
            The registered group
        """
        if self.num_params > 0:
            raise RuntimeError("Visible groups must be added before initialize_neural_network")
        if num_units <= 0:
            raise ValueError(f"Visible group size must be positive, got {num_units}")

        group = VisibleGroup(
            size=int(num_units),
            unit_type=VisibleUnitType(unit_type),
            offset=self.num_visible,
        )
        self.visible_groups.append(group)
        self.num_visible += group.size

        logger.debug(f"Added {group.unit_type.value} visible group of {group.size} units at offset {group.offset}")
        return group

    def initialize_neural_network(self, sigma: float = 0.01) -> None:
        """Allocate the parameter vector and draw every entry from N(0, sigma)."""
        num_params = self.layout.num_params
        self.params = torch.normal(
            0.0, sigma, (num_params,),
            generator=self.generator, dtype=self.dtype, device=self.device
        )
        logger.info(
            f"Initialized RBM with {self.num_visible} visible units in "
            f"{self.num_visible_groups} groups, {self.num_hidden} hidden units, "
            f"{num_params} parameters"
        )

    def parameter_views(self, p: Optional[torch.Tensor] = None) -> ParameterViews:
        return parameter_views(self.params if p is None else p, self.layout)

    def get_weights(self, p: Optional[torch.Tensor] = None) -> torch.Tensor:
        """Weight matrix [num_hidden, num_visible] viewed in ``p`` (default: live parameters)."""
        return self.parameter_views(p).weights

    def get_hidden_bias(self, p: Optional[torch.Tensor] = None) -> torch.Tensor:
        return self.parameter_views(p).hidden_bias

    def get_visible_bias(self, p: Optional[torch.Tensor] = None) -> torch.Tensor:
        return self.parameter_views(p).visible_bias

    # ------------------------------------------------------------------
    # Batch state
    # ------------------------------------------------------------------

    def set_batch_size(self, batch_size: int) -> None:
        """Reallocate the state buffers for a new batch size and restart the chain."""
        if self.batch_size == batch_size:
            return

        self.batch_size = batch_size
        self.hidden_state = torch.zeros(self.num_hidden, batch_size, dtype=self.dtype, device=self.device)
        self.visible_state = torch.zeros(self.num_visible, batch_size, dtype=self.dtype, device=self.device)

        self.reset_chain()

    def reset_chain(self) -> None:
        """Redraw the visible state as independent Bernoulli(0.5) units."""
        self.visible_state.copy_(random_binary_state(
            self.num_visible, self.batch_size,
            generator=self.generator, dtype=self.dtype, device=self.device
        ))

    # ------------------------------------------------------------------
    # Inference
    # ------------------------------------------------------------------

    def mean_hidden(self, visible: torch.Tensor, result: Optional[torch.Tensor] = None) -> torch.Tensor:
        """
        Hidden activation probabilities given the visible states.

        Args:
            visible: Visible states [num_visible, batch_size]
            result: Output buffer [num_hidden, batch_size], written in place

        Returns:
            result (or a new tensor when no buffer is given)
        """
        W = self.get_weights()
        c = self.get_hidden_bias()

        mean = sigmoid(c.unsqueeze(1) + W @ visible)

        if result is None:
            return mean
        result.copy_(mean)
        return result

    def mean_visible(self, hidden: torch.Tensor, result: Optional[torch.Tensor] = None) -> torch.Tensor:
        """
        Visible means given the hidden states.

        Binary groups go through a sigmoid, softmax groups are normalized per
        column over their own rows and Gaussian groups keep the linear
        activation.

        Args:
            hidden: Hidden states [num_hidden, batch_size]
            result: Output buffer [num_visible, batch_size], written in place

        Returns:
            result (or a new tensor when no buffer is given)
        """
        W = self.get_weights()
        b = self.get_visible_bias()

        activation = b.unsqueeze(1) + W.t() @ hidden

        for group in self.visible_groups:
            rows = group.rows
            if group.unit_type == VisibleUnitType.BINARY:
                activation[rows] = sigmoid(activation[rows])
            elif group.unit_type == VisibleUnitType.SOFTMAX:
                activation[rows] = stable_softmax(activation[rows], dim=0)

        if result is None:
            return activation
        result.copy_(activation)
        return result

    def sample_hidden(self, mean: torch.Tensor, result: Optional[torch.Tensor] = None) -> torch.Tensor:
        """Bernoulli draw of the hidden units. ``result`` may alias ``mean``."""
        states = sample_bernoulli(mean, generator=self.generator)

        if result is None:
            return states
        result.copy_(states)
        return result

    def sample_visible(self, mean: torch.Tensor, result: Optional[torch.Tensor] = None) -> torch.Tensor:
        """Sample every visible group from its mean. ``result`` may alias ``mean``."""
        if result is None:
            result = mean.clone()

        for index in range(self.num_visible_groups):
            self.sample_visible_group(index, mean, result)

        return result

    def sample_visible_group(self, index: int, mean: torch.Tensor, result: torch.Tensor) -> torch.Tensor:
        """
        Sample one visible group, leaving the other rows of ``result`` alone.

        Binary units are Bernoulli draws, a softmax group yields one active
        unit per column and Gaussian units are drawn with unit variance
        around their mean.
        """
        self._check_group_index(index)
        group = self.visible_groups[index]
        rows = group.rows

        if group.unit_type == VisibleUnitType.BINARY:
            result[rows] = sample_bernoulli(mean[rows], generator=self.generator)
        elif group.unit_type == VisibleUnitType.SOFTMAX:
            result[rows] = sample_categorical(mean[rows], generator=self.generator)
        elif group.unit_type == VisibleUnitType.GAUSSIAN:
            result[rows] = sample_gaussian(mean[rows], generator=self.generator)

        return result

    # ------------------------------------------------------------------
    # Energy and gradients
    # ------------------------------------------------------------------

    def free_energy(self, visible: torch.Tensor, buffer: Optional[torch.Tensor] = None) -> float:
        """
        Batch-averaged free energy of the visible states.

        F(v) = -b'v - sum_j softplus(c_j + W_j v) + sum_gaussian v^2 / 2

        Args:
            visible: Visible states [num_visible, batch_size]
            buffer: Optional scratch matrix [num_hidden, batch_size]

        Returns:
            Free energy averaged over the batch
        """
        self.set_batch_size(visible.shape[1])

        W = self.get_weights()
        b = self.get_visible_bias()
        c = self.get_hidden_bias()

        bv_term = torch.sum(b @ visible)

        wv = c.unsqueeze(1) + W @ visible
        if buffer is not None:
            buffer.copy_(wv)
            wv = buffer
        wv_term = torch.sum(F.softplus(wv))

        free_energy = -(bv_term + wv_term) / self.batch_size

        for group in self.visible_groups:
            if group.unit_type == VisibleUnitType.GAUSSIAN:
                free_energy += 0.5 * torch.sum(visible[group.rows] ** 2) / self.batch_size

        return free_energy.item()

    def free_energy_gradients(
        self,
        visible: torch.Tensor,
        gradients: torch.Tensor,
        positive_phase: bool = True,
        hidden_mean_given_visible: Optional[torch.Tensor] = None,
    ) -> torch.Tensor:
        """
        Gradient of the batch-averaged free energy w.r.t. all parameters.

        The positive phase overwrites ``gradients``; the negative phase adds
        the opposite-signed statistics onto what is already there, so
        running both leaves the CD gradient (negative minus positive).

        Args:
            visible: Visible states [num_visible, batch_size]
            gradients: Flat gradient vector laid out like the parameters
            positive_phase: Overwrite (True) or accumulate (False)
            hidden_mean_given_visible: Precomputed mean_hidden(visible)

        Returns:
            gradients
        """
        self.set_batch_size(visible.shape[1])

        if hidden_mean_given_visible is None:
            hidden_mean_given_visible = self.mean_hidden(visible)

        PH = hidden_mean_given_visible
        grads = self.parameter_views(gradients)

        weight_stats = PH @ visible.t()
        visible_stats = torch.sum(visible, dim=1)
        hidden_stats = torch.sum(PH, dim=1)

        if positive_phase:
            grads.weights.copy_(-weight_stats / self.batch_size)
            grads.visible_bias.copy_(-visible_stats / self.batch_size)
            grads.hidden_bias.copy_(-hidden_stats / self.batch_size)
        else:
            grads.weights.add_(weight_stats / self.batch_size)
            grads.visible_bias.add_(visible_stats / self.batch_size)
            grads.hidden_bias.add_(hidden_stats / self.batch_size)

        return gradients

    # ------------------------------------------------------------------
    # Training
    # ------------------------------------------------------------------

    def contrastive_divergence(self, visible_batch: torch.Tensor, gradients: torch.Tensor) -> torch.Tensor:
        """
        Estimate the log-likelihood gradient on one batch with (P)CD-k.

        With cd_persistent the chain continues from the resident visible
        state; otherwise it starts from the hidden means of the batch.

        Args:
            visible_batch: Training batch [num_visible, batch_size]
            gradients: Flat gradient vector to fill

        Returns:
            gradients
        """
        self.set_batch_size(visible_batch.shape[1])

        # positive phase
        self.mean_hidden(visible_batch, self.hidden_state)
        self.free_energy_gradients(visible_batch, gradients, True, self.hidden_state)

        # sampling
        for i in range(self.cd_num_steps):
            if i > 0 or self.cd_persistent:
                self.mean_hidden(self.visible_state, self.hidden_state)
            self.sample_hidden(self.hidden_state, self.hidden_state)
            self.mean_visible(self.hidden_state, self.visible_state)
            if self.cd_sample_visible:
                self.sample_visible(self.visible_state, self.visible_state)

        # negative phase
        self.mean_hidden(self.visible_state, self.hidden_state)
        self.free_energy_gradients(self.visible_state, gradients, False, self.hidden_state)

        # regularization, weights only
        weight_grads = self.get_weights(gradients)
        weights = self.get_weights()
        if self.l2_coefficient > 0:
            weight_grads.add_(weights, alpha=self.l2_coefficient)
        if self.l1_coefficient > 0:
            # same form as the L2 term, not coefficient * sign(weights)
            weight_grads.add_(weights, alpha=self.l1_coefficient)

        return gradients

    def train(self, features: Optional[DenseFeatures], callbacks: Optional[List[Any]] = None) -> Dict[str, List[float]]:
        """
        Train with minibatch momentum gradient descent on (P)CD gradients.

        Args:
            features: Float64 DenseFeatures with num_visible features
            callbacks: Progress callbacks (see hetrbm.training.callbacks)

        Returns:
            Monitoring history (global step, epoch and diagnostic value)
        """
        if features is None:
            raise NullInputError("Invalid (None) features")
        if not isinstance(features, DenseFeatures) or features.dtype != torch.float64:
            raise FeatureTypeError("Input features must be DenseFeatures holding float64 values")
        if features.num_features != self.num_visible:
            raise DimensionMismatchError(
                f"Number of features ({features.num_features}) must match the RBM's "
                f"number of visible units ({self.num_visible})"
            )
        if self.num_params == 0:
            raise RuntimeError("initialize_neural_network must be called before train")
        if self.monitoring_method == MonitoringMethod.PSEUDO_LIKELIHOOD:
            self._check_all_binary()

        inputs = features.get_feature_matrix().to(self.device)
        loop = TrainingLoop(self, callbacks=callbacks)
        return loop.run(inputs)

    def reconstruction_error(self, visible: torch.Tensor, buffer: Optional[torch.Tensor] = None) -> float:
        """
        Squared error of a one-step reconstruction, summed over units and
        averaged over the batch.
        """
        self.set_batch_size(visible.shape[1])

        if buffer is None:
            buffer = torch.zeros(self.num_visible, self.batch_size, dtype=self.dtype, device=self.device)

        self.mean_hidden(visible, self.hidden_state)
        self.sample_hidden(self.hidden_state, self.hidden_state)
        self.mean_visible(self.hidden_state, buffer)

        error = torch.sum((buffer - visible) ** 2)
        return (error / self.batch_size).item()

    def pseudo_likelihood(self, visible: torch.Tensor, buffer: Optional[torch.Tensor] = None) -> float:
        """
        Stochastic pseudo-log-likelihood estimate for binary visible units.

        One randomly chosen unit is flipped per column and the estimate is
        num_visible * log(sigmoid(F(flipped) - F(visible))).
        """
        self._check_all_binary()
        self.set_batch_size(visible.shape[1])

        if buffer is None:
            buffer = torch.zeros(self.num_hidden, self.batch_size, dtype=self.dtype, device=self.device)

        indices = torch.randint(
            0, self.num_visible, (self.batch_size,),
            generator=self.generator, device=self.device
        )
        columns = torch.arange(self.batch_size, device=self.device)

        f1 = self.free_energy(visible, buffer)

        flipped = visible.clone()
        flipped[indices, columns] = 1.0 - flipped[indices, columns]
        f2 = self.free_energy(flipped, buffer)

        return self.num_visible * F.logsigmoid(torch.tensor(f2 - f1, dtype=self.dtype)).item()

    # ------------------------------------------------------------------
    # Sampling
    # ------------------------------------------------------------------

    def sample(self, num_gibbs_steps: int = 1, batch_size: int = 1) -> torch.Tensor:
        """
        Run block Gibbs sampling from the resident visible state.

        The final sweep stops at the visible means.

        Returns:
            The visible state [num_visible, batch_size]
        """
        self.set_batch_size(batch_size)

        for i in range(num_gibbs_steps):
            self.mean_hidden(self.visible_state, self.hidden_state)
            self.sample_hidden(self.hidden_state, self.hidden_state)
            self.mean_visible(self.hidden_state, self.visible_state)
            if i < num_gibbs_steps - 1:
                self.sample_visible(self.visible_state, self.visible_state)

        return self.visible_state

    def sample_group(self, V: int, num_gibbs_steps: int = 1, batch_size: int = 1) -> DenseFeatures:
        """Sample and return the rows of visible group ``V`` only."""
        self._check_group_index(V)

        self.sample(num_gibbs_steps, batch_size)
        return self._extract_group(V)

    def sample_with_evidence(self, E: int, evidence: DenseFeatures, num_gibbs_steps: int = 1) -> torch.Tensor:
        """
        Gibbs sampling with visible group ``E`` clamped to ``evidence``.

        The batch size becomes the number of evidence vectors. The evidence
        rows are rewritten after every sweep, so they hold the evidence
        exactly when sampling ends.

        Returns:
            The visible state [num_visible, batch_size]
        """
        self._check_group_index(E)
        group = self.visible_groups[E]
        if evidence.num_features != group.size:
            raise DimensionMismatchError(
                f"Evidence has {evidence.num_features} features but visible group {E} "
                f"has {group.size} units"
            )

        evidence_matrix = evidence.get_feature_matrix().to(dtype=self.dtype, device=self.device)
        self.set_batch_size(evidence.num_vectors)

        rows = group.rows
        self.visible_state[rows] = evidence_matrix

        for n in range(num_gibbs_steps):
            self.mean_hidden(self.visible_state, self.hidden_state)
            self.sample_hidden(self.hidden_state, self.hidden_state)
            self.mean_visible(self.hidden_state, self.visible_state)
            if n < num_gibbs_steps - 1:
                for k in range(self.num_visible_groups):
                    if k != E:
                        self.sample_visible_group(k, self.visible_state, self.visible_state)

            self.visible_state[rows] = evidence_matrix

        return self.visible_state

    def sample_group_with_evidence(
        self,
        V: int,
        E: int,
        evidence: DenseFeatures,
        num_gibbs_steps: int = 1
    ) -> DenseFeatures:
        """Evidence-clamped sampling returning the rows of group ``V`` only."""
        self._check_group_index(V)
        self._check_group_index(E)

        self.sample_with_evidence(E, evidence, num_gibbs_steps)
        return self._extract_group(V)

    def _check_group_index(self, index: int) -> None:
        if not 0 <= index < self.num_visible_groups:
            raise GroupIndexError(
                f"Visible group index ({index}) out of bounds ({self.num_visible_groups})"
            )

    def _check_all_binary(self) -> None:
        for group in self.visible_groups:
            if group.unit_type != VisibleUnitType.BINARY:
                raise UnsupportedConfigurationError(
                    "Pseudo-likelihood is only supported for binary visible units"
                )

    def _extract_group(self, index: int) -> DenseFeatures:
        rows = self.visible_groups[index].rows
        return DenseFeatures(self.visible_state[rows].clone())

    # ------------------------------------------------------------------
    # Configuration and persistence
    # ------------------------------------------------------------------

    def get_hyperparameters(self) -> Dict[str, Any]:
        hyperparameters = {name: getattr(self, name) for name in self.HYPERPARAMETERS}
        hyperparameters['monitoring_method'] = MonitoringMethod(self.monitoring_method).value
        return hyperparameters

    def set_hyperparameters(self, **kwargs) -> None:
        """Set training hyperparameters by name."""
        for name, value in kwargs.items():
            if name not in self.HYPERPARAMETERS:
                raise ValueError(f"Unknown hyperparameter: {name}")
            if name == 'monitoring_method':
                value = MonitoringMethod(value)
            setattr(self, name, value)

    def save_checkpoint(self, filepath: Path) -> None:
        """Save layout, hyperparameters and parameters (not the chain)."""
        checkpoint = {
            'config': {
                'num_hidden': self.num_hidden,
                'visible_groups': [
                    {'size': group.size, 'type': group.unit_type.value}
                    for group in self.visible_groups
                ],
            },
            'hyperparameters': self.get_hyperparameters(),
            'params': self.params.detach().cpu(),
        }
        torch.save(checkpoint, filepath)
        logger.info(f"Checkpoint saved to {filepath}")

    @classmethod
    def load_checkpoint(
        cls,
        filepath: Path,
        random_seed: Optional[int] = None,
        device: Optional[torch.device] = None
    ) -> 'RestrictedBoltzmannMachine':
        """Rebuild a model saved with save_checkpoint."""
        checkpoint = torch.load(filepath, map_location='cpu')

        model = cls(num_hidden=checkpoint['config']['num_hidden'], random_seed=random_seed, device=device)
        for group in checkpoint['config']['visible_groups']:
            model.add_visible_group(group['size'], group['type'])
        model.set_hyperparameters(**checkpoint['hyperparameters'])
        model.params = checkpoint['params'].to(dtype=model.dtype, device=model.device)

        logger.info(f"Checkpoint loaded from {filepath}")
        return model

    def __repr__(self) -> str:
        groups = ", ".join(f"{g.unit_type.value}:{g.size}" for g in self.visible_groups)
        return (
            f"RestrictedBoltzmannMachine("
            f"num_visible={self.num_visible}, "
            f"num_hidden={self.num_hidden}, "
            f"visible_groups=[{groups}])"
        )
