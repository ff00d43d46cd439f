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
Sampling and activation helpers shared by the RBM engine

Every random draw takes an explicit ``torch.Generator`` so that a model
seeded once reproduces the same chain. Matrices are laid out as
``units x batch``: activations of one sample live in one column.
"""

from typing import Optional
import torch
import logging

logger = logging.getLogger(__name__)


def sigmoid(x: torch.Tensor) -> torch.Tensor:
    """Elementwise logistic function."""
    return torch.sigmoid(x)


def stable_softmax(activations: torch.Tensor, dim: int = 0) -> torch.Tensor:
    """
    Normalized exponential computed in the log domain.

    The maximum along ``dim`` is subtracted before exponentiating so large
    activations do not overflow.

    Args:
        activations: Unnormalized log-probabilities
        dim: Dimension holding the categories (0 for ``units x batch``)

    Returns:
        Probabilities summing to one along ``dim``
    """
    shifted = activations - torch.max(activations, dim=dim, keepdim=True).values
    normalizer = torch.log(torch.sum(torch.exp(shifted), dim=dim, keepdim=True))
    return torch.exp(shifted - normalizer)


def sample_bernoulli(probs: torch.Tensor, generator: Optional[torch.Generator] = None) -> torch.Tensor:
    """
    Draw binary states, 1 where a uniform draw falls below ``probs``.

    Args:
        probs: Bernoulli probabilities
        generator: Random engine

    Returns:
        Tensor of 0.0/1.0 with the shape and dtype of ``probs``
    """
    uniform = torch.rand(probs.shape, generator=generator, dtype=probs.dtype, device=probs.device)
    return (uniform < probs).to(probs.dtype)


def sample_gaussian(
    mean: torch.Tensor,
    std: float = 1.0,
    generator: Optional[torch.Generator] = None
) -> torch.Tensor:
    """Draw from independent Gaussians centred on ``mean``."""
    noise = torch.randn(mean.shape, generator=generator, dtype=mean.dtype, device=mean.device)
    return mean + std * noise


def sample_categorical(probs: torch.Tensor, generator: Optional[torch.Generator] = None) -> torch.Tensor:
    """
    One-hot categorical draw per column.

    A uniform threshold is drawn for each column and the first unit whose
    cumulative probability reaches it is switched on. When rounding keeps the
    cumulative sum below the threshold the last unit is chosen.

    Args:
        probs: Column-stochastic matrix ``categories x batch``
        generator: Random engine

    Returns:
        One-hot matrix with the shape of ``probs``
    """
    num_categories, batch_size = probs.shape
    threshold = torch.rand(batch_size, generator=generator, dtype=probs.dtype, device=probs.device)
    cumulative = torch.cumsum(probs, dim=0)

    reached = threshold.unsqueeze(0) <= cumulative
    index = torch.where(
        reached.any(dim=0),
        reached.to(probs.dtype).argmax(dim=0),
        torch.full_like(threshold, num_categories - 1, dtype=torch.int64),
    )

    result = torch.zeros_like(probs)
    result[index, torch.arange(batch_size, device=probs.device)] = 1.0
    return result


def random_binary_state(
    num_units: int,
    batch_size: int,
    generator: Optional[torch.Generator] = None,
    dtype: torch.dtype = torch.float64,
    device: Optional[torch.device] = None
) -> torch.Tensor:
    """Independent Bernoulli(0.5) states, used to start a fresh chain."""
    uniform = torch.rand((num_units, batch_size), generator=generator, dtype=dtype, device=device)
    return (uniform > 0.5).to(dtype)
