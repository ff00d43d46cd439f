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
Parameter and visible-state layout for RBMs with heterogeneous visible units

The model keeps every trainable value in one flat vector:

    [ visible bias | hidden bias | weights (num_hidden x num_visible) ]

Gradients use a vector of the same length and the same partitioning, so a
single ParameterLayout describes both. Views returned here never own memory;
writing through them writes into the vector they were taken from.
"""

from dataclasses import dataclass
from enum import Enum
from typing import NamedTuple

import torch


class VisibleUnitType(str, Enum):
    """Activation rule shared by all units of a visible group."""

    BINARY = "binary"
    SOFTMAX = "softmax"
    GAUSSIAN = "gaussian"


@dataclass(frozen=True)
class VisibleGroup:
    """A contiguous block of visible-state rows sharing one unit type."""

    size: int
    unit_type: VisibleUnitType
    offset: int

    @property
    def rows(self) -> slice:
        return slice(self.offset, self.offset + self.size)


class ParameterViews(NamedTuple):
    visible_bias: torch.Tensor
    hidden_bias: torch.Tensor
    weights: torch.Tensor


@dataclass(frozen=True)
class ParameterLayout:
    """Offsets of the three parameter blocks inside a flat vector."""

    num_visible: int
    num_hidden: int

    @property
    def num_params(self) -> int:
        return self.num_visible + self.num_hidden + self.num_visible * self.num_hidden

    @property
    def visible_bias_slice(self) -> slice:
        return slice(0, self.num_visible)

    @property
    def hidden_bias_slice(self) -> slice:
        return slice(self.num_visible, self.num_visible + self.num_hidden)

    @property
    def weights_slice(self) -> slice:
        return slice(self.num_visible + self.num_hidden, self.num_params)


def parameter_views(vector: torch.Tensor, layout: ParameterLayout) -> ParameterViews:
    """
    Split a flat parameter (or gradient) vector into its three blocks.

    Args:
        vector: 1-D tensor of length layout.num_params
        layout: Block offsets

    Returns:
        ParameterViews whose tensors are views into ``vector``
    """
    if vector.dim() != 1 or vector.numel() != layout.num_params:
        raise ValueError(
            f"Parameter vector of length {layout.num_params} expected, "
            f"got shape {tuple(vector.shape)}"
        )

    return ParameterViews(
        visible_bias=vector[layout.visible_bias_slice],
        hidden_bias=vector[layout.hidden_bias_slice],
        weights=vector[layout.weights_slice].view(layout.num_hidden, layout.num_visible),
    )

