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
Models module for HetRBM.

- RestrictedBoltzmannMachine: RBM with binary, softmax and Gaussian visible
  groups, trained with CD-k or PCD
- Parameter layout helpers for the flat parameter vector
- Sampling utilities
"""

from .rbm import RestrictedBoltzmannMachine
from .layout import (
    ParameterLayout,
    ParameterViews,
    VisibleGroup,
    VisibleUnitType,
    parameter_views
)
from .utils import (
    sigmoid,
    stable_softmax,
    sample_bernoulli,
    sample_gaussian,
    sample_categorical,
    random_binary_state
)

__all__ = [
    "RestrictedBoltzmannMachine",
    "ParameterLayout",
    "ParameterViews",
    "VisibleGroup",
    "VisibleUnitType",
    "parameter_views",
    "sigmoid",
    "stable_softmax",
    "sample_bernoulli",
    "sample_gaussian",
    "sample_categorical",
    "random_binary_state"
]
