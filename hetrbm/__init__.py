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
HetRBM: Restricted Boltzmann Machines with heterogeneous visible units.
"""

from .data import DenseFeatures
from .exceptions import (
    RBMError,
    NullInputError,
    FeatureTypeError,
    DimensionMismatchError,
    GroupIndexError,
    UnsupportedConfigurationError
)
from .models import RestrictedBoltzmannMachine, VisibleUnitType
from .training import MonitoringMethod

__version__ = "0.1.0"
__all__ = [
    "DenseFeatures",
    "RestrictedBoltzmannMachine",
    "VisibleUnitType",
    "MonitoringMethod",
    "RBMError",
    "NullInputError",
    "FeatureTypeError",
    "DimensionMismatchError",
    "GroupIndexError",
    "UnsupportedConfigurationError"
]
