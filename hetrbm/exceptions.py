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
Exceptions raised by HetRBM.

All of them signal a broken caller contract. They are raised before any
model state is touched and nothing inside the library retries them.
"""


class RBMError(Exception):
    """Base class for all HetRBM errors."""


class NullInputError(RBMError, ValueError):
    """Raised when no features are given to a training call."""


class FeatureTypeError(RBMError, TypeError):
    """Raised when features are not dense float64 matrices."""


class DimensionMismatchError(RBMError, ValueError):
    """Raised when a matrix does not match the unit count it is meant for."""


class GroupIndexError(RBMError, IndexError):
    """Raised when a visible group index is outside the registered groups."""


class UnsupportedConfigurationError(RBMError, ValueError):
    """Raised when an operation is not defined for the configured unit types."""
