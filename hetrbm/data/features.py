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
Dense feature matrices consumed and produced by the RBM.

Features are stored as ``num_features x num_vectors``: every column is one
sample. This matches the orientation of the RBM state buffers, so batches
are column slices.
"""

from typing import Union
import numpy as np
import torch
import logging

logger = logging.getLogger(__name__)


class DenseFeatures:
    """A dense matrix of samples, one sample per column."""

    def __init__(self, feature_matrix: Union[torch.Tensor, np.ndarray]):
        """
        Wrap a feature matrix.

        Args:
            feature_matrix: Matrix of shape [num_features, num_vectors]. The
                dtype is kept as given; training requires float64.
        """
        if isinstance(feature_matrix, np.ndarray):
            feature_matrix = torch.from_numpy(feature_matrix)

        if feature_matrix.dim() != 2:
            raise ValueError(
                f"Feature matrix must be 2-D, got shape {tuple(feature_matrix.shape)}"
            )

        self.feature_matrix = feature_matrix

    @classmethod
    def from_numpy(cls, array: np.ndarray, samples_as_rows: bool = False) -> 'DenseFeatures':
        """
        Build features from a numpy array.

        Args:
            array: 2-D array
            samples_as_rows: Set when ``array`` is [num_vectors, num_features],
                the usual layout of files on disk
        """
        array = np.asarray(array, dtype=np.float64)
        if samples_as_rows:
            array = array.T
        return cls(torch.from_numpy(np.ascontiguousarray(array)))

    @property
    def num_features(self) -> int:
        return self.feature_matrix.shape[0]

    @property
    def num_vectors(self) -> int:
        return self.feature_matrix.shape[1]

    @property
    def dtype(self) -> torch.dtype:
        return self.feature_matrix.dtype

    def get_feature_matrix(self) -> torch.Tensor:
        """Return the underlying matrix (not a copy)."""
        return self.feature_matrix

    def to_numpy(self, samples_as_rows: bool = False) -> np.ndarray:
        array = self.feature_matrix.detach().cpu().numpy()
        return array.T if samples_as_rows else array

    def __repr__(self) -> str:
        return f"DenseFeatures(num_features={self.num_features}, num_vectors={self.num_vectors}, dtype={self.dtype})"
