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
Training module for HetRBM.

This module provides the training infrastructure behind
RestrictedBoltzmannMachine.train:
- TrainingLoop: epoch/minibatch iteration with momentum updates
- MonitoringMethod: diagnostics reported during training
- Callbacks: progress logging and metric recording
"""

from .loop import MonitoringMethod, TrainingLoop
from .callbacks import (
    Callback,
    MetricMonitor,
    ProgressLogger,
    get_standard_callbacks
)

__all__ = [
    "TrainingLoop",
    "MonitoringMethod",
    "Callback",
    "MetricMonitor",
    "ProgressLogger",
    "get_standard_callbacks"
]
