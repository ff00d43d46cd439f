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
Training callbacks for progress reporting and monitoring

The training loop only computes diagnostics; where they go is decided by
callbacks:
- ProgressLogger: timing information per epoch
- MetricMonitor: keeps every reported diagnostic value
"""

from typing import Any, Dict, List, Optional
import logging
import time
from abc import ABC

logger = logging.getLogger(__name__)


class Callback(ABC):
    """Base class for training callbacks."""

    def on_train_begin(self, logs: Dict[str, Any], model: Any) -> None:
        """Called at the beginning of training."""
        pass

    def on_train_end(self, logs: Dict[str, Any], model: Any) -> None:
        """Called at the end of training."""
        pass

    def on_epoch_begin(self, epoch: int, logs: Dict[str, Any], model: Any) -> None:
        """Called at the beginning of each epoch."""
        pass

    def on_epoch_end(self, epoch: int, logs: Dict[str, Any], model: Any) -> None:
        """Called at the end of each epoch."""
        pass

    def on_batch_end(self, batch: int, logs: Dict[str, Any], model: Any) -> None:
        """Called after a minibatch whose diagnostic was evaluated."""
        pass


class MetricMonitor(Callback):
    """Record diagnostics reported during training."""

    def __init__(self, verbose: bool = False):
        """
        Initialize metric monitor.

        Args:
            verbose: Whether to log every recorded value
        """
        self.verbose = verbose
        self.metric_history: Dict[str, List[float]] = {}

    def on_train_begin(self, logs: Dict[str, Any], model: Any) -> None:
        self.metric_history = {}

    def on_batch_end(self, batch: int, logs: Dict[str, Any], model: Any) -> None:
        for name, value in logs.items():
            self.metric_history.setdefault(name, []).append(value)
            if self.verbose and name not in ('step', 'epoch'):
                logger.info(f"Step {batch}: {name} = {value:.4f}")

    def get_metric_history(self) -> Dict[str, List[float]]:
        """Get history of recorded metrics."""
        return self.metric_history.copy()


class ProgressLogger(Callback):
    """Simple progress logging callback."""

    def __init__(self, log_freq: int = 1):
        """
        Initialize progress logger.

        Args:
            log_freq: Frequency (epochs) for logging progress
        """
        self.log_freq = log_freq
        self.start_time: Optional[float] = None

    def on_train_begin(self, logs: Dict[str, Any], model: Any) -> None:
        """Record training start time."""
        self.start_time = time.time()
        logger.info("Training started")

    def on_epoch_end(self, epoch: int, logs: Dict[str, Any], model: Any) -> None:
        """Log progress."""
        if (epoch + 1) % self.log_freq == 0:
            elapsed = time.time() - self.start_time
            logger.info(
                f"Epoch {epoch + 1} completed in {elapsed:.2f}s "
                f"(learning rate {logs.get('learning_rate', 0):.6f})"
            )

    def on_train_end(self, logs: Dict[str, Any], model: Any) -> None:
        """Log training completion."""
        if self.start_time:
            total_time = time.time() - self.start_time
            logger.info(f"Training completed in {total_time:.2f}s")


def get_standard_callbacks(log_freq: int = 1, verbose: bool = False) -> List[Callback]:
    """
    Get a standard set of callbacks for training.

    Args:
        log_freq: Epoch interval for progress logs
        verbose: Whether the metric monitor logs every value

    Returns:
        List of configured callbacks
    """
    return [
        ProgressLogger(log_freq=log_freq),
        MetricMonitor(verbose=verbose),
    ]
