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
Training script for HetRBM models.

Reads an experiment configuration, loads samples-as-rows data from a
``.npy`` or ``.csv`` file, trains the model and writes a checkpoint.

Usage:
    # Train with the data path from the configuration
    python scripts/train.py --config=configs/base.yaml

    # Override data, epochs and learning rate
    python scripts/train.py --config=configs/base.yaml --data=train.csv --epochs=50 --lr=0.05

    # Pseudo-likelihood monitoring with plain CD-5
    python scripts/train.py --config=configs/base.yaml --k=5 --no_pcd --monitor=pseudo_likelihood
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional
import numpy as np
import pandas as pd

from hetrbm.config import ConfigManager, build_model
from hetrbm.data import DenseFeatures
from hetrbm.training.callbacks import get_standard_callbacks

logger = logging.getLogger(__name__)


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description='Train HetRBM models',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )

    parser.add_argument('--config', type=str, required=True,
                       help='Path to experiment configuration (YAML or JSON)')
    parser.add_argument('--data', type=str, help='Training data file (.npy or .csv, one sample per row)')
    parser.add_argument('--output', type=str, help='Output directory override')

    # Training configuration overrides
    parser.add_argument('--hidden', type=int, help='Number of hidden units')
    parser.add_argument('--k', type=int, help='CD-k steps')
    parser.add_argument('--epochs', type=int, help='Training epochs')
    parser.add_argument('--batch_size', type=int, help='Minibatch size')
    parser.add_argument('--lr', type=float, help='Learning rate')
    parser.add_argument('--momentum', type=float, help='Momentum')
    parser.add_argument('--no_pcd', action='store_true', help='Use CD instead of PCD')
    parser.add_argument('--monitor', type=str, choices=['reconstruction_error', 'pseudo_likelihood'],
                       help='Monitoring method')
    parser.add_argument('--seed', type=int, help='Random seed')

    parser.add_argument('--log_level', type=str, default='INFO',
                       choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                       help='Logging level')

    return parser.parse_args(argv)


def build_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    """Translate command line arguments into dot-notation overrides."""
    overrides = {}

    if args.hidden is not None:
        overrides['model.num_hidden'] = args.hidden
    if args.seed is not None:
        overrides['model.random_seed'] = args.seed
    if args.k is not None:
        overrides['training.cd_num_steps'] = args.k
    if args.epochs is not None:
        overrides['training.max_num_epochs'] = args.epochs
    if args.batch_size is not None:
        overrides['training.gd_mini_batch_size'] = args.batch_size
    if args.lr is not None:
        overrides['training.gd_learning_rate'] = args.lr
    if args.momentum is not None:
        overrides['training.gd_momentum'] = args.momentum
    if args.no_pcd:
        overrides['training.cd_persistent'] = False
    if args.monitor:
        overrides['training.monitoring_method'] = args.monitor
    if args.data:
        overrides['data.path'] = args.data
    if args.output:
        overrides['output.save_dir'] = args.output

    return overrides


def load_data(path: Path) -> DenseFeatures:
    """Load samples-as-rows data into column-per-sample features."""
    if path.suffix.lower() == '.npy':
        array = np.load(path)
    elif path.suffix.lower() == '.csv':
        array = pd.read_csv(path, header=None).to_numpy()
    else:
        raise ValueError(f"Unsupported data format: {path.suffix}")

    features = DenseFeatures.from_numpy(array, samples_as_rows=True)
    logger.info(f"Loaded {features.num_vectors} samples with {features.num_features} features from {path}")
    return features


def main(argv: Optional[List[str]] = None) -> Path:
    """Train a model and return the checkpoint path."""
    args = parse_arguments(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stdout)]
    )

    config = ConfigManager.load(args.config, overrides=build_overrides(args))

    data_path = config.get('data', {}).get('path')
    if not data_path:
        raise ValueError("No training data given (use --data or data.path in the config)")

    features = load_data(Path(data_path))
    model = build_model(config)

    model.train(features, callbacks=get_standard_callbacks())

    save_dir = Path(config.get('output', {}).get('save_dir', 'runs/default'))
    save_dir.mkdir(parents=True, exist_ok=True)

    checkpoint_path = save_dir / 'final_model.pt'
    model.save_checkpoint(checkpoint_path)
    ConfigManager.save(config, save_dir / 'config.yaml', include_metadata=False)

    return checkpoint_path


if __name__ == '__main__':
    main()
