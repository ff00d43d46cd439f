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
Sampling script for trained HetRBM models.

Usage:
    # Unconditional samples of the whole visible layer
    python scripts/sample.py --checkpoint=runs/base/final_model.pt --n=100 --gibbs=500

    # Samples of one visible group
    python scripts/sample.py --checkpoint=runs/base/final_model.pt --group=1

    # Group 1 given evidence for group 0 (one evidence vector per row)
    python scripts/sample.py --checkpoint=runs/base/final_model.pt --group=1 \
        --evidence_group=0 --evidence=evidence.npy
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional
import numpy as np

from hetrbm.data import DenseFeatures
from hetrbm.models.rbm import RestrictedBoltzmannMachine

logger = logging.getLogger(__name__)


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description='Sample from trained HetRBM models',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )

    parser.add_argument('--checkpoint', type=str, required=True,
                       help='Path to model checkpoint')
    parser.add_argument('--n', type=int, default=100,
                       help='Number of samples (ignored with --evidence)')
    parser.add_argument('--gibbs', type=int, default=100,
                       help='Number of Gibbs steps')
    parser.add_argument('--group', type=int,
                       help='Only output this visible group')
    parser.add_argument('--evidence_group', type=int,
                       help='Visible group clamped to the evidence')
    parser.add_argument('--evidence', type=str,
                       help='Evidence file (.npy, one vector per row)')
    parser.add_argument('--seed', type=int, help='Random seed')
    parser.add_argument('--output', type=str, default='samples.npy',
                       help='Output file (.npy, one sample per row)')

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> np.ndarray:
    """Draw samples and write them to ``--output``."""
    args = parse_arguments(argv)

    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s',
                        handlers=[logging.StreamHandler(sys.stdout)])

    if (args.evidence is None) != (args.evidence_group is None):
        raise ValueError("--evidence and --evidence_group must be given together")

    model = RestrictedBoltzmannMachine.load_checkpoint(Path(args.checkpoint), random_seed=args.seed)

    if args.evidence is not None:
        evidence = DenseFeatures.from_numpy(np.load(args.evidence), samples_as_rows=True)
        if args.group is not None:
            samples = model.sample_group_with_evidence(args.group, args.evidence_group, evidence, args.gibbs)
        else:
            samples = DenseFeatures(model.sample_with_evidence(args.evidence_group, evidence, args.gibbs).clone())
    elif args.group is not None:
        samples = model.sample_group(args.group, args.gibbs, args.n)
    else:
        samples = DenseFeatures(model.sample(args.gibbs, args.n).clone())

    result = samples.to_numpy(samples_as_rows=True)
    np.save(args.output, result)
    logger.info(f"Saved {result.shape[0]} samples with {result.shape[1]} features to {args.output}")

    return result


if __name__ == '__main__':
    main()
