"""
HetRBM Test Suite

Test Structure:
- test_models.py: Group layout, parameter views, inference, energy and CD
- test_sampling.py: Gibbs sampling with and without evidence
- test_training.py: Training loop, monitoring and input validation
- test_config.py: Configuration, checkpoints and scripts

Usage:
    # Run all tests
    python tests/run_tests.py

    # Run specific test module
    python tests/run_tests.py --test test_models

    # Stop on first failure
    python tests/run_tests.py --failfast
"""

import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

TEST_CONFIG = {
    'random_seed': 42,
    'tolerance': 1e-10,
}

__all__ = ['TEST_CONFIG']
