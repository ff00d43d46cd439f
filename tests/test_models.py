#!/usr/bin/env python3
"""
Unit tests for the RBM engine.

Covers visible group registration, the flat parameter layout, batch state
handling, inference primitives, free energy and its gradients, and the
contrastive divergence step.
"""

import unittest
import torch
import torch.nn.functional as F
from pathlib import Path
import sys

# Add project root to path
sys.path.append(str(Path(__file__).parent.parent))

from hetrbm.exceptions import GroupIndexError
from hetrbm.models.layout import ParameterLayout, VisibleUnitType, parameter_views
from hetrbm.models.rbm import RestrictedBoltzmannMachine
from hetrbm.models.utils import sample_bernoulli


def mixed_rbm(num_hidden=5, sigma=0.5, seed=0):
    """Binary(3) + softmax(4) + Gaussian(2) visible groups."""
    rbm = RestrictedBoltzmannMachine(num_hidden=num_hidden, random_seed=seed)
    rbm.add_visible_group(3, VisibleUnitType.BINARY)
    rbm.add_visible_group(4, VisibleUnitType.SOFTMAX)
    rbm.add_visible_group(2, VisibleUnitType.GAUSSIAN)
    rbm.initialize_neural_network(sigma)
    return rbm


class TestVisibleGroups(unittest.TestCase):
    """Test cases for visible group registration."""

    def test_offsets_are_prefix_sums(self):
        rbm = RestrictedBoltzmannMachine(num_hidden=3)
        sizes = [2, 5, 1, 3]
        types = ['binary', 'softmax', 'gaussian', 'binary']
        for size, unit_type in zip(sizes, types):
            rbm.add_visible_group(size, unit_type)

        self.assertEqual([g.offset for g in rbm.visible_groups], [0, 2, 7, 8])
        self.assertEqual(rbm.num_visible, sum(sizes))
        self.assertEqual(rbm.num_visible_groups, 4)
        self.assertEqual(rbm.visible_groups[1].unit_type, VisibleUnitType.SOFTMAX)

        # groups partition [0, num_visible)
        covered = []
        for group in rbm.visible_groups:
            covered.extend(range(rbm.num_visible)[group.rows])
        self.assertEqual(covered, list(range(rbm.num_visible)))

    def test_constructor_registers_first_group(self):
        rbm = RestrictedBoltzmannMachine(4, 6, 'softmax')

        self.assertEqual(rbm.num_hidden, 4)
        self.assertEqual(rbm.num_visible, 6)
        self.assertEqual(rbm.num_visible_groups, 1)
        self.assertEqual(rbm.visible_groups[0].unit_type, VisibleUnitType.SOFTMAX)

    def test_groups_after_initialization_rejected(self):
        rbm = RestrictedBoltzmannMachine(4, 6)
        rbm.initialize_neural_network()

        with self.assertRaises(RuntimeError):
            rbm.add_visible_group(2, 'binary')

    def test_invalid_group(self):
        rbm = RestrictedBoltzmannMachine(4)

        with self.assertRaises(ValueError):
            rbm.add_visible_group(0, 'binary')
        with self.assertRaises(ValueError):
            rbm.add_visible_group(3, 'poisson')


class TestParameterLayout(unittest.TestCase):
    """Test cases for the flat parameter vector and its views."""

    def test_initialization(self):
        rbm = RestrictedBoltzmannMachine(num_hidden=100, num_visible=4, random_seed=3)
        rbm.initialize_neural_network(sigma=1.0)

        self.assertEqual(rbm.num_params, 4 + 100 + 400)
        self.assertEqual(rbm.params.dtype, torch.float64)
        self.assertAlmostEqual(rbm.params.mean().item(), 0.0, delta=0.15)
        self.assertAlmostEqual(rbm.params.std().item(), 1.0, delta=0.15)

    def test_views_share_memory(self):
        rbm = mixed_rbm()
        nv, nh = rbm.num_visible, rbm.num_hidden

        self.assertEqual(rbm.get_weights().shape, (nh, nv))
        self.assertEqual(rbm.get_visible_bias().shape, (nv,))
        self.assertEqual(rbm.get_hidden_bias().shape, (nh,))

        rbm.get_weights()[1, 2] = 5.0
        rbm.get_hidden_bias()[0] = 3.0
        rbm.get_visible_bias()[4] = -2.0

        self.assertEqual(rbm.params[nv + nh + 1 * nv + 2].item(), 5.0)
        self.assertEqual(rbm.params[nv].item(), 3.0)
        self.assertEqual(rbm.params[4].item(), -2.0)

    def test_views_into_gradient_vector(self):
        rbm = mixed_rbm()
        params_before = rbm.params.clone()
        gradients = torch.zeros(rbm.num_params, dtype=torch.float64)

        rbm.get_visible_bias(gradients).fill_(1.0)
        rbm.get_weights(gradients).fill_(2.0)

        self.assertTrue(torch.all(gradients[:rbm.num_visible] == 1.0))
        self.assertTrue(torch.all(gradients[rbm.num_visible:rbm.num_visible + rbm.num_hidden] == 0.0))
        self.assertTrue(torch.all(gradients[rbm.num_visible + rbm.num_hidden:] == 2.0))
        self.assertTrue(torch.equal(rbm.params, params_before))

    def test_parameter_views_length_check(self):
        layout = ParameterLayout(num_visible=3, num_hidden=2)
        self.assertEqual(layout.num_params, 11)

        views = parameter_views(torch.arange(11, dtype=torch.float64), layout)
        self.assertEqual(views.visible_bias.tolist(), [0.0, 1.0, 2.0])
        self.assertEqual(views.hidden_bias.tolist(), [3.0, 4.0])
        self.assertEqual(views.weights.tolist(), [[5.0, 6.0, 7.0], [8.0, 9.0, 10.0]])

        with self.assertRaises(ValueError):
            parameter_views(torch.zeros(10, dtype=torch.float64), layout)


class TestBatchState(unittest.TestCase):
    """Test cases for state buffer allocation."""

    def setUp(self):
        self.rbm = mixed_rbm()

    def test_same_batch_size_is_noop(self):
        self.rbm.set_batch_size(5)
        visible_state = self.rbm.visible_state
        hidden_state = self.rbm.hidden_state
        contents = visible_state.clone()

        self.rbm.set_batch_size(5)

        self.assertIs(self.rbm.visible_state, visible_state)
        self.assertIs(self.rbm.hidden_state, hidden_state)
        self.assertTrue(torch.equal(self.rbm.visible_state, contents))

    def test_new_batch_size_redraws_chain(self):
        self.rbm.set_batch_size(8)
        first = self.rbm.visible_state.clone()

        self.rbm.set_batch_size(9)
        self.assertEqual(self.rbm.visible_state.shape, (self.rbm.num_visible, 9))
        self.assertEqual(self.rbm.hidden_state.shape, (self.rbm.num_hidden, 9))
        self.assertTrue(torch.all((self.rbm.visible_state == 0) | (self.rbm.visible_state == 1)))

        self.rbm.set_batch_size(8)
        self.assertFalse(torch.equal(self.rbm.visible_state, first))


class TestInference(unittest.TestCase):
    """Test cases for mean-field activations and sampling."""

    def setUp(self):
        self.rbm = mixed_rbm()
        generator = torch.Generator().manual_seed(7)
        self.hidden = sample_bernoulli(torch.full((5, 7), 0.5, dtype=torch.float64), generator)
        self.visible = sample_bernoulli(torch.full((9, 7), 0.5, dtype=torch.float64), generator)

    def test_mean_hidden(self):
        result = torch.zeros(5, 7, dtype=torch.float64)
        returned = self.rbm.mean_hidden(self.visible, result)

        self.assertIs(returned, result)
        self.assertTrue(torch.all(result > 0))
        self.assertTrue(torch.all(result < 1))

        W, c = self.rbm.get_weights(), self.rbm.get_hidden_bias()
        expected = torch.sigmoid(c.unsqueeze(1) + W @ self.visible)
        self.assertTrue(torch.allclose(result, expected))

    def test_mean_visible_per_group(self):
        mean = self.rbm.mean_visible(self.hidden)

        binary, softmax, gaussian = mean[0:3], mean[3:7], mean[7:9]

        self.assertTrue(torch.all(binary > 0) and torch.all(binary < 1))

        self.assertTrue(torch.allclose(softmax.sum(dim=0), torch.ones(7, dtype=torch.float64), atol=1e-12))
        self.assertTrue(torch.all(softmax > 0) and torch.all(softmax < 1))

        W, b = self.rbm.get_weights(), self.rbm.get_visible_bias()
        linear = b.unsqueeze(1) + W.t() @ self.hidden
        self.assertTrue(torch.allclose(gaussian, linear[7:9]))

    def test_softmax_large_activations(self):
        self.rbm.get_visible_bias()[3] = 1000.0
        mean = self.rbm.mean_visible(self.hidden)

        self.assertTrue(torch.all(torch.isfinite(mean)))
        self.assertTrue(torch.allclose(mean[3:7].sum(dim=0), torch.ones(7, dtype=torch.float64)))
        self.assertTrue(torch.allclose(mean[3], torch.ones(7, dtype=torch.float64)))

    def test_sample_hidden_matches_mean(self):
        mean = torch.full((1, 100000), 0.3, dtype=torch.float64)
        samples = self.rbm.sample_hidden(mean)

        self.assertTrue(torch.all((samples == 0) | (samples == 1)))
        self.assertAlmostEqual(samples.mean().item(), 0.3, delta=0.01)

    def test_sample_hidden_in_place(self):
        state = torch.full((5, 7), 0.5, dtype=torch.float64)
        returned = self.rbm.sample_hidden(state, state)

        self.assertIs(returned, state)
        self.assertTrue(torch.all((state == 0) | (state == 1)))

    def test_sample_visible_per_group(self):
        mean = self.rbm.mean_visible(self.hidden)
        state = mean.clone()
        self.rbm.sample_visible(state, state)

        binary, softmax, gaussian = state[0:3], state[3:7], state[7:9]

        self.assertTrue(torch.all((binary == 0) | (binary == 1)))
        self.assertTrue(torch.all((softmax == 0) | (softmax == 1)))
        self.assertTrue(torch.equal(softmax.sum(dim=0), torch.ones(7, dtype=torch.float64)))
        self.assertFalse(torch.equal(gaussian, mean[7:9]))

    def test_softmax_sampling_frequencies(self):
        rbm = RestrictedBoltzmannMachine(2, 3, 'softmax', random_seed=11)
        rbm.initialize_neural_network()

        probs = torch.tensor([0.2, 0.5, 0.3], dtype=torch.float64).unsqueeze(1).repeat(1, 20000)
        result = torch.zeros_like(probs)
        rbm.sample_visible_group(0, probs, result)

        frequencies = result.mean(dim=1)
        self.assertTrue(torch.allclose(frequencies, probs[:, 0], atol=0.02))

    def test_gaussian_sampling_has_unit_variance(self):
        rbm = RestrictedBoltzmannMachine(2, 1, 'gaussian', random_seed=12)
        rbm.initialize_neural_network()

        mean = torch.full((1, 20000), 2.0, dtype=torch.float64)
        samples = rbm.sample_visible(mean)

        self.assertAlmostEqual(samples.mean().item(), 2.0, delta=0.05)
        self.assertAlmostEqual(samples.std().item(), 1.0, delta=0.05)

    def test_sample_visible_group_index_check(self):
        state = torch.zeros(9, 2, dtype=torch.float64)
        with self.assertRaises(GroupIndexError):
            self.rbm.sample_visible_group(3, state, state)


class TestEnergyAndGradients(unittest.TestCase):
    """Test cases for free energy and free energy gradients."""

    def setUp(self):
        self.rbm = mixed_rbm(sigma=0.3, seed=5)
        generator = torch.Generator().manual_seed(9)
        self.visible = sample_bernoulli(torch.full((9, 6), 0.5, dtype=torch.float64), generator)
        self.visible[7:9] = torch.randn(2, 6, generator=generator, dtype=torch.float64)

    def test_free_energy_formula(self):
        W = self.rbm.get_weights()
        b = self.rbm.get_visible_bias()
        c = self.rbm.get_hidden_bias()
        v = self.visible

        per_sample = -(b @ v) - F.softplus(c.unsqueeze(1) + W @ v).sum(dim=0)
        per_sample = per_sample + 0.5 * (v[7:9] ** 2).sum(dim=0)

        free_energy = self.rbm.free_energy(v)

        self.assertAlmostEqual(free_energy, per_sample.mean().item(), places=10)
        self.assertEqual(self.rbm.batch_size, 6)

    def test_phases_cancel_exactly(self):
        gradients = torch.zeros(self.rbm.num_params, dtype=torch.float64)

        self.rbm.free_energy_gradients(self.visible, gradients, positive_phase=True)
        self.assertFalse(torch.all(gradients == 0))

        self.rbm.free_energy_gradients(self.visible, gradients, positive_phase=False)
        self.assertTrue(torch.equal(gradients, torch.zeros_like(gradients)))

    def test_positive_phase_is_free_energy_gradient(self):
        gradients = torch.zeros(self.rbm.num_params, dtype=torch.float64)
        self.rbm.free_energy_gradients(self.visible, gradients, positive_phase=True)

        nv, nh = self.rbm.num_visible, self.rbm.num_hidden
        eps = 1e-5
        for index in [0, 5, nv, nv + nh - 1, nv + nh, nv + nh + 17, self.rbm.num_params - 1]:
            original = self.rbm.params[index].item()

            self.rbm.params[index] = original + eps
            f_plus = self.rbm.free_energy(self.visible)
            self.rbm.params[index] = original - eps
            f_minus = self.rbm.free_energy(self.visible)
            self.rbm.params[index] = original

            numeric = (f_plus - f_minus) / (2 * eps)
            self.assertAlmostEqual(gradients[index].item(), numeric, places=6)

    def test_precomputed_hidden_mean(self):
        computed = torch.zeros(self.rbm.num_params, dtype=torch.float64)
        supplied = torch.zeros(self.rbm.num_params, dtype=torch.float64)

        self.rbm.free_energy_gradients(self.visible, computed, True)
        hidden_mean = self.rbm.mean_hidden(self.visible)
        self.rbm.free_energy_gradients(self.visible, supplied, True, hidden_mean)

        self.assertTrue(torch.allclose(computed, supplied))


class TestContrastiveDivergence(unittest.TestCase):
    """Test cases for the (P)CD gradient estimate."""

    def setUp(self):
        self.rbm = RestrictedBoltzmannMachine(num_hidden=4, num_visible=6, random_seed=21)
        self.rbm.initialize_neural_network(0.1)
        generator = torch.Generator().manual_seed(22)
        self.batch = sample_bernoulli(torch.full((6, 10), 0.5, dtype=torch.float64), generator)
        self.rbm.set_batch_size(10)

    def _gradients_from_same_chain(self, **hyperparameters):
        """CD gradients without and with the given settings, same random draws."""
        state = self.rbm.generator.get_state()
        chain = self.rbm.visible_state.clone()

        baseline = torch.zeros(self.rbm.num_params, dtype=torch.float64)
        self.rbm.contrastive_divergence(self.batch, baseline)

        self.rbm.generator.set_state(state)
        self.rbm.visible_state.copy_(chain)
        self.rbm.set_hyperparameters(**hyperparameters)

        regularized = torch.zeros(self.rbm.num_params, dtype=torch.float64)
        self.rbm.contrastive_divergence(self.batch, regularized)
        return baseline, regularized

    def test_gradient_is_finite(self):
        gradients = torch.zeros(self.rbm.num_params, dtype=torch.float64)
        self.rbm.contrastive_divergence(self.batch, gradients)

        self.assertTrue(torch.all(torch.isfinite(gradients)))
        self.assertFalse(torch.all(gradients == 0))

    def test_l2_penalty_on_weights_only(self):
        baseline, regularized = self._gradients_from_same_chain(l2_coefficient=0.5)

        nv_nh = self.rbm.num_visible + self.rbm.num_hidden
        self.assertTrue(torch.equal(baseline[:nv_nh], regularized[:nv_nh]))
        difference = self.rbm.get_weights(regularized) - self.rbm.get_weights(baseline)
        self.assertTrue(torch.allclose(difference, 0.5 * self.rbm.get_weights()))

    def test_l1_penalty_is_proportional_to_weights(self):
        # the L1 term is coefficient * weight, not coefficient * sign(weight)
        baseline, regularized = self._gradients_from_same_chain(l1_coefficient=0.25)

        nv_nh = self.rbm.num_visible + self.rbm.num_hidden
        self.assertTrue(torch.equal(baseline[:nv_nh], regularized[:nv_nh]))
        difference = self.rbm.get_weights(regularized) - self.rbm.get_weights(baseline)
        self.assertTrue(torch.allclose(difference, 0.25 * self.rbm.get_weights()))
        self.assertFalse(torch.allclose(difference, 0.25 * torch.sign(self.rbm.get_weights())))

    def test_persistent_chain_kept_between_calls(self):
        gradients = torch.zeros(self.rbm.num_params, dtype=torch.float64)
        chain = self.rbm.visible_state

        self.rbm.contrastive_divergence(self.batch, gradients)
        self.rbm.contrastive_divergence(self.batch, gradients)

        self.assertIs(self.rbm.visible_state, chain)
        self.assertEqual(self.rbm.batch_size, 10)

    def test_cd_ignores_resident_chain(self):
        self.rbm.cd_persistent = False
        state = self.rbm.generator.get_state()

        self.rbm.visible_state.fill_(0.0)
        first = torch.zeros(self.rbm.num_params, dtype=torch.float64)
        self.rbm.contrastive_divergence(self.batch, first)

        self.rbm.generator.set_state(state)
        self.rbm.visible_state.fill_(1.0)
        second = torch.zeros(self.rbm.num_params, dtype=torch.float64)
        self.rbm.contrastive_divergence(self.batch, second)

        self.assertTrue(torch.equal(first, second))

    def test_sample_visible_in_chain(self):
        self.rbm.cd_sample_visible = True
        gradients = torch.zeros(self.rbm.num_params, dtype=torch.float64)
        self.rbm.contrastive_divergence(self.batch, gradients)

        state = self.rbm.visible_state
        self.assertTrue(torch.all((state == 0) | (state == 1)))


if __name__ == '__main__':
    unittest.main()
