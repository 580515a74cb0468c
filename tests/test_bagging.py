import numpy as np
import pytest

from arbor.models.random_forest.errors import ForestConfigError
from arbor.models.random_forest.sampling.bagging import BaggingSampler


def test_bootstrap_draws_n_rows_with_replacement():
    samples = BaggingSampler(100).sample(np.random.default_rng(0))
    assert samples.dtype == np.int64
    assert samples.sum() == 100
    assert samples.max() > 1
    assert BaggingSampler.oob_indices(samples).size == np.count_nonzero(samples == 0)


def test_subsample_draws_without_replacement():
    samples = BaggingSampler(100, subsample=0.3).sample(np.random.default_rng(0))
    assert set(np.unique(samples)) <= {0, 1}
    assert samples.sum() == 30
    assert BaggingSampler.oob_indices(samples).size == 70


def test_stratified_bootstrap_keeps_class_sizes():
    labels = np.array([0] * 90 + [1] * 10)
    samples = BaggingSampler(100, labels=labels).sample(np.random.default_rng(4))
    assert samples[labels == 0].sum() == 90
    assert samples[labels == 1].sum() == 10


def test_class_weight_downsamples_its_class():
    labels = np.array([0] * 90 + [1] * 10)
    sampler = BaggingSampler(100, labels=labels, class_weight=[3, 1])
    samples = sampler.sample(np.random.default_rng(4))
    assert samples[labels == 0].sum() == 30
    assert samples[labels == 1].sum() == 10

    sampler = BaggingSampler(100, subsample=0.5, labels=labels, class_weight=[3, 1])
    samples = sampler.sample(np.random.default_rng(4))
    assert samples[labels == 0].sum() == 15
    assert samples[labels == 1].sum() == 5


def test_same_generator_seed_gives_same_draw():
    sampler = BaggingSampler(50, labels=np.arange(50) % 3)
    np.testing.assert_array_equal(
        sampler.sample(np.random.default_rng(11)), sampler.sample(np.random.default_rng(11))
    )


@pytest.mark.parametrize(
    "kwargs",
    [
        {"n": 0},
        {"n": 10, "subsample": 0.0},
        {"n": 10, "subsample": 1.5},
        {"n": 4, "labels": [0, 1, 0]},
        {"n": 4, "labels": [0, 1, 0, 1], "class_weight": [1]},
        {"n": 4, "labels": [0, 1, 0, 1], "class_weight": [1, 0]},
        {"n": 4, "labels": [0, 1, 0, 1], "class_weight": [1.5, 1.0]},
        {"n": 4, "class_weight": [1, 1]},
        {"n": 6, "labels": [0, 0, 0, 1, 1, 1], "class_weight": [4, 4]},
        {"n": 1, "subsample": 0.3},
    ],
)
def test_invalid_sampler_configuration(kwargs):
    with pytest.raises(ForestConfigError):
        BaggingSampler(**kwargs)
