from brunelnet.connectivity import (check_indegrees, connect_network,
                                    create_noise, draw_sources)
from brunelnet.errors import CapacityWarning, ConfigurationError
from brunelnet.kernel import Kernel
from brunelnet.params import derive_parameters, expected_synapse_count
from brunelnet.populations import (EXCITATORY, INHIBITORY, Population,
                                   create_populations)
from brunelnet.recording import create_collectors, wire_network
from numpy.testing import assert_allclose, assert_array_equal
import numpy as np
import pytest
import warnings


def build(order=10, epsilon=0.1, seed=42, n_rec=None):
    params = derive_parameters(order=order, epsilon=epsilon)
    kernel = Kernel()
    kernel.set_kernel_limits(0.1, 0.1, params.delay)
    net = create_populations(kernel, params)
    create_noise(kernel, net, params)
    if n_rec is not None:
        create_collectors(kernel, net, n_rec)
    connect_network(kernel, net, params, np.random.default_rng(seed))
    if n_rec is not None:
        wire_network(kernel, net, n_rec)
    return kernel, net, params


@pytest.fixture(scope="module")
def network():
    return build(order=20)


def test_fixed_indegree(network):
    kernel, net, params = network
    src, dst, _, _ = kernel.get_connections()
    exc, inh = net.excitatory.ids, net.inhibitory.ids
    noise = list(net.noise.values())
    for t in net.all_neurons:
        incoming = src[dst == t]
        assert np.sum(np.isin(incoming, exc)) == params.CE
        assert np.sum(np.isin(incoming, inh)) == params.CI
        assert np.sum(np.isin(incoming, noise)) == 1
        internal = incoming[~np.isin(incoming, noise)]
        assert len(np.unique(internal)) == params.C


def test_no_autapses(network):
    kernel, _, _ = network
    src, dst, _, _ = kernel.get_connections()
    assert not np.any(src == dst)


def test_weight_polarity(network):
    kernel, net, params = network
    src, _, weight, delay = kernel.get_connections()
    assert np.all(weight[np.isin(src, net.excitatory.ids)] == params.JE)
    assert np.all(weight[np.isin(src, net.inhibitory.ids)] == params.JI)
    assert np.all(weight[np.isin(src, list(net.noise.values()))] == params.JE)
    assert_allclose(delay, params.delay)


def test_noise_drives_own_population(network):
    kernel, net, _ = network
    src, dst, _, _ = kernel.get_connections()
    for pop in net.populations:
        targets = dst[src == net.noise[pop.kind]]
        assert_array_equal(np.sort(targets), pop.ids)


def test_example_scenario():
    kernel, net, params = build(order=10, epsilon=0.1)
    assert (params.CE, params.CI) == (4, 1)
    _, dst, _, _ = kernel.get_connections()
    assert_array_equal(np.bincount(dst, minlength=51)[1:51], 6)


def test_deterministic():
    a = build(seed=3)[0].get_connections()
    b = build(seed=3)[0].get_connections()
    for x, y in zip(a, b):
        assert x.tobytes() == y.tobytes()


def test_seed_changes_graph():
    a = build(seed=3)[0].get_connections()[0]
    b = build(seed=4)[0].get_connections()[0]
    assert not np.array_equal(a, b)


def test_synapse_count():
    kernel, _, params = build(order=10, n_rec=5)
    assert kernel.n_conn == expected_synapse_count(params, 5)
    assert kernel.n_conn == 6 * 50 + 10


def test_storage_is_allocated_once():
    with warnings.catch_warnings():
        warnings.simplefilter("error", CapacityWarning)
        kernel, _, params = build(order=10, n_rec=10)
    assert kernel.capacity == kernel.n_conn


def test_too_large_indegree():
    params = derive_parameters(order=10, epsilon=1.5)
    assert params.CE > params.NE
    with pytest.raises(ConfigurationError):
        check_indegrees(params)

    kernel = Kernel()
    net = create_populations(kernel, params)
    with pytest.raises(ConfigurationError):
        connect_network(kernel, net, params, np.random.default_rng(1))
    assert kernel.n_conn == 0


def test_draw_sources_excludes_target():
    pop = Population(EXCITATORY, np.arange(10, 15))
    rng = np.random.default_rng(0)
    for at in range(5):
        ids = draw_sources(rng, pop, 4, at)
        assert sorted(ids) == sorted(set(pop.ids) - {pop.ids[at]})


def test_draw_sources_without_replacement():
    pop = Population(INHIBITORY, np.arange(100))
    ids = draw_sources(np.random.default_rng(0), pop, 30)
    assert len(np.unique(ids)) == 30
