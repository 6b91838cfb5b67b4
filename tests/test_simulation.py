from brunelnet import BuildProgress
from brunelnet.config import ExperimentConfig
from brunelnet.errors import ConfigurationError, OrderingError
from brunelnet.kernel import Kernel
from brunelnet.populations import EXCITATORY, INHIBITORY
from brunelnet.recording import compute_rate, load_spike_log
from brunelnet.simulation import Simulation, State, run_experiment
from numpy.testing import assert_array_equal
from pathlib import Path
from rich.progress import Progress
import os
import pytest


def small_config(tmp_path, **kwargs):
    args = dict(order=10, simtime=50.0, n_rec=5, output_dir=tmp_path)
    args.update(kwargs)
    return ExperimentConfig(**args)


def test_run(tmp_path):
    cfg = small_config(tmp_path)
    sim = Simulation(cfg)
    assert sim.state == State.UNCONFIGURED
    sim.configure()
    assert sim.state == State.CONFIGURED
    sim.build()
    assert sim.state == State.BUILT
    res = sim.run()
    assert sim.state == State.COMPLETED

    assert res.n_neurons == 50
    assert res.n_synapses == (4 + 1 + 1) * 50 + 2 * 5
    assert res.events_exc > 0
    assert res.rate_exc == compute_rate(res.events_exc, 5, 50.0)
    assert res.rate_inh == compute_rate(res.events_inh, 5, 50.0)
    assert res.build_time >= 0.0
    assert res.sim_time >= 0.0
    assert res.sink_errors == []


def test_spike_logs(tmp_path):
    cfg = small_config(tmp_path)
    sim = Simulation(cfg)
    sim.configure()
    sim.build()
    res = sim.run()
    paths = cfg.spike_paths()
    senders, times = load_spike_log(paths[EXCITATORY])
    assert len(senders) == res.events_exc
    assert set(senders) <= set(sim.net.excitatory.ids[:5])
    assert times.min() > 0.0
    assert times.max() <= 50.0
    senders, _ = load_spike_log(paths[INHIBITORY])
    assert len(senders) == res.events_inh
    assert set(senders) <= set(sim.net.inhibitory.ids[:5])


def test_reproducible(tmp_path):
    sims = []
    for d in ["a", "b"]:
        sim = Simulation(small_config(tmp_path / d))
        sim.configure()
        sim.build()
        sim.run()
        sims.append(sim)
    a, b = sims
    for kind in [EXCITATORY, INHIBITORY]:
        ev_a = a.kernel.get_events(a.net.collectors[kind])
        ev_b = b.kernel.get_events(b.net.collectors[kind])
        assert_array_equal(ev_a[0], ev_b[0])
        assert_array_equal(ev_a[1], ev_b[1])


def test_without_spike_logs(tmp_path):
    cfg = small_config(None, simtime=10.0)
    res = run_experiment(cfg)
    assert res.n_neurons == 50
    assert list(tmp_path.iterdir()) == []


def test_wrong_order(tmp_path):
    sim = Simulation(small_config(tmp_path))
    with pytest.raises(OrderingError):
        sim.build()
    with pytest.raises(OrderingError):
        sim.run()
    sim.configure()
    with pytest.raises(OrderingError):
        sim.configure()
    with pytest.raises(OrderingError):
        sim.result()


def test_configure_with_existing_nodes(tmp_path):
    kernel = Kernel()
    kernel.create_neurons(1)
    sim = Simulation(small_config(tmp_path), kernel)
    with pytest.raises(OrderingError):
        sim.configure()


def test_invalid_config_creates_nothing(tmp_path):
    kernel = Kernel()
    sim = Simulation(small_config(tmp_path, epsilon=1.5), kernel)
    with pytest.raises(ConfigurationError):
        sim.configure()
    assert kernel.n_nodes == 0
    assert kernel.n_conn == 0


def test_build_failure_aborts(tmp_path, monkeypatch):
    sim = Simulation(small_config(tmp_path))
    sim.configure()

    def fail(*args, **kwargs):
        raise ConfigurationError("boom")

    monkeypatch.setattr("brunelnet.simulation.wire_network", fail)
    with pytest.raises(ConfigurationError):
        sim.build()
    assert sim.state == State.ABORTED
    with pytest.raises(OrderingError):
        sim.run()


def test_stop_at_step_boundary(tmp_path):
    sim = Simulation(small_config(tmp_path))
    sim.configure()
    sim.build()
    calls = []

    def should_stop():
        calls.append(1)
        return len(calls) > 100

    res = sim.run(should_stop)
    assert sim.kernel.steps == 100
    assert res.simtime == pytest.approx(10.0)
    assert sim.state == State.COMPLETED


def test_unwritable_output(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("")
    sim = Simulation(small_config(blocker))
    sim.configure()
    sim.build()
    with pytest.raises(OSError):
        sim.run()
    assert sim.state == State.BUILT
    assert sim.kernel.steps == 0


def test_run_with_progress(tmp_path):
    cfg = small_config(tmp_path, simtime=25.0)
    with Progress(disable=True) as prg:
        bprg = BuildProgress(prg, 4, "Brunel network of order %s", cfg.order)
        res = run_experiment(cfg, bprg=bprg)
    assert res.simtime == 25.0
    task = prg.tasks[bprg.current_task]
    assert task.completed == 200


def test_order_one_needs_external_rate(tmp_path):
    with pytest.raises(ConfigurationError):
        small_config(tmp_path, order=1, n_rec=1).validate()


@pytest.mark.skipif(not os.path.exists("/dev/full"),
                    reason="needs /dev/full")
def test_full_disk_is_reported():
    cfg = small_config(Path("/dev"), file_exc="full", file_inh="full")
    sim = Simulation(cfg)
    sim.configure()
    sim.build()
    res = sim.run()
    assert sim.state == State.COMPLETED
    assert res.events_exc > 0
    assert len(res.sink_errors) >= 1
    assert all(isinstance(e, OSError) for e in res.sink_errors)
    assert all(c.sink is None for c in sim.kernel.collectors.values())
