# Copyright (C) 2023-2024 Björn A. Lindqvist <bjourne@gmail.com>
from argparse import ArgumentParser
from brunelnet import BuildProgress, builders
from brunelnet.brunel2000 import *
from brunelnet.config import ExperimentConfig
from brunelnet.populations import EXCITATORY, INHIBITORY
from brunelnet.recording import rate_from_log
from brunelnet.simulation import run_experiment
from humanize import metric
from pathlib import Path
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import BarColumn, Progress, TextColumn, TimeElapsedColumn
from rich.table import Table

import logging

log = logging.getLogger('brunelnet')

def make_progress():
    return Progress(
        TextColumn('{task.fields[name]}'),
        BarColumn(), TimeElapsedColumn(),
        TextColumn("{task.description}"),
        refresh_per_second = 2
    )

def make_config(args):
    return ExperimentConfig(
        order = args.order,
        epsilon = args.epsilon,
        g = args.g,
        eta = args.eta,
        simtime = args.simtime,
        dt = args.dt,
        n_rec = args.n_rec,
        connect_seed = args.connect_seed,
        kernel_seeds = tuple(args.kernel_seeds),
        output_dir = args.output_dir,
        file_exc = args.file_exc,
        file_inh = args.file_inh
    )

def report(console, res):
    table = Table(title = 'Brunel network simulation')
    table.add_column('Quantity')
    table.add_column('Value', justify = 'right')
    table.add_row('Number of neurons', str(res.n_neurons))
    table.add_row('Number of synapses',
                  '%d (%s)' % (res.n_synapses, metric(res.n_synapses)))
    table.add_row('Excitatory rate', '%.2f Hz' % res.rate_exc)
    table.add_row('Inhibitory rate', '%.2f Hz' % res.rate_inh)
    table.add_row('Building time', '%.2f s' % res.build_time)
    table.add_row('Simulation time', '%.2f s' % res.sim_time)
    console.print(table)

def simulate(console, args):
    config = make_config(args)
    with make_progress() as prg:
        bprg = BuildProgress(prg, 4, 'Brunel network of order %s',
                             config.order)
        res = run_experiment(config, bprg = bprg)
    report(console, res)
    for e in res.sink_errors:
        log.error('Spike log incomplete: %s', e)
    return 1 if res.sink_errors else 0

def build(console, args):
    config = make_config(args)
    config.output_dir = None
    with make_progress() as prg:
        bprg = BuildProgress(prg, 4, 'Building network of order %s',
                             config.order)
        sim = builders.build(config, args.network_dir, bprg)
    console.print('Wrote %d synapses among %d neurons to %s'
                  % (sim.kernel.n_conn, sim.params.N, args.network_dir))
    return 0

def rates(console, args):
    config = make_config(args)
    paths = config.spike_paths()
    for kind in [EXCITATORY, INHIBITORY]:
        rate = rate_from_log(paths[kind], config.n_rec, config.simtime)
        console.print('%s rate: %.2f Hz' % (kind.capitalize(), rate))
    return 0

COMMANDS = {
    'simulate' : simulate,
    'build' : build,
    'rates' : rates
}

def make_parser():
    parser = ArgumentParser(
        prog = 'brunelnet',
        description = 'Sparsely connected E/I network of Brunel (2000)')
    parser.add_argument('command', choices = list(COMMANDS))
    parser.add_argument('--order', type = int, default = ORDER)
    parser.add_argument('--epsilon', type = float, default = EPSILON)
    parser.add_argument('--g', type = float, default = G)
    parser.add_argument('--eta', type = float, default = ETA)
    parser.add_argument('--simtime', type = float, default = SIMTIME)
    parser.add_argument('--dt', type = float, default = DT)
    parser.add_argument('--n-rec', type = int, default = N_REC)
    parser.add_argument('--connect-seed', type = int, default = CONNECT_SEED)
    parser.add_argument('--kernel-seeds', type = int, nargs = '+',
                        default = list(KERNEL_SEEDS))
    parser.add_argument('--output-dir', type = Path, default = DIR_OUTPUT)
    parser.add_argument('--file-exc', default = FILE_SPIKES_EXC)
    parser.add_argument('--file-inh', default = FILE_SPIKES_INH)
    parser.add_argument('--network-dir', type = Path,
                        default = DIR_NETWORK_BASE)
    parser.add_argument('--log-level', default = 'INFO')
    return parser

def main(argv = None):
    args = make_parser().parse_args(argv)
    logging.basicConfig(
        level = args.log_level.upper(),
        format = '%(message)s',
        handlers = [RichHandler()]
    )
    logging.captureWarnings(True)
    console = Console()
    return COMMANDS[args.command](console, args)

if __name__ == '__main__':
    raise SystemExit(main())
