# Copyright (C) 2023-2024 Björn A. Lindqvist <bjourne@gmail.com>
from brunelnet.brunel2000 import C_M
from brunelnet.errors import ConfigurationError
from brunelnet.kernel import NeuronParams
from dataclasses import dataclass, field

import numpy as np

EXCITATORY = 'excitatory'
INHIBITORY = 'inhibitory'
KINDS = (EXCITATORY, INHIBITORY)

@dataclass(frozen = True, eq = False)
class Population:
    kind: str
    ids: np.ndarray

    def __len__(self):
        return len(self.ids)

    def __getitem__(self, i):
        return self.ids[i]

    def __iter__(self):
        return iter(self.ids)

@dataclass
class Network:
    excitatory: Population
    inhibitory: Population
    noise: dict = field(default_factory = dict)
    collectors: dict = field(default_factory = dict)

    @property
    def populations(self):
        return self.excitatory, self.inhibitory

    @property
    def all_neurons(self):
        ids = np.concatenate((self.excitatory.ids, self.inhibitory.ids))
        ids.flags.writeable = False
        return ids

    def population(self, kind):
        return {EXCITATORY : self.excitatory,
                INHIBITORY : self.inhibitory}[kind]

def neuron_params(params):
    return NeuronParams(
        C_m = C_M,
        tau_m = params.tau_mem,
        tau_syn = params.tau_syn,
        t_ref = params.tau_ref,
        E_L = params.U0,
        V_reset = params.U0,
        V_th = params.theta,
        V_m = params.U0
    )

def create_population(kernel, kind, size, params):
    if kind not in KINDS:
        raise ConfigurationError('unknown population kind %r' % kind)
    if size <= 0:
        raise ConfigurationError('population size must be positive')
    ids = kernel.create_neurons(size)
    kernel.set_neuron_parameters(ids, neuron_params(params))

    # Room for all internal synapses before the first connect
    for i in ids:
        kernel.reserve_connections(i, params.C)
    ids.flags.writeable = False
    return Population(kind, ids)

def create_populations(kernel, params):
    exc = create_population(kernel, EXCITATORY, params.NE, params)
    inh = create_population(kernel, INHIBITORY, params.NI, params)
    return Network(exc, inh)
