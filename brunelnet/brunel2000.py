# Copyright (C) 2023-2024 Björn A. Lindqvist <bjourne@gmail.com>
from pathlib import Path

# Build parameters
ORDER = 2500
EPSILON = 0.1

CONNECT_SEED = 100
KERNEL_SEEDS = (101,)

# The kernel runs on a single thread
KERNEL_N_THREADS = 1

# Relative strength of inhibition and external drive
G = 5.0
ETA = 2.0

# Neuron parameters (ms, mV)
TAU_MEM = 20.0
TAU_SYN = 0.5
TAU_REF = 2.0
C_M = 1.0
U0 = 0.0
THETA = 20.0

# Synapse parameters
J = 0.1
DELAY = 1.5

# Makes a unit current pulse raise the membrane by J at rest for
# TAU_SYN = 0.5 and TAU_MEM = 20.
FUDGE = 0.41363506632638

# Simulation time
SIMTIME = 300.0
DT = 0.1

# Recorded neurons per population
N_REC = 50

# Population sizes per unit of order
E_PER_ORDER = 4
I_PER_ORDER = 1

# Directories
DIR_OUTPUT = Path('output')
DIR_NETWORK_BASE = Path('networks')

# Files for disk storage
FILE_SPIKES_EXC = 'brunel-py-ex.gdf'
FILE_SPIKES_INH = 'brunel-py-in.gdf'

FILE_SYNAPSE_WEIGHT = 'synapse_weight.npy'
FILE_SYNAPSE_DELAY = 'synapse_delay.npy'

FILE_SYNAPSE_DST = 'synapse_dst.npy'
FILE_SYNAPSE_OFFSET = 'synapse_offset.npy'

FILE_NETWORK_PARAMS = 'network_params.npy'
