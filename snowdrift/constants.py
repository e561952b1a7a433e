"""Constants of the identifier layout and worker registration.

The layout is a durable contract: identifiers already handed out are sorted
and decoded with these exact widths, so they must never change in place.
"""

TIMESTAMP_BITS = 41
DATACENTER_ID_BITS = 5
WORKER_ID_BITS = 5
SEQUENCE_BITS = 12

WORKER_ID_SHIFT = SEQUENCE_BITS
DATACENTER_ID_SHIFT = SEQUENCE_BITS + WORKER_ID_BITS
TIMESTAMP_SHIFT = SEQUENCE_BITS + WORKER_ID_BITS + DATACENTER_ID_BITS

MAX_TIMESTAMP = (1 << TIMESTAMP_BITS) - 1
MAX_DATACENTER_ID = (1 << DATACENTER_ID_BITS) - 1
MAX_WORKER_ID = (1 << WORKER_ID_BITS) - 1
MAX_SEQUENCE = (1 << SEQUENCE_BITS) - 1
MAX_IDENTIFIER = (1 << (TIMESTAMP_SHIFT + TIMESTAMP_BITS)) - 1

# 32 workers in each of 32 datacenters
IDENTITY_SPACE = (MAX_WORKER_ID + 1) * (MAX_DATACENTER_ID + 1)

DEFAULT_EPOCH = 1288834974657  # 2010-11-04T01:42:54.657Z

DEFAULT_ROOT_PATH = "/worker-nodes"
DEFAULT_NODE_PREFIX = "worker-node-"
