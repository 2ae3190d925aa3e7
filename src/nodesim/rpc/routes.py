"""RPC routes used by the simulator."""

GET_CHAIN_INFO = "chain/getChainInfo"
FOLLOW_CHAIN_STREAM = "chain/followChainStream"
STOP_NODE = "node/stopNode"

# Status codes at or above this value mark an error response.
ERROR_STATUS_THRESHOLD = 400
