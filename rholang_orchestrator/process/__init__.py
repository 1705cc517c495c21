"""External process handling: executable lookup, lifecycle events, and the validator node."""
