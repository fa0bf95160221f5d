"""Row types, shard iterators and consumer-group storage for a sharded blockchain event log."""

__version__ = "0.1.0"