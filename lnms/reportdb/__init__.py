"""Time-series storage and query engine for polled counters, with ZeroMQ message servers."""